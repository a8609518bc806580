# main.py

import argparse
import asyncio
import logging
import sys

from trustgraph.config import (
    DAMPING_FACTOR,
    MAX_ITERATIONS,
    MAX_WEIGHT,
    MIN_SCORE_THRESHOLD,
    MIN_WEIGHT,
    SEED_TRUST_DECAY,
    SEED_TRUST_MULTIPLIER,
    SEED_TRUST_SHARE,
    TOLERANCE,
    PageRankConfig,
    PageRankSourceConfig,
    TrustConfig,
)
from trustgraph.data_processing import FrameAttestationQuerier, load_attestations_csv, save_results
from trustgraph.errors import AllocationIntegrityError, TrustGraphError
from trustgraph.sources import EasPageRankSource, SourceRegistry

logger = logging.getLogger("trustgraph")

OFFLINE_SCHEMA_UID = "0x" + "00" * 32


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Score an attestation graph with Trust Aware PageRank and split a reward pool."
    )
    parser.add_argument("--attestations", required=True,
                        help="CSV with attester,recipient,weight[,timestamp,revoked] columns")
    parser.add_argument("--pool", required=True, help="Total points to distribute (integer)")
    parser.add_argument("--output-dir", default="results", help="Directory for the result files")
    parser.add_argument("--seeds", default="", help="Comma separated trusted seed addresses")
    parser.add_argument("--trust-multiplier", type=float, default=SEED_TRUST_MULTIPLIER)
    parser.add_argument("--trust-share", type=float, default=SEED_TRUST_SHARE)
    parser.add_argument("--trust-decay", type=float, default=SEED_TRUST_DECAY)
    parser.add_argument("--damping-factor", type=float, default=DAMPING_FACTOR)
    parser.add_argument("--max-iterations", type=int, default=MAX_ITERATIONS)
    parser.add_argument("--tolerance", type=float, default=TOLERANCE)
    parser.add_argument("--min-weight", type=float, default=MIN_WEIGHT)
    parser.add_argument("--max-weight", type=float, default=MAX_WEIGHT)
    parser.add_argument("--min-threshold", type=float, default=MIN_SCORE_THRESHOLD)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def build_source_config(args: argparse.Namespace) -> PageRankSourceConfig:
    seeds = [seed.strip() for seed in args.seeds.split(",") if seed.strip()]
    trust_config = TrustConfig()
    if seeds:
        trust_config = (TrustConfig.with_seeds(seeds)
                        .with_trust_multiplier(args.trust_multiplier)
                        .with_trust_share(args.trust_share)
                        .with_trust_decay(args.trust_decay))

    pagerank_config = PageRankConfig(
        damping_factor=args.damping_factor,
        max_iterations=args.max_iterations,
        tolerance=args.tolerance,
        min_weight=args.min_weight,
        max_weight=args.max_weight,
        trust_config=trust_config,
    )
    return PageRankSourceConfig(
        schema_uid=OFFLINE_SCHEMA_UID,
        schema_abi="uint256",
        schema_abi_weight_index=0,
        total_pool=int(args.pool, 0),
        pagerank_config=pagerank_config,
        min_score_threshold=args.min_threshold,
    )


async def run(args: argparse.Namespace) -> int:
    attestations = load_attestations_csv(args.attestations)
    source = EasPageRankSource(build_source_config(args), FrameAttestationQuerier(attestations))

    registry = SourceRegistry()
    registry.add_source(source)
    results, total_value = await registry.get_accounts_events_and_value()
    if not results:
        logger.warning("No accounts to distribute to")
        return 0

    scores = await source.get_scores()
    rewards = {account: value for account, (_, value) in results.items()}

    metadata = {"sources": await registry.get_sources_with_metadata()}
    paths = save_results(args.output_dir, scores, rewards, metadata)
    logger.info("Distributed %d points to %d accounts", total_value, len(rewards))
    for name, path in paths.items():
        logger.info("  %s: %s", name, path)
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(run(args))
    except AllocationIntegrityError:
        raise
    except (TrustGraphError, ValueError, OSError) as e:
        logger.error("Reward computation failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
