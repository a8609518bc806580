# sources.py

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from trustgraph.attestation_graph import AttestationGraph
from trustgraph.attestations import (
    Attestation,
    SchemaAbi,
    build_graph_from_attestations,
    normalize_account,
)
from trustgraph.config import ATTESTATION_BATCH_SIZE, PageRankSourceConfig, parse_schema_uid
from trustgraph.errors import ConfigurationError, SourceValueError
from trustgraph.pagerank import calculate_pagerank
from trustgraph.reward_allocation import allocate_rewards

logger = logging.getLogger(__name__)

MAX_SINGLE_SOURCE_VALUE = 10 ** 24  # 1M points with 18 decimals


@dataclass
class SourceEvent:
    """An event that earned an account points."""

    type: str
    timestamp: int
    value: int
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "timestamp": self.timestamp,
            "value": str(self.value),
            "metadata": self.metadata,
        }


class Source(ABC):
    """A source of point values for accounts."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def get_accounts(self) -> List[str]:
        """All accounts with a value from this source."""

    @abstractmethod
    async def get_events_and_value(self, account: str) -> Tuple[List[SourceEvent], int]:
        """Events and total value for one account."""

    @abstractmethod
    async def get_metadata(self) -> Dict[str, Any]:
        ...


class AttestationQuerier(ABC):
    """Read access to the attestations indexed for a schema."""

    @abstractmethod
    async def get_attestation_count(self, schema_uid: bytes) -> int:
        ...

    @abstractmethod
    async def get_attestations(self, schema_uid: bytes, start: int, length: int) -> List[Attestation]:
        ...


class EasPageRankSource(Source):
    def __init__(self, config: PageRankSourceConfig, querier: AttestationQuerier):
        """
        Reward source that distributes a pool by Trust Aware PageRank over attestations.

        The graph build, the PageRank solve and the allocation run once per instance.
        The result is cached behind an ``asyncio.Lock``: the first caller computes it
        while holding the lock and concurrent callers wait at the lock, then read the
        cache. Construct a new instance to recompute.

        Args:
            config (PageRankSourceConfig): Schema, pool and solver settings.
            querier (AttestationQuerier): Attestation indexer access.

        Raises:
            ConfigurationError: If the pool is zero or any setting is invalid.
        """
        trust = config.pagerank_config.trust_config
        if trust.enabled:
            # Graph nodes are normalized addresses; seeds must match them.
            seeds = {normalize_account(seed) for seed in trust.trusted_seeds}
            config = replace(config, pagerank_config=config.pagerank_config.with_trust_config(
                replace(trust, trusted_seeds=seeds)))
        self.config = config.validate()
        try:
            self.schema_abi = SchemaAbi.parse(config.schema_abi)
        except ValueError as e:
            raise ConfigurationError(f"Failed to parse schema: {e}") from e
        self.schema = parse_schema_uid(config.schema_uid)
        self.querier = querier
        self.computations = 0
        self._cached_points: Optional[Dict[str, int]] = None
        self._cached_scores: Dict[str, float] = {}
        self._lock = asyncio.Lock()

        trust = config.pagerank_config.trust_config
        if config.has_trust_enabled():
            logger.info("Trust Aware PageRank enabled with %d trusted seeds", len(trust.trusted_seeds))
            for i, seed in enumerate(sorted(trust.trusted_seeds), start=1):
                logger.info("   %d. %s", i, seed)
        else:
            logger.info("Standard PageRank (no trust seeds configured)")

    @property
    def name(self) -> str:
        return "Trust-Aware-EAS-PageRank" if self.config.has_trust_enabled() else "EAS-PageRank"

    async def fetch_attestations(self) -> List[Attestation]:
        total = await self.querier.get_attestation_count(self.schema)
        logger.info("Processing %d total attestations for schema %s", total, self.config.schema_uid)

        attestations: List[Attestation] = []
        start = 0
        while start < total:
            length = min(ATTESTATION_BATCH_SIZE, total - start)
            logger.debug("Processing attestation batch: %d to %d", start, start + length - 1)
            attestations.extend(await self.querier.get_attestations(self.schema, start, length))
            start += length
        return attestations

    async def build_attestation_graph(self) -> AttestationGraph:
        attestations = await self.fetch_attestations()
        return build_graph_from_attestations(
            attestations,
            schema_abi=self.schema_abi,
            weight_index=self.config.schema_abi_weight_index,
            config=self.config.pagerank_config,
            default_weight=self.config.default_weight,
        )

    async def calculate_points(self) -> Dict[str, int]:
        """Returns the reward of every account, computing it on first use."""
        async with self._lock:
            if self._cached_points is not None:
                logger.debug("Using cached PageRank points")
                return dict(self._cached_points)

            graph = await self.build_attestation_graph()
            scores = {
                account: score
                for account, score in calculate_pagerank(graph, self.config.pagerank_config).items()
                if score > 0.0
            }
            points = allocate_rewards(scores, self.config.total_pool, self.config.min_score_threshold)
            self.computations += 1
            self._cached_scores = scores
            self._cached_points = points
            return dict(points)

    async def get_scores(self) -> Dict[str, float]:
        """Positive PageRank scores behind the cached points."""
        await self.calculate_points()
        return dict(self._cached_scores)

    async def get_accounts(self) -> List[str]:
        points = await self.calculate_points()
        return sorted(points)

    async def get_events_and_value(self, account: str) -> Tuple[List[SourceEvent], int]:
        points = await self.calculate_points()
        value = points.get(normalize_account(account), 0)
        if value == 0:
            return [], 0
        return [SourceEvent(type=self.name, timestamp=0, value=value)], value

    async def get_metadata(self) -> Dict[str, Any]:
        pagerank_config = self.config.pagerank_config
        trust = pagerank_config.trust_config
        if self.config.has_trust_enabled():
            trust_info = {
                "enabled": True,
                "trusted_seeds": sorted(str(seed) for seed in trust.trusted_seeds),
                "trust_multiplier": trust.trust_multiplier,
                "trust_share": trust.trust_share,
                "trust_decay": trust.trust_decay,
            }
        else:
            trust_info = {"enabled": False}
        return {
            "type": "trust_aware_pagerank_attestations" if self.config.has_trust_enabled()
            else "pagerank_attestations",
            "schema_uid": self.config.schema_uid,
            "schema_abi": str(self.schema_abi),
            "schema_abi_weight_index": self.config.schema_abi_weight_index,
            "total_pool": str(self.config.total_pool),
            "min_score_threshold": self.config.min_score_threshold,
            "pagerank_config": {
                "damping_factor": pagerank_config.damping_factor,
                "max_iterations": pagerank_config.max_iterations,
                "tolerance": pagerank_config.tolerance,
                "min_weight": pagerank_config.min_weight,
                "max_weight": pagerank_config.max_weight,
            },
            "trust_config": trust_info,
        }


class DirectSource(Source):
    def __init__(self, accounts: List[str], points_per_account: int,
                 summary: str = "", timestamp: Optional[int] = None):
        """Assigns the same number of points to each listed account."""
        self.accounts = [normalize_account(account) for account in accounts]
        self.points_per_account = points_per_account
        self.summary = summary
        self.timestamp = timestamp

    @property
    def name(self) -> str:
        return "Direct"

    async def get_accounts(self) -> List[str]:
        return list(self.accounts)

    async def get_events_and_value(self, account: str) -> Tuple[List[SourceEvent], int]:
        if normalize_account(account) not in self.accounts:
            return [], 0
        event = SourceEvent(
            type=self.name,
            timestamp=self.timestamp or 0,
            value=self.points_per_account,
            metadata={"summary": self.summary},
        )
        return [event], self.points_per_account

    async def get_metadata(self) -> Dict[str, Any]:
        return {"accounts": len(self.accounts), "points_per_account": str(self.points_per_account)}


class SourceRegistry:
    def __init__(self, max_single_source_value: int = MAX_SINGLE_SOURCE_VALUE):
        """Aggregates values for accounts across several sources."""
        self.sources: List[Source] = []
        self.max_single_source_value = max_single_source_value

    def add_source(self, source: Source) -> None:
        self.sources.append(source)

    async def get_accounts(self) -> List[str]:
        """Deduplicated, sorted accounts of every source."""
        accounts = set()
        for source in self.sources:
            accounts.update(await source.get_accounts())
        return sorted(accounts)

    async def get_events_and_value(self, account: str) -> Tuple[List[SourceEvent], int]:
        """
        Collects events and sums values for ``account`` across sources.

        Raises:
            SourceValueError: If a single source returns more than the per-source ceiling.
        """
        events: List[SourceEvent] = []
        total = 0
        for source in self.sources:
            source_events, value = await source.get_events_and_value(account)
            if value > self.max_single_source_value:
                raise SourceValueError(
                    f"Source '{source.name}' returned excessive value: {value} "
                    f"(max allowed: {self.max_single_source_value})"
                )
            events.extend(source_events)
            total += value
            if value:
                logger.debug("%s from '%s': %d", account, source.name, value)

        # Newest first; events without a timestamp (0) sort last.
        events.sort(key=lambda event: event.timestamp, reverse=True)
        return events, total

    async def get_accounts_events_and_value(self) -> Tuple[Dict[str, Tuple[List[SourceEvent], int]], int]:
        """
        Queries every account concurrently.

        Returns:
            Tuple: ``({account: (events, value)}, total_value)`` for accounts with a non-zero value.
        """
        accounts = await self.get_accounts()
        results = await asyncio.gather(*(self.get_events_and_value(account) for account in accounts))
        per_account = {
            account: result for account, result in zip(accounts, results) if result[1] > 0
        }
        total = sum(value for _, value in per_account.values())
        logger.info("Found %d accounts with a total value of %d", len(per_account), total)
        return per_account, total

    async def get_sources_with_metadata(self) -> List[Dict[str, Any]]:
        return [
            {"name": source.name, "metadata": await source.get_metadata()}
            for source in self.sources
        ]
