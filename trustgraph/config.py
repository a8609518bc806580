# config.py

import logging
import math
import os
from dataclasses import dataclass, field, replace
from typing import Hashable, Iterable, Mapping, Optional, Set

from trustgraph.errors import ConfigurationError

logger = logging.getLogger(__name__)

DAMPING_FACTOR = 0.85           # Probability of following an edge instead of teleporting
MAX_ITERATIONS = 100            # Upper bound on power iterations
TOLERANCE = 1e-6                # Max per-node change that counts as converged
MIN_WEIGHT = 0.0                # Lower clamp bound for attestation weights
MAX_WEIGHT = 100.0              # Upper clamp bound for attestation weights

SEED_TRUST_MULTIPLIER = 2.0     # Weight multiplier for edges issued by trusted seeds
SEED_TRUST_SHARE = 0.15         # Share of the initial mass held by trusted seeds
SEED_TRUST_DECAY = 0.8          # Per-hop decay of propagated score away from the seeds

MIN_SCORE_THRESHOLD = 0.0001    # Scores below this receive no reward (0.01%)
PRECISION_SCALE = 1_000_000     # float score -> integer conversion factor
MAX_POOL = 2 ** 256 - 1         # Largest pool representable on-chain (uint256)
ATTESTATION_BATCH_SIZE = 100    # Attestations fetched per indexer query


@dataclass
class TrustConfig:
    """
    Trust settings for Trust Aware PageRank.

    An empty ``trusted_seeds`` set disables every trust feature, in which
    case the solver runs standard PageRank regardless of the other fields.

    Args:
        trusted_seeds (Set): Accounts anchoring trust propagation.
        trust_multiplier (float): Weight multiplier for attestations issued by seeds, at least 1.0.
        trust_share (float): Fraction of the initial score mass given to seeds, in [0, 1].
        trust_decay (float): Decay factor applied per hop of trust distance, in [0, 1].
    """

    trusted_seeds: Set[Hashable] = field(default_factory=set)
    trust_multiplier: float = 1.0
    trust_share: float = 0.0
    trust_decay: float = 0.0

    def __post_init__(self):
        self.trusted_seeds = set(self.trusted_seeds)
        self.trust_multiplier = _clamp_multiplier(self.trust_multiplier)
        self.trust_share = _clamp_unit(self.trust_share, "trust_share")
        self.trust_decay = _clamp_unit(self.trust_decay, "trust_decay")

    @classmethod
    def with_seeds(cls, trusted_seeds: Iterable[Hashable]) -> "TrustConfig":
        """Creates a trust configuration for the given seeds using the seed defaults."""
        return cls(
            trusted_seeds=set(trusted_seeds),
            trust_multiplier=SEED_TRUST_MULTIPLIER,
            trust_share=SEED_TRUST_SHARE,
            trust_decay=SEED_TRUST_DECAY,
        )

    def with_trust_multiplier(self, multiplier: float) -> "TrustConfig":
        return replace(self, trust_multiplier=multiplier)

    def with_trust_share(self, share: float) -> "TrustConfig":
        return replace(self, trust_share=share)

    def with_trust_decay(self, decay: float) -> "TrustConfig":
        return replace(self, trust_decay=decay)

    @property
    def enabled(self) -> bool:
        return len(self.trusted_seeds) > 0

    def is_trusted_seed(self, account: Hashable) -> bool:
        return account in self.trusted_seeds

    def add_trusted_seed(self, account: Hashable) -> None:
        self.trusted_seeds.add(account)

    def remove_trusted_seed(self, account: Hashable) -> bool:
        """Removes a seed; returns False when it was not a seed."""
        if account not in self.trusted_seeds:
            return False
        self.trusted_seeds.discard(account)
        return True


@dataclass
class PageRankConfig:
    """
    Parameters of the power iteration.

    Args:
        damping_factor (float): Probability of following an edge, strictly inside (0, 1).
        max_iterations (int): Maximum number of iterations; the only bound on run time.
        tolerance (float): Convergence threshold on the maximum per-node change.
        min_weight (float): Lower edge weight clamp bound.
        max_weight (float): Upper edge weight clamp bound, also the per-edge normalization ceiling.
        trust_config (TrustConfig): Trust settings; empty seeds means standard PageRank.
    """

    damping_factor: float = DAMPING_FACTOR
    max_iterations: int = MAX_ITERATIONS
    tolerance: float = TOLERANCE
    min_weight: float = MIN_WEIGHT
    max_weight: float = MAX_WEIGHT
    trust_config: TrustConfig = field(default_factory=TrustConfig)

    def with_trust_config(self, trust_config: TrustConfig) -> "PageRankConfig":
        return replace(self, trust_config=trust_config)

    def has_trust_enabled(self) -> bool:
        return self.trust_config.enabled

    def clamp_weight(self, weight: float) -> float:
        """Clamps an edge weight into [min_weight, max_weight]; NaN becomes min_weight."""
        if math.isnan(weight):
            return self.min_weight
        return min(max(weight, self.min_weight), self.max_weight)

    def validate(self) -> "PageRankConfig":
        """
        Checks the values that have no sane clamped default.

        Raises:
            ConfigurationError: If any parameter is out of range.
        """
        if not 0.0 < self.damping_factor < 1.0:
            raise ConfigurationError(
                f"damping_factor must be in (0, 1), got {self.damping_factor}"
            )
        if self.max_iterations < 0:
            raise ConfigurationError(
                f"max_iterations must be non-negative, got {self.max_iterations}"
            )
        if not self.tolerance >= 0.0:
            raise ConfigurationError(f"tolerance must be non-negative, got {self.tolerance}")
        if not (math.isfinite(self.min_weight) and math.isfinite(self.max_weight)):
            raise ConfigurationError("min_weight and max_weight must be finite")
        if self.min_weight < 0.0:
            raise ConfigurationError(f"min_weight must be non-negative, got {self.min_weight}")
        if self.max_weight <= 0.0 or self.max_weight < self.min_weight:
            raise ConfigurationError(
                f"max_weight must be positive and >= min_weight, got {self.max_weight}"
            )
        return self


@dataclass
class PageRankSourceConfig:
    """
    Configuration of an attestation-backed PageRank reward source.

    Args:
        schema_uid (str): 32-byte hex schema identifier of the vouching attestations.
        schema_abi (str): Comma separated ABI types of the attestation payload, e.g. "string,uint256".
        schema_abi_weight_index (int): Position of the weight field inside ``schema_abi``.
        total_pool (int): Points distributed across all accounts.
        pagerank_config (PageRankConfig): Solver configuration, trust included.
        min_score_threshold (float): Scores below this value receive no reward.
        default_weight (float): Weight used when an attestation payload cannot be decoded.
    """

    schema_uid: str
    schema_abi: str
    schema_abi_weight_index: int
    total_pool: int
    pagerank_config: PageRankConfig = field(default_factory=PageRankConfig)
    min_score_threshold: float = MIN_SCORE_THRESHOLD
    default_weight: float = 0.0

    def has_trust_enabled(self) -> bool:
        return self.pagerank_config.has_trust_enabled()

    def validate(self) -> "PageRankSourceConfig":
        """
        Raises:
            ConfigurationError: On a zero, negative or oversized pool, a malformed
                schema UID, or an invalid solver configuration.
        """
        validate_pool(self.total_pool)
        if self.total_pool == 0:
            raise ConfigurationError("PageRank points pool cannot be zero")
        parse_schema_uid(self.schema_uid)
        if self.schema_abi_weight_index < 0:
            raise ConfigurationError("schema_abi_weight_index must be non-negative")
        if not math.isfinite(self.min_score_threshold):
            raise ConfigurationError("min_score_threshold must be finite")
        self.pagerank_config.validate()
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PageRankSourceConfig":
        """
        Loads the source configuration from environment variables.

        Required: PAGERANK_POINTS_POOL, VOUCHING_SCHEMA_UID, VOUCHING_SCHEMA_ABI,
        VOUCHING_SCHEMA_ABI_WEIGHT_INDEX. Optional numeric settings that fail to
        parse fall back to their defaults with a warning. Trusted seeds are read
        from the comma separated PAGERANK_TRUSTED_SEEDS; invalid entries are skipped.

        Args:
            environ (Mapping, optional): Variables to read instead of ``os.environ``.

        Returns:
            PageRankSourceConfig: Validated configuration.

        Raises:
            ConfigurationError: If a required variable is missing or invalid.
        """
        # Imported here: attestations depends on this module.
        from trustgraph.attestations import normalize_account
        from trustgraph.errors import InvalidAccountError

        env = os.environ if environ is None else environ

        pool_str = _required(env, "PAGERANK_POINTS_POOL")
        try:
            total_pool = int(pool_str.strip(), 0)
        except ValueError as e:
            raise ConfigurationError(f"Failed to parse PAGERANK_POINTS_POOL: {e}") from e

        weight_index_str = _required(env, "VOUCHING_SCHEMA_ABI_WEIGHT_INDEX")
        try:
            weight_index = int(weight_index_str)
        except ValueError as e:
            raise ConfigurationError(
                f"Failed to parse VOUCHING_SCHEMA_ABI_WEIGHT_INDEX: {e}"
            ) from e

        pagerank_config = PageRankConfig(
            damping_factor=_optional_number(env, "PAGERANK_DAMPING_FACTOR", DAMPING_FACTOR),
            max_iterations=int(_optional_number(env, "PAGERANK_MAX_ITERATIONS", MAX_ITERATIONS, int)),
            tolerance=_optional_number(env, "PAGERANK_TOLERANCE", TOLERANCE),
            min_weight=_optional_number(env, "PAGERANK_MIN_WEIGHT", MIN_WEIGHT),
            max_weight=_optional_number(env, "PAGERANK_MAX_WEIGHT", MAX_WEIGHT),
        )

        seeds = []
        for raw_seed in env.get("PAGERANK_TRUSTED_SEEDS", "").split(","):
            raw_seed = raw_seed.strip()
            if not raw_seed:
                continue
            try:
                seeds.append(normalize_account(raw_seed))
            except InvalidAccountError as e:
                logger.warning("Invalid trusted seed address %r: %s", raw_seed, e)

        if seeds:
            trust_config = TrustConfig.with_seeds(seeds)
            trust_config = trust_config.with_trust_multiplier(
                _optional_number(env, "PAGERANK_TRUST_MULTIPLIER", trust_config.trust_multiplier)
            )
            trust_config = trust_config.with_trust_share(
                _optional_number(env, "PAGERANK_TRUST_SHARE", trust_config.trust_share)
            )
            trust_config = trust_config.with_trust_decay(
                _optional_number(env, "PAGERANK_TRUST_DECAY", trust_config.trust_decay)
            )
            pagerank_config = pagerank_config.with_trust_config(trust_config)
            logger.info(
                "Configured Trust Aware PageRank with %d trusted seeds "
                "(multiplier %.1fx, share %.1f%%, decay %.1f%%)",
                len(trust_config.trusted_seeds),
                trust_config.trust_multiplier,
                trust_config.trust_share * 100.0,
                trust_config.trust_decay * 100.0,
            )
        else:
            logger.info("No trusted seeds configured, using standard PageRank")

        config = cls(
            schema_uid=_required(env, "VOUCHING_SCHEMA_UID"),
            schema_abi=_required(env, "VOUCHING_SCHEMA_ABI"),
            schema_abi_weight_index=weight_index,
            total_pool=total_pool,
            pagerank_config=pagerank_config,
            min_score_threshold=_optional_number(
                env, "PAGERANK_MIN_SCORE_THRESHOLD", MIN_SCORE_THRESHOLD
            ),
        )
        return config.validate()


def validate_pool(pool: int) -> int:
    """
    Checks that a reward pool is a non-negative integer no larger than MAX_POOL.

    Raises:
        ConfigurationError: If the pool is not an int, is negative, or exceeds MAX_POOL.
    """
    if isinstance(pool, bool) or not isinstance(pool, int):
        raise ConfigurationError(f"Reward pool must be an integer, got {type(pool).__name__}")
    if pool < 0:
        raise ConfigurationError(f"Reward pool cannot be negative, got {pool}")
    if pool > MAX_POOL:
        raise ConfigurationError(f"Reward pool {pool} exceeds the maximum of {MAX_POOL}")
    return pool


def parse_schema_uid(schema_uid: str) -> bytes:
    """Decodes a 0x-prefixed (or bare) 32-byte hex schema UID."""
    hex_str = schema_uid[2:] if schema_uid.lower().startswith("0x") else schema_uid
    try:
        schema_bytes = bytes.fromhex(hex_str)
    except ValueError as e:
        raise ConfigurationError(f"Schema UID is not valid hex: {schema_uid!r}") from e
    if len(schema_bytes) != 32:
        raise ConfigurationError("Schema UID must be 32 bytes")
    return schema_bytes


def _clamp_multiplier(value: float) -> float:
    if math.isnan(value):
        logger.warning("trust_multiplier is NaN, using 1.0")
        return 1.0
    if value < 1.0:
        logger.warning("trust_multiplier %.3f below 1.0, clamping to 1.0", value)
        return 1.0
    return float(value)


def _clamp_unit(value: float, name: str) -> float:
    if math.isnan(value):
        logger.warning("%s is NaN, using 0.0", name)
        return 0.0
    clamped = min(max(float(value), 0.0), 1.0)
    if clamped != value:
        logger.warning("%s %.3f outside [0, 1], clamping to %.3f", name, value, clamped)
    return clamped


def _required(env: Mapping[str, str], key: str) -> str:
    value = env.get(key)
    if value is None or not value.strip():
        raise ConfigurationError(f"PageRank enabled but {key} not configured")
    return value.strip()


def _optional_number(env: Mapping[str, str], key: str, default, cast=float):
    value = env.get(key)
    if value is None or not value.strip():
        return default
    try:
        return cast(value.strip())
    except ValueError:
        logger.warning("Could not parse %s=%r, using default %s", key, value, default)
        return default
