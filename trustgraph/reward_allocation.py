# reward_allocation.py

import logging
import math
from typing import Dict, Hashable, List, Mapping, Tuple

from trustgraph.config import MIN_SCORE_THRESHOLD, PRECISION_SCALE, validate_pool
from trustgraph.errors import AllocationIntegrityError, ConfigurationError

logger = logging.getLogger(__name__)


class RewardAllocator:
    def __init__(self, pool: int, min_score_threshold: float = MIN_SCORE_THRESHOLD,
                 precision_scale: int = PRECISION_SCALE):
        """
        Splits a fixed integer pool proportionally to float scores.

        Scores are first converted to integers with a fixed scale factor, then every
        reward is computed with integer floor division so the result does not depend
        on floating-point rounding. The last account in the processing order takes
        whatever remains, which makes the distribution exact.

        Args:
            pool (int): Non-negative number of points to distribute.
            min_score_threshold (float): Accounts scoring below this are excluded from
                both the numerator and the denominator.
            precision_scale (int): Multiplier applied to scores before truncation.

        Raises:
            ConfigurationError: If the pool or threshold is invalid.
        """
        self.pool = validate_pool(pool)
        if not isinstance(min_score_threshold, (int, float)) or math.isnan(min_score_threshold):
            raise ConfigurationError(f"Invalid min_score_threshold: {min_score_threshold!r}")
        if isinstance(precision_scale, bool) or not isinstance(precision_scale, int) or precision_scale <= 0:
            raise ConfigurationError(f"precision_scale must be a positive integer, got {precision_scale!r}")
        self.min_score_threshold = float(min_score_threshold)
        self.precision_scale = precision_scale

    def scale_scores(self, scores: Mapping[Hashable, float]) -> List[Tuple[Hashable, int]]:
        """
        Filters out low scores and converts the survivors to truncated integers.

        Returns:
            List: ``(account, scaled_score)`` pairs sorted by scaled score descending,
                ties broken by ascending account identity.

        Raises:
            ConfigurationError: If a finite score overflows once scaled.
        """
        scaled = []
        for account, score in scores.items():
            if not math.isfinite(score) or score < self.min_score_threshold:
                continue
            value = score * self.precision_scale
            if not math.isfinite(value):
                raise ConfigurationError(
                    f"Score {score!r} of {account} overflows when scaled by {self.precision_scale}"
                )
            scaled.append((account, int(value)))
        scaled.sort(key=lambda item: (-item[1], item[0]))
        return scaled

    def allocate(self, scores: Mapping[Hashable, float]) -> Dict[Hashable, int]:
        """
        Computes the integer reward of every qualifying account.

        Accounts whose reward rounds down to zero are omitted from the result.

        Returns:
            Dict: account -> reward. The values sum to exactly ``pool`` whenever at
                least one account survives filtering with a non-zero scaled score.

        Raises:
            AllocationIntegrityError: If the rewards would exceed the pool.
        """
        rewards: Dict[Hashable, int] = {}
        if self.pool == 0:
            logger.info("Reward pool is zero, nothing to distribute")
            return rewards

        scaled = self.scale_scores(scores)
        if not scaled:
            logger.warning("No accounts above the %.6f score threshold to distribute to",
                           self.min_score_threshold)
            return rewards

        total_scaled = sum(value for _, value in scaled)
        if total_scaled == 0:
            logger.warning("Total scaled score is zero, no rewards to assign")
            return rewards

        logger.info("Distributing %d points across %d accounts", self.pool, len(scaled))
        remaining = self.pool
        last = len(scaled) - 1
        for position, (account, scaled_score) in enumerate(scaled):
            if position == last:
                reward = remaining
            else:
                reward = min(remaining, scaled_score * self.pool // total_scaled)
            if reward > 0:
                rewards[account] = reward
                remaining -= reward
            if remaining == 0:
                break

        distributed = sum(rewards.values())
        if distributed > self.pool:
            logger.error("Over-assigned rewards: %d distributed from a pool of %d",
                         distributed, self.pool)
            raise AllocationIntegrityError(distributed, self.pool)

        logger.info("Assigned %d points to %d accounts (%d left in pool)",
                    distributed, len(rewards), self.pool - distributed)
        if len(rewards) > 1 and len(set(rewards.values())) == 1:
            logger.debug("All %d accounts received the same reward", len(rewards))
        return rewards


def allocate_rewards(scores: Mapping[Hashable, float], pool: int,
                     min_threshold: float = MIN_SCORE_THRESHOLD) -> Dict[Hashable, int]:
    """Distributes ``pool`` proportionally to ``scores``; see ``RewardAllocator``."""
    return RewardAllocator(pool, min_threshold).allocate(scores)
