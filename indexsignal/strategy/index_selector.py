"""Cross-index selection — pick the single best index to trade this cycle.

Every configured index is scored with ``TrendScorer``; candidates below
``min_trend_score`` are dropped and the rest go through a tie-break ladder
(clear winner, then PA momentum, then IND strength).
"""

import logging
from typing import Callable, Iterable, Optional

from indexsignal.config import IndexConfig, SelectorConfig
from indexsignal.strategy.models import IndexScoreCandidate
from indexsignal.strategy.trend_scorer import TrendScorer

logger = logging.getLogger("indexsignal.selector")

CLEAR_WIN_MARGIN = 2.0

ONLY_QUALIFIED = "only_qualified_index"
HIGHEST_SCORE = "highest_trend_score"
TIE_BREAK_MOMENTUM = "tie_breaker_momentum"
TIE_BREAK_LIQUIDITY = "tie_breaker_liquidity"
TIE_BREAK_STABLE = "trend_score_with_tie_breakers"


class IndexSelector:
    """Ranks indices by composite trend score.

    Args:
        scorer_factory: Builds a ``TrendScorer`` for an index key.  One
            scorer per index lets each use its own timeframes.
        config: Selector settings (minimum score, timeframes).
    """

    def __init__(
        self,
        scorer_factory: Callable[[str], TrendScorer],
        config: SelectorConfig = SelectorConfig(),
    ) -> None:
        self._scorer_factory = scorer_factory
        self._config = config

    @property
    def min_trend_score(self) -> float:
        return self._config.min_trend_score

    async def score_all(self, indices: Iterable[IndexConfig | str]) -> list[IndexScoreCandidate]:
        """Score each index; indices whose scoring raises are logged and skipped."""
        candidates: list[IndexScoreCandidate] = []
        for entry in indices:
            index_key = entry if isinstance(entry, str) else entry.key
            try:
                result = await self._scorer_factory(index_key).score_index(index_key)
            except Exception as exc:
                logger.warning("Failed to score %s: %s", index_key, exc)
                continue
            logger.info(
                "%s trend score %.1f (pa=%.1f ind=%.1f mtf=%.1f)",
                index_key, result.trend_score,
                result.breakdown.pa, result.breakdown.ind, result.breakdown.mtf,
            )
            candidates.append(
                IndexScoreCandidate(
                    index_key=index_key,
                    trend_score=result.trend_score,
                    breakdown=result.breakdown,
                )
            )
        return candidates

    async def select_best_index(
        self, indices: Iterable[IndexConfig | str]
    ) -> Optional[IndexScoreCandidate]:
        """Return the winning candidate, or ``None`` when nothing qualifies."""
        candidates = await self.score_all(indices)
        qualified = [c for c in candidates if c.trend_score >= self.min_trend_score]
        if not qualified:
            logger.info(
                "No index reached the minimum trend score %.1f", self.min_trend_score
            )
            return None

        best = self.apply_tie_breakers(qualified)
        logger.info(
            "Selected %s (score %.1f, %s)", best.index_key, best.trend_score, best.reason
        )
        return best

    @staticmethod
    def apply_tie_breakers(
        candidates: list[IndexScoreCandidate],
    ) -> IndexScoreCandidate:
        """Pick one candidate and label the rule that decided it.

        Ladder:
            1. Lead of at least 2.0 points over the runner-up wins outright.
            2. Among candidates within 2.0 of the top, higher PA wins.
            3. Then higher IND wins.
            4. Otherwise the top-scored candidate stays (first seen on ties).
        """
        if not candidates:
            raise ValueError("Need at least 1 candidate for tie-breaking, got 0")
        if len(candidates) == 1:
            return _with_reason(candidates[0], ONLY_QUALIFIED)

        # sorted() is stable, so equal scores keep their input order
        ranked = sorted(candidates, key=lambda c: -c.trend_score)
        top, runner_up = ranked[0], ranked[1]
        if top.trend_score - runner_up.trend_score >= CLEAR_WIN_MARGIN:
            return _with_reason(top, HIGHEST_SCORE)

        near = [c for c in ranked if top.trend_score - c.trend_score < CLEAR_WIN_MARGIN]

        best_pa = max(near, key=lambda c: c.breakdown.pa)
        if best_pa.breakdown.pa > top.breakdown.pa:
            return _with_reason(best_pa, TIE_BREAK_MOMENTUM)

        best_ind = max(near, key=lambda c: c.breakdown.ind)
        if best_ind.breakdown.ind > top.breakdown.ind:
            return _with_reason(best_ind, TIE_BREAK_LIQUIDITY)

        return _with_reason(top, TIE_BREAK_STABLE)


def _with_reason(candidate: IndexScoreCandidate, reason: str) -> IndexScoreCandidate:
    return IndexScoreCandidate(
        index_key=candidate.index_key,
        trend_score=candidate.trend_score,
        breakdown=candidate.breakdown,
        reason=reason,
    )
