"""Ranking and filtering of LLM judged documents."""

from services.coach_pipeline.RelevanceJudge import round_half_up
from shared.helper.HelperConfig import HelperConfig
from shared.models.search import RankedResults, RankingMeta, SmartSearchResult


class ResultRanker:
    """
    Reweights each judgement by its confidence and keeps the convincing ones.

    ``relevance_score`` of a ranked result holds the rescaled value
    ``round_half_up(relevance * confidence / 100)``.
    """

    def __init__(self, helper_config: HelperConfig):
        self.relevance_floor = helper_config.get_int_val("COACH_RELEVANCE_FLOOR", default=10, minimum=0)

    def rank_and_filter(self, results: list[SmartSearchResult]) -> RankedResults:
        """
        Args:
            results (list[SmartSearchResult]): Judgements in input order.

        Returns:
            RankedResults: Sorted by rescaled score, then confidence, then input order; only results
            whose rescaled score exceeds the relevance floor.
        """
        rescaled = [
            result.model_copy(update={"relevance_score": round_half_up(result.relevance_score * result.confidence / 100)})
            for result in results
            if result.relevance_score > 0
        ]
        # sorted() is stable, so equal keys keep input order
        ordered = sorted(rescaled, key=lambda r: (r.relevance_score, r.confidence), reverse=True)
        kept = [r for r in ordered if r.relevance_score > self.relevance_floor]

        if not kept:
            return RankedResults(results=[], meta=RankingMeta())
        return RankedResults(
            results=kept,
            meta=RankingMeta(
                average_confidence=round_half_up(sum(r.confidence for r in kept) / len(kept)),
                highest_score=kept[0].relevance_score,
            ),
        )
