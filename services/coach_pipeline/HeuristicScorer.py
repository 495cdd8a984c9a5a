"""Keyword based relevance scoring of extracted documents."""

from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ExtractedDocument, ScoredDocument
from shared.models.search import SearchTermSet

INSTRUCTIONAL_KEYWORDS = (
    "stap", "procedure", "instructie", "hoe", "methode", "manier",
    "step", "how-to", "method",
)


class HeuristicScorer:
    """
    Scores a document's text against a term set.

    Per term: occurrences x term weight, plus an emphasis bonus for ``term:`` and
    another one for ``**term**``. Per instructional keyword present anywhere in
    the text: the instructional bonus, independent of the terms.
    """

    def __init__(self, helper_config: HelperConfig):
        self.term_weight = helper_config.get_int_val("COACH_TERM_WEIGHT", default=10, minimum=0)
        self.emphasis_bonus = helper_config.get_int_val("COACH_EMPHASIS_BONUS", default=5, minimum=0)
        self.instructional_bonus = helper_config.get_int_val("COACH_INSTRUCTIONAL_BONUS", default=3, minimum=0)

    def score(self, text: str, terms: SearchTermSet) -> int:
        """
        Args:
            text (str): The document text.
            terms (SearchTermSet): The question's search terms.

        Returns:
            int: A non-negative score. Matching is case-insensitive and counts non-overlapping occurrences.
        """
        lower_text = (text or "").lower()
        if not lower_text:
            return 0

        score = 0
        for term in terms:
            lower_term = term.lower()
            if not lower_term:
                continue
            score += lower_text.count(lower_term) * self.term_weight
            if f"{lower_term}:" in lower_text:
                score += self.emphasis_bonus
            if f"**{lower_term}**" in lower_text:
                score += self.emphasis_bonus

        for keyword in INSTRUCTIONAL_KEYWORDS:
            if keyword in lower_text:
                score += self.instructional_bonus
        return score

    def score_documents(self, documents: list[ExtractedDocument], terms: SearchTermSet) -> list[ScoredDocument]:
        """Score every document, keeping the input order."""
        return [ScoredDocument(document=doc, score=self.score(doc.text, terms)) for doc in documents]
