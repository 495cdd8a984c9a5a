"""Packs ranked documents into one prompt context that never exceeds the character budget."""

from shared.exceptions import BudgetExceededAtInputError, InvalidArgumentError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ScoredDocument
from shared.models.search import AssembledContext, RankedResults, SearchTermSet

# (name substring, label); first match wins
DOCUMENT_TYPE_LABELS = (
    ("evalueren", "Evaluatie & Beoordeling"),
    ("webinar", "Webinar & Extra Tips"),
    ("basis", "Basis Functionaliteiten"),
    ("extra", "Extra Functionaliteiten"),
)
DEFAULT_DOCUMENT_TYPE_LABEL = "Canvas Handleiding"

NO_DOCUMENTS_MARKER = "\n\n=== NO DOCUMENTS AVAILABLE ===\nNo source documents could be loaded for this question.\n"
NO_RELEVANT_DOCUMENTS_MARKER = "\n\n=== NO RELEVANT DOCUMENTS FOUND ===\nNone of the documents was judged relevant to this question.\n"

_SEARCH_INSTRUCTION = """SEARCH INSTRUCTION: You MUST search through ALL the following documents thoroughly. Look for EXACT matches, SYNONYMS, and RELATED concepts. Pay special attention to:
- Settings and configurations
- Automatic functions and default values
- Step-by-step procedures
- Points, scores, and grading
- Student/cursist management
- Assignment workflows
"""


def priority_tier(score: int) -> str:
    if score > 50:
        return "HIGH"
    if score > 20:
        return "MEDIUM"
    return "LOW"


def document_type_label(name: str) -> str:
    lower_name = (name or "").lower()
    for needle, label in DOCUMENT_TYPE_LABELS:
        if needle in lower_name:
            return label
    return DEFAULT_DOCUMENT_TYPE_LABEL


def format_kchars(length: int) -> str:
    return f"{length / 1000:.1f}k"


class ContextPacker:
    """
    Builds the AssembledContext for a question.

    Documents are ordered by descending score (stable for ties) and included as
    whole blocks until the next block would exceed the budget. Documents that did
    not fit are listed in a manifest, if the manifest itself fits. A block is never
    truncated.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self.max_context_chars = helper_config.get_int_val("COACH_MAX_CONTEXT_CHARS", default=180000, minimum=1)

    ##########################################
    ################ CORE ####################
    ##########################################

    def pack(
        self,
        scored: list[ScoredDocument],
        question: str,
        terms: SearchTermSet,
        max_chars: int | None = None,
    ) -> AssembledContext:
        """Pack heuristically scored documents.

        Args:
            scored (list[ScoredDocument]): Documents with their scores, in acquisition order.
            question (str): The user's question.
            terms (SearchTermSet): The question's search terms.
            max_chars (int | None): Character budget. Defaults to COACH_MAX_CONTEXT_CHARS.

        Returns:
            AssembledContext: ``len(text) <= max_chars``.

        Raises:
            InvalidArgumentError: If max_chars is not positive.
            BudgetExceededAtInputError: If the header alone exceeds max_chars.
        """
        max_chars = self._resolve_budget(max_chars)
        ordered = sorted(scored, key=lambda item: item.score, reverse=True)
        header = self.build_header(question, terms, len(ordered))
        total = len(ordered)

        blocks = [
            (item.document.handle.display_name, self._build_document_block(i, total, item))
            for i, item in enumerate(ordered, start=1)
        ]
        manifest_lines = [
            "- %s (%s chars, score: %d)" % (item.document.handle.display_name, format_kchars(item.document.char_count), item.score)
            for item in ordered
        ]
        return self._assemble(header, blocks, manifest_lines, NO_DOCUMENTS_MARKER, max_chars)

    def pack_judgements(self, ranked: RankedResults, question: str, max_chars: int | None = None) -> AssembledContext:
        """Pack LLM judged documents: summary, key points and relevant sections per document.

        ``ranked.results`` must already be in rank order.

        Raises:
            InvalidArgumentError: If max_chars is not positive.
            BudgetExceededAtInputError: If the header alone exceeds max_chars.
        """
        max_chars = self._resolve_budget(max_chars)
        results = ranked.results
        header = self.build_judgement_header(question, len(results))
        total = len(results)

        blocks = []
        for i, result in enumerate(results, start=1):
            sections = "\n\n".join(f"[Section {n}]\n{section}" for n, section in enumerate(result.relevant_sections, start=1))
            key_points = "\n".join(f"- {point}" for point in result.key_points)
            block = (
                f"\n\nDOCUMENT {i}/{total}: {result.document.display_name}\n"
                f"PATH: {result.document.locator_path}\n"
                f"RELEVANCE SCORE: {result.relevance_score}\n"
                f"CONFIDENCE: {result.confidence}%\n"
                f"SUMMARY: {result.summary}\n"
                f"KEY POINTS:\n{key_points or '- none'}\n"
                f"\n--- START OF {result.document.display_name} ---\n"
                f"{sections}\n"
                f"--- END OF {result.document.display_name} ---\n"
            )
            blocks.append((result.document.display_name, block))
        manifest_lines = [
            "- %s (score: %d, confidence: %d%%)" % (r.document.display_name, r.relevance_score, r.confidence)
            for r in results
        ]
        return self._assemble(header, blocks, manifest_lines, NO_RELEVANT_DOCUMENTS_MARKER, max_chars)

    ##########################################
    ################ HEADER ##################
    ##########################################

    def build_header(self, question: str, terms: SearchTermSet, document_count: int) -> str:
        return (
            "\nCOMPREHENSIVE CANVAS DOCUMENT SEARCH CONTEXT\n"
            f"TOTAL DOCUMENTS: {document_count}\n"
            f"SEARCH TERMS: {terms.joined()}\n"
            f"QUESTION: {question}\n\n"
            f"{_SEARCH_INSTRUCTION}\n"
            "=== ALL CANVAS DOCUMENTS (SEARCH EVERY SINGLE ONE) ===\n"
        )

    def build_judgement_header(self, question: str, document_count: int) -> str:
        return (
            "\nSMART SEARCH CONTEXT\n"
            f"RELEVANT DOCUMENTS: {document_count}\n"
            f"QUESTION: {question}\n\n"
            "The documents below were selected and summarised by relevance. Base your answer on their\n"
            "relevant sections and cite the document names you use.\n\n"
            "=== MOST RELEVANT CANVAS DOCUMENTS ===\n"
        )

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _resolve_budget(self, max_chars: int | None) -> int:
        if max_chars is None:
            return self.max_context_chars
        if max_chars <= 0:
            raise InvalidArgumentError("The context budget must be positive, got %d." % max_chars)
        return max_chars

    def _build_document_block(self, index: int, total: int, item: ScoredDocument) -> str:
        handle = item.document.handle
        return (
            f"\n\nDOCUMENT {index}/{total}: {handle.display_name}\n"
            f"PATH: {handle.locator_path}\n"
            f"RELEVANCE SCORE: {item.score}\n"
            f"DOCUMENT TYPE: {document_type_label(handle.display_name)}\n"
            f"SIZE: {format_kchars(item.document.char_count)} characters\n"
            f"SEARCH PRIORITY: {priority_tier(item.score)}\n"
            f"\n--- START OF {handle.display_name} ---\n"
            f"{item.document.text}\n"
            f"--- END OF {handle.display_name} ---\n"
        )

    def _build_manifest(self, lines: list[str]) -> str:
        return (
            f"\n\nADDITIONAL DOCUMENTS ({len(lines)} more):\n"
            + "\n".join(lines)
            + "\n\nSEARCH NOTE: Due to size limits, search primarily in the detailed documents above, "
            "but be aware these additional documents exist and may contain relevant information.\n"
        )

    def _assemble(
        self,
        header: str,
        blocks: list[tuple[str, str]],
        manifest_lines: list[str],
        empty_marker: str,
        max_chars: int,
    ) -> AssembledContext:
        if len(header) > max_chars:
            raise BudgetExceededAtInputError(len(header), max_chars)

        if not blocks:
            text = header + empty_marker if len(header) + len(empty_marker) <= max_chars else header
            return AssembledContext(text=text, max_chars=max_chars)

        parts = [header]
        length = len(header)
        included: list[str] = []
        for name, block in blocks:
            if length + len(block) > max_chars:
                break
            parts.append(block)
            length += len(block)
            included.append(name)

        omitted = [name for name, _ in blocks[len(included):]]
        manifest_included = False
        if omitted:
            self.logging.info("Context budget reached at document %d/%d", len(included) + 1, len(blocks))
            manifest = self._build_manifest(manifest_lines[len(included):])
            if length + len(manifest) <= max_chars:
                parts.append(manifest)
                length += len(manifest)
                manifest_included = True

        text = "".join(parts)
        self.logging.info(
            "Packed context: %d/%d documents included, %sk chars",
            len(included), len(blocks), format_kchars(len(text))[:-1],
        )
        return AssembledContext(
            text=text,
            max_chars=max_chars,
            included=tuple(included),
            omitted=tuple(omitted),
            manifest_included=manifest_included,
        )
