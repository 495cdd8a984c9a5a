"""Pydantic models for term sets, relevance judgements, packed contexts and answers."""

from enum import Enum
from typing import Iterator

from pydantic import BaseModel, ConfigDict, Field

from shared.models.document import DocumentHandle


class SearchTermSet(BaseModel):
    """Case-insensitive set of search terms derived from one question.

    Terms keep the spelling in which they were first found and the order in
    which they were discovered, but membership, deduplication and equality
    ignore case.
    """

    model_config = ConfigDict(frozen=True)

    terms: tuple[str, ...] = ()

    @classmethod
    def from_terms(cls, terms: list[str]) -> "SearchTermSet":
        seen: set[str] = set()
        unique: list[str] = []
        for term in terms:
            key = term.casefold()
            if not key or key in seen:
                continue
            seen.add(key)
            unique.append(term)
        return cls(terms=tuple(unique))

    def keys(self) -> frozenset[str]:
        return frozenset(term.casefold() for term in self.terms)

    def joined(self, separator: str = ", ") -> str:
        return separator.join(self.terms)

    def __contains__(self, term: object) -> bool:
        return isinstance(term, str) and term.casefold() in self.keys()

    def __iter__(self) -> Iterator[str]:  # type: ignore[override]
        return iter(self.terms)

    def __len__(self) -> int:
        return len(self.terms)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SearchTermSet):
            return NotImplemented
        return self.keys() == other.keys()

    def __hash__(self) -> int:
        return hash(self.keys())


class SmartSearchResult(BaseModel):
    """LLM path: the structured relevance judgement for one document."""

    document: DocumentHandle
    relevance_score: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)
    relevant_sections: list[str] = Field(default_factory=list, max_length=3)
    summary: str = ""
    key_points: list[str] = Field(default_factory=list, max_length=5)
    reasoning: str = ""
    degraded: bool = False


class RankingMeta(BaseModel):
    average_confidence: int = 0
    highest_score: int = 0


class RankedResults(BaseModel):
    results: list[SmartSearchResult] = []
    meta: RankingMeta = Field(default_factory=RankingMeta)


class AssembledContext(BaseModel):
    """The packed prompt context. ``len(text) <= max_chars`` always holds."""

    model_config = ConfigDict(frozen=True)

    text: str
    max_chars: int
    included: tuple[str, ...] = ()
    omitted: tuple[str, ...] = ()
    manifest_included: bool = False

    def __len__(self) -> int:
        return len(self.text)


class StreamEventKind(str, Enum):
    TOKEN = "token"
    DONE = "done"
    ERROR = "error"


class StreamEvent(BaseModel):
    """One record of a streaming completion body."""

    kind: StreamEventKind
    text: str = ""
    message: str = ""


class StreamedAnswer(BaseModel):
    """Accumulates the streamed answer. Frozen for good once ``complete`` is set."""

    text: str = ""
    complete: bool = False

    def append(self, delta: str) -> str:
        if self.complete:
            raise ValueError("Cannot append to a completed answer.")
        self.text += delta
        return self.text

    def mark_complete(self) -> None:
        self.complete = True


class AnswerUpdate(BaseModel):
    """Item yielded by the streaming consumer: the new delta and the full prefix so far."""

    delta: str = ""
    text: str = ""
    complete: bool = False


class CoachMode(str, Enum):
    HEURISTIC = "heuristic"
    SMART = "smart"
    UPLOADED = "uploaded"


class SourceReference(BaseModel):
    name: str
    path: str | None = None
    score: int | None = None
    snippet: str | None = None


class PreparedPrompt(BaseModel):
    """Everything the answering step needs: the final prompt and its provenance."""

    prompt: str
    mode: CoachMode
    search_terms: list[str] = []
    sources: list[SourceReference] = []
    no_relevant_sources: bool = False
    documents_loaded: int = 0
    ranking: RankingMeta | None = None


class SmartSearchReport(BaseModel):
    """Outcome of a smart search without an answer: the ranking plus load statistics."""

    query: str
    total_files: int = 0
    relevant_files: int = 0
    ranked: RankedResults = Field(default_factory=RankedResults)
