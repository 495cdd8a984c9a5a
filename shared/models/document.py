"""Pydantic models for document data.

Hierarchy:
  DocumentHandle: backend-independent reference to a file in the Document Store.
  ExtractedDocument: a handle plus its plain text and the extraction outcome.
  ScoredDocument: an extracted document with its heuristic relevance score.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ExtractionOutcome(str, Enum):
    SUCCESS = "success"
    UNSUPPORTED_TYPE = "unsupported-type"
    CORRUPT = "corrupt"
    EMPTY = "empty"


class DocumentHandle(BaseModel):
    """Identifies a candidate source document.

    Created when the Document Store enumerates files and never modified
    afterwards. ``locator_path`` is the backend path used for downloads
    (e.g. Dropbox ``path_lower``).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    locator_path: str
    size_bytes: int = Field(default=0, ge=0)
    content_fingerprint: str | None = None
    downloadable: bool = True

    @property
    def extension(self) -> str:
        """Lower-cased file extension including the dot, or "" if there is none."""
        name = self.display_name or self.locator_path
        if "." not in name:
            return ""
        return "." + name.rsplit(".", 1)[-1].lower()


class ExtractedDocument(BaseModel):
    """A document handle plus the plain text extracted from its bytes."""

    model_config = ConfigDict(frozen=True)

    handle: DocumentHandle
    text: str = ""
    outcome: ExtractionOutcome = ExtractionOutcome.SUCCESS

    @property
    def char_count(self) -> int:
        return len(self.text)

    @property
    def word_count(self) -> int:
        return len(self.text.split())


class ScoredDocument(BaseModel):
    """Heuristic path: one extracted document and its keyword relevance score."""

    model_config = ConfigDict(frozen=True)

    document: ExtractedDocument
    score: int = Field(ge=0)
