from io import BytesIO

import pdfplumber
from docx import Document as DocxDocument

from shared.exceptions import ExtractionFailure
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DocumentHandle, ExtractedDocument, ExtractionOutcome

MIN_NON_WHITESPACE_CHARS = 10


def extract_pdf_text(data: bytes) -> str:
    """Concatenate the text of all PDF pages. Pages without a text layer contribute nothing."""
    with pdfplumber.open(BytesIO(data)) as pdf:
        pages = [page.extract_text() for page in pdf.pages]
    return "\n".join(page for page in pages if page)


def extract_docx_text(data: bytes) -> str:
    """Paragraph text of a DOCX file followed by its table cells, one paragraph per line."""
    document = DocxDocument(BytesIO(data))
    lines = [paragraph.text for paragraph in document.paragraphs if paragraph.text and paragraph.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text and cell.text.strip()]
            if cells:
                lines.append(" | ".join(cells))
    return "\n".join(lines)


def decode_plain_text(data: bytes) -> str:
    """Decode TXT/MD bytes: UTF-8 (with or without BOM), falling back to Latin-1."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


_EXTRACTORS = {
    ".pdf": extract_pdf_text,
    ".docx": extract_docx_text,
    ".txt": decode_plain_text,
    ".md": decode_plain_text,
}


class TextExtractor:
    """Turns downloaded bytes into an ExtractedDocument. Never touches the network."""

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()

    def is_supported(self, handle: DocumentHandle) -> bool:
        return handle.extension in _EXTRACTORS

    def extract(self, handle: DocumentHandle, data: bytes) -> ExtractedDocument:
        """
        Extracts the plain text of one document.

        Failures are reported through the outcome instead of raising, so one broken
        file never aborts a batch.

        Args:
            handle (DocumentHandle): The document the bytes belong to. Its extension selects the extractor.
            data (bytes): The raw file content.

        Returns:
            ExtractedDocument: With outcome SUCCESS, UNSUPPORTED_TYPE, CORRUPT or EMPTY. Text is empty unless SUCCESS.
        """
        extractor = _EXTRACTORS.get(handle.extension)
        if extractor is None:
            self.logging.info("Skipping %s: unsupported file type '%s'", handle.display_name, handle.extension or "none")
            return ExtractedDocument(handle=handle, outcome=ExtractionOutcome.UNSUPPORTED_TYPE)

        try:
            text = self._run_extractor(handle, extractor, data)
        except ExtractionFailure as e:
            self.logging.warning("Skipping %s: %s", handle.display_name, e.message)
            return ExtractedDocument(handle=handle, outcome=ExtractionOutcome.CORRUPT)

        if len("".join(text.split())) < MIN_NON_WHITESPACE_CHARS:
            self.logging.info("Skipping %s: no usable text found", handle.display_name)
            return ExtractedDocument(handle=handle, outcome=ExtractionOutcome.EMPTY)

        self.logging.debug("Extracted %d characters from %s", len(text), handle.display_name)
        return ExtractedDocument(handle=handle, text=text, outcome=ExtractionOutcome.SUCCESS)

    def _run_extractor(self, handle: DocumentHandle, extractor, data: bytes) -> str:
        try:
            return extractor(data)
        except Exception as e:
            # pdfplumber and python-docx raise a wide range of parser errors for damaged files
            raise ExtractionFailure("failed to read %s document: %s" % (handle.extension, e)) from e
