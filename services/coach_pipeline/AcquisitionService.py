"""Document acquisition: download the candidate files and extract their text."""

import asyncio

from shared.clients.dms.DMSClientInterface import DMSClientInterface
from shared.exceptions import CoachError, CredentialExpiredError, InvalidArgumentError
from shared.extraction.TextExtractor import TextExtractor
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DocumentHandle, ExtractedDocument, ExtractionOutcome


class AcquisitionService:
    """Fetches document bytes from the Document Store and turns them into ExtractedDocuments."""

    def __init__(
        self,
        helper_config: HelperConfig,
        dms_client: DMSClientInterface,
        extractor: TextExtractor | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._dms = dms_client
        self._extractor = extractor or TextExtractor(helper_config)
        self._concurrency = helper_config.get_int_val("COACH_FETCH_CONCURRENCY", default=6, minimum=1)

    ##########################################
    ################ CORE ####################
    ##########################################

    async def do_acquire(self, handles: list[DocumentHandle], credential: str) -> list[ExtractedDocument]:
        """Download and extract every handle, keeping only documents with usable text.

        Fetches run concurrently, bounded by COACH_FETCH_CONCURRENCY. A document that
        cannot be downloaded or read is logged and dropped; the batch continues.

        Args:
            handles (list[DocumentHandle]): The documents to acquire.
            credential (str): The user's Document Store bearer token.

        Returns:
            list[ExtractedDocument]: Successful extractions, in the input order of their handles.

        Raises:
            InvalidArgumentError: If the credential is empty or a handle has no locator path.
            CredentialExpiredError: If the Document Store rejects the credential.
        """
        if not credential or not credential.strip():
            raise InvalidArgumentError("A non-empty Document Store credential is required.")
        for handle in handles:
            if not handle.locator_path or not handle.locator_path.strip():
                raise InvalidArgumentError("Document '%s' has no locator path." % (handle.display_name or handle.id))

        if not handles:
            return []

        self.logging.info("Acquiring %d documents (concurrency %d)", len(handles), self._concurrency)
        sem = asyncio.Semaphore(self._concurrency)
        results = await asyncio.gather(
            *[self._acquire_document(handle, credential, sem) for handle in handles],
            return_exceptions=True,
        )

        documents: list[ExtractedDocument] = []
        for handle, result in zip(handles, results):
            if isinstance(result, CredentialExpiredError):
                raise result
            if isinstance(result, Exception):
                self.logging.warning("Dropping %s after unexpected error: %r", handle.display_name, result)
                continue
            if isinstance(result, BaseException):
                raise result
            if result is not None:
                documents.append(result)

        self.logging.info("Acquired %d of %d documents", len(documents), len(handles), color="green")
        return documents

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _acquire_document(
        self,
        handle: DocumentHandle,
        credential: str,
        sem: asyncio.Semaphore,
    ) -> ExtractedDocument | None:
        """Download and extract one document.

        Returns:
            ExtractedDocument | None: None if the document is dropped.

        Raises:
            CredentialExpiredError: Propagated; the whole acquisition is invalid.
        """
        if not self._extractor.is_supported(handle):
            self.logging.info("Skipping %s: unsupported file type '%s'", handle.display_name, handle.extension or "none")
            return None

        async with sem:
            try:
                data = await self._dms.do_download_bytes(credential, handle.locator_path)
            except CredentialExpiredError:
                raise
            except CoachError as e:
                self.logging.warning("Failed to download %s: %s", handle.display_name, e.message)
                return None

        # pdf parsing blocks
        extracted = await asyncio.to_thread(self._extractor.extract, handle, data)
        if extracted.outcome != ExtractionOutcome.SUCCESS:
            return None
        return extracted
