from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.clients.dms.models.FileListing import AccessToken, AccountDetails, FileListPage
from shared.exceptions import DocumentNotFoundError, InvalidArgumentError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DocumentHandle

DEFAULT_FILE_EXTENSIONS = [".pdf", ".docx", ".txt", ".md"]


class DMSClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.file_extensions = [
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in self.get_config_val("FILE_EXTENSIONS", default=DEFAULT_FILE_EXTENSIONS, val_type="list")
        ]

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def is_supported_file(self, handle: DocumentHandle) -> bool:
        """
        Returns True if the file is downloadable and has one of the configured extensions.
        """
        return handle.downloadable and handle.extension in self.file_extensions

    def _require_credential(self, credential: str) -> None:
        if not credential or not credential.strip():
            raise InvalidArgumentError("A non-empty bearer credential is required for %s." % self.get_service_label())

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "dms"
        """
        return "dms"

    def _get_default_retry_attempts(self) -> int:
        return 3

    def _get_auth_header(self) -> dict:
        # The bearer token belongs to the end user and is passed per call.
        return {}

    def _get_bearer_header(self, credential: str) -> dict:
        return {"Authorization": f"Bearer {credential}"}

    @abstractmethod
    def get_authorize_url(self, redirect_uri: str | None = None, state: str | None = None) -> str:
        """
        Returns the URL the user opens to grant this application access.

        Args:
            redirect_uri (str | None): Where the backend sends the authorization code. Defaults to the configured URI.
            state (str | None): Opaque value echoed back to the redirect URI.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_list_files(self) -> str:
        """
        Returns the endpoint path for the first page of a recursive file listing.
        """
        pass

    @abstractmethod
    def _get_endpoint_list_files_continue(self) -> str:
        """
        Returns the endpoint path for follow-up pages of a file listing.
        """
        pass

    @abstractmethod
    def _get_endpoint_search_files(self) -> str:
        """
        Returns the endpoint path for full text file searches.
        """
        pass

    @abstractmethod
    def _get_endpoint_download(self) -> str:
        """
        Returns the endpoint path for file downloads.
        """
        pass

    @abstractmethod
    def _get_endpoint_token(self) -> str:
        """
        Returns the endpoint path for the authorization code exchange.
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_list_files_payload(self, cursor: str | None = None) -> dict:
        """
        Build the request body for a listing page. ``cursor`` is None for the first page.
        """
        pass

    @abstractmethod
    def get_search_payload(self, query: str, max_results: int) -> dict:
        """
        Build the request body for a file search.
        """
        pass

    @abstractmethod
    def get_download_headers(self, locator_path: str) -> dict:
        """
        Build the headers that select the file to download.
        """
        pass

    @abstractmethod
    def get_token_payload(self, code: str, redirect_uri: str) -> dict:
        """
        Build the form body for the authorization code exchange.
        """
        pass

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    @abstractmethod
    def _parse_list_files(self, response: dict) -> FileListPage:
        """
        Parses one listing page into document handles and the continuation cursor.
        """
        pass

    @abstractmethod
    def _parse_search_files(self, response: dict) -> FileListPage:
        """
        Parses a search response into document handles.
        """
        pass

    @abstractmethod
    def _parse_token(self, response: dict) -> AccessToken:
        pass

    @abstractmethod
    def _parse_account(self, response: dict) -> AccountDetails:
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    ############# LISTING REQUESTS ##############
    async def do_list_files(self, credential: str) -> list[DocumentHandle]:
        """
        Lists all supported files the credential can read.

        Args:
            credential (str): The user's bearer token.

        Returns:
            list[DocumentHandle]: Downloadable files with a configured extension, in listing order.

        Raises:
            InvalidArgumentError: If the credential is empty.
            CredentialExpiredError: If the backend rejects the credential.
            UpstreamUnavailableError: If the backend is unreachable.
        """
        self._require_credential(credential)
        handles: list[DocumentHandle] = []
        cursor: str | None = None
        page = 1
        while True:
            endpoint = self._get_endpoint_list_files() if cursor is None else self._get_endpoint_list_files_continue()
            resp = await self.do_request(
                method="POST",
                endpoint=endpoint,
                json=self.get_list_files_payload(cursor),
                additional_headers=self._get_bearer_header(credential),
                raise_on_error=True,
            )
            listing = self._parse_list_files(resp.json())
            handles.extend(h for h in listing.handles if self.is_supported_file(h))
            self.logging.info("Fetched file listing page %d from %s, supported files so far: %d", page, self._get_engine_name(), len(handles))
            if not listing.hasMore or not listing.cursor:
                break
            cursor = listing.cursor
            page += 1
        return handles

    async def do_search_files(self, credential: str, query: str, max_results: int = 100) -> list[DocumentHandle]:
        """
        Searches file names and contents and returns the supported matches.

        Args:
            credential (str): The user's bearer token.
            query (str): Search text. An empty query matches everything the backend returns.
            max_results (int): Upper bound for the backend search.
        """
        self._require_credential(credential)
        resp = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_search_files(),
            json=self.get_search_payload(query, max_results),
            additional_headers=self._get_bearer_header(credential),
            raise_on_error=True,
        )
        listing = self._parse_search_files(resp.json())
        handles = [h for h in listing.handles if self.is_supported_file(h)]
        self.logging.info("Search %r on %s matched %d supported files", query[:80], self._get_engine_name(), len(handles))
        return handles

    ############# GET REQUESTS ##############
    async def do_download_bytes(self, credential: str, locator_path: str) -> bytes:
        """
        Downloads the raw bytes of one file.

        Args:
            credential (str): The user's bearer token.
            locator_path (str): The backend path of the file.

        Returns:
            bytes: The file content.

        Raises:
            InvalidArgumentError: If credential or locator path is empty.
            CredentialExpiredError: If the backend rejects the credential.
            DocumentNotFoundError: If the file does not exist.
            UpstreamUnavailableError: If the backend is unreachable or failing.
        """
        self._require_credential(credential)
        if not locator_path or not locator_path.strip():
            raise InvalidArgumentError("A non-empty locator path is required for downloads.")
        try:
            resp = await self.do_request(
                method="POST",
                endpoint=self._get_endpoint_download(),
                additional_headers={**self._get_bearer_header(credential), **self.get_download_headers(locator_path)},
                base_url=self._get_content_base_url(),
                raise_on_error=True,
            )
        except DocumentNotFoundError as e:
            raise DocumentNotFoundError(locator_path) from e
        self.logging.debug("Downloaded %s from %s: %d bytes", locator_path, self._get_engine_name(), len(resp.content))
        return resp.content

    async def do_fetch_account(self, credential: str) -> AccountDetails:
        """
        Fetches the account behind the credential. Fails with CredentialExpiredError for stale tokens.
        """
        self._require_credential(credential)
        resp = await self.do_healthcheck(additional_headers=self._get_bearer_header(credential))
        return self._parse_account(resp.json())

    ############# AUTH REQUESTS ##############
    async def do_exchange_code(self, code: str, redirect_uri: str | None = None) -> AccessToken:
        """
        Exchanges an authorization code for an access token.

        Args:
            code (str): The code the backend sent to the redirect URI.
            redirect_uri (str | None): The redirect URI used for the authorization request.

        Raises:
            InvalidArgumentError: If the code is empty.
            ClientRequestError: If the backend rejects the code (expired, already used, bad app credentials).
        """
        if not code or not code.strip():
            raise InvalidArgumentError("An authorization code is required.")
        resp = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_token(),
            data=self.get_token_payload(code, redirect_uri or self._get_default_redirect_uri()),
            raise_on_error=True,
        )
        return self._parse_token(resp.json())

    ##########################################
    ################# OTHER ##################
    ##########################################

    def _get_content_base_url(self) -> str | None:
        """
        Returns a separate host for file content, or None to use the base URL.
        """
        return None

    @abstractmethod
    def _get_default_redirect_uri(self) -> str:
        pass
