from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from httpx._types import QueryParamTypes, RequestContent, RequestData, RequestFiles

from shared.exceptions import CoachError, CredentialExpiredError, UpstreamUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperRetry import RetryPolicy, with_retry
from shared.models.config import EnvConfig


class ClientRequestError(CoachError):
    """A backend answered with a non-2xx status that maps to no more specific error."""

    kind = "request_failed"

    def __init__(self, service: str, status_code: int, body: str = "") -> None:
        super().__init__(f"{service}: request failed with status {status_code}")
        self.service = service
        self.status_code = status_code
        self.body = body


class ClientInterface(ABC):
    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        client_type = self.get_client_type().upper()
        self.timeout = helper_config.get_number_val(f"{client_type}_TIMEOUT", default=self._get_default_timeout())
        self.retry_policy = RetryPolicy(
            max_attempts=helper_config.get_int_val(f"{client_type}_RETRY_MAX_ATTEMPTS", default=self._get_default_retry_attempts(), minimum=1),
            backoff_ms=helper_config.get_int_val(f"{client_type}_RETRY_BACKOFF_MS", default=200, minimum=0),
        )

        # client and config
        self._client: httpx.AsyncClient | None = None
        self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """
        Validates that all required configuration values for the client are set and valid.

        Raises:
            ValueError: If any required configuration value is missing or invalid.
        """
        req_config = self._get_required_config()
        for config in req_config:
            _ = self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        """
        Returns the type of the client in lowercase. E.g. "dms"
        """
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "dms"
        """
        pass

    def get_engine_name(self) -> str:
        """
        Returns the name of the engine used by the client. E.g. "dropbox"
        """
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        """
        Returns the name of the engine used by the client. E.g. "Dropbox"
        """
        pass

    def get_service_label(self) -> str:
        """
        Returns a label for log lines and error messages. E.g. "DMS/Dropbox"
        """
        return f"{self.get_client_type().upper()}/{self._get_engine_name()}"

    def _get_default_timeout(self) -> float:
        return 30.0

    def _get_default_retry_attempts(self) -> int:
        return 1

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """
        Returns all required configurations for the client.

        Returns:
            list[EnvConfig]: A list containing the details of each required configuration key.
        """
        pass

    def _get_config_key_name(self, raw_key: str) -> str:
        """
        Returns:
            str: The full configuration key name for the client. E.g. "DMS_DROPBOX_APP_KEY"
        """
        key_prefix = f"{self.get_client_type().upper()}_{self.get_engine_name().upper()}"
        return f"{key_prefix}_{raw_key.upper()}"

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """
        Retrieves the value of a configuration key for the client.

        Args:
            raw_key (str): The raw configuration key name
            default (Any): The default value to return if the configuration key is not set
            val_type (str): The type of the configuration value ("string", "number", "bool", "list")
        """
        getters = {
            "string": self._helper_config.get_string_val,
            "number": self._helper_config.get_number_val,
            "bool": self._helper_config.get_bool_val,
            "list": self._helper_config.get_list_val,
        }
        if val_type not in getters:
            raise ValueError(f"Unsupported config value type '{val_type}' for env key '{raw_key}' in {self.get_client_type().upper()} client '{self.get_engine_name()}'.")
        return getters[val_type](self._get_config_key_name(raw_key), default=default)

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """
        Returns the static authentication header for the backend, if the client uses one.

        Returns:
            dict: A dictionary containing the auth data
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_base_url(self) -> str:
        """
        Returns the base URL of the client backend server from env variables

        Returns:
            str: The base URL of the client backend server (e.g. "https://api.dropboxapi.com")
        """
        pass

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        """
        Returns the endpoint path for healthcheck requests.

        Returns:
            str: The endpoint path for healthcheck requests (e.g. "/2/users/get_current_account")
        """
        pass

    ##########################################
    ############ ERROR MAPPING ###############
    ##########################################

    def _map_error_response(self, status_code: int, body: str) -> CoachError:
        """
        Translates a non-2xx response into the error taxonomy. Engines override this
        for backend specific codes (e.g. Dropbox "path/not_found") and fall back to super().

        Args:
            status_code (int): The HTTP status code.
            body (str): The (possibly truncated) response body.

        Returns:
            CoachError: The error to raise.
        """
        if status_code == 401:
            return CredentialExpiredError(self.get_service_label())
        if status_code == 429 or status_code >= 500:
            return UpstreamUnavailableError(self.get_service_label(), f"backend answered with status {status_code}", status_code=status_code)
        return ClientRequestError(self.get_service_label(), status_code, body)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self, additional_headers: dict | None = None) -> httpx.Response:
        """Check if the client backend is healthy by sending a test request.

        Returns:
            httpx.Response: The response from the healthcheck request.
        """
        return await self.do_request(method="POST", endpoint=self._get_endpoint_healthcheck(), additional_headers=additional_headers, raise_on_error=True)

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialise the HTTP client. A custom transport can be injected (e.g. httpx.MockTransport)."""
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def close(self) -> None:
        """Close the HTTP client and any other resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_request_kwargs(
        self,
        content: RequestContent | None,
        data: RequestData | None,
        files: RequestFiles | None,
        json: dict | None,
        params: QueryParamTypes | None,
        endpoint: str,
        additional_headers: dict | None,
        base_url: str | None,
    ) -> dict:
        endpoint = "/" + endpoint.strip().lstrip("/") if endpoint.strip() else ""

        # Do NOT set a default Content-Type: httpx sets it automatically for json/data/files.
        # For content (raw bytes), the caller must pass the correct type via additional_headers.
        headers: dict = {}
        headers.update(self._get_auth_header())
        if additional_headers:
            headers.update(additional_headers)

        kwargs: dict = {
            "url": f"{(base_url or self._get_base_url()).rstrip('/')}{endpoint}",
            "headers": headers,
            "timeout": self.timeout,
            "params": params,
        }

        # add exactly one body argument
        if content is not None:
            kwargs["content"] = content
        elif data is not None:
            kwargs["data"] = data
        elif files is not None:
            kwargs["files"] = files
        elif json is not None:
            kwargs["json"] = json
        return kwargs

    async def do_request(
        self,
        method: str = "GET",
        content: RequestContent | None = None,
        data: RequestData | None = None,
        files: RequestFiles | None = None,
        json: dict | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
        base_url: str | None = None,
        raise_on_error: bool = False,
    ) -> httpx.Response:
        """Send an HTTP request to the client backend, retrying retryable failures per the retry policy.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, …).
            content: Raw bytes / stream body.
            data: Form-encoded body (dict or list of tuples).
            files: Multipart file upload.
            json: JSON-serialisable body (sets Content-Type automatically).
            params: URL query parameters.
            endpoint: Path to append to the base URL (leading slash optional).
            additional_headers: Extra headers that override the defaults.
            base_url: Overrides the client's base URL for this request (e.g. a content host).
            raise_on_error: Map non-2xx responses to the error taxonomy and raise.

        Returns:
            The raw httpx.Response.

        Raises:
            RuntimeError: If the client is not initialised.
            UpstreamUnavailableError: On transport failures, and on 429/5xx when raise_on_error is True.
            CoachError: Other mapped errors when raise_on_error is True.
        """
        if self._client is None:
            raise RuntimeError("HTTP client not initialised. Call boot() before making requests.")

        kwargs = self._build_request_kwargs(content, data, files, json, params, endpoint, additional_headers, base_url)

        async def _attempt() -> httpx.Response:
            try:
                response = await self._client.request(method, **kwargs)
            except httpx.TransportError as e:
                raise UpstreamUnavailableError(self.get_service_label(), f"transport error: {e}") from e

            # Log and raise on error if requested
            if raise_on_error and response.status_code >= 300:
                self.logging.error(
                    "Request to %s failed with status %d: %s",
                    kwargs["url"],
                    response.status_code,
                    response.text[:300],
                )
                raise self._map_error_response(response.status_code, response.text[:300])
            return response

        return await with_retry(_attempt, self.retry_policy, self.logging, description=f"{method} {kwargs['url']}")

    @asynccontextmanager
    async def do_stream_request(
        self,
        method: str = "POST",
        json: dict | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
        base_url: str | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming request. The response is closed when the context exits, also on cancellation.

        Streaming requests are never retried: once the first byte has been consumed a
        retry would duplicate output.

        Raises:
            RuntimeError: If the client is not initialised.
            CoachError: Mapped error for transport failures and non-2xx responses.
        """
        if self._client is None:
            raise RuntimeError("HTTP client not initialised. Call boot() before making requests.")

        kwargs = self._build_request_kwargs(None, None, None, json, params, endpoint, additional_headers, base_url)
        try:
            async with self._client.stream(method, **kwargs) as response:
                if response.status_code >= 300:
                    body = (await response.aread()).decode("utf-8", errors="replace")[:300]
                    self.logging.error("Stream request to %s failed with status %d: %s", kwargs["url"], response.status_code, body)
                    raise self._map_error_response(response.status_code, body)
                yield response
        except httpx.TransportError as e:
            raise UpstreamUnavailableError(self.get_service_label(), f"transport error: {e}") from e
