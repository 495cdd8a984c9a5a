from abc import abstractmethod
from typing import AsyncIterator

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions import InvalidArgumentError, StreamAbortedError, UpstreamUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.models.search import StreamEvent, StreamEventKind


class LLMClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # completion config
        self.chat_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_CHAT_MODEL", default=self._get_default_model())
        self.judge_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_JUDGE_MODEL", default=self.chat_model)
        self.temperature = helper_config.get_number_val(f"{self.get_client_type().upper()}_TEMPERATURE", default=0.2)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "llm"

    def _get_default_timeout(self) -> float:
        return 120.0

    @abstractmethod
    def _get_default_model(self) -> str:
        """Returns the model used when LLM_CHAT_MODEL is not set."""
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_generate(self, model: str) -> str:
        """Returns the endpoint path for one-shot completions of the given model."""
        pass

    @abstractmethod
    def _get_endpoint_stream(self, model: str) -> str:
        """Returns the endpoint path for streaming completions of the given model."""
        pass

    def _get_stream_params(self) -> dict | None:
        """Returns query parameters required by the streaming endpoint, if any."""
        return None

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_generate_payload(self, prompt: str, json_mode: bool = False) -> dict:
        """Build the backend-specific request body for a completion request.

        Args:
            prompt (str): The full prompt text.
            json_mode (bool): Ask the backend for a JSON-only response, if it supports that.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_generate_response(self, response_data: dict) -> str:
        """Extract the reply text from a raw completion response.

        Raises:
            ValueError: If the response does not contain any text.
        """
        pass

    @abstractmethod
    def parse_stream_line(self, line: str) -> StreamEvent | None:
        """Translate one line of the streaming body into an event.

        Returns:
            StreamEvent | None: None for lines without payload (blank lines, comments, keep-alives).
        """
        pass

    def _emits_done_event(self) -> bool:
        """True if the backend sends an explicit done record, False if the end of the body means done."""
        return False

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_generate(self, prompt: str, json_mode: bool = False, model: str | None = None) -> str:
        """Send a one-shot completion request and return the reply text.

        Args:
            prompt (str): The full prompt text.
            json_mode (bool): Ask for a JSON-only response.
            model (str | None): Overrides the chat model.

        Returns:
            str: The reply text, unparsed.

        Raises:
            InvalidArgumentError: If the prompt is empty.
            UpstreamUnavailableError: If the backend is unreachable or failing.
            CredentialExpiredError: If the API key is rejected.
            ValueError: If the response does not contain any text.
        """
        if not prompt or not prompt.strip():
            raise InvalidArgumentError("The completion prompt must not be empty.")
        body = self.get_generate_payload(prompt, json_mode=json_mode)
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_generate(model or self.chat_model),
            json=body,
            raise_on_error=True,
        )
        return self.extract_generate_response(response.json())

    async def do_stream_generate(self, prompt: str, model: str | None = None) -> AsyncIterator[StreamEvent]:
        """Open one streaming completion and yield its events in order.

        The body is read as newline-delimited records. The generator ends after the
        first done or error event. Closing the generator closes the HTTP stream.

        Raises:
            InvalidArgumentError: If the prompt is empty.
            UpstreamUnavailableError: If the stream cannot be opened.
            StreamAbortedError: If the connection breaks after the first event was yielded.
        """
        if not prompt or not prompt.strip():
            raise InvalidArgumentError("The completion prompt must not be empty.")
        body = self.get_generate_payload(prompt)
        started = False
        try:
            async with self.do_stream_request(
                method="POST",
                endpoint=self._get_endpoint_stream(model or self.chat_model),
                params=self._get_stream_params(),
                json=body,
            ) as response:
                async for line in response.aiter_lines():
                    event = self.parse_stream_line(line)
                    if event is None:
                        continue
                    started = True
                    yield event
                    if event.kind in (StreamEventKind.DONE, StreamEventKind.ERROR):
                        return
                if not self._emits_done_event():
                    yield StreamEvent(kind=StreamEventKind.DONE)
        except (UpstreamUnavailableError, httpx.HTTPError) as e:
            if not started:
                raise
            self.logging.error("Completion stream broke off mid-answer: %s", e)
            raise StreamAbortedError("The completion stream broke off: %s" % e) from e
