import json

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.exceptions import CoachError, CredentialExpiredError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.search import StreamEvent, StreamEventKind


class LLMClientGemini(LLMClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://generativelanguage.googleapis.com", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Gemini"

    def _get_default_model(self) -> str:
        return "gemini-2.5-pro"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://generativelanguage.googleapis.com"),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"x-goog-api-key": self._api_key}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return f"/v1beta/models/{self.chat_model}"

    def _get_endpoint_generate(self, model: str) -> str:
        return f"/v1beta/models/{model}:generateContent"

    def _get_endpoint_stream(self, model: str) -> str:
        return f"/v1beta/models/{model}:streamGenerateContent"

    def _get_stream_params(self) -> dict | None:
        return {"alt": "sse"}

    ################ PAYLOAD BUILDER ##################
    def get_generate_payload(self, prompt: str, json_mode: bool = False) -> dict:
        """Build the Gemini generateContent request body.

        Args:
            prompt (str): The full prompt, sent as a single user turn.
            json_mode (bool): Sets responseMimeType to application/json.

        Returns:
            dict: {"contents": [...], "generationConfig": {...}}
        """
        generation_config: dict = {"temperature": self.temperature}
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

    ##########################################
    ################# OTHER ##################
    ##########################################

    def _extract_candidate_text(self, response_data: dict) -> str:
        candidates = response_data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    def extract_generate_response(self, response_data: dict) -> str:
        """Join the text parts of the first candidate.

        Raises:
            ValueError: If the response carries no candidate text (e.g. a blocked prompt).
        """
        text = self._extract_candidate_text(response_data)
        if not text:
            reason = (response_data.get("promptFeedback") or {}).get("blockReason")
            raise ValueError("Gemini response contains no text%s." % (f" (blocked: {reason})" if reason else ""))
        return text

    def parse_stream_line(self, line: str) -> StreamEvent | None:
        """Parse one SSE line of streamGenerateContent.

        Each ``data:`` line holds a full GenerateContentResponse chunk. Gemini has no
        done record; the end of the body is the done signal.
        """
        line = line.strip()
        if not line.startswith("data:"):
            return None
        payload = line[len("data:"):].strip()
        if not payload:
            return None
        try:
            chunk = json.loads(payload)
        except ValueError:
            return StreamEvent(kind=StreamEventKind.ERROR, message="Unparseable stream chunk: %s" % payload[:200])
        if not isinstance(chunk, dict):
            return StreamEvent(kind=StreamEventKind.ERROR, message="Unexpected stream chunk: %s" % payload[:200])
        if "error" in chunk:
            error = chunk.get("error") or {}
            return StreamEvent(kind=StreamEventKind.ERROR, message=str(error.get("message") or error))
        text = self._extract_candidate_text(chunk)
        if not text:
            return None
        return StreamEvent(kind=StreamEventKind.TOKEN, text=text)

    def _map_error_response(self, status_code: int, body: str) -> CoachError:
        """Gemini answers 403 for a key without access and 400 API_KEY_INVALID for a bad key."""
        if status_code in (401, 403) or (status_code == 400 and "API_KEY_INVALID" in body):
            return CredentialExpiredError(self.get_service_label(), "API key was rejected")
        return super()._map_error_response(status_code, body)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self, additional_headers: dict | None = None):
        """Gemini model metadata is a GET resource."""
        return await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck(), additional_headers=additional_headers, raise_on_error=True)
