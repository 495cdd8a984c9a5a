import importlib

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig


class LLMClientManager:
    """
    Resolves LLM_ENGINE to its completion client, e.g. "gemini" -> shared.clients.llm.gemini.LLMClientGemini.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.engine = helper_config.get_string_val("LLM_ENGINE", default="gemini").strip().lower()
        self.client = self._load_client(self.engine)

    def _load_client(self, engine: str) -> LLMClientInterface:
        """
        Imports and instantiates the client class of an engine.

        Raises:
            ValueError: If no client exists for the engine.
        """
        if not engine:
            raise ValueError("No LLM engine specified in configuration (LLM_ENGINE).")
        class_name = f"LLMClient{engine.capitalize()}"
        try:
            module = importlib.import_module(f"shared.clients.llm.{engine}.{class_name}")
        except ImportError as e:
            raise ValueError("Unsupported LLM engine '%s': %s" % (engine, e)) from e
        client_class = getattr(module, class_name, None)
        if client_class is None:
            raise ValueError("Module for LLM engine '%s' defines no %s" % (engine, class_name))

        client = client_class(helper_config=self.helper_config)
        self.logging.info("LLM engine '%s' ready (chat model: %s, judge model: %s)", engine, client.chat_model, client.judge_model)
        return client

    def get_client(self) -> LLMClientInterface:
        return self.client
