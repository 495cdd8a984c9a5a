import importlib

from shared.clients.dms.DMSClientInterface import DMSClientInterface
from shared.helper.HelperConfig import HelperConfig


class DMSClientManager:
    """
    Resolves DMS_ENGINE to its Document Store client, e.g. "dropbox" -> shared.clients.dms.dropbox.DMSClientDropbox.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.engine = helper_config.get_string_val("DMS_ENGINE", default="dropbox").strip().lower()
        self.client = self._load_client(self.engine)

    def _load_client(self, engine: str) -> DMSClientInterface:
        """
        Imports and instantiates the client class of an engine.

        Raises:
            ValueError: If no client exists for the engine.
        """
        if not engine:
            raise ValueError("No Document Store engine specified in configuration (DMS_ENGINE).")
        class_name = f"DMSClient{engine.capitalize()}"
        try:
            module = importlib.import_module(f"shared.clients.dms.{engine}.{class_name}")
        except ImportError as e:
            raise ValueError("Unsupported DMS engine '%s': %s" % (engine, e)) from e
        client_class = getattr(module, class_name, None)
        if client_class is None:
            raise ValueError("Module for DMS engine '%s' defines no %s" % (engine, class_name))

        client = client_class(helper_config=self.helper_config)
        self.logging.info("DMS engine '%s' ready (file types: %s)", engine, ", ".join(client.file_extensions))
        return client

    def get_client(self) -> DMSClientInterface:
        return self.client
