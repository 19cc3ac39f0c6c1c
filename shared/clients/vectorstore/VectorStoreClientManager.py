from shared.clients.vectorstore.VectorStoreClientInterface import VectorStoreClientInterface
from shared.clients.vectorstore.exceptions import ConfigurationError
from shared.helper.HelperConfig import HelperConfig


class VectorStoreClientManager:
    """Manager class to instantiate the configured vector store client."""

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """Read the vector store engine name from env configuration.

        Returns:
            str: Capitalised engine name (e.g. "Memory", "Openai").

        Raises:
            ConfigurationError: If VECTORSTORE_ENGINE is not set or empty.
        """
        engine = self.helper_config.get_string_val("VECTORSTORE_ENGINE", default="")
        if not engine:
            raise ConfigurationError("No vector store engine specified in configuration (VECTORSTORE_ENGINE).")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> VectorStoreClientInterface:
        """Instantiate the vector store client for the configured engine.

        Returns:
            VectorStoreClientInterface: The instantiated client.

        Raises:
            ConfigurationError: If the engine is unsupported or misconfigured.
        """
        engine = self._get_engine_from_env()
        class_name = f"VectorStoreClient{engine}"
        try:
            module = __import__(
                f"shared.clients.vectorstore.{engine.lower()}.{class_name}",
                fromlist=[class_name],
            )
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ConfigurationError("Unsupported vector store engine '%s'. Error: %s" % (engine, e))

        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated vector store client for engine: %s", engine)
        return client

    def get_client(self) -> VectorStoreClientInterface:
        """Return the instantiated vector store client."""
        return self.client
