from shared.helper.HelperConfig import HelperConfig
from shared.clients.data.DataClientInterface import DataClientInterface


class DataClientManager:
    """
    Manager class to instantiate the business data client selected by configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the data engine from ENV configuration ("http" when unset).

        Returns:
            str: Capitalised engine name, e.g. "Http".
        """
        engine = self.helper_config.get_string_val("DATA_ENGINE", default="http")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> DataClientInterface:
        """
        Instantiates the data client for the configured engine.

        Raises:
            ValueError: If the engine is unsupported or cannot be imported.
        """
        engine = self._get_engine_from_env()
        class_name = f"DataClient{engine}"
        try:
            module = __import__(
                f"shared.clients.data.{engine.lower()}.{class_name}",
                fromlist=[class_name],
            )
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported data engine specified: '{engine}'. Error: {e}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated data client for engine: %s", engine)
        return client

    def get_client(self) -> DataClientInterface:
        """
        Returns the instantiated data client.
        """
        return self.client
