from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import RAGError


class LLMClientInterface(ClientInterface):
    """Embedding and text-generation backend.

    Exposes the four capabilities the RAG core needs: health, list_models,
    embed and generate. Engines implement endpoints, payload builders and
    response extractors only.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # embedding config
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default="nomic-embed-text:latest")
        self.embed_model_max_chars = helper_config.get_number_val(f"{self.get_client_type().upper()}_MODEL_MAX_CHARS", default=8000)

        # generation config
        self.chat_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_CHAT_MODEL", default="llama3.2:3b")
        self.temperature = float(helper_config.get_number_val(f"{self.get_client_type().upper()}_TEMPERATURE", default=0.7))
        self.max_tokens = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_MAX_TOKENS", default=1000))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "llm"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_models(self) -> str:
        """Returns the endpoint path for model listing requests (e.g. "/api/tags")."""
        pass

    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """Returns the endpoint path for embedding requests (e.g. "/api/embed")."""
        pass

    @abstractmethod
    def _get_endpoint_generate(self) -> str:
        """Returns the endpoint path for prompt completion requests (e.g. "/api/generate")."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, text: str) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            text (str): The text to embed, already truncated to embed_model_max_chars.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    @abstractmethod
    def get_generate_payload(self, prompt: str, temperature: float, max_tokens: int) -> dict:
        """Build the backend-specific request body for a prompt completion.

        Args:
            prompt (str): The full prompt.
            temperature (float): Sampling temperature.
            max_tokens (int): Maximum number of generated tokens.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_models_from_response(self, response_data: dict) -> list[str]:
        """Extract model names from a model listing response.

        Raises:
            InvalidBackendResponse: If the payload has no model list.
        """
        pass

    @abstractmethod
    def extract_embedding_from_response(self, response_data: dict) -> list[float]:
        """Extract the single embedding vector from a raw embedding response.

        Raises:
            InvalidBackendResponse: If the response does not contain a valid vector.
        """
        pass

    @abstractmethod
    def extract_generated_text(self, response_data: dict) -> str:
        """Extract the generated text from a raw completion response.

        Raises:
            InvalidBackendResponse: If the response does not contain text.
        """
        pass

    def has_required_models(self, models: list[str]) -> bool:
        """Whether both the embedding and the chat model are installed.

        Names without a tag match their ":latest" variant.
        """
        def _norm(name: str) -> str:
            return name if ":" in name else f"{name}:latest"

        available = {_norm(m) for m in models}
        return _norm(self.embed_model) in available and _norm(self.chat_model) in available

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def health(self) -> bool:
        """Check backend reachability. Never raises.

        Returns:
            bool: True if the backend answered the healthcheck with a 2xx status.
        """
        try:
            response = await self.do_healthcheck()
            return response.is_success
        except RAGError as exc:
            self.logging.warning("LLM backend '%s' healthcheck failed: %s", self.get_engine_name(), exc)
            return False

    async def list_models(self) -> list[str]:
        """Fetch the names of the models installed on the backend.

        Raises:
            BackendUnavailable: If the backend cannot be reached.
            InvalidBackendResponse: If the model list is malformed.
        """
        response = await self.do_request(method="GET", endpoint=self._get_endpoint_models())
        return self.extract_models_from_response(self.parse_json(response))

    async def embed(self, text: str) -> list[float]:
        """Compute the embedding of a single text.

        Args:
            text (str): The text to embed.

        Returns:
            list[float]: The embedding vector.

        Raises:
            BackendUnavailable: On network errors, timeouts or non-2xx answers.
            InvalidBackendResponse: If the payload does not contain a usable vector.
        """
        if self.embed_model_max_chars and len(text) > self.embed_model_max_chars:
            text = text[: int(self.embed_model_max_chars)]
        body = self.get_embed_payload(text)
        response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body)
        return self.extract_embedding_from_response(self.parse_json(response))

    async def generate(self, prompt: str, options: dict | None = None) -> str:
        """Generate text from a prompt.

        Args:
            prompt (str): The full prompt.
            options (dict | None): Optional overrides: "temperature", "max_tokens".

        Returns:
            str: The generated text.

        Raises:
            BackendUnavailable: On network errors, timeouts or non-2xx answers.
            InvalidBackendResponse: If the payload does not contain text.
        """
        options = options or {}
        body = self.get_generate_payload(
            prompt,
            temperature=float(options.get("temperature", self.temperature)),
            max_tokens=int(options.get("max_tokens", self.max_tokens)),
        )
        self.logging.debug("Sending prompt to '%s' (model=%s, %d chars)", self.get_engine_name(), body.get("model"), len(prompt))
        response = await self.do_request(method="POST", endpoint=self._get_endpoint_generate(), json=body)
        return self.extract_generated_text(self.parse_json(response))

