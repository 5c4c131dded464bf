from numbers import Real

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import InvalidBackendResponse


class LLMClientOllama(LLMClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="http://localhost:11434", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Ollama"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="http://localhost:11434"),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        # the tag listing is cheap and proves the API (not just the port) is up
        return "/api/tags"

    def _get_endpoint_models(self) -> str:
        return "/api/tags"

    def get_endpoint_embedding(self) -> str:
        return "/api/embed"

    def _get_endpoint_generate(self) -> str:
        return "/api/generate"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, text: str) -> dict:
        """Build the Ollama embedding request body.

        Returns:
            dict: {"model": "...", "input": ["..."]}
        """
        return {"model": self.embed_model, "input": [text]}

    def get_generate_payload(self, prompt: str, temperature: float, max_tokens: int) -> dict:
        """Build the Ollama /api/generate request body (non-streaming)."""
        return {
            "model": self.chat_model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_models_from_response(self, response_data: dict) -> list[str]:
        models = response_data.get("models") if isinstance(response_data, dict) else None
        if not isinstance(models, list):
            raise InvalidBackendResponse("Ollama model listing does not contain a 'models' list.")
        return [m["name"] for m in models if isinstance(m, dict) and m.get("name")]

    def extract_embedding_from_response(self, response_data: dict) -> list[float]:
        """Extract the embedding vector from an Ollama /api/embed response.

        Args:
            response_data (dict): {"embeddings": [[...]]}

        Returns:
            list[float]: The first (and only) vector.

        Raises:
            InvalidBackendResponse: If the vector is missing, empty or not numeric.
        """
        embeddings = response_data.get("embeddings") if isinstance(response_data, dict) else None
        if not embeddings or not isinstance(embeddings, list) or not embeddings[0]:
            keys = list(response_data.keys()) if isinstance(response_data, dict) else type(response_data).__name__
            raise InvalidBackendResponse(
                "Ollama response does not contain valid embeddings. Response keys: %s" % keys
            )
        vector = embeddings[0]
        if not isinstance(vector, list) or not all(isinstance(v, Real) and not isinstance(v, bool) for v in vector):
            raise InvalidBackendResponse("Ollama embedding is not a list of numbers.")
        return [float(v) for v in vector]

    def extract_generated_text(self, response_data: dict) -> str:
        """Extract the generated text from an Ollama /api/generate response.

        Raises:
            InvalidBackendResponse: If the response does not contain a text.
        """
        text = response_data.get("response") if isinstance(response_data, dict) else None
        if not isinstance(text, str):
            keys = list(response_data.keys()) if isinstance(response_data, dict) else type(response_data).__name__
            raise InvalidBackendResponse(
                "Ollama generate response does not contain a text. Response keys: %s" % keys
            )
        return text.strip()
