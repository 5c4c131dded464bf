from abc import ABC, abstractmethod
import asyncio

import httpx
from httpx._types import QueryParamTypes
from typing import Any
from shared.models.config import EnvConfig
from shared.models.errors import BackendUnavailable, InvalidBackendResponse

from shared.helper.HelperConfig import HelperConfig


class ClientInterface(ABC):
    """Base class of every outbound HTTP client (LLM backend, business data provider).

    Handles configuration lookup, the shared httpx.AsyncClient lifecycle and a
    bounded retry loop. Every httpx failure is converted into a typed
    BackendUnavailable / InvalidBackendResponse here, so nothing from the
    transport layer leaks to callers.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        client_type = self.get_client_type().upper()
        self.timeout = float(helper_config.get_number_val(f"{client_type}_TIMEOUT", default=30.0))
        self.max_attempts = max(1, int(helper_config.get_number_val(f"{client_type}_MAX_ATTEMPTS", default=3)))
        self.backoff_seconds = float(helper_config.get_number_val(f"{client_type}_BACKOFF_SECONDS", default=0.5))

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
        for config in self._get_required_config():
            _ = self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    def is_booted(self) -> bool:
        return self._client is not None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        """
        Returns the type of the client in lowercase. E.g. "llm"
        """
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "llm"
        """
        pass

    def get_engine_name(self) -> str:
        """
        Returns the name of the engine used by the client. E.g. "ollama"
        """
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        """
        Returns the name of the engine used by the client. E.g. "Ollama"
        """
        pass

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
            str: The full configuration key name for the client. E.g. "LLM_OLLAMA_BASE_URL"
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
        key = self._get_config_key_name(raw_key)
        if val_type == "string":
            return self._helper_config.get_string_val(key, default=default)
        elif val_type == "number":
            return self._helper_config.get_number_val(key, default=default)
        elif val_type == "bool":
            return self._helper_config.get_bool_val(key, default=default)
        elif val_type == "list":
            return self._helper_config.get_list_val(key, default=default)
        else:
            raise ValueError(f"Unsupported config value type '{val_type}' for env key '{raw_key}' in {self.get_client_type().upper()} client '{self.get_engine_name()}'.")

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """
        Returns the authentication header for the backend server, if an API key is set.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_base_url(self) -> str:
        """
        Returns the base URL of the backend server (e.g. "http://localhost:11434").
        """
        pass

    def get_base_url(self) -> str:
        return self._get_base_url()

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        """
        Returns the endpoint path for healthcheck requests (e.g. "/api/tags").
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> httpx.Response:
        """Send a single healthcheck request.

        Returns:
            httpx.Response: The response from the healthcheck request.

        Raises:
            BackendUnavailable: If the backend cannot be reached.
        """
        return await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck(), max_attempts=1)

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self) -> None:
        """Initialise the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _backoff_delay(self, attempt: int) -> float:
        return self.backoff_seconds * (2 ** (attempt - 1))

    async def do_request(
        self,
        method: str = "GET",
        json: dict | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
        raise_on_error: bool = True,
        max_attempts: int | None = None,
    ) -> httpx.Response:
        """Send an HTTP request to the backend with bounded retry.

        Transport errors, timeouts and 5xx answers are retried up to
        max_attempts times with exponential backoff. 4xx answers are not
        retried.

        Args:
            method: HTTP method (GET, POST, ...).
            json: JSON-serialisable body.
            params: URL query parameters.
            endpoint: Path to append to the base URL (leading slash optional).
            additional_headers: Extra headers that override the defaults.
            raise_on_error: Raise BackendUnavailable on a non-2xx final answer.
            max_attempts: Override of the configured attempt count.

        Returns:
            httpx.Response: The last response received.

        Raises:
            BackendUnavailable: If the client is not booted, every attempt failed
                at the transport level, or the final status is not 2xx (when
                raise_on_error is True).
        """
        if self._client is None:
            raise BackendUnavailable(f"{self.get_client_type().upper()} client '{self.get_engine_name()}' is not booted.")

        endpoint = "/" + endpoint.strip().lstrip("/") if endpoint.strip() else ""
        url = f"{self._get_base_url().rstrip('/')}{endpoint}"

        headers: dict = {}
        headers.update(self._get_auth_header())
        if additional_headers:
            headers.update(additional_headers)

        attempts = max_attempts or self.max_attempts
        response: httpx.Response | None = None
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.request(
                    method, url, headers=headers, params=params, json=json, timeout=self.timeout
                )
                last_error = None
            except httpx.TransportError as exc:
                # covers connect errors and timeouts
                response = None
                last_error = exc
                self.logging.warning(
                    "Request %s %s failed (attempt %d/%d): %s",
                    method, url, attempt, attempts, exc.__class__.__name__,
                )
            if response is not None and response.status_code < 500:
                break
            if attempt < attempts:
                await asyncio.sleep(self._backoff_delay(attempt))

        if response is None:
            raise BackendUnavailable(
                f"{self.get_engine_name()} unreachable at {url} after {attempts} attempt(s): {last_error!r}"
            )

        if raise_on_error and not response.is_success:
            self.logging.error(
                "Request to %s failed with status %d: %s",
                url, response.status_code, response.text[:200],
            )
            raise BackendUnavailable(f"Request to {url} failed with status {response.status_code}")

        return response

    def parse_json(self, response: httpx.Response) -> Any:
        """Decode a response body as JSON.

        Raises:
            InvalidBackendResponse: If the body is not valid JSON.
        """
        try:
            return response.json()
        except ValueError as exc:
            raise InvalidBackendResponse(
                f"{self.get_engine_name()} returned a non-JSON body: {exc}"
            )
