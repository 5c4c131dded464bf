from shared.clients.data.DataClientInterface import DataClientInterface
from shared.clients.data.models.EntitiesListResponse import EntitiesListResponse
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.entities import EntityType
from shared.models.errors import InvalidBackendResponse


class DataClientHttp(DataClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="http://localhost:3000", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Http"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="http://localhost:3000"),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"X-Api-Key": self._api_key}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/api/rag/health"

    def _get_endpoint_entities(self, entity_type: EntityType, page: int = 1, page_size: int = 200) -> str:
        return f"/api/rag/entities/{entity_type.value}?page={page}&page_size={page_size}"

    ##########################################
    ################ PARSER ##################
    ##########################################

    def _parse_endpoint_entities(self, response: dict, page: int) -> EntitiesListResponse:
        """
        Parses a listing page of the form
        {"results": [...], "next_page": 2 | null, "count": 123}.
        """
        results = response.get("results") if isinstance(response, dict) else None
        if not isinstance(results, list):
            raise InvalidBackendResponse("Data provider page does not contain a 'results' list.")
        next_page = response.get("next_page")
        if next_page is not None and not isinstance(next_page, int):
            raise InvalidBackendResponse(f"Data provider returned an invalid next_page: {next_page!r}")
        count = response.get("count")
        return EntitiesListResponse(
            results=[r for r in results if isinstance(r, dict)],
            currentPage=page,
            nextPage=next_page,
            overallCount=count if isinstance(count, int) else None,
        )
