from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.clients.data.models.EntitiesListResponse import EntitiesListResponse
from shared.helper.HelperConfig import HelperConfig
from shared.models.entities import EntityType
from shared.models.errors import InvalidBackendResponse


class DataClientInterface(ClientInterface):
    """Read-only access to the business entities of the site management application.

    Engines only describe endpoints and page parsing; pagination and error
    conversion live here and in ClientInterface.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.page_size = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_PAGE_SIZE", default=200))
        # a provider still paging after max_pages is treated as broken
        self.max_pages = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_MAX_PAGES", default=1000))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "data"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_entities(self, entity_type: EntityType, page: int = 1, page_size: int = 200) -> str:
        """
        Returns the endpoint path listing all entities of one type, e.g.
        "/api/rag/entities/site?page=1&page_size=200".
        """
        pass

    ##########################################
    ################ PARSER ##################
    ##########################################

    @abstractmethod
    def _parse_endpoint_entities(self, response: dict, page: int) -> EntitiesListResponse:
        """
        Converts a raw entity listing page into an EntitiesListResponse.

        Raises:
            InvalidBackendResponse: If the page does not contain a result list.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_entities(self, entity_type: EntityType) -> list[dict]:
        """Fetch every entity of one type, following pagination.

        Args:
            entity_type (EntityType): The entity type to list.

        Returns:
            list[dict]: Raw entity records, validated later by the indexer.

        Raises:
            BackendUnavailable: If the provider cannot be reached.
            InvalidBackendResponse: If a page is malformed, or pages are still
                pending after DATA_MAX_PAGES (the listing would be incomplete).
        """
        entity_type = EntityType(entity_type)
        entities: list[dict] = []
        page: int | None = 1
        fetched_pages = 0
        while page and fetched_pages < self.max_pages:
            resp = await self.do_request(
                method="GET",
                endpoint=self._get_endpoint_entities(entity_type, page=page, page_size=self.page_size),
            )
            entities_page = self._parse_endpoint_entities(self.parse_json(resp), page=page)
            entities.extend(entities_page.results)
            fetched_pages += 1
            self.logging.debug(
                "Fetched '%s' page %d from %s, total so far: %d of %s",
                entity_type.value, page, self.get_engine_name(), len(entities), entities_page.overallCount,
            )
            page = entities_page.nextPage
        if page:
            # only a complete listing may reach the indexer
            raise InvalidBackendResponse(
                f"Data provider still reports a next page for '{entity_type.value}' after {fetched_pages} pages "
                f"({self.get_client_type().upper()}_MAX_PAGES); refusing an incomplete listing."
            )
        return entities
