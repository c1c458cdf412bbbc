import logging
from typing import Optional, Union

from tokenimages import LOGGER_NAME
from tokenimages.core.data_clients import MetadataDataClient
from tokenimages.core.stats import StatsService
from tokenimages.core.types import Address
from tokenimages.evm.rpc import EvmRpcClient
from tokenimages.nft.entities import Resolved, ResolutionOutcome, Unresolved


class TokenImageResolver:
    """
    Resolve the image URL of a token in a collection: read the token URI from the
    contract, load the metadata document it points to, and take its `image` or
    `image_url` field. IPFS image URIs are rewritten to gateway URLs.

    Resolution never raises. Any error becomes an `Unresolved` outcome carrying the
    exception so a later run can try the token again.
    """

    STAT_RESOLVED = "resolver.resolved"
    STAT_UNRESOLVED = "resolver.unresolved"
    STAT_ERROR = "resolver.error"

    def __init__(
        self,
        rpc_client: EvmRpcClient,
        contract_address: Address,
        data_client: MetadataDataClient,
        stats_service: StatsService,
        block: Union[int, str] = "latest",
    ) -> None:
        self.__rpc_client = rpc_client
        self.__contract_address = contract_address
        self.__data_client = data_client
        self.__stats_service = stats_service
        self.__block = block
        self.__logger = logging.getLogger(LOGGER_NAME)

    async def resolve(self, token_id: int) -> ResolutionOutcome:
        try:
            image_url = await self.__get_image_url(token_id)
        except Exception as e:
            self.__stats_service.increment(self.STAT_ERROR)
            self.__logger.debug(f"Unable to resolve image for Token ID {token_id} -- {repr(e)}")
            return Unresolved(token_id, e)

        if not image_url:
            self.__stats_service.increment(self.STAT_UNRESOLVED)
            return Unresolved(token_id)

        self.__stats_service.increment(self.STAT_RESOLVED)
        return Resolved(token_id, image_url)

    async def __get_image_url(self, token_id: int) -> Optional[str]:
        token_uri = await self.__rpc_client.get_token_uri(
            self.__contract_address, token_id, self.__block
        )
        if not token_uri:
            return None

        metadata = await self.__data_client.get_json(token_uri)
        if not isinstance(metadata, dict):
            raise ValueError(f"Metadata for Token ID {token_id} is not a JSON object")

        image = metadata.get("image") or metadata.get("image_url") or ""
        if not isinstance(image, str):
            raise ValueError(f"Image for Token ID {token_id} is not a string: {image}")

        return self.__data_client.translate_image_uri(image)
