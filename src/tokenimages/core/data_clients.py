import abc
import asyncio
import base64
import json
import re
from re import Pattern
from typing import Any, Optional
from urllib.parse import unquote

import aiohttp

from tokenimages.core.stats import StatsService


class ProtocolError(Exception):
    pass


class UnsupportedProtocolError(ProtocolError):
    pass


class ProtocolTimeoutError(ProtocolError):
    pass


class ResourceNotFoundProtocolError(ProtocolError):
    pass


class InvalidRequestProtocolError(ProtocolError):
    pass


class InvalidDocumentProtocolError(ProtocolError):
    pass


_STATUS_ERRORS = {
    400: InvalidRequestProtocolError,
    404: ResourceNotFoundProtocolError,
}


def _parse_json(data, uri: str) -> Any:
    try:
        return json.loads(data)
    except ValueError as e:
        raise InvalidDocumentProtocolError(f"Data for URI {uri} is not valid JSON: {e}")


class DataClient(abc.ABC):
    @abc.abstractmethod
    async def get_json(self, uri: str) -> Any:
        """
        Get the data from the URI and return it parsed as a JSON document
        """
        raise NotImplementedError


class HttpDataClient(DataClient):
    STAT_GET = "http_client_get"
    STAT_GET_MS = "http_client_get_ms"

    def __init__(
        self,
        request_timeout: Optional[float],
        stats_service: StatsService,
    ) -> None:
        self.__timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._stats_service = stats_service

    async def get_json(self, uri: str) -> Any:
        with self._stats_service.ms_counter(self.STAT_GET_MS):
            async with aiohttp.ClientSession(timeout=self.__timeout) as session:
                try:
                    async with session.get(uri) as response:
                        response.raise_for_status()
                        data = await response.read()

                except asyncio.TimeoutError:
                    raise ProtocolTimeoutError(
                        f"No response for URI {uri} within {self.__timeout.total} seconds"
                    )
                except aiohttp.ClientResponseError as e:
                    error_class = _STATUS_ERRORS.get(e.status, ProtocolError)
                    raise error_class(f"HTTP {e.status} for URI {uri}: {e.message}") from e
                except aiohttp.ClientError as e:
                    raise ProtocolError(f"Unable to get URI {uri}: {repr(e)}") from e
                finally:
                    self._stats_service.increment(self.STAT_GET)
        return _parse_json(data, uri)


class UriTranslatingDataClient(HttpDataClient):
    """
    HTTP data client for URI schemes served through an HTTP gateway. The first group
    of `regex_pattern` is appended to `base_uri` to build the HTTP URI.
    """

    def __init__(
        self,
        base_uri: str,
        regex_pattern: Pattern,
        request_timeout: Optional[float],
        stats_service: StatsService,
    ) -> None:
        super(UriTranslatingDataClient, self).__init__(
            request_timeout=request_timeout,
            stats_service=stats_service,
        )
        self.__base_uri: str = base_uri
        self.__regex_pattern: Pattern = regex_pattern

    def handles(self, uri: str) -> bool:
        return self.__regex_pattern.fullmatch(uri) is not None

    def translate(self, uri: str) -> str:
        match = self.__regex_pattern.fullmatch(uri)
        if not match:
            raise UnsupportedProtocolError(f"URI {uri} is not supported by this client")
        return f"{self.__base_uri}{match.group(1)}"

    async def get_json(self, uri: str) -> Any:
        return await super().get_json(self.translate(uri))


class IpfsDataClient(UriTranslatingDataClient):
    STAT_GET = "ipfs_client_get"
    STAT_GET_MS = "ipfs_client_get_ms"
    URI_REGEX = re.compile(r"^ipfs://(.*)$", re.DOTALL)

    def __init__(
        self,
        gateway_uri: str,
        request_timeout: Optional[float],
        stats_service: StatsService,
    ) -> None:
        super(IpfsDataClient, self).__init__(
            base_uri=f"{gateway_uri}/ipfs/",
            regex_pattern=self.URI_REGEX,
            request_timeout=request_timeout,
            stats_service=stats_service,
        )


class DataUriDataClient(DataClient):
    STAT_GET = "data_uri_client_get"
    URI_REGEX = re.compile(
        r"^data:(?P<mime_type>[^,;]+)?(?:;(?P<encoding>base64))?,(?P<data>.*)", re.DOTALL
    )

    def __init__(self, stats_service: StatsService) -> None:
        self.__stats_service = stats_service

    async def get_json(self, uri: str) -> Any:
        match = self.URI_REGEX.match(uri)
        if not match:
            raise ProtocolError(f"Invalid Data URI: {uri}")
        encoding = match.group("encoding")
        data = match.group("data")
        self.__stats_service.increment(self.STAT_GET)
        if encoding == "base64":
            try:
                decoded = base64.b64decode(data)
            except ValueError as e:
                raise ProtocolError(f"Data URI data not base64 encoded: {uri}") from e
        else:
            decoded = unquote(data, errors="strict").encode("utf8")
        return _parse_json(decoded, uri)


class MetadataDataClient(DataClient):
    """
    Data client choosing the protocol for token metadata URIs by prefix. Inline JSON
    data URIs are checked first, then IPFS, and anything else is fetched over HTTP.

    :param http_client: Client for plain HTTP(S) URIs
    :param ipfs_client: Client for `ipfs://` URIs, also used to translate IPFS image
        URIs into gateway URLs
    :param data_uri_client: Client for inline `data:` URIs
    """

    BASE64_JSON_PREFIX = "data:application/json;base64,"
    JSON_PREFIX = "data:application/json,"

    def __init__(
        self,
        http_client: HttpDataClient,
        ipfs_client: IpfsDataClient,
        data_uri_client: DataUriDataClient,
    ) -> None:
        self.__http_client = http_client
        self.__ipfs_client = ipfs_client
        self.__data_uri_client = data_uri_client

    async def get_json(self, uri: str) -> Any:
        if uri.startswith(self.BASE64_JSON_PREFIX) or uri.startswith(self.JSON_PREFIX):
            return await self.__data_uri_client.get_json(uri)
        elif self.__ipfs_client.handles(uri):
            return await self.__ipfs_client.get_json(uri)
        else:
            return await self.__http_client.get_json(uri)

    def translate_image_uri(self, uri: str) -> str:
        """Rewrite an `ipfs://` URI to its gateway URL. Other URIs are returned as-is."""
        if self.__ipfs_client.handles(uri):
            return self.__ipfs_client.translate(uri)
        return uri
