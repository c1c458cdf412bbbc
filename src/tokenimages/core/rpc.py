import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import aiohttp

from tokenimages import LOGGER_NAME
from tokenimages.core.stats import StatsService

JSON_RPC_VERSION = "2.0"
REQUEST_ID = 1


class RpcError(Exception):
    pass


class RpcTransportError(RpcError):
    pass


class RpcClientError(RpcError):
    pass


class RpcDecodeError(RpcError):
    pass


class RpcResponseError(RpcError):
    pass


class RpcServerError(RpcError):
    def __init__(self, rpc_version, request_id, error_code, error_message) -> None:
        super().__init__(f"RPC {rpc_version} - Req {request_id} - {error_code}: {error_message}")
        self.__rpc_version = rpc_version
        self.__request_id = request_id
        self.__error_code = error_code
        self.__error_message = error_message

    @property
    def rpc_version(self):
        return self.__rpc_version

    @property
    def request_id(self):
        return self.__request_id

    @property
    def error_code(self):
        return self.__error_code

    @property
    def error_message(self):
        return self.__error_message


class RpcEndpointsExhaustedError(RpcError):
    def __init__(self, errors: List[Exception]) -> None:
        super().__init__(f"All RPC endpoints failed after {len(errors)} attempts")
        self.__errors = errors[:]

    @property
    def errors(self) -> List[Exception]:
        return self.__errors[:]


async def first_success(attempts: Sequence[Callable[[], Awaitable[Any]]]) -> Any:
    """
    Await each attempt in order and return the result of the first one that does not
    raise an exception. Later attempts are never started once one succeeds.

    :param attempts: Ordered zero-argument callables returning awaitables, usually one
        per RPC endpoint.
    :raises RpcEndpointsExhaustedError: when every attempt failed. The individual
        errors are available in its `errors` property.
    """
    errors: List[Exception] = []
    for attempt in attempts:
        try:
            return await attempt()
        except Exception as e:
            logging.getLogger(LOGGER_NAME).debug(f"RPC attempt failed -- {repr(e)}")
            errors.append(e)
    raise RpcEndpointsExhaustedError(errors)


class RpcClient:
    """
    JSON-RPC 2.0 client sending each request as an HTTP POST to a single provider.
    Requests must be sent from within the async context manager of the client.

    :param provider_url: HTTP(S) URL of the RPC provider
    :param stats_service: Service recording request statistics
    :param request_timeout: Total seconds allowed per request. The transport default
        applies when not provided.
    """

    STAT_REQUEST_SENT = "rpc.request-sent"
    STAT_REQUEST_MS = "rpc.request-ms"
    STAT_RESPONSE_RECEIVED = "rpc.response-received"
    STAT_RESPONSE_FAILED = "rpc.response-failed"

    def __init__(
        self,
        provider_url: str,
        stats_service: StatsService,
        request_timeout: Optional[float] = None,
    ) -> None:
        self._stats_service = stats_service
        self.__provider_url = provider_url
        self.__request_timeout = request_timeout
        self.__session: Optional[aiohttp.ClientSession] = None

    @property
    def provider_url(self) -> str:
        return self.__provider_url

    async def __aenter__(self):
        if self.__request_timeout is None:
            self.__session = aiohttp.ClientSession()
        else:
            self.__session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.__request_timeout)
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.__session is not None:
            await self.__session.close()
        self.__session = None

    @staticmethod
    def _get_rpc_request(method, params) -> Dict[str, Any]:
        return {
            "jsonrpc": JSON_RPC_VERSION,
            "method": method,
            "params": list(params),
            "id": REQUEST_ID,
        }

    async def send(self, method, *params) -> Any:
        """
        Send an RPC request and return the `result` member of the response.

        :raises RpcTransportError: the request could not be delivered
        :raises RpcDecodeError: the response body is not a JSON object
        :raises RpcServerError: the response carries an `error` member
        :raises RpcResponseError: the response has no truthy `result`
        """
        if self.__session is None:
            raise RpcClientError("Requests must be sent using a context manager instance!")

        request = self._get_rpc_request(method, params)
        self._stats_service.increment(self.STAT_REQUEST_SENT)
        self._stats_service.increment(f"{self.STAT_REQUEST_SENT}.{method}")
        try:
            with self._stats_service.ms_counter(self.STAT_REQUEST_MS):
                response = await self.__post(request)
            self._stats_service.increment(self.STAT_RESPONSE_RECEIVED)
            return self.__get_result(response)
        except RpcError:
            self._stats_service.increment(self.STAT_RESPONSE_FAILED)
            raise

    async def __post(self, request: Dict[str, Any]) -> Any:
        try:
            async with self.__session.post(self.__provider_url, json=request) as response:
                # Status and content type are ignored, only the body is inspected
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RpcTransportError(
                f"Error sending {request['method']} to {self.__provider_url}: {repr(e)}"
            ) from e
        except ValueError as e:
            raise RpcDecodeError(
                f"Invalid JSON response from {self.__provider_url}: {repr(e)}"
            ) from e

    def __get_result(self, response: Any) -> Any:
        if not isinstance(response, dict):
            raise RpcDecodeError(f"Response is not a JSON object: {response}")

        if response.get("result"):
            return response["result"]

        error = response.get("error")
        if isinstance(error, dict):
            raise RpcServerError(
                response.get("jsonrpc"),
                response.get("id"),
                error.get("code"),
                error.get("message"),
            )

        raise RpcResponseError(f"No usable result in response from {self.__provider_url}")
