"""EVM specific RPC Clients"""

import functools
from typing import Any, List, Optional, Union

from .abi import decode_string, encode_call_data
from .types import Erc721MetadataFunctions, Function
from ..core.rpc import (
    RpcClient,
    RpcDecodeError,
    RpcEndpointsExhaustedError,
    first_success,
)
from ..core.stats import StatsService
from ..core.types import Address


class EthCall:
    """
    Python representation of the properties of an eth_call to execute a function for a
    smart contract on an Ethereum Virtual Machine (EVM)

    :param from_: Address from which a transaction would originate. This is optional for
        view function calls and is left out of the request when None.
    :param to:  Address of the contract whose function you will be calling.
    :param function: The function class representation of the contract function
    :param parameters: The list of ordered function parameters to send
    :param block: The block height or block tag at which to execute the function
    """

    def __init__(
        self,
        from_: Optional[str],
        to: str,
        function: Function,
        parameters: Optional[list] = None,
        block: Union[int, str] = "latest",
    ):
        self.__from = from_
        self.__to = to
        self.__function = function
        self.__parameters = [] if parameters is None else parameters.copy()
        self.__block = hex(block) if isinstance(block, int) else block

    def __repr__(self) -> str:  # pragma: no cover
        return (
            str(self.__class__)
            + {
                "from": self.__from,
                "to": self.__to,
                "function": self.__function,
                "parameters": self.__parameters,
                "block": self.__block,
            }.__repr__()
        )

    def __eq__(self, other):
        return (
            isinstance(other, self.__class__)
            and self.from_ == other.from_
            and self.to == other.to
            and self.function == other.function
            and self.parameters == other.parameters
            and self.block == other.block
        )

    @property
    def from_(self):
        return self.__from

    @property
    def to(self):
        return self.__to

    @property
    def function(self):
        return self.__function

    @property
    def parameters(self):
        return self.__parameters.copy()

    @property
    def block(self):
        return self.__block


class EvmRpcClient(RpcClient):
    """RPC Client for EVM RPC calls"""

    STAT_CALL = "rpc.eth.call"
    """Stat name for counts of `eth_call` RPC calls"""

    async def call(self, request: EthCall) -> Optional[str]:
        """
        Call a function returning a single `string` on a smart contract via
        `eth_call <https://ethereum.org/en/developers/docs/apis/json-rpc/#eth_call>`_

        :param request: Object representation of the call

        :returns: The decoded string or None when the contract returned no value.

        :raises RpcDecodeError: the function does not return a single string or the
            response could not be decoded
        """
        if request.function.return_types != ["string"]:
            raise RpcDecodeError(
                f"Unsupported return types for {request.function.description}: "
                f"{request.function.return_types}"
            )

        call_object = {
            "to": request.to,
            "data": encode_call_data(request.function, *request.parameters),
        }
        if request.from_ is not None:
            call_object["from"] = request.from_

        self._stats_service.increment(self.STAT_CALL)
        result = await self.send("eth_call", call_object, request.block)

        try:
            return decode_string(result)
        except Exception as e:
            raise RpcDecodeError("Response Decode Error", e)

    async def get_token_uri(
        self, contract: Address, token_id: int, block: Union[int, str] = "latest"
    ) -> Optional[str]:
        """Get the metadata URI of an ERC-721 token via `tokenURI(uint256)`"""
        return await self.call(
            EthCall(
                from_=None,
                to=contract,
                function=Erc721MetadataFunctions.TOKEN_URI,
                parameters=[token_id],
                block=block,
            )
        )


class FallbackEvmRpcClient(EvmRpcClient):
    """
    EVM RPC Client delivering every request to a list of RPC clients in a fixed
    order. The first client returning a result wins and the remaining clients are not
    tried. When every client fails, RpcEndpointsExhaustedError is raised.

    :param clients: Ordered list of RPC clients, one per endpoint
    :param stats_service: Service recording request statistics
    """

    STAT_ENDPOINTS_EXHAUSTED = "rpc.endpoints-exhausted"

    # noinspection PyMissingConstructor
    def __init__(self, clients: List[RpcClient], stats_service: StatsService) -> None:
        self._stats_service = stats_service
        self.__clients = clients[:]

    async def __aenter__(self):
        for client in self.__clients:
            await client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        for client in self.__clients:
            await client.__aexit__(exc_type, exc_val, exc_tb)

    async def send(self, method, *params) -> Any:
        try:
            return await first_success(
                [functools.partial(client.send, method, *params) for client in self.__clients]
            )
        except RpcEndpointsExhaustedError:
            self._stats_service.increment(self.STAT_ENDPOINTS_EXHAUSTED)
            raise
