import unittest
from unittest import TestCase
from unittest.mock import AsyncMock, MagicMock, patch

from eth_abi import encode
from hexbytes import HexBytes

from tokenimages.core.rpc import (
    RpcClient,
    RpcDecodeError,
    RpcEndpointsExhaustedError,
    RpcServerError,
    RpcTransportError,
)
from tokenimages.core.stats import StatsService
from tokenimages.core.types import Address
from tokenimages.evm.rpc import EthCall, EvmRpcClient, FallbackEvmRpcClient
from tokenimages.evm.types import Erc721MetadataFunctions, Function

CONTRACT = Address("0x9eb6e2025b64f340691e424b7fe7022ffde12438")


class EthCallTestCase(TestCase):
    def test_equal_calls_are_equal(self):
        self.assertEqual(
            EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1], "latest"),
            EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1], "latest"),
        )

    def test_calls_with_different_parameters_are_not_equal(self):
        self.assertNotEqual(
            EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1]),
            EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [2]),
        )

    def test_int_block_is_converted_to_hex(self):
        call = EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1], 16_000_000)
        self.assertEqual("0xf42400", call.block)

    def test_block_defaults_to_latest(self):
        call = EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1])
        self.assertEqual("latest", call.block)

    def test_parameters_are_copied(self):
        parameters = [1]
        call = EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, parameters)
        parameters.append(2)
        self.assertEqual([1], call.parameters)


class EvmRpcClientTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.__stats_service = MagicMock(StatsService)
        self.__rpc_client = EvmRpcClient("https://rpc", self.__stats_service)
        patcher = patch.object(self.__rpc_client, "send", new=AsyncMock())
        self.__send = patcher.start()
        self.addAsyncCleanup(patcher.stop)  # type: ignore
        self.__send.return_value = "0x" + encode(["string"], ["ipfs://hash/1"]).hex()

    async def test_sends_eth_call_with_call_object_and_block(self):
        await self.__rpc_client.call(
            EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1], "0x10")
        )
        self.__send.assert_awaited_once_with(
            "eth_call",
            {"to": CONTRACT, "data": "0xc87b56dd" + "0" * 63 + "1"},
            "0x10",
        )

    async def test_includes_from_when_provided(self):
        sender = "0x0000000000000000000000000000000000000001"
        await self.__rpc_client.call(
            EthCall(sender, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1])
        )
        self.assertEqual(sender, self.__send.call_args.args[1]["from"])

    async def test_omits_from_when_not_provided(self):
        await self.__rpc_client.call(
            EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1])
        )
        self.assertNotIn("from", self.__send.call_args.args[1])

    async def test_returns_decoded_string(self):
        actual = await self.__rpc_client.call(
            EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1])
        )
        self.assertEqual("ipfs://hash/1", actual)

    async def test_returns_none_when_contract_returns_no_data(self):
        self.__send.return_value = "0x"
        actual = await self.__rpc_client.call(
            EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1])
        )
        self.assertIsNone(actual)

    async def test_raises_decode_error_when_result_cannot_be_decoded(self):
        self.__send.return_value = "0x" + "0" * 62 + "20" + "0" * 63 + "1" + "ff" + "0" * 62
        with self.assertRaises(RpcDecodeError):
            await self.__rpc_client.call(
                EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1])
            )

    async def test_raises_decode_error_for_unsupported_return_types(self):
        function = Function(
            HexBytes("0x18160ddd"), "totalSupply()->(uint256)", [], ["uint256"], True
        )
        with self.assertRaises(RpcDecodeError):
            await self.__rpc_client.call(EthCall(None, CONTRACT, function))
        self.__send.assert_not_called()

    async def test_propagates_rpc_errors(self):
        self.__send.side_effect = RpcServerError("2.0", 1, 3, "execution reverted")
        with self.assertRaises(RpcServerError):
            await self.__rpc_client.call(
                EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1])
            )

    async def test_increments_call_stat(self):
        await self.__rpc_client.call(
            EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [1])
        )
        self.__stats_service.increment.assert_called_once_with(EvmRpcClient.STAT_CALL)

    async def test_get_token_uri_calls_token_uri_at_block(self):
        with patch.object(self.__rpc_client, "call", new=AsyncMock()) as call_patch:
            call_patch.return_value = "expected"
            actual = await self.__rpc_client.get_token_uri(CONTRACT, 12, "0x20")
        call_patch.assert_awaited_once_with(
            EthCall(None, CONTRACT, Erc721MetadataFunctions.TOKEN_URI, [12], "0x20")
        )
        self.assertEqual("expected", actual)


class FallbackEvmRpcClientTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.__stats_service = MagicMock(StatsService)
        self.__clients = [AsyncMock(RpcClient), AsyncMock(RpcClient), AsyncMock(RpcClient)]
        for index, client in enumerate(self.__clients):
            client.send.return_value = f"result {index}"
        self.__rpc_client = FallbackEvmRpcClient(self.__clients, self.__stats_service)

    async def test_enters_and_exits_all_clients(self):
        async with self.__rpc_client as rpc_client:
            self.assertIs(self.__rpc_client, rpc_client)
        for client in self.__clients:
            client.__aenter__.assert_awaited_once()
            client.__aexit__.assert_awaited_once_with(None, None, None)

    async def test_returns_first_client_result_without_trying_others(self):
        actual = await self.__rpc_client.send("eth_call", {"to": CONTRACT}, "latest")
        self.assertEqual("result 0", actual)
        self.__clients[0].send.assert_awaited_once_with("eth_call", {"to": CONTRACT}, "latest")
        self.__clients[1].send.assert_not_called()
        self.__clients[2].send.assert_not_called()

    async def test_falls_back_in_order(self):
        self.__clients[0].send.side_effect = RpcTransportError("Burn")
        self.__clients[1].send.side_effect = RpcServerError("2.0", 1, 3, "execution reverted")
        actual = await self.__rpc_client.send("eth_call")
        self.assertEqual("result 2", actual)

    async def test_raises_exhausted_error_when_all_clients_fail(self):
        errors = [RpcTransportError("0"), RpcTransportError("1"), RpcDecodeError("2")]
        for client, error in zip(self.__clients, errors):
            client.send.side_effect = error
        with self.assertRaises(RpcEndpointsExhaustedError) as context:
            await self.__rpc_client.send("eth_call")
        self.assertEqual(errors, context.exception.errors)
        self.__stats_service.increment.assert_called_once_with(
            FallbackEvmRpcClient.STAT_ENDPOINTS_EXHAUSTED
        )

    async def test_get_token_uri_decodes_result_of_fallback_client(self):
        self.__clients[0].send.side_effect = RpcTransportError("Burn")
        self.__clients[1].send.return_value = "0x" + encode(["string"], ["https://uri"]).hex()
        actual = await self.__rpc_client.get_token_uri(CONTRACT, 1)
        self.assertEqual("https://uri", actual)
