import dataclasses
import logging

from tokenimages.core.data_clients import DataUriDataClient, HttpDataClient, IpfsDataClient
from tokenimages.core.rpc import RpcClient
from tokenimages.core.stats import StatsService, _safe_average
from tokenimages.evm.rpc import EvmRpcClient, FallbackEvmRpcClient
from tokenimages.nft.prefetch import STAT_CHUNK_WRITE, STAT_CHUNK_WRITE_MS
from tokenimages.nft.resolver import TokenImageResolver


@dataclasses.dataclass
class Config:
    stats_service: StatsService
    logger: logging.Logger


def get_prefetch_stat_line(stats_service: StatsService) -> str:
    rpc_sent = stats_service.get_count(RpcClient.STAT_REQUEST_SENT)
    rpc_failed = stats_service.get_count(RpcClient.STAT_RESPONSE_FAILED)
    rpc_exhausted = stats_service.get_count(FallbackEvmRpcClient.STAT_ENDPOINTS_EXHAUSTED)
    rpc_received = stats_service.get_count(RpcClient.STAT_RESPONSE_RECEIVED)
    rpc_request_ms = stats_service.get_count(RpcClient.STAT_REQUEST_MS)
    rpc_request_ms_avg = _safe_average(rpc_sent, rpc_request_ms)
    eth_calls = stats_service.get_count(EvmRpcClient.STAT_CALL)
    http_count = stats_service.get_count(HttpDataClient.STAT_GET)
    http_ms = stats_service.get_count(HttpDataClient.STAT_GET_MS)
    http_ms_avg = _safe_average(http_count, http_ms)
    ipfs_count = stats_service.get_count(IpfsDataClient.STAT_GET)
    ipfs_ms = stats_service.get_count(IpfsDataClient.STAT_GET_MS)
    ipfs_ms_avg = _safe_average(ipfs_count, ipfs_ms)
    data_uri_count = stats_service.get_count(DataUriDataClient.STAT_GET)
    resolved = stats_service.get_count(TokenImageResolver.STAT_RESOLVED)
    unresolved = stats_service.get_count(TokenImageResolver.STAT_UNRESOLVED)
    errors = stats_service.get_count(TokenImageResolver.STAT_ERROR)
    write_count = stats_service.get_count(STAT_CHUNK_WRITE)
    write_ms = stats_service.get_count(STAT_CHUNK_WRITE_MS)
    write_ms_avg = _safe_average(write_count, write_ms)
    return (
        f"RPC ["
        f"C:{eth_calls:,} "
        f"S:{rpc_sent:,} "
        f"F:{rpc_failed:,} "
        f"X:{rpc_exhausted:,} "
        f"R:{rpc_received:,}/{rpc_request_ms_avg:,.0F}"
        f"]"
        f" Metadata ["
        f"H:{http_count:,}/{http_ms_avg:,.0F} "
        f"I:{ipfs_count:,}/{ipfs_ms_avg:,.0F} "
        f"D:{data_uri_count:,}"
        f"]"
        f" -- "
        f"Tokens ["
        f"R:{resolved:,} "
        f"U:{unresolved:,} "
        f"E:{errors:,}"
        f"]"
        f" Write ["
        f"W:{write_count:,}/{write_ms_avg:,.0F}"
        f"]"
    )
