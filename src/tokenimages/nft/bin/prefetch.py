import asyncio
import math
import pathlib
import time
from typing import Optional, Tuple, Union

import click

from tokenimages.core.click import AddressParamType, BlockTagParamType, HttpUrlParamType
from tokenimages.core.data_clients import (
    DataUriDataClient,
    HttpDataClient,
    IpfsDataClient,
    MetadataDataClient,
)
from tokenimages.core.rpc import RpcClient
from tokenimages.core.stats import StatsService, StatsWriter
from tokenimages.core.types import Address
from tokenimages.evm.rpc import FallbackEvmRpcClient
from tokenimages.nft.bin import Config, get_prefetch_stat_line
from tokenimages.nft.prefetch import DEFAULT_CHUNK_SIZE, DEFAULT_TOKEN_COUNT, run_prefetch
from tokenimages.nft.resolver import TokenImageResolver
from tokenimages.nft.storage import ResultStore

DEFAULT_CONTRACT = "0x9eb6e2025b64f340691e424b7fe7022ffde12438"
DEFAULT_RPC_ENDPOINTS = (
    "https://cloudflare-eth.com",
    "https://rpc.ankr.com/eth",
    "https://ethereum.publicnode.com",
)
DEFAULT_IPFS_GATEWAY = "https://cloudflare-ipfs.com"
DEFAULT_OUTPUT_FILE = "./public/image-urls.json"


class ProgressReporter:
    """Overwrites a single console line with the cumulative progress of the run"""

    def __init__(self) -> None:
        self.__written = False

    def __call__(self, done: int, total: int) -> None:
        percent = math.floor(done / total * 100 + 0.5) if total else 100
        click.echo(f"\r{done:,} / {total:,} ({percent}%)", nl=False)
        self.__written = True

    def close(self) -> None:
        if self.__written:
            click.echo()
            self.__written = False


@click.command()
@click.option(
    "--contract",
    envvar="CONTRACT_ADDRESS",
    default=DEFAULT_CONTRACT,
    show_default=True,
    type=AddressParamType(),
    help="Address of the ERC-721 contract of the collection",
)
@click.option(
    "--rpc-endpoint",
    "rpc_endpoints",
    envvar="RPC_ENDPOINTS",
    multiple=True,
    default=DEFAULT_RPC_ENDPOINTS,
    show_default=True,
    type=HttpUrlParamType(),
    help="RPC endpoint URL. Endpoints are tried in the order provided for every call.",
)
@click.option(
    "--ipfs-gateway",
    envvar="IPFS_GATEWAY",
    default=DEFAULT_IPFS_GATEWAY,
    show_default=True,
    type=HttpUrlParamType(),
    help="HTTP gateway used for ipfs:// metadata and image URIs",
)
@click.option(
    "--token-count",
    envvar="TOKEN_COUNT",
    default=DEFAULT_TOKEN_COUNT,
    show_default=True,
    type=click.IntRange(min=0),
    help="Number of tokens in the collection. Token ids start at 0.",
)
@click.option(
    "--chunk-size",
    envvar="CHUNK_SIZE",
    default=DEFAULT_CHUNK_SIZE,
    show_default=True,
    type=click.IntRange(min=1),
    help="Number of tokens resolved concurrently before the results are saved",
)
@click.option(
    "--output-file",
    envvar="OUTPUT_FILE",
    default=DEFAULT_OUTPUT_FILE,
    show_default=True,
    type=click.Path(file_okay=True, dir_okay=False, allow_dash=False, path_type=pathlib.Path),
    help="JSON file of token id to image URL. An existing file is resumed.",
)
@click.option(
    "--failed-file",
    envvar="FAILED_FILE",
    default=None,
    type=click.Path(file_okay=True, dir_okay=False, allow_dash=False, path_type=pathlib.Path),
    help="JSON file listing the token ids left unresolved by the run",
)
@click.option(
    "--block",
    envvar="BLOCK_TAG",
    default="latest",
    show_default=True,
    type=BlockTagParamType(),
    help="Block tag or number at which token URIs are read",
)
@click.option(
    "--request-timeout",
    envvar="REQUEST_TIMEOUT",
    default=300.0,
    show_default=True,
    help="Maximum time in seconds for a single RPC or metadata request",
)
@click.option(
    "--stats-interval",
    envvar="STATS_INTERVAL",
    default=60,
    show_default=True,
    help="Seconds between statistics log lines",
)
@click.pass_obj
def prefetch(
    config: Config,
    contract: Address,
    rpc_endpoints: Tuple[str, ...],
    ipfs_gateway: str,
    token_count: int,
    chunk_size: int,
    output_file: pathlib.Path,
    failed_file: Optional[pathlib.Path],
    block: str,
    request_timeout: float,
    stats_interval: int,
):
    """
    Resolve the image URL of every token in the collection and save them to the
    output file.

    The file is rewritten after every chunk of tokens. Tokens already in the file are
    skipped, so an interrupted or partially failed run can be run again to continue.
    """

    stats_writer = StatsWriter(config.stats_service, get_prefetch_stat_line)
    progress = ProgressReporter()
    start = time.perf_counter()
    try:
        asyncio.run(
            run_prefetch_command(
                stats_service=config.stats_service,
                stats_writer=stats_writer,
                stats_interval=stats_interval,
                contract=contract,
                rpc_endpoints=rpc_endpoints,
                ipfs_gateway=ipfs_gateway,
                token_count=token_count,
                chunk_size=chunk_size,
                output_file=output_file,
                failed_file=failed_file,
                block=block,
                request_timeout=request_timeout,
                progress=progress,
            )
        )
    except KeyboardInterrupt:
        config.logger.info("Processing interrupted by user!")
    finally:
        progress.close()
        end = time.perf_counter()
        runtime = end - start
        secs = runtime % 60
        all_mins = math.floor(runtime / 60)
        mins = all_mins % 60
        hours = math.floor(all_mins / 60)
        stats_writer.write_line()
        config.logger.info(f"Total Time: {hours}:{mins:02}:{secs:05.2F}")


async def run_prefetch_command(
    stats_service: StatsService,
    stats_writer: StatsWriter,
    stats_interval: int,
    contract: Address,
    rpc_endpoints: Tuple[str, ...],
    ipfs_gateway: str,
    token_count: int,
    chunk_size: int,
    output_file: pathlib.Path,
    failed_file: Optional[pathlib.Path],
    block: Union[int, str],
    request_timeout: float,
    progress: ProgressReporter,
):
    rpc_client = FallbackEvmRpcClient(
        [RpcClient(uri, stats_service, request_timeout) for uri in rpc_endpoints],
        stats_service,
    )
    data_client = MetadataDataClient(
        http_client=HttpDataClient(request_timeout, stats_service),
        ipfs_client=IpfsDataClient(ipfs_gateway, request_timeout, stats_service),
        data_uri_client=DataUriDataClient(stats_service),
    )
    stats_task = asyncio.create_task(stats_writer.write_at_interval(stats_interval))
    try:
        async with rpc_client:
            resolver = TokenImageResolver(
                rpc_client=rpc_client,
                contract_address=contract,
                data_client=data_client,
                stats_service=stats_service,
                block=block,
            )
            await run_prefetch(
                resolver=resolver,
                result_store=ResultStore(output_file),
                stats_service=stats_service,
                token_count=token_count,
                chunk_size=chunk_size,
                progress=progress,
                failed_file=failed_file,
            )
    finally:
        stats_task.cancel()
