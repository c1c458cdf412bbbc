"""Resolve image URLs for a whole collection in chunks, saving after every chunk"""

import asyncio
import logging
import pathlib
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from tokenimages import LOGGER_NAME
from tokenimages.core.stats import StatsService
from tokenimages.nft.entities import Resolved, ResolutionOutcome, Unresolved
from tokenimages.nft.resolver import TokenImageResolver
from tokenimages.nft.storage import ResultStore, write_failed_ids

DEFAULT_TOKEN_COUNT = 10_000
DEFAULT_CHUNK_SIZE = 50

STAT_CHUNK_WRITE = "prefetch.chunk-write"
STAT_CHUNK_WRITE_MS = "prefetch.chunk-write-ms"


def get_work_list(results: Mapping[str, str], token_count: int) -> List[int]:
    """Token ids in [0, token_count) that have no image URL in the results yet"""
    return [token_id for token_id in range(token_count) if not results.get(str(token_id))]


def chunked(token_ids: Sequence[int], chunk_size: int) -> Iterator[List[int]]:
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    for start in range(0, len(token_ids), chunk_size):
        yield list(token_ids[start : start + chunk_size])  # NOQA: E203


def merge_outcomes(
    results: Mapping[str, str], outcomes: Iterable[ResolutionOutcome]
) -> Dict[str, str]:
    """
    Return a new mapping with the resolved outcomes added. Existing image URLs are
    never replaced and unresolved outcomes are left out.
    """
    merged = dict(results)
    for outcome in outcomes:
        key = str(outcome.token_id)
        if isinstance(outcome, Resolved) and not merged.get(key):
            merged[key] = outcome.url
    return merged


async def process_chunk(
    resolver: TokenImageResolver, results: Mapping[str, str], chunk: Sequence[int]
) -> Tuple[Dict[str, str], List[ResolutionOutcome]]:
    """
    Resolve every token in the chunk concurrently and wait for all of them before
    merging the outcomes into a copy of the results.
    """
    outcomes = await asyncio.gather(*(resolver.resolve(token_id) for token_id in chunk))
    return merge_outcomes(results, outcomes), list(outcomes)


async def run_prefetch(
    resolver: TokenImageResolver,
    result_store: ResultStore,
    stats_service: StatsService,
    token_count: int = DEFAULT_TOKEN_COUNT,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    progress: Optional[Callable[[int, int], None]] = None,
    failed_file: Optional[pathlib.Path] = None,
) -> Dict[str, str]:
    """
    Resolve the image URL of every token not yet in the result file.

    :param resolver: Resolver for a single token
    :param result_store: Result file read at start and rewritten after every chunk
    :param stats_service: Service recording write statistics
    :param token_count: Size of the collection. Token ids are 0 to `token_count` - 1.
    :param chunk_size: Number of tokens resolved concurrently. A chunk is complete and
        saved before the next one starts.
    :param progress: Called after every chunk with the number of tokens processed and
        the total number of tokens to process
    :param failed_file: When provided, the ids left unresolved by this run are written
        to this file as a JSON list. The result file format is not affected.

    :returns: The results after the last chunk
    """
    logger = logging.getLogger(LOGGER_NAME)
    result_store.ensure_directory()

    results = result_store.load()
    if result_store.exists():
        logger.info(f"Resuming -- {len(results):,} already done")

    work_list = get_work_list(results, token_count)
    logger.info(f"Fetching {len(work_list):,} remaining tokens")

    unresolved: List[int] = []
    done = 0
    for chunk in chunked(work_list, chunk_size):
        results, outcomes = await process_chunk(resolver, results, chunk)
        unresolved.extend(
            outcome.token_id for outcome in outcomes if isinstance(outcome, Unresolved)
        )
        with stats_service.ms_counter(STAT_CHUNK_WRITE_MS):
            result_store.save(results)
        stats_service.increment(STAT_CHUNK_WRITE)
        done += len(chunk)
        if progress is not None:
            progress(done, len(work_list))

    if failed_file is not None:
        write_failed_ids(failed_file, unresolved)
        logger.info(f"Saved {len(unresolved):,} unresolved token ids to {failed_file}")

    logger.info(f"Done! Saved to {result_store.path}")
    return results
