"""Run statistics for the prefetch command"""
import asyncio
import logging
import time
from asyncio import CancelledError
from contextlib import contextmanager
from typing import Callable, Dict

from tokenimages import LOGGER_NAME


class StatsService:
    """
    In-memory named counters. Counters are created on first increment and read as 0
    before that. Durations are kept as counters of milliseconds so averages can be
    derived from a matching count stat.
    """

    def __init__(self) -> None:
        self.__counters: Dict[str, int] = {}

    def increment(self, stat: str, quantity: int = 1) -> None:
        """
        Add `quantity` to the counter `stat`

        :param stat: Counter name, e.g. `rpc.request-sent`
        :param quantity: Amount to add
        """
        self.__counters[stat] = self.__counters.get(stat, 0) + quantity

    def get_count(self, stat: str) -> int:
        return self.__counters.get(stat, 0)

    @contextmanager
    def ms_counter(self, stat: str):
        """
        Add the whole milliseconds spent inside the context to the counter `stat`, also
        when the context exits with an exception.

        Example::

            with stats_service.ms_counter("prefetch.chunk-write-ms"):
                result_store.save(results)
        """
        start = time.perf_counter_ns()
        try:
            yield None
        finally:
            self.increment(stat, (time.perf_counter_ns() - start) // 1_000_000)

    def reset(self) -> None:
        self.__counters.clear()


def _safe_average(count: int, total: int) -> float:
    return 0.0 if count == 0 else total / count


class StatsWriter:
    """
    Log a line built from the stats service by `get_line_function`, either once or
    repeatedly until the interval task is cancelled.
    """

    def __init__(
        self, stats_service: StatsService, get_line_function: Callable[[StatsService], str]
    ) -> None:
        self.__stats_service = stats_service
        self.__get_line_function = get_line_function
        self.__logger = logging.getLogger(LOGGER_NAME)

    def write_line(self) -> None:
        self.__logger.info(self.__get_line_function(self.__stats_service))

    async def write_at_interval(self, interval: int) -> None:
        try:
            while True:
                await asyncio.sleep(interval)
                self.write_line()
        except CancelledError:
            pass
