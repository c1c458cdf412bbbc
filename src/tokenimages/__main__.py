import logging
import pathlib
import sys
from logging import StreamHandler
from logging.handlers import TimedRotatingFileHandler
from typing import List

import click
from click import Context
from dotenv import load_dotenv

from tokenimages import LOGGER_NAME
from tokenimages.core.stats import StatsService
from tokenimages.nft.bin import Config
from tokenimages.nft.bin.prefetch import prefetch

load_dotenv()


@click.group
@click.option(
    "--log-file",
    envvar="LOG_FILE",
    type=click.Path(file_okay=True, dir_okay=False, allow_dash=False, path_type=pathlib.Path),
    multiple=True,
    help="Location and filename for a log.",
)
@click.option(
    "--debug/--no-debug",
    envvar="DEBUG",
    default=False,
    show_default=True,
    help="Show debug messages in the console.",
)
@click.pass_context
def main(ctx: Context, log_file: List[pathlib.Path], debug: bool):
    """
    Token image URL commands
    """
    logger = logging.getLogger(LOGGER_NAME)
    handlers: List[logging.Handler] = [StreamHandler()]
    for filename in log_file:
        handlers.append(TimedRotatingFileHandler(filename, when="D"))
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logging.basicConfig(format="%(asctime)s %(message)s", handlers=handlers)

    ctx.obj = Config(stats_service=StatsService(), logger=logger)


main.add_command(prefetch)


if __name__ == "__main__":
    main()
    sys.exit(0)
