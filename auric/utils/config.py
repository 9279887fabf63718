# The MIT License (MIT)
# Copyright © 2023 Yuma Rao
# Copyright © 2023 Opentensor Foundation

# Permission is hereby granted, free of charge, to any person obtaining a copy of this software and associated
# documentation files (the “Software”), to deal in the Software without restriction, including without limitation
# the rights to use, copy, modify, merge, publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so, subject to the following conditions:

# The above copyright notice and this permission notice shall be included in all copies or substantial portions of
# the Software.

# THE SOFTWARE IS PROVIDED “AS IS”, WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO
# THE WARRANTIES OF MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL
# THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN ACTION
# OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER
# DEALINGS IN THE SOFTWARE.

import argparse
import os

import bittensor as bt
from loguru import logger

from auric import __spec_version__ as spec_version
from auric.constants import DB_DIR, LOCK_ACCRUAL_FREQUENCY, POSITION_ACCRUAL_FREQUENCY

EVENTS_LEVEL = "EVENTS"


def check_config(_cls, config: "bt.Config") -> None:
    r"""Checks/validates the config namespace object."""
    bt.logging.check_config(config)

    full_path = os.path.expanduser(  # noqa: PTH111
        "{}/{}".format(  # noqa: UP032
            config.logging.logging_dir,
            config.engine.name,
        )
    )
    config.engine.full_path = os.path.expanduser(full_path)  # noqa: PTH111
    if not os.path.exists(config.engine.full_path):  # noqa: PTH110
        os.makedirs(config.engine.full_path, exist_ok=True)  # noqa: PTH103

    if config.engine.position_accrual_frequency <= 0 or config.engine.lock_accrual_frequency <= 0:
        raise ValueError("Accrual frequencies must be positive")

    if not config.engine.dont_save_events:
        # Add custom event logger for the batch summaries.
        add_events_sink(os.path.join(config.engine.full_path, "events.log"), config.engine.events_retention_size)  # noqa: PTH118


def add_events_sink(path: str, rotation: str = "2 GB") -> int:
    try:
        logger.level(EVENTS_LEVEL)
    except ValueError:
        logger.level(EVENTS_LEVEL, no=38, icon="📝")
    return logger.add(
        path,
        rotation=rotation,
        serialize=True,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        level=EVENTS_LEVEL,
        format="{time:YYYY-MM-DD at HH:mm:ss} | {level} | {message}",
    )


def add_args(_cls, parser) -> None:
    """
    Adds relevant arguments to the parser for operation.
    """

    parser.add_argument(
        "--db_dir",
        type=str,
        help="Path of the sqlite database holding positions, locks and pool aggregates.",
        default=os.environ.get("AURIC_DB_DIR", DB_DIR),
    )

    parser.add_argument(
        "--engine.name",
        type=str,
        help="Logs and events for this engine go in logging.logging_dir / engine.name.",
        default="auric-engine",
    )

    parser.add_argument(
        "--engine.position_accrual_frequency",
        type=int,
        help="Time in seconds between position accrual runs.",
        default=POSITION_ACCRUAL_FREQUENCY,
    )

    parser.add_argument(
        "--engine.lock_accrual_frequency",
        type=int,
        help="Time in seconds between lock accrual runs.",
        default=LOCK_ACCRUAL_FREQUENCY,
    )

    parser.add_argument(
        "--engine.max_workers",
        type=int,
        help="Maximum number of workers of the thread pool running the accrual jobs.",
        default=None,
    )

    parser.add_argument(
        "--engine.events_retention_size",
        type=str,
        help="Events retention size.",
        default="2 GB",
    )

    parser.add_argument(
        "--engine.dont_save_events",
        action="store_true",
        help="If set, we dont save events to a log file.",
        default=False,
    )

    parser.add_argument(
        "--engine.disable_api",
        action="store_true",
        help="If set, the batch trigger and quote api is not served.",
        default=False,
    )

    parser.add_argument(
        "--api_port",
        type=int,
        help="The port you want the api to run on",
        default=9000,
    )


def config(cls) -> bt.Config:
    """
    Returns the configuration object specific to the engine after adding relevant arguments.
    """
    parser = argparse.ArgumentParser()
    bt.logging.add_args(parser)
    cls.add_args(parser)
    conf = bt.Config(parser)
    conf.spec_version = spec_version
    return conf
