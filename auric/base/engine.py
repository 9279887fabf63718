# The MIT License (MIT)
# Copyright © 2023 Syeam Bin Abdullah
# Copyright © 2023 Yuma Rao

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
import asyncio
import concurrent.futures
import copy
import time

import bittensor as bt
import uvicorn
from dotenv import load_dotenv
from loguru import logger

from auric import __spec_version__ as spec_version
from auric.accrual.aggregator import PoolAggregator
from auric.accrual.locks import LockAccrualJob
from auric.accrual.positions import PositionAccrualJob
from auric.api import create_app
from auric.constants import NEW_TASK_INITIAL_DELAY
from auric.protocol import BatchSummary
from auric.rates.sustainable import QuoteService
from auric.store.adapters import SQLitePoolAggregateStore, SQLitePositionStore
from auric.store.sql import create_tables, get_db_connection
from auric.utils.config import EVENTS_LEVEL, add_args, check_config, config


class AccrualEngine:
    """
    Runs the position and lock accrual jobs on their own cadence and serves the batch trigger and
    quote api. Jobs run in a thread pool since the store adapters are blocking.
    """

    spec_version: int = spec_version

    @classmethod
    def check_config(cls, config: "bt.Config") -> None:
        check_config(cls, config)

    @classmethod
    def add_args(cls, parser: argparse.ArgumentParser) -> None:
        add_args(cls, parser)

    @classmethod
    def config(cls) -> "bt.Config":
        return config(cls)

    @classmethod
    async def create(cls, config=None) -> "AccrualEngine":
        instance = cls()
        await instance._init_async(config=config)
        return instance

    async def _init_async(self, config=None) -> None:
        # Initialize thread_pool first before any potential early returns
        self.thread_pool = None
        load_dotenv()

        self.config = copy.deepcopy(config or self.config())
        self.check_config(self.config)

        # Set up logging with the provided configuration and directory.
        bt.logging(config=self.config, logging_dir=self.config.engine.full_path)
        bt.logging.info(self.config)

        with get_db_connection(self.config.db_dir) as conn:
            create_tables(conn)

        self.position_store = SQLitePositionStore(self.config.db_dir)
        self.pool_store = SQLitePoolAggregateStore(self.config.db_dir)
        self.aggregator = PoolAggregator(self.pool_store)
        self.position_job = PositionAccrualJob(self.position_store, self.pool_store, self.aggregator)
        self.lock_job = LockAccrualJob(self.position_store, self.aggregator)
        self.quote_service = QuoteService(self.position_store, self.pool_store)

        # set last run times to be 0
        self.last_position_accrual_time = 0
        self.last_lock_accrual_time = 0

        self._stop_event = asyncio.Event()
        self._tasks = []
        self.api_server = None
        self.thread_pool = concurrent.futures.ThreadPoolExecutor(max_workers=self.config.engine.max_workers)

    def __del__(self) -> None:
        if getattr(self, "thread_pool", None):
            # Shutdown the thread pool when the object is deleted
            bt.logging.info("Shutting down thread pool...")
            self.thread_pool.shutdown(wait=True)

    async def start(self) -> None:
        """Start engine tasks"""
        await asyncio.sleep(NEW_TASK_INITIAL_DELAY)
        self._tasks.append(asyncio.create_task(self.run_position_accrual_loop()))
        self._tasks.append(asyncio.create_task(self.run_lock_accrual_loop()))
        if not self.config.engine.disable_api:
            self._tasks.append(asyncio.create_task(self.serve_api()))

    async def stop(self) -> None:
        """Stop all engine tasks"""
        self._stop_event.set()
        if self.api_server is not None:
            self.api_server.should_exit = True
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            bt.logging.debug("Ran engine tasks")
            self._tasks.clear()
            bt.logging.debug("Cleared engine tasks")

    async def __aenter__(self) -> "AccrualEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def run_job(self, job: PositionAccrualJob | LockAccrualJob) -> BatchSummary:
        summary = await asyncio.get_event_loop().run_in_executor(self.thread_pool, job.run)
        self.log_event(summary)
        return summary

    def log_event(self, summary: BatchSummary) -> None:
        if self.config.engine.dont_save_events:
            return
        logger.log(
            EVENTS_LEVEL,
            summary.model_dump_json(include={"job", "success", "aggregated_pools", "processed_at"}),
        )

    async def run_position_accrual_loop(self) -> None:
        """Position accrual loop, runs every engine.position_accrual_frequency seconds"""
        bt.logging.info("Position accrual loop starting...")

        try:
            while not self._stop_event.is_set():
                current_time = time.time()

                if current_time - self.last_position_accrual_time > self.config.engine.position_accrual_frequency:
                    bt.logging.info("Running position accrual")

                    try:
                        await self.run_job(self.position_job)
                    except Exception as e:
                        bt.logging.exception(f"Error in position accrual: {e}")

                    self.last_position_accrual_time = current_time

                await asyncio.sleep(1)

        except Exception as e:
            bt.logging.exception(f"Error in position accrual loop: {e}")

    async def run_lock_accrual_loop(self) -> None:
        """Lock accrual loop, runs every engine.lock_accrual_frequency seconds"""
        bt.logging.info("Lock accrual loop starting...")

        try:
            while not self._stop_event.is_set():
                current_time = time.time()

                if current_time - self.last_lock_accrual_time > self.config.engine.lock_accrual_frequency:
                    bt.logging.info("Running lock accrual")

                    try:
                        await self.run_job(self.lock_job)
                    except Exception as e:
                        bt.logging.exception(f"Error in lock accrual: {e}")

                    self.last_lock_accrual_time = current_time

                await asyncio.sleep(1)

        except Exception as e:
            bt.logging.exception(f"Error in lock accrual loop: {e}")

    async def serve_api(self) -> None:
        """Serve the batch trigger and quote api."""
        app = create_app(self.position_job, self.lock_job, self.quote_service, self.pool_store)
        self.api_server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=self.config.api_port, log_level="info"))  # noqa: S104
        bt.logging.info(f"Serving api on port {self.config.api_port}")
        try:
            await self.api_server.serve()
        except Exception as e:
            bt.logging.error(f"Failed to serve api with exception: {e}")


async def main() -> None:
    engine = await AccrualEngine.create()

    try:
        async with engine:
            while True:
                bt.logging.info("Accrual engine running...")
                await asyncio.sleep(300)

    except KeyboardInterrupt:
        bt.logging.info("Shutting down...")


def start() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    start()
