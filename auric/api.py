# The MIT License (MIT)
# Copyright © 2023 Syeam Bin Abdullah

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

import time

import bittensor as bt
from fastapi import FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from auric import __version__
from auric.accrual.locks import LockAccrualJob
from auric.accrual.positions import PositionAccrualJob
from auric.protocol import AccrualResponse, ErrorResponse, QuoteRequest
from auric.rates.sustainable import QuoteService
from auric.store.adapters import PoolAggregateStore


def _run_job(job: PositionAccrualJob | LockAccrualJob) -> AccrualResponse:
    return AccrualResponse.from_summary(job.run())


def _error_response(job_name: str, e: Exception) -> JSONResponse:
    bt.logging.error(f"Error in {job_name}: {e}")
    return JSONResponse(jsonable_encoder(ErrorResponse(error=str(e)), by_alias=True), status_code=500)


def create_app(
    position_job: PositionAccrualJob,
    lock_job: LockAccrualJob,
    quote_service: QuoteService,
    pool_store: PoolAggregateStore,
) -> FastAPI:
    app = FastAPI(title="Auric interest engine", version=__version__)

    @app.post("/accrual/positions")
    def trigger_position_accrual():  # noqa: ANN202
        try:
            response = _run_job(position_job)
        except Exception as e:
            return _error_response(position_job.name, e)
        return jsonable_encoder(response, by_alias=True)

    @app.post("/accrual/locks")
    def trigger_lock_accrual():  # noqa: ANN202
        try:
            response = _run_job(lock_job)
        except Exception as e:
            return _error_response(lock_job.name, e)
        return jsonable_encoder(response, by_alias=True)

    @app.post("/accrual/scheduled")
    def trigger_scheduled_operations() -> dict:
        """Run every accrual job in turn. A failing job is reported without stopping the others."""
        start_time = time.time()
        results = {}
        errors = []
        for job in (position_job, lock_job):
            try:
                results[job.name] = jsonable_encoder(_run_job(job), by_alias=True)
            except Exception as e:
                bt.logging.error(f"{job.name} error: {e}")
                results[job.name] = None
                errors.append(f"{job.name}: {e}")

        completed = sum(1 for result in results.values() if result is not None)
        bt.logging.info(f"Scheduled operations completed with {len(errors)} errors")
        return {
            "success": True,
            "executionTimeMs": int((time.time() - start_time) * 1000),
            "results": results,
            "errors": errors,
            "summary": {
                "operationsCompleted": completed,
                "errorsCount": len(errors),
                "successful": len(errors) == 0,
            },
        }

    @app.get("/quote")
    def get_quote(
        asset: str,
        chain: str,
        principal: float | None = Query(default=None, ge=0),
        term_days: int | None = Query(default=None, ge=0),
        owner_id: str | None = None,
    ) -> dict:
        request = QuoteRequest(asset=asset, chain=chain, principal=principal, term_days=term_days, owner_id=owner_id)
        quote = quote_service.quote(request)
        return {"breakdown": jsonable_encoder(quote, by_alias=True), "displayData": quote.display()}

    @app.get("/pools/{asset}/{chain}")
    def get_pool(asset: str, chain: str) -> dict:
        aggregate = pool_store.get_pool_aggregate(asset, chain)
        if aggregate is None:
            raise HTTPException(status_code=404, detail=f"No pool aggregate for {asset} on {chain}")
        return jsonable_encoder(aggregate)

    return app
