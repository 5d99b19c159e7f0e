from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import asdict

import httpx
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from app.logging import setup_logging
from app.settings import Settings
from health.health import latest_metrics
from ingest.scheduler import CycleReport, run_ingestion_cycle, seed_sources
from ingest.sources import list_active_sources
from provider.unified import UnifiedDataProvider, alert_ready_fetcher
from store.db import close_database, open_database


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        resolved = settings or Settings()
        setup_logging(resolved)
        db = open_database(resolved.db_path)
        seed_sources(db, resolved.feeds_dir)
        ingest_lock = asyncio.Lock()

        async with httpx.AsyncClient(
            follow_redirects=True, transport=transport
        ) as client:

            async def trigger() -> CycleReport:
                async with ingest_lock:
                    return await run_ingestion_cycle(resolved, db, client)

            provider = UnifiedDataProvider(
                db,
                resolved,
                live_fetcher=alert_ready_fetcher(client, resolved),
                trigger=trigger,
            )
            app.state.settings = resolved
            app.state.db = db
            app.state.trigger = trigger
            app.state.provider = provider
            try:
                yield
            finally:
                await provider.drain_background_tasks()
                close_database(db)

    app = FastAPI(lifespan=lifespan)

    @app.post("/api/ingest")
    async def ingest_now(request: Request) -> JSONResponse:
        report = await request.app.state.trigger()
        request.app.state.provider.clear_cache()
        return JSONResponse(report.to_dict())

    @app.get("/api/alerts")
    async def alerts(request: Request, refresh: bool = Query(default=False)) -> JSONResponse:
        provider: UnifiedDataProvider = request.app.state.provider
        data = await (provider.force_refresh() if refresh else provider.get_unified_data())
        return JSONResponse(data.to_dict())

    @app.get("/api/sources")
    def sources(request: Request) -> JSONResponse:
        db = request.app.state.db
        metrics = latest_metrics(db)
        items = []
        for source in list_active_sources(db):
            item = asdict(source)
            item["kind"] = source.kind.value
            item.pop("configuration", None)
            item["latest_metric"] = metrics.get(source.id)
            items.append(item)
        return JSONResponse({"sources": items})

    return app


app = create_app()
