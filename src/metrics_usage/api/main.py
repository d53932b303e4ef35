from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from metrics_usage import __version__
from metrics_usage.analyze.expr import Analyzer, new_analyzer
from metrics_usage.api.routes import health, labels, metrics, rules
from metrics_usage.collectors import build_collectors
from metrics_usage.config import Settings, get_settings
from metrics_usage.database.store import MetricsStore
from metrics_usage.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    configure_logging(settings.log_level, debug=settings.debug)
    await app.state.store.start()
    app.state.collectors.start()
    try:
        yield
    finally:
        await app.state.collectors.stop()
        await app.state.store.stop()


def create_app(
    settings: Settings | None = None,
    *,
    store: MetricsStore | None = None,
    analyzer: Analyzer | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    store = store or MetricsStore.from_settings(settings.database)
    analyzer = analyzer or new_analyzer(settings.expression_engine)

    app = FastAPI(
        title="Metrics Usage API",
        version=__version__,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.analyzer = analyzer
    app.state.collectors = build_collectors(settings, store, analyzer)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.cors_origins],
            allow_methods=["*"],
            allow_headers=["*"],
            allow_credentials=True,
        )

    app.include_router(metrics.router, prefix=settings.api_prefix, tags=["metrics"])
    app.include_router(labels.router, prefix=settings.api_prefix, tags=["labels"])
    app.include_router(rules.router, prefix=settings.api_prefix, tags=["rules"])
    app.include_router(health.router, tags=["health"])
    return app
