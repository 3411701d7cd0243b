from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from event_reco.api.routes import actions, health, recommend
from event_reco.core.errors import QueryTimeout, TransientStoreError, ValidationError
from event_reco.pipeline import RecommendationPipeline, build_pipeline
from event_reco.services.similarity_sql import SqlEventSimilarityStore


logger = logging.getLogger(__name__)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(QueryTimeout)
    async def _timeout(_: Request, exc: QueryTimeout) -> JSONResponse:
        return JSONResponse(status_code=504, content={"detail": str(exc)})

    @app.exception_handler(TransientStoreError)
    async def _store(_: Request, exc: TransientStoreError) -> JSONResponse:
        logger.warning("Store unavailable: %s", exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})


def create_app(pipeline: Optional[RecommendationPipeline] = None) -> FastAPI:
    app = FastAPI(title="Event recommendations (item-to-item)", version="0.1.0")
    app.state.pipeline = pipeline or build_pipeline()

    @app.on_event("startup")
    def _startup() -> None:
        p: RecommendationPipeline = app.state.pipeline
        if isinstance(p.similarities, SqlEventSimilarityStore):
            p.similarities.init_schema()
        p.consumer.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        app.state.pipeline.consumer.stop()

    _register_error_handlers(app)
    app.include_router(health.router)
    app.include_router(actions.router)
    app.include_router(recommend.router)
    return app


app = create_app()
