from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from solcases_backend.api import deps
from solcases_backend.api.routes import engine_error, router, status_for, ws_router
from solcases_backend.config import ServerConfig
from solcases_backend.engine.chat import ChatRelay
from solcases_backend.engine.models import ENGINE_VERSION
from solcases_backend.engine.service import CaseEngineService, EngineRejectedAction
from solcases_backend.utils.logging import setup_logging


logger = logging.getLogger(__name__)


def create_app(
    config: ServerConfig | None = None,
    engine_service: CaseEngineService | None = None,
    run_sweeper: bool = True,
) -> FastAPI:
    if config is None:
        config = engine_service.config if engine_service is not None else ServerConfig.from_env()
    if engine_service is None:
        engine_service = CaseEngineService(
            deps.build_repository(config),
            deps.build_wallet_provider(config),
            config,
        )
    chat_relay = ChatRelay(engine_service, blocked_words=config.chat_blocked_words)
    deps.install(engine_service, chat_relay)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(config.log_level)
        sweeper = asyncio.create_task(engine_service.run_stale_sweeper()) if run_sweeper else None
        logger.info("SolCases backend started on port %d", config.port)
        yield
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
        await engine_service.close()
        logger.info("SolCases backend shutting down")

    app = FastAPI(title="SolCases Backend", version=ENGINE_VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(EngineRejectedAction)
    async def rejected_action_handler(request: Request, exc: EngineRejectedAction) -> JSONResponse:
        return JSONResponse(
            status_code=status_for(exc),
            content={"success": False, "error": engine_error(exc).model_dump(mode="json")},
        )

    app.include_router(router)
    app.include_router(ws_router)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app


def main() -> None:
    import uvicorn

    config = ServerConfig.from_env()
    uvicorn.run(create_app(config), host="0.0.0.0", port=config.port, log_config=None)


if __name__ == "__main__":
    main()
