from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from common.logger import setup_logger

from .api.health import router as health_router
from .api.v1 import api_router
from .config import load_credit_config
from .scheduler.expiry_scheduler import start_expiry_scheduler, stop_expiry_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - framework hook
    """애플리케이션 생명주기 동안 만료 회수 스케줄러 스레드를 관리한다."""

    start_expiry_scheduler(load_credit_config().reaper_interval_seconds)
    try:
        yield
    finally:
        stop_expiry_scheduler()


def create_app() -> FastAPI:
    setup_logger(name="credit-service")
    app = FastAPI(
        title="Credit Ledger Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def main() -> None:
    """명령행에서 실행할 수 있도록 uvicorn 런처를 제공한다."""

    import uvicorn

    port = int(os.getenv("CREDIT_SERVICE_PORT", "8003"))
    uvicorn.run(
        "credit_service.app.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
