from __future__ import annotations

from fastapi import APIRouter

from ..config import load_credit_config


router = APIRouter()


@router.get("/health", summary="헬스 체크")
def health() -> dict[str, str]:
    config = load_credit_config()
    return {
        "status": "ok",
        "store_backend": config.store_backend,
        "timezone": config.timezone,
    }
