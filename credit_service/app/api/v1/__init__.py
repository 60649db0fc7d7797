from fastapi import APIRouter

from .credits import router as credits_router

api_router = APIRouter()
# /credits prefix 와 tags 는 credits.router 쪽에 정의되어 있다.
api_router.include_router(credits_router)
