"""크레딧 원장 내부 API 라우터 (1:N 모델).

Gateway 와 관리자 도구에서 호출하는 내부 API.
원장 결과의 error 코드는 HTTP 상태 코드로 바꿔 {"code", "message", ...} detail 로 돌려준다.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from common.eventbus.config import is_event_bus_configured
from common.eventbus.helpers import wrap_domain_event
from common.eventbus.kafka import KafkaEventBus, get_kafka_event_bus
from common.eventbus.topics import TOPIC_CREDIT
from common.events.credit import (
    CreditConsumedEvent,
    CreditEventType,
    CreditGrantedEvent,
)
from common.schemas.pagination import PaginatedResponse

from ...models.credit import CreditType
from ...models.results import CreditErrorCode, LedgerResult
from ...services.credit_service import CreditService, get_credit_service
from ..schemas.credits import (
    AdjustCreditRequest,
    AdjustCreditResponse,
    BalanceResponse,
    CleanupResponse,
    ConsumeRequest,
    ConsumeResponse,
    CreditGrantResponse,
    DailyLimitResponse,
    ExpiredCreditsResponse,
    GrantCreditRequest,
    GrantCreditResponse,
    SignupBonusConfigResponse,
    SignupBonusResponse,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/credits", tags=["credits"])

EVENT_SOURCE = "credit-service"

_ERROR_STATUS: dict[CreditErrorCode, int] = {
    CreditErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    CreditErrorCode.INSUFFICIENT_CREDITS: status.HTTP_402_PAYMENT_REQUIRED,
    CreditErrorCode.DAILY_LIMIT_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    CreditErrorCode.BONUS_ALREADY_CLAIMED: status.HTTP_409_CONFLICT,
    CreditErrorCode.INVALID_AMOUNT: status.HTTP_400_BAD_REQUEST,
    CreditErrorCode.DATABASE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}

_ERROR_MESSAGE: dict[CreditErrorCode, str] = {
    CreditErrorCode.USER_NOT_FOUND: "유저를 찾을 수 없습니다.",
    CreditErrorCode.INSUFFICIENT_CREDITS: "크레딧이 부족합니다.",
    CreditErrorCode.DAILY_LIMIT_EXCEEDED: "오늘 사용할 수 있는 크레딧 한도를 넘었습니다.",
    CreditErrorCode.BONUS_ALREADY_CLAIMED: "가입 보너스를 이미 받았습니다.",
    CreditErrorCode.INVALID_AMOUNT: "수량은 0 보다 커야 합니다.",
    CreditErrorCode.DATABASE_ERROR: "크레딧 저장소를 사용할 수 없습니다.",
}


# -------- Dependencies --------


def get_event_bus() -> Optional[KafkaEventBus]:
    """FastAPI DI용 이벤트 버스. 브로커가 설정되지 않은 환경에서는 None."""
    if not is_event_bus_configured():
        return None
    return get_kafka_event_bus()


CreditServiceDep = Annotated[CreditService, Depends(get_credit_service)]
EventBusDep = Annotated[Optional[KafkaEventBus], Depends(get_event_bus)]


def _raise_for(result: LedgerResult, **context: Any) -> NoReturn:
    error = result.error or CreditErrorCode.DATABASE_ERROR
    raise HTTPException(
        status_code=_ERROR_STATUS[error],
        detail={"code": str(error), "message": _ERROR_MESSAGE[error], **context},
    )


# -------- Endpoints --------


@router.get("/signup-bonus/config")
def get_signup_bonus_config(
    credit_service: CreditServiceDep,
) -> SignupBonusConfigResponse:
    """가입 보너스 지급량/만료 설정 조회."""
    config = credit_service.get_signup_bonus_config()
    return SignupBonusConfigResponse(
        bonus_amount=config.bonus_amount, expiry_days=config.expiry_days
    )


@router.get("/expired")
def get_expired_credits(credit_service: CreditServiceDep) -> ExpiredCreditsResponse:
    """만료됐지만 아직 회수되지 않은 grant 목록."""
    result = credit_service.get_expired_credits()
    if not result.success:
        _raise_for(result)
    return ExpiredCreditsResponse(
        total=len(result.grants),
        items=[CreditGrantResponse.from_domain(g) for g in result.grants],
    )


@router.post("/expired/cleanup")
def cleanup_expired_credits(credit_service: CreditServiceDep) -> CleanupResponse:
    """만료 크레딧 회수를 즉시 실행한다 (스케줄러와 같은 동작)."""
    result = credit_service.cleanup_expired_credits()
    if not result.success:
        _raise_for(
            result,
            cleaned_count=result.cleaned_count,
            freed_space=result.freed_space,
        )
    return CleanupResponse(
        cleaned_count=result.cleaned_count, freed_space=result.freed_space
    )


@router.get("/{user_code}")
def get_credits(user_code: str, credit_service: CreditServiceDep) -> BalanceResponse:
    """유저의 유효 잔액과 만료 임박 크레딧 조회."""
    result = credit_service.get_valid_credits(user_code)
    if not result.success:
        _raise_for(result)
    return BalanceResponse.from_result(user_code, result)


@router.get("/{user_code}/daily-limit")
def check_daily_limit(
    user_code: str,
    credit_service: CreditServiceDep,
    amount: int = 1,
) -> DailyLimitResponse:
    """오늘 amount 만큼 더 소비할 수 있는지 조회 (차감 없음)."""
    result = credit_service.check_daily_limit(user_code, amount)
    if not result.success:
        _raise_for(result)
    return DailyLimitResponse(
        can_consume=result.can_consume,
        daily_used=result.daily_used,
        daily_limit=result.daily_limit,
        daily_remaining=result.daily_remaining,
        usage_date=result.usage_date,
    )


@router.post("/{user_code}/consume")
def consume_credits(
    user_code: str,
    req: ConsumeRequest,
    credit_service: CreditServiceDep,
    bus: EventBusDep,
) -> ConsumeResponse:
    """크레딧 FIFO 소비 및 credit.consumed 이벤트 발행. 잔액 부족 402, 일일 한도 초과 429."""
    result = credit_service.consume_credits(user_code, req.amount)
    if not result.success:
        _raise_for(
            result,
            **result.model_dump(
                include={
                    "available",
                    "requested",
                    "daily_used",
                    "daily_limit",
                    "daily_remaining",
                },
                exclude_none=True,
            ),
        )

    _publish_credit_consumed_event(
        bus,
        user_code=user_code,
        amount=result.consumed or req.amount,
        new_daily_total=result.new_daily_total or 0,
        transactions=[tx.model_dump() for tx in result.transactions],
    )
    return ConsumeResponse(
        consumed=result.consumed or req.amount,
        transactions=result.transactions,
        new_daily_total=result.new_daily_total or 0,
    )


@router.post("/{user_code}/grant")
def grant_credits(
    user_code: str,
    req: GrantCreditRequest,
    credit_service: CreditServiceDep,
    bus: EventBusDep,
) -> GrantCreditResponse:
    """구매/추천 등 크레딧 지급."""
    result = credit_service.add_credits(
        user_code,
        req.amount,
        req.type,
        req.description,
        req.expires_at,
    )
    if not result.success:
        _raise_for(result)

    _publish_credit_granted_event(
        bus,
        user_code=user_code,
        grant_id=result.transaction_id or "",
        credit_type=req.type,
        amount=req.amount,
        expires_at=result.expires_at,
    )
    return GrantCreditResponse(
        user_code=user_code,
        transaction_id=result.transaction_id or "",
        amount=req.amount,
        expires_at=result.expires_at,
    )


@router.post("/{user_code}/signup-bonus")
def grant_signup_bonus(
    user_code: str,
    credit_service: CreditServiceDep,
    bus: EventBusDep,
) -> SignupBonusResponse:
    """가입 보너스 지급 (유저당 1회). 이미 받았으면 409."""
    result = credit_service.grant_signup_bonus(user_code)
    if not result.success:
        _raise_for(result)

    _publish_credit_granted_event(
        bus,
        user_code=user_code,
        grant_id=result.transaction_id or "",
        credit_type=CreditType.BONUS,
        amount=result.amount or 0,
        expires_at=result.expires_at,
    )
    return SignupBonusResponse(
        amount=result.amount or 0,
        bonus_claimed=result.bonus_claimed,
        transaction_id=result.transaction_id,
        expires_at=result.expires_at,
    )


@router.post("/{user_code}/adjust")
def adjust_credits(
    user_code: str,
    req: AdjustCreditRequest,
    credit_service: CreditServiceDep,
    bus: EventBusDep,
) -> AdjustCreditResponse:
    """관리자 잔액 조정. 양수는 admin_adjustment 지급, 음수는 일일 한도 없는 FIFO 차감."""
    result = credit_service.adjust_credits(
        user_code, req.delta, req.description, req.expires_at
    )
    if not result.success:
        _raise_for(
            result,
            **result.model_dump(include={"available", "requested"}, exclude_none=True),
        )

    if req.delta > 0:
        _publish_credit_granted_event(
            bus,
            user_code=user_code,
            grant_id=result.transaction_id or "",
            credit_type=CreditType.ADMIN_ADJUSTMENT,
            amount=req.delta,
            expires_at=result.expires_at,
        )
    return AdjustCreditResponse(
        user_code=user_code,
        delta=req.delta,
        transaction_id=result.transaction_id,
        expires_at=result.expires_at,
        transactions=result.transactions,
    )


@router.get("/{user_code}/history")
def get_credit_history(
    user_code: str,
    credit_service: CreditServiceDep,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResponse[CreditGrantResponse]:
    """grant 지급/소진 이력 조회 (최신순)."""
    result = credit_service.get_history(user_code, page, page_size)
    if not result.success:
        _raise_for(result)
    return PaginatedResponse(
        items=[CreditGrantResponse.from_domain(g) for g in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


# -------- Event Publishing Helpers --------


def _publish(
    bus: Optional[KafkaEventBus], event: CreditConsumedEvent | CreditGrantedEvent
) -> None:
    """원장 커밋 이후에 호출된다. 발행 실패는 기록만 하고 응답은 그대로 돌려준다."""
    if bus is None:
        return
    try:
        bus.publish(TOPIC_CREDIT.base, wrap_domain_event(event))
    except Exception:  # noqa: BLE001
        logger.exception(
            "failed to publish %s event",
            event.type,
            extra={"user_code": event.user_code},
        )


def _publish_credit_consumed_event(
    bus: Optional[KafkaEventBus],
    user_code: str,
    amount: int,
    new_daily_total: int,
    transactions: list[dict[str, Any]],
) -> None:
    """credit.consumed 이벤트 발행."""
    event = CreditConsumedEvent(
        id=str(uuid.uuid4()),
        type=CreditEventType.CREDIT_CONSUMED,
        timestamp=datetime.now(timezone.utc).isoformat(),
        source=EVENT_SOURCE,
        version="1.0",
        user_code=user_code,
        amount=amount,
        new_daily_total=new_daily_total,
        transactions=transactions,
    )
    _publish(bus, event)


def _publish_credit_granted_event(
    bus: Optional[KafkaEventBus],
    user_code: str,
    grant_id: str,
    credit_type: CreditType,
    amount: int,
    expires_at: datetime | None,
) -> None:
    """credit.granted 이벤트 발행."""
    event = CreditGrantedEvent(
        id=str(uuid.uuid4()),
        type=CreditEventType.CREDIT_GRANTED,
        timestamp=datetime.now(timezone.utc).isoformat(),
        source=EVENT_SOURCE,
        version="1.0",
        user_code=user_code,
        grant_id=grant_id,
        credit_type=str(credit_type),
        amount=amount,
        expires_at=expires_at.isoformat() if expires_at else None,
    )
    _publish(bus, event)
