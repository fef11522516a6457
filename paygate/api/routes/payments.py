"""Gateway merchant API callbacks and the plan checkout endpoint."""
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from paygate.api.auth import AuthenticatedPrincipal, require_role
from paygate.api.deps import get_db_session, get_payme_rate_limiter
from paygate.api.merchant_auth import verify_merchant_authorization
from paygate.core.config import Settings, get_settings
from paygate.obs import PAYME_RATE_LIMITED_COUNTER
from paygate.schemas import CheckoutRead, CheckoutRequest
from paygate.services.audit_trail import PaymentAuditTrail
from paygate.services.checkout import CheckoutNotConfiguredError, InvalidPlanError, build_checkout_link
from paygate.services.dispatcher import ClickDispatcher, PaymeDispatcher
from paygate.services.errors import (
    InsufficientPrivilegesError,
    InternalError,
    InvalidRequestError,
    RateLimitExceededError,
)
from paygate.services.rate_limiter import RateLimiter
from paygate.services.stores import SqlPrincipalStore
from paygate.services.transactions import PaymeMerchantService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments")

_UNPARSEABLE = object()


def client_source_key(request: Request, *, trust_forwarded_for: bool) -> str:
    """Network source used as the rate limiting key."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded and forwarded.split(",")[0].strip():
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def _decode_body(raw: bytes) -> Any:
    try:
        return json.loads(raw, parse_constant=_reject_constant)
    except (ValueError, UnicodeDecodeError):
        return _UNPARSEABLE


async def _gateway_callback(
    request: Request,
    *,
    dispatcher: PaymeDispatcher,
    limiter: RateLimiter,
    settings: Settings,
    login: str,
    key: str | None,
) -> JSONResponse:
    source_key = client_source_key(request, trust_forwarded_for=settings.trust_forwarded_for)
    body = _decode_body(await request.body())

    if not limiter.allow(source_key):
        PAYME_RATE_LIMITED_COUNTER.inc()
        logger.warning(
            "merchant callback rate limited",
            extra={"source": source_key, "protocol": dispatcher.protocol},
        )
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=dispatcher.error_response(RateLimitExceededError(), body),
        )

    if body is _UNPARSEABLE:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=dispatcher.error_response(InvalidRequestError("Parse error"), None),
        )

    if not verify_merchant_authorization(request.headers.get("authorization"), login=login, key=key):
        logger.warning(
            "merchant callback with invalid authorization",
            extra={"source": source_key, "protocol": dispatcher.protocol},
        )
        return JSONResponse(content=dispatcher.error_response(InsufficientPrivilegesError(), body))

    try:
        payload = await run_in_threadpool(
            dispatcher.dispatch,
            body,
            request_id=getattr(request.state, "request_id", None),
            ip_address=source_key,
        )
        return JSONResponse(content=payload)
    except Exception:
        logger.exception("merchant callback failed outside the dispatcher", extra={"protocol": dispatcher.protocol})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=dispatcher.error_response(InternalError(), body),
        )


@router.post("/payme", summary="Payme merchant API callback")
async def payme_callback(
    request: Request,
    session: Session = Depends(get_db_session),
    limiter: RateLimiter = Depends(get_payme_rate_limiter),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    dispatcher = PaymeDispatcher(
        PaymeMerchantService(session, settings=settings),
        audit=PaymentAuditTrail(session),
    )
    return await _gateway_callback(
        request,
        dispatcher=dispatcher,
        limiter=limiter,
        settings=settings,
        login=settings.payme_merchant_login,
        key=settings.payme_merchant_key,
    )


@router.post("/click", summary="Click merchant webhook")
async def click_callback(
    request: Request,
    session: Session = Depends(get_db_session),
    limiter: RateLimiter = Depends(get_payme_rate_limiter),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    service = PaymeMerchantService(
        session,
        settings=settings,
        provider=settings.click_provider,
        allow_cancel_after_perform=settings.click_allow_cancel_after_perform,
    )
    return await _gateway_callback(
        request,
        dispatcher=ClickDispatcher(service, audit=PaymentAuditTrail(session)),
        limiter=limiter,
        settings=settings,
        login=settings.click_merchant_login,
        key=settings.click_merchant_key,
    )


@router.post("/checkout", response_model=CheckoutRead, summary="Create a hosted checkout link for a plan")
def create_checkout(
    payload: CheckoutRequest,
    session: Session = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
    principal: AuthenticatedPrincipal = Depends(require_role("patient", "doctor", "admin")),
) -> CheckoutRead:
    if SqlPrincipalStore(session).get_by_id(principal.user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    try:
        link = build_checkout_link(user_id=principal.user_id, plan=payload.plan_id, settings=settings)
    except InvalidPlanError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid plan") from exc
    except CheckoutNotConfiguredError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info("checkout link issued", extra={"user_id": principal.user_id, "plan": payload.plan_id})
    return CheckoutRead.model_validate(link)


__all__ = ["click_callback", "client_source_key", "create_checkout", "payme_callback", "router"]
