"""Envelope validation and routing for the gateway merchant APIs.

Payme speaks a JSON-RPC style envelope with a numeric ``id`` echoed back on
every response. Click posts ``{method, params}`` with snake_case method names
and expects a flat ``{error, error_note}`` body on failure. Both route into the
same :class:`PaymeMerchantService` state machine.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from numbers import Real
from typing import Any

from paygate.obs import mark_span_error, payme_span, record_payme_call
from paygate.services.audit_trail import PaymentAuditTrail
from paygate.services.errors import (
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    PaymeError,
)
from paygate.services.transactions import PaymeMerchantService

logger = logging.getLogger(__name__)

MethodHandler = Callable[[Mapping[str, Any]], dict[str, Any]]

UNKNOWN_METHOD = "unknown"


def _is_request_id(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def echo_request_id(body: Any) -> int | float:
    """Return the envelope ``id`` when it is a finite number, else ``0``."""
    if isinstance(body, dict):
        request_id = body.get("id")
        if _is_request_id(request_id):
            return request_id
    return 0


def error_envelope(error: PaymeError, request_id: int | float) -> dict[str, Any]:
    return {"error": error.to_error(), "id": request_id}


class PaymeDispatcher:
    """Routes a decoded request body to the merchant method handlers."""

    protocol = "payme"

    def __init__(self, service: PaymeMerchantService, *, audit: PaymentAuditTrail | None = None) -> None:
        self._handlers = self._build_handlers(service)
        self._audit = audit

    @staticmethod
    def _build_handlers(service: PaymeMerchantService) -> dict[str, MethodHandler]:
        return {
            "CheckPerformTransaction": service.check_perform_transaction,
            "CreateTransaction": service.create_transaction,
            "PerformTransaction": service.perform_transaction,
            "CancelTransaction": service.cancel_transaction,
            "CheckTransaction": service.check_transaction,
        }

    @property
    def methods(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    def result_response(self, result: dict[str, Any], body: Any) -> dict[str, Any]:
        return {"result": result, "id": echo_request_id(body)}

    def error_response(self, error: PaymeError, body: Any) -> dict[str, Any]:
        return error_envelope(error, echo_request_id(body))

    def dispatch(
        self,
        body: Any,
        *,
        request_id: str | None = None,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        method_label = UNKNOWN_METHOD
        params: Any = None
        error_code: int | None = None

        try:
            method, params = self._validate_envelope(body)
            handler = self._handlers.get(method)
            if handler is None:
                raise MethodNotFoundError()
            method_label = method
            response = self.result_response(self._invoke(method, handler, params, request_id), body)
        except PaymeError as exc:
            error_code = exc.code
            logger.info(
                "merchant call rejected",
                extra={
                    "protocol": self.protocol,
                    "method": method_label,
                    "code": exc.code,
                    "error_message": exc.message,
                },
            )
            response = self.error_response(exc, body)
        except Exception:
            error_code = InternalError.code
            logger.exception("merchant call failed", extra={"protocol": self.protocol, "method": method_label})
            response = self.error_response(InternalError(), body)

        record_payme_call(method_label, error_code)
        if self._audit is not None:
            self._audit.record(
                method=method_label,
                params=params,
                error_code=error_code,
                request_id=request_id,
                ip_address=ip_address,
            )
        return response

    def _invoke(
        self,
        method: str,
        handler: MethodHandler,
        params: Mapping[str, Any],
        request_id: str | None,
    ) -> dict[str, Any]:
        transaction_id = params.get("id")
        with payme_span(
            method,
            request_id=request_id,
            transaction_id=transaction_id if isinstance(transaction_id, str) else None,
        ) as span:
            try:
                return handler(params)
            except PaymeError as exc:
                mark_span_error(span, exc.code, exc.message)
                raise

    def _validate_envelope(self, body: Any) -> tuple[str, dict[str, Any]]:
        if not isinstance(body, dict):
            raise InvalidRequestError()
        method = body.get("method")
        if not isinstance(method, str) or not method:
            raise InvalidRequestError()
        if not _is_request_id(body.get("id")):
            raise InvalidRequestError()
        return method, self._validate_params(body.get("params"))

    @staticmethod
    def _validate_params(params: Any) -> dict[str, Any]:
        if params is None:
            return {}
        if not isinstance(params, dict):
            raise InvalidParamsError()
        return params


class ClickDispatcher(PaymeDispatcher):
    """Click webhook flavour: snake_case methods, no envelope id, flat errors."""

    protocol = "click"

    @staticmethod
    def _build_handlers(service: PaymeMerchantService) -> dict[str, MethodHandler]:
        return {
            "check_transaction": service.check_transaction,
            "create_transaction": service.create_transaction,
            "perform_transaction": service.perform_transaction,
            "cancel_transaction": service.cancel_transaction,
        }

    def result_response(self, result: dict[str, Any], body: Any) -> dict[str, Any]:
        return {"result": result}

    def error_response(self, error: PaymeError, body: Any) -> dict[str, Any]:
        return {"error": error.code, "error_note": error.message}

    def _validate_envelope(self, body: Any) -> tuple[str, dict[str, Any]]:
        if not isinstance(body, dict):
            raise InvalidRequestError()
        method = body.get("method")
        if not isinstance(method, str) or not method:
            raise InvalidRequestError()
        return method, self._validate_params(body.get("params"))


__all__ = ["ClickDispatcher", "PaymeDispatcher", "echo_request_id", "error_envelope"]
