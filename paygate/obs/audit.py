"""Request audit middleware with masked bodies and optional S3 archival."""
from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore[import-untyped]
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from paygate.core.config import Settings

_SENSITIVE_KEYS = {
    "authorization",
    "card",
    "card_number",
    "email",
    "password",
    "phone",
    "phone_number",
    "token",
}


def mask_payload(value: Any) -> Any:
    """Return a copy of ``value`` with sensitive keys and value shapes hidden."""
    if isinstance(value, dict):
        masked: dict[str, Any] = {}
        for key, item in value.items():
            if str(key).lower() in _SENSITIVE_KEYS:
                masked[key] = f"***{item[-4:]}" if isinstance(item, str) and len(item) > 4 else "***"
            else:
                masked[key] = mask_payload(item)
        return masked
    if isinstance(value, list):
        return [mask_payload(item) for item in value]
    if isinstance(value, str) and "@" in value:
        name, _, domain = value.partition("@")
        hidden = name[0] + "***" if name else "***"
        return f"{hidden}@{domain}" if domain else "***@***"
    return value


@dataclass(slots=True)
class AuditLogRecord:
    """Structured log entry emitted by the middleware."""

    timestamp: str
    request_id: str
    method: str
    path: str
    status: int
    duration_ms: float
    ip_address: str | None
    body: Any

    def to_json(self) -> str:
        payload = asdict(self)
        payload["duration_ms"] = round(self.duration_ms, 2)
        return json.dumps(payload, default=str)


class AuditMiddleware(BaseHTTPMiddleware):
    """Assigns request ids and emits one masked audit record per request."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        settings: Settings,
        logger: logging.Logger | None = None,
        s3_client_factory: Callable[[], Any] | None = None,
    ) -> None:
        super().__init__(app)
        self._settings = settings
        self._logger = logger or logging.getLogger("audit")
        self._s3_client_factory = s3_client_factory or self._default_client_factory
        self._s3_client: Any | None = None

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        body_bytes = await request.body()
        masked_body: Any = None
        if body_bytes:
            try:
                masked_body = mask_payload(json.loads(body_bytes))
            except (json.JSONDecodeError, UnicodeDecodeError):
                masked_body = "<unparseable>"

        response = await call_next(request)

        record = AuditLogRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=(time.perf_counter() - start) * 1000,
            ip_address=request.client.host if request.client else None,
            body=masked_body,
        )
        self._logger.info(record.to_json())
        self._archive(record)

        response.headers["X-Request-ID"] = request_id
        return response

    def _default_client_factory(self) -> Any:
        return boto3.client(
            "s3",
            region_name=self._settings.aws_region,
            endpoint_url=self._settings.s3_endpoint_url,
        )

    def _archive(self, record: AuditLogRecord) -> None:
        bucket = self._settings.audit_log_bucket
        if not bucket:
            return
        prefix = self._settings.audit_log_prefix.rstrip("/")
        now = datetime.now(timezone.utc)
        key = f"{prefix}/{now:%Y/%m/%d}/{record.request_id}.json"
        try:
            if self._s3_client is None:
                self._s3_client = self._s3_client_factory()
            self._s3_client.put_object(
                Bucket=bucket,
                Key=key,
                Body=record.to_json().encode("utf-8"),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - S3 connectivity issues
            self._logger.error("failed to archive audit record", extra={"error": str(exc), "key": key})


__all__ = ["AuditLogRecord", "AuditMiddleware", "mask_payload"]
