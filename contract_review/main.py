from __future__ import annotations

import logging
import os
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from contract_review.errors import ApiError
from contract_review.routes import accounts, chat, contracts, reviews
from contract_review.routes._deps import error_response, request_id_from_request, trace_id_from_request
from contract_review.schemas import success_envelope
from contract_review.security import (
    JwtSecurityConfig,
    identity_from_headers,
    parse_and_validate_bearer_token,
    redact_sensitive,
)

logger = logging.getLogger(__name__)

_PUBLIC_PATHS = ("/api/v1/health", "/api/v1/public-reports/")


def _requires_identity(path: str) -> bool:
    return path.startswith("/api/v1/") and not path.startswith(_PUBLIC_PATHS)


def create_app() -> FastAPI:
    app = FastAPI(title="Contract Review Ledger API", version="0.1.0")
    security_cfg = JwtSecurityConfig.from_env()
    app.state.security_cfg = security_cfg
    cors_origins = os.environ.get("CORS_ALLOW_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173")
    allow_origins = [x.strip() for x in cors_origins.split(",") if x.strip()]
    if allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _log_security_blocked(request: Request, *, code: str, detail: str) -> None:
        headers_obj = dict(request.headers.items())
        headers_payload = redact_sensitive(headers_obj) if security_cfg.log_redaction_enabled else headers_obj
        logger.warning(
            "security_blocked code=%s detail=%s path=%s trace_id=%s headers=%s",
            code,
            detail,
            request.url.path,
            trace_id_from_request(request),
            headers_payload,
        )

    @app.middleware("http")
    async def add_trace_id(request: Request, call_next):
        incoming_trace_id = request.headers.get("x-trace-id", "").strip()
        request.state.trace_id = incoming_trace_id or uuid.uuid4().hex
        request.state.request_id = request.headers.get("x-request-id", f"req_{uuid.uuid4().hex[:12]}")
        request.state.identity = None
        try:
            if _requires_identity(request.url.path):
                if security_cfg.enabled:
                    auth_ctx = parse_and_validate_bearer_token(
                        authorization=request.headers.get("Authorization"),
                        cfg=security_cfg,
                    )
                    request.state.identity = auth_ctx.identity()
                else:
                    request.state.identity = identity_from_headers(
                        account_id=request.headers.get("x-account-id"),
                        role=request.headers.get("x-account-role"),
                    )
            response = await call_next(request)
        except ApiError as exc:
            _log_security_blocked(request, code=exc.code, detail=exc.message)
            response = error_response(
                request,
                code=exc.code,
                message=exc.message,
                error_class=exc.error_class,
                retryable=exc.retryable,
                status_code=exc.http_status,
            )
        response.headers["x-trace-id"] = trace_id_from_request(request)
        response.headers["x-request-id"] = request_id_from_request(request)
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        if exc.code in {"AUTH_UNAUTHORIZED", "AUTH_FORBIDDEN"}:
            _log_security_blocked(request, code=exc.code, detail=exc.message)
        return error_response(
            request,
            code=exc.code,
            message=exc.message,
            error_class=exc.error_class,
            retryable=exc.retryable,
            status_code=exc.http_status,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return error_response(
            request,
            code="REQ_VALIDATION_FAILED",
            message="invalid payload",
            error_class="validation",
            retryable=False,
            status_code=400,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(
                request,
                code="REQ_NOT_FOUND",
                message="resource not found",
                error_class="validation",
                retryable=False,
                status_code=404,
            )
        return error_response(
            request,
            code="REQ_HTTP_ERROR",
            message=str(exc.detail),
            error_class="validation",
            retryable=False,
            status_code=exc.status_code,
        )

    @app.get("/healthz")
    def healthz(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, trace_id_from_request(request))

    @app.get("/api/v1/health")
    def health_api(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, trace_id_from_request(request))

    app.include_router(contracts.router)
    app.include_router(reviews.router)
    app.include_router(chat.router)
    app.include_router(accounts.router)
    return app


app = create_app()
