"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware — catches domain exceptions -> structured JSON errors
    3. CORSMiddleware — handles the browser-based admin console
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from creator_escrow.domain.exceptions import (
    KIND_FORBIDDEN,
    KIND_INVALID,
    KIND_NOT_FOUND,
    BookingNotEligibleError,
    ConcurrentModificationError,
    InvalidTransitionError,
    MarketplaceError,
    NotEligibleError,
    PaymentNotVerifiedError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

# Precondition failures that are about the request, not about a race.
_UNPROCESSABLE = (NotEligibleError, PaymentNotVerifiedError, BookingNotEligibleError)


def status_for(exc: MarketplaceError) -> int:
    """Map a domain error to its HTTP status code."""
    if exc.kind == KIND_NOT_FOUND:
        return 404
    if exc.kind == KIND_FORBIDDEN:
        return 403
    if exc.kind == KIND_INVALID or isinstance(exc, _UNPROCESSABLE):
        return 422
    return 409


def error_body(exc: MarketplaceError) -> dict:
    return {
        "error": exc.code,
        "message": exc.message,
        "kind": exc.kind,
        "retryable": exc.retryable,
    }


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Use client-provided ID or generate one
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        # Bind to structlog context for all log entries in this request
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            actor_id=request.headers.get("X-Actor-Id"),
        )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except InvalidTransitionError as exc:
            logger.warning(
                "state_machine.invalid_transition",
                current=exc.current_state,
                attempted=exc.attempted_event,
            )
            return JSONResponse(status_code=status_for(exc), content=error_body(exc))
        except ConcurrentModificationError as exc:
            logger.warning("ledger.conflict", entity=exc.entity, entity_id=exc.entity_id)
            return JSONResponse(status_code=status_for(exc), content=error_body(exc))
        except MarketplaceError as exc:
            logger.warning("domain.error", error=exc.message, code=exc.code, kind=exc.kind)
            return JSONResponse(status_code=status_for(exc), content=error_body(exc))
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "kind": "internal",
                    "retryable": False,
                },
            )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters — middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    # CORS (runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Tighten in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handling (runs second)
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID (runs last = outermost)
    app.add_middleware(RequestIDMiddleware)
