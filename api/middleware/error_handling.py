from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from core.logging import get_api_logger_safe
from core.utils.exceptions import OrderNotFoundError, ValidationError

from api.schemas.responses import ErrorResponse

logger = get_api_logger_safe("api.middleware.error_handling")


def _error(status_code: int, error: str, message: str, details=None) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, details=details)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body, exclude_none=True))


async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(400, "Invalid order request", exc.message,
                  details={"field": exc.field})


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or "body"
    return _error(400, "Invalid order request", first.get("msg", "Malformed request"),
                  details={"field": field})


async def order_not_found_handler(request: Request, exc: OrderNotFoundError):
    return _error(404, "Order not found", exc.message, details={"orderId": exc.order_id})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled API exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=exc,
    )
    metrics = getattr(request.app.state, "metrics", None)
    if metrics is not None:
        metrics.record_error("api", type(exc).__name__)
    return _error(500, "Internal server error", str(exc))


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors onto HTTP status codes"""
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(OrderNotFoundError, order_not_found_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
