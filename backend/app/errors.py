"""Map core marketplace errors onto HTTP responses."""

from fastapi import Request
from fastapi.responses import JSONResponse

from tasklynk.errors import ErrorCode, GatewayError, MarketplaceError

from .logging_config import get_logger

logger = get_logger("tasklynk.api.errors")

STATUS_BY_CODE = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.CONFLICT: 409,
    ErrorCode.PAYMENT_REQUIRED: 402,
    ErrorCode.SUBMISSION_INCOMPLETE: 422,
    ErrorCode.AMOUNT_MISMATCH: 422,
    ErrorCode.AMOUNT_BELOW_MINIMUM: 422,
    ErrorCode.UNKNOWN_SERVICE: 422,
    ErrorCode.GATEWAY_ERROR: 502,
    ErrorCode.INVALID_SIGNATURE: 401,
}


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Render a MarketplaceError as ``{"detail": {"code", "message", ...}}``."""
    status_code = STATUS_BY_CODE.get(exc.code, 400)
    body = exc.to_dict()
    if isinstance(exc, GatewayError) and exc.payment is not None:
        body["payment"] = exc.payment.to_dict()

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed | code={exc.code.value} | {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} refused | code={exc.code.value}")
    return JSONResponse(status_code=status_code, content={"detail": body})
