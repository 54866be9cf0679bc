"""
Error taxonomy and the JSON handlers that render it.

Every error carries the HTTP status it maps to and a public message that is
safe to hand back to the caller. Internal detail stays in the server logs.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PaySyncError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidInput(PaySyncError):
    status_code = 400
    message = "Invalid request"


class InvalidAmount(InvalidInput):
    message = "Invalid amount"


class MalformedRequest(InvalidInput):
    message = "Invalid request"


class MalformedPayload(InvalidInput):
    message = "Invalid payload"


class MissingSignature(InvalidInput):
    message = "Missing signature"


class InvalidSignature(PaySyncError):
    # no hint about why it mismatched
    status_code = 400
    message = "Invalid signature"


class MissingUserCorrelation(PaySyncError):
    status_code = 400
    message = "Missing user correlation"


class GatewayError(PaySyncError):
    """Remote order creation failed; message is the gateway's user-safe description."""

    status_code = 500
    message = "Payment gateway error"


class Unauthorized(PaySyncError):
    status_code = 401
    message = "Unauthorized"


class PaymentNotFound(PaySyncError):
    status_code = 404
    message = "Payment not found"


async def paysync_error_handler(request: Request, exc: PaySyncError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    else:
        logger.warning("%s on %s", type(exc).__name__, request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation failed on %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"message": MalformedRequest.message})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(status_code=500, content={"message": PaySyncError.message})


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(PaySyncError, paysync_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
