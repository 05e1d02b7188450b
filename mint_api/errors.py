"""Failure categories raised while acquiring images and minting tokens.

Every error carries a short ``detail`` that is safe to return to an HTTP
caller. The FastAPI app maps each category to a status code through
``register_exception_handlers``.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger("mint_api.errors")


class MintError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InputMissing(MintError):
    """A required field or the image itself was not supplied."""

    status_code = 422


class InvalidLocator(InputMissing):
    """A string image is not a ``scheme://identifier`` content locator."""


class IOFailure(MintError):
    """Reading the local image failed."""


class NetworkFailure(MintError):
    """The storage service, chain node or backend could not be reached."""

    status_code = status.HTTP_502_BAD_GATEWAY


class RemoteOperationFailure(MintError):
    """A remote collaborator answered but refused or failed the operation."""

    status_code = status.HTTP_502_BAD_GATEWAY


class UploadTooLarge(MintError):
    status_code = 413


class MinterNotConfigured(MintError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def _handle_mint_error(request: Request, exc: MintError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "mint_error",
        extra={
            "path": request.url.path,
            "status_code": exc.status_code,
            "error_type": type(exc).__name__,
            "error": exc.detail,
        },
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MintError, _handle_mint_error)
