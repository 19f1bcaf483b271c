from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..core.errors import InvalidAmountError, StorageError, UsernameRequiredError


logger = logging.getLogger(__name__)


def _error(status_code: int, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": code})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(UsernameRequiredError)
    async def username_required_handler(
        request: Request, exc: UsernameRequiredError
    ) -> JSONResponse:
        return _error(400, exc.code)

    @app.exception_handler(InvalidAmountError)
    async def invalid_amount_handler(
        request: Request, exc: InvalidAmountError
    ) -> JSONResponse:
        return _error(400, exc.code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error(400, "INVALID_REQUEST")

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.exception(
            "storage.failure",
            exc_info=exc,
            extra={"path": request.url.path},
        )
        return _error(500, exc.code)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "request.failure",
            exc_info=exc,
            extra={"path": request.url.path},
        )
        return _error(500, "SERVER_ERROR")
