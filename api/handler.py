"""
Exception handlers for the REST routes (health, voyager, routing errors).

GraphQL execution errors never reach these: strawberry reports them in the
response's ``errors`` list. Everything else is answered with the
``{success, message, data}`` envelope.
"""
import logging
from typing import Any, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Any] = None


def error_response(status_code: int, message: str, data: dict | None = None, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse(success=False, message=message, data=data).model_dump(),
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes and wrong methods, reported with the route that was asked for."""
    data = {"method": request.method, "path": request.url.path}
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED and exc.headers:
        data["allowed"] = exc.headers.get("Allow", "")
    return error_response(exc.status_code, str(exc.detail), data, headers=exc.headers)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
