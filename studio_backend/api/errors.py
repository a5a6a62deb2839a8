from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core import errors


async def studio_error_handler(_: Request, exc: errors.StudioError) -> JSONResponse:
    content = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, errors.ValidationError):
        content["errors"] = exc.errors
    if isinstance(exc, errors.CancellationTooLate):
        content["required_hours"] = exc.required_hours
        content["shortfall_hours"] = exc.shortfall_hours
    return JSONResponse(status_code=exc.status_code, content=content)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(errors.StudioError, studio_error_handler)
