from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from papierkraken.errors import IngestError
from papierkraken.logging.logger import Log


async def ingest_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, IngestError)
    status_code = exc.status_code or 500
    if status_code >= 500:
        Log.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        Log.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={"message": exc.message, "error": type(exc).__name__},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IngestError, ingest_error_handler)
