"""
Translation of service-layer exceptions into JSON error responses:

```
{"error": "already_member", "message": "bob@example.com is already a member of this group"}
```

Call `add_exception_handlers` on the app at startup, lest every refused action
come back as a 500.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from structlog import get_logger

from gearshare.core.errors import GearShareError
from gearshare.core.models import ErrorResponse


async def gearshare_error_handler(request: Request, exc: GearShareError):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.kind, message=exc.message).model_dump(),
    )


async def unexpected_error_handler(request: Request, exc: Exception):
    log = get_logger()
    await log.aexception(
        "api.unhandled_exception", path=request.url.path, method=request.method
    )

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=GearShareError.kind, message="An unexpected error occurred"
        ).model_dump(),
    )


def add_exception_handlers(app: FastAPI) -> FastAPI:
    app.add_exception_handler(GearShareError, gearshare_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
    return app
