from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from siteaudit.api.v1 import api_router
from siteaudit.core.config import settings
from siteaudit.core.logging_config import configure_logging, correlation_id_ctx_var
from siteaudit.core.sentry import init_sentry
from siteaudit.middleware import RequestLoggingMiddleware
from siteaudit.schemas.error import ErrorResponse


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    init_sentry(with_fastapi=True)
    tags_metadata = [
        {"name": "audits", "description": "Site audits run against the live site"},
        {"name": "health", "description": "Liveness and readiness probes"},
        {"name": "metrics", "description": "Process counters"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
        swagger_ui_parameters={"displayRequestDuration": True},
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(detail=exc.detail, code=None, correlation_id=correlation_id_ctx_var.get())
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(payload.model_dump()))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        payload = ErrorResponse(detail=errors, code="validation_error", correlation_id=correlation_id_ctx_var.get())
        return JSONResponse(status_code=422, content=payload.model_dump())

    return app


app = get_application()
