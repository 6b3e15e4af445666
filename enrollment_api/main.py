from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse

from enrollment_api.domain.errors import EnrollmentError, ErrorKind
from enrollment_api.logging import setup_logging
from enrollment_api.routes import health, registrations, webhooks
from enrollment_api.utils.security import require_basic_auth

setup_logging()
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.GATEWAY_TRANSIENT: 502,
    ErrorKind.GATEWAY_SEMANTIC: 400,
}

app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(registrations.router)
app.include_router(webhooks.router)


@app.exception_handler(EnrollmentError)
async def enrollment_error_handler(request: Request, exc: EnrollmentError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.kind, 400)
    logger.info(
        "request failed",
        extra={
            "endpoint": request.url.path,
            "method": request.method,
            "response_code": status_code,
            "error_code": exc.code,
            "error": exc.message,
        },
    )
    return JSONResponse(status_code=status_code, content=exc.to_response())


@app.get("/openapi.json", include_in_schema=False)
def custom_openapi(_: None = Depends(require_basic_auth)):
    return JSONResponse(content=app.openapi())


@app.get("/docs", include_in_schema=False)
def custom_swagger_ui(_: None = Depends(require_basic_auth)):
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Enrollment API")


@app.get("/redoc", include_in_schema=False)
def custom_redoc(_: None = Depends(require_basic_auth)):
    return get_redoc_html(openapi_url="/openapi.json", title="Enrollment API ReDoc")
