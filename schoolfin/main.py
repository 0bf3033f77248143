import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from schoolfin.application.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from schoolfin.config import settings
from schoolfin.infrastructure.logging import bind_request_context, clear_request_context, configure_logging, get_logger
from schoolfin.interfaces.api.v1.router import api_router

logger = get_logger(__name__)

OPENAPI_DESCRIPTION = """
School finance API: permission-gated fee structures, student fee ledgers, payments, M-Pesa and audit trail.

How to call this API:
- Authenticate at `POST /api/v1/auth/token`.
- Use `Authorization: Bearer <access_token>` in protected endpoints.
- Select the active school with `POST /api/v1/current-school` (cookie `currentSchoolId`) or send `X-School-Id`.
- All amounts are integer minor units.
"""

OPENAPI_TAGS = [
    {"name": "health", "description": "Service health and connectivity checks."},
    {"name": "auth", "description": "Authentication and token issuance."},
    {"name": "context", "description": "Resolved permissions and active school selection."},
    {"name": "fee-structures", "description": "Fee structure lines and their application to classes."},
    {"name": "student-fees", "description": "Student fee rows, summaries and administrative adjustments."},
    {"name": "payments", "description": "Idempotent payment recording."},
    {"name": "mpesa", "description": "M-Pesa STK push, paybill confirmations and the review queue."},
    {"name": "audit", "description": "Append-only audit trail of privileged changes."},
]


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    logger.info("app_startup", app_name=settings.app_name, version=settings.app_version)
    yield
    logger.info("app_shutdown", app_name=settings.app_name)


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=OPENAPI_DESCRIPTION,
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    clear_request_context()
    bind_request_context(
        request_id=request.headers.get("X-Request-Id") or str(uuid.uuid4()),
        method=request.method,
        path=request.url.path,
    )
    try:
        return await call_next(request)
    finally:
        clear_request_context()


@app.get("/")
def root():
    return {"message": f"{settings.app_name} is running"}


@app.exception_handler(UnauthorizedError)
async def handle_unauthorized(_: Request, exc: UnauthorizedError):
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(ForbiddenError)
async def handle_forbidden(_: Request, exc: ForbiddenError):
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def handle_not_found(_: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def handle_conflict(_: Request, exc: ConflictError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def handle_validation(_: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


app.include_router(api_router)
