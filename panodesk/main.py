from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from panodesk.core import config
from panodesk.core.database.engine import init_db
from panodesk.core.errors import PanoDeskError, InternalError, ValidationError
from panodesk.core.limiter import limiter
from panodesk.features.auth.routes import router as auth_router
from panodesk.features.users.routes import router as user_router
from panodesk.features.organizations.routes import router as organization_router
from panodesk.features.projects.routes import router as project_router
from panodesk.features.tours.routes import router as tour_router
from panodesk.features.comments.routes import router as comment_router
from panodesk.features.invitations.routes import router as invitation_router
from panodesk.features.permissions.routes import router as permission_router
from panodesk.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="PanoDesk API",
    description="Virtual tour review portal with role-based access and invitations",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.panodesk.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(PanoDeskError)
async def panodesk_error_handler(_request: Request, exc: PanoDeskError):
    if exc.status_code >= 500:
        log.error("%s: %s", type(exc).__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1] if error["loc"] else "root"
        if key == "__root__" or key in ("body", "query"):
            key = "root"
        errors[key] = error["msg"].removeprefix("Value error, ")
    log.info("Request validation error %s", errors)
    error = ValidationError(errors=errors)
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error.to_dict()))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"success": False, "message": "You are going too fast"}, status_code=429)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=InternalError().to_dict())


@app.on_event("startup")
async def startup():
    """Initialize database on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "PanoDesk API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require the session cookie set by /api/auth/login "
                    "(or a Bearer token in the Authorization header)",
            "public_endpoints": [
                "/api/auth/login", "/api/auth/register", "/api/auth/verify-email",
                "/api/auth/forgot-password", "/api/auth/reset-password",
                "/api/auth/verify-invitation", "/api/auth/accept-invitation",
                "/api/auth/decline-invitation",
            ],
        },
        "features": {
            "users": "User administration with four fixed roles",
            "organizations": "Organizations with a manager and members",
            "projects": "Projects with reviewers and a current tour",
            "tours": "Versioned virtual tours",
            "comments": "Tour comments with single-level replies",
            "invitations": "Token-based invitations with expiry",
            "permissions": "Static role policy and audit log",
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(user_router, prefix="/api/users", tags=["users"])
app.include_router(organization_router, prefix="/api/organizations", tags=["organizations"])
app.include_router(project_router, prefix="/api/projects", tags=["projects"])
app.include_router(tour_router, prefix="/api/tours", tags=["tours"])
app.include_router(comment_router, prefix="/api/comments", tags=["comments"])
app.include_router(invitation_router, prefix="/api/invitations", tags=["invitations"])
app.include_router(permission_router, prefix="/api/permissions", tags=["permissions"])
