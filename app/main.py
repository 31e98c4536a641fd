from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import AsyncSessionLocal, init_db
from app.features.users.routes import router as user_router
from app.features.groups.routes import router as group_router
from app.features.permissions.routes import router as permission_router, roles_router
from app.features.permissions.catalog import seed_catalog
from app.features.permissions.services import grant_global_admin
from app.features.permissions.exceptions import PermissionDenied, ResolutionFailed, UnknownPermissionCode
from app.features.dashboard.routes import router as dashboard_router
from app.features.users.dependencies import get_authorization_header
from app.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Gestion Backend",
    description="Multi-tenant business management API with group-scoped permissions",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(key_func=get_authorization_header)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.app.features."), timing=timing, tags=tags))


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


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.exception_handler(PermissionDenied)
async def permission_denied_handler(request: Request, exc: PermissionDenied) -> Response:
    log.info("Forbidden %s %s: %s", request.method, request.url.path, exc.permission_code)
    return JSONResponse({"message": exc.message}, status_code=403)


@app.exception_handler(ResolutionFailed)
async def resolution_failed_handler(request: Request, exc: ResolutionFailed) -> Response:
    log.error("Permission resolution failed on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"message": "Error al verificar permisos"}, status_code=500)


@app.exception_handler(UnknownPermissionCode)
async def unknown_permission_code_handler(_request: Request, exc: UnknownPermissionCode) -> Response:
    return JSONResponse({"message": f"Permiso no encontrado: {exc.permission_code}"}, status_code=404)


@app.on_event("startup")
async def startup():
    """Create tables and seed the permission catalog."""
    if not config.SEED_ON_STARTUP:
        return
    log.info("Initializing database...")
    await init_db()
    async with AsyncSessionLocal() as session:
        await seed_catalog(session)
        if config.ADMIN_EMAIL:
            await grant_global_admin(session, config.ADMIN_EMAIL)
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Gestion Backend API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(user_router, prefix="/users", tags=["users"])
app.include_router(group_router, prefix="/groups", tags=["groups"])
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
app.include_router(roles_router, prefix="/roles", tags=["roles"])
app.include_router(dashboard_router, prefix="/dashboard", tags=["dashboard"])
