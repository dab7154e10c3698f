# wasteroute/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wasteroute.core.config import settings
from wasteroute.core.errors import ServiceError
from wasteroute.deps import get_repo
from wasteroute.routers import admin, auth, collections, notifications, routes
from wasteroute.services.users import ensure_admin

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("wasteroute")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # honour test overrides so startup works against the same store
    repo = app.dependency_overrides.get(get_repo, get_repo)()
    await repo.ensure_indexes()
    await ensure_admin(repo)
    logger.info("%s started (storage=%s)", settings.app_name, settings.storage)
    yield
    await repo.close()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    body = exc.to_body()
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
        if settings.environment == "production":
            body = {"detail": "Internal server error"}
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err["loc"] if p != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    detail = "Internal server error" if settings.environment == "production" else str(exc)
    return JSONResponse(status_code=500, content={"detail": detail})


app.include_router(auth.router)
app.include_router(collections.router)
app.include_router(routes.router)
app.include_router(admin.router)
app.include_router(notifications.router)


@app.get("/health")
async def health():
    return {"status": "ok", "storage": settings.storage}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("wasteroute.main:app", host="0.0.0.0", port=8000, reload=settings.environment == "development")
