import time
from datetime import datetime
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import MongoConnection
from app.routes import analytics_routes, gallery_routes, project_routes
from app.services.analytics_service import AnalyticsAggregator
from app.services.project_service import ProjectService
from app.utils.exceptions import register_exception_handlers
from app.utils.logger import logger

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.started_at = time.monotonic()
    await app.state.mongo.connect()
    logger.info(f"Server starting (environment: {settings.environment})")
    yield
    app.state.mongo.close()


def create_app(mongo: MongoConnection = None) -> FastAPI:
    app = FastAPI(title="App Builder API", version=VERSION, lifespan=lifespan)

    app.state.mongo = mongo or MongoConnection(settings)
    app.state.started_at = time.monotonic()
    app.state.analytics = AnalyticsAggregator()
    app.state.projects = ProjectService()

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path} - Origin: {request.headers.get('origin')}")
        return await call_next(request)

    register_exception_handlers(app)

    # Include Routers
    app.include_router(project_routes.router)
    app.include_router(gallery_routes.router)
    app.include_router(analytics_routes.router)

    @app.get("/")
    async def root():
        return {
            "message": "App Builder API",
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "version": VERSION,
        }

    @app.get("/health")
    async def health_check(request: Request):
        db_status = await request.app.state.mongo.ping()
        return {
            "status": "healthy",
            "database": db_status,
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=settings.port, reload=not settings.is_production)
