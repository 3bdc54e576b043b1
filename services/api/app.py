from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from roomhub.config import get_settings
from roomhub.database import Base, engine
from roomhub.dependencies import build_services
from roomhub.error_handlers import register_exception_handlers
from roomhub.logging_middleware import add_audit_middleware, configure_logging
from roomhub.rate_limit import apply_rate_limiter
from services.api.routers import bookings, dashboard, events, rooms, users


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    settings = get_settings()
    if settings.store_backend == "sql" and settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    services = build_services(settings)
    if settings.store_backend == "sql" and settings.seed_sample_rooms:
        services.store.seed()
    fastapi_app.state.services = services
    yield
    # drain every live notification channel before the process exits
    services.registry.close_all()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()
    fastapi_app = FastAPI(title="Room Hub", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(fastapi_app)
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "api")
    if settings.metrics_enabled:
        Instrumentator().instrument(fastapi_app).expose(fastapi_app)

    fastapi_app.include_router(users.router)
    fastapi_app.include_router(rooms.router)
    fastapi_app.include_router(bookings.router)
    fastapi_app.include_router(dashboard.router)
    fastapi_app.include_router(events.router)

    @fastapi_app.get("/health", tags=["health"])
    def health() -> dict[str, str]:
        return {"status": "ok", "service": "roomhub"}

    return fastapi_app


app = create_app()
