import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from token_broker.api import health
from token_broker.api.deps import build_broker
from token_broker.api.endpoints import token
from token_broker.core.cache import cache_service
from token_broker.core.config import Settings, settings
from token_broker.core.metrics import PrometheusMiddleware, metrics_endpoint

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{app.title} ready (issuer={settings.OIDC_ISSUER}, audience={settings.OIDC_AUDIENCE})")
    yield
    await cache_service.close()


def create_app(cfg: Settings = settings) -> FastAPI:
    logging.basicConfig(
        level=cfg.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title=cfg.PROJECT_NAME,
        description="""
    Exchanges GitHub Actions OIDC identity tokens for short-lived GitHub App
    installation tokens scoped to a single repository.
    """,
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.broker = build_broker(cfg)

    app.add_middleware(PrometheusMiddleware)
    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(token.router, prefix="/api/github", tags=["token"])
    app.add_route("/metrics", metrics_endpoint, include_in_schema=False)

    return app


app = create_app()
