# authcore/app.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from authcore.api.dependencies import get_api_key
from authcore.api.endpoints import auth, mgmt
from authcore.container import Container, build_container
from authcore.core.config import Settings, get_settings
from authcore.core.exceptions import DurableStoreError, UnauthorizedError
from authcore.core.logging import setup_logging

api_prefix = "/api/v1"


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.container = container or build_container(settings)
        if not await app.state.container.store.ping():
            # Sem Redis o serviço continua, só que sempre pelo caminho lento
            logger.warning("Redis indisponível na inicialização; operando sem cache.")
        yield
        logger.info("Shutting down: closing Redis pool and disposing database engine...")
        await app.state.container.close()

    app = FastAPI(
        title="AuthCore",
        description="Núcleo de sessões e ciclo de vida de credenciais",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(request: Request, exc: UnauthorizedError):
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": exc.message},
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(DurableStoreError)
    async def durable_store_handler(request: Request, exc: DurableStoreError):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Serviço temporariamente indisponível. Tente novamente."},
            headers={"Retry-After": "1"},
        )

    # --- Router de Autenticação ---
    # /login, /refresh e /logout são públicos; /me e /logout-all exigem Bearer
    app.include_router(auth.router, prefix=f"{api_prefix}/auth", tags=["Authentication"])

    # --- Router de Gerenciamento ---
    # Protegido APENAS pela chave de API
    app.include_router(
        mgmt.router,
        prefix=f"{api_prefix}/mgmt",
        tags=["Management"],
        dependencies=[Depends(get_api_key)],
    )

    @app.get("/")
    def read_root():
        return {"message": "AuthCore is running!"}

    return app
