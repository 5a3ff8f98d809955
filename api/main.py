import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, status
from fastapi.responses import HTMLResponse, JSONResponse


# Load environment variables from .env file
PROJECT_ROOT = Path(__file__).parent.parent
ENV_FILE = PROJECT_ROOT / ".env"
load_dotenv(ENV_FILE)

from api.config import settings
from api.dependencies.services import CoreServices, build_services
from api.routers.api_v1.api import api_router
from api.utils.errors import qchain_error_handler
from api.utils.security import generate_api_key
from qchain_offchain.errors import QChainError


logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(services: CoreServices | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Pre-built wallet core (tests); built from settings on startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Builds the wallet core and silently restores the last session.
        """
        # Startup
        print("\n" + "=" * 60)
        print(f"🚀 Starting {settings.api_title} v{settings.api_version}")
        print("=" * 60)
        print(f"Environment: {settings.environment}")
        print(f"API Key configured: {'Yes' if settings.api_key_dev else 'No'}")

        core = services or build_services(settings)
        app.state.services = core

        network = core.sessions.selected_network
        print(f"Default network: {network.display_name} ({network.chain_key})")
        print(f"Hash service: {core.hash_client.base_url}")

        try:
            restored = await core.sessions.reconnect_session()
        except QChainError as e:
            logger.warning(f"Session restore failed: {e.message}")
            restored = None
        if restored is not None:
            print(f"✅ Restored wallet session {restored.address}")
        else:
            print("ℹ️  No wallet session restored")

        print(f"\n📚 API Documentation: http://127.0.0.1:{settings.api_port}/docs")
        print("=" * 60 + "\n")

        yield  # Application runs here

        # Shutdown
        print("\n" + "=" * 60)
        print("🛑 Shutting down API")
        print("=" * 60 + "\n")

    app = FastAPI(
        title=settings.api_title,
        description=settings.api_description,
        version=settings.api_version,
        contact=settings.contact,
        lifespan=lifespan,
    )
    app.add_exception_handler(QChainError, qchain_error_handler)

    @app.get("/")
    async def root():
        """Basic HTML response."""
        body = (
            "<html>"
            "<body style='padding: 10px;'>"
            "<h1>Welcome to the QChain Wallet API</h1>"
            "<div>"
            "Check the docs: <a href='/docs'>here</a>"
            "</div>"
            "</body>"
            "</html>"
        )

        return HTMLResponse(content=body)

    @app.get("/generate-api-key")
    async def get_new_api_key():
        """Fresh random API key; only served in development"""
        if not settings.is_development:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
        api_key = generate_api_key()

        return {"api_key": api_key}

    @app.get("/health")
    async def health_check():
        """
        Health check endpoint.

        Returns:
            - status: "healthy" when the API is up
            - session: wallet session state
            - hash_service: whether the hash service answers
        """
        core: CoreServices = app.state.services
        hash_service_up = await core.hash_client.check_health()
        health_status = {
            "status": "healthy",
            "api_version": settings.api_version,
            "environment": settings.environment,
            "session": core.sessions.state.value,
            "hash_service": {"url": core.hash_client.base_url, "healthy": hash_service_up},
        }
        return JSONResponse(content=health_status, status_code=200)

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
