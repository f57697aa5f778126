"""
FastAPI Application for the Returns Insights API.

Customer return submission with automatic categorization, and merchant
dashboards, insights and action items on top of it.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings, settings as default_settings

from auth import (
    LoginRequest,
    LoginResponse,
    SessionStore,
    authenticate_account,
    bearer_token,
    demo_user,
)
from classifier_client import ClassifierClient
from core.errors import ApiError, UnauthorizedError
from shared.database import create_db_engine, create_session_factory, init_schema
from use_cases.returns import InsightEngine, customer_router, merchant_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, default_settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Reduce SDK logging verbosity
logging.getLogger("azure.core").setLevel(logging.WARNING)
logging.getLogger("azure.identity").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)


def create_app(
    settings: Optional[Settings] = None,
    classifier: Optional[ClassifierClient] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Overrides the process-wide settings (tests pass their own)
        classifier: Overrides the classifier built from settings
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager - handles startup and shutdown."""
        logger.info("Starting Returns Insights API...")

        engine = create_db_engine(settings.database_url)
        init_schema(engine)
        app.state.db_engine = engine
        app.state.session_factory = create_session_factory(engine)
        logger.info(f"Database ready: {engine.url.render_as_string(hide_password=True)}")

        client = classifier or ClassifierClient.from_settings(settings)
        app.state.classifier = client
        app.state.insight_engine = InsightEngine(client)
        logger.info(f"Classifier configured: {client.is_configured}")

        yield

        # Cleanup
        logger.info("Shutting down...")
        await client.close()
        engine.dispose()

    app = FastAPI(
        title="Returns Insights API",
        description="Returns management with categorization, pattern insights and action items",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc"
    )
    app.state.settings = settings
    app.state.sessions = SessionStore(ttl_hours=settings.session_ttl_hours)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    register_auth_routes(app)
    app.include_router(customer_router)
    app.include_router(merchant_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "version": "1.0.0",
            "classifier_configured": app.state.classifier.is_configured
            if hasattr(app.state, "classifier") else False,
            "auth_disabled": settings.auth_disabled,
        }

    return app


# =============================================================================
# ERROR HANDLERS
# =============================================================================

def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'][1:]) or 'body'}: {error['msg']}"
            for error in exc.errors()
        )
        return JSONResponse(
            status_code=400,
            content={"error": "invalid_request", "message": details or "Invalid request"},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"error": "internal_server_error", "message": "Unexpected server error"},
        )


# =============================================================================
# AUTHENTICATION ENDPOINTS
# =============================================================================

def register_auth_routes(app: FastAPI) -> None:
    @app.post("/api/auth/login")
    async def login(body: LoginRequest, request: Request) -> LoginResponse:
        """
        Authenticate a demo account with email and password.
        Returns a session token on success.
        """
        user = authenticate_account(body.email, body.password)
        if user is None:
            raise UnauthorizedError("Invalid email or password")

        token = request.app.state.sessions.create(user)
        logger.info(f"User logged in: {user.email}")

        return LoginResponse(
            success=True,
            message="Login successful",
            token=token,
            user=user.model_dump(),
        )

    @app.post("/api/auth/logout")
    async def logout(request: Request):
        """Log out the current user by invalidating their session."""
        if request.app.state.sessions.delete(bearer_token(request)):
            return {"success": True, "message": "Logged out successfully"}
        return {"success": True, "message": "No active session"}

    @app.get("/api/auth/me")
    async def get_me(request: Request):
        """Get the current user's info."""
        if request.app.state.settings.auth_disabled:
            return {"authenticated": True, "user": demo_user(request.headers).model_dump()}

        user = request.app.state.sessions.get(bearer_token(request))
        if user is None:
            return {"authenticated": False, "user": None}
        return {"authenticated": True, "user": user.model_dump()}


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=default_settings.app_host,
        port=default_settings.app_port,
        reload=False,
        log_level=default_settings.log_level.lower()
    )
