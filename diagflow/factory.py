"""Application factory for creating FastAPI instances."""

from datetime import datetime
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .config import AppConfig, get_config, validate_config
from .core.logging import setup_logging, get_logger
from .core.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from .core.session_manager import SessionManager
from .storage.database import create_database_engine
from .storage.workflow_store import SqlWorkflowStore, WorkflowStore
from .api.endpoints import router, init_dependencies


class ApplicationState:
    """Container for application state and components."""

    def __init__(self):
        self.config: Optional[AppConfig] = None
        self.workflow_store: Optional[WorkflowStore] = None
        self.session_manager: Optional[SessionManager] = None
        self.started_at: Optional[datetime] = None


# Global application state
app_state = ApplicationState()


def initialize_components(config: AppConfig, workflow_store: Optional[WorkflowStore] = None) -> tuple:
    """Create the workflow store (creating tables) and the session manager."""
    logger = get_logger(__name__)
    if workflow_store is None:
        engine = create_database_engine(
            config.database_url,
            echo=config.database_echo,
            connect_args=config.get_database_connect_args()
        )
        workflow_store = SqlWorkflowStore(engine)
        logger.info("Database tables created")

    session_manager = SessionManager(max_active_sessions=config.max_active_sessions)
    logger.info("Core components initialized")
    return workflow_store, session_manager


def create_lifespan_handler(config: AppConfig, workflow_store: Optional[WorkflowStore] = None):
    """Create application lifespan handler."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.log_structured,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count
        )
        logger = get_logger(__name__)
        logger.info(f"Starting {config.app_name} v{config.app_version}")

        try:
            store, session_manager = initialize_components(config, workflow_store)
        except Exception as e:
            logger.error(f"Application startup failed: {e}")
            raise

        app_state.config = config
        app_state.workflow_store = store
        app_state.session_manager = session_manager
        app_state.started_at = datetime.utcnow()
        init_dependencies(workflow_store=store, session_manager=session_manager)
        logger.info("Application startup completed successfully")

        yield

        logger.info(f"Shutting down {config.app_name}; discarding {len(session_manager)} live session(s)")
        for info in session_manager.list_sessions():
            session_manager.discard_session(info.session_id)

    return lifespan


def create_app(config: Optional[AppConfig] = None, workflow_store: Optional[WorkflowStore] = None) -> FastAPI:
    """
    Create and configure FastAPI application instance.

    Args:
        config: Application configuration; loaded from the environment when omitted
        workflow_store: Store to use instead of the configured database
    """
    if config is None:
        config = get_config()

    validate_config(config)

    app = FastAPI(
        title=config.app_name,
        description="Guided diagnostic workflows: author, validate, store and step through troubleshooting procedures",
        version=config.app_version,
        debug=config.debug,
        lifespan=create_lifespan_handler(config, workflow_store)
    )

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=config.cors_methods,
            allow_headers=["*"],
        )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)

    app.include_router(router)

    add_health_endpoints(app, config)

    return app


def add_health_endpoints(app: FastAPI, config: AppConfig) -> None:
    """Add health check endpoints to the application."""

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {"message": f"{config.app_name} is running", "version": config.app_version}

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint."""
        return {
            "status": "healthy",
            "service": config.app_name.lower().replace(" ", "-"),
            "version": config.app_version,
            "active_sessions": len(app_state.session_manager) if app_state.session_manager else 0
        }


def get_app_state() -> ApplicationState:
    """Get the current application state."""
    return app_state
