"""Main FastAPI application for the diagnostic workflow engine."""

from diagflow.factory import create_app

# Configuration comes from DIAGFLOW_* environment variables
app = create_app()


if __name__ == "__main__":
    import uvicorn
    from diagflow.config import get_config

    uvicorn.run(app, **get_config().get_uvicorn_config())
