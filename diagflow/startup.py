"""Application startup script and CLI interface."""

import sys
import argparse
from pathlib import Path
from typing import List, Optional

from diagflow.config import (
    AppConfig,
    LogLevel,
    load_config,
    get_development_config,
    get_production_config,
    get_testing_config,
    validate_config
)
from diagflow.core.document import import_document
from diagflow.core.exceptions import ConfigurationError, MalformedDocumentError
from diagflow.core.graph_model import GraphModel
from diagflow.core.graph_validator import GraphValidator
from diagflow.core.logging import get_logger


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="diagflow",
        description="Diagnostic Workflow Engine - author, validate and run guided troubleshooting procedures"
    )

    # Server configuration
    parser.add_argument(
        "--host",
        help="Host to bind the server to (default: 0.0.0.0)"
    )

    parser.add_argument(
        "--port",
        type=int,
        help="Port to bind the server to (default: 8000)"
    )

    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )

    # Environment configuration
    parser.add_argument(
        "--env",
        choices=["development", "production", "testing"],
        help="Environment configuration preset"
    )

    parser.add_argument(
        "--config",
        help="Path to a .env configuration file"
    )

    parser.add_argument(
        "--database-url",
        help="Database connection URL"
    )

    parser.add_argument(
        "--log-level",
        choices=[level.value for level in LogLevel],
        help="Logging level"
    )

    parser.add_argument(
        "--log-file",
        help="Path to log file"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )

    # Commands
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the workflow engine server")
    run_parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (default: 1)"
    )

    db_parser = subparsers.add_parser("db", help="Database management commands")
    db_subparsers = db_parser.add_subparsers(dest="db_command", help="Database commands")
    db_subparsers.add_parser("init", help="Initialize database tables")
    db_subparsers.add_parser("reset", help="Reset database (drop and recreate tables)")

    validate_parser = subparsers.add_parser("validate", help="Validate a workflow document file")
    validate_parser.add_argument("file", help="Path to a workflow JSON document")

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_command", help="Config commands")
    config_subparsers.add_parser("show", help="Show current configuration")
    config_subparsers.add_parser("validate", help="Validate configuration")

    return parser


def load_configuration(args: argparse.Namespace) -> AppConfig:
    """Load configuration based on command line arguments."""
    if args.env == "development":
        config = get_development_config()
    elif args.env == "production":
        config = get_production_config()
    elif args.env == "testing":
        config = get_testing_config()
    else:
        config = load_config(args.config)

    # Override with command line arguments
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.reload:
        config.reload = args.reload
    if args.database_url:
        config.database_url = args.database_url
    if args.log_level:
        config.log_level = LogLevel(args.log_level)
    if args.log_file:
        config.log_file = args.log_file
    if args.debug:
        config.debug = args.debug

    return config


def run_server(config: AppConfig, workers: int = 1):
    """Run the workflow engine server."""
    import uvicorn
    from diagflow.factory import create_app

    logger = get_logger(__name__)
    logger.info(f"Starting server with {workers} worker(s)")

    uvicorn_config = config.get_uvicorn_config()

    if workers > 1:
        uvicorn.run(
            "diagflow.factory:create_app",
            factory=True,
            workers=workers,
            **uvicorn_config
        )
    else:
        app = create_app(config)
        uvicorn.run(app, **uvicorn_config)


def run_database_command(command: str, config: AppConfig):
    """Run database management commands."""
    from diagflow.storage.database import create_database_engine, create_tables, drop_tables

    logger = get_logger(__name__)
    engine = create_database_engine(
        config.database_url,
        echo=config.database_echo,
        connect_args=config.get_database_connect_args()
    )

    try:
        if command == "init":
            logger.info("Initializing database tables...")
            create_tables(engine)
            print("Database tables created successfully")

        elif command == "reset":
            logger.info("Resetting database...")
            drop_tables(engine)
            create_tables(engine)
            print("Database reset completed successfully")
    finally:
        engine.dispose()


def validate_document_command(path: str) -> int:
    """Validate a workflow file and print its findings. Returns the exit code."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        print(f"Cannot read {path}: {e}")
        return 2

    try:
        document = import_document(text)
    except MalformedDocumentError as e:
        print(f"Malformed document: {e.message}")
        for problem in e.problems:
            print(f"  - {problem}")
        return 1

    result = GraphValidator().validate(GraphModel.from_document(document))
    print(f"Workflow: {document.metadata.name} ({len(document.nodes)} nodes, {len(document.edges)} edges)")
    print(f"Start node: {result.start_node_id or '-'}")
    print(f"End nodes: {', '.join(result.end_node_ids) or '-'}")
    for finding in result.findings:
        location = f" [{finding.node_id}]" if finding.node_id else ""
        print(f"  {finding.severity.value.upper()} {finding.code.value}{location}: {finding.message}")
    print(f"Executable: {'yes' if result.is_executable else 'no'}")
    return 0 if result.is_executable else 1


def show_configuration(config: AppConfig):
    """Show current configuration."""
    print("Current Configuration:")
    print(f"  App Name: {config.app_name}")
    print(f"  Version: {config.app_version}")
    print(f"  Debug: {config.debug}")
    print(f"  Host: {config.host}")
    print(f"  Port: {config.port}")
    print(f"  Database URL: {config.database_url}")
    print(f"  Log Level: {config.log_level.value}")
    print(f"  History Capacity: {config.history_capacity}")
    print(f"  Max Active Sessions: {config.max_active_sessions}")


def validate_configuration_command(config: AppConfig):
    """Validate configuration and show results."""
    try:
        validate_config(config)
        print("Configuration validation: PASSED")
        print("All configuration settings are valid.")
    except ConfigurationError as e:
        print("Configuration validation: FAILED")
        for problem in e.problems:
            print(f"  - {problem}")
        sys.exit(1)


def main(argv: Optional[List[str]] = None):
    """Main entry point for the application."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if args.command == "validate":
        sys.exit(validate_document_command(args.file))

    try:
        config = load_configuration(args)

        if args.command == "config":
            if args.config_command == "show":
                show_configuration(config)
            elif args.config_command == "validate":
                validate_configuration_command(config)
            else:
                print("Configuration command required. Use --help for options.")
                sys.exit(1)
            return

        validate_config(config)

        if args.command == "run" or args.command is None:
            workers = getattr(args, 'workers', 1)
            run_server(config, workers)

        elif args.command == "db":
            if args.db_command:
                run_database_command(args.db_command, config)
            else:
                print("Database command required. Use --help for options.")
                sys.exit(1)

    except ConfigurationError as e:
        print(f"Error: {e.message}")
        sys.exit(1)
    except (ValueError, OSError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
