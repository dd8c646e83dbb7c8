#!/usr/bin/env python3
"""
Command line runner for the Quiz Question Ingestion Service

Commands:
    server    serve the HTTP API with uvicorn
    health    query /health and /health/detailed of a running server
    migrate   create the database tables
    generate  run question generation once for a stored document
"""
import os
import sys
import argparse
import asyncio
import json
import logging
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from config import settings

logger = logging.getLogger("run")


def setup_production_logging():
    """Log to stdout and to a rotating file under logs/"""
    from utils.logging import setup_logging

    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)

    setup_logging(log_file=settings.log_file or str(logs_dir / "app.log"))


def run_server(args) -> int:
    """Run the application server"""
    import uvicorn
    from main import app

    setup_production_logging()
    logger.info(
        f"Starting {settings.app_name} v{settings.app_version} "
        f"({settings.environment}) on {settings.host}:{settings.port} with {settings.workers} worker(s)"
    )
    logger.info(f"Question generator: {settings.generator_base_url}")

    uvicorn_config = {
        "app": app,
        "host": settings.host,
        "port": settings.port,
        "workers": settings.workers,
        "log_level": settings.log_level.lower(),
        "access_log": True,
        "server_header": False,
        "date_header": False,
        "proxy_headers": True,
        "forwarded_allow_ips": "*"
    }

    ssl_keyfile = os.getenv("SSL_KEYFILE")
    ssl_certfile = os.getenv("SSL_CERTFILE")
    if ssl_keyfile and ssl_certfile:
        uvicorn_config.update(ssl_keyfile=ssl_keyfile, ssl_certfile=ssl_certfile)
        logger.info("SSL/TLS enabled")

    uvicorn.run(**uvicorn_config)
    return 0


def run_health_check(args) -> int:
    """Query the health endpoints of a running server"""
    import requests

    base_url = args.url or f"http://{settings.host}:{settings.port}"

    try:
        for path, timeout in (("/health", 10), ("/health/detailed", 30)):
            response = requests.get(f"{base_url}{path}", timeout=timeout)
            print(f"{path}: HTTP {response.status_code}")
            print(json.dumps(response.json(), indent=2))
    except requests.exceptions.RequestException as e:
        print(f"Health check failed: {e}")
        return 1

    # /health/detailed answers 503 only when a component is unhealthy
    return 0 if response.status_code == 200 else 1


def run_migration(args) -> int:
    """Create the database tables"""
    from utils.logging import setup_logging
    from sqlalchemy.exc import SQLAlchemyError
    from database.database import engine, create_tables

    setup_logging()
    logger.info(f"Creating tables on {engine.url.render_as_string(hide_password=True)}")

    try:
        create_tables(engine)
    except SQLAlchemyError as e:
        logger.error(f"Migration failed: {e}")
        return 1

    logger.info("Database tables created")
    return 0


def run_generation(args) -> int:
    """Generate and store the questions of one document"""
    from utils.logging import setup_logging
    from services.question_service import QuestionService, FALLBACK_QUESTION_COUNT

    setup_logging()
    service = QuestionService()

    document = service.get_document(args.document_id)
    if document is None:
        print(f"Document {args.document_id} not found")
        return 1

    storage_url = args.storage_url or document.storage_url

    async def generate() -> int:
        try:
            return await service.create_question(storage_url, document)
        finally:
            await service.generation_client.aclose()

    question_count = asyncio.run(generate())
    if question_count == FALLBACK_QUESTION_COUNT:
        print(f"Question generation failed for document {document.id}")
        return 1

    print(f"Stored {question_count} questions for document {document.id}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Quiz Question Ingestion Service Runner")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("server", help="Serve the HTTP API").set_defaults(handler=run_server)

    health = subparsers.add_parser("health", help="Check a running server")
    health.add_argument("--url", help="Base URL of the server (default: configured host and port)")
    health.set_defaults(handler=run_health_check)

    subparsers.add_parser("migrate", help="Create the database tables").set_defaults(handler=run_migration)

    generate = subparsers.add_parser("generate", help="Generate questions for a stored document")
    generate.add_argument("document_id", type=int, help="Identifier of the stored document")
    generate.add_argument("--storage-url", help="Override the document's storage URL")
    generate.set_defaults(handler=run_generation)

    return parser


def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
