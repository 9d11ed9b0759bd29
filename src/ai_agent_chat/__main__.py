"""
Main entry point for the AI Agent Chat server.

Can be called with: python -m ai_agent_chat

Serves the chat API (server-sent events) plus session, model and history
routes. Port and host default to the PORT and HOST environment variables.
"""

import argparse
import logging

import uvicorn

from .config import load_settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main():
    """Main entry point for the AI Agent Chat server."""
    settings = load_settings()

    parser = argparse.ArgumentParser(
        description="AI Agent Chat - streaming chat server with tool-using agents"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port to run the server on (default: {settings.port})",
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Interface to bind (default: {settings.host})",
    )
    args = parser.parse_args()

    configure_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    if not settings.openrouter_api_key:
        logger.warning("OPENROUTER_API_KEY is not set, chat requests will fail")
    if not settings.brave_api_key:
        logger.warning("BRAVE_API_KEY is not set, the web-search tool server may not work")

    from .app import app

    logger.info(f"Starting chat server in {settings.environment} mode...")
    logger.info(f"Server listening on http://{args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
