"""
Linksort Assistant - Main Entry Point

Conversation API with a tool-using chat assistant that can search the
user's links and organize them into folders.

Usage:
    python -m linksort.main

Environment Variables:
    LINKSORT_HOST        - Server host (default: 0.0.0.0)
    LINKSORT_PORT        - Server port (default: 8000)
    LINKSORT_PROVIDER    - Model backend: anthropic or ollama (default: anthropic)
    LINKSORT_MODEL       - Anthropic model (default: claude-haiku-4-5)
    ANTHROPIC_API_KEY    - Anthropic API key
    OLLAMA_URL           - Ollama API URL (default: http://localhost:11434)
    OLLAMA_MODEL         - Ollama model (default: ministral-3:14b)
    LINKSORT_MAX_ITERATIONS - Model calls per converse turn (default: 16)
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from .api import router as api_router
from .assistant import assistant
from .config import config
from .state import store

# Configure logging
logging.basicConfig(
    level=config.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""

    # Startup
    logger.info("=" * 60)
    logger.info("Linksort Assistant Starting")
    logger.info("=" * 60)
    logger.info(f"Provider: {config.provider}")
    logger.info(f"Model: {config.provider_model}")
    logger.info(f"Max iterations: {config.max_iterations}")
    if config.provider == "anthropic" and not config.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is not set - model calls will fail")
    logger.info(f"Server ready at http://{config.host}:{config.port}")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("Shutting down...")
    await assistant.close()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Linksort Assistant",
    description="Conversations with an assistant that reads and organizes the user's links.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api_router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "provider": config.provider,
        "model": config.provider_model,
        "users": store.user_count,
    }


def main():
    """Run the assistant server."""
    uvicorn.run(
        "linksort.main:app",
        host=config.host,
        port=config.port,
        reload=False,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
