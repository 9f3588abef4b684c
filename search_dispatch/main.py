"""
Application Startup Script

Usage:
    search-dispatch
    python -m search_dispatch.main

Author: System Architect
Date: 2025-12-12
"""

import uvicorn

from search_dispatch.core.config.settings import get_settings


def main():
    """Start the FastAPI application under uvicorn."""
    settings = get_settings()

    uvicorn.run(
        "search_dispatch.application.app:create_app",
        factory=True,
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
