"""
itinerary.__main__ — Entry point for ``python -m itinerary``
=============================================================

Wiring:
1. Load .env (DATABASE_URL, CORS origins).
2. Configure logging.
3. Hand the app to uvicorn; the app lifespan creates tables, seeds the
   bootstrap admins and warms the session store.

Run with::

    uv run python -m itinerary
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("itinerary")


def main() -> None:
    """Serve the Itinerary API."""
    load_dotenv()

    host = os.getenv("ITINERARY_HOST", "0.0.0.0")
    port = int(os.getenv("ITINERARY_PORT", "8081"))
    logger.info("Starting Itinerary API on %s:%d", host, port)

    uvicorn.run("itinerary.api.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
