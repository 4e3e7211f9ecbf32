"""
Process entry point for the voice relay.

Responsibilities:
- Load .env
- Serve the ASGI app with uvicorn
"""

from __future__ import annotations

import os

import uvicorn


def main() -> None:
    """Run the relay API server."""
    uvicorn.run(
        "server.asgi:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
