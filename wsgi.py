"""ASGI server entrypoint for deployment."""
import os

import uvicorn

from nulex.main import app

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    log_level = os.environ.get("LOG_LEVEL", "info").lower()

    # log_config=None keeps the handlers installed by configure_logging
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=port,
        log_level=log_level,
        log_config=None,
        proxy_headers=True,
    )
