from __future__ import annotations

import logging

import uvicorn

from .api.main import app
from .config import RelaySettings


def main() -> None:
    settings = RelaySettings.from_env()
    logging.getLogger("chatrelay").info("K'artz Chat Relay starting on port %s", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
