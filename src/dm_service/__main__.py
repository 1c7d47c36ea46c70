"""Entrypoint: python -m dm_service"""
from __future__ import annotations

import uvicorn

from dm_service.log_config import configure_logging


def main() -> None:
    configure_logging()
    uvicorn.run(
        "dm_service.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info",
        log_config=None,
    )


if __name__ == "__main__":
    main()
