from __future__ import annotations

import logging
import os
from pathlib import Path

from config import BASE_DIR


def setup_logging(log_dir: Path | None = None, *, level: str | int | None = None) -> None:
    """Configure console and file logging once.

    ``level`` falls back to the ``LOG_LEVEL`` environment variable, then INFO.
    """

    root = logging.getLogger()
    if root.handlers:
        return

    log_dir = log_dir or BASE_DIR / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "arbitrage.log"

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    resolved = level or os.getenv("LOG_LEVEL", "INFO")
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO
    root.setLevel(resolved)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # aiohttp access/client chatter is noise at INFO.
    logging.getLogger("aiohttp").setLevel(max(resolved, logging.WARNING))
