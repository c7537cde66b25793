from __future__ import annotations

import logging
import sys


def setup_logging(level: str = "info") -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stdout,
    )
    # aiohttp access lines for the local control plane are noise at info level.
    logging.getLogger("aiohttp.access").setLevel(max(log_level, logging.WARNING))
