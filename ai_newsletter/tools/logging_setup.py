from __future__ import annotations

import logging
from pathlib import Path

from ai_newsletter.config.settings import Settings


def setup_logging(settings: Settings) -> None:
    log_path = settings.log_file

    Path(log_path).parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
        handlers=[
            logging.FileHandler(log_path, encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    # quiet HTTP client chatter
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
