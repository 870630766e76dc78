"""Engine configuration loaded from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

ENV_PATH = Path(__file__).resolve().parent / ".env"
load_dotenv(ENV_PATH)

# Watermark text
WATERMARK_FONT_PATH: str = os.getenv("WATERMARK_FONT_PATH", "")
TIMESTAMP_FORMAT: str = os.getenv("TIMESTAMP_FORMAT", "%Y-%m-%d %H:%M:%S")

# Limits
MAX_DIMENSION: int = int(os.getenv("MAX_RENDER_DIMENSION", "4096"))
RENDER_TIMEOUT_SECONDS: float = float(os.getenv("RENDER_TIMEOUT_SECONDS", "30"))

# Batching
RENDER_BATCH_SIZE: int = int(os.getenv("RENDER_BATCH_SIZE", "5"))
RENDER_BATCH_DELAY: float = float(os.getenv("RENDER_BATCH_DELAY", "0.1"))
THUMBNAIL_BATCH_SIZE: int = int(os.getenv("THUMBNAIL_BATCH_SIZE", "3"))
THUMBNAIL_BATCH_DELAY: float = float(os.getenv("THUMBNAIL_BATCH_DELAY", "0.2"))

# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
