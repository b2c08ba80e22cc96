"""
Recorder configuration, read from the environment (and backend/.env).
"""

from dotenv import load_dotenv
import logging
import os
import pathlib
from dataclasses import dataclass, field
from typing import List

# Load .env from backend folder (parent of app)
env_path = pathlib.Path(__file__).parent.parent / '.env'
load_dotenv(env_path)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",  # Vite dev server
    "http://localhost:3000",  # React dev server
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name, "")
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class RecorderConfig:
    """Configuration for the recording backend"""
    data_dir: str = "data"
    recordings_dir: str = "recordings"
    headless: bool = True
    default_browser: str = "chromium"
    record_artifacts: bool = False  # video + HAR per session
    capture_queue_size: int = 256
    reconcile_interval: float = 5.0  # seconds between durable retry passes
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "RecorderConfig":
        return cls(
            data_dir=os.getenv("RECORDER_DATA_DIR", "data"),
            recordings_dir=os.getenv("RECORDER_RECORDINGS_DIR", "recordings"),
            headless=_env_bool("RECORDER_HEADLESS", True),
            default_browser=os.getenv("RECORDER_BROWSER", "chromium"),
            record_artifacts=_env_bool("RECORDER_RECORD_ARTIFACTS", False),
            capture_queue_size=int(os.getenv("RECORDER_CAPTURE_QUEUE_SIZE", "256")),
            reconcile_interval=float(os.getenv("RECORDER_RECONCILE_INTERVAL", "5")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=_env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
        )


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
