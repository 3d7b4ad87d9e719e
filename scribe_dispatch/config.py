"""
Unified configuration module.
Service behaviour is controlled through environment variables.
A .env file is loaded if present.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Prefer the .env at the project root, fall back to the working directory
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(dotenv_path=env_path)
else:
    load_dotenv()


def _get_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# === Adapter configuration ===
# Root for per-engine uv environments (<ENV_PATH>/MLX, <ENV_PATH>/FasterWhisper, ...)
ENV_PATH = os.getenv("ENV_PATH", "./data/env")
DEFAULT_ADAPTER = os.getenv("DEFAULT_ADAPTER", "faster_whisper")
UV_BINARY = os.getenv("UV_BINARY", "uv")

# 0 means no deadline
EXECUTION_TIMEOUT_SECONDS = float(os.getenv("EXECUTION_TIMEOUT_SECONDS", "0"))
PROVISION_TIMEOUT_SECONDS = float(os.getenv("PROVISION_TIMEOUT_SECONDS", "0"))

# Provision the default adapter in the background at startup
PREPARE_ON_STARTUP = _get_bool("PREPARE_ON_STARTUP")


def get_execution_timeout() -> float | None:
    """Deadline for one engine run, or None for unlimited."""
    return EXECUTION_TIMEOUT_SECONDS if EXECUTION_TIMEOUT_SECONDS > 0 else None


def get_provision_timeout() -> float | None:
    """Deadline for each provisioning command, or None for unlimited."""
    return PROVISION_TIMEOUT_SECONDS if PROVISION_TIMEOUT_SECONDS > 0 else None


# === Job configuration ===
# Per-request output directories (engine logs live here)
OUTPUT_ROOT = os.getenv("OUTPUT_ROOT", "./data/transcripts")
MAX_CONCURRENT_JOBS = int(os.getenv("MAX_CONCURRENT_JOBS", "2"))
MAX_QUEUE_SIZE = int(os.getenv("MAX_QUEUE_SIZE", "50"))

# === Service configuration ===
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "50070"))

# === Security configuration ===
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "200"))
# CORS origins (local only by default, "*" opens it up)
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost,http://127.0.0.1")

# === Logging ===
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
