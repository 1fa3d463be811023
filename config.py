import os
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()


def get_env_var(name: str) -> str:
    """Get environment variable or raise a clear error if missing."""
    value = os.getenv(name)
    if not value:
        raise RuntimeError(
            f"Missing required environment variable: {name}\n"
            f"Did you copy .env.example to .env and fill it in?"
        )
    return value


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got '{value}'") from e


# Optional vars (with defaults)
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
PORT = int(os.getenv("PORT", "8000"))
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "false").lower() == "true"

# memory | json
STORE_BACKEND = os.getenv("STORE_BACKEND", "memory").lower()
STORE_PATH = get_env_var("STORE_PATH") if STORE_BACKEND == "json" else os.getenv("STORE_PATH")

# Fixed persona seed gives reproducible wording; unset means a random seed per session
PERSONA_SESSION_SEED = _optional_int("PERSONA_SESSION_SEED")
