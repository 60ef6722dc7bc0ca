# webforge/core/config.py
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from openai import OpenAI

# ================== ENV ==================

ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(ROOT_DIR / ".env", override=True)

def env(*names: str, default: Optional[str] = None) -> str:
    for n in names:
        v = os.environ.get(n)
        if v is not None and str(v).strip() != "":
            return v
    if default is not None:
        return default
    raise KeyError(f"Missing required env var. Tried: {', '.join(names)}")

def env_flag(name: str, default: bool = False) -> bool:
    return os.environ.get(name, "true" if default else "false").strip().lower() in {"1", "true", "yes"}

# ================== LOGGING ==================

LOG_LEVEL = env("LOG_LEVEL", default="INFO").upper()
LOG_DIR = os.environ.get("LOG_DIR", "")

CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

# ================== JWT ==================

JWT_SECRET = os.environ.get("JWT_SECRET", "default_secret_key")
JWT_ALGORITHM = "HS256"

# Shared secret for the internal worker trigger
TASK_SECRET = os.environ.get("TASK_SECRET", "").strip()

# ================== PIPELINE ==================

PROVIDER_TIMEOUT_SECONDS = float(env("PROVIDER_TIMEOUT_SECONDS", default="120"))
EDIT_TIMEOUT_SECONDS = float(env("EDIT_TIMEOUT_SECONDS", default="90"))
REPAIR_MAX_ATTEMPTS = int(env("REPAIR_MAX_ATTEMPTS", default="3"))
MIN_FILE_CONTENT_LENGTH = int(env("MIN_FILE_CONTENT_LENGTH", default="1"))
STALE_JOB_MINUTES = int(env("STALE_JOB_MINUTES", default="20"))

# ================== PROVIDERS ==================

OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "").strip()
AI_GATEWAY_API_KEY = os.environ.get("AI_GATEWAY_API_KEY", "").strip()
AI_GATEWAY_BASE_URL = os.environ.get("AI_GATEWAY_BASE_URL", "https://ai.gateway.lovable.dev/v1").strip()

def get_openai_client() -> OpenAI:
    """
    Lazy init: the server can start without a key.
    Only generation endpoints require OPENAI_API_KEY.
    """
    if not OPENAI_API_KEY:
        raise RuntimeError("OPENAI_API_KEY not configured (.env).")
    return OpenAI(api_key=OPENAI_API_KEY, max_retries=0)

def get_gateway_client() -> OpenAI:
    if not AI_GATEWAY_API_KEY:
        raise RuntimeError("AI_GATEWAY_API_KEY not configured (.env).")
    return OpenAI(api_key=AI_GATEWAY_API_KEY, base_url=AI_GATEWAY_BASE_URL, max_retries=0)

# ================== DATABASE ==================
# SQLite for local development and tests, MySQL in production

DATABASE_URL = os.environ.get("DATABASE_URL", "")

def get_database_url() -> str:
    """Get database URL - supports SQLite or MySQL."""
    if DATABASE_URL:
        return DATABASE_URL

    mysql_host = os.environ.get("MYSQL_HOST")
    if mysql_host:
        mysql_port = int(os.environ.get("MYSQL_PORT", "3306"))
        mysql_user = os.environ.get("MYSQL_USER", "root")
        mysql_password = os.environ.get("MYSQL_PASSWORD", "")
        mysql_db = os.environ.get("MYSQL_DB", "webforge")
        return f"mysql+aiomysql://{mysql_user}:{mysql_password}@{mysql_host}:{mysql_port}/{mysql_db}?charset=utf8mb4"

    db_path = ROOT_DIR / "webforge.db"
    return f"sqlite+aiosqlite:///{db_path}"
