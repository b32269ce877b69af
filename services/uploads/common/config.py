# Centralised configuration and logging setup for the uploads service.

# What this module provides:
#   1) A Settings dataclass holding all env-driven configuration
#   2) get_settings(): reads env vars once, configures logging once
#   3) settings: a module-level singleton (import and use anywhere)

import os
import logging
from functools import lru_cache
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

# -----------------------------------------------------------------------------
# Settings dataclass (immutable)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Settings:
    service_name: str
    host: str
    port: int
    log_level: str # One of: DEBUG, INFO, WARNING, ERROR, CRITICAL

    # public origin used to build pdfUrl values
    base_url: str

    # metadata store
    mongodb_uri: str
    mongodb_db: str
    mongodb_timeout_ms: int # serverSelectionTimeoutMS for the client

    # blob store
    data_root: str
    upload_dir: str

# -----------------------------------------------------------------------------
# Small helpers for robust environment variable parsing
# -----------------------------------------------------------------------------
def _env_str(key: str, default: str) -> str:
    """
    Read a string environment variable & fall back to default if unset or empty
    """
    val = os.getenv(key)
    return val.strip() if val and val.strip() else default

def _env_int(key: str, default: int) -> int:
    """
    Read an integer environment variable & fall back to default if unset or invalid
    """
    raw = os.getenv(key)
    try:
        return int(raw) if raw is not None else default
    except ValueError:
        return default

def _mask_url(url: str) -> str:
    """Mask password in a URL for logging."""
    try:
        parts = urlsplit(url)
        if parts.password:
            user = parts.username or ""
            host = parts.hostname or ""
            port = f":{parts.port}" if parts.port else ""
            netloc = f"{user}:****@{host}{port}"
            return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    except ValueError:
        pass
    return url

def _ensure_dirs(*paths: str) -> None:
    for p in paths:
        os.makedirs(p, exist_ok=True)

# -----------------------------------------------------------------------------
# Logging configuration
# -----------------------------------------------------------------------------
def setup_logging(level: str) -> None:
    """
    Configure the root logger ONCE per process (idempotent).
    Guard with a flag (_configured) so repeated imports don't attach duplicate handlers.
    """
    if getattr(setup_logging, "_configured", False):
        return

    lvl = getattr(logging, level.upper(), logging.INFO) # Fallback to INFO on bad input
    logging.basicConfig(
        # 2025-10-25 12:34:56,789 INFO [config] Loaded settings ...
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        level=lvl,
    )
    # keep uvicorn loggers aligned
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(lvl)

    setup_logging._configured = True

# -----------------------------------------------------------------------------
# Read and cache settings once
# -----------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Read all environment variables, configure logging once, make sure the
    upload directory exists and return a frozen Settings object.
    """
    service_name = _env_str("SERVICE_NAME", "uploads-service")
    host         = _env_str("HOST", "0.0.0.0")
    port         = _env_int("PORT", 3000)
    log_level    = _env_str("LOG_LEVEL", "INFO")
    base_url     = _env_str("BASE_URL", f"http://localhost:{port}").rstrip("/")

    mongodb_uri  = _env_str("MONGODB_URI", "mongodb://localhost:27017")
    mongodb_db   = _env_str("MONGODB_DB", "coursedocs")
    mongodb_timeout_ms = _env_int("MONGODB_TIMEOUT_MS", 5000)

    data_root    = _env_str("DATA_ROOT", "./data")
    upload_dir   = os.path.abspath(_env_str("UPLOAD_DIR", os.path.join(data_root, "uploads")))

    # The static mount needs the directory at import time, before any request.
    _ensure_dirs(upload_dir)

    setup_logging(log_level)
    logging.getLogger("config").info(
        "Loaded settings service=%s port=%s base_url=%s upload_dir=%s mongodb=%s db=%s",
        service_name, port, base_url, upload_dir, _mask_url(mongodb_uri), mongodb_db
    )

    return Settings(
        service_name=service_name,
        host=host,
        port=port,
        log_level=log_level,
        base_url=base_url,
        mongodb_uri=mongodb_uri,
        mongodb_db=mongodb_db,
        mongodb_timeout_ms=mongodb_timeout_ms,
        data_root=data_root,
        upload_dir=upload_dir,
    )

# -----------------------------------------------------------------------------
# Public, module-level singleton
# -----------------------------------------------------------------------------
# Import this from anywhere in the service: from common.config import settings
settings = get_settings()
