# code_runner/meta_config.py
"""
Configuration management for the code runner service.

Pipeline limits are fixed constants. Deployment settings are loaded from
environment variables once at import.
"""
import os


# --- Pipeline Limits ---
MAX_CODE_LENGTH: int = 10_000  # characters
FETCH_TIMEOUT: float = 10.0  # seconds, shared by every redirect hop
MAX_REDIRECTS: int = 5
EXECUTION_TIMEOUT: float = 5.0  # seconds
EXECUTION_WATCHDOG_GRACE: float = 1.0  # seconds past the execution deadline

# --- Error Reporting ---
MAX_ERROR_DESCRIPTION_LENGTH: int = 1000
LOG_MESSAGE_PREVIEW_LENGTH: int = 200
CODE_PREVIEW_LENGTH: int = 100

# --- Server ---
HOST: str = os.environ.get("HOST", "0.0.0.0")
PORT: int = int(os.environ.get("PORT", 8080))
LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()

# --- CORS ---
# Unset or empty: no origin gets CORS headers. '*' answers every origin without
# credentials; an explicit list echoes the matching origin and allows credentials.
_cors_origins_str: str = os.environ.get('CORS_ALLOWED_ORIGINS', '')
CORS_ALLOWED_ORIGINS: list[str] = (
    ['*'] if _cors_origins_str == '*'
    else [origin.strip() for origin in _cors_origins_str.split(',') if origin.strip()]
)
