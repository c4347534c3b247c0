"""Configuration for MovieBot."""
import os
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_flag(name: str, default: bool = False) -> bool:
    return os.environ.get(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


BOT_TOKEN = os.environ.get("BOT_TOKEN")
PORT = _env_int("PORT", 5000)
WEBHOOK_URL = os.environ.get("WEBHOOK_URL")

# Archive search runs through a user account session
API_ID = _env_int("API_ID", 0)
API_HASH = os.environ.get("API_HASH")
TELETHON_SESSION = os.environ.get("TELETHON_SESSION")

FEATURE_FLAG_LLM = _env_flag("FEATURE_FLAG_LLM")
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")
AI_MODEL = os.environ.get("AI_MODEL", "gemini-2.0-flash")
AI_BASE_URL = os.environ.get("AI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/")
AI_TIMEOUT_SECONDS = float(os.environ.get("AI_TIMEOUT_SECONDS", "30"))
SYSTEM_PROMPT_FILE = os.environ.get("SYSTEM_PROMPT_FILE", "prompt.txt")

# Free tier is 15 RPM / 200 RPD, stay below it
GLOBAL_MAX_REQUESTS_PER_MINUTE = _env_int("GLOBAL_MAX_REQUESTS_PER_MINUTE", 12)
GLOBAL_MAX_REQUESTS_PER_DAY = _env_int("GLOBAL_MAX_REQUESTS_PER_DAY", 180)
USER_MAX_REQUESTS_PER_MINUTE = _env_int("USER_MAX_REQUESTS_PER_MINUTE", 5)
USER_MAX_REQUESTS_PER_HOUR = _env_int("USER_MAX_REQUESTS_PER_HOUR", 20)
USER_MAX_REQUESTS_PER_DAY = _env_int("USER_MAX_REQUESTS_PER_DAY", 50)

MAX_HISTORY_LENGTH = _env_int("MAX_HISTORY_LENGTH", 10)
CONTEXT_WINDOW_MINUTES = _env_int("CONTEXT_WINDOW_MINUTES", 30)
MAX_TOKENS_PER_MESSAGE = _env_int("MAX_TOKENS_PER_MESSAGE", 500)

PAGE_SIZE = _env_int("PAGE_SIZE", 10)
PAGINATION_TTL_MINUTES = _env_int("PAGINATION_TTL_MINUTES", 0)
MIN_RESULT_SIZE_BYTES = _env_int("MIN_RESULT_SIZE_BYTES", 52428800)
MAX_SEARCH_RESULTS = _env_int("MAX_SEARCH_RESULTS", 500)


def validate_config():
    missing = [k for k in ["BOT_TOKEN"] if not os.environ.get(k)]
    if missing:
        raise ValueError(f"Missing: {', '.join(missing)}")
    for name in ("PAGE_SIZE", "MAX_HISTORY_LENGTH"):
        if globals()[name] < 1:
            raise ValueError(f"{name} must be positive")


def search_enabled() -> bool:
    return bool(API_ID and API_HASH and TELETHON_SESSION)


def llm_enabled() -> bool:
    return FEATURE_FLAG_LLM and bool(GEMINI_API_KEY)


def load_system_prompt(path: str = SYSTEM_PROMPT_FILE) -> str:
    prompt_file = Path(path)
    if prompt_file.exists():
        return prompt_file.read_text(encoding="utf-8").strip()
    return "You are a helpful assistant."
