import os

from dotenv import load_dotenv

load_dotenv()


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}

TELEGRAM_TOKEN = os.getenv("TELEGRAM_TOKEN")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

WIZARD_METRICS_ENABLED = _bool_env("WIZARD_METRICS_ENABLED", False)
WIZARD_METRICS_BACKEND = os.getenv("WIZARD_METRICS_BACKEND", "noop")
