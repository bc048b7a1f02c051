import os
import logging

from dotenv import load_dotenv


# Load env early
load_dotenv()

# Logging configuration
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, log_level, logging.INFO),
)
logger = logging.getLogger("starbot")

# Reduce noisy libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("telegram.ext.ExtBot").setLevel(logging.WARNING)
logging.getLogger("telegram.ext.Updater").setLevel(logging.WARNING)
logging.getLogger("telegram.ext.Application").setLevel(logging.WARNING)
logging.getLogger("telegram.bot").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.error(f"{name} must be an integer, got {raw!r}")
        return None


class Config:
    """Application configuration sourced from the environment."""

    # Star Realms account
    SR_USERNAME: str = os.getenv("SR_USERNAME", "").strip()
    SR_PASSWORD: str = os.getenv("SR_PASSWORD", "")
    SR_API_URL: str = os.getenv("SR_API_URL", "https://srprodv2.whitewizardgames.com").strip().rstrip("/")
    HTTP_TIMEOUT_SECS: float = float(os.getenv("HTTP_TIMEOUT_SECS", "25"))

    # Telegram Bot Configuration
    BOT_TOKEN: str | None = os.getenv("BOT_TOKEN")
    CHANNEL_ID: int | None = _env_int("CHANNEL_ID")

    # Adaptive polling
    ACTIVE_POLL_SECS: float = float(os.getenv("ACTIVE_POLL_SECS", "5"))
    IDLE_POLL_SECS: float = float(os.getenv("IDLE_POLL_SECS", "60"))
    IDLE_AFTER_SECS: float = float(os.getenv("IDLE_AFTER_SECS", str(30 * 60)))

    # Text commands
    COMMAND_PREFIX: str = os.getenv("COMMAND_PREFIX", "!")
    COMMANDS_CASE_SENSITIVE: bool = _env_flag("COMMANDS_CASE_SENSITIVE")

    @classmethod
    def validate_config(cls) -> None:
        required = {
            "SR_USERNAME": cls.SR_USERNAME,
            "SR_PASSWORD": cls.SR_PASSWORD,
            "BOT_TOKEN": cls.BOT_TOKEN,
            "CHANNEL_ID": cls.CHANNEL_ID,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")
        if cls.ACTIVE_POLL_SECS <= 0 or cls.IDLE_POLL_SECS <= 0:
            raise ValueError("ACTIVE_POLL_SECS and IDLE_POLL_SECS must be positive")

    @classmethod
    def get_api_base_url(cls) -> str:
        logger.info(f"Using API endpoint: {cls.SR_API_URL}")
        return cls.SR_API_URL
