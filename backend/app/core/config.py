import logging.config
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_CORS_ORIGINS = ["http://localhost:5173"]


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def parse_cors_origins(raw: str | None) -> tuple[list[str], bool]:
    raw = (raw or "").strip()
    if not raw:
        return list(DEFAULT_CORS_ORIGINS), True
    if raw == "*":
        return ["*"], False
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    if not origins:
        return list(DEFAULT_CORS_ORIGINS), True
    return origins, True


@dataclass(frozen=True)
class Settings:
    youtube_api_key: str = ""
    quota_per_day: int = 10000
    cache_ttl_seconds: int = 60 * 60
    ledger_store_file: Path | None = None
    default_region_code: str = "ID"
    http_timeout_seconds: int = 15
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    cors_credentials: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        store_file = (os.getenv("LEDGER_STORE_FILE") or "").strip()
        cors_origins, cors_credentials = parse_cors_origins(os.getenv("CORS_ALLOWED_ORIGINS"))
        return cls(
            youtube_api_key=(os.getenv("YOUTUBE_API_KEY") or "").strip(),
            quota_per_day=_env_int("YOUTUBE_QUOTA_PER_DAY", 10000),
            cache_ttl_seconds=_env_int("CACHE_TTL_SECONDS", 60 * 60),
            ledger_store_file=Path(store_file) if store_file else None,
            default_region_code=(os.getenv("DEFAULT_REGION_CODE") or "ID").strip().upper(),
            http_timeout_seconds=_env_int("HTTP_TIMEOUT_SECONDS", 15),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
            cors_origins=cors_origins,
            cors_credentials=cors_credentials,
        )


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                "backend": {"handlers": ["console"], "level": level, "propagate": False},
                "urllib3": {"handlers": ["console"], "level": "WARNING", "propagate": False},
            },
        }
    )


settings = Settings.from_env()
