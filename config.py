from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent

ENV_CANDIDATES = [
    BASE_DIR / ".env",
    BASE_DIR.parent / ".env",
]

logger = logging.getLogger(__name__)


def load_environment() -> Optional[Path]:
    for env_path in ENV_CANDIDATES:
        if env_path.exists():
            load_dotenv(env_path)
            logger.info("Loaded environment from %s", env_path)
            return env_path
    load_dotenv()  # no-op when no .env is reachable
    return None


def _optional_path(value: str | None) -> Optional[Path]:
    return Path(value).expanduser() if value else None


@dataclass(frozen=True)
class Settings:
    secret_key: str = "replace-this-with-a-random-value"
    supabase_url: str = ""
    supabase_key: str = ""
    responses_table: str = "quiz_responses"
    admin_password: str = "125690"
    telegram_bot_token: str = ""
    telegram_admin_chat_id: str = ""
    report_template_path: Optional[Path] = None
    report_font_path: Optional[Path] = None
    request_timeout: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        try:
            timeout = float(os.getenv("REQUEST_TIMEOUT", "10"))
        except ValueError:
            timeout = 10.0
        return cls(
            secret_key=os.getenv("SECRET_KEY", cls.secret_key),
            supabase_url=os.getenv("SUPABASE_URL", "").rstrip("/"),
            supabase_key=os.getenv("SUPABASE_KEY", ""),
            responses_table=os.getenv("RESPONSES_TABLE", cls.responses_table),
            admin_password=os.getenv("ADMIN_PASSWORD", cls.admin_password),
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN", ""),
            telegram_admin_chat_id=os.getenv("TELEGRAM_ADMIN_CHAT_ID", ""),
            report_template_path=_optional_path(os.getenv("REPORT_TEMPLATE_PATH")),
            report_font_path=_optional_path(os.getenv("REPORT_FONT_PATH")),
            request_timeout=timeout,
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )

    def flask_config(self) -> Dict[str, object]:
        return {
            "SECRET_KEY": self.secret_key,
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_KEY": self.supabase_key,
            "RESPONSES_TABLE": self.responses_table,
            "ADMIN_PASSWORD": self.admin_password,
            "TELEGRAM_BOT_TOKEN": self.telegram_bot_token,
            "TELEGRAM_ADMIN_CHAT_ID": self.telegram_admin_chat_id,
            "REPORT_TEMPLATE_PATH": self.report_template_path,
            "REPORT_FONT_PATH": self.report_font_path,
            "REQUEST_TIMEOUT": self.request_timeout,
        }


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
