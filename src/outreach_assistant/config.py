# src/outreach_assistant/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Core components never read settings directly: they receive an OutreachConfig.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "OUTREACH"

DEFAULT_SENSITIVE_KEYWORDS: tuple[str, ...] = (
    "password",
    "passcode",
    "ssn",
    "social security",
    "wire instructions",
    "wire transfer",
    "routing number",
    "account number",
    "bank details",
    "credit card",
    "cvv",
    "pin code",
    "api key",
    "private key",
    "seed phrase",
)

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.split(",") if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_contacts(name: str) -> dict[str, str]:
    """Parse "user_id:Display Name, other_id:Other" into a mapping."""
    out: dict[str, str] = {}
    for item in _env_list(name, []):
        user_id, _, display = item.partition(":")
        user_id = user_id.strip()
        if user_id:
            out[user_id] = display.strip() or user_id
    return out


@dataclass(frozen=True, slots=True)
class OutreachConfig:
    """Tunables injected into the orchestrator, reminder sweeper and agent loop."""

    assistant_user_id: str = "assistant"
    assistant_display_name: str = "Assistant"

    max_recipients: int = 10
    confirmation_threshold: int = 3
    sensitive_keywords: tuple[str, ...] = DEFAULT_SENSITIVE_KEYWORDS

    max_tool_iterations: int = 6
    max_history_messages: int = 30

    reminder_threshold_hours: float = 6.0
    reminder_limit: int = 50
    reminder_interval_seconds: float = 900.0


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool
    reminders_enabled: bool

    # ---- LLM / OpenRouter ----
    openrouter_api_key: str | None
    openrouter_base_url: str
    llm_models: list[str]
    llm_temperature: float
    extra_headers: dict[str, str]

    # ---- Identities (console demo) ----
    owner_user_id: str
    owner_display_name: str
    contacts: dict[str, str]

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path

    # ---- Outreach tuning ----
    outreach: OutreachConfig = field(default_factory=OutreachConfig)

    @staticmethod
    def from_env() -> Settings:
        app_name = _first_env(_k("APP_NAME"), default="outreach") or "outreach"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        reminders_enabled = _env_bool(_k("REMINDERS_ENABLED"), True)

        openrouter_api_key = _first_env(_k("OPENROUTER_API_KEY"), "OPENROUTER_API_KEY", default=None)
        openrouter_base_url = _env(_k("OPENROUTER_BASE_URL"), "https://openrouter.ai/api/v1")

        http_referer = _env(_k("HTTP_REFERER"), "https://example.com")
        title = _env(_k("APP_TITLE"), app_name)
        extra_headers = {
            "HTTP-Referer": http_referer,
            "X-Title": title,
        }

        llm_models = _env_list(_k("LLM_MODELS"), ["openai/gpt-4o-mini"])
        llm_temperature = _env_float(_k("LLM_TEMPERATURE"), 0.2)

        owner_user_id = _env(_k("OWNER_USER_ID"), "me").strip() or "me"
        owner_display_name = _env(_k("OWNER_NAME"), "Me").strip() or "Me"
        contacts = _env_contacts(_k("CONTACTS"))

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/outreach"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        keywords = _env_list(_k("SENSITIVE_KEYWORDS"), list(DEFAULT_SENSITIVE_KEYWORDS))

        outreach = OutreachConfig(
            assistant_user_id=_env(_k("ASSISTANT_USER_ID"), "assistant").strip() or "assistant",
            assistant_display_name=_env(_k("ASSISTANT_NAME"), "Assistant").strip() or "Assistant",
            max_recipients=max(1, _env_int(_k("MAX_RECIPIENTS"), 10)),
            confirmation_threshold=max(0, _env_int(_k("CONFIRMATION_THRESHOLD"), 3)),
            sensitive_keywords=tuple(k.lower() for k in keywords),
            max_tool_iterations=max(1, _env_int(_k("MAX_TOOL_ITERATIONS"), 6)),
            max_history_messages=max(1, _env_int(_k("MAX_HISTORY_MESSAGES"), 30)),
            reminder_threshold_hours=max(0.0, _env_float(_k("REMINDER_THRESHOLD_HOURS"), 6.0)),
            reminder_limit=max(1, _env_int(_k("REMINDER_LIMIT"), 50)),
            reminder_interval_seconds=max(1.0, _env_float(_k("REMINDER_INTERVAL_SECONDS"), 900.0)),
        )

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            reminders_enabled=reminders_enabled,
            openrouter_api_key=openrouter_api_key,
            openrouter_base_url=openrouter_base_url,
            llm_models=llm_models,
            llm_temperature=llm_temperature,
            extra_headers=extra_headers,
            owner_user_id=owner_user_id,
            owner_display_name=owner_display_name,
            contacts=contacts,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            outreach=outreach,
        )

    def outreach_config(self) -> OutreachConfig:
        return self.outreach


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Lazily build and cache settings (env is read on first use, not on import)."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
