from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    database_path: Path
    stats_tz: str
    api_host: str
    api_port: int
    admin_panel_token: str | None
    log_level: str


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue
        key, value = raw.split("=", maxsplit=1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def load_settings(env_file: Path = Path(".env")) -> Settings:
    _load_env_file(env_file)

    return Settings(
        database_path=Path(os.getenv("DATABASE_PATH", "./data/app.db")),
        stats_tz=os.getenv("STATS_TZ", "UTC"),
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=_parse_int(os.getenv("API_PORT"), 8080),
        admin_panel_token=os.getenv("ADMIN_PANEL_TOKEN") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
