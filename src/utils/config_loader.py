from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def load_config(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    config_path = Path(path)
    if not config_path.exists():
        return {}
    with config_path.open('r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return {}
    return data


def get_config_value(config: Dict[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur[key]
    return cur


def resolve_value(arg_value: Any, config: Dict[str, Any], keys: Iterable[str], default: Any) -> Any:
    if arg_value is not None:
        return arg_value
    cfg_value = get_config_value(config, keys, default=None)
    return default if cfg_value is None else cfg_value


def _split_emails(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    return [e.strip().lower() for e in raw.split(",") if e.strip()]


class Settings(BaseModel):
    """Runtime settings: environment first, then the YAML file, then defaults"""
    admin_emails: List[str] = Field(default_factory=list)
    notification_limit: int = Field(default=10, ge=1)
    batch_size: int = Field(default=10, ge=1, le=10)
    jwt_secret_key: str = "your-secret-key-change-this-in-production"
    access_token_expire_minutes: int = 60 * 24
    host: str = "0.0.0.0"
    port: int = 8000

    def is_admin_email(self, email: Optional[str]) -> bool:
        return bool(email) and email.strip().lower() in self.admin_emails


def build_settings(config: Dict[str, Any]) -> Settings:
    admin_emails = resolve_value(
        _split_emails(os.getenv("ADMIN_EMAILS")), config, ["auth", "admin_emails"], []
    )
    return Settings(
        admin_emails=[e.lower() for e in admin_emails],
        notification_limit=resolve_value(None, config, ["notifications", "limit"], 10),
        batch_size=resolve_value(None, config, ["notifications", "batch_size"], 10),
        jwt_secret_key=resolve_value(
            os.getenv("JWT_SECRET_KEY"), config, ["auth", "jwt_secret_key"],
            "your-secret-key-change-this-in-production"
        ),
        access_token_expire_minutes=resolve_value(
            None, config, ["auth", "access_token_expire_minutes"], 60 * 24
        ),
        host=resolve_value(os.getenv("SERVER_HOST"), config, ["server", "host"], "0.0.0.0"),
        port=int(resolve_value(os.getenv("SERVER_PORT"), config, ["server", "port"], 8000)),
    )


@lru_cache
def get_settings() -> Settings:
    return build_settings(load_config(os.getenv("CLASSROOM_CONFIG", "config.yaml")))
