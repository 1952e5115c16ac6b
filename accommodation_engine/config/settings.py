# config/settings.py - Process settings from environment / .env
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

# Variables checked, in order, to decide whether this is a demo deployment
DEMO_ENV_VARS = ("NODE_ENV", "APP_ENV", "POST_SECONDARY_DEMO", "DEMO_MODE", "ENVIRONMENT")
TRUTHY_FLAGS = {"true", "yes", "1"}


def normalize_environment(value: Optional[str]) -> str:
    return (value or "").strip().lower().replace("_", "-")


def is_demo_environment(environ: Mapping[str, str]) -> bool:
    """True when any demo variable mentions 'demo' or is a truthy flag."""
    for name in DEMO_ENV_VARS:
        value = normalize_environment(environ.get(name))
        if not value:
            continue
        if "demo" in value or value in TRUTHY_FLAGS:
            return True
    return False


@dataclass
class EngineSettings:
    openai_api_key: str = ""
    openai_base: str = "https://api.openai.com/v1"
    fallback_model: str = "gpt-4.1"
    request_timeout: float = 120.0
    config_path: str = "config/engine.yaml"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_json: bool = False
    is_demo: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineSettings":
        if environ is None:
            load_dotenv()
            environ = os.environ

        return cls(
            openai_api_key=environ.get("OPENAI_API_KEY", ""),
            openai_base=environ.get("OPENAI_BASE", "https://api.openai.com/v1"),
            fallback_model=environ.get("LLM_FALLBACK_MODEL", "gpt-4.1"),
            request_timeout=float(environ.get("LLM_TIMEOUT", "120")),
            config_path=environ.get("ENGINE_CONFIG_PATH", "config/engine.yaml"),
            log_level=environ.get("LOG_LEVEL", "INFO"),
            log_file=environ.get("LOG_FILE") or None,
            log_json=normalize_environment(environ.get("LOG_JSON")) in TRUTHY_FLAGS,
            is_demo=is_demo_environment(environ),
        )
