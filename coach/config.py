from dataclasses import dataclass
from typing import Mapping, Optional
import os

from dotenv import load_dotenv

from coach.errors import ConfigurationError


def _required(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if not value:
        raise ConfigurationError(name)
    return value


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    openai_api_key: str
    database_url: str
    jwt_secret: str
    openai_base_url: Optional[str] = None
    llm_model: str = "deepseek/deepseek-v3"
    llm_temperature: float = 0.7
    redis_url: str = "redis://localhost:6379/0"
    graphite_host: str = "localhost"
    graphite_port: int = 8125
    metrics_prefix: str = "production.coachapi"
    shutdown_timeout: float = 30.0
    history_summary_enabled: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        # a local .env only fills in what the real environment leaves unset
        if env is None:
            load_dotenv()
            env = os.environ

        return cls(
            openai_api_key=_required(env, "OPENAI_API_KEY"),
            database_url=_required(env, "PG_DATABASE_URL"),
            jwt_secret=_required(env, "JWT_SECRET"),
            openai_base_url=env.get("OPENAI_BASE_URL") or None,
            llm_model=env.get("LLM_MODEL", cls.llm_model),
            llm_temperature=float(env.get("LLM_TEMPERATURE", cls.llm_temperature)),
            redis_url=env.get("REDIS_URL", cls.redis_url),
            graphite_host=env.get("GRAPHITE_HOST", cls.graphite_host),
            graphite_port=int(env.get("GRAPHITE_HOST_PORT", cls.graphite_port)),
            metrics_prefix=env.get("METRICS_PREFIX", cls.metrics_prefix),
            shutdown_timeout=float(env.get("SHUTDOWN_TIMEOUT", cls.shutdown_timeout)),
            history_summary_enabled=_flag(env.get("HISTORY_SUMMARY_ENABLED")),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
        )
