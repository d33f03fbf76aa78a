import pytest

from coach.config import Settings
from coach.errors import ConfigurationError

REQUIRED = {
    "OPENAI_API_KEY": "sk-test",
    "PG_DATABASE_URL": "postgresql://coach@localhost/coach",
    "JWT_SECRET": "secret",
}


def test_defaults():
    settings = Settings.from_env(dict(REQUIRED))

    assert settings.llm_model == "deepseek/deepseek-v3"
    assert settings.llm_temperature == 0.7
    assert settings.openai_base_url is None
    assert settings.graphite_port == 8125
    assert settings.shutdown_timeout == 30.0
    assert settings.history_summary_enabled is False
    assert settings.log_level == "INFO"


@pytest.mark.parametrize("name", sorted(REQUIRED))
def test_missing_required_value(name):
    env = dict(REQUIRED)
    env[name] = ""

    with pytest.raises(ConfigurationError) as excinfo:
        Settings.from_env(env)
    assert name in str(excinfo.value)


def test_overrides():
    settings = Settings.from_env(dict(
        REQUIRED,
        OPENAI_BASE_URL="https://openrouter.ai/api/v1",
        LLM_TEMPERATURE="0.2",
        GRAPHITE_HOST_PORT="9125",
        SHUTDOWN_TIMEOUT="5",
        LOG_LEVEL="debug",
    ))

    assert settings.openai_base_url == "https://openrouter.ai/api/v1"
    assert settings.llm_temperature == 0.2
    assert settings.graphite_port == 9125
    assert settings.shutdown_timeout == 5.0
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("On", True), ("false", False), ("", False)])
def test_history_summary_flag(value, expected):
    settings = Settings.from_env(dict(REQUIRED, HISTORY_SUMMARY_ENABLED=value))
    assert settings.history_summary_enabled is expected
