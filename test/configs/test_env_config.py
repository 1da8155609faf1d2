import pytest

from backup_exporter.configs.env_config import REQUIRED_VARS, Env
from backup_exporter.errors import ConfigError
from backup_exporter.utils.logger.config import LogLevel


def test_from_environ_reads_required_and_defaults(env_vars):
    settings = Env.from_environ(env_vars)

    assert settings.S3_BUCKET == "dns-backups"
    assert settings.CRON_EXPRESSION == "*/5 * * * *"
    assert settings.EXPORTER_PORT == 8000
    assert settings.S3_DELIMITER == "/"
    assert settings.LIST_CONCURRENCY == 8
    assert settings.LIST_TIMEOUT_SECONDS == pytest.approx(60.0)
    assert settings.LOG_LEVEL is LogLevel.INFO
    assert str(settings.tz) == "UTC"


def test_from_environ_reads_optional_overrides(env_vars):
    env_vars.update({
        "EXPORTER_PORT": "9340",
        "LIST_CONCURRENCY": "2",
        "LIST_TIMEOUT_SECONDS": "5.5",
        "LOG_LEVEL": "debug",
        "SCHEDULER_TIMEZONE": "Europe/Berlin",
    })

    settings = Env.from_environ(env_vars)

    assert settings.EXPORTER_PORT == 9340
    assert settings.LIST_CONCURRENCY == 2
    assert settings.LIST_TIMEOUT_SECONDS == pytest.approx(5.5)
    assert settings.LOG_LEVEL is LogLevel.DEBUG
    assert str(settings.tz) == "Europe/Berlin"


def test_missing_variables_are_all_reported(env_vars):
    del env_vars["S3_BUCKET"]
    env_vars["CRON_EXPRESSION"] = ""

    with pytest.raises(ConfigError) as exc_info:
        Env.from_environ(env_vars)

    assert exc_info.value.keys == ["S3_BUCKET", "CRON_EXPRESSION"]
    assert "S3_BUCKET" in str(exc_info.value)


def test_empty_environment_reports_every_required_variable():
    with pytest.raises(ConfigError) as exc_info:
        Env.from_environ({})

    assert exc_info.value.keys == list(REQUIRED_VARS)


@pytest.mark.parametrize("cron", ["* * * *", "61 * * * *", "0 0 * * funday", "0 0 1 * 1"])
def test_invalid_cron_expression(env_vars, cron):
    env_vars["CRON_EXPRESSION"] = cron

    with pytest.raises(ConfigError) as exc_info:
        Env.from_environ(env_vars)

    assert exc_info.value.keys == ["CRON_EXPRESSION"]


@pytest.mark.parametrize("key,value", [
    ("EXPORTER_PORT", "http"),
    ("LIST_CONCURRENCY", "0"),
    ("LIST_TIMEOUT_SECONDS", "-1"),
    ("LOG_LEVEL", "LOUD"),
    ("SCHEDULER_TIMEZONE", "Mars/Olympus"),
])
def test_invalid_optional_values(env_vars, key, value):
    env_vars[key] = value

    with pytest.raises(ConfigError) as exc_info:
        Env.from_environ(env_vars)

    assert exc_info.value.keys == [key]
