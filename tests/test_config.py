"""Tests for settings loading and the config service."""

import asyncio
import tempfile
import time
from pathlib import Path

import pytest
import yaml

from modguard.config import ConfigService, Settings, load_settings
from modguard.errors import ConfigurationError
from modguard.orchestrator.health import HealthChecker


def test_defaults():
    with tempfile.TemporaryDirectory() as tmpdir:
        settings = load_settings(env={"MODGUARD_DATA_DIR": tmpdir})
        assert settings.batch_size == 10
        assert settings.enable_audit_logging
        assert settings.data_dir == Path(tmpdir)


def test_yaml_then_env_layering():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "modguard.yaml"
        with open(path, "w") as f:
            yaml.dump({"batch_size": 25, "log_level": "debug", "enable_events": False}, f)

        settings = load_settings(path, env={"MODGUARD_BATCH_SIZE": "5", "MODGUARD_DATA_DIR": tmpdir})
        assert settings.batch_size == 5
        assert settings.log_level == "DEBUG"
        assert settings.enable_events is False


def test_config_yaml_in_data_dir_is_picked_up():
    with tempfile.TemporaryDirectory() as tmpdir:
        with open(Path(tmpdir) / "config.yaml", "w") as f:
            yaml.dump({"operation_timeout": 12.5}, f)
        settings = load_settings(env={"MODGUARD_DATA_DIR": tmpdir})
        assert settings.operation_timeout == 12.5


def test_env_booleans():
    with tempfile.TemporaryDirectory() as tmpdir:
        settings = load_settings(
            env={"MODGUARD_DATA_DIR": tmpdir, "MODGUARD_ENABLE_NOTIFICATIONS": "off", "MODGUARD_LOG_JSON": "yes"}
        )
        assert settings.enable_notifications is False
        assert settings.log_json is True


def test_invalid_values_are_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(ConfigurationError):
            load_settings(env={"MODGUARD_DATA_DIR": tmpdir, "MODGUARD_BATCH_SIZE": "0"})
        with pytest.raises(ConfigurationError):
            load_settings(env={"MODGUARD_DATA_DIR": tmpdir, "MODGUARD_STORE_TIMEOUT": "abc"})
        path = Path(tmpdir) / "bad.yaml"
        with open(path, "w") as f:
            yaml.dump({"no_such_key": 1}, f)
        with pytest.raises(ConfigurationError):
            load_settings(path, env={})


def test_secret_is_masked():
    settings = Settings(data_dir=Path("/tmp/x"), webhook_url="https://h", webhook_secret="abc")
    data = settings.to_dict()
    assert data["webhook_secret"] == "***"
    assert data["data_dir"] == "/tmp/x"


def test_config_service_update():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = ConfigService(Settings(data_dir=Path(tmpdir)))
        updated = service.update(batch_size=3)
        assert updated.batch_size == 3
        assert service.settings.batch_size == 3
        with pytest.raises(ConfigurationError):
            service.update(batch_size=0)
        with pytest.raises(ConfigurationError):
            service.update(colour="blue")
        assert service.settings.batch_size == 3
        asyncio.run(service.health_check())


class StuckConfigService(ConfigService):
    def _probe_data_dir(self):
        time.sleep(0.5)


def test_stuck_data_dir_does_not_block_other_checks():
    with tempfile.TemporaryDirectory() as tmpdir:
        checker = HealthChecker(
            {"config": StuckConfigService(Settings(data_dir=Path(tmpdir))), "other": object()},
            timeout=0.1,
        )
        started = time.monotonic()
        report = asyncio.run(checker.run())
        assert report.services["config"].status == "down"
        assert report.services["other"].status == "up"
        assert report.services["config"].response_time_ms < 400
        assert time.monotonic() - started < 2
