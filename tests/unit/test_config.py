"""Tests for AppConfig loading."""

from pathlib import Path

from imagegen.config import AppConfig


class TestAppConfig:

    def test_defaults(self, monkeypatch):
        for key in ("DATA_DIR", "GENERATOR_COMMAND", "WORKER_POLL_INTERVAL_SECONDS"):
            monkeypatch.delenv(key, raising=False)
        settings = AppConfig(_env_file=None)

        assert settings.GENERATOR_TIMEOUT_SECONDS == 480.0
        assert settings.WORKER_POLL_INTERVAL_SECONDS == 2.0
        assert settings.JOB_LIST_LIMIT == 50
        assert settings.WORK_ITEM_JOB_LIST_LIMIT == 10
        assert settings.WORK_ITEM_IMAGE_LIST_LIMIT == 40
        assert settings.db_path == Path("~/.imagegen").expanduser() / "imagegen.db"

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.setenv("ENABLE_IMAGE_WORKER", "no")
        monkeypatch.setenv("FAIL_ORPHANED_JOBS_ON_START", "1")
        monkeypatch.setenv("GENERATOR_COMMAND", "/opt/gen/bin/imagegen generate --quiet")
        settings = AppConfig(_env_file=None)

        assert settings.data_root == tmp_path
        assert settings.ENABLE_IMAGE_WORKER is False
        assert settings.FAIL_ORPHANED_JOBS_ON_START is True
        assert settings.generator_argv == ["/opt/gen/bin/imagegen", "generate", "--quiet"]

    def test_allowed_origins_list(self):
        settings = AppConfig(_env_file=None, ALLOWED_ORIGINS="http://a.test, http://b.test,")
        assert settings.allowed_origins_list == ["http://a.test", "http://b.test"]
