import os

from app.utils.logging_config import build_logging_config


def test_logging_config_routes_service_loggers(tmp_path):
    config = build_logging_config(tmp_path, "WARNING")

    assert config["handlers"]["app_file"]["filename"] == str(tmp_path / "app.log")
    assert config["handlers"]["error_file"]["level"] == "ERROR"
    assert config["handlers"]["console"]["level"] == "WARNING"
    for name in ("app", "webhooks", "media", "auth_module", "database"):
        assert config["loggers"][name]["propagate"] is False


def test_logging_config_prunes_old_backups(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_BACKUP_COUNT", "2")
    for index in range(1, 5):
        backup = tmp_path / f"app.log.{index}"
        backup.write_text("old", encoding="utf-8")
        os.utime(backup, (index, index))

    build_logging_config(tmp_path)

    assert sorted(path.name for path in tmp_path.glob("app.log.*")) == [
        "app.log.3",
        "app.log.4",
    ]
