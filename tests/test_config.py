from __future__ import annotations

from pathlib import Path

from taskboard_sync.config import ClientSettings, load_client_config


def test_defaults_when_file_missing(tmp_path: Path) -> None:
    settings, err = load_client_config(tmp_path / "missing.yaml", environ={})
    assert err is None
    assert settings == ClientSettings()
    assert settings.base_url == "http://localhost:5000/api"
    assert settings.update_failure_policy == "refetch"
    assert settings.ordered_updates is True


def test_yaml_file(tmp_path: Path) -> None:
    path = tmp_path / "taskboard.yaml"
    path.write_text(
        "base_url: https://tasks.example.com/api\n"
        "timeout_seconds: 3\n"
        "update_failure_policy: rollback\n"
        "ordered_updates: false\n",
        encoding="utf-8",
    )
    settings, err = load_client_config(path, environ={})
    assert err is None
    assert settings.base_url == "https://tasks.example.com/api"
    assert settings.timeout_seconds == 3.0
    assert settings.update_failure_policy == "rollback"
    assert settings.ordered_updates is False


def test_empty_file_is_defaults(tmp_path: Path) -> None:
    path = tmp_path / "taskboard.yaml"
    path.write_text("", encoding="utf-8")
    settings, err = load_client_config(path, environ={})
    assert err is None
    assert settings == ClientSettings()


def test_env_overrides_file(tmp_path: Path) -> None:
    path = tmp_path / "taskboard.yaml"
    path.write_text("base_url: https://file/api\nlog_level: DEBUG\n", encoding="utf-8")
    settings, err = load_client_config(
        path,
        environ={"TASKBOARD_BASE_URL": "https://env/api", "TASKBOARD_ORDERED_UPDATES": "false", "TASKBOARD_TIMEOUT": " "},
    )
    assert err is None
    assert settings.base_url == "https://env/api"
    assert settings.ordered_updates is False
    assert settings.log_level == "DEBUG"
    assert settings.timeout_seconds == 15.0


def test_non_mapping_file(tmp_path: Path) -> None:
    path = tmp_path / "taskboard.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    settings, err = load_client_config(path, environ={"TASKBOARD_BASE_URL": "https://env/api"})
    assert err is not None and "must contain a mapping" in err
    assert settings.base_url == "https://env/api"


def test_unparsable_file(tmp_path: Path) -> None:
    path = tmp_path / "taskboard.yaml"
    path.write_text("base_url: [unterminated\n", encoding="utf-8")
    settings, err = load_client_config(path, environ={})
    assert err is not None and err.startswith("Unable to read")
    assert settings == ClientSettings()


def test_invalid_value_falls_back(tmp_path: Path) -> None:
    path = tmp_path / "taskboard.yaml"
    path.write_text("update_failure_policy: ignore\ntimeout_seconds: 2\n", encoding="utf-8")
    settings, err = load_client_config(path, environ={"TASKBOARD_BASE_URL": "https://env/api"})
    assert err is not None and err.startswith("Invalid setting update_failure_policy")
    assert settings.update_failure_policy == "refetch"
    assert settings.timeout_seconds == 15.0
    assert settings.base_url == "https://env/api"


def test_invalid_env_value_yields_defaults(tmp_path: Path) -> None:
    settings, err = load_client_config(tmp_path / "missing.yaml", environ={"TASKBOARD_TIMEOUT": "-1"})
    assert err is not None and "timeout_seconds" in err
    assert settings == ClientSettings()
