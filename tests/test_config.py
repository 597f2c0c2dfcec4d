from __future__ import annotations

import json
from pathlib import Path

from pdftool.config import dump_config, load_config
from pdftool.settings import Settings, load_settings_config


def write_config(path: Path) -> Path:
    path.write_text(
        """
[runtime]
max_upload_mb = 10
max_files = 5
temp_dir = "/tmp/pdftool"

[codec]
unsupported_extensions = [".HEIC", ".jxl"]

[remote]
api_key = "from-file"
max_polls = 4
""",
        encoding="utf-8",
    )
    return path


def test_defaults_when_file_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path / "missing.toml")
    assert config.runtime.max_upload_mb == 150
    assert config.runtime.max_dimension == 2480
    assert config.remote.max_polls == 90
    assert config.api.port == 3000
    assert not config.remote.configured


def test_load_sections(tmp_path: Path) -> None:
    config = load_config(write_config(tmp_path / "config.toml"))
    assert config.runtime.max_upload_bytes == 10 * 1024 * 1024
    assert config.runtime.temp_dir == Path("/tmp/pdftool")
    assert config.codec.unsupported_extensions == (".heic", ".jxl")
    assert config.codec.unsupported_mime_types == ("image/heic", "image/heif")
    assert config.remote.configured


def test_dump_masks_api_key(tmp_path: Path) -> None:
    payload = json.loads(dump_config(load_config(write_config(tmp_path / "config.toml"))))
    assert payload["remote"]["api_key"] == "***"
    assert payload["runtime"]["max_files"] == 5


def test_environment_overrides(tmp_path: Path, monkeypatch) -> None:
    path = write_config(tmp_path / "config.toml")
    monkeypatch.setenv("PDFTOOL_MAX_DIMENSION", "1024")
    monkeypatch.setenv("PDFTOOL_REMOTE_API_KEY", "from-env")
    monkeypatch.setenv("PDFTOOL_PORT", "8080")
    config = load_settings_config(Settings(config_path=path, _env_file=None))
    assert config.runtime.max_dimension == 1024
    assert config.runtime.max_upload_mb == 10
    assert config.remote.api_key == "from-env"
    assert config.api.port == 8080
