from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping


CONFIG_FILE = Path("config.toml")

DEFAULT_REMOTE_BASE_URL = "https://api.cloudconvert.com/v2"


@dataclass(slots=True)
class RuntimeConfig:
    max_upload_mb: int = 150
    max_dimension: int = 2480
    max_files: int = 20
    parallelism: int = 1
    temp_dir: Path | None = None
    log_dir: Path | None = None
    log_file: str = "requests.jsonl"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


@dataclass(slots=True)
class CodecConfig:
    enabled: bool = True
    render_dpi: int = 150
    unsupported_extensions: tuple[str, ...] = (".heic", ".heif")
    unsupported_mime_types: tuple[str, ...] = ("image/heic", "image/heif")


@dataclass(slots=True)
class RemoteConfig:
    base_url: str = DEFAULT_REMOTE_BASE_URL
    api_key: str | None = None
    poll_interval_s: float = 2.0
    max_polls: int = 90
    upload_timeout_s: float = 120.0
    request_timeout_s: float = 60.0

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


@dataclass(slots=True)
class APIConfig:
    host: str = "0.0.0.0"
    port: int = 3000


@dataclass(slots=True)
class AppConfig:
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    codec: CodecConfig = field(default_factory=CodecConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    api: APIConfig = field(default_factory=APIConfig)


def _read_toml(path: Path) -> Mapping[str, object]:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _optional_path(value: object | None) -> Path | None:
    if value is None or str(value).strip() == "":
        return None
    return Path(str(value))


def _tuple_of_strings(value: object | None, default: Iterable[str]) -> tuple[str, ...]:
    if value is None:
        return tuple(default)
    if isinstance(value, str):
        return (value,)
    if isinstance(value, Iterable):
        return tuple(str(item) for item in value)
    raise TypeError(f"Unsupported list configuration: {value!r}")


def _build_runtime(data: Mapping[str, object] | None) -> RuntimeConfig:
    if not data:
        return RuntimeConfig()
    return RuntimeConfig(
        max_upload_mb=int(data.get("max_upload_mb", 150)),
        max_dimension=int(data.get("max_dimension", 2480)),
        max_files=int(data.get("max_files", 20)),
        parallelism=int(data.get("parallelism", 1)),
        temp_dir=_optional_path(data.get("temp_dir")),
        log_dir=_optional_path(data.get("log_dir")),
        log_file=str(data.get("log_file", "requests.jsonl")),
    )


def _build_codec(data: Mapping[str, object] | None) -> CodecConfig:
    if not data:
        return CodecConfig()
    defaults = CodecConfig()
    extensions = _tuple_of_strings(data.get("unsupported_extensions"), defaults.unsupported_extensions)
    return CodecConfig(
        enabled=bool(data.get("enabled", True)),
        render_dpi=int(data.get("render_dpi", 150)),
        unsupported_extensions=tuple(ext.lower() for ext in extensions),
        unsupported_mime_types=_tuple_of_strings(
            data.get("unsupported_mime_types"), defaults.unsupported_mime_types
        ),
    )


def _build_remote(data: Mapping[str, object] | None) -> RemoteConfig:
    if not data:
        return RemoteConfig()
    api_key = data.get("api_key")
    return RemoteConfig(
        base_url=str(data.get("base_url", DEFAULT_REMOTE_BASE_URL)).rstrip("/"),
        api_key=str(api_key).strip() if api_key else None,
        poll_interval_s=float(data.get("poll_interval_s", 2.0)),
        max_polls=int(data.get("max_polls", 90)),
        upload_timeout_s=float(data.get("upload_timeout_s", 120.0)),
        request_timeout_s=float(data.get("request_timeout_s", 60.0)),
    )


def _build_api(data: Mapping[str, object] | None) -> APIConfig:
    if not data:
        return APIConfig()
    return APIConfig(host=str(data.get("host", "0.0.0.0")), port=int(data.get("port", 3000)))


def _section(raw: Mapping[str, object], name: str) -> Mapping[str, object] | None:
    value = raw.get(name)
    return value if isinstance(value, Mapping) else None


def load_config(path: Path | None = None) -> AppConfig:
    path = path or CONFIG_FILE
    raw = _read_toml(path)
    return AppConfig(
        runtime=_build_runtime(_section(raw, "runtime")),
        codec=_build_codec(_section(raw, "codec")),
        remote=_build_remote(_section(raw, "remote")),
        api=_build_api(_section(raw, "api")),
    )


def dump_config(config: AppConfig) -> str:
    payload = {
        "runtime": {
            "max_upload_mb": config.runtime.max_upload_mb,
            "max_dimension": config.runtime.max_dimension,
            "max_files": config.runtime.max_files,
            "parallelism": config.runtime.parallelism,
            "temp_dir": str(config.runtime.temp_dir) if config.runtime.temp_dir else None,
            "log_dir": str(config.runtime.log_dir) if config.runtime.log_dir else None,
            "log_file": config.runtime.log_file,
        },
        "codec": {
            "enabled": config.codec.enabled,
            "render_dpi": config.codec.render_dpi,
            "unsupported_extensions": list(config.codec.unsupported_extensions),
            "unsupported_mime_types": list(config.codec.unsupported_mime_types),
        },
        "remote": {
            "base_url": config.remote.base_url,
            "api_key": "***" if config.remote.configured else None,
            "poll_interval_s": config.remote.poll_interval_s,
            "max_polls": config.remote.max_polls,
            "upload_timeout_s": config.remote.upload_timeout_s,
            "request_timeout_s": config.remote.request_timeout_s,
        },
        "api": {
            "host": config.api.host,
            "port": config.api.port,
        },
    }
    return json.dumps(payload, indent=2)
