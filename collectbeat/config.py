from __future__ import annotations

import os
import socket
import stat
import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from libbeat.errors import ConfigurationError
from libbeat.logging import LoggingSettings

KNOWN_SECTIONS = {"beat", "output", "logging"}


class BeatSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(default_factory=socket.gethostname)
    tags: list[str] = Field(default_factory=list)
    collector: str = "system"

    @field_validator("name", "collector")
    @classmethod
    def validate_non_empty(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("field cannot be empty")
        return cleaned


class OutputSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["console", "file", "http"] = "console"
    pretty: bool = False
    path: str = "~/.collectbeat/data"
    filename: str = "collectbeat.ndjson"
    rotate_every_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)
    keep_files: int = Field(default=7, ge=1, le=1024)
    url: str = "http://127.0.0.1:9200/collectbeat/_doc"
    api_key: str | None = None
    timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    tls_verify: bool = True
    queue_size: int = Field(default=1000, ge=1, le=100000)

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned.startswith(("http://", "https://")):
            raise ValueError("output url must start with http:// or https://")
        return cleaned


class BeatDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    beat: BeatSettings = Field(default_factory=BeatSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    collectors: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def collector_section(self, name: str | None = None) -> dict[str, Any]:
        return dict(self.collectors.get(name or self.beat.collector, {}))


def default_beat_dir() -> Path:
    if os.name == "nt":
        appdata = os.getenv("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
        return base / "collectbeat"
    return Path.home() / ".collectbeat"


def default_config_path() -> Path:
    return default_beat_dir() / "collectbeat.toml"


def _secure_path(path: Path, mode: int) -> None:
    if os.name == "nt":
        return
    path.chmod(mode)
    actual = stat.S_IMODE(path.stat().st_mode)
    if actual != mode:
        raise PermissionError(f"unable to set permissions {oct(mode)} for {path}")


def default_config_text() -> str:
    return (
        "[beat]\n"
        "# name defaults to the hostname\n"
        "tags = []\n"
        'collector = "system"\n'
        "\n"
        "[system]\n"
        "period = 10\n"
        "percpu = false\n"
        "\n"
        "[process]\n"
        "period = 10\n"
        "max_processes = 20\n"
        "names = []\n"
        "\n"
        "[output]\n"
        'type = "console"\n'
        "pretty = false\n"
        "\n"
        "[logging]\n"
        'level = "info"\n'
        'format = "json"\n'
        "to_files = false\n"
    )


def init_config(config_path: Path | None = None) -> Path:
    path = (config_path or default_config_path()).expanduser().resolve(strict=False)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        _secure_path(path, 0o600)
        return path
    path.write_text(default_config_text(), encoding="utf-8")
    _secure_path(path, 0o600)
    return path


def _env_overrides() -> dict[tuple[str, str], str]:
    mapping = {
        "COLLECTBEAT_NAME": ("beat", "name"),
        "COLLECTBEAT_COLLECTOR": ("beat", "collector"),
        "COLLECTBEAT_OUTPUT_TYPE": ("output", "type"),
        "COLLECTBEAT_OUTPUT_URL": ("output", "url"),
        "COLLECTBEAT_OUTPUT_API_KEY": ("output", "api_key"),
        "COLLECTBEAT_LOG_LEVEL": ("logging", "level"),
    }
    out: dict[tuple[str, str], str] = {}
    for env_name, target in mapping.items():
        raw = os.getenv(env_name)
        if raw:
            out[target] = raw
    return out


def parse_document(raw: dict[str, Any], source: str = "<memory>") -> BeatDocument:
    sections: dict[str, Any] = {}
    collectors: dict[str, dict[str, Any]] = {}
    for key, value in raw.items():
        if not isinstance(value, dict):
            raise ConfigurationError(f"invalid config at {source}: top-level key {key!r} must be a table")
        if key in KNOWN_SECTIONS:
            sections[key] = dict(value)
        else:
            collectors[key] = dict(value)

    for (section, option), value in _env_overrides().items():
        sections.setdefault(section, {})[option] = value

    try:
        return BeatDocument.model_validate({**sections, "collectors": collectors})
    except ValidationError as exc:
        raise ConfigurationError(f"invalid config at {source}: {exc}") from exc


def load_config(config_path: Path | None = None) -> BeatDocument:
    path = (config_path or default_config_path()).expanduser().resolve(strict=False)
    if not path.is_file():
        raise ConfigurationError(f"config file not found: {path} (run 'collectbeat init' to create one)")
    try:
        with path.open("rb") as handle:
            raw: dict[str, Any] = tomllib.load(handle)
    except OSError as exc:
        raise ConfigurationError(f"unable to read config {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"malformed config {path}: {exc}") from exc
    return parse_document(raw, source=str(path))
