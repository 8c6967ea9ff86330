"""Configuration loading helpers for seed fetch jobs."""

from __future__ import annotations

import json
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..errors import ConfigError
from .models import JobConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
JOB_TEMPLATE_NAME = "job_template.yaml"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot parse job file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Job file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


class ConfigRepository:
    """Repository encapsulating job file IO and schema validation."""

    def load_job(self, path: Path) -> JobConfig:
        path = Path(path)
        if path.suffix not in CONFIG_EXTENSIONS:
            raise ConfigError(f"Unsupported job file type {path.suffix!r}; use one of {CONFIG_EXTENSIONS}")
        if not path.exists():
            raise ConfigError(f"Job file not found: {path}")
        payload = _read_file(path)
        try:
            config = JobConfig.model_validate(payload)
        except ValidationError as exc:
            raise ConfigError(f"Invalid job file {path}:\n{exc}") from exc
        return config.relative_to(path.resolve().parent)

    def save_job(self, config: JobConfig, path: Path) -> Path:
        payload = config.model_dump(mode="json", exclude_none=True)
        _write_file(Path(path), payload)
        return Path(path)

    def write_template(self, path: Path, *, overwrite: bool = False) -> Path:
        """Copy the commented job template to ``path``."""

        path = Path(path)
        if path.exists() and not overwrite:
            raise ConfigError(f"Refusing to overwrite existing file: {path}")
        template_path = self.template_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(template_path.read_text(encoding="utf-8"), encoding="utf-8")
        return path

    @staticmethod
    def template_path(template_name: str = JOB_TEMPLATE_NAME) -> Path:
        templates_dir = Path(__file__).resolve().parent / "templates"
        template_path = templates_dir / template_name
        if not template_path.exists():
            raise FileNotFoundError(f"Template not found: {template_path}")
        return template_path


__all__ = ["CONFIG_EXTENSIONS", "ConfigRepository"]
