"""Pydantic models describing a seed fetch job."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class SeedFormat(BaseModel):
    """Layout of the seed file.

    ``format`` is free text; unsupported formats are rejected by the seed
    store with ``SeedFormatError``.
    """

    format: str = "CSV"
    line_terminator: str = "\r\n"
    separator: str = ","

    @model_validator(mode="after")
    def _validate_delimiters(self) -> "SeedFormat":
        if not self.line_terminator:
            raise ValueError("line_terminator cannot be empty")
        if not self.separator:
            raise ValueError("separator cannot be empty")
        return self


class TransportConfig(BaseModel):
    """Settings for the default HTTP transport."""

    remote_service_url: str = "https://httpbin.org/post"
    method: Literal["GET", "POST", "PUT"] = "POST"
    fetch_enabled: bool = False
    randomize_user_agent: bool = True
    user_agents: list[str] | None = None
    proxy: str | None = None
    timeout: float = 20.0
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be > 0")
        return value


class HooksConfig(BaseModel):
    """Dotted ``package.module:attribute`` references to caller collaborators."""

    body: str | None = None
    back_off: str | None = None
    mutate: str | None = None
    refine: str | None = None

    @field_validator("body", "back_off", "mutate", "refine")
    @classmethod
    def _validate_reference(cls, value: str | None) -> str | None:
        if value is None:
            return None
        module, sep, attribute = value.partition(":")
        if not sep or not module or not attribute:
            raise ValueError(f"Hook reference must look like 'package.module:name', got {value!r}")
        return value


class BackOffRule(BaseModel):
    """Built-in rate-limit detection used when no back_off hook is given."""

    field: str | None = None
    equals: Any = None
    every_n_fetches: int | None = None

    @model_validator(mode="after")
    def _validate_rule(self) -> "BackOffRule":
        if self.every_n_fetches is not None and self.every_n_fetches < 1:
            raise ValueError("every_n_fetches must be >= 1")
        return self

    @property
    def enabled(self) -> bool:
        return self.field is not None or self.every_n_fetches is not None


class JobConfig(BaseModel):
    """Full definition of one fetch job."""

    run_type: str = "DEFAULT"
    task_interval: float = 2.0
    back_off_minutes: float = 1.0
    randomize_seed_order: bool = True
    shuffle_seed: int | None = None
    max_record_fail_count: int = 5
    max_fail_count: int = 25
    sleep_intervals_after_fail: float = 3
    discard_back_off_response: bool = False
    retry_discarded_record: bool = True
    post_run_refine_enabled: bool = False

    columns: dict[str, int]
    key_columns: list[str] | None = None

    seed_path: Path
    response_log_path: Path | None = None
    refined_path: Path | None = None
    seed_format: SeedFormat = Field(default_factory=SeedFormat)
    limit: int | None = None

    transport: TransportConfig = Field(default_factory=TransportConfig)
    hooks: HooksConfig = Field(default_factory=HooksConfig)
    back_off: BackOffRule = Field(default_factory=BackOffRule)

    @field_validator("seed_path", "response_log_path", "refined_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path | None:
        if value is None:
            return None
        return Path(value)

    @model_validator(mode="after")
    def _validate_job(self) -> "JobConfig":
        if self.task_interval <= 0:
            raise ValueError("task_interval must be > 0")
        if self.back_off_minutes < 0:
            raise ValueError("back_off_minutes must be >= 0")
        if self.sleep_intervals_after_fail < 0:
            raise ValueError("sleep_intervals_after_fail must be >= 0")
        if self.max_record_fail_count < 1:
            raise ValueError("max_record_fail_count must be >= 1")
        if self.max_fail_count < 1:
            raise ValueError("max_fail_count must be >= 1")
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be >= 0")
        if not self.columns:
            raise ValueError("columns must declare at least one seed column")
        for name, index in self.columns.items():
            if index < 0:
                raise ValueError(f"Column index for {name!r} must be >= 0")
        if self.key_columns is not None:
            if not self.key_columns:
                raise ValueError("key_columns cannot be empty")
            unknown = [name for name in self.key_columns if name not in self.columns]
            if unknown:
                raise ValueError(f"key_columns not declared in columns: {unknown}")
        if self.post_run_refine_enabled and not self.hooks.refine:
            raise ValueError("post_run_refine_enabled requires hooks.refine")
        return self

    @property
    def dedup_columns(self) -> list[str]:
        return list(self.key_columns or self.columns)

    @property
    def task_back_off_seconds(self) -> float:
        return self.back_off_minutes * 60

    def resolved_response_log_path(self) -> Path:
        if self.response_log_path is not None:
            return self.response_log_path
        return self.seed_path.with_name(f"{self.seed_path.stem}-responses.jsonl")

    def resolved_refined_path(self) -> Path:
        if self.refined_path is not None:
            return self.refined_path
        return self.seed_path.with_name(f"{self.seed_path.name}.refined.csv")

    def relative_to(self, base_dir: Path) -> "JobConfig":
        """Return a copy with relative paths anchored at ``base_dir``."""

        def _anchor(path: Path | None) -> Path | None:
            if path is None or path.is_absolute():
                return path
            return (base_dir / path).resolve()

        return self.model_copy(
            update={
                "seed_path": _anchor(self.seed_path),
                "response_log_path": _anchor(self.response_log_path),
                "refined_path": _anchor(self.refined_path),
            }
        )


__all__ = [
    "BackOffRule",
    "HooksConfig",
    "JobConfig",
    "SeedFormat",
    "TransportConfig",
]
