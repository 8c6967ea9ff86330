"""Caller-supplied collaborators and their defaults.

Each collaborator is a plain callable with a single responsibility:

* ``body(seed_row) -> mapping`` builds the request body for the transport.
* ``back_off(payload, seed_row, fetches_since_last_back_off) -> bool``
  reports rate limiting after a successful fetch.
* ``mutate(seed_row) -> None`` adjusts a freshly loaded row in place.
* ``refine(outcome) -> mapping`` returns the new fields appended during
  reassembly.

Job files reference them as ``package.module:attribute``.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

from ..config import BackOffRule, HooksConfig
from ..errors import ConfigError
from .outcome import FetchOutcome
from .seeds import SeedRow


class BodyBuilder(Protocol):
    def __call__(self, seed_row: SeedRow) -> Mapping[str, Any]: ...


class BackOffPolicy(Protocol):
    def __call__(self, payload: Any, seed_row: SeedRow, fetches_since_last_back_off: int) -> bool: ...


class RowMutator(Protocol):
    def __call__(self, seed_row: SeedRow) -> None: ...


class RefineFn(Protocol):
    def __call__(self, outcome: FetchOutcome) -> Mapping[str, Any]: ...


Transport = Callable[[SeedRow], Any]


def default_body(seed_row: SeedRow) -> Mapping[str, Any]:
    # Only the declared columns leave the machine; raw lines may hold more.
    return seed_row.relevant_fields()


def never_back_off(payload: Any, seed_row: SeedRow, fetches_since_last_back_off: int) -> bool:
    return False


def keep_row(seed_row: SeedRow) -> None:
    return None


def rule_policy(rule: BackOffRule) -> BackOffPolicy:
    """Build a back-off policy from the declarative ``back_off`` rule."""

    def _policy(payload: Any, seed_row: SeedRow, fetches_since_last_back_off: int) -> bool:
        if rule.every_n_fetches is not None and fetches_since_last_back_off >= rule.every_n_fetches:
            return True
        if rule.field is not None and isinstance(payload, Mapping):
            return rule.field in payload and payload[rule.field] == rule.equals
        return False

    return _policy


def resolve_hook(reference: str) -> Callable[..., Any]:
    """Import ``package.module:attribute`` and return the callable."""

    module_name, _, attribute = reference.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"Cannot import hook module {module_name!r}: {exc}") from exc
    target: Any = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise ConfigError(f"Hook {reference!r} not found") from exc
    if not callable(target):
        raise ConfigError(f"Hook {reference!r} is not callable")
    return target


@dataclass(slots=True)
class HookSet:
    """Resolved collaborators handed to the engine at construction."""

    body: BodyBuilder = default_body
    back_off: BackOffPolicy = never_back_off
    mutate: RowMutator = keep_row
    refine: RefineFn | None = None

    @classmethod
    def from_config(cls, hooks: HooksConfig, rule: BackOffRule | None = None) -> "HookSet":
        hook_set = cls()
        if hooks.body:
            hook_set.body = resolve_hook(hooks.body)
        if hooks.back_off:
            hook_set.back_off = resolve_hook(hooks.back_off)
        elif rule is not None and rule.enabled:
            hook_set.back_off = rule_policy(rule)
        if hooks.mutate:
            hook_set.mutate = resolve_hook(hooks.mutate)
        if hooks.refine:
            hook_set.refine = resolve_hook(hooks.refine)
        return hook_set


__all__ = [
    "BackOffPolicy",
    "BodyBuilder",
    "HookSet",
    "RefineFn",
    "RowMutator",
    "Transport",
    "default_body",
    "keep_row",
    "never_back_off",
    "resolve_hook",
    "rule_policy",
]
