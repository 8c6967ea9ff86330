from __future__ import annotations

import json

import pytest

from conftest import make_rows
from seed_fetcher.config import BackOffRule, HooksConfig
from seed_fetcher.engine import HookSet
from seed_fetcher.engine.hooks import default_body, never_back_off, resolve_hook, rule_policy
from seed_fetcher.errors import ConfigError


def test_resolve_hook_imports_dotted_reference() -> None:
    assert resolve_hook("json:dumps") is json.dumps
    assert resolve_hook("json:JSONDecoder.decode") is json.JSONDecoder.decode


@pytest.mark.parametrize(
    "reference",
    ["seed_fetcher_missing_module:build", "json:not_there", "json:decoder"],
)
def test_resolve_hook_failures_are_config_errors(reference: str) -> None:
    with pytest.raises(ConfigError):
        resolve_hook(reference)


def test_hook_set_defaults() -> None:
    hooks = HookSet.from_config(HooksConfig())
    row = make_rows(["A"])[0]

    assert hooks.body is default_body
    assert hooks.back_off is never_back_off
    assert hooks.refine is None
    assert hooks.body(row) == {"id": "A"}


def test_hook_set_uses_declarative_rule_when_no_back_off_hook() -> None:
    hooks = HookSet.from_config(HooksConfig(refine="json:dumps"), BackOffRule(field="error", equals="Slow down."))
    row = make_rows(["A"])[0]

    assert hooks.refine is json.dumps
    assert hooks.back_off({"error": "Slow down."}, row, 1) is True
    assert hooks.back_off({"error": "other"}, row, 1) is False
    assert hooks.back_off("not a mapping", row, 1) is False


def test_rule_policy_every_n_fetches() -> None:
    policy = rule_policy(BackOffRule(every_n_fetches=3))
    row = make_rows(["A"])[0]
    assert [policy({}, row, count) for count in (1, 2, 3)] == [False, False, True]
