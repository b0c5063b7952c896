"""Arbitration window configuration and clock specs."""

from __future__ import annotations

import pytest

from escrow_spec.clock import ManualClock, SystemClock
from escrow_spec.config import (
    DEFAULT_AUTO_RESOLVE_TIMEOUT,
    DEFAULT_DISPUTE_WINDOW,
    DEFAULT_RESPONSE_WINDOW,
    ENV_DISPUTE_WINDOW,
    ENV_RESPONSE_WINDOW,
)
from escrow_spec.errors import ErrorCategory, ErrorCode, SpecError
from escrow_spec.settings import ArbitrationSettings


def test_defaults() -> None:
    s = ArbitrationSettings()
    assert s.to_dict() == {
        "dispute_window": DEFAULT_DISPUTE_WINDOW,
        "response_window": DEFAULT_RESPONSE_WINDOW,
        "auto_resolve_timeout": DEFAULT_AUTO_RESOLVE_TIMEOUT,
    }


def test_settings_are_immutable() -> None:
    s = ArbitrationSettings()
    with pytest.raises(AttributeError):
        s.dispute_window = 1  # type: ignore[misc]


@pytest.mark.parametrize("bad", [0, -5, True, 1.5, "soon", None])
def test_rejects_bad_durations(bad) -> None:
    with pytest.raises(SpecError) as exc:
        ArbitrationSettings(dispute_window=bad)
    assert exc.value.code == ErrorCode.INVALID_CONFIG
    assert exc.value.category == ErrorCategory.CONFIG


def test_from_env_overrides_and_defaults() -> None:
    env = {ENV_DISPUTE_WINDOW: "60", ENV_RESPONSE_WINDOW: " 30 "}
    s = ArbitrationSettings.from_env(env)
    assert s.dispute_window == 60
    assert s.response_window == 30
    assert s.auto_resolve_timeout == DEFAULT_AUTO_RESOLVE_TIMEOUT


def test_from_env_rejects_garbage() -> None:
    with pytest.raises(SpecError) as exc:
        ArbitrationSettings.from_env({ENV_DISPUTE_WINDOW: "a week"})
    assert exc.value.code == ErrorCode.INVALID_CONFIG


def test_from_mapping_rejects_unknown_keys() -> None:
    with pytest.raises(SpecError) as exc:
        ArbitrationSettings.from_mapping({"dispute_window": 10, "grace_period": 5})
    assert "grace_period" in exc.value.message


def test_from_mapping_none_is_defaults() -> None:
    assert ArbitrationSettings.from_mapping(None) == ArbitrationSettings()


def test_from_yaml_text_and_file(tmp_path) -> None:
    text = "dispute_window: 100\nresponse_window: 50\nauto_resolve_timeout: 200\n"
    from_text = ArbitrationSettings.from_yaml(text)
    path = tmp_path / "settings.yaml"
    path.write_text(text)
    from_file = ArbitrationSettings.from_yaml(path)

    assert from_text == from_file
    assert from_file.to_dict() == {
        "dispute_window": 100,
        "response_window": 50,
        "auto_resolve_timeout": 200,
    }


def test_from_yaml_must_be_mapping() -> None:
    with pytest.raises(SpecError) as exc:
        ArbitrationSettings.from_yaml("- 1\n- 2\n")
    assert exc.value.code == ErrorCode.INVALID_CONFIG


def test_from_yaml_empty_document_is_defaults() -> None:
    assert ArbitrationSettings.from_yaml("") == ArbitrationSettings()


def test_from_yaml_rejects_malformed() -> None:
    with pytest.raises(SpecError) as exc:
        ArbitrationSettings.from_yaml("dispute_window: [1, 2\n")
    assert exc.value.code == ErrorCode.INVALID_CONFIG


# --- clock ---


def test_manual_clock_moves_forward_only() -> None:
    clock = ManualClock(100)
    assert clock.now() == 100
    assert clock.advance(5) == 105
    clock.set(105)
    clock.set(200)
    assert clock.now() == 200
    with pytest.raises(ValueError):
        clock.set(199)
    with pytest.raises(ValueError):
        clock.advance(-1)
    with pytest.raises(ValueError):
        ManualClock(-1)


def test_system_clock_is_whole_seconds() -> None:
    now = SystemClock().now()
    assert isinstance(now, int)
    assert now > 1_600_000_000
