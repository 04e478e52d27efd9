from __future__ import annotations

import pytest

from eos_standards.model import Mode
from eos_standards.runtime import env_policy
from tests.env_helpers import clean_verify_env


def test_mode_precedence(env_scope) -> None:
    with env_scope(clean_verify_env()):
        assert env_policy.resolve_mode(None) is Mode.BLOCKING
        assert env_policy.resolve_mode(None, configured="advisory") is Mode.ADVISORY
    with env_scope(clean_verify_env(VERIFICATION_MODE="advisory")):
        assert env_policy.resolve_mode(None, configured="blocking") is Mode.ADVISORY
        assert env_policy.resolve_mode("blocking") is Mode.BLOCKING


def test_invalid_mode_raises(env_scope) -> None:
    with env_scope(clean_verify_env()):
        with pytest.raises(ValueError, match="Invalid mode 'strict'"):
            env_policy.resolve_mode("strict")
    with env_scope(clean_verify_env(VERIFICATION_MODE="loud")):
        with pytest.raises(ValueError):
            env_policy.resolve_mode(None)


def test_concurrency_defaults_to_host_with_ceiling(env_scope) -> None:
    with env_scope(clean_verify_env()):
        assert env_policy.resolve_concurrency(None, cpu_count=4) == 4
        assert env_policy.resolve_concurrency(None, cpu_count=32) == 8
    with env_scope(clean_verify_env(CI="true")):
        assert env_policy.resolve_concurrency(None, cpu_count=32) == 2
        assert env_policy.resolve_concurrency(None, cpu_count=1) == 1


def test_concurrency_precedence(env_scope) -> None:
    with env_scope(clean_verify_env(EOS_VERIFY_CONCURRENCY="5")):
        assert env_policy.resolve_concurrency(3) == 3
        assert env_policy.resolve_concurrency(None, configured=6) == 5
    with env_scope(clean_verify_env()):
        assert env_policy.resolve_concurrency(None, configured=6) == 6
    with env_scope(clean_verify_env(EOS_VERIFY_CONCURRENCY="zero")):
        with pytest.raises(ValueError, match="invalid concurrency"):
            env_policy.resolve_concurrency(None)
    with pytest.raises(ValueError):
        env_policy.resolve_concurrency(0)


def test_timeout_precedence(env_scope) -> None:
    with env_scope(clean_verify_env()):
        assert env_policy.resolve_timeout_seconds(None, default=30.0) == 30.0
        assert env_policy.resolve_timeout_seconds(None, configured=10, default=30.0) == 10.0
        assert env_policy.resolve_timeout_seconds(2.5, configured=10, default=30.0) == 2.5
    with env_scope(clean_verify_env(EOS_VERIFY_TIMEOUT_SECONDS="7")):
        assert env_policy.resolve_timeout_seconds(None, configured=10, default=30.0) == 7.0
    with env_scope(clean_verify_env(EOS_VERIFY_TIMEOUT_SECONDS="-1")):
        with pytest.raises(ValueError, match="invalid timeout"):
            env_policy.resolve_timeout_seconds(None, default=30.0)


def test_env_enabled_flag_values() -> None:
    assert env_policy.env_enabled_flag("CI", value="YES")
    assert env_policy.env_enabled_flag("CI", value=" 1 ")
    assert not env_policy.env_enabled_flag("CI", value="false")
    assert not env_policy.env_enabled_flag("CI", value="")


def test_injected_environ_replaces_process_environment(env_scope) -> None:
    injected = {
        "VERIFICATION_MODE": "advisory",
        "EOS_VERIFY_TIMEOUT_SECONDS": "4",
        "CI": "1",
    }
    with env_scope(clean_verify_env(VERIFICATION_MODE="blocking", EOS_VERIFY_TIMEOUT_SECONDS="9")):
        assert env_policy.resolve_mode(None, environ=injected) is Mode.ADVISORY
        assert env_policy.resolve_timeout_seconds(None, default=30.0, environ=injected) == 4.0
        assert env_policy.resolve_concurrency(None, cpu_count=32, environ=injected) == 2
        assert env_policy.resolve_concurrency(None, cpu_count=32, environ={}) == 8
    with env_scope(clean_verify_env(EOS_VERIFY_CONCURRENCY="5")):
        assert env_policy.resolve_concurrency(None, cpu_count=32, environ={}) == 8
