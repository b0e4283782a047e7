"""Tests for namespace key prefixing."""

import pytest

from endb.core.errors import ConfigError
from endb.keys import KeyEncoder, validate_namespace


def test_prefix_and_strip():
    keys = KeyEncoder("users")
    assert keys.prefix("42") == "users:42"
    assert keys.strip("users:42") == "42"


def test_strip_only_removes_leading_prefix():
    keys = KeyEncoder("a")
    physical = keys.prefix("x:a:y")
    assert physical == "a:x:a:y"
    assert keys.strip(physical) == "x:a:y"


def test_keys_may_contain_separator():
    keys = KeyEncoder("ns")
    assert keys.strip(keys.prefix("a:b")) == "a:b"


def test_owns():
    keys = KeyEncoder("users")
    assert keys.owns("users:1")
    assert not keys.owns("sessions:1")
    # "user" is a prefix of "users" but not the same namespace
    assert not KeyEncoder("user").owns("users:1")


def test_strip_foreign_key_raises():
    with pytest.raises(ValueError, match="outside namespace"):
        KeyEncoder("a").strip("b:key")


def test_non_string_key_rejected():
    with pytest.raises(TypeError):
        KeyEncoder("a").prefix(1)  # type: ignore[arg-type]


def test_mapping_is_injective_across_namespaces():
    a, b = KeyEncoder("a"), KeyEncoder("ab")
    assert a.prefix("b:c") != b.prefix("c")


@pytest.mark.parametrize("namespace", ["", "a:b", ":"])
def test_invalid_namespaces(namespace):
    with pytest.raises(ConfigError):
        validate_namespace(namespace)
