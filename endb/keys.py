"""Namespace prefixing of logical keys."""

from __future__ import annotations

from endb.core.errors import ConfigError

SEPARATOR = ":"


class KeyEncoder:
    """
    Maps logical keys to physical keys and back.

    A physical key is ``namespace + ":" + key``. Namespaces may not contain
    the separator, which keeps the mapping injective.

    Usage:
        keys = KeyEncoder("users")
        keys.prefix("42")            # "users:42"
        keys.strip("users:42")       # "42"
        keys.owns("sessions:42")     # False
    """

    def __init__(self, namespace: str, separator: str = SEPARATOR) -> None:
        validate_namespace(namespace, separator)
        self.namespace = namespace
        self.separator = separator
        self._prefix = f"{namespace}{separator}"

    @property
    def key_prefix(self) -> str:
        """The prefix shared by every physical key in this namespace."""
        return self._prefix

    def prefix(self, key: str) -> str:
        if not isinstance(key, str):
            raise TypeError(f"Keys must be strings, got {type(key).__name__}")
        return self._prefix + key

    def strip(self, physical_key: str) -> str:
        if not physical_key.startswith(self._prefix):
            raise ValueError(
                f"Key '{physical_key}' is outside namespace '{self.namespace}'"
            )
        return physical_key[len(self._prefix):]

    def owns(self, physical_key: str) -> bool:
        return physical_key.startswith(self._prefix)

    def __repr__(self) -> str:
        return f"<KeyEncoder namespace={self.namespace!r}>"


def validate_namespace(namespace: str, separator: str = SEPARATOR) -> str:
    """Reject namespaces that would make physical keys ambiguous."""
    if not isinstance(namespace, str) or not namespace:
        raise ConfigError("Namespace must be a non-empty string")
    if separator in namespace:
        raise ConfigError(
            f"Namespace '{namespace}' must not contain the separator '{separator}'",
            details={"namespace": namespace},
        )
    return namespace
