"""
Endb exception hierarchy.

Every error raised by the package inherits from EndbError.
Each concern has its own error class for targeted catching.

Usage:
    try:
        await db.set("user:1", profile)
    except KeyTooLongError as e:
        # Physical key exceeded the table's key size
    except EndbError as e:
        # Handle any Endb error
"""


class EndbError(Exception):
    """Base exception for all Endb errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ━━━ Configuration ━━━


class ConfigError(EndbError):
    """Options are invalid, missing, or malformed."""

    pass


class AdapterNotFoundError(ConfigError):
    """Requested adapter or URI scheme is not registered."""

    def __init__(
        self,
        message: str,
        adapter: str = "",
        details: dict | None = None,
    ):
        self.adapter = adapter
        super().__init__(message, details)


class RegistryError(EndbError):
    """Adapter registration conflict or frozen registry."""

    pass


# ━━━ Storage ━━━


class StorageError(EndbError):
    """Backend failure such as a driver error or an unusable connection."""

    pass


class BackendConnectionError(StorageError):
    """Backend unreachable, or the connection dropped mid-use."""

    pass


class ConstraintError(StorageError):
    """A write violated a storage constraint."""

    pass


class KeyTooLongError(ConstraintError):
    """Physical key is longer than the configured key size."""

    def __init__(
        self,
        message: str,
        key: str = "",
        key_size: int = 0,
        details: dict | None = None,
    ):
        self.key = key
        self.key_size = key_size
        super().__init__(message, details)


class NotSupportedError(StorageError):
    """The adapter does not implement an optional operation."""

    pass


# ━━━ Values ━━━


class SerializationError(EndbError):
    """Stored payload could not be decoded, or a value could not be encoded."""

    pass


class PathError(EndbError):
    """A nested path cannot be applied to the stored value."""

    def __init__(
        self,
        message: str,
        path: str = "",
        details: dict | None = None,
    ):
        self.path = path
        super().__init__(message, details)
