"""certkeep exceptions."""


class CertKeepError(Exception):
    """Base exception for certkeep."""

    pass


class ConfigError(CertKeepError):
    """Configuration error."""

    pass


class NotFoundError(CertKeepError, FileNotFoundError):
    """Key not found in storage."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Key not found: {key}")
        self.key = key


class BackendUnavailableError(CertKeepError):
    """The database backend failed or did not answer in time."""

    pass


class LockError(CertKeepError):
    """Lock-related error."""

    pass


class LockContendedError(LockError):
    """Lock is currently held by an unexpired lease."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Lock is held: {key}")
        self.key = key


class LockTimeoutError(LockError, TimeoutError):
    """Gave up waiting for a contended lock."""

    def __init__(self, key: str, timeout: float | None) -> None:
        super().__init__(f"Timed out after {timeout}s waiting for lock: {key}")
        self.key = key
        self.timeout = timeout
