"""
Exception hierarchy for the DSH tool

Resolution failures are raised to the caller. Per-host execution failures are
raised by the remote collaborator and turned into report entries by the executor.
"""

from typing import Optional


class DshError(Exception):
    """Base class for all DSH tool errors"""


class DirectoryUnavailable(DshError):
    """The directory service could not be reached"""

    def __init__(self, query: str, reason: str, group: Optional[str] = None):
        self.query = query
        self.reason = reason
        self.group = group
        if group:
            message = f"Directory unavailable while resolving group '{group}' ({query}): {reason}"
        else:
            message = f"Directory unavailable ({query}): {reason}"
        super().__init__(message)


class DirectoryQueryError(DshError):
    """The directory answered with an error or a malformed result"""

    def __init__(self, query: str, reason: str, group: Optional[str] = None, code: Optional[int] = None):
        self.query = query
        self.reason = reason
        self.group = group
        self.code = code
        if group:
            message = f"Directory query failed for group '{group}' ({query}): {reason}"
        else:
            message = f"Directory query failed ({query}): {reason}"
        super().__init__(message)


class FileAccessError(DshError):
    """A credential or group file could not be read or written"""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"File access failed for {path}: {reason}")


class ConfigurationError(DshError):
    """The group declaration cannot be satisfied with what the directory returned"""

    def __init__(self, group: str, reason: str):
        self.group = group
        self.reason = reason
        super().__init__(f"Configuration error for group '{group}': {reason}")


class RemoteError(DshError):
    """Base class for per-host remote failures"""

    def __init__(self, host: str, reason: str):
        self.host = host
        self.reason = reason
        super().__init__(f"{host}: {reason}")


class HostKeyMismatch(RemoteError):
    """The host presented a key other than the trusted one"""


class ConnectionRefused(RemoteError):
    pass


class AuthenticationFailed(RemoteError):
    pass


class RemoteConnectionError(RemoteError):
    """Any other transport level failure"""


class CommandTimeout(RemoteError):
    pass
