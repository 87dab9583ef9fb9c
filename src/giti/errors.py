from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    GENERAL = "Error"
    DELEGATION_FAILURE = "Subcommand failed"
    INVALID_DIFFBASE = "Invalid diffbase"
    CORRUPT_STATE = "Corrupt diffbase state"
    CONFIGURATION_MISSING = "Missing configuration"
    IO_FAILURE = "I/O failure"


class GitiError(Exception):
    kind = ErrorKind.GENERAL

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        if kind is not None:
            self.kind = kind
        self.message = message
        super().__init__(message)


class DelegationFailure(GitiError):
    """A child process exited non-zero or was terminated by a signal."""

    kind = ErrorKind.DELEGATION_FAILURE

    def __init__(
        self,
        program: str,
        returncode: Optional[int] = None,
        signal: Optional[int] = None,
    ):
        self.program = program
        self.returncode = returncode
        self.signal = signal
        if signal is not None:
            message = f"{program} was terminated by signal {signal}."
        else:
            message = f"{program} exited with {returncode}"
        super().__init__(message)


class InvalidDiffbase(GitiError):
    kind = ErrorKind.INVALID_DIFFBASE

    def __init__(self, branch: str, reason: Optional[str] = None):
        self.branch = branch
        message = f"{branch} cannot be a diffbase."
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)


class CorruptState(GitiError):
    kind = ErrorKind.CORRUPT_STATE


class ConfigurationMissing(GitiError):
    kind = ErrorKind.CONFIGURATION_MISSING


class IOFailure(GitiError):
    kind = ErrorKind.IO_FAILURE
