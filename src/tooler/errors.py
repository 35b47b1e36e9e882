"""Exceptions raised by tooler.

Expected failures (package not found, download failed, misconfigured download
settings) are reported through result objects. Exceptions are reserved for
programmer misuse and host misconfiguration.
"""


class ToolerError(Exception):
    """Base class for tooler exceptions."""


class InvalidPackageIdError(ToolerError, ValueError):
    """Raised when a package id is empty or blank."""


class ExecutableUnavailableError(ToolerError):
    """Raised when the package-management executable cannot be obtained."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result
