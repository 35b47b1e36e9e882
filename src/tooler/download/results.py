"""Terminal outcomes of an executable download."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class DownloadOutcome(Enum):
    """Closed set of download outcomes."""

    DISABLED = "disabled"
    MISSING_URI_FORMAT = "missing-uri-format"
    MISSING_VERSION = "missing-version"
    MISSING_DIRECTORY = "missing-directory"
    INVALID_URI = "invalid-uri"
    DOWNLOAD_FAILED = "download-failed"
    SUCCESS = "success"
    EXCEPTION = "exception"


@dataclass(frozen=True)
class DownloadResult:
    """Outcome plus the payload relevant to it.

    ``path`` is set for SUCCESS, ``detail`` carries the URI or failure reason and
    ``exception`` the captured cause for EXCEPTION.
    """

    outcome: DownloadOutcome
    path: Optional[str] = None
    detail: Optional[str] = None
    exception: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is DownloadOutcome.SUCCESS

    @classmethod
    def disabled(cls) -> "DownloadResult":
        return cls(DownloadOutcome.DISABLED)

    @classmethod
    def missing_uri_format(cls) -> "DownloadResult":
        return cls(DownloadOutcome.MISSING_URI_FORMAT)

    @classmethod
    def missing_version(cls) -> "DownloadResult":
        return cls(DownloadOutcome.MISSING_VERSION)

    @classmethod
    def missing_directory(cls) -> "DownloadResult":
        return cls(DownloadOutcome.MISSING_DIRECTORY)

    @classmethod
    def invalid_uri(cls, uri: str) -> "DownloadResult":
        return cls(DownloadOutcome.INVALID_URI, detail=uri)

    @classmethod
    def download_failed(cls, reason: str) -> "DownloadResult":
        return cls(DownloadOutcome.DOWNLOAD_FAILED, detail=reason)

    @classmethod
    def success(cls, path: str) -> "DownloadResult":
        return cls(DownloadOutcome.SUCCESS, path=path)

    @classmethod
    def from_exception(cls, exception: BaseException) -> "DownloadResult":
        return cls(DownloadOutcome.EXCEPTION, detail=str(exception), exception=exception)

    def __str__(self) -> str:
        if self.succeeded:
            return f"{self.outcome.value}: {self.path}"
        if self.detail:
            return f"{self.outcome.value}: {self.detail}"
        return self.outcome.value
