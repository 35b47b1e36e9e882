"""Options for a version resolution call."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tooler.constants import Constants


@dataclass(frozen=True)
class ResolveOptions:
    """What to resolve and how.

    ``prefix`` applies to the subprocess strategy only: None selects the
    remembered prefix for the (config, source) pair, falling back to the
    default prefix. ``timeout`` bounds the whole call in seconds; None disables it.
    """

    source_name: Optional[str] = None
    config_file: Optional[str] = None
    allow_prerelease: bool = False
    max_rows: Optional[int] = None
    use_cli: bool = False
    prefix: Optional[str] = None
    adaptive_enabled: Optional[bool] = None
    timeout: Optional[float] = Constants.REQUEST_TIMEOUT
