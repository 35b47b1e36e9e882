"""Remembered search prefix per (config file, source name)."""
from __future__ import annotations

import threading
from typing import Dict, Optional


class SourcePrefixCache:
    """Thread-safe map of the last search prefix that worked for a source.

    An empty string means searching without a prefix worked. Entries are never
    evicted; the key space is bounded by the distinct configs and sources used.
    """

    def __init__(self) -> None:
        self._prefixes: Dict[str, str] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(config_file: Optional[str], source_name: Optional[str]) -> str:
        return f"{config_file or ''}_$$$_{source_name or ''}"

    def get(self, config_file: Optional[str], source_name: Optional[str]) -> Optional[str]:
        with self._lock:
            return self._prefixes.get(self.key(config_file, source_name))

    def set(self, config_file: Optional[str], source_name: Optional[str], prefix: Optional[str]) -> None:
        with self._lock:
            self._prefixes[self.key(config_file, source_name)] = prefix or ""

    def __len__(self) -> int:
        with self._lock:
            return len(self._prefixes)
