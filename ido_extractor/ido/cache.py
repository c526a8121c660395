from __future__ import annotations

import json
import logging
import os
import threading
import time
from typing import Callable, Dict, List


logger = logging.getLogger("ido_extractor.ido.cache")


class ValueCache:
    """Expiring cache of distinct filter values, optionally mirrored to a JSON file.

    Entries are stored as ``{"data": [...], "expiry": <epoch ms>}``. File errors are
    logged and otherwise ignored: the cache is an optimisation, never a source of truth.
    """

    def __init__(self, path: str | None = None, *, clock: Callable[[], float] | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, dict] = {}
        self._path = str(path or "").strip() or None
        self._clock = clock or time.time
        self._load()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def get(self, key: str) -> List[str] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._now_ms() >= int(entry.get("expiry") or 0):
                self._entries.pop(key, None)
                return None
            return list(entry.get("data") or [])

    def set(self, key: str, values: List[str], ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = {
                "data": list(values),
                "expiry": self._now_ms() + max(0, int(ttl_seconds)) * 1000,
            }
            self._save_locked()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            if self._path and os.path.exists(self._path):
                try:
                    os.remove(self._path)
                except OSError as exc:
                    logger.warning("ido_cache_remove_failed", extra={"path": self._path, "error": str(exc)})

    def clear_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                self._entries.pop(key, None)
            self._save_locked()
            return len(keys)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._entries)

    def _load(self) -> None:
        if not self._path or not os.path.exists(self._path):
            return
        try:
            with open(self._path, "r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, ValueError) as exc:
            logger.warning("ido_cache_load_failed", extra={"path": self._path, "error": str(exc)})
            return
        if not isinstance(raw, dict):
            return
        now = self._now_ms()
        for key, entry in raw.items():
            if not isinstance(entry, dict):
                continue
            try:
                expiry = int(entry.get("expiry") or 0)
            except (TypeError, ValueError):
                continue
            if expiry > now and isinstance(entry.get("data"), list):
                self._entries[str(key)] = {"data": [str(item) for item in entry["data"]], "expiry": expiry}

    def _save_locked(self) -> None:
        if not self._path:
            return
        now = self._now_ms()
        live = {key: entry for key, entry in self._entries.items() if int(entry["expiry"]) > now}
        try:
            directory = os.path.dirname(os.path.abspath(self._path))
            os.makedirs(directory, exist_ok=True)
            tmp_path = f"{self._path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as handle:
                json.dump(live, handle)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            logger.warning("ido_cache_save_failed", extra={"path": self._path, "error": str(exc)})
