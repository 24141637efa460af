"""
History store for per-domain record history.

The monitor consumes history through a minimal key-value capability
(``HistoryBackend``: ``get``/``put`` of raw bytes) so that the core can run
against an in-memory fake in tests and a file or any other backend in
production. ``HistoryStore`` is the thin adapter that owns the key format
and the serialization of ``HistoryRecord`` values.
"""

import hashlib
import hmac
import json
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from .enums import RecordType
from .exceptions import PersistenceError, TamperingError
from .models import HistoryRecord


@runtime_checkable
class HistoryBackend(Protocol):
    """Key-value storage for serialized history records."""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def put(self, key: str, value: bytes) -> None:
        ...


class MemoryHistoryBackend:
    """Dictionary-backed history storage."""

    def __init__(self, initial: Optional[dict[str, bytes]] = None) -> None:
        self._data: dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def put(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def keys(self) -> list[str]:
        return list(self._data)


class FileHistoryBackend:
    """
    JSON file history storage with HMAC protection.

    All keys live in one file. The file carries an HMAC-SHA256 over its
    content so that edits made outside the monitor are detected on load.
    Every ``put`` rewrites the file atomically. Access is serialized with a
    lock, so the backend can be used from worker threads.
    """

    VERSION = 1

    def __init__(self, file_path: Path, hmac_secret: str) -> None:
        """
        Initialize the file backend.

        Args:
            file_path: Path to the history file (JSON format)
            hmac_secret: Secret key for HMAC computation
        """
        self._file_path = Path(file_path)
        self._hmac_secret = hmac_secret.encode("utf-8")
        self._entries: Optional[dict[str, str]] = None
        self._lock = threading.RLock()

    @property
    def file_path(self) -> Path:
        return self._file_path

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            value = self._load().get(key)
        return value.encode("utf-8") if value is not None else None

    def put(self, key: str, value: bytes) -> None:
        try:
            text = value.decode("utf-8")
        except UnicodeDecodeError as e:
            raise PersistenceError(
                code="encoding_error",
                message=f"History value for {key} is not UTF-8: {e}",
                details={"key": key},
            )
        with self._lock:
            entries = dict(self._load())
            entries[key] = text
            self._save(entries)
            self._entries = entries

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._load())

    def _load(self) -> dict[str, str]:
        """
        Load entries from disk once and validate the HMAC.

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If the file cannot be read or parsed
        """
        if self._entries is not None:
            return self._entries
        if not self._file_path.exists():
            self._entries = {}
            return self._entries

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse history file: {e}",
                details={"file_path": str(self._file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read history file: {e}",
                details={"file_path": str(self._file_path)},
            )

        if not isinstance(raw_data, dict) or not isinstance(raw_data.get("entries"), dict):
            raise PersistenceError(
                code="parse_error",
                message="History file has no entries table",
                details={"file_path": str(self._file_path)},
            )

        data_for_hmac = {
            "version": raw_data.get("version"),
            "entries": raw_data["entries"],
            "last_updated": raw_data.get("last_updated"),
        }
        if not hmac.compare_digest(
            str(raw_data.get("hmac", "")), self.compute_hmac(data_for_hmac)
        ):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - history may have been tampered with",
                details={"file_path": str(self._file_path)},
            )

        self._entries = {str(k): str(v) for k, v in raw_data["entries"].items()}
        return self._entries

    def _save(self, entries: dict[str, str]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        data_for_hmac = {
            "version": self.VERSION,
            "entries": entries,
            "last_updated": now,
        }
        output = dict(data_for_hmac, hmac=self.compute_hmac(data_for_hmac))

        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self._file_path.parent, prefix=".history-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(output, f, indent=2, sort_keys=True)
                os.replace(tmp_path, self._file_path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write history file: {e}",
                details={"file_path": str(self._file_path)},
            )

    def compute_hmac(self, data: dict) -> str:
        """HMAC-SHA256 over the canonical JSON form of ``data``."""
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()


class HistoryStore:
    """Reads and writes the last-known record set per (domain, record type)."""

    KEY_PREFIX = "dns"

    def __init__(self, backend: HistoryBackend) -> None:
        self._backend = backend

    @property
    def backend(self) -> HistoryBackend:
        return self._backend

    @classmethod
    def make_key(cls, domain: str, record_type: RecordType) -> str:
        """Storage key, e.g. ``dns:example.com:A``."""
        return f"{cls.KEY_PREFIX}:{domain}:{record_type.value}"

    def get(self, domain: str, record_type: RecordType) -> Optional[HistoryRecord]:
        """
        Return the stored record, or None if the key was never written.

        Raises:
            PersistenceError: If the backend fails or the value is malformed
        """
        key = self.make_key(domain, record_type)
        try:
            raw = self._backend.get(key)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                code="backend_error",
                message=f"History read failed for {key}: {e}",
                details={"key": key},
            ) from e

        if raw is None:
            return None

        try:
            return HistoryRecord.from_dict(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Stored history for {key} is malformed: {e}",
                details={"key": key},
            ) from e

    def put(self, record: HistoryRecord) -> None:
        """
        Overwrite the stored record for the record's key.

        Raises:
            PersistenceError: If the backend fails
        """
        key = self.make_key(record.domain, record.record_type)
        payload = json.dumps(record.to_dict(), ensure_ascii=False).encode("utf-8")
        try:
            self._backend.put(key, payload)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                code="backend_error",
                message=f"History write failed for {key}: {e}",
                details={"key": key},
            ) from e
