"""Persistence for uploaded document records.

A record is kept as one self-contained JSON document per upload.  The
``DocumentStore`` talks to a minimal key-value backend so that the file
backend used in production can be swapped for an in-memory one in tests.
Records are always written whole: the file backend writes to a temporary
file in the same directory and renames it into place, so readers never see
a half-written record.  Two concurrent saves for the same key race and the
last rename wins.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from typing import Any, Dict, Iterator, Optional, Protocol

from .errors import RecordNotFound
from .models import DocumentRecord

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta.json"
# Sidecars live in their own subdirectory of the upload dir so uploaded bytes
# can never be read as records.
META_DIR = "meta"
_SAFE_KEY = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def is_safe_key(key: str) -> bool:
    """Return True if ``key`` can be used as a file name without escaping the store."""
    return bool(key) and bool(_SAFE_KEY.match(key)) and ".." not in key


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    def put(self, key: str, value: Dict[str, Any]) -> None: ...

    def keys(self) -> Iterator[str]: ...


class InMemoryStore:
    """Dictionary-backed store; values are copied through JSON on the way in and out."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def put(self, key: str, value: Dict[str, Any]) -> None:
        self._data[key] = json.dumps(value)

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))


class JsonFileStore:
    """Stores each value as ``<key>.meta.json`` in ``directory``."""

    def __init__(self, directory: str) -> None:
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}{META_SUFFIX}")

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            with open(self._path(key), "r", encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError:
            return None

    def put(self, key: str, value: Dict[str, Any]) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=META_SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(value, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self._path(key))
        except BaseException:
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass
            raise

    def keys(self) -> Iterator[str]:
        for name in sorted(os.listdir(self.directory)):
            if name.endswith(META_SUFFIX) and not name.startswith(".tmp-"):
                yield name[: -len(META_SUFFIX)]


class DocumentStore:
    """Saves and loads whole document records."""

    def __init__(self, backend: KeyValueStore) -> None:
        self.backend = backend

    def save(self, record: DocumentRecord) -> None:
        """Persist ``record`` under its storage key, replacing any previous record."""
        if not is_safe_key(record.storage_key):
            raise ValueError(f"Unsafe storage key: {record.storage_key!r}")
        self.backend.put(record.storage_key, record.to_dict())
        logger.info("Saved record %s (%d chunks)", record.storage_key, len(record.chunks))

    def load(self, key: str) -> DocumentRecord:
        """Return the record stored under ``key``.

        ``key`` may be either the storage key or the document id.

        Raises:
            RecordNotFound: if no complete record exists for ``key``.
        """
        if not is_safe_key(key):
            raise RecordNotFound(key)
        data = self._read(key)
        if data is None:
            data = self._find_by_document_id(key)
        if data is None:
            logger.warning("No record for key %s", key)
            raise RecordNotFound(key)
        try:
            return DocumentRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Record %s is incomplete: %s", key, exc)
            raise RecordNotFound(key) from exc

    def _read(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            data = self.backend.get(key)
        except ValueError as exc:
            logger.warning("Record %s is not valid JSON: %s", key, exc)
            return None
        return data if isinstance(data, dict) else None

    def _find_by_document_id(self, document_id: str) -> Optional[Dict[str, Any]]:
        """Linear scan over every stored record; fine for a single-user upload dir."""
        for storage_key in self.backend.keys():
            data = self._read(storage_key)
            if data and data.get("documentId") == document_id:
                return data
        return None
