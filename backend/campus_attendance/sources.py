from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol

from .cache import TTLCache
from .timeutil import parse_day

logger = logging.getLogger(__name__)

Document = dict[str, Any]


class AttendanceSource(Protocol):
    def fetch_documents(self, *, start: date, end: date) -> list[Document]:
        """Return raw attendance documents whose day lies in ``[start, end)``."""
        ...


def _in_window(document: Mapping[str, Any], start: date, end: date) -> bool:
    day = parse_day(document.get("date"))
    if day is None:
        # Left in so the aggregator can report the bad row.
        return True
    return start <= day < end


class InMemoryAttendanceSource:
    def __init__(self, documents: Iterable[Mapping[str, Any]] = ()) -> None:
        self._documents: list[Document] = [dict(document) for document in documents]

    def add(self, document: Mapping[str, Any]) -> None:
        self._documents.append(dict(document))

    def fetch_documents(self, *, start: date, end: date) -> list[Document]:
        return [dict(document) for document in self._documents if _in_window(document, start, end)]


class JsonFileAttendanceSource:
    """Reads a JSON export: either a list of documents or ``{"records": [...]}``."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _load(self) -> list[Document]:
        with self.path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if isinstance(payload, Mapping):
            payload = payload.get("records", [])
        if not isinstance(payload, list):
            raise ValueError(f"{self.path} must contain a list of attendance documents")
        return [dict(item) for item in payload if isinstance(item, Mapping)]

    def fetch_documents(self, *, start: date, end: date) -> list[Document]:
        documents = self._load()
        logger.debug("Loaded %d attendance documents from %s", len(documents), self.path)
        return [document for document in documents if _in_window(document, start, end)]


class CachedAttendanceSource:
    def __init__(self, source: AttendanceSource, cache: TTLCache) -> None:
        self._source = source
        self._cache = cache

    def fetch_documents(self, *, start: date, end: date) -> list[Document]:
        key = ("attendance", start.isoformat(), end.isoformat())
        cached = self._cache.get(key)
        if cached is not None:
            return [dict(document) for document in cached]

        documents = self._source.fetch_documents(start=start, end=end)
        self._cache.set(key, [dict(document) for document in documents])
        return documents
