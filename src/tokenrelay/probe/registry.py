"""Persistent connector registry and probe result log.

Both collections are small JSON documents under the data directory,
rewritten atomically on every change. Passing ``path=None`` keeps a
collection in memory only.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import TypeAdapter

from tokenrelay.config import atomic_write, get_data_dir, read_json
from tokenrelay.exceptions import ConnectorNotFoundError
from tokenrelay.models import Connector, PerformanceResult

logger = logging.getLogger(__name__)

_CONNECTORS = TypeAdapter(list[Connector])
_RESULTS = TypeAdapter(list[PerformanceResult])


class ResultLog:
    """Append-only log of :class:`~tokenrelay.models.PerformanceResult`.

    Entries are never modified; they are only read, or deleted in bulk.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path
        self._results: list[PerformanceResult] = []
        if path is not None:
            data = read_json(path)
            if data is not None:
                self._results = _RESULTS.validate_python(data)

    @classmethod
    def default(cls) -> ResultLog:
        return cls(get_data_dir() / "results.json")

    def append(self, result: PerformanceResult) -> None:
        self._results.append(result)
        self._persist()

    def query(
        self,
        connector_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[PerformanceResult]:
        """Return results newest first, optionally for one connector and capped at *limit*."""
        selected = [
            r for r in reversed(self._results)
            if connector_id is None or r.connector_id == connector_id
        ]
        selected.sort(key=lambda r: r.timestamp, reverse=True)
        if limit is not None:
            selected = selected[:limit]
        return selected

    def clear(self, connector_id: Optional[str] = None) -> int:
        """Delete all results, or only those of *connector_id*. Returns the count removed."""
        before = len(self._results)
        if connector_id is None:
            self._results = []
        else:
            self._results = [r for r in self._results if r.connector_id != connector_id]
        self._persist()
        return before - len(self._results)

    def _persist(self) -> None:
        if self._path is None:
            return
        text = json.dumps(_RESULTS.dump_python(self._results, mode="json"), indent=2)
        atomic_write(self._path, text + "\n")


class ConnectorRegistry:
    """CRUD over configured connectors.

    Args:
        path: JSON file location, or ``None`` for in-memory only.
        results: Result log whose entries are dropped along with a
            deleted connector.

    Example::

        registry = ConnectorRegistry.default()
        connector = registry.add("Profile API", "https://api.example.com/me")
        registry.update(connector.id, description="user profile")
    """

    def __init__(self, path: Optional[Path] = None, results: Optional[ResultLog] = None) -> None:
        self._path = path
        self._results = results
        self._connectors: list[Connector] = []
        if path is not None:
            data = read_json(path)
            if data is not None:
                self._connectors = _CONNECTORS.validate_python(data)

    @classmethod
    def default(cls, results: Optional[ResultLog] = None) -> ConnectorRegistry:
        return cls(get_data_dir() / "connectors.json", results)

    def list(self) -> list[Connector]:
        return list(self._connectors)

    def get(self, connector_id: str) -> Connector:
        """Return the connector with *connector_id*.

        Raises:
            ConnectorNotFoundError: If no such connector exists.
        """
        for connector in self._connectors:
            if connector.id == connector_id:
                return connector
        raise ConnectorNotFoundError(connector_id)

    def add(self, name: str, url: str, description: Optional[str] = None) -> Connector:
        connector = Connector(name=name, url=url, description=description)
        self._connectors.append(connector)
        self._persist()
        logger.debug("Added connector %s (%s)", connector.id, connector.name)
        return connector

    def update(
        self,
        connector_id: str,
        name: Optional[str] = None,
        url: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Connector:
        """Change the mutable fields of a connector. ``id`` is never touched.

        Raises:
            ConnectorNotFoundError: If no such connector exists.
        """
        current = self.get(connector_id)
        changes = {
            key: value
            for key, value in (("name", name), ("url", url), ("description", description))
            if value is not None
        }
        updated = Connector(**{**current.model_dump(), **changes})
        self._connectors = [updated if c.id == connector_id else c for c in self._connectors]
        self._persist()
        return updated

    def delete(self, connector_id: str) -> bool:
        """Remove a connector and its results. Returns ``False`` if it did not exist."""
        before = len(self._connectors)
        self._connectors = [c for c in self._connectors if c.id != connector_id]
        if len(self._connectors) == before:
            return False
        self._persist()
        if self._results is not None:
            self._results.clear(connector_id)
        return True

    def _persist(self) -> None:
        if self._path is None:
            return
        text = json.dumps(_CONNECTORS.dump_python(self._connectors, mode="json"), indent=2)
        atomic_write(self._path, text + "\n")
