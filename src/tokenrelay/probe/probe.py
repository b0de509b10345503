"""Timed round-trips through the resource relay.

:class:`ConnectorProbe` measures how long one
:meth:`~tokenrelay.relay.resource.ResourceRelay.fetch_resource` call takes
for a configured connector and records the outcome in a
:class:`~tokenrelay.probe.registry.ResultLog`.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from tokenrelay.exceptions import HttpError, TokenRelayError
from tokenrelay.models import PerformanceResult
from tokenrelay.probe.registry import ConnectorRegistry, ResultLog
from tokenrelay.relay.resource import ResourceRelay

logger = logging.getLogger(__name__)


class ConnectorProbe:
    """Measures relay round-trips for registered connectors.

    Args:
        registry: Source of connectors.
        results: Log that receives every result.
        relay: Relay used for the timed fetch.
    """

    def __init__(self, registry: ConnectorRegistry, results: ResultLog, relay: ResourceRelay) -> None:
        self._registry = registry
        self._results = results
        self._relay = relay

    async def test(self, connector_id: str) -> PerformanceResult:
        """Probe one connector and record the result.

        ``success`` means a 2xx answer. Failures are recorded, not raised:
        ``error`` holds ``"HTTP Error: <status> <reason>"`` for an HTTP
        failure or the error message for anything else.

        Raises:
            ConnectorNotFoundError: If *connector_id* is unknown.
        """
        connector = self._registry.get(connector_id)

        status_code: Optional[int] = None
        error: Optional[str] = None
        start = time.perf_counter()
        try:
            envelope = await self._relay.fetch_resource(connector.url)
            status_code = envelope.status
            if not envelope.ok:
                error = f"HTTP Error: {envelope.status} {envelope.reason}".rstrip()
        except HttpError as exc:
            status_code = exc.status
            error = f"HTTP Error: {exc.status} {exc.reason}".rstrip()
        except TokenRelayError as exc:
            error = str(exc)
        duration_ms = (time.perf_counter() - start) * 1000.0

        result = PerformanceResult(
            connector_id=connector.id,
            duration_ms=duration_ms,
            success=error is None,
            error=error,
            status_code=status_code,
        )
        self._results.append(result)
        logger.info(
            "Probed %s in %.1f ms (status=%s, success=%s)",
            connector.name,
            duration_ms,
            status_code,
            result.success,
        )
        return result

    async def test_all(self) -> list[PerformanceResult]:
        """Probe every connector in order; one failure never stops the batch."""
        collected: list[PerformanceResult] = []
        for connector in self._registry.list():
            try:
                collected.append(await self.test(connector.id))
            except TokenRelayError as exc:
                collected.append(
                    PerformanceResult(connector_id=connector.id, success=False, error=str(exc))
                )
        return collected

    def get_results(
        self,
        connector_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[PerformanceResult]:
        return self._results.query(connector_id=connector_id, limit=limit)

    def clear_results(self, connector_id: Optional[str] = None) -> int:
        return self._results.clear(connector_id)
