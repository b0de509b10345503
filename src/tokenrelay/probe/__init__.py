"""Connector round-trip measurement.

* :class:`~tokenrelay.probe.registry.ConnectorRegistry` -- configured endpoints.
* :class:`~tokenrelay.probe.registry.ResultLog` -- append-only result history.
* :class:`~tokenrelay.probe.probe.ConnectorProbe` -- times relayed fetches.
"""

from tokenrelay.probe.probe import ConnectorProbe
from tokenrelay.probe.registry import ConnectorRegistry, ResultLog

__all__ = ["ConnectorProbe", "ConnectorRegistry", "ResultLog"]
