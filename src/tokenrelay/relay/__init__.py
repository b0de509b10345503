"""Authenticated resource forwarding.

* :mod:`~tokenrelay.relay.headers` -- hop-by-hop header sanitisation.
* :mod:`~tokenrelay.relay.resource` -- client-side :class:`ResourceRelay`.
* :mod:`~tokenrelay.relay.server` -- FastAPI relay server.
"""
