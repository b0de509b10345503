"""Built-in CLI sub-commands for tokenrelay.

* :mod:`~tokenrelay.commands.auth` -- run flows, refresh, status, logout.
* :mod:`~tokenrelay.commands.config` -- view and modify settings.
* :mod:`~tokenrelay.commands.connectors` -- manage probe connectors.
* :mod:`~tokenrelay.commands.probe` -- run probes and read results.
* :mod:`~tokenrelay.commands.relay` -- serve the relay.
* :mod:`~tokenrelay.commands.fetch` -- fetch a protected resource.
"""
