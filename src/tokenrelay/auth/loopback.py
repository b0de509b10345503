"""One-shot loopback listener for the authorization redirect.

When the configured ``redirect_uri`` points at ``localhost`` or
``127.0.0.1``, the CLI can receive the callback itself instead of asking
the user to paste the redirected URL.
"""

from __future__ import annotations

import html
import socket
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from tokenrelay.exceptions import ProtocolError

_LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


class _IPv6HTTPServer(HTTPServer):
    address_family = socket.AF_INET6


def is_loopback_redirect(redirect_uri: str) -> bool:
    parsed = urlparse(redirect_uri)
    return parsed.scheme == "http" and (parsed.hostname or "") in _LOOPBACK_HOSTS


def wait_for_callback(redirect_uri: str, timeout: float = 120.0) -> str:
    """Listen on the redirect URI's port and return the callback query string.

    Requests to other paths (a browser's ``/favicon.ico``, for example) are
    answered with 404 and ignored.

    Args:
        redirect_uri: A loopback ``http`` URL such as
            ``http://127.0.0.1:8765/callback``.
        timeout: Seconds to wait for the callback.

    Returns:
        The raw query string of the callback request.

    Raises:
        ProtocolError: If nothing arrives before *timeout*.
    """
    parsed = urlparse(redirect_uri)
    host = parsed.hostname or "127.0.0.1"
    port = parsed.port or 80
    expected_path = parsed.path or "/"
    captured: dict[str, Optional[str]] = {"query": None}

    class CallbackHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:
            request = urlparse(self.path)
            if request.path != expected_path:
                self.send_response(404)
                self.end_headers()
                return

            captured["query"] = request.query
            params = parse_qs(request.query)
            if "error" in params:
                body = f"Authorization failed: {html.escape(params['error'][0])}"
            else:
                body = "Authorization received. You can close this window and return to the terminal."

            self.send_response(200)
            self.send_header("Content-Type", "text/html; charset=utf-8")
            self.end_headers()
            self.wfile.write(f"<html><body><h2>{body}</h2></body></html>".encode("utf-8"))

        def log_message(self, format: str, *args: Any) -> None:
            pass

    server_class = _IPv6HTTPServer if ":" in host else HTTPServer
    server = server_class((host, port), CallbackHandler)
    deadline = time.monotonic() + timeout
    try:
        while captured["query"] is None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            server.timeout = remaining
            server.handle_request()
    finally:
        server.server_close()

    if captured["query"] is None:
        raise ProtocolError("No authorization callback received before the timeout")
    return captured["query"]
