"""ESP32 WSS Bridge.

Relays a secure WebSocket client (the mobile app) to one of several candidate
ESP32 devices on the local network or behind a tunnel:

  - Discovery: WebSocket-handshake and HTTP ``/status`` probes over two ordered
    candidate lists
  - Relay: per-client sessions holding at most one upstream device link
  - Server: FastAPI app with ``/health``, ``/discover`` and the client socket
"""

__version__ = "1.0.0"
