"""mcremote TCP server."""

from .server import AcceptedConnection, McRemoteServer, ServerStats

__all__ = ["AcceptedConnection", "McRemoteServer", "ServerStats"]
