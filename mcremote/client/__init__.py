"""mcremote client."""

from .client import McRemoteClient

__all__ = ["McRemoteClient"]
