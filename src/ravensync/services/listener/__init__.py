"""Listener service package.

Re-exports all public symbols::

    from ravensync.services.listener import ListenerService, ListenerConfig
"""

from .configs import ListenerConfig
from .service import ListenerService


__all__ = ["ListenerConfig", "ListenerService"]
