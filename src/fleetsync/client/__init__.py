"""Client side: sync agent, local device mirror and listener registry."""

from fleetsync.client.agent import FleetSyncAgent
from fleetsync.client.listeners import ListenerRegistry, Subscription
from fleetsync.client.mirror import DeviceMirror

__all__ = ["DeviceMirror", "FleetSyncAgent", "ListenerRegistry", "Subscription"]
