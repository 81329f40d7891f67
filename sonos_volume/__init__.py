"""
Sonos group volume control

Discovers Sonos speakers on the local network, resolves one configured group
to its coordinator, and turns key presses into group volume and transport
commands while UPnP event subscriptions keep the group's volume and transport
state current.
"""

from .config import Config, load_config
from .control import Action, execute
from .discovery import DeviceRecord, discover
from .errors import (
    CommandError,
    DiscoveryError,
    GroupNotFoundError,
    SonosError,
    SubscriptionError,
    TopologyError
)
from .events import EventSubscriber, SubscriptionState
from .keys import RemoteKey, route_key
from .permissions import ReadinessCheck, local_network_available, wait_until_granted, wait_until_ready
from .session import GroupSession, connect
from .state import SessionState, StateFragment, TransportStatus, normalize_volume
from .topology import Group, GroupMember, resolve_coordinator, resolve_coordinator_member

__all__ = [
    'Action',
    'CommandError',
    'Config',
    'DeviceRecord',
    'DiscoveryError',
    'EventSubscriber',
    'Group',
    'GroupMember',
    'GroupNotFoundError',
    'GroupSession',
    'ReadinessCheck',
    'RemoteKey',
    'SessionState',
    'SonosError',
    'StateFragment',
    'SubscriptionError',
    'SubscriptionState',
    'TopologyError',
    'TransportStatus',
    'connect',
    'discover',
    'execute',
    'load_config',
    'local_network_available',
    'normalize_volume',
    'resolve_coordinator',
    'resolve_coordinator_member',
    'route_key',
    'wait_until_granted',
    'wait_until_ready'
]
