"""
Shared session state.

Two writers feed the same record: replies from the command dispatcher and
pushes from the event subscriber. Each field is merged independently and the
last merged value wins, so duplicate or reordered fragments converge on the
freshest value observed.
"""

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class TransportStatus(str, enum.Enum):
    PLAYING = 'playing'
    PAUSED = 'paused'
    STOPPED = 'stopped'

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class StateFragment:
    """A partial update produced by one command reply or one event push."""

    volume: Optional[int] = None
    transport: Optional[TransportStatus] = None
    # False when transport is a local guess that a push still has to confirm
    confirmed: bool = True

    @property
    def is_empty(self):
        return self.volume is None and self.transport is None


class SessionState:
    """Mutable state of the controlled group, owned by one session."""

    def __init__(self):
        self._lock = threading.Lock()
        self._volume: Optional[int] = None
        self._transport = TransportStatus.STOPPED
        self._transport_confirmed = False
        # Bumped on every transport change; lets a hint tell whether it was superseded
        self._transport_version = 0
        self._closed = False
        self._volume_listeners: List[Callable[[int], None]] = []

    @property
    def volume(self):
        with self._lock:
            return self._volume

    @property
    def transport(self):
        with self._lock:
            return self._transport

    @property
    def transport_confirmed(self):
        with self._lock:
            return self._transport_confirmed

    @property
    def is_playing(self):
        return self.transport is TransportStatus.PLAYING

    @property
    def closed(self):
        with self._lock:
            return self._closed

    def add_volume_listener(self, listener):
        """Registers a callable invoked with the new volume after each merge."""
        self._volume_listeners.append(listener)

    def merge(self, fragment, source='unknown'):
        """Applies fragment field by field. Returns False once the state is closed."""
        with self._lock:
            if self._closed:
                logger.debug(f"Dropping {fragment} from {source}: session closed")
                return False
            if fragment.volume is not None:
                self._volume = fragment.volume
            if fragment.transport is not None:
                self._transport = fragment.transport
                self._transport_confirmed = fragment.confirmed
                self._transport_version += 1
            volume = self._volume

        if fragment.volume is not None:
            logger.debug(f"Volume is now {volume} ({source})")
            for listener in list(self._volume_listeners):
                try:
                    listener(volume)
                except Exception:
                    logger.exception("Volume listener failed")
        if fragment.transport is not None:
            logger.debug(f"Transport is now {fragment.transport} ({source})")
        return True

    def hint_transport(self, transport, source='unknown'):
        """
        Sets an unconfirmed transport guess ahead of a command reply.

        Returns a token for revert_transport, or None once the state is closed.
        """
        with self._lock:
            if self._closed:
                return None
            previous = (self._transport, self._transport_confirmed)
            self._transport = transport
            self._transport_confirmed = False
            self._transport_version += 1
            token = (self._transport_version,) + previous
        logger.debug(f"Transport is now {transport}, unconfirmed ({source})")
        return token

    def revert_transport(self, token):
        """Undoes a hint, unless any other transport value was merged after it."""
        if token is None:
            return False
        version, transport, confirmed = token
        with self._lock:
            if self._closed or self._transport_version != version:
                return False
            self._transport = transport
            self._transport_confirmed = confirmed
            self._transport_version += 1
        logger.debug(f"Transport reverted to {transport}")
        return True

    def close(self):
        """Freezes the state; later merges are ignored."""
        with self._lock:
            self._closed = True

    def snapshot(self):
        with self._lock:
            return {
                'volume': self._volume,
                'transport': self._transport.value,
                'transport_confirmed': self._transport_confirmed,
            }


def normalize_volume(volume):
    """Maps a 0-100 device volume onto 0.0-1.0 for on-screen display."""
    if volume is None:
        return 0.0
    return min(max(volume / 100.0, 0.0), 1.0)
