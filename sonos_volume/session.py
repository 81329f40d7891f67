import asyncio
import logging

from .control import Action, execute
from .discovery import discover
from .errors import DiscoveryError
from .events import EventSubscriber
from .keys import route_key
from .state import SessionState, TransportStatus
from .topology import resolve_coordinator_member

logger = logging.getLogger(__name__)

_OPTIMISTIC_TRANSPORT = {
    Action.PLAY: TransportStatus.PLAYING,
    Action.PAUSE: TransportStatus.PAUSED,
}
# Where every ZonePlayer serves its device description
DESCRIPTION_PATH = '/xml/device_description.xml'


class GroupSession:
    """Commands and live state for one resolved group coordinator."""

    def __init__(self, http, coordinator, config, state=None, subscriber=None, on_health=None,
                 description_url=None):
        self.http = http
        self.coordinator = coordinator
        self.config = config
        self.state = state or SessionState()
        if subscriber is None:
            subscriber = EventSubscriber(
                http, description_url or f'{coordinator}{DESCRIPTION_PATH}', self.state, config.callback_url,
                timeout=config.subscription_timeout,
                resubscribe_delay=config.resubscribe_delay,
                on_health=on_health,
                request_timeout=config.request_timeout
            )
        self.subscriber = subscriber
        self._in_flight = set()
        self._closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def start(self):
        await self.subscriber.start()

    async def execute(self, action, delta=0):
        """Runs one action and merges whatever state its reply carries."""
        if self._closed:
            raise RuntimeError("session is closed")
        hint = None
        if action in _OPTIMISTIC_TRANSPORT:
            # Only a guess; any AVTransport event merged after it is authoritative
            hint = self.state.hint_transport(_OPTIMISTIC_TRANSPORT[action], source=f'{action} request')
        task = asyncio.ensure_future(execute(self.http, self.coordinator, action, delta))
        self._in_flight.add(task)
        try:
            fragment = await task
        except BaseException:
            self.state.revert_transport(hint)
            raise
        finally:
            self._in_flight.discard(task)

        self.state.merge(fragment, source=f'{action} reply')
        return fragment

    async def press(self, key):
        action, delta = route_key(
            key, self.state.is_playing,
            volume_step=self.config.volume_step,
            mute_adjustment=self.config.mute_adjustment
        )
        return await self.execute(action, delta)

    async def load_volume(self):
        return await self.execute(Action.ADJUST_VOLUME, 0)

    async def close(self):
        """Stops all state mutation, pending commands and the event subscription."""
        if self._closed:
            return
        self._closed = True
        self.state.close()
        for task in list(self._in_flight):
            task.cancel()
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        await self.subscriber.stop()
        logger.info(f"Session with {self.coordinator} closed")


async def connect(config, http, on_volume=None, on_health=None):
    """Discovers the network, resolves the configured group and starts listening to it."""
    devices = await discover(timeout=config.discovery_timeout)
    if not devices:
        raise DiscoveryError("no Sonos device answered the search")

    coordinator = await resolve_coordinator_member(http, devices, config.group_name)

    state = SessionState()
    if on_volume is not None:
        state.add_volume_listener(on_volume)
    group = GroupSession(
        http, coordinator.endpoint, config, state=state, on_health=on_health,
        description_url=coordinator.location
    )
    try:
        await group.start()
    except BaseException:
        await group.close()
        raise
    return group
