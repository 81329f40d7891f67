"""
UPnP event subscription for the group coordinator.

The coordinator's device description is loaded through async_upnp_client and
its AVTransport and GroupRenderingControl services are subscribed through a
UpnpEventHandler, whose AiohttpNotifyServer listens on the configured
callback URL. Each push arrives as changed state variables, is parsed into a
StateFragment and merged into the session state. Subscriptions are renewed
before they expire; when a subscribe or renewal fails the subscriber reports
it through the health callback, waits, and subscribes again from scratch.
"""

import asyncio
import enum
import logging
import xml.etree.ElementTree as ET
from datetime import timedelta
from urllib.parse import urlparse

import aiohttp
from async_upnp_client.aiohttp import AiohttpNotifyServer, AiohttpSessionRequester
from async_upnp_client.client_factory import UpnpFactory
from async_upnp_client.exceptions import UpnpError

from .errors import SubscriptionError
from .state import StateFragment, TransportStatus
from .utils import SERVICE_NS

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIPTION_TIMEOUT = 1800
DEFAULT_RESUBSCRIBE_DELAY = 10
# Renew once this share of the granted subscription lifetime has passed
RENEW_RATIO = 0.75
# Lower bound between renewals, whatever lifetime the device grants
MIN_RENEW_INTERVAL = 10

_SUBSCRIPTION_ERRORS = (UpnpError, aiohttp.ClientError, asyncio.TimeoutError)

_TRANSPORT_STATES = {
    'playing': TransportStatus.PLAYING,
    'stopped': TransportStatus.PAUSED,
    'pausedplayback': TransportStatus.PAUSED,
}


class SubscriptionState(enum.Enum):
    UNSUBSCRIBED = 'unsubscribed'
    SUBSCRIBING = 'subscribing'
    SUBSCRIBED = 'subscribed'
    FAILED = 'failed'

    def __str__(self):
        return self.value


def _transport_fragment(reported):
    transport = _TRANSPORT_STATES.get(reported.replace('_', '').lower())
    if transport is None:
        # TRANSITIONING and friends settle into one of the above shortly
        logger.debug(f"Ignoring transport state {reported}")
        return StateFragment()
    return StateFragment(transport=transport)


def parse_transport_event(variables):
    """Maps the changed AVTransport variables onto a transport fragment."""
    last_change = variables.get('LastChange')
    if last_change:
        element = ET.fromstring(str(last_change)).find('.//{*}TransportState')
        if element is not None and element.get('val'):
            return _transport_fragment(element.get('val'))
        return StateFragment()
    if variables.get('TransportState'):
        return _transport_fragment(str(variables['TransportState']))
    return StateFragment()


def parse_group_volume_event(variables):
    """Maps the changed GroupRenderingControl variables onto a volume fragment."""
    volume = variables.get('GroupVolume')
    if volume is None:
        return StateFragment()
    return StateFragment(volume=int(volume))


class EventCategory(enum.Enum):
    AV_TRANSPORT = ('avtransport', 'AVTransport:1', parse_transport_event)
    GROUP_RENDERING_CONTROL = ('grouprenderingcontrol', 'GroupRenderingControl:1', parse_group_volume_event)

    def __init__(self, key, service, parser):
        self.key = key
        self.service_type = SERVICE_NS.format(service=service)
        self.parser = parser


def _lifetime(granted, requested):
    if granted is None:
        return requested
    return granted.total_seconds()


class EventSubscriber:
    """Keeps the coordinator's transport and volume events flowing into state."""

    def __init__(self, session, description_url, session_state, callback_url, host='0.0.0.0',
                 timeout=DEFAULT_SUBSCRIPTION_TIMEOUT, resubscribe_delay=DEFAULT_RESUBSCRIBE_DELAY,
                 on_health=None, request_timeout=5, notify_server=None):
        self.description_url = description_url
        self.session_state = session_state
        self.timeout = timeout
        self.resubscribe_delay = resubscribe_delay
        self.on_health = on_health
        self.requester = AiohttpSessionRequester(session, timeout=request_timeout)
        if notify_server is None:
            port = urlparse(callback_url).port or 80
            notify_server = AiohttpNotifyServer(
                requester=self.requester, source=(host, port), callback_url=callback_url
            )
        self.notify_server = notify_server
        self.accepting = False
        self.state = SubscriptionState.UNSUBSCRIBED
        self.last_error = None
        self._services = {}
        self._sids = {}
        self._listening = False
        self._task = None

    @property
    def event_handler(self):
        return self.notify_server.event_handler

    def _transition(self, state, error=None):
        self.state = state
        self.last_error = error
        if error is not None:
            logger.warning(f"Event subscription {state}: {error}")
        else:
            logger.info(f"Event subscription {state}")
        if self.on_health is None:
            return
        try:
            self.on_health(state, error)
        except Exception:
            logger.exception("Subscription health callback failed")

    def _on_event(self, category):
        def on_event(service, state_variables):
            if not self.accepting:
                logger.debug(f"Dropping {category.key} event: not listening")
                return
            variables = {variable.name: variable.value for variable in state_variables}
            try:
                fragment = category.parser(variables)
            except (ET.ParseError, ValueError, TypeError) as err:
                logger.warning(f"Malformed {category.key} event: {err}")
                return
            if not fragment.is_empty:
                self.session_state.merge(fragment, source=f'{category.key} event')
        return on_event

    async def _load_services(self):
        try:
            device = await UpnpFactory(self.requester, non_strict=True).async_create_device(self.description_url)
        except _SUBSCRIPTION_ERRORS as err:
            raise SubscriptionError(f"cannot describe {self.description_url}: {err!r}") from err

        services = {}
        for category in EventCategory:
            service = device.find_service(category.service_type)
            if service is None:
                raise SubscriptionError(f"{device.name} offers no {category.service_type}")
            service.on_event = self._on_event(category)
            services[category] = service
        return services

    async def _subscribe(self, category):
        service = self._services[category]
        try:
            sid, granted = await self.event_handler.async_subscribe(
                service, timeout=timedelta(seconds=self.timeout)
            )
        except _SUBSCRIPTION_ERRORS as err:
            raise SubscriptionError(f"subscribing {category.key}: {err!r}") from err
        self._sids[category] = sid
        return _lifetime(granted, self.timeout)

    async def _renew(self, category):
        try:
            _, granted = await self.event_handler.async_resubscribe(
                self._sids[category], timeout=timedelta(seconds=self.timeout)
            )
        except _SUBSCRIPTION_ERRORS as err:
            raise SubscriptionError(f"renewing {category.key}: {err!r}") from err
        return _lifetime(granted, self.timeout)

    async def _unsubscribe(self, category, sid):
        try:
            await self.event_handler.async_unsubscribe(sid)
        except (KeyError, *_SUBSCRIPTION_ERRORS) as err:
            logger.warning(f"Could not unsubscribe {category.key}: {err!r}")

    def _renew_interval(self, granted):
        return max(min(granted) * RENEW_RATIO, MIN_RENEW_INTERVAL)

    async def _release(self):
        sids, self._sids = dict(self._sids), {}
        for category, sid in sids.items():
            await self._unsubscribe(category, sid)

    async def _run(self):
        while True:
            try:
                self._transition(SubscriptionState.SUBSCRIBING)
                if not self._services:
                    self._services = await self._load_services()
                granted = [await self._subscribe(category) for category in EventCategory]
                self._transition(SubscriptionState.SUBSCRIBED)
                while True:
                    await asyncio.sleep(self._renew_interval(granted))
                    granted = [await self._renew(category) for category in EventCategory]
                    logger.debug(f"Renewed event subscriptions for {min(granted)}s")
            except SubscriptionError as err:
                self._transition(SubscriptionState.FAILED, err)
            except Exception as err:
                logger.exception("Event subscription loop failed")
                self._transition(SubscriptionState.FAILED, SubscriptionError(repr(err)))
            await self._release()
            await asyncio.sleep(self.resubscribe_delay)

    async def start(self):
        try:
            await self.notify_server.async_start_server()
        except (UpnpError, OSError) as err:
            raise SubscriptionError(f"cannot listen for events on {self.notify_server.callback_url}: {err}") from err
        self._listening = True
        logger.info(f"Listening for events on {self.notify_server.callback_url}")
        self.accepting = True
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        """Cancels renewal, unsubscribes and shuts the callback server down."""
        self.accepting = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._release()
        if self._listening:
            await self.notify_server.async_stop_server()
            self._listening = False
        self._transition(SubscriptionState.UNSUBSCRIBED)
