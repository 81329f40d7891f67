"""Fakes and payload builders shared by the tests."""

import asyncio
from xml.sax.saxutils import escape

import pytest

from sonos_volume.config import Config
from sonos_volume.events import SubscriptionState

SOAP_ENVELOPE = (
    '<?xml version="1.0"?>'
    '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" '
    's:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">'
    '<s:Body>{body}</s:Body></s:Envelope>'
)

SOAP_FAULT = SOAP_ENVELOPE.format(body=(
    '<s:Fault><faultcode>s:Client</faultcode><faultstring>UPnPError</faultstring>'
    '<detail><UPnPError xmlns="urn:schemas-upnp-org:control-1-0">'
    '<errorCode>701</errorCode></UPnPError></detail></s:Fault>'
))


class FakeResponse:
    def __init__(self, status=200, text='', headers=None):
        self.status = status
        self._text = text
        self.headers = headers or {}

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class HangingResponse(FakeResponse):
    """A response that never arrives."""

    def __init__(self):
        super().__init__()
        self.cancelled = False

    async def __aenter__(self):
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class HeldResponse(FakeResponse):
    """A response that arrives only once release() is called."""

    def __init__(self, status=200, text=''):
        super().__init__(status, text)
        self._released = asyncio.Event()

    def release(self):
        self._released.set()

    async def __aenter__(self):
        await self._released.wait()
        return self


class FakeSession:
    """Stands in for aiohttp.ClientSession, answering with scripted responses."""

    def __init__(self, responses=(), default=None):
        self.responses = list(responses)
        self.default = default
        self.calls = []

    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        if self.responses:
            response = self.responses.pop(0)
        elif self.default is not None:
            response = self.default
        else:
            raise AssertionError(f"unexpected {method} {url}")
        if isinstance(response, BaseException):
            raise response
        return response

    def post(self, url, **kwargs):
        return self._next('POST', url, kwargs)

    def request(self, method, url, **kwargs):
        return self._next(method, url, kwargs)


def soap_response(action, service, **values):
    arguments = ''.join(f'<{key}>{escape(str(value))}</{key}>' for key, value in values.items())
    return SOAP_ENVELOPE.format(body=(
        f'<u:{action}Response xmlns:u="urn:schemas-upnp-org:service:{service}">'
        f'{arguments}</u:{action}Response>'
    ))


def zone_group_state(*groups):
    """Builds topology XML from (coordinator_uuid, [(uuid, name, location), ...]) tuples."""
    parts = ['<ZoneGroupState><ZoneGroups>']
    for coordinator, members in groups:
        parts.append(f'<ZoneGroup Coordinator="{coordinator}" ID="{coordinator}:42">')
        for uuid, name, location in members:
            attributes = f'UUID="{uuid}" ZoneName="{name}"'
            if location is not None:
                attributes += f' Location="{location}"'
            parts.append(f'<ZoneGroupMember {attributes}/>')
        parts.append('</ZoneGroup>')
    parts.append('</ZoneGroups><VanishedDevices/></ZoneGroupState>')
    return ''.join(parts)


def topology_response(*groups):
    return FakeResponse(text=soap_response(
        'GetZoneGroupState', 'ZoneGroupTopology:1', ZoneGroupState=zone_group_state(*groups)
    ))


def transport_event(transport_state):
    """Builds the LastChange value of an AVTransport push."""
    return (
        '<Event xmlns="urn:schemas-upnp-org:metadata-1-0/AVT/"><InstanceID val="0">'
        f'<TransportState val="{transport_state}"/><CurrentPlayMode val="NORMAL"/>'
        '</InstanceID></Event>'
    )


class FakeSubscriber:
    def __init__(self):
        self.state = SubscriptionState.UNSUBSCRIBED
        self.started = False
        self.stopped = False

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True


async def wait_for(condition, attempts=200):
    """Yields to the event loop until condition() holds."""
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.fixture
def config():
    return Config(group_name='Bedroom', callback_url='http://192.168.1.20:1337')
