"""Tests for the command dispatcher."""

import asyncio

import aiohttp
import pytest

from sonos_volume.control import Action, execute
from sonos_volume.errors import CommandError
from sonos_volume.state import StateFragment

from conftest import SOAP_FAULT, FakeResponse, FakeSession, soap_response

COORDINATOR = 'http://10.0.0.5:1400'


def volume_response(volume):
    return FakeResponse(text=soap_response(
        'SetRelativeGroupVolume', 'GroupRenderingControl:1', NewVolume=volume
    ))


@pytest.mark.asyncio
async def test_adjust_volume_returns_new_volume():
    session = FakeSession([volume_response(32)])

    fragment = await execute(session, COORDINATOR, Action.ADJUST_VOLUME, 2)

    assert fragment == StateFragment(volume=32)
    method, url, kwargs = session.calls[0]
    assert url == 'http://10.0.0.5:1400/MediaRenderer/GroupRenderingControl/Control'
    assert kwargs['headers']['SOAPACTION'] == \
        '"urn:schemas-upnp-org:service:GroupRenderingControl:1#SetRelativeGroupVolume"'
    assert '<Adjustment>2</Adjustment>' in kwargs['data']
    assert '<InstanceID>0</InstanceID>' in kwargs['data']


@pytest.mark.asyncio
async def test_load_volume_is_a_zero_adjustment():
    session = FakeSession([volume_response(17)])

    fragment = await execute(session, COORDINATOR, Action.ADJUST_VOLUME)

    assert fragment.volume == 17
    assert '<Adjustment>0</Adjustment>' in session.calls[0][2]['data']


@pytest.mark.asyncio
async def test_negative_adjustment():
    session = FakeSession([volume_response(0)])
    await execute(session, COORDINATOR, Action.ADJUST_VOLUME, -200)
    assert '<Adjustment>-200</Adjustment>' in session.calls[0][2]['data']


@pytest.mark.asyncio
@pytest.mark.parametrize('action', [Action.PLAY, Action.PAUSE, Action.NEXT, Action.PREVIOUS])
async def test_transport_actions_carry_no_state(action):
    session = FakeSession([FakeResponse(text=soap_response(action.value, 'AVTransport:1'))])

    fragment = await execute(session, COORDINATOR, action)

    assert fragment.is_empty
    method, url, kwargs = session.calls[0]
    assert url == 'http://10.0.0.5:1400/MediaRenderer/AVTransport/Control'
    assert kwargs['headers']['SOAPACTION'] == f'"urn:schemas-upnp-org:service:AVTransport:1#{action.value}"'
    assert ('<Speed>1</Speed>' in kwargs['data']) == (action is Action.PLAY)


@pytest.mark.asyncio
async def test_soap_fault_raises_command_error():
    session = FakeSession([FakeResponse(status=500, text=SOAP_FAULT)])

    with pytest.raises(CommandError) as excinfo:
        await execute(session, COORDINATOR, Action.NEXT)

    assert excinfo.value.action is Action.NEXT
    assert '701' in str(excinfo.value)


@pytest.mark.asyncio
async def test_fault_with_200_status_still_fails():
    session = FakeSession([FakeResponse(status=200, text=SOAP_FAULT)])
    with pytest.raises(CommandError):
        await execute(session, COORDINATOR, Action.PAUSE)


@pytest.mark.asyncio
async def test_malformed_volume_response():
    session = FakeSession([FakeResponse(text='<html>nope</html>')])
    with pytest.raises(CommandError) as excinfo:
        await execute(session, COORDINATOR, Action.ADJUST_VOLUME, 2)
    assert excinfo.value.action is Action.ADJUST_VOLUME


@pytest.mark.asyncio
@pytest.mark.parametrize('error', [aiohttp.ClientConnectionError('refused'), asyncio.TimeoutError()])
async def test_transport_errors_are_wrapped(error):
    session = FakeSession([error])
    with pytest.raises(CommandError) as excinfo:
        await execute(session, COORDINATOR, Action.PLAY)
    assert excinfo.value.cause
