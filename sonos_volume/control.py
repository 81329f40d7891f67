import asyncio
import enum
import logging
import xml.etree.ElementTree as ET

import aiohttp

from .errors import CommandError
from .state import StateFragment
from .utils import create_soap_body, create_soap_headers, find_text, soap_fault_code

logger = logging.getLogger(__name__)

AV_TRANSPORT = ('AVTransport:1', '/MediaRenderer/AVTransport/Control')
GROUP_RENDERING_CONTROL = ('GroupRenderingControl:1', '/MediaRenderer/GroupRenderingControl/Control')


class Action(enum.Enum):
    ADJUST_VOLUME = 'SetRelativeGroupVolume'
    PLAY = 'Play'
    PAUSE = 'Pause'
    NEXT = 'Next'
    PREVIOUS = 'Previous'

    def __str__(self):
        return self.value


async def _send(session, coordinator, action, service, **arguments):
    """Posts one SOAP action to the coordinator and returns the response body."""
    service_type, control_path = service
    try:
        async with session.post(
            f'{coordinator}{control_path}',
            data=create_soap_body(service_type, action.value, **arguments),
            headers=create_soap_headers(service_type, action.value)
        ) as response:
            text = await response.text()
            status = response.status
    except (aiohttp.ClientError, asyncio.TimeoutError) as err:
        raise CommandError(action, repr(err)) from err

    fault = soap_fault_code(text)
    if status != 200 or fault is not None:
        raise CommandError(action, f"HTTP {status}, errorCode {fault}")
    logger.debug(f"{action} response from {coordinator}: {text}")
    return text


def parse_new_volume(response_text):
    """Reads NewVolume out of a SetRelativeGroupVolume response."""
    try:
        value = find_text(ET.fromstring(response_text), 'NewVolume')
        return int(value)
    except (ET.ParseError, TypeError, ValueError) as err:
        raise CommandError(Action.ADJUST_VOLUME, f"malformed response: {err}") from err


async def adjust_volume(session, coordinator, delta):
    """Changes the group volume by delta; delta=0 just reads the volume back."""
    text = await _send(
        session, coordinator, Action.ADJUST_VOLUME, GROUP_RENDERING_CONTROL,
        InstanceID=0, Adjustment=int(delta)
    )
    return StateFragment(volume=parse_new_volume(text))


async def control_playback(session, coordinator, action):
    """Sends Play, Pause, Next or Previous to the coordinator."""
    arguments = {'InstanceID': 0}
    if action is Action.PLAY:
        arguments['Speed'] = 1
    await _send(session, coordinator, action, AV_TRANSPORT, **arguments)
    # Transport replies carry no state; the next AVTransport event does
    return StateFragment()


async def execute(session, coordinator, action, delta=0):
    """Runs one action against the coordinator and returns the state it reported."""
    logger.info(f"{action} on {coordinator}" + (f" ({delta:+d})" if action is Action.ADJUST_VOLUME else ''))
    if action is Action.ADJUST_VOLUME:
        return await adjust_volume(session, coordinator, delta)
    return await control_playback(session, coordinator, action)
