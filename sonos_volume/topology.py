import asyncio
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional, Tuple

import aiohttp

from .errors import GroupNotFoundError, TopologyError
from .utils import create_soap_body, create_soap_headers, endpoint_from_location, find_text, soap_fault_code

logger = logging.getLogger(__name__)

TOPOLOGY_SERVICE = 'ZoneGroupTopology:1'
TOPOLOGY_CONTROL_PATH = '/ZoneGroupTopology/Control'


@dataclass(frozen=True)
class GroupMember:
    uuid: str
    name: str
    endpoint: str
    # Full device description URL, as advertised in the topology
    location: Optional[str] = None


@dataclass(frozen=True)
class Group:
    """A zone group as reported by one topology fetch."""

    coordinator_id: str
    members: Tuple[GroupMember, ...]

    @property
    def coordinator(self):
        for member in self.members:
            if member.uuid == self.coordinator_id:
                return member
        raise TopologyError(f"coordinator {self.coordinator_id} is not a member of its own group")

    @property
    def name(self):
        coordinator = self.coordinator
        if len(self.members) == 1:
            return coordinator.name
        return f"{coordinator.name} + {len(self.members) - 1}"


async def get_zone_group_state(session, endpoint):
    """Gets the raw zone group state XML from a Sonos device."""
    action = 'GetZoneGroupState'
    try:
        async with session.post(
            f'{endpoint}{TOPOLOGY_CONTROL_PATH}',
            data=create_soap_body(TOPOLOGY_SERVICE, action),
            headers=create_soap_headers(TOPOLOGY_SERVICE, action)
        ) as response:
            text = await response.text()
            status = response.status
    except (aiohttp.ClientError, asyncio.TimeoutError) as err:
        raise TopologyError(f"cannot query {endpoint}: {err!r}") from err

    if status != 200:
        raise TopologyError(
            f"{endpoint} answered {action} with HTTP {status} (errorCode {soap_fault_code(text)})"
        )
    try:
        root = ET.fromstring(text)
    except ET.ParseError as err:
        raise TopologyError(f"malformed {action} response: {err}") from err

    state = find_text(root, 'ZoneGroupState')
    if not state:
        raise TopologyError(f"{action} response carries no ZoneGroupState")
    return state


def _parse_member(element):
    uuid = element.get('UUID')
    name = element.get('ZoneName')
    location = element.get('Location')
    endpoint = endpoint_from_location(location)
    if not uuid or name is None:
        raise TopologyError(f"group member without UUID or ZoneName: {element.attrib}")
    if endpoint is None:
        raise TopologyError(f"group member {uuid} ({name}) has no usable Location")
    return GroupMember(uuid=uuid, name=name, endpoint=endpoint, location=location)


def parse_zone_groups(zone_group_state):
    """Parses zone group state XML into groups, failing on any malformed entry."""
    try:
        root = ET.fromstring(zone_group_state)
    except ET.ParseError as err:
        raise TopologyError(f"malformed zone group state: {err}") from err

    groups = []
    for element in root.iter('ZoneGroup'):
        coordinator_id = element.get('Coordinator')
        if not coordinator_id:
            raise TopologyError(f"zone group {element.get('ID')} has no coordinator")
        members = tuple(_parse_member(member) for member in element.findall('ZoneGroupMember'))
        group = Group(coordinator_id=coordinator_id, members=members)
        # Raises TopologyError when the coordinator is not in the member list
        group.coordinator
        groups.append(group)
    return groups


def sort_groups(groups):
    return sorted(groups, key=lambda group: group.name)


def select_group(groups, group_name):
    """Returns the first group whose display name is exactly group_name."""
    for group in groups:
        if group.name == group_name:
            return group
    raise GroupNotFoundError(group_name, [group.name for group in groups])


async def resolve_coordinator_member(session, devices, group_name):
    """Resolves the coordinator of the group named group_name, queried from the first device."""
    if not devices:
        raise TopologyError("no device available to query the topology from")

    device = devices[0]
    endpoint = device.endpoint
    if endpoint is None:
        raise TopologyError(f"device {device.identifier} has no usable location: {device.location}")

    logger.info(f"Fetching zone group topology from {endpoint}")
    groups = sort_groups(parse_zone_groups(await get_zone_group_state(session, endpoint)))
    for group in groups:
        logger.debug(f"Group {group.name!r} coordinated by {group.coordinator.endpoint}")

    coordinator = select_group(groups, group_name).coordinator
    logger.info(f"Group {group_name!r} is coordinated by {coordinator.name} at {coordinator.endpoint}")
    return coordinator


async def resolve_coordinator(session, devices, group_name):
    """Resolves the coordinator endpoint of the group named group_name."""
    coordinator = await resolve_coordinator_member(session, devices, group_name)
    return coordinator.endpoint
