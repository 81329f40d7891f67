import asyncio
import logging
from dataclasses import dataclass

from async_upnp_client.search import async_search

from .errors import DiscoveryError
from .utils import endpoint_from_location

logger = logging.getLogger(__name__)

ZONE_PLAYER_ST = 'urn:schemas-upnp-org:device:ZonePlayer:1'
SSDP_MX = 3
# Extra time allowed past the search window before the round is abandoned
SEARCH_GRACE = 2


@dataclass(frozen=True)
class DeviceRecord:
    """One device that answered the SSDP search."""

    identifier: str
    location: str

    @property
    def endpoint(self):
        return endpoint_from_location(self.location)


async def discover(timeout=SSDP_MX, search_target=ZONE_PLAYER_ST):
    """Runs one SSDP search round and returns the devices that answered."""
    devices = []
    seen_locations = set()

    async def collect(headers):
        location = (headers.get('location') or '').strip()
        if not location or location in seen_locations:
            return
        seen_locations.add(location)
        identifier = headers.get('usn') or location
        devices.append(DeviceRecord(identifier=identifier, location=location))
        logger.debug(f"Found device {identifier} at {location}")

    logger.info(f"Searching for {search_target} ({timeout}s)")
    try:
        await asyncio.wait_for(
            async_search(async_callback=collect, timeout=timeout, search_target=search_target),
            timeout + SEARCH_GRACE
        )
    except asyncio.TimeoutError as err:
        raise DiscoveryError(f"search did not finish within {timeout + SEARCH_GRACE}s") from err
    except OSError as err:
        raise DiscoveryError(f"cannot start SSDP search: {err}") from err

    logger.info(f"Discovery finished with {len(devices)} device(s)")
    return devices
