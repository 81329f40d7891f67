import asyncio
import inspect
import logging
import socket
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

POLL_INTERVAL = 3
REMIND_EVERY = 60

LOCAL_NETWORK_INSTRUCTIONS = (
    "Please enable local network access for this application. "
    "On macOS go to System Settings -> Privacy & Security -> Local Network and add it to the list."
)

INPUT_MONITORING_INSTRUCTIONS = (
    "Please allow this application to monitor keyboard input. "
    "On macOS go to System Settings -> Privacy & Security -> Input Monitoring and add it to the list."
)


@dataclass(frozen=True)
class ReadinessCheck:
    """One permission the session waits for before touching the network."""

    name: str
    check: Callable
    instructions: str


def local_network_available(host, port=80):
    """Returns True when a UDP socket can be connected to host on the LAN."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect((host, port))
        return True
    except OSError as err:
        logger.debug(f"Local network probe to {host} failed: {err}")
        return False


async def wait_until_granted(check, name, instructions, interval=POLL_INTERVAL, remind_every=REMIND_EVERY):
    """Polls check until it reports True, nagging about it at most every remind_every seconds."""
    last_prompt = None
    while True:
        granted = check()
        if inspect.isawaitable(granted):
            granted = await granted
        if granted:
            logger.info(f"{name} permission granted")
            return

        now = time.monotonic()
        if last_prompt is None or now - last_prompt >= remind_every:
            logger.warning(f"Waiting for {name} permission. {instructions}")
            last_prompt = now
        await asyncio.sleep(interval)


async def wait_until_ready(checks, interval=POLL_INTERVAL, remind_every=REMIND_EVERY):
    """Waits for each readiness check in turn."""
    for readiness in checks:
        await wait_until_granted(
            readiness.check, readiness.name, readiness.instructions,
            interval=interval, remind_every=remind_every
        )
