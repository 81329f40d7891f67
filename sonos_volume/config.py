import argparse
import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from .discovery import SSDP_MX
from .events import DEFAULT_RESUBSCRIBE_DELAY, DEFAULT_SUBSCRIPTION_TIMEOUT
from .keys import DEFAULT_MUTE_ADJUSTMENT, DEFAULT_VOLUME_STEP

DEFAULT_REQUEST_TIMEOUT = 5
DEFAULT_BIND = '127.0.0.1:5000'


@dataclass(frozen=True)
class Config:
    group_name: str
    callback_url: str
    volume_step: int = DEFAULT_VOLUME_STEP
    mute_adjustment: int = DEFAULT_MUTE_ADJUSTMENT
    discovery_timeout: int = SSDP_MX
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    subscription_timeout: int = DEFAULT_SUBSCRIPTION_TIMEOUT
    resubscribe_delay: float = DEFAULT_RESUBSCRIBE_DELAY
    probe_host: Optional[str] = None
    bind: str = DEFAULT_BIND
    log_level: str = 'INFO'


def _valid_callback_url(value):
    parsed = urlparse(value)
    return parsed.scheme == 'http' and bool(parsed.hostname)


def build_parser():
    env = os.environ
    parser = argparse.ArgumentParser(
        prog='sonos-volume',
        description="Control the volume and playback of one Sonos group from key presses."
    )
    parser.add_argument('--group', default=env.get('SONOS_GROUP'),
                        help="Display name of the group to control, e.g. 'Bedroom' or 'Kitchen + 2'")
    parser.add_argument('--callback-url', default=env.get('SONOS_CALLBACK_URL'),
                        help="URL of this machine the coordinator pushes events to, e.g. http://192.168.1.20:1337")
    parser.add_argument('--volume-step', type=int, default=int(env.get('SONOS_VOLUME_STEP', DEFAULT_VOLUME_STEP)))
    parser.add_argument('--mute-adjustment', type=int,
                        default=int(env.get('SONOS_MUTE_ADJUSTMENT', DEFAULT_MUTE_ADJUSTMENT)))
    parser.add_argument('--discovery-timeout', type=int, default=SSDP_MX)
    parser.add_argument('--request-timeout', type=float, default=DEFAULT_REQUEST_TIMEOUT)
    parser.add_argument('--subscription-timeout', type=int, default=DEFAULT_SUBSCRIPTION_TIMEOUT)
    parser.add_argument('--resubscribe-delay', type=float, default=DEFAULT_RESUBSCRIBE_DELAY)
    parser.add_argument('--probe-host', default=env.get('SONOS_PROBE_HOST'),
                        help="LAN host (e.g. the router) that must be reachable before discovery starts")
    parser.add_argument('--bind', default=env.get('SONOS_BIND', DEFAULT_BIND),
                        help="host:port the key-press API listens on")
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    return parser


def load_config(argv=None):
    """Builds a Config from command line arguments and SONOS_* environment variables."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.group:
        parser.error("a group name is required (--group or SONOS_GROUP)")
    if not args.callback_url:
        parser.error("a callback URL is required (--callback-url or SONOS_CALLBACK_URL)")
    if not _valid_callback_url(args.callback_url):
        parser.error(f"invalid callback URL: {args.callback_url}")
    if args.volume_step <= 0:
        parser.error("--volume-step must be positive")

    return Config(
        group_name=args.group,
        callback_url=args.callback_url,
        volume_step=args.volume_step,
        mute_adjustment=args.mute_adjustment,
        discovery_timeout=args.discovery_timeout,
        request_timeout=args.request_timeout,
        subscription_timeout=args.subscription_timeout,
        resubscribe_delay=args.resubscribe_delay,
        probe_host=args.probe_host,
        bind=args.bind,
        log_level=args.log_level,
    )
