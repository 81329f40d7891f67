import asyncio
import concurrent.futures
import logging
import sys

import aiohttp
import hypercorn
import hypercorn.asyncio
from flask import Flask, jsonify

from sonos_volume import (
    CommandError,
    RemoteKey,
    SonosError,
    connect,
    load_config,
    local_network_available,
    normalize_volume
)
from sonos_volume.permissions import (
    INPUT_MONITORING_INSTRUCTIONS,
    LOCAL_NETWORK_INSTRUCTIONS,
    ReadinessCheck,
    wait_until_ready
)

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT = 10

app = Flask(__name__)
app.config['GROUP_SESSION'] = None
app.config['LOOP'] = None


def _run(coro):
    """Runs a coroutine on the session's event loop from a request thread."""
    future = asyncio.run_coroutine_threadsafe(coro, app.config['LOOP'])
    try:
        return future.result(timeout=app.config.get('COMMAND_TIMEOUT', COMMAND_TIMEOUT))
    except concurrent.futures.TimeoutError:
        future.cancel()
        raise


def _state_payload(group):
    payload = group.state.snapshot()
    payload['subscription'] = str(group.subscriber.state)
    return payload


@app.route("/api/state")
def get_state():
    group = app.config['GROUP_SESSION']
    if group is None:
        return jsonify({"success": False, "error": "Not connected"}), 503
    return jsonify({"success": True, **_state_payload(group)})


@app.route("/api/key/<key>", methods=["GET", "POST"])
def press_key(key):
    """Handle a key press from a remote, hotkey daemon or shortcut."""
    try:
        remote_key = RemoteKey.parse(key)
    except ValueError:
        return jsonify({"success": False, "error": f"Unknown key: {key}"}), 404

    group = app.config['GROUP_SESSION']
    if group is None:
        return jsonify({"success": False, "error": "Not connected"}), 503

    try:
        _run(group.press(remote_key))
    except CommandError as e:
        logger.warning(str(e))
        return jsonify({"success": False, "error": str(e), **_state_payload(group)}), 502
    except concurrent.futures.TimeoutError:
        logger.warning(f"{remote_key.name} timed out")
        return jsonify({"success": False, "error": "Timed out"}), 504

    return jsonify({"success": True, **_state_payload(group)})


def show_volume(volume):
    """Presentation sink for volume changes."""
    logger.info(f"Volume {volume} ({normalize_volume(volume):.0%})")


def report_health(state, error):
    if error is not None:
        logger.warning(f"Events unavailable ({error}); key presses keep working")


def readiness_checks(config, input_monitoring=None):
    """
    Permissions to wait for before discovery.

    Key presses reaching /api/key need no input-monitoring grant. A front end
    that captures the keyboard itself passes its own input_monitoring check.
    """
    checks = []
    if config.probe_host:
        checks.append(ReadinessCheck(
            'local network',
            lambda: local_network_available(config.probe_host),
            LOCAL_NETWORK_INSTRUCTIONS
        ))
    if input_monitoring is not None:
        checks.append(ReadinessCheck('input monitoring', input_monitoring, INPUT_MONITORING_INSTRUCTIONS))
    return checks


async def serve(config, input_monitoring=None):
    await wait_until_ready(readiness_checks(config, input_monitoring))

    timeout = aiohttp.ClientTimeout(total=config.request_timeout)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        group = await connect(config, session, on_volume=show_volume, on_health=report_health)
        try:
            try:
                await group.load_volume()
            except CommandError as e:
                logger.warning(f"Could not load the current volume: {e}")

            app.config['GROUP_SESSION'] = group
            app.config['LOOP'] = asyncio.get_running_loop()

            hypercorn_config = hypercorn.Config()
            hypercorn_config.bind = [config.bind]
            await hypercorn.asyncio.serve(app, hypercorn_config)
        finally:
            app.config['GROUP_SESSION'] = None
            await group.close()


def main(argv=None):
    config = load_config(argv)
    logging.basicConfig(
        level=config.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        asyncio.run(serve(config))
    except SonosError as e:
        logger.error(e.describe())
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
