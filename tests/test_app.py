"""Tests for the key-press HTTP API."""

import asyncio
import dataclasses
import threading

import pytest

import app as app_module
from sonos_volume.control import Action
from sonos_volume.errors import CommandError
from sonos_volume.keys import RemoteKey
from sonos_volume.state import SessionState, StateFragment

from conftest import FakeSubscriber


class FakeGroup:
    def __init__(self, volume=30, error=None):
        self.state = SessionState()
        self.state.merge(StateFragment(volume=volume))
        self.subscriber = FakeSubscriber()
        self.error = error
        self.pressed = []

    async def press(self, key):
        self.pressed.append(key)
        if self.error is not None:
            raise self.error
        self.state.merge(StateFragment(volume=self.state.volume + 2))


@pytest.fixture
def loop():
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    yield loop
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()


@pytest.fixture
def client(loop):
    app_module.app.config['LOOP'] = loop
    app_module.app.config['TESTING'] = True
    yield app_module.app.test_client()
    app_module.app.config['GROUP_SESSION'] = None
    app_module.app.config['LOOP'] = None


def test_key_press_returns_new_state(client):
    group = FakeGroup(volume=30)
    app_module.app.config['GROUP_SESSION'] = group

    response = client.post('/api/key/volumeup')

    assert response.status_code == 200
    assert response.get_json() == {
        'success': True,
        'volume': 32,
        'transport': 'stopped',
        'transport_confirmed': False,
        'subscription': 'unsubscribed',
    }
    assert group.pressed == [RemoteKey.VOLUMEUP]


def test_unknown_key(client):
    app_module.app.config['GROUP_SESSION'] = FakeGroup()
    response = client.get('/api/key/eject')
    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_not_connected(client):
    assert client.get('/api/key/volumeup').status_code == 503
    assert client.get('/api/state').status_code == 503


def test_command_failure_is_reported(client):
    group = FakeGroup(error=CommandError(Action.ADJUST_VOLUME, 'HTTP 500, errorCode 701'))
    app_module.app.config['GROUP_SESSION'] = group

    response = client.get('/api/key/KEY_VOLUMEDOWN')

    assert response.status_code == 502
    body = response.get_json()
    assert body['success'] is False
    assert '701' in body['error']
    assert body['volume'] == 30


def test_state(client):
    app_module.app.config['GROUP_SESSION'] = FakeGroup(volume=12)
    body = client.get('/api/state').get_json()
    assert body['success'] is True
    assert body['volume'] == 12


def test_show_volume_logs_percentage(caplog):
    with caplog.at_level('INFO', logger='app'):
        app_module.show_volume(32)
    assert '32%' in caplog.text


def test_http_keys_need_no_readiness_checks(config):
    assert app_module.readiness_checks(config) == []


def test_readiness_checks_cover_network_and_keyboard(config):
    config = dataclasses.replace(config, probe_host='192.168.1.1')

    def keyboard_granted():
        return True

    checks = app_module.readiness_checks(config, input_monitoring=keyboard_granted)

    assert [check.name for check in checks] == ['local network', 'input monitoring']
    assert checks[1].check is keyboard_granted
    assert 'Input Monitoring' in checks[1].instructions
