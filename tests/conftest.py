"""
Pytest configuration and shared fixtures
"""
import json
import os
import sys
import pytest
from unittest.mock import MagicMock

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


@pytest.fixture
def mock_env(monkeypatch):
    """Set up mock environment variables"""
    env_vars = {
        'MQTT_BROKER_URL': 'mqtt://test.mqtt.local:1883',
        'MQTT_CLIENT_ID': 'seeder-test',
        'SEEDER_CONFIG_DIR': 'config',
        'SEEDER_RECONNECT_S': '1',
        'SEEDER_KEEPALIVE_S': '60',
        'SEEDER_SUBSCRIBE_QOS': '0',
        'SEEDER_LOG_LEVEL': 'INFO',
    }

    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)

    return env_vars


@pytest.fixture
def fake_paho_client():
    """
    Controllable stand-in for paho.mqtt.client.Client.

    subscribe() returns (rc, mid) and publish() returns an info object with
    rc/mid, using increasing message ids like paho does.
    """
    from paho.mqtt.client import MQTT_ERR_SUCCESS

    client = MagicMock()
    client.is_connected.return_value = True
    mids = iter(range(1, 10_000))
    client.issued = []  # (kind, topic, mid) in call order

    def _subscribe(topic, qos=0):
        mid = next(mids)
        client.issued.append(("subscribe", topic, mid))
        return (MQTT_ERR_SUCCESS, mid)

    def _publish(topic, payload=None, qos=0, retain=False):
        mid = next(mids)
        client.issued.append(("publish", topic, mid))
        return MagicMock(rc=MQTT_ERR_SUCCESS, mid=mid)

    client.subscribe.side_effect = _subscribe
    client.publish.side_effect = _publish
    return client


@pytest.fixture
def write_sources(tmp_path):
    """Write {filename: content} into tmp_path/config and return the directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    def _write(sources):
        for name, content in sources.items():
            text = content if isinstance(content, str) else json.dumps(content)
            (config_dir / name).write_text(text, encoding="utf-8")
        return config_dir

    return _write
