#!/usr/bin/env python3
"""Test suite for network settings.

Tests for:
1. NetworkConfig validation
2. load_network_config() - defaults and fallbacks
3. save_network_config() - YAML round trip and write failures
"""

import pytest
import yaml

from wfsctl import osc
from wfsctl.config import NetworkConfig, load_network_config, save_network_config


class TestNetworkConfig:

    def test_defaults(self):
        config = NetworkConfig()

        assert config.incoming_port == osc.PORT_INCOMING
        assert config.outgoing_port == osc.PORT_OUTGOING
        assert config.remote_host == osc.DEFAULT_REMOTE_HOST
        assert not config.has_password
        assert config.validate() is config

    @pytest.mark.parametrize("changes", [
        {'incoming_port': 0},
        {'incoming_port': 65536},
        {'outgoing_port': True},
        {'outgoing_port': "8001"},
        {'remote_host': "wfs.local"},
        {'remote_host': "192.168.1.300"},
        {'find_device_password': 1234},
    ])
    def test_invalid(self, changes):
        with pytest.raises(ValueError):
            NetworkConfig().with_changes(**changes)

    def test_with_changes_returns_new_config(self):
        base = NetworkConfig()
        changed = base.with_changes(remote_host="192.168.1.20", find_device_password="pw")

        assert changed.remote_host == "192.168.1.20"
        assert changed.has_password
        assert base.remote_host == osc.DEFAULT_REMOTE_HOST

    def test_from_dict_partial(self):
        config = NetworkConfig.from_dict({'incoming_port': 9000})
        assert config.incoming_port == 9000
        assert config.outgoing_port == osc.PORT_OUTGOING

    def test_from_dict_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown"):
            NetworkConfig.from_dict({'incoming_port': 9000, 'multicast': True})

    def test_from_dict_empty_password(self):
        assert NetworkConfig.from_dict({'find_device_password': ""}).find_device_password is None


class TestLoadSave:

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_network_config(tmp_path / "network.yaml") == NetworkConfig()

    def test_round_trip(self, tmp_path):
        path = tmp_path / "settings" / "network.yaml"
        config = NetworkConfig(9000, 9001, "10.0.0.5", "secret")

        assert save_network_config(config, path)
        assert load_network_config(path) == config

        saved = yaml.safe_load(path.read_text())
        assert saved['version'] == 1
        assert saved['network']['remote_host'] == "10.0.0.5"

    def test_wrong_version_gives_defaults(self, tmp_path):
        path = tmp_path / "network.yaml"
        path.write_text(yaml.safe_dump({'version': 99, 'network': {'incoming_port': 9000}}))

        assert load_network_config(path) == NetworkConfig()

    @pytest.mark.parametrize("content", [
        "network: [unclosed",
        "version: 1\nnetwork:\n  incoming_port: 0\n",
        "version: 1\nnetwork:\n  bogus: 1\n",
        "- just\n- a list\n",
    ])
    def test_invalid_content_gives_defaults(self, tmp_path, content):
        path = tmp_path / "network.yaml"
        path.write_text(content)

        assert load_network_config(path) == NetworkConfig()

    def test_save_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("")

        assert not save_network_config(NetworkConfig(), blocker / "network.yaml")
