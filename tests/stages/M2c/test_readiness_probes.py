#!/usr/bin/env python3
"""
test_readiness_probes.py - M2c Tests for HTTP and exec readiness probes

HTTP calls are patched at servicewrap.probes.requests.get; the wrapper is a
MagicMock providing base_url() and exec(). Does NOT require Docker daemon.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

# Add project root to path
project_root = Path(__file__).parent.parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest
import requests
from docker.errors import APIError

from servicewrap.config.descriptor import ProbeConfig, ServiceDescriptor
from servicewrap.errors import ConfigurationError, ProbeError
from servicewrap.probes import ExecProbe, HttpProbe, build_probe


@pytest.fixture
def wrapper():
    w = MagicMock()
    w.base_url.return_value = "http://localhost:49153"
    return w


def http_response(status_code=200, body=None):
    response = MagicMock(status_code=status_code)
    if body is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = body
    return response


class TestHttpProbe:

    @patch("servicewrap.probes.requests.get")
    def test_success_status(self, mock_get, wrapper):
        mock_get.return_value = http_response(200)
        probe = HttpProbe(9011, "/api/status", timeout_s=3)

        assert probe.check(wrapper) is True
        mock_get.assert_called_once_with("http://localhost:49153/api/status", timeout=3)
        wrapper.base_url.assert_called_once_with(9011, scheme="http")

    @patch("servicewrap.probes.requests.get")
    def test_any_2xx_accepted(self, mock_get, wrapper):
        mock_get.return_value = http_response(204)
        assert HttpProbe(80).check(wrapper) is True

    @pytest.mark.parametrize("status", [301, 404, 500, 503])
    @patch("servicewrap.probes.requests.get")
    def test_non_success_status(self, mock_get, status, wrapper):
        mock_get.return_value = http_response(status)
        assert HttpProbe(80).check(wrapper) is False

    @patch("servicewrap.probes.requests.get")
    def test_custom_expected_status(self, mock_get, wrapper):
        mock_get.return_value = http_response(401)
        probe = HttpProbe(80, expected_status=(401, 401))

        assert probe.check(wrapper) is True

    @patch("servicewrap.probes.requests.get")
    def test_required_keys_present(self, mock_get, wrapper):
        mock_get.return_value = http_response(200, {"keys": [{"kid": "abc"}]})
        probe = HttpProbe(9011, "/.well-known/jwks.json", required_keys=["keys"])

        assert probe.check(wrapper) is True

    @patch("servicewrap.probes.requests.get")
    def test_required_keys_missing(self, mock_get, wrapper):
        mock_get.return_value = http_response(200, {"error": "maintenance mode"})
        probe = HttpProbe(9011, "/.well-known/jwks.json", required_keys=["keys"])

        assert probe.check(wrapper) is False

    @patch("servicewrap.probes.requests.get")
    def test_required_keys_on_non_json_body(self, mock_get, wrapper):
        mock_get.return_value = http_response(200)
        probe = HttpProbe(9011, required_keys=["keys"])

        assert probe.check(wrapper) is False

    @patch("servicewrap.probes.requests.get")
    def test_required_keys_on_json_list(self, mock_get, wrapper):
        mock_get.return_value = http_response(200, ["keys"])
        probe = HttpProbe(9011, required_keys=["keys"])

        assert probe.check(wrapper) is False

    @patch("servicewrap.probes.requests.get")
    def test_connection_refused_raises_probe_error(self, mock_get, wrapper):
        mock_get.side_effect = requests.ConnectionError("Connection refused")

        with pytest.raises(ProbeError, match="refused"):
            HttpProbe(80).check(wrapper)

    @patch("servicewrap.probes.requests.get")
    def test_timeout_raises_probe_error(self, mock_get, wrapper):
        mock_get.side_effect = requests.Timeout("read timed out")

        with pytest.raises(ProbeError):
            HttpProbe(80).check(wrapper)

    def test_unpublished_port_raises_probe_error(self, wrapper):
        wrapper.base_url.side_effect = ValueError("Port 80/tcp is not published")

        with pytest.raises(ProbeError, match="not published"):
            HttpProbe(80).check(wrapper)


class TestExecProbe:

    def test_exit_zero_is_ready(self, wrapper):
        wrapper.exec.return_value = (0, "")
        probe = ExecProbe("curl -fs http://localhost:9011/.well-known/jwks.json")

        assert probe.check(wrapper) is True
        wrapper.exec.assert_called_once_with("curl -fs http://localhost:9011/.well-known/jwks.json")

    def test_non_zero_is_not_ready(self, wrapper):
        wrapper.exec.return_value = (7, "curl: (7) Failed to connect")
        assert ExecProbe("curl -fs http://localhost/").check(wrapper) is False

    def test_docker_error_raises_probe_error(self, wrapper):
        wrapper.exec.side_effect = APIError("container is not running")

        with pytest.raises(ProbeError):
            ExecProbe("true").check(wrapper)


class TestBuildProbe:

    def test_http_defaults_to_first_port(self):
        descriptor = ServiceDescriptor("nginx", ports={80: None, 443: None})
        probe = build_probe(ProbeConfig(path="/health"), descriptor)

        assert isinstance(probe, HttpProbe)
        assert probe.port == 80
        assert probe.path == "/health"

    def test_http_explicit_port(self):
        descriptor = ServiceDescriptor("nginx", ports={80: None, 443: None})
        probe = build_probe(ProbeConfig(port=443, scheme="https"), descriptor)

        assert probe.port == 443
        assert probe.scheme == "https"

    def test_http_without_ports(self):
        with pytest.raises(ConfigurationError):
            build_probe(ProbeConfig(), ServiceDescriptor("nginx"))

    def test_http_port_not_exposed(self):
        descriptor = ServiceDescriptor("nginx", ports={80: None})

        with pytest.raises(ConfigurationError, match="not exposed"):
            build_probe(ProbeConfig(port=8080), descriptor)

    def test_exec(self):
        probe = build_probe(ProbeConfig(kind="exec", command="true"), ServiceDescriptor("alpine"))

        assert isinstance(probe, ExecProbe)
        assert probe.command == "true"
