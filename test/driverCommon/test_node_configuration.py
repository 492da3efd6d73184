"""
test_node_configuration.py

Pytest suite for NodeConfiguration: file loading, URI loading, field
validation, proxy defaulting and capability extraction.

To run these tests:
    pytest test/driverCommon/test_node_configuration.py -v
"""

import dataclasses
import json
import ssl
from pathlib import Path
from unittest.mock import patch

import pytest
import requests
from pytest_httpserver import HTTPServer

from common.config import DEFAULT_PROXY
from common.exceptions import ConfigurationError, TransportSetupError
from driverCommon.Capabilities import CapabilityDescriptor
from driverCommon.HttpTransport import create_session
from driverCommon.NodeConfiguration import NodeConfiguration

SAMPLE_CONFIG = Path(__file__).resolve().parents[2] / "config" / "driverNode.json"

REQUIRED_FIELDS = [
    "hubHost", "hubPort", "host", "port", "register", "maxSession",
    "autApk", "autTestApk", "installApks", "cleanSavedUserData",
]


class TestLoadFromFile:
    """Loading a configuration from a local JSON file."""

    def test_scenario_document(self, sample_document, write_config):
        """The reference scenario loads with every field as written."""
        config = NodeConfiguration.load_from_file(write_config(sample_document))

        assert config.hub_host == "h"
        assert config.hub_port == 4444
        assert config.driver_host == "n"
        assert config.driver_port == 5555
        assert config.driver_registration_enabled is True
        assert config.driver_max_session == 1
        assert config.mobile_app_path == "a.apk"
        assert config.mobile_test_app_path == "t.apk"
        assert config.install_apks_enabled is True
        assert config.clean_saved_user_data_enabled is False
        assert config.proxy == DEFAULT_PROXY
        assert len(config.capabilities) == 1
        assert config.capabilities[0].get_raw_capabilities() == {"platform": "ANDROID"}

    def test_source_is_recorded(self, sample_document, write_config):
        path = write_config(sample_document)
        assert NodeConfiguration.load_from_file(path).source == path

    def test_custom_proxy_kept(self, sample_document, write_config):
        sample_document["configuration"]["proxy"] = "com.example.grid.AndroidProxy"
        config = NodeConfiguration.load_from_file(write_config(sample_document))
        assert config.proxy == "com.example.grid.AndroidProxy"

    def test_null_proxy_defaults(self, sample_document, write_config):
        sample_document["configuration"]["proxy"] = None
        config = NodeConfiguration.load_from_file(write_config(sample_document))
        assert config.proxy == DEFAULT_PROXY

    @pytest.mark.parametrize("path", [None, ""])
    def test_missing_path(self, path):
        with pytest.raises(ConfigurationError, match="configuration file is missing"):
            NodeConfiguration.load_from_file(path)

    def test_unreadable_file(self, tmp_path):
        path = str(tmp_path / "does_not_exist.json")
        with pytest.raises(ConfigurationError) as excinfo:
            NodeConfiguration.load_from_file(path)

        assert excinfo.value.source == path
        assert isinstance(excinfo.value.cause, OSError)
        assert path in str(excinfo.value)

    def test_invalid_json(self, write_config):
        path = write_config('{"configuration": {"hubHost": ')
        with pytest.raises(ConfigurationError, match="valid JSON") as excinfo:
            NodeConfiguration.load_from_file(path)

        assert isinstance(excinfo.value.cause, json.JSONDecodeError)
        assert path in str(excinfo.value)

    def test_top_level_must_be_object(self, write_config):
        with pytest.raises(ConfigurationError, match="must be a JSON object"):
            NodeConfiguration.load_from_file(write_config("[1, 2, 3]"))

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "latin1.json"
        path.write_bytes(b'{"configuration": "\xff\xfe"}')

        with pytest.raises(ConfigurationError, match="not UTF-8") as excinfo:
            NodeConfiguration.load_from_file(str(path))

        assert excinfo.value.source == str(path)
        assert isinstance(excinfo.value.cause, UnicodeDecodeError)

    def test_sample_config_shipped_with_repo(self):
        """The sample configuration in config/ stays loadable."""
        config = NodeConfiguration.load_from_file(str(SAMPLE_CONFIG))
        assert config.capabilities[0]["platform"] == "ANDROID"


class TestValidation:
    """Required fields, types and capabilities."""

    @pytest.mark.parametrize("field", REQUIRED_FIELDS)
    def test_missing_required_field(self, sample_document, field):
        del sample_document["configuration"][field]
        with pytest.raises(ConfigurationError) as excinfo:
            NodeConfiguration.from_dict(sample_document)

        assert excinfo.value.field == field
        assert field in str(excinfo.value)

    @pytest.mark.parametrize("field", REQUIRED_FIELDS)
    def test_null_required_field(self, sample_document, field):
        sample_document["configuration"][field] = None
        with pytest.raises(ConfigurationError) as excinfo:
            NodeConfiguration.from_dict(sample_document)
        assert excinfo.value.field == field

    def test_missing_configuration_section(self, sample_document):
        del sample_document["configuration"]
        with pytest.raises(ConfigurationError) as excinfo:
            NodeConfiguration.from_dict(sample_document)
        assert excinfo.value.field == "configuration"

    def test_empty_capabilities(self, sample_document):
        sample_document["capabilities"] = []
        with pytest.raises(ConfigurationError, match="No capabilities are specified") as excinfo:
            NodeConfiguration.from_dict(sample_document)
        assert excinfo.value.field == "capabilities"

    def test_missing_capabilities(self, sample_document):
        del sample_document["capabilities"]
        with pytest.raises(ConfigurationError, match="No capabilities are specified"):
            NodeConfiguration.from_dict(sample_document)

    def test_capabilities_must_be_array(self, sample_document):
        sample_document["capabilities"] = {"platform": "ANDROID"}
        with pytest.raises(ConfigurationError, match="must be a JSON array"):
            NodeConfiguration.from_dict(sample_document)

    def test_capability_entry_must_be_object(self, sample_document):
        sample_document["capabilities"].append("ANDROID")
        with pytest.raises(ConfigurationError, match="index 1"):
            NodeConfiguration.from_dict(sample_document)

    def test_boolean_is_not_a_port(self, sample_document):
        sample_document["configuration"]["port"] = True
        with pytest.raises(ConfigurationError) as excinfo:
            NodeConfiguration.from_dict(sample_document)
        assert excinfo.value.field == "port"

    def test_string_is_not_a_port(self, sample_document):
        sample_document["configuration"]["hubPort"] = "4444"
        with pytest.raises(ConfigurationError, match="must be an integer"):
            NodeConfiguration.from_dict(sample_document)

    def test_host_must_be_string(self, sample_document):
        sample_document["configuration"]["host"] = 42
        with pytest.raises(ConfigurationError, match="must be a string"):
            NodeConfiguration.from_dict(sample_document)

    def test_boolean_strings_accepted(self, sample_document):
        sample_document["configuration"]["register"] = "FALSE"
        sample_document["configuration"]["installApks"] = "true"
        config = NodeConfiguration.from_dict(sample_document)

        assert config.driver_registration_enabled is False
        assert config.install_apks_enabled is True

    def test_invalid_boolean(self, sample_document):
        sample_document["configuration"]["cleanSavedUserData"] = "yes"
        with pytest.raises(ConfigurationError, match="must be a boolean"):
            NodeConfiguration.from_dict(sample_document)

    def test_capabilities_kept_in_order_and_verbatim(self, sample_document):
        caps = [
            {"platform": "ANDROID", "nested": {"a": [1, 2]}},
            {"platform": "ANDROID", "deviceId": "emulator-5556", "maxInstances": 2},
        ]
        sample_document["capabilities"] = caps
        config = NodeConfiguration.from_dict(sample_document)

        assert [c.get_raw_capabilities() for c in config.capabilities] == caps
        assert all(isinstance(c, CapabilityDescriptor) for c in config.capabilities)

    def test_unknown_fields_ignored(self, sample_document):
        sample_document["configuration"]["cleanUpTimeout"] = 30
        config = NodeConfiguration.from_dict(sample_document)
        assert config.hub_port == 4444


class TestImmutability:

    def test_fields_cannot_be_reassigned(self, sample_document):
        config = NodeConfiguration.from_dict(sample_document)
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.hub_port = 1

    def test_source_document_changes_do_not_leak(self, sample_document):
        config = NodeConfiguration.from_dict(sample_document)
        sample_document["capabilities"][0]["platform"] = "IOS"
        assert config.capabilities[0]["platform"] == "ANDROID"

    def test_nested_capability_values_do_not_leak(self, sample_document):
        sample_document["capabilities"] = [{"nested": {"a": 1}}]
        config = NodeConfiguration.from_dict(sample_document)

        sample_document["capabilities"][0]["nested"]["a"] = 2
        config.capabilities[0].get_raw_capabilities()["nested"]["b"] = 3
        config.capabilities[0]["nested"]["c"] = 4

        assert config.capabilities[0].get_raw_capabilities() == {"nested": {"a": 1}}

    def test_to_dict_round_trip(self, sample_document):
        config = NodeConfiguration.from_dict(sample_document)
        assert NodeConfiguration.from_dict(config.to_dict()) == config


class TestLoadFromURI:
    """Loading a configuration from a remote document."""

    @pytest.mark.parametrize("uri", [None, ""])
    def test_missing_uri(self, uri):
        with pytest.raises(ConfigurationError, match="URI is missing"):
            NodeConfiguration.load_from_uri(uri)

    @pytest.mark.parametrize("uri", ["http://hub.local", "/config/node.json", "file:///tmp/node.json"])
    def test_uri_without_host_or_path(self, uri):
        with pytest.raises(ConfigurationError, match="is invalid"):
            NodeConfiguration.load_from_uri(uri)

    def test_fetch_success(self, httpserver, sample_document):
        httpserver.expect_request("/config/node.json").respond_with_json(sample_document)
        uri = httpserver.url_for("/config/node.json")

        config = NodeConfiguration.load_from_uri(uri)

        assert config.hub_port == 4444
        assert config.source == uri

    def test_remote_invalid_json(self, httpserver):
        httpserver.expect_request("/config/node.json").respond_with_data("not json")
        uri = httpserver.url_for("/config/node.json")

        with pytest.raises(ConfigurationError, match="valid JSON") as excinfo:
            NodeConfiguration.load_from_uri(uri)
        assert excinfo.value.source == uri

    def test_remote_error_status(self, httpserver):
        httpserver.expect_request("/config/node.json").respond_with_data("gone", status=404)

        with pytest.raises(ConfigurationError, match="right URI"):
            NodeConfiguration.load_from_uri(httpserver.url_for("/config/node.json"))

    def test_connection_refused(self, free_port):
        uri = f"http://127.0.0.1:{free_port}/config/node.json"
        with pytest.raises(ConfigurationError) as excinfo:
            NodeConfiguration.load_from_uri(uri, timeout=2)

        assert excinfo.value.source == uri
        assert excinfo.value.cause is not None

    def test_remote_document_validated(self, httpserver, sample_document):
        sample_document["capabilities"] = []
        httpserver.expect_request("/config/node.json").respond_with_json(sample_document)

        with pytest.raises(ConfigurationError, match="No capabilities are specified"):
            NodeConfiguration.load_from_uri(httpserver.url_for("/config/node.json"))

    def test_insecure_flag_passed_to_transport(self, httpserver, sample_document):
        httpserver.expect_request("/config/node.json").respond_with_json(sample_document)

        with patch("driverCommon.NodeConfiguration.create_session",
                   wraps=create_session) as factory:
            NodeConfiguration.load_from_uri(httpserver.url_for("/config/node.json"), insecure=True)

        factory.assert_called_once_with(insecure=True)

    def test_transport_setup_failure(self):
        with patch("driverCommon.NodeConfiguration.create_session",
                   side_effect=TransportSetupError("Error occurred while creating the HTTP client")):
            with pytest.raises(TransportSetupError):
                NodeConfiguration.load_from_uri("https://hub.local/config/node.json", insecure=True)


FIXTURES = Path(__file__).resolve().parents[1] / "fixtures"


@pytest.fixture
def https_hub(free_port):
    """A mock hub serving HTTPS with a self-signed certificate issued for another host."""
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(str(FIXTURES / "selfsigned.crt"), str(FIXTURES / "selfsigned.key"))

    server = HTTPServer(host="127.0.0.1", port=free_port, ssl_context=context)
    server.start()
    yield server
    server.clear()
    if server.is_running():
        server.stop()


class TestLoadFromHTTPS:
    """Fetching the configuration from a hub with an untrusted certificate."""

    def test_untrusted_certificate_rejected_by_default(self, https_hub, sample_document):
        https_hub.expect_request("/config/node.json").respond_with_json(sample_document)
        uri = https_hub.url_for("/config/node.json")
        assert uri.startswith("https://")

        with pytest.raises(ConfigurationError, match="secure connection") as excinfo:
            NodeConfiguration.load_from_uri(uri, timeout=5)

        assert isinstance(excinfo.value.cause, requests.exceptions.SSLError)
        assert excinfo.value.source == uri

    def test_insecure_loads_document(self, https_hub, sample_document):
        https_hub.expect_request("/config/node.json").respond_with_json(sample_document)
        uri = https_hub.url_for("/config/node.json")

        config = NodeConfiguration.load_from_uri(uri, insecure=True, timeout=5)

        assert config.hub_port == 4444
        assert config.source == uri

    @pytest.mark.parametrize("variable", ["REQUESTS_CA_BUNDLE", "CURL_CA_BUNDLE"])
    def test_insecure_ignores_ca_bundle_environment(self, https_hub, sample_document, monkeypatch, variable):
        monkeypatch.setenv(variable, requests.certs.where())
        https_hub.expect_request("/config/node.json").respond_with_json(sample_document)

        config = NodeConfiguration.load_from_uri(
            https_hub.url_for("/config/node.json"), insecure=True, timeout=5
        )

        assert config.hub_port == 4444
