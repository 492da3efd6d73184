"""
NodeConfiguration.py

Loads and validates the driver node configuration.

The configuration is a JSON document with two required sections:

    {
      "configuration": {
        "hubHost": "hub.local", "hubPort": 4444,
        "host": "10.0.0.12", "port": 5555,
        "register": true, "maxSession": 1,
        "autApk": "app.apk", "autTestApk": "app-test.apk",
        "installApks": true, "cleanSavedUserData": false,
        "proxy": null
      },
      "capabilities": [ {"platform": "ANDROID"} ]
    }

Every scalar in "configuration" except "proxy" is required. "capabilities"
must hold at least one object; each object is kept verbatim.

Usage:
    config = NodeConfiguration.load_from_file("driverNode.json")
    config = NodeConfiguration.load_from_uri("https://hub.local/node.json", insecure=True)
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

import requests

from common.config import (
    CONFIG_FETCH_TIMEOUT,
    DEFAULT_PROXY,
    FIELD_AUT_APK,
    FIELD_AUT_TEST_APK,
    FIELD_CLEAN_SAVED_USER_DATA,
    FIELD_HOST,
    FIELD_HUB_HOST,
    FIELD_HUB_PORT,
    FIELD_INSTALL_APKS,
    FIELD_MAX_SESSION,
    FIELD_PORT,
    FIELD_PROXY,
    FIELD_REGISTER,
    SECTION_CAPABILITIES,
    SECTION_CONFIGURATION,
)
from common.exceptions import ConfigurationError
from .Capabilities import CapabilityDescriptor
from .HttpTransport import create_session

logger = logging.getLogger(__name__)

TAG = "[NodeConfig]"


@dataclass(frozen=True)
class NodeConfiguration:
    """
    Immutable driver node configuration.

    Construct through load_from_file(), load_from_uri() or from_dict(); those
    either return a fully validated instance or raise ConfigurationError.
    """

    hub_host: str
    hub_port: int
    driver_host: str
    driver_port: int
    driver_registration_enabled: bool
    driver_max_session: int
    mobile_app_path: str
    mobile_test_app_path: str
    install_apks_enabled: bool
    clean_saved_user_data_enabled: bool
    capabilities: Tuple[CapabilityDescriptor, ...]
    proxy: str = DEFAULT_PROXY
    source: Optional[str] = field(default=None, compare=False)

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    @classmethod
    def load_from_file(cls, path: Optional[str]) -> "NodeConfiguration":
        """
        Reads the driver configuration from a local JSON file.

        Args:
            path (str): Path of the configuration file

        Returns:
            NodeConfiguration: The validated configuration

        Raises:
            ConfigurationError: If the path is missing, the file cannot be
                read, or the content is not a valid configuration document
        """
        if not path:
            raise ConfigurationError(
                "Driver configuration file is missing. Please specify a name like: driverNode.json"
            )
        path = str(path)

        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except OSError as e:
            raise ConfigurationError(
                f"Error reading configuration file '{path}'. "
                f"Did you specify the right file name and path? ({e})",
                source=path, cause=e,
            ) from e
        except UnicodeDecodeError as e:
            raise ConfigurationError(
                f"Error occurred during parsing json file '{path}': content is not UTF-8. "
                f"Please make sure you are using a valid JSON file! ({e})",
                source=path, cause=e,
            ) from e

        document = cls._parse_json(content, path)
        config = cls.from_dict(document, source=path)
        logger.info(f"{TAG} Loaded configuration from {path}")
        return config

    @classmethod
    def load_from_uri(cls, uri: Optional[str], insecure: bool = False,
                      timeout: float = CONFIG_FETCH_TIMEOUT) -> "NodeConfiguration":
        """
        Fetches the driver configuration from a remote URI.

        Args:
            uri (str): http(s) URI of the configuration document
            insecure (bool): Accept any TLS certificate and hostname; only for
                hubs serving self-issued certificates (default: False)
            timeout (float): Connect/read timeout in seconds

        Returns:
            NodeConfiguration: The validated configuration

        Raises:
            TransportSetupError: If the insecure HTTP session cannot be built
            ConfigurationError: If the URI is invalid, the fetch fails, or
                the content is not a valid configuration document
        """
        if not uri:
            raise ConfigurationError("Driver configuration URI is missing.")
        uri = str(uri)

        parts = urlsplit(uri)
        if not parts.hostname or not parts.path:
            raise ConfigurationError(
                f"Driver configuration URI '{uri}' is invalid: a host and a path are required.",
                source=uri,
            )

        # TransportSetupError propagates as is
        session = create_session(insecure=insecure)
        try:
            # Per-request verify wins over REQUESTS_CA_BUNDLE / CURL_CA_BUNDLE
            response = session.get(uri, timeout=timeout, verify=not insecure)
            response.raise_for_status()
            content = response.text
        except requests.exceptions.SSLError as e:
            logger.error(f"{TAG} TLS handshake with {uri} failed: {e}")
            raise ConfigurationError(
                f"Could not establish a secure connection to '{uri}'. "
                f"If the hub uses a self-issued certificate, enable insecure fetch. ({e})",
                source=uri, cause=e,
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"{TAG} Error occurred while reading config from {uri}: {e}")
            raise ConfigurationError(
                f"Error reading configuration from '{uri}'. Did you specify the right URI? ({e})",
                source=uri, cause=e,
            ) from e
        finally:
            session.close()

        document = cls._parse_json(content, uri)
        config = cls.from_dict(document, source=uri)
        logger.info(f"{TAG} Loaded configuration from {uri}")
        return config

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, document: Any, source: Optional[str] = None) -> "NodeConfiguration":
        """
        Validates a parsed configuration document.

        Args:
            document (dict): Parsed JSON with "configuration" and "capabilities"
            source (str, optional): File path or URI, used in error messages

        Raises:
            ConfigurationError: On a missing section, missing or mistyped
                field, or an empty capability list
        """
        where = f" in '{source}'" if source else ""

        if not isinstance(document, Mapping):
            raise ConfigurationError(
                f"Configuration document{where} must be a JSON object.", source=source
            )

        settings = document.get(SECTION_CONFIGURATION)
        if settings is None:
            raise ConfigurationError(
                f"Missing '{SECTION_CONFIGURATION}' section{where}.",
                source=source, field=SECTION_CONFIGURATION,
            )
        if not isinstance(settings, Mapping):
            raise ConfigurationError(
                f"'{SECTION_CONFIGURATION}'{where} must be a JSON object.",
                source=source, field=SECTION_CONFIGURATION,
            )

        reader = _FieldReader(settings, source)
        hub_host = reader.string(FIELD_HUB_HOST)
        hub_port = reader.integer(FIELD_HUB_PORT)
        driver_host = reader.string(FIELD_HOST)
        driver_port = reader.integer(FIELD_PORT)
        registration_enabled = reader.boolean(FIELD_REGISTER)
        max_session = reader.integer(FIELD_MAX_SESSION)
        app_path = reader.string(FIELD_AUT_APK)
        test_app_path = reader.string(FIELD_AUT_TEST_APK)
        install_apks = reader.boolean(FIELD_INSTALL_APKS)
        clean_user_data = reader.boolean(FIELD_CLEAN_SAVED_USER_DATA)
        proxy = reader.optional_string(FIELD_PROXY, DEFAULT_PROXY)

        capabilities = cls._read_capabilities(document.get(SECTION_CAPABILITIES), source)

        return cls(
            hub_host=hub_host,
            hub_port=hub_port,
            driver_host=driver_host,
            driver_port=driver_port,
            driver_registration_enabled=registration_enabled,
            driver_max_session=max_session,
            mobile_app_path=app_path,
            mobile_test_app_path=test_app_path,
            install_apks_enabled=install_apks,
            clean_saved_user_data_enabled=clean_user_data,
            capabilities=capabilities,
            proxy=proxy,
            source=source,
        )

    @staticmethod
    def _read_capabilities(entries: Any, source: Optional[str]) -> Tuple[CapabilityDescriptor, ...]:
        where = f" in '{source}'" if source else ""
        if entries is None or (isinstance(entries, list) and not entries):
            raise ConfigurationError(
                f"No capabilities are specified{where}.",
                source=source, field=SECTION_CAPABILITIES,
            )
        if not isinstance(entries, list):
            raise ConfigurationError(
                f"'{SECTION_CAPABILITIES}'{where} must be a JSON array.",
                source=source, field=SECTION_CAPABILITIES,
            )

        capabilities = []
        for index, entry in enumerate(entries):
            try:
                capabilities.append(CapabilityDescriptor.from_json(entry))
            except ConfigurationError as e:
                raise ConfigurationError(
                    f"Invalid capability at index {index}{where}: {e.message}",
                    source=source, field=SECTION_CAPABILITIES,
                ) from e
        return tuple(capabilities)

    @staticmethod
    def _parse_json(content: str, source: str) -> Any:
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"{TAG} Error occurred while parsing config from {source}: {e}")
            raise ConfigurationError(
                f"Error occurred during parsing json from '{source}'. "
                f"Please make sure you are using a valid JSON file! ({e})",
                source=source, cause=e,
            ) from e

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Convert the configuration back to the file layout (for logging or exporting)."""
        return {
            SECTION_CONFIGURATION: {
                FIELD_HUB_HOST: self.hub_host,
                FIELD_HUB_PORT: self.hub_port,
                FIELD_HOST: self.driver_host,
                FIELD_PORT: self.driver_port,
                FIELD_REGISTER: self.driver_registration_enabled,
                FIELD_MAX_SESSION: self.driver_max_session,
                FIELD_AUT_APK: self.mobile_app_path,
                FIELD_AUT_TEST_APK: self.mobile_test_app_path,
                FIELD_INSTALL_APKS: self.install_apks_enabled,
                FIELD_CLEAN_SAVED_USER_DATA: self.clean_saved_user_data_enabled,
                FIELD_PROXY: self.proxy,
            },
            SECTION_CAPABILITIES: [c.get_raw_capabilities() for c in self.capabilities],
        }


class _FieldReader:
    """Typed access to the "configuration" section, raising ConfigurationError per field."""

    def __init__(self, settings: Mapping[str, Any], source: Optional[str]):
        self.settings = settings
        self.source = source

    def _require(self, name: str) -> Any:
        value = self.settings.get(name)
        if value is None:
            where = f" in '{self.source}'" if self.source else ""
            raise ConfigurationError(
                f"Missing required configuration field '{name}'{where}.",
                source=self.source, field=name,
            )
        return value

    def _wrong_type(self, name: str, expected: str, value: Any) -> ConfigurationError:
        where = f" in '{self.source}'" if self.source else ""
        return ConfigurationError(
            f"Configuration field '{name}'{where} must be {expected}, got {value!r}.",
            source=self.source, field=name,
        )

    def string(self, name: str) -> str:
        value = self._require(name)
        if not isinstance(value, str):
            raise self._wrong_type(name, "a string", value)
        return value

    def optional_string(self, name: str, default: str) -> str:
        value = self.settings.get(name)
        if value is None:
            return default
        if not isinstance(value, str):
            raise self._wrong_type(name, "a string or null", value)
        return value

    def integer(self, name: str) -> int:
        value = self._require(name)
        # bool is an int subclass; "register": true must not pass as a port
        if isinstance(value, bool):
            raise self._wrong_type(name, "an integer", value)
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        raise self._wrong_type(name, "an integer", value)

    def boolean(self, name: str) -> bool:
        value = self._require(name)
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise self._wrong_type(name, "a boolean", value)
