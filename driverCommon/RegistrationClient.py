"""
RegistrationClient.py

Announces a driver node to a grid hub.

The client turns a NodeConfiguration into the hub's registration request and
POSTs it once to http://<hubHost>:<hubPort>/grid/register. Only an HTTP 200
counts as success; anything else raises RegistrationError. There is no retry:
the caller decides whether a failed registration matters.

Usage:
    config = NodeConfiguration.load_from_file("driverNode.json")
    client = RegistrationClient(config)
    client.register()

Notes:
- "register" is always true in the outgoing payload. The payload is only
  built once the caller has decided to register, so the node's own
  registration flag is not echoed.
- The hub treats a repeated registration as an update, so register() can be
  called again safely.
"""

import json
import logging
from typing import Any, Dict

import requests

from common.config import (
    NODE_ROLE,
    REGISTER_CYCLE_MS,
    REGISTRATION_PATH,
    REGISTRATION_REQUEST_CLASS,
    REGISTRATION_TIMEOUT,
)
from common.exceptions import RegistrationError
from .NodeConfiguration import NodeConfiguration


class RegistrationClient:
    """
    Builds the registration payload for a node and sends it to the hub.
    """

    def __init__(self, config: NodeConfiguration, timeout: float = REGISTRATION_TIMEOUT,
                 verbose: bool = False):
        """
        Args:
            config (NodeConfiguration): The node being registered
            timeout (float): HTTP timeout in seconds (default: REGISTRATION_TIMEOUT)
            verbose (bool): Enable info level output (default: False)
        """
        self.config = config
        self.timeout = timeout
        self.verbose = verbose

        self.hub_url = f"http://{config.hub_host}:{config.hub_port}"
        self.registration_url = f"{self.hub_url}{REGISTRATION_PATH}"
        self.node_url = f"http://{config.driver_host}:{config.driver_port}"
        self.tag = f"[Registration:{config.hub_host}:{config.hub_port}]"

        self.logger = logging.getLogger(__name__)
        if self.verbose:
            self.logger.setLevel(logging.INFO)

    def get_configuration(self) -> Dict[str, Any]:
        """Returns the "configuration" block of the registration request."""
        config = self.config
        return {
            "port": config.driver_port,
            "register": True,
            "host": config.driver_host,
            "proxy": config.proxy,
            "maxSession": config.driver_max_session,
            "hubHost": config.hub_host,
            "role": NODE_ROLE,
            "registerCycle": REGISTER_CYCLE_MS,
            "hub": self.registration_url,
            "hubPort": config.hub_port,
            "url": self.node_url,
            "remoteHost": self.node_url,
        }

    def get_node_config(self) -> Dict[str, Any]:
        """
        Builds the full registration request.

        Returns:
            dict: {"class": ..., "configuration": {...}, "capabilities": [...]}
        """
        return {
            "class": REGISTRATION_REQUEST_CLASS,
            "configuration": self.get_configuration(),
            "capabilities": [c.get_raw_capabilities() for c in self.config.capabilities],
        }

    build_payload = get_node_config

    def register(self) -> bool:
        """
        Sends one registration request to the hub.

        Returns:
            bool: True when the hub answered HTTP 200

        Raises:
            RegistrationError: On a non-200 answer, a connection-level failure,
                or if the payload cannot be encoded as JSON
        """
        url = self.registration_url

        try:
            body = json.dumps(self.get_node_config())
        except (TypeError, ValueError) as e:
            raise RegistrationError(f"Error encoding registration request to JSON: {e}",
                                    url=url, cause=e) from e

        self.logger.info(f"{self.tag} Registering the node to hub: {url}")

        try:
            response = requests.post(url, data=body,
                                     headers={"Content-Type": "application/json"},
                                     timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            error_msg = f"Registration request to {url} failed: {e}"
            self.logger.warning(f"{self.tag} {error_msg}")
            raise RegistrationError(error_msg, url=url, cause=e) from e

        if response.status_code != 200:
            error_msg = (f"Error sending the registration request to {url}: "
                         f"hub answered HTTP {response.status_code}")
            self.logger.warning(f"{self.tag} {error_msg}")
            raise RegistrationError(error_msg, url=url, status_code=response.status_code)

        self.logger.info(f"{self.tag} Node {self.node_url} registered")
        return True
