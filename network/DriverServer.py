"""
DriverServer.py
===============
Flask HTTP endpoint and lifecycle for a grid driver node.

The server binds the node's configured port, serves the device automation
API under a catch-all /wd/hub prefix, and (when "register" is enabled in the
configuration) announces itself to the grid hub once the endpoint is up.

A failed hub registration is logged and recorded but never stops the node:
it keeps serving and stays reachable even if the hub does not know about it.
An invalid configuration, on the other hand, stops the process before
anything is served.

----------------------------------------------------------
Example Usage:
---------------
$ driver-node -driverConfig driverNode.json
$ driver-node -driverConfigURI https://hub.local:4444/config/node.json --insecure

→ Once ready, the hub (or anyone else) can check the node with:
GET http://<driver_host>:<driver_port>/health

----------------------------------------------------------
API Endpoints:
---------------
GET /health              - Returns readiness, uptime and hub registration outcome
                         - 200 once ready, 503 while starting

ANY /wd/hub/<path>       - Device automation API, delegated to the attached device proxy
                         - 503 while starting, 501 when no device proxy is attached

----------------------------------------------------------
Device proxy:
---------------
The automation layer plugs in as an object with two methods:

    initialize_mobile_devices(listeners, config)
        Prepare the devices, then call every listener in order.
    handle_request(request, path)
        Answer one /wd/hub request; returns anything Flask accepts as a response.

Without a proxy the listeners run directly after the endpoint starts.
----------------------------------------------------------
"""

import argparse
import logging
import signal
import threading
import time
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional

from flask import Flask, jsonify, request
from werkzeug.serving import make_server

from common.config import (
    COMMAND_LINE_PARAMETER,
    COMMAND_LINE_URI_PARAMETER,
    DEFAULT_BIND_HOST,
    DRIVER_SERVLET_PREFIX,
    SERVER_STOP_TIMEOUT,
)
from common.exceptions import ConfigurationError, RegistrationError
from driverCommon.NodeConfiguration import NodeConfiguration
from driverCommon.NodeState import NodeState
from driverCommon.RegistrationClient import RegistrationClient

HTTP_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

#----------------------------------------------------------

def create_app(state: NodeState, proxy: Any = None,
               registration_status: Optional[Callable[[], Optional[bool]]] = None) -> Flask:
    """
    Builds the Flask app served by the driver node.

    Args:
        state (NodeState): Readiness of this node
        proxy (optional): Device proxy answering /wd/hub requests
        registration_status (callable, optional): Returns True/False once a
            hub registration was attempted, None otherwise
    """
    app = Flask(__name__)
    app.config["NODE_STATE"] = state
    app.config["DRIVER_PROXY"] = proxy

    @app.route('/health', methods=['GET'])
    def health():
        """
        Returns node readiness and runtime metadata.

        Returns:
          - 200: {"status": "online", "ready": true, "uptime": "00:15:02", "registered": true}
          - 503: {"status": "starting", "ready": false, ...} before the node is ready

        Notes:
          - "registered" is null when registration is disabled or not attempted yet
        """
        uptime = timedelta(seconds=int(time.time() - state.launch_time))
        ready = state.is_ready
        body = {
            "status": "online" if ready else "starting",
            "ready": ready,
            "uptime": str(uptime),
            "registered": registration_status() if registration_status else None,
        }
        if state.ready_since is not None:
            body["ready_since"] = datetime.fromtimestamp(state.ready_since).strftime("%Y-%m-%d %H:%M:%S")
        return jsonify(body), 200 if ready else 503

    @app.route(f'{DRIVER_SERVLET_PREFIX}/', defaults={'path': ''}, methods=HTTP_METHODS)
    @app.route(f'{DRIVER_SERVLET_PREFIX}/<path:path>', methods=HTTP_METHODS)
    def driver_api(path):
        """Hands /wd/hub requests to the device proxy."""
        if not state.is_ready:
            return jsonify({"error": "Driver node is not ready yet."}), 503

        device_proxy = app.config["DRIVER_PROXY"]
        if device_proxy is None:
            return jsonify({"error": "No device proxy attached to this driver node."}), 501

        return device_proxy.handle_request(request, path)

    return app

#----------------------------------------------------------

class DriverServer:
    """
    The driver node process: HTTP endpoint, hub registration and readiness.
    """

    def __init__(self, verbose: bool = False):
        """
        Args:
            verbose (bool): Enable debug output (default: False)
        """
        self.state = NodeState()
        self.config: Optional[NodeConfiguration] = None
        self.proxy = None
        self.app: Optional[Flask] = None
        self.registered: Optional[bool] = None
        self.registration_error: Optional[RegistrationError] = None
        self.verbose = verbose
        self.tag = "[DriverServer]"

        self._http_server = None
        self._thread: Optional[threading.Thread] = None

        self.logger = logging.getLogger(__name__)
        if self.verbose:
            self.logger.setLevel(logging.DEBUG)

    def start(self, config: NodeConfiguration, proxy: Any = None,
              bind_host: str = DEFAULT_BIND_HOST):
        """
        Starts the endpoint, then runs the initialization listeners.

        Args:
            config (NodeConfiguration): Validated node configuration
            proxy (optional): Device proxy; see module docstring
            bind_host (str): Interface to bind (default: all interfaces)

        Raises:
            RuntimeError: If the server was started before
            OSError: If the port cannot be bound
        """
        if self._http_server is not None:
            raise RuntimeError(f"{self.tag} Server was already started")

        self.config = config
        self.proxy = proxy
        self.app = create_app(self.state, proxy, registration_status=lambda: self.registered)

        self._http_server = make_server(bind_host, config.driver_port, self.app, threaded=True)
        self._thread = threading.Thread(target=self._http_server.serve_forever,
                                        name="driver-server", daemon=True)
        self._thread.start()
        self.logger.info(f"{self.tag} Endpoint listening on {bind_host}:{config.driver_port}")

        listeners: List[Callable[[], None]] = []
        if config.driver_registration_enabled:
            listeners.append(self._register_after_initialization)
        listeners.append(self._mark_ready)

        if proxy is not None:
            proxy.initialize_mobile_devices(listeners, config)
        else:
            for listener in listeners:
                listener()

    def _register_after_initialization(self):
        try:
            self.register_driver_node_in_hub()
        except RegistrationError:
            # Already logged; the node keeps serving without the hub
            pass

    def _mark_ready(self):
        self.state.mark_ready()
        self.logger.debug(f"{self.tag} The driver node is initialized.")

    def register_driver_node_in_hub(self) -> bool:
        """
        Registers this node with the hub named in its configuration.

        Returns:
            bool: True on success

        Raises:
            RegistrationError: If the hub could not be reached or refused the node
            RuntimeError: If the server has not been started
        """
        if self.config is None:
            raise RuntimeError(f"{self.tag} Server was not started, no configuration to register")

        client = RegistrationClient(self.config, verbose=self.verbose)
        try:
            client.register()
        except RegistrationError as e:
            self.registered = False
            self.registration_error = e
            self.logger.error(
                f"{self.tag} An error occurred while registering the driver into the grid hub "
                f"{client.registration_url}: {e.message}",
                exc_info=e.cause is not None,
            )
            raise
        self.registered = True
        self.registration_error = None
        return True

    def is_ready(self) -> bool:
        """True once the endpoint is serving and all initialization listeners ran."""
        return (self._thread is not None and self._thread.is_alive()
                and self.state.is_ready)

    def wait(self):
        """Blocks until the server is stopped."""
        while self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=1)

    def stop(self):
        """Shuts the endpoint down. Safe to call more than once."""
        if self._http_server is None or self._thread is None or not self._thread.is_alive():
            return
        self._http_server.shutdown()
        self._http_server.server_close()
        self._thread.join(timeout=SERVER_STOP_TIMEOUT)
        self.logger.info(f"{self.tag} Driver node stopped")

#----------------------------------------------------------

def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments

    Returns:
        Parsed argument namespace
    """
    parser = argparse.ArgumentParser(
        prog="driver-node",
        description="Run a grid driver node",
        allow_abbrev=False,
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        COMMAND_LINE_PARAMETER,
        dest="driver_config",
        metavar="FILE",
        help="Driver configuration file, e.g. driverNode.json"
    )
    source.add_argument(
        COMMAND_LINE_URI_PARAMETER,
        dest="driver_config_uri",
        metavar="URI",
        help="URI to fetch the driver configuration from"
    )

    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Accept any TLS certificate when fetching the configuration URI"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    return parser.parse_args(argv)


def setup_signal_handlers(server: DriverServer):
    """
    Set up termination signal handlers

    Args:
        server: Running driver server
    """
    def handle_signal(sig, frame):
        print("[DriverServer] Stopping driver node...")
        server.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the driver-node command."""
    args = parse_arguments(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.driver_config:
            config = NodeConfiguration.load_from_file(args.driver_config)
        else:
            config = NodeConfiguration.load_from_uri(args.driver_config_uri, insecure=args.insecure)
    except ConfigurationError as e:
        print("[DriverServer] An error occurred reading the driver configuration:")
        print(f"  {e.message}")
        return 1

    server = DriverServer(verbose=args.verbose)
    try:
        server.start(config)
    except OSError as e:
        print(f"[DriverServer] Could not start the endpoint on port {config.driver_port}: {e}")
        return 1

    setup_signal_handlers(server)

    print(f"[DriverServer] Driver node ready on {DEFAULT_BIND_HOST}:{config.driver_port}")
    if config.driver_registration_enabled:
        if server.registered:
            print(f"[DriverServer] Registered with hub {config.hub_host}:{config.hub_port}")
        else:
            print("[DriverServer] Hub registration failed, serving anyway")

    try:
        server.wait()
    except KeyboardInterrupt:
        print("Termination signal received, stopping...")
        server.stop()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
