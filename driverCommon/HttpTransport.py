"""
HttpTransport.py

Builds the requests sessions used to fetch remote node configurations.

Grid hubs in the deployments this node was built for commonly serve their
configuration documents over HTTPS with self-issued certificates. For those
hubs the fetch can be run in an explicit "insecure" mode that accepts any
server certificate and skips hostname verification. Insecure mode is never
the default and is always logged at WARNING level when enabled.

Usage:
    session = create_session(insecure=True)
    response = session.get("https://hub.local:4444/config/node.json", timeout=10)
"""

import logging
import ssl
from typing import Any

import requests
from requests.adapters import HTTPAdapter

from common.exceptions import TransportSetupError

logger = logging.getLogger(__name__)

TAG = "[Transport]"


def create_trust_all_context() -> ssl.SSLContext:
    """
    Creates a TLS client context that trusts every certificate and hostname.

    Raises:
        TransportSetupError: If the SSL provider cannot build the context
    """
    try:
        ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
        # check_hostname must be cleared before verify_mode can drop to CERT_NONE
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        return ctx
    except (ssl.SSLError, ValueError) as e:
        raise TransportSetupError(f"Error occurred while creating the HTTP client: {e}", cause=e) from e


class InsecureTLSAdapter(HTTPAdapter):
    """Transport adapter whose connection pools use a trust-all TLS context."""

    def __init__(self, *args: Any, **kwargs: Any):
        self._ssl_context = create_trust_all_context()
        super().__init__(*args, **kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any):
        kwargs["ssl_context"] = self._ssl_context
        return super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args: Any, **kwargs: Any):
        kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(*args, **kwargs)


def create_session(insecure: bool = False) -> requests.Session:
    """
    Returns a requests session for configuration fetches.

    Args:
        insecure (bool): Accept any server certificate and hostname (default: False)

    Raises:
        TransportSetupError: If the insecure session cannot be created
    """
    session = requests.Session()
    if not insecure:
        return session

    logger.warning(
        f"{TAG} Insecure fetch enabled: server certificates and hostnames will NOT be verified."
    )
    try:
        session.mount("https://", InsecureTLSAdapter())
    except TransportSetupError:
        session.close()
        raise
    session.verify = False
    return session
