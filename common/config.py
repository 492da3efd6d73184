"""
common/config.py

Shared constants and configurations for the grid driver node.
Modify these values to change registration, networking and timeout behavior.

Usage:
    from common.config import DEFAULT_PROXY, REGISTRATION_PATH
"""

# =============================================================================
# Grid Protocol
# =============================================================================

# Discriminator the hub expects in the "class" field of a registration request
REGISTRATION_REQUEST_CLASS = "org.openqa.grid.common.RegistrationRequest"

# Proxy class used by the hub when the node configuration does not name one
DEFAULT_PROXY = "org.openqa.grid.selenium.proxy.DefaultRemoteProxy"

REGISTRATION_PATH = "/grid/register"
NODE_ROLE = "node"
REGISTER_CYCLE_MS = 5000           # How often the hub re-checks the node (ms)

# =============================================================================
# Node Endpoint
# =============================================================================

DRIVER_SERVLET_PREFIX = "/wd/hub"  # Catch-all prefix for the automation API
DEFAULT_BIND_HOST = "0.0.0.0"      # Listen on all interfaces so the hub can reach us

# =============================================================================
# Timeouts (in seconds)
# =============================================================================

REGISTRATION_TIMEOUT = 10          # POST to the hub's registration endpoint
CONFIG_FETCH_TIMEOUT = 10          # GET of a remote configuration document
SERVER_STOP_TIMEOUT = 5            # Wait for the serving thread on stop()

# =============================================================================
# Command Line
# =============================================================================

COMMAND_LINE_PARAMETER = "-driverConfig"
COMMAND_LINE_URI_PARAMETER = "-driverConfigURI"

# =============================================================================
# Configuration File Schema
# =============================================================================

SECTION_CONFIGURATION = "configuration"
SECTION_CAPABILITIES = "capabilities"

FIELD_HUB_HOST = "hubHost"
FIELD_HUB_PORT = "hubPort"
FIELD_HOST = "host"
FIELD_PORT = "port"
FIELD_REGISTER = "register"
FIELD_MAX_SESSION = "maxSession"
FIELD_AUT_APK = "autApk"
FIELD_AUT_TEST_APK = "autTestApk"
FIELD_INSTALL_APKS = "installApks"
FIELD_CLEAN_SAVED_USER_DATA = "cleanSavedUserData"
FIELD_PROXY = "proxy"

# =============================================================================
# End of config
# =============================================================================
