"""
Names, identifiers and defaults shared across the package.
"""

DEFAULT_TEST_BUNDLE_SUFFIX = ".xctrunner"
WDA_RUNNER_BUNDLE_ID = "com.facebook.WebDriverAgentRunner"
WDA_RUNNER_APP = "WebDriverAgentRunner-Runner.app"
WDA_CF_BUNDLE_NAME = "WebDriverAgentRunner-Runner"
WDA_SCHEME = "WebDriverAgentRunner"
WDA_PROJECT_NAME = "WebDriverAgent.xcodeproj"
PROJECT_FILE = "project.pbxproj"
WDA_BASE_URL = "http://127.0.0.1"
DEFAULT_WDA_PORT = 8100

PLATFORM_NAME_TVOS = "tvOS"
PLATFORM_NAME_IOS = "iOS"

SDK_SIMULATOR = "iphonesimulator"

RUNNER_SCHEME_IOS = "WebDriverAgentRunner"
LIB_SCHEME_IOS = "WebDriverAgentLib"
RUNNER_SCHEME_TV = "WebDriverAgentRunner_tvOS"
LIB_SCHEME_TV = "WebDriverAgentLib_tvOS"

DEFAULT_SIGNING_ID = "iPhone Developer"
XCTESTRUN_EXTENSION = ".xctestrun"
STATUS_PATH = "/status"

# Distribution name looked up when resolving the package root.
PACKAGE_NAME = "wda-orchestrator"

REAL_DEVICES_CONFIG_DOCS_LINK = (
    "https://appium.github.io/appium-xcuitest-driver/latest/preparation/real-device-config/"
)


def is_tvos(platform_name: str) -> bool:
    """Return True if the platform name denotes tvOS, ignoring case."""
    return (platform_name or "").lower() == PLATFORM_NAME_TVOS.lower()
