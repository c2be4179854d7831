"""
Pytest configuration and shared fixtures for the wdaorch test suite.

This module provides common fixtures, test doubles, and configuration
for all test modules in the wda-orchestrator project.
"""

import shutil
import sys
import tempfile
from pathlib import Path
from typing import Any, List, Optional

import pytest

# Add src to Python path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from wdaorch.models import AppleDevice, BuildConfig, DeviceRef  # noqa: E402


# ============================================================================
# Test Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def sample_config_data():
    """Sample config.toml content for testing."""
    return {
        "runner": {
            "bootstrap_path": "wda",
            "sdk_version": "17.2",
            "use_xctestrun_file": False,
            "use_prebuilt": False,
            "prebuild_runner": False,
        },
        "network": {
            "base_url": "http://127.0.0.1",
            "local_port": 8100,
            "remote_port": 8100,
        },
        "signing": {
            "xcode_signing_id": "iPhone Developer",
        },
        "timeouts": {
            "launch_timeout_ms": 60000,
            "prebuild_delay_ms": 0,
        },
    }


@pytest.fixture
def config_file(temp_dir, sample_config_data):
    """Write sample_config_data to a temporary config.toml."""
    import toml

    config_path = temp_dir / "config.toml"
    with open(config_path, "w") as f:
        toml.dump(sample_config_data, f)
    return config_path


@pytest.fixture
def simulator():
    """A simulator device reference."""
    return DeviceRef(udid="some-sim-udid", is_real_device=False, platform_name="iOS", platform_version="17.2")


@pytest.fixture
def real_device():
    """A physical device reference."""
    return DeviceRef(udid="00008030-real", is_real_device=True, platform_name="iOS", platform_version="16.4")


@pytest.fixture
def build_config(temp_dir):
    """A BuildConfig pointing at a temporary agent project."""
    bootstrap_path = temp_dir / "wda"
    agent_path = bootstrap_path / "WebDriverAgent.xcodeproj"
    agent_path.mkdir(parents=True)
    return BuildConfig(agent_path=agent_path, bootstrap_path=bootstrap_path)


# ============================================================================
# Test Doubles
# ============================================================================


class FakeStatusClient:
    """Status client double returning queued results.

    Each entry of `results` is either a payload to return or an exception to
    raise. The last entry is repeated once the queue is exhausted.
    """

    def __init__(self, results: List[Any], timeout: float = 3000):
        self.results = list(results)
        self.timeout = timeout
        self.calls = 0
        self.seen_timeouts: List[float] = []

    async def get_status(self):
        self.seen_timeouts.append(self.timeout)
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


class FakeAppleDevice(AppleDevice):
    """Device collaborator double recording removed bundle ids."""

    def __init__(self, installed: Optional[List[str]] = None, udid: str = "some-sim-udid"):
        super().__init__(udid)
        self.installed = list(installed or [])
        self.removed: List[str] = []
        self.lookups: List[str] = []

    async def get_user_installed_bundle_ids_by_bundle_name(self, bundle_name: str) -> List[str]:
        self.lookups.append(bundle_name)
        return list(self.installed)

    async def remove_app(self, bundle_id: str) -> None:
        self.removed.append(bundle_id)


@pytest.fixture
def fake_status_client():
    """Factory for FakeStatusClient instances."""
    return FakeStatusClient


@pytest.fixture
def fake_apple_device():
    """Factory for FakeAppleDevice instances."""
    return FakeAppleDevice


@pytest.fixture(autouse=True)
def clear_config_after_test():
    """Automatically clear configuration cache after each test."""
    original_config_path = Path(__file__).parent.parent / "conf" / "config.toml"

    yield  # Run the test

    from wdaorch.config import clear_config_cache, set_config_path

    clear_config_cache()
    # Always reset to original config path
    set_config_path(original_config_path)

