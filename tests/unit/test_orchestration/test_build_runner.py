"""
Unit tests for BuildOrchestrator.

Tests xcodebuild command construction, the race between process exit and
readiness, output scanning, derived data lookup and the build helpers.
"""

import asyncio
import functools
import logging
from dataclasses import replace
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from wdaorch.models import DeviceRef, LifecycleState
from wdaorch.orchestration.build_runner import BuildOrchestrator
from wdaorch.orchestration.readiness import ReadinessPoller
from wdaorch.validation import BuildFailureError, OrchestrationError, StartupTimeoutError

BUILD_RUNNER = "wdaorch.orchestration.build_runner"


class FakeXcodebuild:
    """asyncio.subprocess.Process stand-in with scripted output and exit."""

    def __init__(self, stdout_lines=(), stderr_lines=(), returncode=0, exit_event=None):
        self.pid = 4321
        self.returncode = None
        self._final_returncode = returncode
        self._exit_event = exit_event
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        for line in stdout_lines:
            self.stdout.feed_data(line.encode() + b"\n")
        for line in stderr_lines:
            self.stderr.feed_data(line.encode() + b"\n")
        self.stdout.feed_eof()
        self.stderr.feed_eof()

    async def wait(self):
        if self._exit_event is not None:
            await self._exit_event.wait()
        self.returncode = self._final_returncode
        return self._final_returncode


def _connect_error():
    return httpx.ConnectError("connection refused")


@pytest.fixture(autouse=True)
def no_warnings_as_errors_env(monkeypatch):
    monkeypatch.delenv("WDAORCH_TREAT_WARNINGS_AS_ERRORS", raising=False)


@pytest.fixture
def fast_polling():
    with patch(f"{BUILD_RUNNER}.ReadinessPoller", functools.partial(ReadinessPoller, interval_ms=1)):
        yield


@pytest.fixture
def upgrade_timestamp():
    with patch(f"{BUILD_RUNNER}.get_upgrade_timestamp", return_value=1700000000000):
        yield


@pytest.fixture
def reaper():
    mock_reaper = Mock()
    mock_reaper.terminate = AsyncMock()
    return mock_reaper


def make_orchestrator(config, device, status_client=None, reaper=None):
    return BuildOrchestrator(device=device, config=config, status_client=status_client, reaper=reaper)


@pytest.mark.unit
class TestGetCommand:
    """Test cases for xcodebuild argument construction."""

    def test_default_simulator_command(self, build_config, simulator):
        orchestrator = make_orchestrator(build_config, simulator)

        assert orchestrator.get_command() == [
            "xcodebuild",
            "build-for-testing",
            "test-without-building",
            "-project", str(build_config.agent_path),
            "-scheme", "WebDriverAgentRunner",
            "-destination", "id=some-sim-udid",
            "IPHONEOS_DEPLOYMENT_TARGET=17.2",
            "GCC_TREAT_WARNINGS_AS_ERRORS=0",
            "COMPILER_INDEX_STORE_ENABLE=NO",
        ]

    def test_build_only(self, build_config, simulator):
        args = make_orchestrator(build_config, simulator).get_command(build_only=True)

        assert args[1] == "build-for-testing"
        assert "test-without-building" not in args

    def test_simple_build_test(self, build_config, simulator):
        config = replace(build_config, use_simple_build_test=True)
        args = make_orchestrator(config, simulator).get_command()

        assert args[1:3] == ["build", "test"]

    def test_prebuilt_only_tests(self, build_config, simulator):
        orchestrator = make_orchestrator(build_config, simulator)
        orchestrator.state.use_prebuilt = True

        args = orchestrator.get_command()

        assert args[1] == "test-without-building"
        assert "build-for-testing" not in args

    def test_xctestrun_mode(self, build_config, simulator, temp_dir):
        config = replace(build_config, use_xctestrun_file=True)
        orchestrator = make_orchestrator(config, simulator)
        orchestrator.state.xctestrun_file_path = temp_dir / "some-sim-udid_17.2.xctestrun"

        args = orchestrator.get_command()

        assert args[1] == "test-without-building"
        assert args[args.index("-xctestrun") + 1] == str(temp_dir / "some-sim-udid_17.2.xctestrun")
        assert "-project" not in args
        assert "-scheme" not in args

    def test_derived_data_path(self, build_config, simulator):
        config = replace(build_config, derived_data_path=Path("/tmp/derived"))
        args = make_orchestrator(config, simulator).get_command()

        assert args[args.index("-derivedDataPath") + 1] == "/tmp/derived"

    def test_tvos_scheme_and_target(self, build_config):
        device = DeviceRef(udid="tv-udid", platform_name="tvOS", platform_version="17.1.2")
        args = make_orchestrator(build_config, device).get_command()

        assert args[args.index("-scheme") + 1] == "WebDriverAgentRunner_tvOS"
        assert "TVOS_DEPLOYMENT_TARGET=17.1" in args

    def test_unparseable_version_has_no_target(self, build_config):
        device = DeviceRef(udid="udid", platform_version="latest")
        args = make_orchestrator(build_config, device).get_command()

        assert not any("DEPLOYMENT_TARGET" in arg for arg in args)

    def test_real_device_signing(self, build_config, real_device):
        config = replace(
            build_config,
            xcode_config_file="/path/signing.xcconfig",
            xcode_org_id="ABCDE12345",
            xcode_signing_id="Apple Development",
            updated_bundle_id="com.example.runner",
            allow_provisioning_device_registration=True,
        )
        args = make_orchestrator(config, real_device).get_command()

        assert args[3:5] == ["-allowProvisioningUpdates", "-allowProvisioningDeviceRegistration"]
        assert args[args.index("-xcconfig") + 1] == "/path/signing.xcconfig"
        assert "DEVELOPMENT_TEAM=ABCDE12345" in args
        assert "CODE_SIGN_IDENTITY=Apple Development" in args
        assert "PRODUCT_BUNDLE_IDENTIFIER=com.example.runner" in args

    def test_signing_ignored_for_simulator(self, build_config, simulator):
        config = replace(build_config, xcode_org_id="ABCDE12345", updated_bundle_id="com.example.runner")
        args = make_orchestrator(config, simulator).get_command()

        assert not any(arg.startswith("DEVELOPMENT_TEAM") for arg in args)
        assert not any(arg.startswith("PRODUCT_BUNDLE_IDENTIFIER") for arg in args)

    def test_result_bundle(self, build_config, simulator):
        config = replace(build_config, result_bundle_path="out.xcresult", result_bundle_version="3")
        args = make_orchestrator(config, simulator).get_command()

        assert args[args.index("-resultBundlePath") + 1] == "out.xcresult"
        assert args[args.index("-resultBundleVersion") + 1] == "3"

    def test_warnings_as_errors_env(self, build_config, simulator, monkeypatch):
        monkeypatch.setenv("WDAORCH_TREAT_WARNINGS_AS_ERRORS", "1")
        args = make_orchestrator(build_config, simulator).get_command()

        assert "GCC_TREAT_WARNINGS_AS_ERRORS=0" not in args


@pytest.mark.unit
class TestStart:
    """Test cases for spawning and supervising xcodebuild."""

    @pytest.mark.asyncio
    async def test_build_only_success(self, build_config, simulator, upgrade_timestamp):
        orchestrator = make_orchestrator(build_config, simulator)
        process = FakeXcodebuild(returncode=0)

        with patch(f"{BUILD_RUNNER}.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            result = await orchestrator.start(build_only=True)

        assert result is None
        assert orchestrator.state.lifecycle is LifecycleState.EXITED
        assert orchestrator.state.exit_code == 0

    @pytest.mark.asyncio
    async def test_build_only_nonzero_exit_fails(self, build_config, simulator, upgrade_timestamp):
        orchestrator = make_orchestrator(build_config, simulator)
        process = FakeXcodebuild(returncode=65)

        with patch(f"{BUILD_RUNNER}.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(BuildFailureError) as exc_info:
                await orchestrator.start(build_only=True)

        assert exc_info.value.code == 65
        assert "xcodebuild failed with code 65" in str(exc_info.value)
        assert "show_xcode_log" in str(exc_info.value)
        assert orchestrator.state.lifecycle is LifecycleState.FAILED

    @pytest.mark.asyncio
    async def test_real_device_failure_points_to_docs(self, build_config, real_device, upgrade_timestamp):
        config = replace(build_config, show_xcode_log=True)
        orchestrator = make_orchestrator(config, real_device)
        process = FakeXcodebuild(returncode=70)

        with patch(f"{BUILD_RUNNER}.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(BuildFailureError) as exc_info:
                await orchestrator.start(build_only=True)

        assert "real-device-config" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_error_line_then_clean_exit_is_failure(
        self, build_config, simulator, fake_status_client, upgrade_timestamp, fast_polling
    ):
        client = fake_status_client([_connect_error()])
        orchestrator = make_orchestrator(build_config, simulator, status_client=client)
        process = FakeXcodebuild(
            stderr_lines=["Testing failed:", "Error Domain=com.apple.xcodebuild Code=-1 \"boom\""],
            returncode=0,
        )

        with patch(f"{BUILD_RUNNER}.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(BuildFailureError):
                await orchestrator.start()

        assert orchestrator.state.did_build_fail is True
        assert orchestrator.state.lifecycle is LifecycleState.FAILED

    @pytest.mark.asyncio
    async def test_clean_exit_lets_readiness_decide(
        self, build_config, simulator, fake_status_client, upgrade_timestamp, fast_polling
    ):
        client = fake_status_client([_connect_error()])
        orchestrator = make_orchestrator(build_config, simulator, status_client=client)
        process = FakeXcodebuild(returncode=0)

        with patch(f"{BUILD_RUNNER}.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            status = await orchestrator.start()

        assert status is None
        assert orchestrator.state.did_process_exit is True
        assert orchestrator.state.lifecycle is LifecycleState.EXITED
        assert orchestrator.state.agent_url is None

    @pytest.mark.asyncio
    async def test_ready_before_exit_returns_status(
        self, build_config, simulator, fake_status_client, upgrade_timestamp, fast_polling
    ):
        exit_event = asyncio.Event()
        client = fake_status_client([{"ready": True, "ios": {"ip": "10.0.0.2"}}])
        original_get_status = client.get_status

        async def get_status_then_exit():
            result = await original_get_status()
            exit_event.set()
            return result

        client.get_status = get_status_then_exit
        orchestrator = make_orchestrator(build_config, simulator, status_client=client)
        process = FakeXcodebuild(returncode=0, exit_event=exit_event)

        with patch(f"{BUILD_RUNNER}.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            status = await orchestrator.start()
            assert await orchestrator.wait_for_exit() == 0

        assert status == {"ready": True, "ios": {"ip": "10.0.0.2"}}
        assert orchestrator.state.agent_url == "10.0.0.2"
        assert orchestrator.state.lifecycle is LifecycleState.READY

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "stderr_lines, returncode",
        [
            ((), 65),
            (("Error Domain=com.apple.dt.XCTest Code=1 \"boom\"",), 0),
        ],
    )
    async def test_failed_exit_wins_over_simultaneous_status(
        self, build_config, simulator, fake_status_client, upgrade_timestamp, fast_polling,
        stderr_lines, returncode,
    ):
        """Test that a failing exit is reported even when a status arrived at the same time."""
        exit_event = asyncio.Event()
        client = fake_status_client([{"ready": True, "ios": {"ip": "10.0.0.2"}}])
        original_get_status = client.get_status

        async def get_status_while_exiting():
            result = await original_get_status()
            exit_event.set()
            # deliver the status only once the exit has been recorded
            while not orchestrator.state.did_process_exit:
                await asyncio.sleep(0)
            return result

        client.get_status = get_status_while_exiting
        orchestrator = make_orchestrator(build_config, simulator, status_client=client)
        process = FakeXcodebuild(stderr_lines=stderr_lines, returncode=returncode, exit_event=exit_event)

        with patch(f"{BUILD_RUNNER}.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(BuildFailureError):
                await orchestrator.start()

        assert client.calls == 1
        assert orchestrator.state.did_process_exit is True
        assert orchestrator.state.lifecycle is LifecycleState.FAILED
        assert orchestrator.state.agent_url is None

    @pytest.mark.asyncio
    async def test_readiness_timeout_stops_xcodebuild(
        self, build_config, simulator, fake_status_client, upgrade_timestamp, fast_polling, reaper
    ):
        """Test that a startup timeout terminates the still running xcodebuild."""
        config = replace(build_config, launch_timeout_ms=5)
        client = fake_status_client([_connect_error()])
        orchestrator = make_orchestrator(config, simulator, status_client=client, reaper=reaper)
        process = FakeXcodebuild(exit_event=asyncio.Event())

        with patch(f"{BUILD_RUNNER}.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(StartupTimeoutError):
                await orchestrator.start()

        assert orchestrator.state.lifecycle is LifecycleState.FAILED
        reaper.terminate.assert_awaited_once_with(process, "xcodebuild")
        assert orchestrator._exit_task.cancelled()

    @pytest.mark.asyncio
    async def test_spawn_failure(self, build_config, simulator, upgrade_timestamp):
        orchestrator = make_orchestrator(build_config, simulator)

        with patch(
            f"{BUILD_RUNNER}.asyncio.create_subprocess_exec",
            AsyncMock(side_effect=FileNotFoundError("xcodebuild")),
        ):
            with pytest.raises(OrchestrationError) as exc_info:
                await orchestrator.start(build_only=True)

        assert "Unable to start WebDriverAgent" in str(exc_info.value)
        assert orchestrator.state.lifecycle is LifecycleState.FAILED

    @pytest.mark.asyncio
    async def test_child_environment_and_spawn_options(self, build_config, simulator, upgrade_timestamp):
        config = replace(build_config, remote_port=8101, mjpeg_server_port=9100, binding_ip="0.0.0.0")
        orchestrator = make_orchestrator(config, simulator)
        spawn = AsyncMock(return_value=FakeXcodebuild())

        with patch(f"{BUILD_RUNNER}.asyncio.create_subprocess_exec", spawn):
            await orchestrator.start(build_only=True)

        kwargs = spawn.await_args.kwargs
        assert kwargs["cwd"] == str(config.bootstrap_path)
        assert kwargs["start_new_session"] is True
        assert kwargs["env"]["USE_PORT"] == "8101"
        assert kwargs["env"]["MJPEG_SERVER_PORT"] == "9100"
        assert kwargs["env"]["USE_IP"] == "0.0.0.0"
        assert kwargs["env"]["WDA_PRODUCT_BUNDLE_IDENTIFIER"] == "com.facebook.WebDriverAgentRunner"
        assert kwargs["env"]["UPGRADE_TIMESTAMP"] == "1700000000000"

    @pytest.mark.asyncio
    async def test_real_device_unlocks_keychain(self, build_config, real_device, upgrade_timestamp):
        config = replace(build_config, keychain_path="/tmp/wda.keychain", keychain_password="secret")
        orchestrator = make_orchestrator(config, real_device)

        with patch(f"{BUILD_RUNNER}.asyncio.create_subprocess_exec", AsyncMock(return_value=FakeXcodebuild())), \
                patch(f"{BUILD_RUNNER}.set_real_device_security", new_callable=AsyncMock) as mock_security:
            await orchestrator.start(build_only=True)

        mock_security.assert_awaited_once_with("/tmp/wda.keychain", "secret")


@pytest.mark.unit
class TestOutputScanning:
    """Test cases for xcodebuild output handling."""

    def test_error_line_enables_logging_and_marks_failure(self, build_config, simulator, caplog):
        orchestrator = make_orchestrator(build_config, simulator)

        with caplog.at_level(logging.INFO, logger="Xcode"):
            orchestrator._on_stream_line("Compiling sources")
            orchestrator._on_stream_line("Error Domain=IDETestOperationsObserverErrorDomain Code=6")
            orchestrator._on_stream_line("after the error")

        messages = [r.getMessage() for r in caplog.records if r.name == "Xcode"]
        assert messages == ["Error Domain=IDETestOperationsObserverErrorDomain Code=6", "after the error"]
        assert orchestrator.state.did_build_fail is True

    def test_ignored_errors_are_skipped(self, build_config, simulator):
        orchestrator = make_orchestrator(build_config, simulator)

        orchestrator._on_stream_line("Error Domain=x Error copying testing attachment")

        assert orchestrator.state.did_build_fail is False

    def test_disabled_log_skips_everything(self, build_config, simulator, caplog):
        config = replace(build_config, show_xcode_log=False)
        orchestrator = make_orchestrator(config, simulator)

        with caplog.at_level(logging.INFO, logger="Xcode"):
            orchestrator._on_stream_line("Error Domain=x Code=1")

        assert orchestrator.state.did_build_fail is False
        assert not [r for r in caplog.records if r.name == "Xcode"]

    def test_enabled_log_logs_every_line(self, build_config, simulator, caplog):
        config = replace(build_config, show_xcode_log=True)
        orchestrator = make_orchestrator(config, simulator)

        with caplog.at_level(logging.INFO, logger="Xcode"):
            orchestrator._on_stream_line("Compiling sources")

        assert [r.getMessage() for r in caplog.records if r.name == "Xcode"] == ["Compiling sources"]


@pytest.mark.unit
class TestDerivedDataPath:
    """Test cases for derived data path discovery."""

    BUILD_SETTINGS = (
        "Build settings for action build and target WebDriverAgentLib:\n"
        "    ACTION = build\n"
        "    BUILD_DIR = /path/to/DerivedData/WebDriverAgent-abc/Build/Products\n"
        "    BUILD_ROOT = /path/to/DerivedData/WebDriverAgent-abc/Build/Products\n"
    )

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_query(self, build_config, simulator):
        orchestrator = make_orchestrator(build_config, simulator)
        run = AsyncMock(return_value=(0, self.BUILD_SETTINGS, ""))

        with patch(f"{BUILD_RUNNER}.run_command", run):
            first, second = await asyncio.gather(
                orchestrator.retrieve_derived_data_path(),
                orchestrator.retrieve_derived_data_path(),
            )
            third = await orchestrator.retrieve_derived_data_path()

        expected = Path("/path/to/DerivedData/WebDriverAgent-abc")
        assert first == second == third == expected
        assert orchestrator.state.derived_data_path == expected
        run.assert_awaited_once()
        assert run.await_args.args[0] == [
            "xcodebuild", "-project", str(build_config.agent_path), "-showBuildSettings"
        ]

    @pytest.mark.asyncio
    async def test_configured_path_skips_query(self, build_config, simulator):
        config = replace(build_config, derived_data_path=Path("/custom/derived"))
        orchestrator = make_orchestrator(config, simulator)
        run = AsyncMock()

        with patch(f"{BUILD_RUNNER}.run_command", run):
            assert await orchestrator.retrieve_derived_data_path() == Path("/custom/derived")

        run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unparseable_output_returns_none(self, build_config, simulator, caplog):
        orchestrator = make_orchestrator(build_config, simulator)

        with patch(f"{BUILD_RUNNER}.run_command", AsyncMock(return_value=(0, "no settings here", ""))):
            with caplog.at_level(logging.WARNING):
                assert await orchestrator.retrieve_derived_data_path() is None

        assert "Cannot parse WDA build dir" in caplog.text

    @pytest.mark.asyncio
    async def test_failed_query_returns_none(self, build_config, simulator):
        orchestrator = make_orchestrator(build_config, simulator)

        with patch(f"{BUILD_RUNNER}.run_command", AsyncMock(return_value=(65, "", "xcodebuild: error"))):
            assert await orchestrator.retrieve_derived_data_path() is None


@pytest.mark.unit
class TestBuildHelpers:
    """Test cases for prebuild, clean and quit."""

    @pytest.mark.asyncio
    async def test_prebuild_builds_only_and_marks_prebuilt(self, build_config, simulator):
        orchestrator = make_orchestrator(build_config, simulator)

        with patch.object(orchestrator, "start", new_callable=AsyncMock) as mock_start:
            await orchestrator.prebuild()

        mock_start.assert_awaited_once_with(build_only=True)
        assert orchestrator.state.use_prebuilt is True

    @pytest.mark.asyncio
    async def test_prebuild_delay(self, build_config, simulator):
        config = replace(build_config, prebuild_delay_ms=1500)
        orchestrator = make_orchestrator(config, simulator)

        with patch.object(orchestrator, "start", new_callable=AsyncMock), \
                patch(f"{BUILD_RUNNER}.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await orchestrator.prebuild()

        mock_sleep.assert_awaited_once_with(1.5)

    @pytest.mark.asyncio
    async def test_clean_project_cleans_lib_then_runner(self, build_config, simulator):
        orchestrator = make_orchestrator(build_config, simulator)

        with patch(f"{BUILD_RUNNER}.exec_command", new_callable=AsyncMock) as mock_exec:
            await orchestrator.clean_project()

        schemes = [call.args[0][-1] for call in mock_exec.await_args_list]
        assert schemes == ["WebDriverAgentLib", "WebDriverAgentRunner"]

    @pytest.mark.asyncio
    async def test_quit_without_process(self, build_config, simulator, reaper):
        orchestrator = make_orchestrator(build_config, simulator, reaper=reaper)

        await orchestrator.quit()

        reaper.terminate.assert_awaited_once_with(None, "xcodebuild")

    @pytest.mark.asyncio
    async def test_init_resolves_xctestrun_file(self, build_config, simulator, temp_dir):
        config = replace(build_config, use_xctestrun_file=True, sdk_version="17.2")
        orchestrator = make_orchestrator(config, simulator)

        with patch(f"{BUILD_RUNNER}.set_xctestrun_file", return_value=temp_dir / "x.xctestrun") as mock_set:
            await orchestrator.init()

        assert orchestrator.state.xctestrun_file_path == temp_dir / "x.xctestrun"
        assert mock_set.call_args.kwargs["sdk_version"] == "17.2"
