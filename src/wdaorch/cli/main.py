"""
Command-line interface for the wda-orchestrator package.

This module provides the `wdaorch` entry point: it loads the TOML
configuration, applies command-line overrides and runs one of the
sub-commands against a single device.
"""

import argparse
import asyncio
import json
import logging
import signal
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from ..config import get_config, set_config_overrides, set_config_path, validate_device
from ..constants import PLATFORM_NAME_IOS, PLATFORM_NAME_TVOS
from ..models import BuildConfig, DeviceRef, ReuseDecision
from ..orchestration import RunnerAgent, bundle_simulator_runner, reset_test_processes
from ..orchestration.reuse import expected_runner_bundle_ids
from ..system.simulator import SimulatorDevice
from ..validation import OrchestrationError, ValidationError, handle_cli_error

# --- Logging Setup ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)-5.5s] %(name)s:%(filename)s:%(lineno)d\t %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wdaorch",
        description="Build, launch and manage the WebDriverAgent runner for one device.",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        help="Path to config.toml. Defaults to conf/config.toml in the package root.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument("--udid", required=True, help="Identifier of the target device.")
    parser.add_argument("--real-device", action="store_true", help="The target is physical hardware.")
    parser.add_argument(
        "--platform-name",
        default=PLATFORM_NAME_IOS,
        help=f"Platform of the device: {PLATFORM_NAME_IOS} or {PLATFORM_NAME_TVOS}.",
    )
    parser.add_argument("--platform-version", default="", help="Platform version, e.g. '17.4'.")
    parser.add_argument("--local-port", type=int, help="Override network.local_port.")
    parser.add_argument("--derived-data-path", help="Override runner.derived_data_path.")
    parser.add_argument(
        "--show-xcode-log",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Always or never log xcodebuild output.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("prebuild", help="Build the runner for testing without launching it.")
    subparsers.add_parser("clean", help="Clean the library and runner schemes.")
    launch = subparsers.add_parser("launch", help="Start the runner and wait until it answers.")
    launch.add_argument(
        "--no-reuse",
        action="store_true",
        help="Do not inspect or reuse an already running runner.",
    )
    launch.add_argument(
        "--detach",
        action="store_true",
        help="Exit once the runner is ready instead of supervising it until interrupted.",
    )
    subparsers.add_parser("derived-data", help="Print the derived data root of the agent project.")
    subparsers.add_parser("bundle", help="Print the simulator runner app path, building it if missing.")
    subparsers.add_parser("reset", help="Kill leftover test processes for the device.")
    return parser


def _make_agent(config: BuildConfig, device: DeviceRef) -> RunnerAgent:
    apple_device = None
    if not device.is_real_device:
        apple_device = SimulatorDevice(device.udid, expected_runner_bundle_ids(config))
    return RunnerAgent(config, device, apple_device=apple_device)


async def _launch(agent: RunnerAgent, no_reuse: bool, detach: bool) -> None:
    if not no_reuse and not agent.config.web_driver_agent_url:
        decision = await agent.setup_caching()
        logger.info(f"Runner reuse decision: {decision.value}")
        if decision is not ReuseDecision.REUSE:
            await agent.cleanup_obsolete_processes()

    status = await agent.launch()
    print(json.dumps(status, indent=2, default=str))

    if detach or not agent.orchestrator.is_running():
        return

    logger.info("WebDriverAgent is running. Press Ctrl+C to stop it")
    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_requested.set)

    exit_waiter = asyncio.ensure_future(agent.orchestrator.wait_for_exit())
    stop_waiter = asyncio.ensure_future(stop_requested.wait())
    try:
        await asyncio.wait({exit_waiter, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        stop_waiter.cancel()
        await agent.quit()
    if exit_waiter.done() and not exit_waiter.cancelled() and exit_waiter.exception() is not None:
        raise exit_waiter.exception()


async def run_command(args: argparse.Namespace, config: BuildConfig, device: DeviceRef) -> int:
    """Run one sub-command and return the process exit code."""
    agent = _make_agent(config, device)
    orchestrator = agent.orchestrator

    if args.command == "prebuild":
        await orchestrator.init(agent.status_client)
        await orchestrator.prebuild()
        logger.info(f"Prebuild finished in {orchestrator.duration_seconds:.1f}s")
    elif args.command == "clean":
        await orchestrator.clean_project()
    elif args.command == "launch":
        await _launch(agent, args.no_reuse, args.detach)
    elif args.command == "derived-data":
        derived_data_path = await orchestrator.retrieve_derived_data_path()
        if derived_data_path is None:
            logger.error("Cannot retrieve the path to the Xcode derived data folder")
            return 1
        print(derived_data_path)
    elif args.command == "bundle":
        print(await bundle_simulator_runner(orchestrator))
    elif args.command == "reset":
        await reset_test_processes(device.udid, not device.is_real_device)
        await agent.cleanup_obsolete_processes()
    return 0


def main_cli(argv: Optional[List[str]] = None) -> None:
    """
    Main command-line interface.

    Raises:
        SystemExit: On configuration errors or orchestration failures.
    """
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        device = validate_device(
            args.udid,
            is_real_device=args.real_device,
            platform_name=args.platform_name,
            platform_version=args.platform_version,
        )
        if args.config:
            set_config_path(args.config)
        set_config_overrides({
            "local_port": args.local_port,
            "derived_data_path": args.derived_data_path,
            "show_xcode_log": args.show_xcode_log,
        })
        config = get_config()
    except (ValidationError, OSError, ValueError) as e:
        handle_cli_error(
            error=e,
            context="configuration loading",
            exit_code=1,
            include_traceback=False,
            logger=logger,
        )

    try:
        exit_code = asyncio.run(run_command(args, config, device))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        exit_code = 130
    except (OrchestrationError, subprocess.CalledProcessError) as e:
        handle_cli_error(
            error=e,
            context=f"'{args.command}' command",
            exit_code=1,
            include_traceback=args.verbose,
            logger=logger,
        )
    sys.exit(exit_code)


if __name__ == "__main__":
    main_cli()
