#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import sys
import argparse
import json
import asyncio
import logging
from signal import SIGINT, SIGTERM

from motion_blinds_bridge.internal_types import *

from motion_blinds_bridge import (
    __version__ as pkg_version,
    MotionBridge,
    WriteState,
    DeviceStateChange,
    UpdateType,
    ConfigurationError,
  )
from motion_blinds_bridge.availability import AvailabilityError
from motion_blinds_bridge.config import Config, BridgeConfig, PlatformConfig
from motion_blinds_bridge.devices import OPERATION_OPEN, OPERATION_CLOSE, OPERATION_STOP

class CmdExitError(RuntimeError):
    exit_code: int

    def __init__(self, exit_code: int, msg: Optional[str]=None):
        if msg is None:
            msg = f"Command exited with return code {exit_code}"
        super().__init__(msg)
        self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
    pass

class NoExitArgumentParser(argparse.ArgumentParser):
    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise ArgparseExitError(status, message)

def print_json(data: Jsonable) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))
    sys.stdout.flush()

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    def get_bridge_config(self) -> BridgeConfig:
        """Builds the bridge configuration from --config, --bridge, --ip and --key. --ip and --key
           override the settings in the configuration file."""
        config_file: Optional[str] = self._args.config
        bridge_id: Optional[str] = self._args.bridge
        overrides: JsonableDict = {}
        if self._args.ip is not None:
            overrides['ip'] = self._args.ip
        if self._args.key is not None:
            overrides['key'] = self._args.key

        if config_file is None:
            if not bridge_id is None:
                raise ConfigurationError("--bridge requires --config")
            return BridgeConfig.from_json_data(overrides)

        base_cfg = Config.from_file(config_file)
        bridge_data: JsonableDict
        if 'bridges' in base_cfg.json_data:
            platform_cfg = PlatformConfig.from_section(base_cfg, base_cfg.json_data)
            if bridge_id is not None:
                bridge_data = platform_cfg.get_bridge(bridge_id).json_data
            elif len(platform_cfg.bridges) == 1:
                bridge_data = platform_cfg.bridges[0].json_data
            else:
                raise ConfigurationError(
                    f"{config_file} configures {len(platform_cfg.bridges)} bridges; select one with --bridge"
                  )
        else:
            bridge_data = base_cfg.json_data
        if len(overrides) > 0:
            bridge_data = dict(bridge_data)
            if 'key' in overrides:
                bridge_data.pop('key_cfg', None)
            bridge_data.update(overrides)
        return BridgeConfig.from_section(base_cfg, bridge_data)

    def create_bridge(self) -> MotionBridge:
        return MotionBridge.create(self.get_bridge_config())

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    async def cmd_monitor(self) -> int:
        def on_availability(available: bool, error: AvailabilityError) -> None:
            summary: JsonableDict = { "event": "availability", "available": available }
            if error is not None:
                summary["error"] = str(error)
            print_json(summary)

        def on_heartbeat(heartbeat: JsonableDict) -> None:
            print_json({ "event": "heartbeat", "heartbeat": heartbeat })

        def on_device_update(change: DeviceStateChange, tag: UpdateType) -> None:
            print_json({ "event": "device_update", "tag": tag.value, "change": change.to_jsonable() })

        bridge = self.create_bridge()
        bridge.on_availability_change(on_availability)
        bridge.client.on_heartbeat(on_heartbeat)
        bridge.on_device_update(on_device_update)

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for signal in (SIGINT, SIGTERM):
            loop.add_signal_handler(signal, stop.set)
        try:
            async with bridge:
                for device in await bridge.list_devices():
                    print_json({ "event": "device", "device": device.to_jsonable() })
                await stop.wait()
                logging.debug("cmd_monitor: Detected SIGINT/SIGTERM, closing bridge")
        finally:
            for signal in (SIGINT, SIGTERM):
                loop.remove_signal_handler(signal)
        return 0

    async def cmd_list(self) -> int:
        async with self.create_bridge() as bridge:
            devices = await bridge.list_devices()
        print_json([ d.to_jsonable() for d in devices ])
        return 0

    async def cmd_get(self) -> int:
        mac: str = self._args.mac
        async with self.create_bridge() as bridge:
            device = await bridge.get_device(mac)
        if device is None:
            raise CmdExitError(1, f"Device {mac} does not exist")
        print_json(device.to_jsonable())
        return 0

    async def cmd_set(self) -> int:
        mac: str = self._args.mac
        position: Optional[int] = self._args.position
        operation: Optional[str] = self._args.operation
        if position is None and operation is None:
            raise CmdExitError(1, "At least one of --position or --operation is required")
        async with self.create_bridge() as bridge:
            await bridge.update_device(mac, WriteState(operation=operation, position=position))
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    async def arun(self) -> int:
        """Run the motion-bridge command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(prog="motion-bridge", description="Monitor and control MOTION blinds through their bridge.")


        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.add_argument('-c', '--config', default=None,
                            help='''A JSON bridge configuration file, or a file with a "bridges" list.''')
        parser.add_argument('--bridge', default=None,
                            help='''The id or name of the bridge to use, if the configuration file has several.''')
        parser.add_argument('--ip', default=None,
                            help='''The IP address of the bridge. Overrides the configuration file.''')
        parser.add_argument('--key', default=None,
                            help='''The 16-character bridge key. Overrides the configuration file.''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')


        # ======================= monitor

        parser_monitor = subparsers.add_parser('monitor',
                                description="Print heartbeats, device updates and availability changes until interrupted")
        parser_monitor.set_defaults(func=self.cmd_monitor)

        # ======================= list

        parser_list = subparsers.add_parser('list', description="List the roller blinds behind the bridge")
        parser_list.set_defaults(func=self.cmd_list)

        # ======================= get

        parser_get = subparsers.add_parser('get', description="Read one device")
        parser_get.add_argument('mac', help='The mac address of the device')
        parser_get.set_defaults(func=self.cmd_get)

        # ======================= set

        parser_set = subparsers.add_parser('set', description="Move a device")
        parser_set.add_argument('mac', help='The mac address of the device')
        parser_set.add_argument('--position', type=int, default=None,
                            help='''The target position, 0 (closed) - 100 (open)''')
        parser_set.add_argument('--operation', default=None,
                            choices=[OPERATION_OPEN, OPERATION_CLOSE, OPERATION_STOP],
                            help='''The operation to perform''')
        parser_set.set_defaults(func=self.cmd_set)

        # ======================= version

        parser_version = subparsers.add_parser('version',
                                description='''Display version information.''')
        parser_version.set_defaults(func=self.cmd_version)

        # =========================================================

        try:
            args = parser.parse_args(self._argv)
        except ArgparseExitError as ex:
            return ex.exit_code
        traceback: bool = args.traceback
        self._provide_traceback = traceback

        try:
            logging.basicConfig(
                level=logging.getLevelName(args.log_level.upper()),
            )
            self._args = args
            func: Callable[[], Awaitable[int]] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = await func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
                print(f"motion-bridge: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"motion-bridge: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            rc = loop.run_until_complete(self.arun())
        finally:
            loop.close()
        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

async def arun(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = await CommandHandler(argv).arun()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

def main() -> None:
    sys.exit(run())

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    main()
