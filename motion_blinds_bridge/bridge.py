#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
MotionBridge -- the domain view of one MOTION bridge.

Wraps a MotionClient, turns raw device records into MotionDevice objects, keeps a cache of
the devices it has seen, and publishes device updates tagged with where they came from:

  REPORT  pushed by the bridge
  POLL    fetched by the periodic poll
  FORCE   fetched by refresh_devices()
"""

from __future__ import annotations

import asyncio

from .internal_types import *
from .pkg_logging import logger
from .constants import DEFAULT_POLL_INTERVAL, MIN_POLL_INTERVAL, DEVICE_TYPE_BLIND
from .exceptions import MotionError
from .api import RawDeviceRecord
from .availability import AvailabilityHandler
from .client import MotionClient
from .config import BridgeConfig
from .devices import (
    MotionDevice,
    WriteState,
    DeviceStateChange,
    DeviceUpdateHandler,
    UpdateType,
    OPERATION_OPEN,
    OPERATION_CLOSE,
    is_roller_blind,
    to_device,
    to_state,
    to_state_change,
    to_device_update,
  )
from .events import Detachable, HandlerList
from .scheduler import Scheduler

def effective_poll_interval(poll_interval: Optional[float]) -> float:
    """The poll interval actually used: DEFAULT_POLL_INTERVAL if unset, never less than MIN_POLL_INTERVAL."""
    return max(MIN_POLL_INTERVAL, poll_interval or DEFAULT_POLL_INTERVAL)

class MotionBridge:
    """
    Usage:
        bridge = MotionBridge.create(BridgeConfig.from_file("~/.motion-bridge.json"))
        bridge.on_device_update(lambda change, tag: print(tag.value, change))
        await bridge.start()
        ...
        await bridge.close()
    """

    config: BridgeConfig
    client: MotionClient

    _devices: Dict[str, MotionDevice]
    """Devices seen so far, by mac. Only changed after a successful response from the bridge."""

    _device_update_handlers: HandlerList
    _client_subscriptions: List[Detachable]
    _scheduler: Scheduler
    _poll_task: Optional[asyncio.Task[Any]] = None
    _closed: bool = False

    @classmethod
    def create(cls, config: BridgeConfig) -> MotionBridge:
        client = MotionClient(
            ip=config.ip,
            key=config.key,
            name=config.name,
            multicast_interface=config.multicast_interface,
          )
        return cls(config, client)

    def __init__(self, config: BridgeConfig, client: MotionClient):
        self.config = config
        self.client = client
        self._devices = {}
        self._device_update_handlers = HandlerList("device update")
        self._client_subscriptions = []
        self._scheduler = Scheduler(f"MotionBridge[{config.name}]")

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def ip(self) -> str:
        return self.config.ip

    @property
    def available(self) -> bool:
        return self.client.availability.available

    @property
    def devices(self) -> List[MotionDevice]:
        """A snapshot of the device cache."""
        return list(self._devices.values())

    @property
    def poll_interval(self) -> float:
        return effective_poll_interval(self.config.poll_interval)

    async def start(self) -> None:
        self._client_subscriptions.append(self.client.on_error(self._on_client_error))
        self._client_subscriptions.append(self.client.on_report(self._on_report))
        await self.client.start()
        logger.debug(f"Bridge client started [{self.ip}], name [{self.name}]")
        self._poll_task = self._scheduler.create_task(self._poll_loop(), name="poll")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info(f"Closing bridge [{self.name}]")
        await self._scheduler.aclose()
        self._poll_task = None
        for subscription in self._client_subscriptions:
            subscription.detach()
        self._client_subscriptions.clear()
        await self.client.close()
        self._device_update_handlers.clear()

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.close()
        return False

    def on_availability_change(self, handler: AvailabilityHandler) -> Detachable:
        return self.client.on_availability_change(handler)

    def on_device_update(self, handler: DeviceUpdateHandler) -> Detachable:
        """handler(change: DeviceStateChange, tag: UpdateType) is called for every device update."""
        return self._device_update_handlers.add(handler)

    def _to_device(self, record: RawDeviceRecord) -> MotionDevice:
        mac = str(record.get('mac'))
        return to_device(record, name=self.config.device_config(mac).name)

    def _cache(self, device: MotionDevice) -> MotionDevice:
        self._devices[device.id] = device
        return device

    async def list_devices(self) -> List[MotionDevice]:
        """Reads every roller blind behind the bridge. Other blind types are left out."""
        records = await self.client.get_all_devices()
        return [ self._cache(self._to_device(r)) for r in records if is_roller_blind(r) ]

    async def get_device(self, id: str) -> Optional[MotionDevice]:
        """Reads one device. Returns None if the bridge does not know it or it is not a roller blind."""
        record = await self.client.get_device(id, DEVICE_TYPE_BLIND)
        if record is None or not is_roller_blind(record):
            return None
        return self._cache(self._to_device(record))

    async def update_device(self, id: str, write_state: WriteState) -> None:
        if self.config.device_config(id).invert_open_close and write_state.operation in (OPERATION_OPEN, OPERATION_CLOSE):
            write_state = WriteState(
                operation=OPERATION_CLOSE if write_state.operation == OPERATION_OPEN else OPERATION_OPEN,
                position=write_state.position,
              )
        ack = await self.client.update_device(id, DEVICE_TYPE_BLIND, to_device_update(write_state))
        device = self._devices.get(id)
        if ack is not None and device is not None:
            device.state = to_state(ack)

    async def identify_device(self, id: str) -> None:
        # MOTION bridges cannot identify a device
        logger.debug(f"identify_device({id}) is not supported by bridge [{self.name}]")

    async def request_device_update(self, id: str) -> None:
        """Asks a device to report its state. The answer arrives as a REPORT update."""
        await self.client.request_update(id, DEVICE_TYPE_BLIND)

    async def refresh_devices(self) -> List[MotionDevice]:
        """Reads every device and publishes each one as a FORCE update."""
        devices = await self.list_devices()
        self._publish(devices, UpdateType.FORCE)
        return devices

    def forget_device(self, id: str) -> bool:
        """Drops a device from the cache. Returns False if it was not cached."""
        return self._devices.pop(id, None) is not None

    def _publish(self, devices: List[MotionDevice], tag: UpdateType) -> None:
        for device in devices:
            self._device_update_handlers.notify(DeviceStateChange(device.id, device.state.copy()), tag)

    async def _poll_loop(self) -> None:
        interval = self.poll_interval
        logger.debug(f"Polling bridge [{self.name}] every {interval:g}s")
        while not self._closed:
            await asyncio.sleep(interval)
            await self._poll()

    async def _poll(self) -> None:
        try:
            devices = await self.list_devices()
        except MotionError as e:
            logger.warning(f"Failed to poll bridge [{self.name}]: {e}")
            return
        except Exception as e:
            logger.warning(f"Failed to poll bridge [{self.name}]: unexpected {type(e).__name__}: {e}")
            return
        self._publish(devices, UpdateType.POLL)

    def _on_report(self, record: RawDeviceRecord) -> None:
        if not is_roller_blind(record):
            logger.debug(f"Ignoring report for unsupported device {record.get('mac')}")
            return
        change = to_state_change(record)
        device = self._devices.get(change.device_id)
        if device is not None:
            device.state = change.state.copy()
        self._device_update_handlers.notify(change, UpdateType.REPORT)

    def _on_client_error(self, error: MotionError) -> None:
        logger.error(f"Bridge [{self.name}] encountered an error. {error}")

    def __str__(self) -> str:
        return f"MotionBridge({self.name}, ip={self.ip}, devices={len(self._devices)})"

    def __repr__(self) -> str:
        return str(self)
