# SPDX-License-Identifier: GPL-3.0-only

import pytest

from sdram_controller import Command
from sdram_harness import BusDriver, BusContentionError, SharedDataBus, MemoryDevice, decodeCommand


def test_undriven_bus_floats():
    bus = SharedDataBus(floatingValue=0xFFFF)
    assert not bus.isDriven()
    assert bus.sample() == 0xFFFF


def test_drive_and_release():
    bus = SharedDataBus()
    bus.drive(BusDriver.Device, 0x1BEEF)
    assert bus.driver == BusDriver.Device
    assert bus.sample() == 0xBEEF

    # Only the current driver can release the bus
    bus.release(BusDriver.Controller)
    assert bus.driver == BusDriver.Device

    bus.release(BusDriver.Device)
    assert not bus.isDriven()
    assert bus.sample() == 0


def test_contention_is_a_fault():
    bus = SharedDataBus()
    bus.drive(BusDriver.Device, 0x1234)
    with pytest.raises(BusContentionError) as excinfo:
        bus.drive(BusDriver.Controller, 0x5678)
    assert excinfo.value.current == BusDriver.Device
    assert excinfo.value.requester == BusDriver.Controller
    assert bus.sample() == 0x1234


def test_decode_command():
    assert decodeCommand(1, 1, 1, 1) == Command.DeviceDeSelect
    assert decodeCommand(1, 0, 0, 0) == Command.DeviceDeSelect
    assert decodeCommand(0, 0, 1, 1) == Command.Read
    assert decodeCommand(0, 0, 1, 0) == Command.Write
    assert decodeCommand(0, 0, 0, 1) == Command.AutoRefresh
    assert decodeCommand(0, 1, 1, 1) is None


def test_preload_checks_range():
    device = MemoryDevice()
    device.preload(0xFF, 0xFFFF)
    assert device.storage[0xFF] == 0xFFFF
    with pytest.raises(IndexError):
        device.preload(0x100, 0)
    with pytest.raises(ValueError):
        device.preload(0, 0x10000)


def test_device_answers_read_with_low_address_byte():
    device = MemoryDevice()
    device.preload(0x56, 0xBEEF)
    assert device.respond(Command.Read, 0x123456, False, 0) == 0xBEEF
    assert device.bus.driver == BusDriver.Device

    # Bus is released as soon as the command changes
    assert device.respond(Command.Write, 0x123456, False, 0) == 0
    assert not device.bus.isDriven()


def test_device_stores_driven_write():
    device = MemoryDevice()
    device.preload(0x10, 0x1111)
    assert device.respond(Command.Write, 0xAB10, True, 0x2222) == 0x2222
    assert device.bus.driver == BusDriver.Controller
    assert device.storage[0x10] == 0x2222


def test_read_while_controller_drives_is_contention():
    device = MemoryDevice()
    device.preload(0x10, 0x1111)
    with pytest.raises(BusContentionError):
        device.respond(Command.Read, 0x10, True, 0x3333)


def test_nodriver_cannot_drive():
    bus = SharedDataBus()
    with pytest.raises(ValueError):
        bus.drive(BusDriver.NoDriver, 0x1234)
    assert not bus.isDriven()


def test_turnaround_between_cycles():
    device = MemoryDevice()
    device.respond(Command.Read, 0x10, False, 0)
    assert device.bus.driver == BusDriver.Device
    device.respond(Command.Write, 0x10, True, 0x4444)
    assert device.bus.driver == BusDriver.Controller
    device.respond(Command.Read, 0x10, False, 0)
    assert device.bus.driver == BusDriver.Device
