## SPDX-License-Identifier: GPL-3.0-only
##
## Memory-side simulation harness for the simple sequencing SDRAM controller
##
## Copyright (C) 2023 Luís Mendes <luis.p.mendes@gmail.com>
##
import logging
from enum import IntEnum
from typing import List, Optional

from amaranth.sim import Simulator

from sdram_controller import SimpleSDRAMController, Command, COMMAND_STROBES

logger = logging.getLogger(__name__)

#Amaranth signals cannot be tri-stated, so the bidirectional sdramDq is modelled as a single cell
#plus a tag telling who drives it in the current cycle.

class BusDriver(IntEnum):
   NoDriver = 0
   Controller = 1
   Device = 2

class BusContentionError(RuntimeError):
   def __init__(self, current : BusDriver, requester : BusDriver):
      super().__init__('Data bus contention: ' + current.name + ' is driving while ' + requester.name + ' tries to drive')
      self.current = current
      self.requester = requester

'''
SharedDataBus class
-------------------
Shared data bus with an explicit driver tag.

- drive() fails with BusContentionError if the other party already drives the bus.
- release() only has effect when called by the current driver.
- sample() returns the driven value, or floatingValue when nobody drives the bus.
'''
class SharedDataBus:
   def __init__(self, width = 16, floatingValue = 0):
      assert width > 0, 'Invalid bus width: ' + str(width)
      self.width = width
      self.mask = 2**width - 1
      self.floatingValue = floatingValue & self.mask
      self.driver = BusDriver.NoDriver
      self.value = self.floatingValue

   def drive(self, driver : BusDriver, value : int):
      if driver == BusDriver.NoDriver:
         raise ValueError('NoDriver cannot drive the bus')
      if self.driver != BusDriver.NoDriver and self.driver != driver:
         raise BusContentionError(self.driver, driver)
      if self.driver != driver:
         logger.debug('%s takes the data bus', driver.name)
      self.driver = driver
      self.value = value & self.mask

   def release(self, driver : BusDriver):
      if self.driver == driver:
         logger.debug('%s releases the data bus', driver.name)
         self.driver = BusDriver.NoDriver
         self.value = self.floatingValue

   def isDriven(self) -> bool:
      return self.driver != BusDriver.NoDriver

   def sample(self) -> int:
      if self.driver == BusDriver.NoDriver:
         return self.floatingValue
      return self.value


def decodeCommand(csn : int, rasn : int, casn : int, wen : int) -> Optional[Command]:
   strobes = (csn, rasn, casn, wen)
   #Write and PreCharge share the same strobe levels, the controller state tells them apart,
   #the bus side can only see a "write like" command.
   for cmd, levels in COMMAND_STROBES.items():
      if levels == strobes:
         return cmd
   if csn:
      return Command.DeviceDeSelect
   return None


'''
MemoryDevice class
------------------
Byte addressed storage array sitting on the other side of the data bus.

- 256 words of 16 bits, indexed by the low byte of the requested address.
- While the decoded command is Read, the device drives the stored word. The controller driving at the same time is contention.
- If the controller drives the bus during a Write like command, the driven word is stored.
- Otherwise the device leaves the bus undriven.
'''
class MemoryDevice:
   def __init__(self, depth = 256, width = 16, bus : Optional[SharedDataBus] = None):
      assert depth > 0 and (depth & (depth - 1)) == 0, 'Storage depth must be a power of two'
      self.depth = depth
      self.width = width
      self.storage : List[int] = [0] * depth
      self.bus = bus if bus is not None else SharedDataBus(width)

   def preload(self, index : int, value : int):
      if index < 0 or index >= self.depth:
         raise IndexError('Storage index out of range: ' + hex(index))
      if value < 0 or value >= 2**self.width:
         raise ValueError('Value does not fit in ' + str(self.width) + ' bits: ' + hex(value))
      self.storage[index] = value

   def storageIndex(self, address : int) -> int:
      return address & (self.depth - 1)

   def respond(self, cmd : Optional[Command], address : int, controllerDrives : bool, controllerValue : int) -> int:
      """Update the bus for the current cycle and return the value the controller sees."""
      index = self.storageIndex(address)
      deviceDrives = cmd == Command.Read

      #Parties that stop driving let go first, so that a turnaround between cycles is not seen as contention
      if not controllerDrives:
         self.bus.release(BusDriver.Controller)
      if not deviceDrives:
         self.bus.release(BusDriver.Device)

      if controllerDrives:
         self.bus.drive(BusDriver.Controller, controllerValue)
      if deviceDrives:
         self.bus.drive(BusDriver.Device, self.storage[index])
         logger.debug('Read storage[%s] = %s', hex(index), hex(self.storage[index]))
      elif cmd == Command.Write and controllerDrives:
         self.storage[index] = self.bus.sample()
         logger.debug('Write storage[%s] = %s', hex(index), hex(self.storage[index]))

      return self.bus.sample()

   def attach(self, sim : Simulator, controller : SimpleSDRAMController):
      """Register a simulator process that answers the controller combinationally."""
      watched = [controller.sdramCSn, controller.sdramRASn, controller.sdramCASn, controller.sdramWEn,
                 controller.address, controller.sdramDqOut, controller.sdramDqOE]

      #Processes cannot sample with ctx.get(), the values come from the trigger.
      #sdramDqIn starts at 0, which already matches the undriven bus.
      async def process(ctx):
         async for csn, rasn, casn, wen, address, dqOut, dqOE in ctx.changed(*watched):
            cmd = decodeCommand(csn, rasn, casn, wen)
            ctx.set(controller.sdramDqIn, self.respond(cmd, address, bool(dqOE), dqOut))

      sim.add_process(process)
