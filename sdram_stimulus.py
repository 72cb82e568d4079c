## SPDX-License-Identifier: GPL-3.0-only
##
## Scripted stimulus for the simple sequencing SDRAM controller
##
## Copyright (C) 2023 Luís Mendes <luis.p.mendes@gmail.com>
##
import os
import logging
from collections import namedtuple
from enum import IntEnum
from typing import List, Optional, Tuple

from amaranth import Module, ClockDomain
from amaranth.sim import Simulator

from sdram_controller import SimpleSDRAMController, SDRAMControllerStates
from sdram_harness import MemoryDevice

logger = logging.getLogger(__name__)

class SimulationTypeEnum(IntEnum):
   Refresh = 0
   Write = 1
   Read = 2
   WriteRead = 3

SimulationReport = namedtuple('SimulationReport', ['states', 'refreshCycles', 'dataOut'])

def buildTop(systemClockFrequency = 100e6) -> Tuple[Module, SimpleSDRAMController]:
   m = Module()
   m.domains.clkSDRAM = ClockDomain('clkSDRAM')
   m.submodules.sdramController = sdramController = SimpleSDRAMController(systemClockFrequency=systemClockFrequency,
                                                                          domain='clkSDRAM')
   return m, sdramController

async def tick(ctx, controller : SimpleSDRAMController, trace : Optional[List[SDRAMControllerStates]] = None):
   await ctx.tick(controller.domain)
   if trace is not None:
      trace.append(SDRAMControllerStates(ctx.get(controller.state)))

async def pulseReset(ctx, controller : SimpleSDRAMController, cycles = 1):
   ctx.set(controller.reset, 1)
   for _ in range(cycles):
      await ctx.tick(controller.domain)
   ctx.set(controller.reset, 0)

async def waitUntilIdle(ctx, controller : SimpleSDRAMController, maxCycles = 16, trace = None) -> int:
   cycles = 0
   while ctx.get(controller.busy):
      if cycles >= maxCycles:
         raise TimeoutError('Controller still busy after ' + str(maxCycles) + ' cycles')
      await tick(ctx, controller, trace)
      cycles += 1
   return cycles

async def waitForState(ctx, controller : SimpleSDRAMController, state : SDRAMControllerStates, maxCycles = 16, trace = None):
   #Requests are level sensitive, a pending refresh may delay acceptance by a couple of cycles
   for _ in range(maxCycles):
      await tick(ctx, controller, trace)
      if ctx.get(controller.state) == state:
         return
   raise TimeoutError('Controller did not reach ' + state.name + ' after ' + str(maxCycles) + ' cycles')

async def issueWrite(ctx, controller : SimpleSDRAMController, address : int, data = 0, trace = None):
   await waitUntilIdle(ctx, controller, trace=trace)
   ctx.set(controller.address, address)
   ctx.set(controller.dataIn, data)
   ctx.set(controller.writeRequest, 1)
   await waitForState(ctx, controller, SDRAMControllerStates.Write, trace=trace)
   ctx.set(controller.writeRequest, 0)
   logger.debug('Write issued at address %s', hex(address))
   await waitUntilIdle(ctx, controller, trace=trace)

async def issueRead(ctx, controller : SimpleSDRAMController, address : int, trace = None) -> int:
   await waitUntilIdle(ctx, controller, trace=trace)
   ctx.set(controller.address, address)
   ctx.set(controller.readRequest, 1)
   await waitForState(ctx, controller, SDRAMControllerStates.Read, trace=trace)
   ctx.set(controller.readRequest, 0)
   data = ctx.get(controller.dataOut)
   logger.debug('Read issued at address %s, data %s', hex(address), hex(data))
   await waitUntilIdle(ctx, controller, trace=trace)
   return data

def runSimulation(simulationType : SimulationTypeEnum, address = 0x123456, cycles = 1024, vcdFile = None,
                  systemClockFrequency = 100e6, preloadValue = 0xBEEF) -> SimulationReport:
   m, sdramController = buildTop(systemClockFrequency)

   device = MemoryDevice()
   device.preload(device.storageIndex(address), preloadValue)

   sim = Simulator(m)
   sim.add_clock(1.0/systemClockFrequency, domain=sdramController.domain)
   device.attach(sim, sdramController)

   trace = []
   results = {}

   async def testbench(ctx):
      await pulseReset(ctx, sdramController)
      if simulationType == SimulationTypeEnum.Refresh:
         for _ in range(cycles):
            await tick(ctx, sdramController, trace)
      elif simulationType == SimulationTypeEnum.Write:
         await issueWrite(ctx, sdramController, address, trace=trace)
      elif simulationType == SimulationTypeEnum.Read:
         results['dataOut'] = await issueRead(ctx, sdramController, address, trace=trace)
      elif simulationType == SimulationTypeEnum.WriteRead:
         await issueWrite(ctx, sdramController, address, trace=trace)
         results['dataOut'] = await issueRead(ctx, sdramController, address, trace=trace)

   sim.add_testbench(testbench)

   if vcdFile is not None:
      gtkwFile = os.path.splitext(vcdFile)[0] + '.gtkw'
      with sim.write_vcd(vcdFile, gtkwFile, traces=sdramController.debugTraces()):
         sim.run()
   else:
      sim.run()

   report = SimulationReport(states=trace,
                             refreshCycles=trace.count(SDRAMControllerStates.Refresh),
                             dataOut=results.get('dataOut'))
   logger.info('%s simulation: %d cycles, %d refresh cycles', simulationType.name, len(trace), report.refreshCycles)
   return report
