## SPDX-License-Identifier: GPL-3.0-only
##
## Simple sequencing SDRAM controller
##
## Copyright (C) 2023 Luís Mendes <luis.p.mendes@gmail.com>
##
import sys
import logging
import numpy as np
from typing import List
from enum import IntEnum

from amaranth import Elaboratable, Module, Signal, Mux, ClockDomain, unsigned
from amaranth.build import Platform
from amaranth.cli import main_parser, main_runner

## This controller sequences single word Reads and Writes, plus a periodic AutoRefresh.
## It has no burst support, no configurable CAS/RAS latency, no bank interleaving and no operation scheduler.
## Every transaction is Idle -> Read/Write -> PreCharge -> Idle, three controller cycles in total.
##
## Known limitations, kept on purpose:
## - Only address bits [14:0] are used (13 bits row/column, 2 bits bank), higher bits are silently dropped.
## - dataIn is not routed to the data bus, so the controller never drives sdramDq (sdramDqOE is always 0).
## - Read data is sampled in the same cycle as the Read command, there is no CAS latency modelling.
## - A request raised while busy is not rejected, callers must wait for busy to fall.
## - Refresh is only taken when the counter reaches 255 while Idle, a transaction spanning that count skips the refresh until the next wrap.

class SDRAMControllerStates(IntEnum):
   Idle = 0
   Active = 1 #Declared, but no transition leads here
   Read = 2
   Write = 3
   PreCharge = 4
   Refresh = 5

class Command(IntEnum):
   DeviceDeSelect = 0
   Write = 1
   Read = 2
   PreCharge = 3
   AutoRefresh = 4

#Strobe levels (CSn, RASn, CASn, WEn) for each command, all active low
COMMAND_STROBES = {
   Command.DeviceDeSelect : (1, 1, 1, 1),
   Command.Write          : (0, 0, 1, 0),
   Command.Read           : (0, 0, 1, 1),
   Command.PreCharge      : (0, 0, 1, 0),
   Command.AutoRefresh    : (0, 0, 0, 1),
}

#Command issued while the FSM sits in each state
STATE_COMMANDS = {
   SDRAMControllerStates.Idle      : Command.DeviceDeSelect,
   SDRAMControllerStates.Active    : Command.DeviceDeSelect,
   SDRAMControllerStates.Read      : Command.Read,
   SDRAMControllerStates.Write     : Command.Write,
   SDRAMControllerStates.PreCharge : Command.PreCharge,
   SDRAMControllerStates.Refresh   : Command.AutoRefresh,
}

'''
SimpleSDRAMController class
---------------------------
Implements the HDL for a small sequencing SDRAM controller.

- The combinational half (deriveOutputs) computes strobes, busy, address/bank/data routing and the next state
  from the registered state and the current inputs. It is re-evaluated every cycle, not only on state changes.
- The synchronous half (advance) registers the next state, toggles the divided SDRAM clock, advances the
  refresh counter and updates the holding registers that keep sdramAddress, sdramBank and dataOut stable
  outside of the Read/Write states.
- While Idle, a refresh counter wrap has priority over a Write request, which has priority over a Read request.
- Unknown state encodings behave exactly like Idle.
'''
class SimpleSDRAMController(Elaboratable):
   def __init__(self, systemClockFrequency = 100e6, domain = 'clkSDRAM'):
      self.systemClockFrequency = systemClockFrequency
      self.domain = domain

      self.requestAddressWidth  = 24
      self.sdramAddressWidth    = 13
      self.sdramBanks           = 4
      self.sdramBankWidth       = int(np.log2(self.sdramBanks))
      self.sdramDataWidth       = 16
      self.refreshCounterWidth  = 8
      self.refreshCounterMax    = 2**self.refreshCounterWidth - 1

      assert isinstance(domain, str) and len(domain) > 0, 'Invalid clock domain name: ' + repr(domain)
      assert 2**self.sdramBankWidth == self.sdramBanks, 'Number of banks must be a power of two'
      assert self.sdramAddressWidth + self.sdramBankWidth <= self.requestAddressWidth, 'Request address too narrow for row/column and bank bits'
      assert systemClockFrequency > 0, 'System clock frequency must be positive'

      #Refresh interval, only used for reporting
      self.refreshIntervalCycles = self.refreshCounterMax + 1
      self.refreshIntervalNs     = float(np.round(self.refreshIntervalCycles / systemClockFrequency * 1e9, 3))
      #
      #Requester interface
      self.reset        = Signal()                                       #Synchronous reset, sampled at the clock edge
      self.address      = Signal(unsigned(self.requestAddressWidth))     #Requested address
      self.dataIn       = Signal(unsigned(self.sdramDataWidth))          #Write data (not routed, see notes above)
      self.writeRequest = Signal()                                       #Level sensitive, sampled while Idle
      self.readRequest  = Signal()                                       #Level sensitive, sampled while Idle
      self.dataOut      = Signal(unsigned(self.sdramDataWidth))          #Last word sampled from the bus during a Read
      self.busy         = Signal()                                       #High in every state except Idle
      #
      #SDRAM memory signals
      self.sdramClk     = Signal()
      self.sdramCSn     = Signal(init = 1)
      self.sdramRASn    = Signal(init = 1)
      self.sdramCASn    = Signal(init = 1)
      self.sdramWEn     = Signal(init = 1)
      self.sdramAddress = Signal(unsigned(self.sdramAddressWidth))
      self.sdramBank    = Signal(unsigned(self.sdramBankWidth))
      self.sdramDqIn    = Signal(unsigned(self.sdramDataWidth))          #Sample of the shared data bus
      self.sdramDqOut   = Signal(unsigned(self.sdramDataWidth))
      self.sdramDqOE    = Signal()                                       #Controller drives the shared data bus
      #
      #Internal signals
      self.state          = Signal(SDRAMControllerStates)
      self.nextState      = Signal(SDRAMControllerStates)
      self.refreshCounter = Signal(unsigned(self.refreshCounterWidth))
      self.refreshDue     = Signal()
      self.command        = Signal(Command)

      #Holding registers, these keep the outputs stable outside of Read/Write
      self.heldAddress = Signal(unsigned(self.sdramAddressWidth))
      self.heldBank    = Signal(unsigned(self.sdramBankWidth))
      self.heldDataOut = Signal(unsigned(self.sdramDataWidth))

   def printVerilogHeader(self):
      print('// SPDX-License-Identifier: GPL-3.0-only');
      print('/*');
      print(' * Simple sequencing SDRAM controller');
      print(' *');
      print(' * Copyright (C) 2023 Luís Mendes <luis.p.mendes@gmail.com>');
      print(' */');

      print('/* System clock frequency                       - Hz  : ' + str(self.systemClockFrequency) + ' */')
      print('/* Refresh interval cycles                      - REF : ' + str(self.refreshIntervalCycles) + ' */')
      print('/* Refresh interval                             - ns  : ' + str(self.refreshIntervalNs) + ' */')
      print('/* Row/Column address width                           : ' + str(self.sdramAddressWidth) + ' */')
      print('/* Bank address width                                 : ' + str(self.sdramBankWidth) + ' */')
      print('/* Data width                                         : ' + str(self.sdramDataWidth) + ' */')

   '''
   # applySDRAMCommand
   # -----------------
   # Maps a command into its (active low) strobe levels. Assignments are combinational, so any
   # state that does not apply a command leaves the strobes at their inactive level.
   '''
   def applySDRAMCommand(self, m : Module, cmd : Command):
      csn, rasn, casn, wen = COMMAND_STROBES[cmd]
      m.d.comb += self.command.eq(cmd)
      m.d.comb += self.sdramCSn.eq(csn)
      m.d.comb += self.sdramRASn.eq(rasn)
      m.d.comb += self.sdramCASn.eq(casn)
      m.d.comb += self.sdramWEn.eq(wen)

   def driveRowColumnAndBank(self, m : Module):
      bankAddressBitOffset = self.sdramAddressWidth
      m.d.comb += self.sdramAddress.eq(self.address[0 : bankAddressBitOffset])
      m.d.comb += self.sdramBank.eq(self.address[bankAddressBitOffset : bankAddressBitOffset + self.sdramBankWidth])

   def deriveOutputs(self, m : Module):
      #Defaults, overriden below by the Read/Write states
      m.d.comb += self.sdramAddress.eq(self.heldAddress)
      m.d.comb += self.sdramBank.eq(self.heldBank)
      m.d.comb += self.dataOut.eq(self.heldDataOut)

      #dataIn is not wired, the controller never takes the bus
      m.d.comb += self.sdramDqOut.eq(0)
      m.d.comb += self.sdramDqOE.eq(0)

      m.d.comb += self.refreshDue.eq(self.refreshCounter == self.refreshCounterMax)

      with m.Switch(self.state):
         with m.Case(SDRAMControllerStates.Active):
            self.applySDRAMCommand(m, STATE_COMMANDS[SDRAMControllerStates.Active])
            m.d.comb += self.busy.eq(1)
            m.d.comb += self.nextState.eq(SDRAMControllerStates.Idle)
         with m.Case(SDRAMControllerStates.Write):
            self.applySDRAMCommand(m, STATE_COMMANDS[SDRAMControllerStates.Write])
            self.driveRowColumnAndBank(m)
            m.d.comb += self.busy.eq(1)
            m.d.comb += self.nextState.eq(SDRAMControllerStates.PreCharge)
         with m.Case(SDRAMControllerStates.Read):
            self.applySDRAMCommand(m, STATE_COMMANDS[SDRAMControllerStates.Read])
            self.driveRowColumnAndBank(m)
            #Data is captured in the same cycle the Read command is issued
            m.d.comb += self.dataOut.eq(self.sdramDqIn)
            m.d.comb += self.busy.eq(1)
            m.d.comb += self.nextState.eq(SDRAMControllerStates.PreCharge)
         with m.Case(SDRAMControllerStates.PreCharge):
            self.applySDRAMCommand(m, STATE_COMMANDS[SDRAMControllerStates.PreCharge])
            m.d.comb += self.busy.eq(1)
            m.d.comb += self.nextState.eq(SDRAMControllerStates.Idle)
         with m.Case(SDRAMControllerStates.Refresh):
            self.applySDRAMCommand(m, STATE_COMMANDS[SDRAMControllerStates.Refresh])
            m.d.comb += self.busy.eq(1)
            m.d.comb += self.nextState.eq(SDRAMControllerStates.Idle)
         #Idle, and any encoding that is not a declared state
         with m.Default():
            self.applySDRAMCommand(m, STATE_COMMANDS[SDRAMControllerStates.Idle])
            m.d.comb += self.busy.eq(0)
            with m.If(self.refreshDue):
               m.d.comb += self.nextState.eq(SDRAMControllerStates.Refresh)
            with m.Elif(self.writeRequest):
               m.d.comb += self.nextState.eq(SDRAMControllerStates.Write)
            with m.Elif(self.readRequest):
               m.d.comb += self.nextState.eq(SDRAMControllerStates.Read)
            with m.Else():
               m.d.comb += self.nextState.eq(SDRAMControllerStates.Idle)

   def advance(self, m : Module):
      sync = m.d[self.domain]

      with m.If(self.reset):
         sync += self.state.eq(SDRAMControllerStates.Idle)
         sync += self.refreshCounter.eq(0)
         sync += self.sdramClk.eq(0)
         sync += self.heldAddress.eq(0)
         sync += self.heldBank.eq(0)
         sync += self.heldDataOut.eq(0)
      with m.Else():
         sync += self.state.eq(self.nextState)
         sync += self.sdramClk.eq(~self.sdramClk)
         sync += self.refreshCounter.eq(Mux(self.refreshCounter == self.refreshCounterMax, 0, self.refreshCounter + 1))
         sync += self.heldAddress.eq(self.sdramAddress)
         sync += self.heldBank.eq(self.sdramBank)
         sync += self.heldDataOut.eq(self.dataOut)

   def elaborate(self, platform : Platform):
      m = Module()

      self.deriveOutputs(m)
      self.advance(m)

      return m

   def ports(self) -> List[Signal]:
        ports = [
                 self.reset,
                 self.address,
                 self.dataIn,
                 self.writeRequest,
                 self.readRequest,
                 self.dataOut,
                 self.busy,
                 self.sdramClk,
                 self.sdramCSn,
                 self.sdramRASn,
                 self.sdramCASn,
                 self.sdramWEn,
                 self.sdramAddress,
                 self.sdramBank,
                 self.sdramDqIn,
                 self.sdramDqOut,
                 self.sdramDqOE
               ]

        return ports

   def debugTraces(self) -> List[Signal]:
        return self.ports() + [self.state, self.nextState, self.refreshCounter, self.command]


def printSimulateArgumentHelp():
    print('Simulation arguments help table')
    print('')
    print('When more than one simulation argument, use \',\' (comma) as an option separator')
    print('')
    print('--simulate <simulationType>')
    print('   <simulationType> can be either Refresh, Write, Read or WriteRead')
    print('--simulate address=<address>, where address is a decimal or 0x prefixed hexadecimal number')
    print('--simulate cycles=<cycles>, number of idle cycles to run for the Refresh simulation')
    print('--simulate vcd=<file>, dump the waveforms to <file> (and a .gtkw next to it)')


def parseSimulateArguments(inputArgs : str):
    from sdram_stimulus import SimulationTypeEnum

    simulationType = SimulationTypeEnum.Refresh
    address = 0x123456
    cycles = 1024
    vcdFile = None

    optionsSplitted = inputArgs.split(',')
    for option in optionsSplitted:
       option = option.strip()
       if option == 'read':
          simulationType = SimulationTypeEnum.Read
       elif option == 'write':
          simulationType = SimulationTypeEnum.Write
       elif option == 'writeread':
          simulationType = SimulationTypeEnum.WriteRead
       elif option == 'refresh':
          simulationType = SimulationTypeEnum.Refresh
       elif option.startswith('address='):
          try:
             address = int(option[len('address='):], 0)
          except ValueError:
             raise ValueError('Invalid address specified (expecting a decimal or 0x prefixed number)')
       elif option.startswith('cycles='):
          try:
             cycles = int(option[len('cycles='):])
          except ValueError:
             raise ValueError('Invalid number of cycles specified (expecting a positive integer)')
          if cycles < 1:
             raise ValueError('Invalid number of cycles specified (expecting a positive integer)')
       elif option.startswith('vcd='):
          vcdFile = option[len('vcd='):]
       else:
          raise ValueError('Unknown option: ' + option)

    return simulationType, address, cycles, vcdFile


def main():
    parser = main_parser()
    parser.add_argument("--simulate")
    parser.add_argument("--frequency", type=float, default=100e6)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')

    if args.simulate is not None:
        from sdram_stimulus import runSimulation

        inputArgs = str.lower(args.simulate.strip())
        if inputArgs.startswith('help'):
            printSimulateArgumentHelp()
            sys.exit()
        try:
            simulationType, address, cycles, vcdFile = parseSimulateArguments(inputArgs)
        except ValueError as e:
            print(str(e))
            print()
            printSimulateArgumentHelp()
            sys.exit(1)

        print('Starting simulation with parameters:')
        print('Simulation type: ' + str(simulationType))
        print('Address: ' + hex(address))

        report = runSimulation(simulationType, address=address, cycles=cycles, vcdFile=vcdFile,
                               systemClockFrequency=args.frequency)
        print('States visited: ' + ' -> '.join(state.name for state in report.states))
        print('Refresh cycles: ' + str(report.refreshCycles))
        if report.dataOut is not None:
            print('Data read: ' + hex(report.dataOut))
    else:
        #Generate with:
        #python3 sdram_controller.py generate -t v > sdram_controller.v
        m = Module()
        m.domains.clkSDRAM = clkDom = ClockDomain('clkSDRAM')
        m.submodules.sdramController = sdramController = SimpleSDRAMController(systemClockFrequency=args.frequency)
        if args.action == 'generate':
            sdramController.printVerilogHeader()
        main_runner(parser, args, m, ports=sdramController.ports() + [clkDom.clk, clkDom.rst])


if __name__ == "__main__":
    main()
