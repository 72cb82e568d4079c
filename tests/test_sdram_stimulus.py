# amaranth: UnusedElaboratable=no

# SPDX-License-Identifier: GPL-3.0-only

import pytest

from sdram_controller import SDRAMControllerStates, parseSimulateArguments
from sdram_stimulus import SimulationTypeEnum, runSimulation


def test_refresh_simulation():
    report = runSimulation(SimulationTypeEnum.Refresh, cycles=512)
    assert len(report.states) == 512
    assert report.refreshCycles == 2
    assert report.dataOut is None
    assert report.states[255] == SDRAMControllerStates.Refresh
    assert report.states[511] == SDRAMControllerStates.Refresh


def test_write_simulation():
    report = runSimulation(SimulationTypeEnum.Write)
    assert report.states == [SDRAMControllerStates.Write, SDRAMControllerStates.PreCharge, SDRAMControllerStates.Idle]
    assert report.dataOut is None


def test_read_simulation():
    report = runSimulation(SimulationTypeEnum.Read, address=0x0042, preloadValue=0xCAFE)
    assert report.states == [SDRAMControllerStates.Read, SDRAMControllerStates.PreCharge, SDRAMControllerStates.Idle]
    assert report.dataOut == 0xCAFE


def test_write_read_simulation():
    report = runSimulation(SimulationTypeEnum.WriteRead, address=0x123456)
    assert report.dataOut == 0xBEEF
    assert report.refreshCycles == 0
    assert len(report.states) == 6


def test_simulation_writes_vcd(tmp_path):
    vcdFile = tmp_path / "writeread.vcd"
    runSimulation(SimulationTypeEnum.WriteRead, vcdFile=str(vcdFile))
    assert vcdFile.exists()
    assert (tmp_path / "writeread.gtkw").exists()


def test_parse_simulate_arguments():
    assert parseSimulateArguments('writeread,address=0x56,cycles=10,vcd=out.vcd') == \
        (SimulationTypeEnum.WriteRead, 0x56, 10, 'out.vcd')
    assert parseSimulateArguments('read') == (SimulationTypeEnum.Read, 0x123456, 1024, None)
    assert parseSimulateArguments('refresh, cycles=300')[2] == 300


@pytest.mark.parametrize("arguments", ["burst", "address=zz", "cycles=0", "cycles=abc"])
def test_parse_simulate_arguments_rejects_bad_options(arguments):
    with pytest.raises(ValueError):
        parseSimulateArguments(arguments)
