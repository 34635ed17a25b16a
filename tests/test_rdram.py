import pytest

from eebus.memmap import BusError
from eebus.rdram import MCH_DRD, MCH_RICM, Rdram, RdramChip

SRD = 0b0000
SWR = 0b0001
SETR = 0b0010
SETF = 0b0100
CLRR = 0b1011

INIT = 0x021
DEVID = 0x040
NAPX = 0x045


def command(sop, reg=0, sdevid=0, broadcast=False):
    word = (reg << 16) | (sop << 6) | (sdevid & 0x1F) | (((sdevid >> 5) & 1) << 10)
    if broadcast:
        word |= 1 << 5
    return word


def swr(rdram, reg, value, sdevid=0, broadcast=False):
    rdram.write(MCH_DRD, value)
    rdram.write(MCH_RICM, command(SWR, reg, sdevid, broadcast))


def srd(rdram, reg, sdevid=0):
    rdram.write(MCH_RICM, command(SRD, reg, sdevid))
    return rdram.read(MCH_DRD)


def test_registers_start_at_zero():
    rdram = Rdram()
    assert rdram.read(MCH_RICM) == 0
    assert rdram.read(MCH_DRD) == 0
    assert all(chip == RdramChip() for chip in rdram.chips)


def test_drd_write_leaves_busy_bit_set():
    rdram = Rdram()
    rdram.write(MCH_DRD, 0x1234)
    assert rdram.read(MCH_DRD) == 0x1234
    assert rdram.read(MCH_RICM) == 1 << 31


@pytest.mark.parametrize("sop", [SETF, CLRR, 0b1110])
def test_ignored_commands_clear_busy_bit(sop):
    rdram = Rdram()
    word = command(sop, reg=INIT)
    rdram.write(MCH_RICM, word)
    assert rdram.read(MCH_RICM) == word


def test_broadcast_devid_round_trip():
    rdram = Rdram()
    swr(rdram, DEVID, 0x13, broadcast=True)
    assert [chip.devid for chip in rdram.chips] == [0x13, 0x13]
    assert srd(rdram, DEVID, sdevid=0) == 0x13
    assert rdram.read(MCH_RICM) & (1 << 31) == 0


def test_broadcast_init_then_read_by_device_id():
    rdram = Rdram()
    swr(rdram, INIT, 5, broadcast=True)
    assert srd(rdram, INIT, sdevid=5) == 5
    assert srd(rdram, INIT, sdevid=0) == 0


def test_addressed_write_hits_first_matching_chip_only():
    rdram = Rdram()
    swr(rdram, INIT, 1, sdevid=0)
    assert rdram.chips[0].init == 1
    assert rdram.chips[1].init == 0
    swr(rdram, DEVID, 7, sdevid=1)
    assert rdram.chips[0].devid == 7
    assert rdram.chips[1].devid == 0


def test_addressed_write_without_match_changes_nothing():
    rdram = Rdram()
    swr(rdram, DEVID, 7, sdevid=9)
    assert all(chip.devid == 0 for chip in rdram.chips)


def test_high_sdevid_bit_comes_from_bit_ten():
    rdram = Rdram()
    swr(rdram, INIT, 0x21, broadcast=True)
    assert srd(rdram, INIT, sdevid=0x21) == 0x21
    assert srd(rdram, INIT, sdevid=0x01) == 0


@pytest.mark.parametrize(
    "reg, name, mask",
    [
        (0x021, "init", 0x3FFF),
        (0x022, "test34", 0xFFFF),
        (0x045, "napx", 0x7FF),
        (0x040, "devid", 0x1F),
        (0x043, "cca", 0xFF),
        (0x044, "ccb", 0xFF),
        (0x046, "pdnxa", 0x3F),
        (0x047, "pdnx", 0x7),
        (0x048, "tparm", 0x7F),
        (0x049, "tfrm", 0xF),
        (0x04A, "tcdly1", 0x3),
        (0x04B, "skip", 0x7),
        (0x04C, "tcycle", 0x3F),
        (0x04D, "test77", 0xFFFF),
        (0x04E, "test78", 0xFFFF),
    ],
)
def test_swr_masks_register_width(reg, name, mask):
    rdram = Rdram()
    swr(rdram, reg, 0xFFFF_FFFF, broadcast=True)
    assert [getattr(chip, name) for chip in rdram.chips] == [mask, mask]


def test_broadcast_setr_resets_all_chips():
    rdram = Rdram()
    swr(rdram, NAPX, 0x55, broadcast=True)
    rdram.write(MCH_RICM, command(SETR, broadcast=True))
    assert all(chip == RdramChip() for chip in rdram.chips)


def test_addressed_setr_resets_indexed_chip():
    rdram = Rdram()
    swr(rdram, NAPX, 0x55, broadcast=True)
    rdram.write(MCH_RICM, command(SETR, sdevid=1))
    assert rdram.chips[0].napx == 0x55
    assert rdram.chips[1] == RdramChip()


def test_setr_for_missing_device_raises():
    rdram = Rdram()
    with pytest.raises(BusError):
        rdram.write(MCH_RICM, command(SETR, sdevid=2))


def test_unknown_command_raises():
    rdram = Rdram()
    with pytest.raises(BusError, match="Unhandled RDRAM controller command"):
        rdram.write(MCH_RICM, command(0b0011))


def test_unhandled_srd_register_raises():
    rdram = Rdram()
    with pytest.raises(BusError, match="SRD"):
        rdram.write(MCH_RICM, command(SRD, reg=NAPX))


def test_unhandled_swr_register_raises():
    rdram = Rdram()
    with pytest.raises(BusError, match="SWR"):
        rdram.write(MCH_RICM, command(SWR, reg=0x4F))


def test_invalid_addresses_raise():
    rdram = Rdram()
    with pytest.raises(BusError):
        rdram.read(0x1000_F450)
    with pytest.raises(BusError):
        rdram.write(0x1000_F450, 1)


def test_chip_reset_clears_every_field():
    chip = RdramChip(init=1, devid=2, test79=3, refr=4)
    chip.reset()
    assert chip == RdramChip()