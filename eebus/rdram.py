"""RDRAM memory controller registers (MCH_RICM / MCH_DRD)."""

from __future__ import annotations

from dataclasses import dataclass, fields

from eebus.memmap import BusError

__all__ = ["MCH_RICM", "MCH_DRD", "RdramChip", "Rdram"]

MCH_RICM = 0x1000_F430
MCH_DRD = 0x1000_F440

_U32 = 0xFFFF_FFFF
_BUSY = 1 << 31

_SOP_SRD = 0b0000
_SOP_SWR = 0b0001
_SOP_SETR = 0b0010
_SOP_IGNORED = frozenset({0b0100, 0b1011, 0b1110})  # SETF, CLRR, RSRV

_REG_INIT = 0x021
_REG_DEVID = 0x040

# Writable register number -> (chip field, width mask).
_SWR_REGISTERS = {
    0x021: ("init", 0x3FFF),
    0x022: ("test34", 0xFFFF),
    0x045: ("napx", 0x7FF),
    0x040: ("devid", 0x1F),
    0x043: ("cca", 0xFF),
    0x044: ("ccb", 0xFF),
    0x046: ("pdnxa", 0x3F),
    0x047: ("pdnx", 0x7),
    0x048: ("tparm", 0x7F),
    0x049: ("tfrm", 0xF),
    0x04A: ("tcdly1", 0x3),
    0x04B: ("skip", 0x7),
    0x04C: ("tcycle", 0x3F),
    0x04D: ("test77", 0xFFFF),
    0x04E: ("test78", 0xFFFF),
}


@dataclass
class RdramChip:
    """Register file of one RDRAM device."""

    init: int = 0
    test34: int = 0
    cnfga: int = 0
    cnfgb: int = 0
    devid: int = 0
    refb: int = 0
    refr: int = 0
    cca: int = 0
    ccb: int = 0
    napx: int = 0
    pdnxa: int = 0
    pdnx: int = 0
    tparm: int = 0
    tfrm: int = 0
    tcdly1: int = 0
    tcycle: int = 0
    skip: int = 0
    test77: int = 0
    test78: int = 0
    test79: int = 0

    def reset(self) -> None:
        """Clear every register."""
        for field in fields(self):
            setattr(self, field.name, 0)

    @property
    def serial_id(self) -> int:
        """Device id used to address the chip: the low six bits of INIT."""
        return self.init & 0x3F


class Rdram:
    """Memory controller that relays commands to two RDRAM chips."""

    def __init__(self) -> None:
        self.ricm = 0
        self.drd = 0
        self.chips = [RdramChip(), RdramChip()]

    def read(self, address: int) -> int:
        if address == MCH_RICM:
            return self.ricm
        if address == MCH_DRD:
            return self.drd
        raise BusError(f"Invalid RDRAM register read at address 0x{address:08X}")

    def write(self, address: int, value: int) -> None:
        self.ricm |= _BUSY
        value &= _U32
        if address == MCH_RICM:
            self.ricm = value
            self._command()
        elif address == MCH_DRD:
            self.drd = value
        else:
            raise BusError(f"Invalid RDRAM register write at address 0x{address:08X}")

    @property
    def _register(self) -> int:
        return (self.ricm >> 16) & 0xFFF

    @property
    def _sdevid(self) -> int:
        return (((self.ricm >> 10) & 1) << 5) | (self.ricm & 0x1F)

    @property
    def _broadcast(self) -> bool:
        return bool(self.ricm & (1 << 5))

    def _addressed_chip(self) -> RdramChip | None:
        sdevid = self._sdevid
        return next((chip for chip in self.chips if chip.serial_id == sdevid), None)

    def _command(self) -> None:
        sop = (self.ricm >> 6) & 0xF
        if sop == _SOP_SRD:
            self._serial_read()
        elif sop == _SOP_SWR:
            self._serial_write()
        elif sop == _SOP_SETR:
            self._set_reset()
        elif sop not in _SOP_IGNORED:
            raise BusError(f"Unhandled RDRAM controller command: 0b{sop:04b}")
        self.ricm &= ~_BUSY & _U32

    def _serial_read(self) -> None:
        reg = self._register
        if reg not in (_REG_INIT, _REG_DEVID):
            raise BusError(f"Unhandled RDRAM SRD register: 0x{reg:04X}")
        self.drd = 0
        chip = self._addressed_chip()
        if chip is None:
            return
        self.drd = chip.init if reg == _REG_INIT else chip.devid & 0x1F

    def _serial_write(self) -> None:
        reg = self._register
        try:
            name, mask = _SWR_REGISTERS[reg]
        except KeyError:
            raise BusError(f"Unhandled RDRAM SWR register: 0x{reg:04X}") from None
        value = self.drd & mask
        if self._broadcast:
            for chip in self.chips:
                setattr(chip, name, value)
            return
        chip = self._addressed_chip()
        if chip is not None:
            setattr(chip, name, value)

    def _set_reset(self) -> None:
        if self._broadcast:
            for chip in self.chips:
                chip.reset()
            return
        index = self._sdevid
        if index >= len(self.chips):
            raise BusError(f"RDRAM SETR for nonexistent device {index}")
        self.chips[index].reset()