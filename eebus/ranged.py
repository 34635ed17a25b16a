"""Ranged memory access: translate every access and dispatch on the physical range."""

from __future__ import annotations

import logging

from eebus.memmap import BIOS, IO, RAM, BusError
from eebus.swfastmem import PhysicalMemory
from eebus.tlb import AccessType, OperatingMode, Tlb, default_mappings

__all__ = ["RangedMemory"]

log = logging.getLogger(__name__)

_U32 = 0xFFFF_FFFF

_READ_TYPES = {
    1: AccessType.READ_BYTE,
    2: AccessType.READ_HALFWORD,
    4: AccessType.READ_WORD,
    8: AccessType.READ_DOUBLEWORD,
    16: AccessType.READ_DOUBLEWORD,
}
_WRITE_TYPES = {
    1: AccessType.WRITE_BYTE,
    2: AccessType.WRITE_HALFWORD,
    4: AccessType.WRITE_WORD,
    8: AccessType.WRITE_DOUBLEWORD,
    16: AccessType.WRITE_DOUBLEWORD,
}


def _access_type(size: int, table: dict[int, AccessType]) -> AccessType:
    try:
        return table[size]
    except KeyError:
        raise ValueError(f"Unsupported access size: {size}") from None


class RangedMemory:
    """Guest memory access that translates and range-checks every access."""

    def __init__(
        self,
        memory: PhysicalMemory,
        tlb: Tlb | None = None,
        mode: OperatingMode = OperatingMode.KERNEL,
        asid: int = 0,
    ) -> None:
        self.memory = memory
        self.tlb = tlb if tlb is not None else Tlb()
        self.mode = mode
        self.asid = asid
        log.debug("Initializing ranged TLB mappings")
        for index, entry in enumerate(default_mappings()):
            self.tlb.write_entry(index, entry)
            log.debug("Installed TLB mapping: %s", entry)

    def _translate(self, va: int, access: AccessType) -> int:
        return self.tlb.translate_address(va & _U32, access, self.mode, self.asid & 0xFF)

    def read(self, va: int, size: int) -> int:
        """Read ``size`` bytes at virtual address ``va`` as a little-endian integer."""
        access = _access_type(size, _READ_TYPES)
        pa = self._translate(va, access)

        ram_offset = RAM.contains(pa)
        if ram_offset is not None:
            return int.from_bytes(self.memory.ram[ram_offset : ram_offset + size], "little")

        if IO.contains(pa) is not None:
            if size != 4:
                raise BusError(f"IO read{size * 8} is not supported: addr=0x{pa:08X}")
            return self.memory.io_read32(pa)

        bios_offset = BIOS.contains(pa)
        if bios_offset is not None:
            data = self.memory.bios.data
            return int.from_bytes(data[bios_offset : bios_offset + size], "little")

        raise BusError(f"Ranged: Unhandled read from physical address 0x{pa:08X}")

    def write(self, va: int, value: int, size: int) -> None:
        """Write the low ``size`` bytes of ``value`` at virtual address ``va``."""
        access = _access_type(size, _WRITE_TYPES)
        value &= (1 << (8 * size)) - 1
        pa = self._translate(va, access)

        ram_offset = RAM.contains(pa)
        if ram_offset is not None:
            encoded = value.to_bytes(size, "little")
            end = min(ram_offset + size, RAM.length)
            self.memory.ram[ram_offset:end] = encoded[: end - ram_offset]
            return

        if IO.contains(pa) is not None:
            if size != 4:
                raise BusError(f"IO write{size * 8} is not supported: addr=0x{pa:08X}")
            self.memory.io_write32(pa, value)
            return

        raise BusError(f"Ranged: Unhandled write to physical address 0x{pa:08X}")