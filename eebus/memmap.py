"""Physical memory map of the Emotion Engine bus and DMA tag decoding."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

__all__ = [
    "BusError",
    "AddressRange",
    "BusMode",
    "DmaTag",
    "parse_dmatag",
    "RAM",
    "IO",
    "BIOS",
    "SCRATCHPAD",
    "PAGE_BITS",
    "PAGE_SIZE",
    "NUM_PAGES",
    "PHYSICAL_MASK",
]


class BusError(RuntimeError):
    """Raised for accesses the bus cannot service."""


@dataclass(frozen=True)
class AddressRange:
    """A contiguous span of physical addresses."""

    start: int
    length: int

    @property
    def end(self) -> int:
        """First address past the range."""
        return self.start + self.length

    def contains(self, addr: int) -> int | None:
        """Return the offset of ``addr`` inside the range, or None if outside."""
        if self.start <= addr < self.end:
            return addr - self.start
        return None


RAM = AddressRange(0x0000_0000, 32 * 1024 * 1024)
IO = AddressRange(0x1000_0000, 64 * 1024)
BIOS = AddressRange(0x1FC0_0000, 4 * 1024 * 1024)
SCRATCHPAD = AddressRange(0x7000_0000, 16 * 1024)

PAGE_BITS = 12
PAGE_SIZE = 1 << PAGE_BITS
NUM_PAGES = 1 << (32 - PAGE_BITS)

# Mask applied to I/O addresses before decoding.
PHYSICAL_MASK = 0x1FFF_FFFF


class BusMode(Enum):
    """Strategy the bus uses to service guest memory accesses."""

    SOFTWARE_FAST_MEM = "software_fast_mem"
    RANGED = "ranged"
    HARDWARE_FAST_MEM = "hardware_fast_mem"


@dataclass(frozen=True)
class DmaTag:
    """Fields of a DMA chain tag."""

    qwc: int
    tag_id: int
    irq: bool
    addr: int


def parse_dmatag(tag: int) -> DmaTag:
    """Decode the low 64 bits of a 128-bit DMA tag."""
    low = tag & 0xFFFF_FFFF_FFFF_FFFF
    return DmaTag(
        qwc=low & 0xFFFF,
        tag_id=(low >> 28) & 0x7,
        irq=((low >> 31) & 0x1) != 0,
        addr=(low >> 32) & 0x7FFF_FFFF,
    )