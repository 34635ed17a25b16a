"""Software fast memory: per-page lookup tables in front of the TLB."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import NamedTuple, Union

from eebus.bios import Bios
from eebus.memmap import BIOS, IO, PAGE_BITS, PAGE_SIZE, PHYSICAL_MASK, RAM, BusError
from eebus.tlb import AccessType, OperatingMode, Tlb, TlbEntry, default_mappings, mask_to_page_size

__all__ = ["PhysicalMemory", "SoftwareFastMem"]

log = logging.getLogger(__name__)

_U32 = 0xFFFF_FFFF
_OFFSET_MASK = PAGE_SIZE - 1

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

Buffer = Union[bytearray, bytes]


@dataclass
class PhysicalMemory:
    """Main RAM, the BIOS image and the hooks that service I/O registers."""

    bios: Bios
    ram: bytearray = field(default_factory=lambda: bytearray(RAM.length))
    io_reader: Callable[[int], int] | None = None
    io_writer: Callable[[int, int], None] | None = None

    def io_read32(self, addr: int) -> int:
        """Read a 32-bit I/O register."""
        addr &= PHYSICAL_MASK
        if self.io_reader is None:
            raise BusError(f"Invalid IO read32: addr=0x{addr:08X}")
        return self.io_reader(addr) & _U32

    def io_write32(self, addr: int, value: int) -> None:
        """Write a 32-bit I/O register."""
        addr &= PHYSICAL_MASK
        value &= _U32
        if self.io_writer is None:
            raise BusError(f"Invalid IO write32: addr=0x{addr:08X}, value=0x{value:08X}")
        self.io_writer(addr, value)


class _Page(NamedTuple):
    """Host backing of one 4 KiB guest page."""

    buffer: Buffer
    base: int

    def load(self, offset: int, size: int) -> int:
        start = self.base + offset
        return int.from_bytes(self.buffer[start : start + size], "little")

    def store(self, offset: int, size: int, value: int) -> None:
        start = self.base + offset
        self.buffer[start : start + size] = value.to_bytes(size, "little")  # type: ignore[index]


def _check_size(size: int, table: dict[int, AccessType]) -> AccessType:
    try:
        return table[size]
    except KeyError:
        raise ValueError(f"Unsupported access size: {size}") from None


class SoftwareFastMem:
    """Guest memory access through cached virtual-page tables."""

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
        self.page_read: dict[int, _Page] = {}
        self.page_write: dict[int, _Page] = {}
        self.tlb.subscribe(self._on_entry_written)
        for index, entry in enumerate(default_mappings()):
            self.tlb.write_entry(index, entry)
        log.debug("Software fast memory initialized")

    def _on_entry_written(self, old: TlbEntry | None, new: TlbEntry) -> None:
        if old is not None:
            self.clear_mapping(old)
        self.install_mapping(new)

    def _translate(self, va: int, access: AccessType) -> int:
        return self.tlb.translate_address(va, access, self.mode, self.asid & 0xFF)

    def read(self, va: int, size: int) -> int:
        """Read ``size`` bytes at virtual address ``va`` as a little-endian integer."""
        access = _check_size(size, _READ_TYPES)
        va &= _U32
        page = self.page_read.get(va >> PAGE_BITS)
        if page is not None:
            return page.load(va & _OFFSET_MASK, size)
        return self._retry_read(va, size, access)

    def write(self, va: int, value: int, size: int) -> None:
        """Write the low ``size`` bytes of ``value`` at virtual address ``va``."""
        access = _check_size(size, _WRITE_TYPES)
        va &= _U32
        value &= (1 << (8 * size)) - 1
        page = self.page_write.get(va >> PAGE_BITS)
        if page is not None:
            page.store(va & _OFFSET_MASK, size, value)
            return
        self._retry_write(va, value, size, access)

    def _retry_read(self, va: int, size: int, access: AccessType) -> int:
        pa = self._translate(va, access)
        vpn = va >> PAGE_BITS
        offset = pa & _OFFSET_MASK

        ram_offset = RAM.contains(pa)
        if ram_offset is not None:
            page = _Page(self.memory.ram, ram_offset - offset)
            self.page_read[vpn] = page
            self.page_write[vpn] = page
            return page.load(offset, size)

        bios_offset = BIOS.contains(pa)
        if bios_offset is not None:
            page = _Page(self.memory.bios.data, bios_offset - offset)
            self.page_read[vpn] = page
            self.page_write.pop(vpn, None)
            return page.load(offset, size)

        if IO.contains(pa) is not None:
            data = self.memory.io_read32(pa & ~0x3)
            return (data >> ((pa & 0x3) * 8)) & 0xFF

        self.install_all_mappings()
        page = self.page_read.get(vpn)
        if page is None:
            raise BusError(f"SW-FMEM retry still unmapped VA=0x{va:08X}")
        return page.load(offset, size)

    def _retry_write(self, va: int, value: int, size: int, access: AccessType) -> None:
        pa = self._translate(va, access)
        vpn = va >> PAGE_BITS
        offset = pa & _OFFSET_MASK

        ram_offset = RAM.contains(pa)
        if ram_offset is not None:
            page = _Page(self.memory.ram, ram_offset - offset)
            self.page_read[vpn] = page
            self.page_write[vpn] = page
            page.store(offset, size, value)
            return

        bios_offset = BIOS.contains(pa)
        if bios_offset is not None:
            self.page_read[vpn] = _Page(self.memory.bios.data, bios_offset - offset)
            self.page_write.pop(vpn, None)
            raise BusError(f"SW-FMEM write to read-only BIOS VA=0x{va:08X}")

        if IO.contains(pa) is not None:
            if size != 4:
                raise BusError(f"IO write{size * 8} is not supported: addr=0x{pa:08X}")
            self.memory.io_write32(pa, value)
            return

        self.install_all_mappings()
        page = self.page_write.get(vpn)
        if page is None:
            raise BusError(f"SW-FMEM retry still unmapped or read-only VA=0x{va:08X}")
        page.store(offset, size, value)

    def install_all_mappings(self) -> None:
        """Install the page tables for every TLB entry."""
        for _, entry in self.tlb.valid_entries():
            self.install_mapping(entry)

    def _install_half(self, start_va: int, page_size: int, pfn: int, dirty: bool) -> None:
        for vpn in range(start_va >> PAGE_BITS, (start_va + page_size) >> PAGE_BITS):
            offset = ((vpn << PAGE_BITS) - start_va) & (page_size - 1)
            pa = ((pfn << 12) + offset) & _U32

            ram_offset = RAM.contains(pa)
            if ram_offset is not None:
                page = _Page(self.memory.ram, ram_offset)
                self.page_read[vpn] = page
                if dirty:
                    self.page_write[vpn] = page
                else:
                    self.page_write.pop(vpn, None)
                continue

            bios_offset = BIOS.contains(pa)
            if bios_offset is not None:
                self.page_read[vpn] = _Page(self.memory.bios.data, bios_offset)
            else:
                self.page_read.pop(vpn, None)
            self.page_write.pop(vpn, None)

    def install_mapping(self, entry: TlbEntry) -> None:
        """Fill the page tables for the valid halves of ``entry``."""
        page_size = mask_to_page_size(entry.mask)
        start_va = entry.vpn2 << 13
        if entry.v0:
            self._install_half(start_va, page_size, entry.pfn0, entry.d0)
        if entry.v1:
            self._install_half(start_va + page_size, page_size, entry.pfn1, entry.d1)

    def clear_mapping(self, entry: TlbEntry) -> None:
        """Remove every page that ``entry`` covers from the tables."""
        page_size = mask_to_page_size(entry.mask)
        start_va = entry.vpn2 << 13
        for vpn in range(start_va >> PAGE_BITS, (start_va + 2 * page_size) >> PAGE_BITS):
            self.page_read.pop(vpn, None)
            self.page_write.pop(vpn, None)