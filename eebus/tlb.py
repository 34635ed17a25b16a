"""MIPS-style translation lookaside buffer for the Emotion Engine."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum

from eebus.memmap import BusError

__all__ = [
    "TlbEntry",
    "OperatingMode",
    "AccessType",
    "TlbExceptionKind",
    "TlbError",
    "Tlb",
    "mask_to_page_size",
    "default_mappings",
    "TLB_SIZE",
]

TLB_SIZE = 48
_U32 = 0xFFFF_FFFF

_PAGE_SIZES = {
    0x0000_0000: 4 * 1024,
    0x0000_6000: 16 * 1024,
    0x0001_E000: 64 * 1024,
    0x0007_E000: 256 * 1024,
    0x001F_E000: 1024 * 1024,
    0x007F_E000: 4 * 1024 * 1024,
    0x01FF_E000: 16 * 1024 * 1024,
}


def mask_to_page_size(mask: int) -> int:
    """Page size in bytes for a PageMask value; unknown masks mean 4 KiB."""
    return _PAGE_SIZES.get(mask, 4 * 1024)


@dataclass(frozen=True)
class TlbEntry:
    """One TLB entry mapping an even/odd page pair."""

    vpn2: int
    asid: int = 0
    g: bool = False
    pfn0: int = 0
    pfn1: int = 0
    c0: int = 0
    c1: int = 0
    d0: bool = False
    d1: bool = False
    v0: bool = False
    v1: bool = False
    s0: bool = False
    s1: bool = False
    mask: int = 0


class OperatingMode(Enum):
    USER = "user"
    SUPERVISOR = "supervisor"
    KERNEL = "kernel"


class AccessType(Enum):
    READ_BYTE = (1, False)
    READ_HALFWORD = (2, False)
    READ_WORD = (4, False)
    READ_DOUBLEWORD = (8, False)
    WRITE_BYTE = (1, True)
    WRITE_HALFWORD = (2, True)
    WRITE_WORD = (4, True)
    WRITE_DOUBLEWORD = (8, True)

    def size(self) -> int:
        """Access width in bytes, which is also the required alignment."""
        return self.value[0]

    def is_write(self) -> bool:
        return self.value[1]


class TlbExceptionKind(Enum):
    TLB_REFILL = "tlb_refill"
    TLB_INVALID = "tlb_invalid"
    TLB_MODIFIED = "tlb_modified"
    ADDRESS_ERROR = "address_error"


class TlbError(BusError):
    """Address translation failed."""

    def __init__(self, kind: TlbExceptionKind, va: int) -> None:
        super().__init__(f"{kind.name} at VA=0x{va:08X}")
        self.kind = kind
        self.va = va


def default_mappings() -> list[TlbEntry]:
    """The two global mappings installed at start-up: low RAM and the BIOS."""
    return [
        TlbEntry(
            vpn2=0x0000_0000 >> 13,
            g=True,
            pfn0=0x0000_0000 >> 12,
            pfn1=0x0010_0000 >> 12,
            v0=True,
            d0=True,
            v1=True,
            d1=True,
            mask=0x001F_E000,
        ),
        TlbEntry(
            vpn2=0x1FC0_0000 >> 13,
            g=True,
            pfn0=0x1FC0_0000 >> 12,
            pfn1=0x1FD0_0000 >> 12,
            v0=True,
            v1=True,
            mask=0x001F_E000,
        ),
    ]


MappingCallback = Callable[["TlbEntry | None", TlbEntry], None]


class Tlb:
    """The 48-entry TLB with its COP0 companion registers."""

    def __init__(self) -> None:
        self.entries: list[TlbEntry | None] = [None] * TLB_SIZE
        self.index = 0
        self.random = TLB_SIZE - 1
        self.wired = 0
        self.entry_hi = 0
        self.entry_lo0 = 0
        self.entry_lo1 = 0
        self.page_mask = 0
        self.context = 0
        self.bad_vaddr = 0
        self._subscribers: list[MappingCallback] = []

    def subscribe(self, callback: MappingCallback) -> None:
        """Call ``callback(old_entry, new_entry)`` whenever an entry is written."""
        self._subscribers.append(callback)

    def valid_entries(self) -> Iterator[tuple[int, TlbEntry]]:
        """Yield ``(index, entry)`` for every occupied slot."""
        for i, entry in enumerate(self.entries):
            if entry is not None:
                yield i, entry

    def _fail(self, kind: TlbExceptionKind, va: int, context: int | None = None) -> TlbError:
        self.bad_vaddr = va
        if context is not None:
            self.context = context
        return TlbError(kind, va)

    def translate_address(
        self,
        va: int,
        access_type: AccessType,
        mode: OperatingMode,
        current_asid: int,
    ) -> int:
        """Translate a virtual address to a physical one or raise TlbError."""
        va &= _U32
        if va & (access_type.size() - 1):
            raise self._fail(TlbExceptionKind.ADDRESS_ERROR, va)

        if mode is OperatingMode.KERNEL:
            if 0x8000_0000 <= va < 0xA000_0000:
                return va - 0x8000_0000
            if 0xA000_0000 <= va < 0xC000_0000:
                return va - 0xA000_0000
        elif mode is OperatingMode.SUPERVISOR:
            if not (0xC000_0000 <= va < 0xE000_0000 or va < 0x8000_0000):
                raise self._fail(TlbExceptionKind.ADDRESS_ERROR, va)
        elif va >= 0x8000_0000:
            raise self._fail(TlbExceptionKind.ADDRESS_ERROR, va)

        for i, entry in self.valid_entries():
            page_size = mask_to_page_size(entry.mask)
            vpn_mask = ~(page_size - 1) & _U32
            entry_vpn = (entry.vpn2 << 13) & vpn_mask
            if (va & vpn_mask) == entry_vpn and (entry.g or entry.asid == current_asid):
                return self._resolve(va, i, entry, page_size, access_type)

        raise self._fail(TlbExceptionKind.TLB_REFILL, va, va & 0xFFFF_E000)

    def _resolve(
        self, va: int, index: int, entry: TlbEntry, page_size: int, access_type: AccessType
    ) -> int:
        if va & page_size:
            pfn, valid, dirty = entry.pfn1, entry.v1, entry.d1
        else:
            pfn, valid, dirty = entry.pfn0, entry.v0, entry.d0

        context = (va & 0xFFFF_E000) | index
        if not valid:
            raise self._fail(TlbExceptionKind.TLB_INVALID, va, context)
        if access_type.is_write() and not dirty:
            raise self._fail(TlbExceptionKind.TLB_MODIFIED, va, context)

        return ((pfn << 12) & _U32) | (va & (page_size - 1))

    def write_entry(self, index: int, entry: TlbEntry) -> None:
        """Store ``entry`` at ``index`` and notify subscribers."""
        if not 0 <= index < len(self.entries):
            raise IndexError(f"TLB index out of bounds: {index}")

        # Entries for the zero page without both halves valid are ignored.
        if entry.vpn2 == 0 and (not entry.v0 or not entry.v1):
            return

        old = self.entries[index]
        self.entries[index] = entry
        for callback in self._subscribers:
            callback(old, entry)