"""Emotion Engine DMA controller registers and channels."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from eebus.memmap import BusError

__all__ = [
    "ChannelType",
    "DmaChannel",
    "Dmac",
    "CHCR_OFFSET",
    "MADR_OFFSET",
    "QWC_OFFSET",
    "TADR_OFFSET",
    "ASR0_OFFSET",
    "ASR1_OFFSET",
    "SADR_OFFSET",
    "VIF0_BASE",
    "VIF1_BASE",
    "GIF_BASE",
    "IPU_FROM_BASE",
    "IPU_TO_BASE",
    "SIF0_BASE",
    "SIF1_BASE",
    "SIF2_BASE",
    "SPR_FROM_BASE",
    "SPR_TO_BASE",
    "D_CTRL",
    "D_STAT",
    "D_PCR",
    "D_SQWC",
    "D_RBSR",
    "D_RBOR",
    "D_ENABLEW",
]

log = logging.getLogger(__name__)

_U32 = 0xFFFF_FFFF
_U64 = 0xFFFF_FFFF_FFFF_FFFF
_RUNNING = 0x100

CHCR_OFFSET = 0x00
MADR_OFFSET = 0x10
QWC_OFFSET = 0x20
TADR_OFFSET = 0x30
ASR0_OFFSET = 0x40
ASR1_OFFSET = 0x50
SADR_OFFSET = 0x80

VIF0_BASE = 0x1000_8000
VIF1_BASE = 0x1000_9000
GIF_BASE = 0x1000_A000
IPU_FROM_BASE = 0x1000_B000
IPU_TO_BASE = 0x1000_B400
SIF0_BASE = 0x1000_C000
SIF1_BASE = 0x1000_C400
SIF2_BASE = 0x1000_C800
SPR_FROM_BASE = 0x1000_D000
SPR_TO_BASE = 0x1000_D400

D_CTRL = 0x1000_E000
D_STAT = 0x1000_E010
D_PCR = 0x1000_E020
D_SQWC = 0x1000_E030
D_RBSR = 0x1000_E040
D_RBOR = 0x1000_E050
D_ENABLEW = 0x1000_F590

_GLOBAL_REGISTERS = {
    D_CTRL: "d_ctrl",
    D_STAT: "d_stat",
    D_PCR: "d_pcr",
    D_SQWC: "d_sqwc",
    D_RBSR: "d_rbsr",
    D_RBOR: "d_rbor",
    D_ENABLEW: "d_enablew",
}


class ChannelType(Enum):
    VIF0 = "vif0"
    VIF1 = "vif1"
    GIF = "gif"
    IPU_FROM = "ipu_from"
    IPU_TO = "ipu_to"
    SIF0 = "sif0"
    SIF1 = "sif1"
    SIF2 = "sif2"
    SPR_FROM = "spr_from"
    SPR_TO = "spr_to"


_OPTIONAL_REGISTERS = {ASR0_OFFSET: "asr0", ASR1_OFFSET: "asr1", SADR_OFFSET: "sadr"}


@dataclass
class DmaChannel:
    """Register set of one DMA channel."""

    channel_type: ChannelType
    chcr: int = 0
    madr: int = 0
    qwc: int = 0
    tadr: int = 0
    asr0: int | None = None
    asr1: int | None = None
    sadr: int | None = None

    @classmethod
    def create(cls, channel_type: ChannelType, has_asr: bool, has_sadr: bool) -> DmaChannel:
        """Build a channel whose optional registers start at zero when present."""
        return cls(
            channel_type,
            asr0=0 if has_asr else None,
            asr1=0 if has_asr else None,
            sadr=0 if has_sadr else None,
        )

    def read64(self, offset: int) -> int:
        """Read a register; unknown offsets read as zero."""
        if offset == CHCR_OFFSET:
            return self.chcr
        if offset == MADR_OFFSET:
            return self.madr
        if offset == QWC_OFFSET:
            return self.qwc
        if offset == TADR_OFFSET:
            return self.tadr
        name = _OPTIONAL_REGISTERS.get(offset)
        if name is not None:
            value = getattr(self, name)
            if value is None:
                raise BusError(f"{name.upper()} not available")
            return value
        log.error("Invalid channel read offset: %#X", offset)
        return 0

    def read32(self, offset: int) -> int:
        """Read the low 32 bits of a register."""
        return self.read64(offset) & _U32

    def write64(self, offset: int, value: int) -> None:
        """Write a register; CHCR keeps its upper half, addresses are qword aligned."""
        value &= _U64
        if offset == CHCR_OFFSET:
            self.chcr = (value & 0xFFFF) | (self.chcr & 0xFFFF_0000)
        elif offset == MADR_OFFSET:
            self.madr = value & ~0xF & _U64
        elif offset == QWC_OFFSET:
            self.qwc = value & 0xFFFF
        elif offset == TADR_OFFSET:
            self.tadr = value & ~0xF & _U64
        elif offset in _OPTIONAL_REGISTERS:
            name = _OPTIONAL_REGISTERS[offset]
            if getattr(self, name) is None:
                log.debug("Write to %s on channel without %s", name.upper(), name.upper())
            else:
                setattr(self, name, value & ~0xF & _U64)
        else:
            log.error("Invalid channel write offset: %#X", offset)

    def write32(self, offset: int, value: int) -> None:
        """Write a register with a 32-bit value."""
        self.write64(offset, value & _U32)

    def is_running(self) -> bool:
        """Whether the STR bit of CHCR is set."""
        return bool(self.chcr & _RUNNING)


class Dmac:
    """The DMA controller: ten channels plus global control registers."""

    def __init__(self) -> None:
        self.channels: dict[int, DmaChannel] = {
            VIF0_BASE: DmaChannel.create(ChannelType.VIF0, True, False),
            VIF1_BASE: DmaChannel.create(ChannelType.VIF1, True, False),
            GIF_BASE: DmaChannel.create(ChannelType.GIF, True, False),
            IPU_FROM_BASE: DmaChannel.create(ChannelType.IPU_FROM, False, False),
            IPU_TO_BASE: DmaChannel.create(ChannelType.IPU_TO, False, False),
            SIF0_BASE: DmaChannel.create(ChannelType.SIF0, False, False),
            SIF1_BASE: DmaChannel.create(ChannelType.SIF1, False, False),
            SIF2_BASE: DmaChannel.create(ChannelType.SIF2, False, False),
            SPR_FROM_BASE: DmaChannel.create(ChannelType.SPR_FROM, False, True),
            SPR_TO_BASE: DmaChannel.create(ChannelType.SPR_TO, False, True),
        }
        self.d_ctrl = 0
        self.d_stat = 0
        self.d_pcr = 0
        self.d_sqwc = 0
        self.d_rbsr = 0
        self.d_rbor = 0
        self.d_enablew = 0

    def channel(self, base: int) -> DmaChannel:
        """The channel whose registers start at ``base``."""
        try:
            return self.channels[base]
        except KeyError:
            raise BusError(f"No DMA channel at 0x{base:08X}") from None

    def _write(self, addr: int, value: int, width: str) -> ChannelType | None:
        channel = self.channels.get(addr & 0xFFFF_F000)
        offset = addr & 0xFF
        if channel is not None:
            if width == "32":
                channel.write32(offset, value)
            else:
                channel.write64(offset, value)
            if offset == CHCR_OFFSET and channel.is_running():
                return channel.channel_type
            return None
        name = _GLOBAL_REGISTERS.get(addr)
        if name is None:
            log.error("Invalid DMAC write%s address: %#X", width, addr)
        else:
            setattr(self, name, value)
        return None

    def write_register(self, addr: int, value: int) -> ChannelType | None:
        """32-bit register write; returns the channel type when a transfer starts."""
        return self._write(addr, value & _U32, "32")

    def write_register64(self, addr: int, value: int) -> ChannelType | None:
        """64-bit register write; returns the channel type when a transfer starts."""
        return self._write(addr, value & _U64, "64")

    def read_register64(self, addr: int) -> int:
        """64-bit register read; unknown addresses read as zero."""
        channel = self.channels.get(addr & 0xFFFF_F000)
        if channel is not None:
            return channel.read64(addr & 0xFF)
        name = _GLOBAL_REGISTERS.get(addr)
        if name is None:
            log.error("Invalid DMAC read address: %#X", addr)
            return 0
        return getattr(self, name)

    def read_register(self, addr: int) -> int:
        """32-bit register read; unknown addresses read as zero."""
        return self.read_register64(addr) & _U32