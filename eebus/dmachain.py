"""Servicing of started DMA channels: GIF burst and chain transfers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from eebus.dmac import GIF_BASE, ChannelType, DmaChannel, Dmac
from eebus.memmap import BusError, parse_dmatag

__all__ = ["GifSink", "DmaEngine"]

log = logging.getLogger(__name__)

_U32 = 0xFFFF_FFFF
_U64 = 0xFFFF_FFFF_FFFF_FFFF
_RUNNING = 0x100
_ASP_MASK = 0x3 << 4


class GifSink(Protocol):
    """Receiver of PATH3 data."""

    def is_path3_masked(self) -> bool: ...

    def write_dmac_data(self, data: int, madr: int, qwc: int, chain: bool) -> None: ...


def _next_qword(addr: int) -> int:
    return (addr + 16) & _U64


def _set_asp(channel: DmaChannel, asp: int) -> None:
    channel.chcr = (channel.chcr & ~_ASP_MASK & _U64) | (asp << 4)


class DmaEngine:
    """Runs transfers for channels the DMA controller has started."""

    def __init__(self, dmac: Dmac, read128: Callable[[int], int], gif: GifSink) -> None:
        self.dmac = dmac
        self.read128 = read128
        self.gif = gif

    def service(self, channel_type: ChannelType) -> None:
        """Run the transfer for ``channel_type`` and clear its STR bit."""
        if channel_type is ChannelType.SIF0:
            log.debug("Unimplemented SIF0 DMA transfer")
            return
        if channel_type is not ChannelType.GIF:
            raise BusError(f"DMA transfer for {channel_type.name} is not supported")
        self.step_gif(GIF_BASE)
        channel = self.dmac.channels.get(GIF_BASE)
        if channel is not None:
            channel.chcr &= ~_RUNNING & _U64

    def step_gif(self, base_addr: int) -> None:
        """Dispatch a GIF transfer on the mode bits of CHCR."""
        mode = (self.dmac.channel(base_addr).chcr >> 2) & 0x3
        if mode == 0:
            self.process_burst(base_addr)
        elif mode == 1:
            self.process_chain(base_addr)
        elif mode == 2:
            raise BusError("Interleave mode transfer for GIF DMA is not supported")
        else:
            raise BusError(f"Unknown GIF DMA transfer mode: {mode}")

    def _transfer(self, channel: DmaChannel, chain: bool) -> None:
        while channel.qwc != 0:
            data = self.read128(channel.madr & _U32)
            if self.gif.is_path3_masked():
                log.debug("PATH3 masked; ignoring GIF FIFO write")
            else:
                self.gif.write_dmac_data(data, channel.madr & _U32, channel.qwc & _U32, chain)
            channel.madr = _next_qword(channel.madr)
            channel.qwc -= 1

    def process_burst(self, base_addr: int) -> None:
        """Send QWC quadwords starting at MADR."""
        self._transfer(self.dmac.channel(base_addr), chain=False)

    def process_chain(self, base_addr: int) -> None:
        """Follow DMA tags from TADR until an end condition is reached."""
        channel = self.dmac.channel(base_addr)
        tag_end = False
        while not tag_end:
            self._transfer(channel, chain=True)

            tag = parse_dmatag(self.read128(channel.tadr & _U32))
            log.debug("Chain tag processed: %s", tag)
            channel.qwc = tag.qwc
            if tag.irq:
                log.debug("DMA IRQ requested")

            tag_end = self._apply_tag(channel, tag.tag_id, tag.addr)

    def _apply_tag(self, channel: DmaChannel, tag_id: int, addr: int) -> bool:
        """Update the channel for one tag; return True when the chain ends."""
        following = _next_qword(channel.tadr)
        if tag_id == 0:  # refe
            channel.madr = addr
            channel.tadr = following
            return True
        if tag_id == 1:  # cnt
            channel.madr = following
            channel.tadr = channel.madr
            return False
        if tag_id == 2:  # next
            channel.madr = following
            channel.tadr = addr
            return False
        if tag_id in (3, 4):  # ref, refs
            channel.madr = addr
            channel.tadr = following
            return False
        if tag_id == 5:  # call
            asp = (channel.chcr >> 4) & 0x3
            if asp == 0:
                channel.asr0 = following
            elif asp == 1:
                channel.asr1 = following
            else:
                log.debug("DMA CALL tag with invalid ASP value: %d", asp)
            channel.madr = following
            channel.tadr = addr
            _set_asp(channel, (asp + 1) & 0x3)
            return False
        if tag_id == 6:  # ret
            asp = (channel.chcr >> 4) & 0x3
            channel.madr = following
            if asp == 2:
                channel.tadr = self._saved(channel.asr1, "ASR1")
            elif asp == 1:
                channel.tadr = self._saved(channel.asr0, "ASR0")
            else:
                return True
            _set_asp(channel, asp - 1)
            return False
        # end
        channel.madr = following
        return True

    @staticmethod
    def _saved(value: int | None, name: str) -> int:
        if value is None:
            raise BusError(f"{name} not available for DMA RET tag")
        return value