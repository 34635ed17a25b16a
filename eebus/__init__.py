"""Emotion Engine memory bus: TLB, BIOS image, RDRAM and DMA controllers, and guest memory access paths."""

__version__ = "0.1.0"