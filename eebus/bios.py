"""The console's boot ROM image."""

from __future__ import annotations

import os
from dataclasses import dataclass

__all__ = ["BIOS_SIZE", "Bios", "load_bios", "padded_bios"]

BIOS_SIZE = 4 * 1024 * 1024


@dataclass(frozen=True)
class Bios:
    """A BIOS image held in memory."""

    data: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))

    def __len__(self) -> int:
        return len(self.data)


def load_bios(path: str | os.PathLike[str]) -> Bios:
    """Read a BIOS image from ``path``; it must be exactly 4 MiB."""
    with open(path, "rb") as handle:
        data = handle.read()
    if len(data) != BIOS_SIZE:
        raise ValueError("BIOS file is not the correct size (Is it corrupted?)")
    return Bios(data)


def padded_bios(data: bytes) -> Bios:
    """Build a BIOS from ``data``, zero-padding it to 4 MiB when shorter."""
    raw = bytes(data)
    if len(raw) < BIOS_SIZE:
        raw += bytes(BIOS_SIZE - len(raw))
    return Bios(raw)