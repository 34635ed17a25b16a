# eebus

A pure-Python model of an Emotion Engine memory bus: the TLB, the physical
memory map, the BIOS image, the RDRAM controller, the DMA controller with GIF
transfers, and two ways for a CPU core to read and write guest memory.

It has no dependencies beyond the standard library.

## Modules

- `eebus.memmap`: the physical ranges `RAM`, `IO`, `BIOS` and `SCRATCHPAD`
  as `AddressRange` values (`contains(addr)` gives the offset inside the range
  or `None`), the page constants, the `BusMode` enum, `BusError` (the base of
  every error the package raises for a bad access) and `parse_dmatag`, which
  decodes a DMA tag into a `DmaTag` (`qwc`, `tag_id`, `irq`, `addr`).
- `eebus.tlb`: `Tlb`, the 48-entry TLB. `translate_address(va, access_type,
  mode, current_asid)` applies the kernel/supervisor/user segment rules
  (kseg0 and kseg1 are direct-mapped in kernel mode) and looks up `TlbEntry`
  values otherwise. Failures raise `TlbError`, whose `kind` is a
  `TlbExceptionKind` (refill, invalid, modified, address error); `bad_vaddr`
  and `context` are updated as the hardware would. `write_entry(index, entry)`
  stores an entry and calls every callback registered with `subscribe`;
  entries for virtual page 0 whose two halves are not both valid are ignored.
  `default_mappings()` returns the two global start-up entries (low RAM and
  the BIOS), and `mask_to_page_size` turns a PageMask into a page size.
- `eebus.bios`: `Bios` holds an image. `load_bios(path)` reads a file and
  raises `ValueError` unless it is exactly 4 MiB; `padded_bios(data)`
  zero-pads shorter data to 4 MiB.
- `eebus.rdram`: `Rdram`, the controller registers `MCH_RICM` and `MCH_DRD`
  and their serial commands (SRD, SWR, SETR; SETF, CLRR and RSRV are
  accepted and ignored) against two `RdramChip` register files. Unknown
  addresses, commands and registers raise `BusError`.
- `eebus.dmac`: `Dmac` with its ten `DmaChannel`s and the global registers
  (`D_CTRL`, `D_STAT`, `D_PCR`, `D_SQWC`, `D_RBSR`, `D_RBOR`, `D_ENABLEW`).
  `write_register` / `write_register64` return the `ChannelType` when a CHCR
  write sets the start bit; unknown addresses read as zero and writes to them
  are logged and dropped.
- `eebus.dmachain`: `DmaEngine(dmac, read128, gif)` runs a started channel.
  `service(ChannelType.GIF)` performs a burst or source-chain transfer
  (tags refe, cnt, next, ref, refs, call, ret, end) and clears the start bit;
  `SIF0` is logged and skipped; other channels and interleave mode raise
  `BusError`. `gif` is any object with `is_path3_masked()` and
  `write_dmac_data(data, madr, qwc, chain)` (the `GifSink` protocol).
- `eebus.swfastmem`: `PhysicalMemory` (RAM, BIOS and optional `io_reader` /
  `io_writer` hooks) and `SoftwareFastMem`, which caches virtual pages in
  lookup tables and falls back to TLB translation on a miss. The tables follow
  TLB writes through `Tlb.subscribe`.
- `eebus.ranged`: `RangedMemory`, which translates every access through the
  TLB and then dispatches on the physical range.

Both access paths offer `read(va, size)` and `write(va, value, size)` for
sizes 1, 2, 4, 8 and 16 bytes, little-endian, and install the default TLB
mappings when created.

## Install

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from eebus.bios import padded_bios
from eebus.swfastmem import PhysicalMemory, SoftwareFastMem
from eebus.tlb import AccessType, OperatingMode

memory = PhysicalMemory(bios=padded_bios(b"\x01\x02\x03\x04"))
bus = SoftwareFastMem(memory)

bus.write(0x8000_0100, 0xDEADBEEF, 4)          # kseg0, direct-mapped to RAM
assert bus.read(0x8000_0100, 4) == 0xDEADBEEF
assert memory.ram[0x100:0x104] == b"\xef\xbe\xad\xde"

assert bus.read(0xBFC0_0000, 4) == 0x04030201  # kseg1 view of the BIOS

assert bus.tlb.translate_address(
    0x8000_1000, AccessType.READ_WORD, OperatingMode.KERNEL, 0
) == 0x1000
```

## Errors

Misaligned addresses, unmapped pages and writes to pages without the dirty
bit raise `TlbError`. Writes to the BIOS, accesses outside the known ranges
and I/O accesses the model does not service raise `BusError`. An
unsupported access size raises `ValueError`.

## What it does not do

- There is no CPU core, no command-line program and no complete machine;
  the package is a library for a core to call.
- Peripherals behind the I/O range (GIF, GS, VIF, IPU, SIF, SIO, timers,
  interrupt controller) are not modelled. I/O accesses are handed to the
  `io_reader` / `io_writer` hooks of `PhysicalMemory`; without them they raise
  `BusError`. Only 32-bit I/O writes are supported, 32-bit I/O reads in
  `RangedMemory`, and a `SoftwareFastMem` read that reaches I/O returns one
  byte of the 32-bit register.
- Scratchpad, IOP RAM and VU memory have ranges or constants but no storage
  behind the access paths.
- `BusMode.HARDWARE_FAST_MEM` is only an enum value; there is no
  host-memory-mapped access path.