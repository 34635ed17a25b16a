import pytest

from eebus.bios import padded_bios
from eebus.memmap import BusError
from eebus.swfastmem import PhysicalMemory, SoftwareFastMem
from eebus.tlb import TlbEntry, TlbError, TlbExceptionKind

BIOS_HEAD = bytes([0x78, 0x56, 0x34, 0x12, 0xEF, 0xCD, 0xAB, 0x90])


def make_fastmem(**memory_kwargs):
    memory = PhysicalMemory(bios=padded_bios(BIOS_HEAD), **memory_kwargs)
    return SoftwareFastMem(memory), memory


def test_bios_read_through_default_mapping():
    fm, _ = make_fastmem()
    assert fm.read(0x1FC0_0000, 4) == int.from_bytes(BIOS_HEAD[:4], "little")
    assert fm.read(0x1FC0_0000, 8) == int.from_bytes(BIOS_HEAD, "little")


def test_bios_read_through_kseg1():
    fm, _ = make_fastmem()
    assert fm.read(0xBFC0_0000, 4) == int.from_bytes(BIOS_HEAD[:4], "little")
    assert fm.read(0xBFC0_0004, 1) == BIOS_HEAD[4]


def test_ram_write_read_round_trip():
    fm, memory = make_fastmem()
    fm.write(0x1000, 0xDEADBEEF, 4)
    assert fm.read(0x1000, 4) == 0xDEADBEEF
    assert memory.ram[0x1000:0x1004] == (0xDEADBEEF).to_bytes(4, "little")


def test_kseg_aliases_share_ram():
    fm, _ = make_fastmem()
    fm.write(0x8000_2000, 0x0102030405060708, 8)
    assert fm.read(0x2000, 8) == 0x0102030405060708
    assert fm.read(0xA000_2000, 8) == 0x0102030405060708


def test_128_bit_round_trip():
    fm, _ = make_fastmem()
    value = (0x1122334455667788 << 64) | 0x99AABBCCDDEEFF00
    fm.write(0x8000_3000, value, 16)
    assert fm.read(0x8000_3000, 16) == value


def test_write_value_is_truncated_to_size():
    fm, memory = make_fastmem()
    fm.write(0x4000, 0x1234, 1)
    assert fm.read(0x4000, 1) == 0x34
    assert memory.ram[0x4001] == 0


def test_write_to_bios_through_tlb_is_modified_error():
    fm, _ = make_fastmem()
    with pytest.raises(TlbError) as info:
        fm.write(0x1FC0_0000, 1, 4)
    assert info.value.kind is TlbExceptionKind.TLB_MODIFIED


def test_write_to_bios_through_kseg1_raises():
    fm, _ = make_fastmem()
    with pytest.raises(BusError, match="read-only BIOS"):
        fm.write(0xBFC0_0000, 1, 4)
    assert fm.read(0xBFC0_0000, 4) == int.from_bytes(BIOS_HEAD[:4], "little")


def test_unaligned_retry_is_address_error():
    fm, _ = make_fastmem()
    with pytest.raises(TlbError) as info:
        fm.read(0x8000_0001, 4)
    assert info.value.kind is TlbExceptionKind.ADDRESS_ERROR


def test_new_tlb_entry_maps_pages():
    fm, _ = make_fastmem()
    entry = TlbEntry(vpn2=0x0040_0000 >> 13, g=True, pfn0=0x0020_0000 >> 12, v0=True, d0=True)
    fm.tlb.write_entry(5, entry)
    fm.write(0x0040_0010, 0xCAFEBABE, 4)
    assert fm.read(0x8020_0010, 4) == 0xCAFEBABE


def test_clean_page_is_read_only():
    fm, _ = make_fastmem()
    fm.write(0x8020_0000, 0x55, 1)
    entry = TlbEntry(vpn2=0x0040_0000 >> 13, g=True, pfn0=0x0020_0000 >> 12, v0=True)
    fm.tlb.write_entry(6, entry)
    assert fm.read(0x0040_0000, 1) == 0x55
    with pytest.raises(TlbError) as info:
        fm.write(0x0040_0000, 0x66, 1)
    assert info.value.kind is TlbExceptionKind.TLB_MODIFIED


def test_replacing_entry_clears_old_pages():
    fm, _ = make_fastmem()
    first = TlbEntry(vpn2=0x0040_0000 >> 13, g=True, pfn0=0x0020_0000 >> 12, v0=True, d0=True)
    second = TlbEntry(vpn2=0x0060_0000 >> 13, g=True, pfn0=0x0020_0000 >> 12, v0=True, d0=True)
    fm.tlb.write_entry(7, first)
    fm.write(0x0040_0000, 0x77, 1)
    fm.tlb.write_entry(7, second)
    assert fm.read(0x0060_0000, 1) == 0x77
    with pytest.raises(TlbError) as info:
        fm.read(0x0040_0000, 1)
    assert info.value.kind is TlbExceptionKind.TLB_REFILL


def test_clear_mapping_removes_table_entries():
    fm, _ = make_fastmem()
    entry = TlbEntry(vpn2=0x0040_0000 >> 13, g=True, pfn0=0x0020_0000 >> 12, v0=True, d0=True)
    fm.install_mapping(entry)
    assert (0x0040_0000 >> 12) in fm.page_read
    fm.clear_mapping(entry)
    assert (0x0040_0000 >> 12) not in fm.page_read
    assert (0x0040_0000 >> 12) not in fm.page_write


def test_io_read_returns_byte_lane():
    fm, _ = make_fastmem(io_reader=lambda addr: 0xAABBCCDD)
    assert fm.read(0xB000_F000, 1) == 0xDD
    assert fm.read(0xB000_F001, 1) == 0xCC
    assert fm.read(0xB000_F003, 1) == 0xAA


def test_io_write32_reaches_handler():
    calls = []
    fm, _ = make_fastmem(io_writer=lambda addr, value: calls.append((addr, value)))
    fm.write(0xB000_F000, 0x12345678, 4)
    assert calls == [(0x1000_F000, 0x12345678)]


def test_io_write16_is_unsupported():
    fm, _ = make_fastmem(io_writer=lambda addr, value: None)
    with pytest.raises(BusError):
        fm.write(0xB000_F000, 1, 2)


def test_io_without_handler_raises():
    fm, _ = make_fastmem()
    with pytest.raises(BusError, match="Invalid IO read32"):
        fm.read(0xB000_F000, 1)


def test_unmapped_physical_address_raises():
    fm, _ = make_fastmem()
    with pytest.raises(BusError, match="still unmapped"):
        fm.read(0x8400_0000, 4)


def test_invalid_size_rejected():
    fm, _ = make_fastmem()
    with pytest.raises(ValueError):
        fm.read(0x1000, 3)
    with pytest.raises(ValueError):
        fm.write(0x1000, 0, 5)


def test_physical_memory_masks_io_address():
    seen = []
    memory = PhysicalMemory(bios=padded_bios(b""), io_reader=lambda addr: seen.append(addr) or 7)
    assert memory.io_read32(0xB000_F000) == 7
    assert seen == [0x1000_F000]