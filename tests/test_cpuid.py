import pytest

from vmsense.cpuid import (
    MAX_NAME_LEN,
    NOT_FOUND,
    CpuidRegisters,
    HypervisorMagic,
    canonical_magic,
    hypervisor_bit_set,
    vendor_string,
)


def _registers_for(signature: str):
    raw = signature.encode("latin-1").ljust(12, b"\0")
    return (
        int.from_bytes(raw[0:4], "little"),
        int.from_bytes(raw[4:8], "little"),
        int.from_bytes(raw[8:12], "little"),
    )


@pytest.mark.parametrize(
    "magic",
    [
        HypervisorMagic.VMWARE,
        HypervisorMagic.XEN,
        HypervisorMagic.KVM,
        HypervisorMagic.HYPERV,
        HypervisorMagic.VBOX,
        HypervisorMagic.BHYVE,
    ],
)
def test_vendor_string_round_trip_and_canonical(magic):
    vendor = vendor_string(*_registers_for(magic.value))
    assert vendor == magic.value
    assert canonical_magic(vendor) is magic


def test_vendor_string_all_zero_is_empty():
    assert vendor_string(0, 0, 0) == ""


def test_vendor_string_length_bounded():
    vendor = vendor_string(0xFFFFFFFF, 0x41414141, 0x7F7F7F7F)
    assert len(vendor) == MAX_NAME_LEN


def test_unknown_vendor_has_no_canonical_magic():
    vendor = vendor_string(*_registers_for("TCGTCGTCGTCG"))
    assert vendor == "TCGTCGTCGTCG"
    assert canonical_magic(vendor) is None


def test_parallels_is_not_a_cpuid_signature():
    assert canonical_magic(HypervisorMagic.PARALLELS.value) is None
    assert canonical_magic(NOT_FOUND) is None


def test_canonical_magic_str_is_value():
    magic = canonical_magic(vendor_string(*_registers_for("Microsoft Hv")))
    assert magic is HypervisorMagic.HYPERV
    assert str(magic) == "Microsoft Hv"


def test_every_magic_fits_in_vendor_registers():
    for magic in HypervisorMagic:
        vendor = vendor_string(*_registers_for(magic.value))
        assert vendor == magic.value
        assert len(vendor) <= MAX_NAME_LEN


@pytest.mark.parametrize(
    "ecx, expected",
    [
        (1 << 31, True),
        ((1 << 31) | 0x1234, True),
        (0, False),
        ((1 << 31) - 1, False),
    ],
)
def test_hypervisor_bit(ecx, expected):
    assert hypervisor_bit_set(CpuidRegisters(ecx=ecx)) is expected


def test_hypervisor_bit_ignores_other_registers():
    regs = CpuidRegisters(eax=0xFFFFFFFF, ebx=0xFFFFFFFF, ecx=0, edx=0xFFFFFFFF)
    assert hypervisor_bit_set(regs) is False