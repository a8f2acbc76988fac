"""CPUID register values and hypervisor vendor signatures."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Optional

#: Longest vendor name carried around, in characters.
MAX_NAME_LEN = 12

#: Name reported when no hypervisor could be identified.
NOT_FOUND = "NOTFOUND"

#: Leaf that reports the hypervisor vendor signature.
HYPERVISOR_LEAF = 0x40000000

_HYPERVISOR_PRESENT_BIT = 1 << 31


@dataclass(frozen=True)
class CpuidRegisters:
    """The four general-purpose registers returned by one CPUID query."""

    eax: int = 0
    ebx: int = 0
    ecx: int = 0
    edx: int = 0


class HypervisorMagic(str, enum.Enum):
    """Vendor signatures that identify a hypervisor."""

    VMWARE = "VMwareVMware"
    XEN = "XenVMMXenVMM"
    KVM = "KVMKVMKVM"
    HYPERV = "Microsoft Hv"
    VBOX = "VBoxVBoxVBox"
    BHYVE = "bhyve bhyve "
    PARALLELS = "Parallels"

    def __str__(self) -> str:
        return self.value


_CPUID_SIGNATURES = {
    magic.value: magic
    for magic in (
        HypervisorMagic.VMWARE,
        HypervisorMagic.XEN,
        HypervisorMagic.KVM,
        HypervisorMagic.HYPERV,
        HypervisorMagic.VBOX,
        HypervisorMagic.BHYVE,
    )
}


def vendor_string(ebx: int, ecx: int, edx: int) -> str:
    """Assemble the 12-byte vendor signature held in EBX, ECX and EDX.

    The bytes are taken in little-endian order and the string ends at the
    first NUL byte.
    """
    raw = struct.pack("<III", ebx & 0xFFFFFFFF, ecx & 0xFFFFFFFF, edx & 0xFFFFFFFF)
    raw, _, _ = raw.partition(b"\0")
    return raw.decode("latin-1")


def canonical_magic(vendor: str) -> Optional[HypervisorMagic]:
    """Map a CPUID vendor signature to a known hypervisor, or None if unknown."""
    return _CPUID_SIGNATURES.get(vendor)


def hypervisor_bit_set(regs: CpuidRegisters) -> bool:
    """Return True if CPUID leaf 1 reports the hypervisor-present bit (ECX bit 31)."""
    return bool(regs.ecx & _HYPERVISOR_PRESENT_BIT)