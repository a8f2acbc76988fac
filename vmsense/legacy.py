"""Older hypervisor checks: vendor CPUID leaves, DMI prefixes and vendor tools.

These checks come from an earlier detection scheme and are kept for systems
where the newer signals are hidden but the older ones still show. Probes that
need privileged port I/O or trap handlers are not performed.
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from vmsense.cpuid import (
    HYPERVISOR_LEAF,
    NOT_FOUND,
    CpuidRegisters,
    HypervisorMagic,
    vendor_string,
)
from vmsense.sysutil import ExecResult, exec_capture, read_text, trim

Runner = Callable[[Sequence[str]], ExecResult]
CpuidReader = Callable[[int, int], CpuidRegisters]

_DMI_SYS_VENDOR = "/sys/devices/virtual/dmi/id/sys_vendor"
_CPUINFO = "/proc/cpuinfo"
_DMIDECODE_ARGV = ("dmidecode", "-s", "system-manufacturer")
_CHECKVM_ARGV = ("vmware-checkvm",)
_DMIDECODE_TIMEOUT = 10
_CHECKVM_OUTPUT_LIMIT = 50 * 1024

# Xen scan stops before this leaf; the vendor scan includes it.
_LEAF_LIMIT = 0x40010000
_LEAF_STEP = 0x100


class VmLabel(enum.IntEnum):
    """Hypervisor families the checks can report."""

    NOTFOUND = 0
    VMWARE = 1
    XEN = 2
    KVM = 3
    PAR = 4
    QEMU = 5
    HYPERV = 6
    VBOX = 7
    BHYVE = 8

    @property
    def magic(self) -> str:
        """The vendor name reported for this family."""
        return _MAGIC_NAMES[self]


_MAGIC_NAMES = {
    VmLabel.NOTFOUND: NOT_FOUND,
    VmLabel.VMWARE: HypervisorMagic.VMWARE.value,
    VmLabel.XEN: HypervisorMagic.XEN.value,
    VmLabel.KVM: HypervisorMagic.KVM.value,
    VmLabel.PAR: HypervisorMagic.PARALLELS.value,
    VmLabel.QEMU: "QEMU",
    VmLabel.HYPERV: HypervisorMagic.HYPERV.value,
    VmLabel.VBOX: HypervisorMagic.VBOX.value,
    VmLabel.BHYVE: HypervisorMagic.BHYVE.value,
}

# DMI vendor prefixes, checked in this order.
_DMI_PREFIXES = (
    ("VMware", VmLabel.VMWARE),
    ("Xen", VmLabel.XEN),
    ("Parallels", VmLabel.PAR),
)


@dataclass(frozen=True)
class LegacyResult:
    """Outcome of the legacy detection path."""

    is_vm: bool
    label: VmLabel

    @property
    def hypervisor_name(self) -> str:
        """Vendor name of the detected hypervisor, or "NOTFOUND"."""
        return self.label.magic


def _label_from_prefix(text: str) -> VmLabel:
    return next(
        (label for prefix, label in _DMI_PREFIXES if text.startswith(prefix)),
        VmLabel.NOTFOUND,
    )


class LegacyProbe:
    """Runs the legacy checks against a system.

    ``root`` is where /sys and /proc are read from, ``runner`` runs external
    tools and ``cpuid`` answers CPUID queries as ``cpuid(leaf, subleaf)``.
    Without a ``cpuid`` reader the CPUID-based checks find nothing.
    """

    def __init__(
        self,
        root: str | os.PathLike[str] = "/",
        runner: Optional[Runner] = None,
        cpuid: Optional[CpuidReader] = None,
    ) -> None:
        self._root = os.fspath(root)
        self._runner = runner
        self._cpuid = cpuid

    def _path(self, absolute: str) -> str:
        return os.path.join(self._root, absolute.lstrip("/"))

    def _run(self, argv: Sequence[str], timeout: Optional[float] = None) -> ExecResult:
        if self._runner is None:
            return exec_capture(list(argv), timeout)
        return self._runner(list(argv))

    def _query(self, leaf: int) -> CpuidRegisters:
        if self._cpuid is None:
            return CpuidRegisters()
        return self._cpuid(leaf, 0)

    def check_dmi(self) -> Optional[VmLabel]:
        """Classify the DMI system vendor; None if it cannot be read."""
        text = read_text(self._path(_DMI_SYS_VENDOR), 4096)
        if text is None:
            return None
        return _label_from_prefix(trim(text))

    def check_dmidecode(self) -> Optional[VmLabel]:
        """Classify the manufacturer reported by dmidecode; None if it could not run."""
        result = self._run(_DMIDECODE_ARGV, _DMIDECODE_TIMEOUT)
        if result.exit_code < 0:
            return None
        return _label_from_prefix(trim(result.stdout))

    def check_proc_cpuinfo_qemu(self) -> Optional[VmLabel]:
        """Look for the QEMU virtual CPU model; None if /proc/cpuinfo is unreadable."""
        text = read_text(self._path(_CPUINFO), 64 * 1024)
        if text is None:
            return None
        return VmLabel.QEMU if "QEMU Virtual" in text else VmLabel.NOTFOUND

    def vmware_checkvm(self) -> Optional[VmLabel]:
        """Ask the VMware guest tool; None if it could not be started."""
        result = self._run(_CHECKVM_ARGV)
        if result.exit_code < 0:
            return None
        output = result.stdout[:_CHECKVM_OUTPUT_LIMIT]
        return VmLabel.VMWARE if "VMware" in output else VmLabel.NOTFOUND

    def check_for_xen(self) -> int:
        """Return the Xen version word from the Xen leaves, or 0 if Xen is absent."""
        for base in range(HYPERVISOR_LEAF, _LEAF_LIMIT, _LEAF_STEP):
            regs = self._query(base)
            vendor = vendor_string(regs.ebx, regs.ecx, regs.edx)
            if vendor == HypervisorMagic.XEN.value and regs.eax >= base + 2:
                return self._query(base + 1).eax
        return 0

    def scan_vendor_leaves(self) -> VmLabel:
        """Scan the hypervisor leaves for vendor signatures.

        Returns VMWARE, XEN or HYPERV for a decisive match, KVM when only a
        KVM signature was seen, and NOTFOUND otherwise.
        """
        hyperv_seen = False
        kvm_seen = False
        for leaf in range(HYPERVISOR_LEAF, _LEAF_LIMIT + 1, _LEAF_STEP):
            regs = self._query(leaf)
            vendor = vendor_string(regs.ebx, regs.ecx, regs.edx)
            beyond_base = leaf > HYPERVISOR_LEAF
            if vendor == HypervisorMagic.VMWARE.value:
                return VmLabel.VMWARE
            if vendor == HypervisorMagic.HYPERV.value:
                hyperv_seen = True
            if vendor == HypervisorMagic.XEN.value and beyond_base:
                return VmLabel.XEN
            if vendor == HypervisorMagic.KVM.value:
                kvm_seen = True
            if hyperv_seen and beyond_base:
                return VmLabel.HYPERV
        return VmLabel.KVM if kvm_seen else VmLabel.NOTFOUND

    def detect(self) -> LegacyResult:
        """Run the legacy checks in order and report the first conclusive one."""
        if self.vmware_checkvm() is VmLabel.VMWARE:
            return LegacyResult(True, VmLabel.VMWARE)

        scanned = self.scan_vendor_leaves()
        if scanned in (VmLabel.VMWARE, VmLabel.XEN, VmLabel.HYPERV):
            return LegacyResult(True, scanned)

        if self.check_for_xen() != 0:
            return LegacyResult(True, VmLabel.XEN)

        # The VMware I/O port probe needs privileged port access and is not run.

        if scanned is VmLabel.KVM:
            if self.check_dmi() is VmLabel.PAR:
                return LegacyResult(True, VmLabel.PAR)
            return LegacyResult(True, VmLabel.KVM)

        if self.check_proc_cpuinfo_qemu() is VmLabel.QEMU:
            return LegacyResult(True, VmLabel.QEMU)

        vm_labels = (VmLabel.VMWARE, VmLabel.XEN, VmLabel.PAR)
        dmi = self.check_dmi()
        if dmi in vm_labels:
            return LegacyResult(True, dmi)
        if dmi is None:
            decoded = self.check_dmidecode()
            if decoded in vm_labels:
                return LegacyResult(True, decoded)

        return LegacyResult(False, VmLabel.NOTFOUND)