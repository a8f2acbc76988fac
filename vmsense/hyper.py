"""Hypervisor detection combining CPUID, sysfs, procfs and helper tools."""

from __future__ import annotations

import logging
import os
from typing import Callable, List, Optional, Sequence

from vmsense.cpuid import (
    HYPERVISOR_LEAF,
    MAX_NAME_LEN,
    NOT_FOUND,
    CpuidRegisters,
    HypervisorMagic,
    canonical_magic,
    hypervisor_bit_set,
    vendor_string,
)
from vmsense.legacy import LegacyProbe
from vmsense.sysutil import (
    ExecResult,
    contains_icase,
    exec_capture,
    path_exists,
    read_text,
    trim,
)

Runner = Callable[[Sequence[str]], ExecResult]
CpuidReader = Callable[[int, int], CpuidRegisters]

_log = logging.getLogger(__name__)

_HELPER_TIMEOUT = 3

_DMI_PATHS = (
    "/sys/class/dmi/id/sys_vendor",
    "/sys/class/dmi/id/product_name",
    "/sys/class/dmi/id/product_version",
    "/sys/class/dmi/id/board_vendor",
    "/sys/class/dmi/id/bios_vendor",
    "/sys/devices/virtual/dmi/id/sys_vendor",
)

# Checked in order; the first group with a matching hint decides the vendor.
_DMI_HINTS = (
    (("vmware",), HypervisorMagic.VMWARE),
    (("virtualbox", "innotek", "oracle"), HypervisorMagic.VBOX),
    (("kvm", "qemu", "rhev", "ovirt", "red hat"), HypervisorMagic.KVM),
    (("xen",), HypervisorMagic.XEN),
    (("microsoft corporation", "hyper-v"), HypervisorMagic.HYPERV),
    (("parallels",), HypervisorMagic.PARALLELS),
    (("bhyve",), HypervisorMagic.BHYVE),
)

_GUEST_MODULES = (
    ("/sys/module/vboxguest", HypervisorMagic.VBOX, "vboxguest module present"),
    ("/sys/module/vmwgfx", HypervisorMagic.VMWARE, "vmwgfx module present"),
    ("/sys/module/hv_vmbus", HypervisorMagic.HYPERV, "Hyper-V vmbus module present"),
    ("/sys/module/xenfs", HypervisorMagic.XEN, "xenfs module present"),
    ("/sys/module/kvm", HypervisorMagic.KVM, "kvm module present (weak signal inside guest)"),
)

_DETECT_VIRT_NAMES = {
    "kvm": HypervisorMagic.KVM,
    "qemu": HypervisorMagic.KVM,
    "vmware": HypervisorMagic.VMWARE,
    "oracle": HypervisorMagic.VBOX,
    "vbox": HypervisorMagic.VBOX,
    "microsoft": HypervisorMagic.HYPERV,
    "hyperv": HypervisorMagic.HYPERV,
    "xen": HypervisorMagic.XEN,
    "parallels": HypervisorMagic.PARALLELS,
}

_VIRT_WHAT_HINTS = (
    (("kvm", "qemu"), HypervisorMagic.KVM),
    (("vmware",), HypervisorMagic.VMWARE),
    (("xen",), HypervisorMagic.XEN),
    (("hyperv",), HypervisorMagic.HYPERV),
    (("virtualbox",), HypervisorMagic.VBOX),
    (("parallels",), HypervisorMagic.PARALLELS),
)


def _match_hints(text: str, table) -> Optional[HypervisorMagic]:
    return next(
        (magic for hints, magic in table if any(contains_icase(text, hint) for hint in hints)),
        None,
    )


class HypervisorDetector:
    """Best-effort detector for whether the process runs under a hypervisor.

    ``root`` is the directory /sys and /proc are read from, ``runner`` runs
    helper tools and ``cpuid`` answers CPUID queries as ``cpuid(leaf, subleaf)``.
    Without a ``cpuid`` reader, CPUID is treated as unavailable.

    Each ``detect_via_*`` method returns None when it finds no VM signal, and
    otherwise the vendor signature it found, which may be empty when the
    vendor is unknown.
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
        self._name = NOT_FOUND
        self._evidence: List[str] = []
        _log.debug("Hypervisor ID initialized to: %s", self._name)

    def _path(self, absolute: str) -> str:
        return os.path.join(self._root, absolute.lstrip("/"))

    def _run(self, argv: Sequence[str]) -> ExecResult:
        if self._runner is None:
            return exec_capture(list(argv), _HELPER_TIMEOUT)
        return self._runner(list(argv))

    def _set_name(self, magic: str) -> None:
        self._name = magic[:MAX_NAME_LEN] if magic else NOT_FOUND

    def hypervisor_name(self) -> str:
        """Vendor signature found by the most recent detection, or "NOTFOUND"."""
        return self._name

    def evidence(self) -> List[str]:
        """Human-readable evidence collected by the modern detection path."""
        return list(self._evidence)

    def is_vm(self) -> bool:
        """Run the default (modern) detection path."""
        return self.is_vm_modern()

    def is_vm_modern(self) -> bool:
        """Try each signal from strongest to weakest; True at the first VM signal."""
        self._evidence.clear()
        checks = (
            self.detect_via_cpuid,
            self.detect_via_xen_sysfs,
            self.detect_via_dmi_sysfs,
            self.detect_via_guest_drivers,
            self.detect_via_cpuinfo,
            self.detect_via_helper_tools,
        )
        for check in checks:
            magic = check()
            if magic is not None:
                self._set_name(magic)
                return True
        self._set_name("")
        self._evidence.append("No VM signals found (modern path) -> assuming bare metal")
        return False

    def is_vm_legacy(self) -> bool:
        """Run the legacy detection path; bare metal when CPUID is unavailable."""
        if self._cpuid is None:
            self._set_name("")
            return False
        result = LegacyProbe(self._root, self._runner, self._cpuid).detect()
        self._name = result.hypervisor_name
        return result.is_vm

    def detect_via_cpuid(self) -> Optional[str]:
        """Check the hypervisor-present bit and the hypervisor vendor leaf."""
        if self._cpuid is None:
            return None
        if not hypervisor_bit_set(self._cpuid(1, 0)):
            self._evidence.append("CPUID leaf 1: hypervisor bit NOT set")
            return None
        self._evidence.append("CPUID leaf 1: hypervisor bit set")

        regs = self._cpuid(HYPERVISOR_LEAF, 0)
        vendor = vendor_string(regs.ebx, regs.ecx, regs.edx)
        self._evidence.append(f"CPUID 0x40000000 vendor: {vendor}")
        magic = canonical_magic(vendor)
        return magic.value if magic is not None else vendor

    def detect_via_dmi_sysfs(self) -> Optional[str]:
        """Match DMI vendor and product strings against known hypervisors."""
        entries = []
        for path in _DMI_PATHS:
            text = read_text(self._path(path), 4096)
            if text is None:
                continue
            value = trim(text)
            if value:
                entries.append(f"{path}={value}\n")
        aggregate = "".join(entries)
        if not aggregate:
            return None

        self._evidence.append(f"DMI sysfs:\n{aggregate}")
        magic = _match_hints(aggregate, _DMI_HINTS)
        return magic.value if magic is not None else None

    def detect_via_xen_sysfs(self) -> Optional[str]:
        """Look for Xen in /sys/hypervisor/type and the /proc/xen tree."""
        text = read_text(self._path("/sys/hypervisor/type"), 128)
        if text is not None:
            value = trim(text)
            self._evidence.append(f"/sys/hypervisor/type={value}")
            if contains_icase(value, "xen"):
                return HypervisorMagic.XEN.value

        if path_exists(self._path("/proc/xen/capabilities")) or path_exists(self._path("/proc/xen")):
            self._evidence.append("Found /proc/xen*")
            return HypervisorMagic.XEN.value
        return None

    def detect_via_guest_drivers(self) -> Optional[str]:
        """Look for loaded guest driver modules."""
        for path, magic, note in _GUEST_MODULES:
            if path_exists(self._path(path)):
                self._evidence.append(f"Guest driver signal: {note} ({path})")
                return magic.value
        return None

    def detect_via_cpuinfo(self) -> Optional[str]:
        """Look for QEMU/KVM strings or the hypervisor flag in /proc/cpuinfo."""
        cpuinfo = read_text(self._path("/proc/cpuinfo"), 64 * 1024)
        if cpuinfo is None:
            return None
        if any(contains_icase(cpuinfo, hint) for hint in ("QEMU Virtual", "TCG", "KVM")):
            self._evidence.append("/proc/cpuinfo contains QEMU/KVM/TCG string")
            return HypervisorMagic.KVM.value
        if contains_icase(cpuinfo, " hypervisor "):
            self._evidence.append("/proc/cpuinfo indicates hypervisor flag")
            return ""
        return None

    def detect_via_helper_tools(self) -> Optional[str]:
        """Ask systemd-detect-virt and then virt-what, when they are installed."""
        result = self._run(("systemd-detect-virt", "--vm"))
        if result.exit_code == 0:
            out = trim(result.stdout)
            if out and out != "none":
                self._evidence.append(f"systemd-detect-virt --vm: {out}")
                magic = _DETECT_VIRT_NAMES.get(out)
                return magic.value if magic is not None else ""

        result = self._run(("virt-what",))
        if result.exit_code == 0:
            out = trim(result.stdout)
            if out:
                self._evidence.append(f"virt-what: {out}")
                magic = _match_hints(out, _VIRT_WHAT_HINTS)
                return magic.value if magic is not None else ""
        return None