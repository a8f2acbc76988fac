"""Heuristic VM and container detection from documented host signals."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from vmsense.sysutil import (
    ExecResult,
    contains_icase,
    exec_capture,
    path_exists,
    read_all,
    read_first_line,
    trim,
)

Runner = Callable[[Sequence[str]], ExecResult]

_CONTAINER_HINTS = (
    "docker",
    "podman",
    "lxc",
    "lxd",
    "nspawn",
    "systemd-nspawn",
    "openvz",
    "wsl",
)

_VM_HINTS = (
    "kvm",
    "qemu",
    "vmware",
    "microsoft",
    "hyper-v",
    "xen",
    "virtualbox",
    "oracle",
    "bhyve",
    "parallels",
)

_DMI_VM_HINTS = ("vmware", "virtualbox", "qemu", "kvm", "xen", "microsoft")

# Ordered so the most specific label wins.
_DMI_VENDOR_LABELS = (
    (("vmware",), "vmware"),
    (("virtualbox", "innotek"), "virtualbox"),
    (("xen",), "xen"),
    (("microsoft",), "hyper-v"),
    (("kvm",), "kvm"),
    (("qemu",), "qemu"),
)

_SCORE_DETECT_VIRT = 60
_SCORE_DMI = 25
_SCORE_HYPERVISOR_TYPE = 25
_SCORE_XEN_PROCFS = 20
_SCORE_CPUINFO_FLAG = 15
_SCORE_VIRT_WHAT = 25


class VirtKind(enum.IntEnum):
    """What kind of environment the process runs in."""

    UNKNOWN = 0
    BARE_METAL = 1
    VM = 2
    CONTAINER = 3


@dataclass
class DetectResult:
    """Aggregated detection outcome.

    ``vendor`` is a best-effort label such as "kvm", "vmware", "docker" or
    "none"; ``confidence_percent`` is a heuristic score in 0..100 and
    ``evidence`` holds human-readable "source: value" lines.
    """

    kind: VirtKind = VirtKind.UNKNOWN
    vendor: str = ""
    confidence_percent: int = 0
    evidence: List[str] = field(default_factory=list)

    def is_virtualized(self) -> bool:
        """True for a virtual machine or a container."""
        return self.kind in (VirtKind.VM, VirtKind.CONTAINER)

    def is_vm(self) -> bool:
        """True for a virtual machine."""
        return self.kind is VirtKind.VM

    def is_container(self) -> bool:
        """True for a container."""
        return self.kind is VirtKind.CONTAINER


def looks_like_container_vendor(vendor: str) -> bool:
    """Return True if the label names a container runtime."""
    return any(contains_icase(vendor, hint) for hint in _CONTAINER_HINTS)


def looks_like_vm_vendor(vendor: str) -> bool:
    """Return True if the label names a known hypervisor."""
    return any(contains_icase(vendor, hint) for hint in _VM_HINTS)


def _clamp_percent(value: int) -> int:
    return max(0, min(100, value))


class SafeDetector:
    """Detects virtualization without any probing that can upset hardware.

    ``root`` is the directory the kernel's /sys and /proc trees are read
    from, and ``runner`` runs helper tools; both default to the live system.
    """

    def __init__(self, root: str | os.PathLike[str] = "/", runner: Optional[Runner] = None) -> None:
        self._root = os.fspath(root)
        self._runner: Runner = runner if runner is not None else exec_capture
        self._last: Optional[DetectResult] = None

    def _path(self, absolute: str) -> str:
        return os.path.join(self._root, absolute.lstrip("/"))

    def _run(self, *argv: str) -> str:
        return trim(self._runner(list(argv)).stdout)

    @staticmethod
    def _mark_vm(res: DetectResult) -> None:
        if res.kind in (VirtKind.UNKNOWN, VirtKind.BARE_METAL):
            res.kind = VirtKind.VM

    def detect(self) -> DetectResult:
        """Gather all signals and return the combined result."""
        res = DetectResult()
        score = 0

        out = self._run("systemd-detect-virt")
        if out:
            res.evidence.append(f"systemd-detect-virt: {out}")
            if out != "none":
                res.vendor = out
                res.kind = VirtKind.CONTAINER if looks_like_container_vendor(out) else VirtKind.VM
                score += _SCORE_DETECT_VIRT
            elif res.kind is VirtKind.UNKNOWN:
                res.kind = VirtKind.BARE_METAL

        dmi = [
            ("dmi sys_vendor", read_first_line(self._path("/sys/class/dmi/id/sys_vendor"))),
            ("dmi product_name", read_first_line(self._path("/sys/class/dmi/id/product_name"))),
            ("dmi bios_vendor", read_first_line(self._path("/sys/class/dmi/id/bios_vendor"))),
        ]
        present = [(label, value) for label, value in dmi if value is not None]
        res.evidence.extend(f"{label}: {value}" for label, value in present)
        combined = " ".join(value for _, value in present)
        if present and any(contains_icase(combined, hint) for hint in _DMI_VM_HINTS):
            self._mark_vm(res)
            score += _SCORE_DMI
            if not res.vendor:
                res.vendor = next(
                    (
                        label
                        for hints, label in _DMI_VENDOR_LABELS
                        if any(contains_icase(combined, hint) for hint in hints)
                    ),
                    "",
                )

        hyp_type = read_first_line(self._path("/sys/hypervisor/type"))
        if hyp_type:
            res.evidence.append(f"/sys/hypervisor/type: {hyp_type}")
            self._mark_vm(res)
            score += _SCORE_HYPERVISOR_TYPE
            if not res.vendor:
                res.vendor = hyp_type

        if path_exists(self._path("/proc/xen")) or path_exists(self._path("/proc/xen/capabilities")):
            res.evidence.append("xen procfs marker: present")
            self._mark_vm(res)
            score += _SCORE_XEN_PROCFS
            if not res.vendor:
                res.vendor = "xen"

        cpuinfo = read_all(self._path("/proc/cpuinfo"))
        if cpuinfo is not None and contains_icase(cpuinfo, " hypervisor"):
            res.evidence.append("/proc/cpuinfo flags: includes 'hypervisor'")
            self._mark_vm(res)
            score += _SCORE_CPUINFO_FLAG

        out = self._run("virt-what")
        if out:
            res.evidence.append(f"virt-what: {out}")
            self._mark_vm(res)
            score += _SCORE_VIRT_WHAT
            if not res.vendor:
                res.vendor = out.split(None, 1)[0] if out.split() else out

        if res.kind is VirtKind.UNKNOWN:
            res.kind = VirtKind.BARE_METAL
        if not res.vendor:
            res.vendor = "none" if res.kind is VirtKind.BARE_METAL else "unknown"
        res.confidence_percent = _clamp_percent(score)

        self._last = res
        return res

    def is_vm(self) -> bool:
        """Run detection and report whether a virtual machine was found.

        Containers are not reported as virtual machines.
        """
        return self.detect().is_vm()

    def last_result(self) -> Optional[DetectResult]:
        """The result of the most recent detection, or None if none ran."""
        return self._last