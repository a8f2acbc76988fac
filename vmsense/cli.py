"""Command line front end for the hypervisor detector."""

from __future__ import annotations

import sys
from typing import Optional, Sequence

from vmsense.hyper import HypervisorDetector


def _label(is_vm: bool) -> str:
    return "VM" if is_vm else "BAREMETAL"


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run both detection paths, print the outcome, and return 0 for a VM, else 1.

    Evidence is printed when the first argument is ``--evidence``.
    """
    args = list(sys.argv[1:] if argv is None else argv)
    show_evidence = bool(args) and args[0] == "--evidence"

    detector = HypervisorDetector()
    is_vm = detector.is_vm()
    is_vm_legacy = detector.is_vm_legacy()

    print(_label(is_vm))
    print(detector.hypervisor_name())
    print(f"Legacy path: {_label(is_vm_legacy)}")
    if show_evidence:
        for item in detector.evidence():
            print(f"- {item}")

    return 0 if is_vm else 1


if __name__ == "__main__":
    sys.exit(main())