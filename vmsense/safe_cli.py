"""Command line front end for the safe detector."""

from __future__ import annotations

import sys
from typing import Optional, Sequence

from vmsense.safe import DetectResult, SafeDetector, VirtKind

_KIND_NAMES = {
    VirtKind.BARE_METAL: "bare-metal",
    VirtKind.VM: "vm",
    VirtKind.CONTAINER: "container",
}


def kind_to_str(kind: VirtKind) -> str:
    """Short label for an environment kind."""
    return _KIND_NAMES.get(kind, "unknown")


def format_result(result: DetectResult, show_evidence: bool = False) -> str:
    """Render a result as the lines the command prints."""
    lines = [
        f"kind={kind_to_str(result.kind)} vendor={result.vendor} "
        f"confidence={result.confidence_percent}%"
    ]
    if show_evidence:
        lines.extend(f"  - {item}" for item in result.evidence)
    return "\n".join(lines)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Detect the environment, print it, and return 0 if virtualized, else 1."""
    args = list(sys.argv[1:] if argv is None else argv)
    show_evidence = any(arg in ("--evidence", "-e") for arg in args)

    result = SafeDetector().detect()
    print(format_result(result, show_evidence))
    return 0 if result.is_virtualized() else 1


if __name__ == "__main__":
    sys.exit(main())