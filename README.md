# vmsense

Best-effort detection of whether a Linux host runs on bare metal, inside a
virtual machine, or inside a container. Each decision comes with the evidence
behind it: DMI strings in sysfs, `/sys/hypervisor/type`, Xen procfs markers,
guest driver modules under `/sys/module`, `/proc/cpuinfo`, and the optional
helper tools `systemd-detect-virt`, `virt-what`, `dmidecode` and
`vmware-checkvm` when they are installed.

VM detection is inherently probabilistic. A carefully configured hypervisor
can hide most signals, so treat the results as evidence rather than proof.

## Installation

```
pip install .
```

## Command line

Two commands are installed.

### `vmsense-safe`

Uses only documented host signals and prints the kind (`bare-metal`, `vm`,
`container`), a vendor label and a heuristic confidence score from 0 to 100:

```
$ vmsense-safe --evidence
kind=vm vendor=kvm confidence=100%
  - systemd-detect-virt: kvm
  - dmi sys_vendor: QEMU
  - dmi product_name: Standard PC (Q35 + ICH9, 2009)
  - /proc/cpuinfo flags: includes 'hypervisor'
```

`-e` is accepted as a short form of `--evidence`. The exit status is 0 when
the host is virtualized (VM or container) and 1 otherwise.

### `vmsense`

Runs the hypervisor detector, which tries to name the hypervisor by its
vendor signature (`VMwareVMware`, `XenVMMXenVMM`, `KVMKVMKVM`,
`Microsoft Hv`, `VBoxVBoxVBox`, `bhyve bhyve `, `Parallels`, or `NOTFOUND`),
then reports the result of the older legacy checks. Evidence lines are
printed when the first argument is `--evidence`:

```
$ vmsense --evidence
VM
XenVMMXenVMM
Legacy path: BAREMETAL
- /sys/hypervisor/type=xen
```

The exit status is 0 when a VM was detected and 1 otherwise.

## Library use

```python
from vmsense.safe import SafeDetector, VirtKind

result = SafeDetector().detect()
if result.kind is VirtKind.CONTAINER:
    print("running in a container:", result.vendor)
print(result.confidence_percent, result.evidence)
```

```python
from vmsense.hyper import HypervisorDetector

detector = HypervisorDetector()
if detector.is_vm():
    print(detector.hypervisor_name())
for line in detector.evidence():
    print(line)
```

Both detectors accept a `root` directory from which the sysfs and procfs
paths are read, and a `runner` callable that takes an argument list and
returns a `vmsense.sysutil.ExecResult`. `HypervisorDetector` and
`vmsense.legacy.LegacyProbe` also accept a `cpuid(leaf, subleaf)` callable
returning `vmsense.cpuid.CpuidRegisters`. This makes them easy to drive
against a captured filesystem snapshot or in tests:

```python
from vmsense.cpuid import CpuidRegisters
from vmsense.hyper import HypervisorDetector

def fake_cpuid(leaf, subleaf):
    if leaf == 1:
        return CpuidRegisters(ecx=1 << 31)
    # "KVMKVMKVM" in EBX, ECX, EDX
    return CpuidRegisters(ebx=0x4B4D564B, ecx=0x564B4D56, edx=0x4D)

detector = HypervisorDetector(root="/tmp/snapshot", cpuid=fake_cpuid)
detector.is_vm()             # True
detector.hypervisor_name()   # "KVMKVMKVM"
```

## What it does not do

- The package never executes the CPUID instruction itself. Without a `cpuid`
  callable, the CPUID checks find nothing; in particular the `vmsense`
  command passes none, so its modern path relies on sysfs, procfs and helper
  tools, and its legacy path always reports `BAREMETAL`.
- Probes that need privileged port I/O or trap handlers (such as the VMware
  I/O port check) are not performed.
- Only Linux hosts are examined; there is no detection for other operating
  systems.

## Running the tests

```
pip install .[test]
pytest
```