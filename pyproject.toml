[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vmsense"
version = "0.1.0"
description = "Best-effort detection of virtual machines, hypervisors and containers on Linux"
requires-python = ">=3.10"
dependencies = []
keywords = ["virtualization", "hypervisor", "vm-detection", "container", "cpuid", "dmi", "sysadmin"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
vmsense = "vmsense.cli:main"
vmsense-safe = "vmsense.safe_cli:main"

[tool.hatch.build.targets.wheel]
packages = ["vmsense"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
