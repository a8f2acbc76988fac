"""Best-effort detection of virtual machines, hypervisors and containers on Linux."""

__version__ = "0.1.0"