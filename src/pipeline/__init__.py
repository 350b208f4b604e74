"""
Pipeline module for frame evaluators.

The driver orchestrates the batch flow around an evaluator:
- Buffer allocation sized from the backend's constructor
- Batching of decoded frames (ragged final batch)
- Reconfiguration when the stream geometry changes
"""

from .driver import BatchDriver, BatchResult, DriverStats, device_configs

__all__ = [
    "BatchDriver",
    "BatchResult",
    "DriverStats",
    "device_configs",
]
