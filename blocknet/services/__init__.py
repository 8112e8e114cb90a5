"""
Services Layer

Device selection following the strategy pattern.
"""

from blocknet.services.device_manager import DeviceManager, DeviceStrategy

__all__ = [
    "DeviceManager",
    "DeviceStrategy",
]
