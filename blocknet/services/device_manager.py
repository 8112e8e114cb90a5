"""
Device Manager Service

PURPOSE:
Chooses the torch device a Model (and every parameter its blocks materialize)
lives on, from a config value such as 'cpu', 'cuda' or 'auto'.

DESIGN PATTERNS:
- Strategy Pattern: one strategy per device kind
- Single Responsibility: only device concerns; Model asks, blocks follow

WHAT THIS FILE DOES:
1. Normalizes and validates device names from configs and CLI arguments
2. Resolves 'auto' and falls back to CPU when CUDA is missing
3. Reports whether a device handles a parameter dtype well (float16 on CPU)
4. resolve_device(): the one call Model uses

PACKAGES USED:
- torch: device detection
- abc: strategy base class
"""

import logging
from abc import ABC, abstractmethod
from typing import Union

import torch

logger = logging.getLogger(__name__)

VALID_DEVICES = ("cuda", "cpu", "auto")


class DeviceStrategy(ABC):
    """How to obtain and describe one kind of device."""

    kind: str = ""

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    def device(self) -> torch.device:
        pass

    def supports_dtype(self, dtype: torch.dtype) -> bool:
        return True

    @abstractmethod
    def get_device_info(self) -> dict:
        pass


class CUDAStrategy(DeviceStrategy):
    kind = "cuda"

    def is_available(self) -> bool:
        return torch.cuda.is_available()

    def device(self) -> torch.device:
        return torch.device("cuda", torch.cuda.current_device())

    def get_device_info(self) -> dict:
        if not self.is_available():
            return {"device": self.kind, "available": False}
        return {
            "device": self.kind,
            "available": True,
            "device_name": torch.cuda.get_device_name(0),
            "device_count": torch.cuda.device_count(),
            "cuda_version": torch.version.cuda or "N/A",
        }


class CPUStrategy(DeviceStrategy):
    kind = "cpu"

    def is_available(self) -> bool:
        return True

    def device(self) -> torch.device:
        return torch.device("cpu")

    def supports_dtype(self, dtype: torch.dtype) -> bool:
        # half precision convolutions/recurrences are missing or very slow on CPU
        return dtype != torch.float16

    def get_device_info(self) -> dict:
        return {"device": self.kind, "available": True, "num_threads": torch.get_num_threads()}


class DeviceManager:
    """
    Picks the device for a Model.

    Example:
        >>> manager = DeviceManager("auto")
        >>> model = Model("mlp", device=manager.get_device())
    """

    def __init__(self, preferred_device: str = "auto", allow_fallback: bool = True):
        """
        Args:
            preferred_device: 'cuda', 'cpu' or 'auto'
            allow_fallback: Use the CPU when CUDA was asked for but is missing
        """
        self.preferred_device = self.validate_device(preferred_device, resolve_auto=False)
        self.allow_fallback = allow_fallback
        self.strategy: DeviceStrategy = CPUStrategy() if self.preferred_device == "cpu" else CUDAStrategy()
        self._fallback = CPUStrategy()

    def _active_strategy(self) -> DeviceStrategy:
        if self.strategy.is_available():
            return self.strategy
        if self.preferred_device == "auto":
            return self._fallback
        if self.allow_fallback:
            logger.warning("CUDA requested but not available. Falling back to CPU.")
            return self._fallback
        raise RuntimeError(f"Device '{self.preferred_device}' is not available and fallback is disabled")

    def get_device(self) -> torch.device:
        """
        Raises:
            RuntimeError: CUDA asked for explicitly, missing, and fallback disabled
        """
        return self._active_strategy().device()

    def supports_dtype(self, dtype: torch.dtype) -> bool:
        return self._active_strategy().supports_dtype(dtype)

    def get_device_info(self) -> dict:
        active = self._active_strategy()
        info = active.get_device_info()
        info["preferred_device"] = self.preferred_device
        info["actual_device"] = active.kind
        info["allow_fallback"] = self.allow_fallback
        return info

    @staticmethod
    def validate_device(device: str, resolve_auto: bool = True) -> str:
        """
        Normalize a device name.

        Args:
            device: 'cuda', 'cpu' or 'auto' (any case, surrounding spaces ignored)
            resolve_auto: Replace 'auto' with the best available kind

        Raises:
            ValueError: Any other name
        """
        name = str(device).lower().strip()
        if name not in VALID_DEVICES:
            raise ValueError(f"Invalid device: '{device}'. Must be one of {list(VALID_DEVICES)}")
        if name == "auto" and resolve_auto:
            return DeviceManager.get_optimal_device()
        return name

    @staticmethod
    def get_optimal_device() -> str:
        return "cuda" if torch.cuda.is_available() else "cpu"


def resolve_device(device: Union[str, torch.device, None] = "auto") -> torch.device:
    """
    Turn a config value into a torch.device.

    torch.device instances pass through; names go through DeviceManager with
    CPU fallback.
    """
    if isinstance(device, torch.device):
        return device
    return DeviceManager(device or "auto").get_device()


def warn_if_unsupported_dtype(device: torch.device, dtype: torch.dtype) -> bool:
    """Log a warning when the device handles the dtype poorly; returns whether it is supported."""
    strategy = CPUStrategy() if device.type == "cpu" else CUDAStrategy()
    supported = strategy.supports_dtype(dtype)
    if not supported:
        logger.warning(f"{dtype} parameters on {device} are slow or unsupported for some blocks")
    return supported
