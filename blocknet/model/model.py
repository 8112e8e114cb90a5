"""
Model

PURPOSE:
A Model owns exactly one top-level Block together with the device and default
data type every tensor of that block uses. It is the unit of save/load.

WHAT THIS FILE DOES:
1. Holds block + device + dtype
2. Creates Trainers bound to this model
3. Saves parameters to "<name>-<epoch:04d>.params" (+ JSON properties)
4. Loads them back, rejecting truncated or over-long files
5. Releases parameter values on close (context manager)

PACKAGES USED:
- torch: device / dtype
- json: properties sidecar
- pathlib: file management

FILES FROM THIS PROJECT:
- model/block.py: save_parameters / load_parameters
- services/device_manager.py: device selection
- training/trainer.py: created by new_trainer

THREADING:
One Model = one device context = one writer. Do not run forward/backward
from several threads against the same Model without a lock of your own.
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, Optional, Union

import torch

from blocknet.errors import UninitializedStateError
from blocknet.model.block import Block
from blocknet.services.device_manager import resolve_device, warn_if_unsupported_dtype

logger = logging.getLogger(__name__)

PARAMS_SUFFIX = ".params"

_DTYPES = {
    "float32": torch.float32,
    "float64": torch.float64,
    "float16": torch.float16,
}


def dtype_name(dtype: torch.dtype) -> str:
    return str(dtype).replace("torch.", "")


def parse_dtype(value: Union[str, torch.dtype]) -> torch.dtype:
    if isinstance(value, torch.dtype):
        return value
    key = str(value).replace("torch.", "").lower()
    if key not in _DTYPES:
        raise ValueError(f"Unsupported model dtype: {value}. Must be one of {sorted(_DTYPES)}")
    return _DTYPES[key]


class Model:
    """
    Container for a block and its array-engine context.

    Example:
        >>> with Model("mlp", device="cpu") as model:
        ...     model.block = SequentialBlock().add(Linear(16)).add(Linear(2))
        ...     with model.new_trainer(TrainingConfig(initializer="xavier")) as trainer:
        ...         trainer.initialize((-1, 8))
        ...     model.save("checkpoints", epoch=1)
    """

    def __init__(
        self,
        name: str = "model",
        device: Union[str, torch.device] = "auto",
        dtype: Union[str, torch.dtype] = torch.float32,
    ):
        self.name = name
        self.device = resolve_device(device)
        self.dtype = parse_dtype(dtype)
        warn_if_unsupported_dtype(self.device, self.dtype)
        self.properties: Dict[str, str] = {}
        self._block: Optional[Block] = None

    @property
    def block(self) -> Block:
        if self._block is None:
            raise UninitializedStateError(f"Model '{self.name}' has no block; set model.block first")
        return self._block

    @block.setter
    def block(self, block: Block) -> None:
        self._block = block

    def set_block(self, block: Block) -> "Model":
        self.block = block
        return self

    def new_trainer(self, config):
        """Create a Trainer for this model (see training/trainer.py)."""
        from blocknet.training.trainer import Trainer

        return Trainer(self, config)

    # ------------------------------------------------------------------
    # Persistence

    def params_path(self, directory: Union[str, Path], name: Optional[str] = None, epoch: Optional[int] = None) -> Path:
        name = name or self.name
        stem = f"{name}-{epoch:04d}" if epoch is not None else name
        return Path(directory) / f"{stem}{PARAMS_SUFFIX}"

    def save(self, directory: Union[str, Path], name: Optional[str] = None, epoch: Optional[int] = None) -> Path:
        """
        Save block parameters.

        Args:
            directory: Target directory (created if missing)
            name: File name stem (default: model name)
            epoch: Appended as "-NNNN" when given

        Returns:
            Path of the written .params file

        Raises:
            UninitializedStateError: The block was never initialized
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = self.params_path(directory, name, epoch)

        with open(path, "wb") as f:
            self.block.save_parameters(f)

        properties = {
            "name": self.name,
            "dtype": dtype_name(self.dtype),
            "epoch": epoch,
            "num_parameters": len(self.block.parameters()),
            **self.properties,
        }
        with open(path.with_suffix(".json"), "w") as f:
            json.dump(properties, f, indent=2)

        logger.info(f"Model parameters saved: {path}")
        return path

    def load(self, directory: Union[str, Path], name: Optional[str] = None, epoch: Optional[int] = None) -> Path:
        """
        Load block parameters saved by save().

        With epoch=None the highest-epoch file for the name is used, falling
        back to the un-numbered file.

        Raises:
            FileNotFoundError: No matching .params file
            SerializationFormatError: Truncated, corrupt or over-long file
            ShapeMismatchError: File does not match the block's shapes
        """
        directory = Path(directory)
        name = name or self.name
        path = self.params_path(directory, name, epoch) if epoch is not None else self._latest(directory, name)
        if path is None or not path.exists():
            raise FileNotFoundError(f"No parameter file for '{name}' in {directory}")

        with open(path, "rb") as f:
            self.block.load_parameters(f, device=self.device, expect_end=True)

        props_path = path.with_suffix(".json")
        if props_path.exists():
            with open(props_path, "r") as f:
                stored = json.load(f)
            self.properties.update(
                {k: v for k, v in stored.items() if k not in ("name", "dtype", "epoch", "num_parameters")}
            )

        logger.info(f"Model parameters loaded: {path}")
        return path

    def _latest(self, directory: Path, name: str) -> Optional[Path]:
        pattern = re.compile(rf"^{re.escape(name)}-(\d+){re.escape(PARAMS_SUFFIX)}$")
        best, best_epoch = None, -1
        for candidate in directory.glob(f"{name}-*{PARAMS_SUFFIX}"):
            match = pattern.match(candidate.name)
            if match and int(match.group(1)) > best_epoch:
                best, best_epoch = candidate, int(match.group(1))
        if best is not None:
            return best
        plain = directory / f"{name}{PARAMS_SUFFIX}"
        return plain if plain.exists() else None

    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release parameter values held by the block."""
        if self._block is not None:
            self._block.close()

    def __enter__(self) -> "Model":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Model(name={self.name!r}, device={self.device}, dtype={dtype_name(self.dtype)})"
