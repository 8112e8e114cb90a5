"""
High-Level API for blocknet

Simple functions to train a block from a YAML configuration file.

Example:
    >>> import blocknet
    >>> from blocknet.model.architecture import Linear, SequentialBlock
    >>>
    >>> # Create a config file, then edit it
    >>> blocknet.create_config('my_config.yaml')
    >>>
    >>> # Train a block on .npy data listed in the config's "data" section
    >>> block = SequentialBlock().add(Linear(32)).add(Linear(4))
    >>> results = blocknet.train_from_config('my_config.yaml', block, input_shapes=[(-1, 16)])
    >>> print(results['checkpoint_dir'])
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from torch.utils.data import Dataset

from blocknet.configs.config_loader import (
    config_to_training_config,
    create_default_config_file,
    load_yaml_config,
    validate_config,
)
from blocknet.model.block import Block
from blocknet.model.model import Model
from blocknet.services.device_manager import DeviceManager
from blocknet.training.dataset import ArrayDataset, create_dataloaders
from blocknet.training.utils import count_parameters, set_seed

logger = logging.getLogger(__name__)


def create_config(output_path: str = "training_config.yaml") -> Path:
    """
    Create a default training configuration file.

    Args:
        output_path: Where to save the config file (default: 'training_config.yaml')
    """
    return create_default_config_file(output_path)


def _datasets_from_config(config: Dict[str, Any]):
    data = config.get("data") or {}
    if "train_features" not in data or "train_labels" not in data:
        raise ValueError("No datasets given and the config has no data.train_features / data.train_labels")
    train_dataset = ArrayDataset(data["train_features"], data["train_labels"])
    val_dataset = None
    if "val_features" in data and "val_labels" in data:
        val_dataset = ArrayDataset(data["val_features"], data["val_labels"])
    return train_dataset, val_dataset


def train_from_config(
    config_path: str,
    block: Block,
    input_shapes: Sequence[Sequence[int]],
    train_dataset: Optional[Dataset] = None,
    val_dataset: Optional[Dataset] = None,
    device: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Train a block using a YAML configuration file.

    Args:
        config_path: Path to YAML configuration file
        block: Block to train (uninitialized, or initialized for input_shapes)
        input_shapes: One shape per block input; -1 for the batch dimension
        train_dataset: Training dataset (default: .npy files from the config's data section)
        val_dataset: Validation dataset (optional)
        device: 'cuda', 'cpu' or 'auto'; overrides the config value

    Returns:
        Dictionary with training results:
            - final_train_loss
            - best_val_loss
            - total_steps
            - num_parameters
            - checkpoint_dir
            - params_file: final saved parameters

    Raises:
        FileNotFoundError: If config file or data files don't exist
        ValueError: If configuration is invalid or device is invalid
    """
    logger.info(f"Loading configuration from: {config_path}")
    config = load_yaml_config(config_path)
    validate_config(config)

    train_config = config_to_training_config(config)
    if device is not None:
        train_config.device = DeviceManager.validate_device(device, resolve_auto=False)

    device_manager = DeviceManager(preferred_device=train_config.device, allow_fallback=True)
    set_seed(train_config.seed)

    model_section = config.get("model", {})
    model = Model(
        name=model_section.get("name", "model"),
        device=device_manager.get_device(),
        dtype=model_section.get("dtype", "float32"),
    )
    model.block = block

    if train_dataset is None:
        train_dataset, val_dataset = _datasets_from_config(config)

    train_loader, val_loader = create_dataloaders(
        train_dataset, val_dataset, batch_size=train_config.batch_size, num_workers=0
    )

    with model.new_trainer(train_config) as trainer:
        trainer.initialize(*input_shapes)
        num_parameters = count_parameters(block)
        logger.info(f"Model: {model} | Parameters: {num_parameters:,}")

        final_metrics = trainer.fit(train_loader, val_loader, experiment_name=model.name)

    params_file = model.save(train_config.checkpoint_dir, epoch=train_config.num_epochs)

    return {
        **final_metrics,
        "num_parameters": num_parameters,
        "checkpoint_dir": str(train_config.checkpoint_dir),
        "params_file": str(params_file),
    }
