"""
Configuration File Loader

Load training configuration from a YAML file for easy user customization.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from blocknet.configs.train_config import TrainingConfig
from blocknet.training.initializer import get_initializer

logger = logging.getLogger(__name__)


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Dictionary with configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If YAML parsing fails
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        try:
            config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing YAML configuration: {e}")

    if not isinstance(config, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return config


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration parameters.

    Args:
        config: Configuration dictionary

    Raises:
        ValueError: If configuration is invalid
    """
    required_sections = ["model", "training"]
    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required section: {section}")

    model = config["model"]
    get_initializer(model.get("initializer", "xavier"))

    valid_dtypes = ["float32", "float64", "float16"]
    if model.get("dtype", "float32") not in valid_dtypes:
        raise ValueError(f"Invalid model dtype: {model['dtype']}. Must be one of {valid_dtypes}")

    training = config["training"]
    if training.get("num_epochs", 1) <= 0:
        raise ValueError("num_epochs must be positive")
    if training.get("batch_size", 1) <= 0:
        raise ValueError("batch_size must be positive")
    if training.get("learning_rate", 1e-3) <= 0:
        raise ValueError("learning_rate must be positive")

    valid_losses = ["softmax_cross_entropy", "l2", "l1", "sigmoid_bce"]
    if training.get("loss", "softmax_cross_entropy") not in valid_losses:
        raise ValueError(f"Invalid loss: {training['loss']}. Must be one of {valid_losses}")

    valid_optimizers = ["adamw", "adam", "sgd"]
    optimizer = config.get("optimizer", {}).get("name", "adamw")
    if optimizer not in valid_optimizers:
        raise ValueError(f"Invalid optimizer: {optimizer}. Must be one of {valid_optimizers}")

    valid_devices = ["cuda", "cpu", "auto"]
    device_value = str(config.get("device", {}).get("device", "auto")).lower()
    if device_value not in valid_devices:
        raise ValueError(f"Invalid device: {device_value}. Must be one of {valid_devices}")


def config_to_training_config(config: Dict[str, Any]) -> TrainingConfig:
    """
    Convert a YAML config to a TrainingConfig.

    Missing keys keep the TrainingConfig defaults.
    """
    model = config.get("model", {})
    training = config.get("training", {})
    optimizer = config.get("optimizer", {})
    checkpointing = config.get("checkpointing", {})
    logging_section = config.get("logging", {})
    device = config.get("device", {})

    args = {
        "initializer": model.get("initializer"),
        # Training
        "loss": training.get("loss"),
        "num_epochs": training.get("num_epochs"),
        "max_steps": training.get("max_steps"),
        "batch_size": training.get("batch_size"),
        "learning_rate": training.get("learning_rate"),
        "weight_decay": training.get("weight_decay"),
        "grad_clip": training.get("grad_clip"),
        "warmup_steps": training.get("warmup_steps"),
        "lr_decay": training.get("lr_decay"),
        "min_lr": training.get("min_lr"),
        # Optimizer
        "optimizer": optimizer.get("name"),
        "betas": tuple(optimizer["betas"]) if "betas" in optimizer else None,
        "eps": optimizer.get("eps"),
        "momentum": optimizer.get("momentum"),
        # Checkpointing
        "checkpoint_dir": checkpointing.get("checkpoint_dir"),
        "save_interval": checkpointing.get("save_interval"),
        "keep_last_n": checkpointing.get("keep_last_n"),
        # Logging
        "log_dir": logging_section.get("log_dir"),
        "eval_interval": logging_section.get("eval_interval"),
        "log_interval": logging_section.get("log_interval"),
        # Device
        "device": device.get("device"),
        "seed": device.get("seed"),
    }

    return TrainingConfig.from_dict({k: v for k, v in args.items() if v is not None})


def create_default_config_file(output_path: Union[str, Path] = "training_config.yaml") -> Path:
    """
    Create a default configuration file template.

    Args:
        output_path: Path where to save the config file
    """
    default_config = {
        "model": {"name": "model", "dtype": "float32", "initializer": "xavier"},
        "training": {
            "loss": "softmax_cross_entropy",
            "num_epochs": 10,
            "max_steps": -1,
            "batch_size": 32,
            "learning_rate": 0.001,
            "weight_decay": 0.01,
            "grad_clip": 1.0,
            "warmup_steps": 0,
            "lr_decay": "constant",
            "min_lr": 1.0e-5,
        },
        "optimizer": {"name": "adamw", "betas": [0.9, 0.999], "eps": 1.0e-8},
        "checkpointing": {"checkpoint_dir": "./checkpoints", "save_interval": 1000, "keep_last_n": 3},
        "logging": {"log_dir": "./logs", "eval_interval": 500, "log_interval": 10},
        "device": {"device": "auto", "seed": 42},
    }

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w") as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)

    logger.info(f"Created default configuration file: {output_path}")
    return output_path
