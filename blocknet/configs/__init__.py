"""
Configuration module
"""

from blocknet.configs.train_config import TrainingConfig

__all__ = ["TrainingConfig"]
