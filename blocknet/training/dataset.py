"""
PyTorch Datasets

PURPOSE:
Provide (inputs, labels) examples to torch DataLoaders for Trainer.fit.

WHAT THIS FILE DOES:
1. ArrayDataset: in-memory arrays (or .npy files) of features and labels
2. TextDataset: raw sentences -> padded vocabulary ids via TextData
3. create_dataloaders: train/val DataLoaders

PACKAGES USED:
- torch: Dataset, DataLoader
- numpy: Load .npy files

FILES FROM THIS PROJECT:
- data_preparation/text/text_data.py: TextData for TextDataset

TENSOR SHAPES:
- ArrayDataset item: (features[i], labels[i])
- TextDataset item: ([max_length] int64 ids, label)
- Batches: leading batch dimension added by the DataLoader

COMMON FAILURE MODES:
- Wrong data path -> FileNotFoundError
- Features/labels of different length -> ValueError
"""

import logging
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import torch
from torch.utils.data import DataLoader, Dataset

from blocknet.data_preparation.text.text_data import TextData

logger = logging.getLogger(__name__)

ArrayLike = Union[np.ndarray, torch.Tensor, str, Path]


def _load_array(data: ArrayLike) -> torch.Tensor:
    if isinstance(data, torch.Tensor):
        return data
    if isinstance(data, (str, Path)):
        path = Path(data)
        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {path}")
        data = np.load(path)
    return torch.from_numpy(np.ascontiguousarray(data))


class ArrayDataset(Dataset):
    """
    Dataset over in-memory arrays.

    Each item returns (features[i], labels[i]).
    """

    def __init__(self, features: ArrayLike, labels: ArrayLike):
        """
        Args:
            features: Array (or .npy path) with one row per example
            labels: Array (or .npy path) with one label per example
        """
        self.features = _load_array(features)
        self.labels = _load_array(labels)

        if len(self.features) != len(self.labels):
            raise ValueError(
                f"features and labels must have the same length, got {len(self.features)} and {len(self.labels)}"
            )

        logger.debug(f"ArrayDataset: {len(self)} examples, features {tuple(self.features.shape)}")

    def __len__(self) -> int:
        return len(self.features)

    def __getitem__(self, idx: int) -> Tuple[torch.Tensor, torch.Tensor]:
        return self.features[idx], self.labels[idx]


class TextDataset(Dataset):
    """
    Sentences with labels, embedded through TextData.

    The texts are preprocessed on construction; each item is the sentence's
    vocabulary ids, padded with <pad> (or truncated) to max_length.
    """

    def __init__(
        self,
        texts: Sequence[str],
        labels: Sequence,
        text_data: TextData,
        max_length: int,
        pad_token: str = "<pad>",
    ):
        if len(texts) != len(labels):
            raise ValueError(f"texts and labels must have the same length, got {len(texts)} and {len(labels)}")
        if max_length <= 0:
            raise ValueError(f"max_length must be positive, got {max_length}")

        self.text_data = text_data
        self.offset = text_data.size
        text_data.preprocess(texts)
        if not text_data.train_embedding:
            raise ValueError("TextDataset needs a trainable embedding (ids are embedded inside the model)")

        self.labels = torch.as_tensor(np.asarray(labels))
        self.max_length = max_length
        self.pad_id = text_data.vocabulary.get_index(pad_token)

        logger.info(f"TextDataset: {len(self)} texts, vocabulary size {len(text_data.vocabulary)}")

    @property
    def vocabulary(self):
        return self.text_data.vocabulary

    def __len__(self) -> int:
        return len(self.labels)

    def __getitem__(self, idx: int) -> Tuple[torch.Tensor, torch.Tensor]:
        ids = self.text_data.embed_text(self.offset + idx)[0][: self.max_length]
        padded = torch.full((self.max_length,), self.pad_id, dtype=torch.long)
        padded[: len(ids)] = ids
        return padded, self.labels[idx]


def create_dataloaders(
    train_dataset: Dataset,
    val_dataset: Optional[Dataset],
    batch_size: int,
    num_workers: int = 0,
    drop_last: bool = False,
) -> tuple:
    """
    Create train and validation dataloaders.

    Args:
        train_dataset: Training dataset
        val_dataset: Validation dataset (or None)
        batch_size: Batch size
        num_workers: Number of dataloader workers (0 = main process)
        drop_last: Drop the incomplete last training batch

    Returns:
        (train_loader, val_loader) tuple; val_loader is None without val_dataset

    Design decisions:
    - Shuffle train data, never validation data
    - Validation keeps its last partial batch
    """
    train_loader = DataLoader(
        train_dataset,
        batch_size=batch_size,
        shuffle=True,
        num_workers=num_workers,
        drop_last=drop_last,
    )

    val_loader = None
    if val_dataset is not None:
        val_loader = DataLoader(
            val_dataset,
            batch_size=batch_size,
            shuffle=False,
            num_workers=num_workers,
            drop_last=False,
        )

    logger.info(
        f"DataLoaders created: {len(train_loader)} train batches, "
        f"{len(val_loader) if val_loader is not None else 0} val batches, batch size {batch_size}"
    )
    return train_loader, val_loader
