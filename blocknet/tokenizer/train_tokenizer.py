"""
SentencePiece Tokenizer Training

Trains a SentencePiece model (BPE or unigram) on a plain-text file, one
sentence per line.

Special ids are fixed so they line up with the TextData reserved tokens:
- 0: <pad>
- 1: <unk>
- 2: <bos>
- 3: <eos>

Common failure modes to avoid:
- Too small vocab -> poor compression
- vocab_size larger than the corpus supports -> training error
  (pass hard_vocab_limit=False for small corpora)
"""

import logging
from pathlib import Path
from typing import Sequence, Union

import sentencepiece as spm

logger = logging.getLogger(__name__)

SPECIAL_PIECES = {"pad": "<pad>", "unk": "<unk>", "bos": "<bos>", "eos": "<eos>"}


def train_sentencepiece_tokenizer(
    input_file: Union[str, Path],
    output_prefix: Union[str, Path],
    vocab_size: int = 8000,
    model_type: str = "bpe",
    character_coverage: float = 0.9995,
    user_defined_symbols: Sequence[str] = (),
    hard_vocab_limit: bool = True,
) -> Path:
    """
    Train a SentencePiece tokenizer.

    Args:
        input_file: Path to training text file
        output_prefix: Output path prefix (creates .model and .vocab files)
        vocab_size: Vocabulary size
        model_type: 'bpe' or 'unigram'
        character_coverage: Character coverage for unicode
        user_defined_symbols: Extra pieces that are never split
        hard_vocab_limit: Fail when vocab_size cannot be reached

    Returns:
        Path of the trained .model file

    Raises:
        FileNotFoundError: input_file does not exist
        ValueError: Unknown model_type
    """
    input_file = Path(input_file)
    if not input_file.exists():
        raise FileNotFoundError(f"Input file not found: {input_file}")
    if model_type not in ("bpe", "unigram", "char", "word"):
        raise ValueError(f"Unknown model_type: {model_type}")

    output_prefix = Path(output_prefix)
    output_prefix.parent.mkdir(parents=True, exist_ok=True)

    logger.info(
        f"Training SentencePiece tokenizer: input={input_file}, vocab_size={vocab_size}, model_type={model_type}"
    )

    train_args = dict(
        input=str(input_file),
        model_prefix=str(output_prefix),
        vocab_size=vocab_size,
        model_type=model_type,
        character_coverage=character_coverage,
        pad_id=0,
        unk_id=1,
        bos_id=2,
        eos_id=3,
        pad_piece=SPECIAL_PIECES["pad"],
        unk_piece=SPECIAL_PIECES["unk"],
        bos_piece=SPECIAL_PIECES["bos"],
        eos_piece=SPECIAL_PIECES["eos"],
        hard_vocab_limit=hard_vocab_limit,
    )
    if user_defined_symbols:
        train_args["user_defined_symbols"] = ",".join(user_defined_symbols)

    spm.SentencePieceTrainer.train(**train_args)

    model_path = Path(f"{output_prefix}.model")
    logger.info(f"Tokenizer model saved: {model_path}")
    return model_path
