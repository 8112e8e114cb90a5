"""
Tests for the SentencePiece trainer and adapter.
"""

import pytest

spm = pytest.importorskip("sentencepiece")

from blocknet.data_preparation.text import Configuration, LowerCaseConvertor, TextData  # noqa: E402
from blocknet.tokenizer import (  # noqa: E402
    SentencePieceTokenizer,
    SentencePieceVocabulary,
    load_tokenizer,
    train_sentencepiece_tokenizer,
)

CORPUS = [
    "the cat sat on the mat",
    "a dog ran to the park",
    "the dog sat on a log",
    "a cat ran to the mat",
]


@pytest.fixture(scope="module")
def model_path(tmp_path_factory):
    directory = tmp_path_factory.mktemp("sp")
    corpus = directory / "corpus.txt"
    corpus.write_text("\n".join(CORPUS * 50) + "\n")
    return train_sentencepiece_tokenizer(
        corpus, directory / "tokenizer" / "sp", vocab_size=60, hard_vocab_limit=False
    )


class TestTraining:
    def test_model_file_written(self, model_path):
        assert model_path.exists()
        assert model_path.with_suffix(".vocab").exists()

    def test_missing_input(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            train_sentencepiece_tokenizer(tmp_path / "none.txt", tmp_path / "sp")

    def test_unknown_model_type(self, tmp_path):
        corpus = tmp_path / "c.txt"
        corpus.write_text("abc\n")
        with pytest.raises(ValueError):
            train_sentencepiece_tokenizer(corpus, tmp_path / "sp", model_type="wordpiece")

    def test_load_missing_model(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_tokenizer(tmp_path / "missing.model")


class TestTokenizer:
    def test_round_trip(self, model_path):
        tokenizer = SentencePieceTokenizer(model_path)
        text = "the dog sat on the mat"
        assert tokenizer.decode(tokenizer.encode(text)) == text
        assert tokenizer.build_sentence(tokenizer.tokenize(text)) == text

    def test_special_ids(self, model_path):
        vocab = SentencePieceVocabulary.from_tokenizer(SentencePieceTokenizer(model_path))
        assert vocab.tokens[:4] == ["<pad>", "<unk>", "<bos>", "<eos>"]
        assert vocab.unknown_index == 1

    def test_vocabulary_ids_match_model(self, model_path):
        tokenizer = SentencePieceTokenizer(model_path)
        vocab = SentencePieceVocabulary.from_tokenizer(tokenizer)
        text = "a cat sat on a log"
        assert vocab.encode(tokenizer.tokenize(text)) == tokenizer.encode(text)
        assert len(vocab) == tokenizer.processor.get_piece_size()

    def test_as_text_processor(self, model_path):
        tokenizer = SentencePieceTokenizer(model_path)
        config = Configuration(text_processors=[LowerCaseConvertor(), tokenizer], embedding_size=4)
        text_data = TextData(config)
        text_data.preprocess([line.upper() for line in CORPUS * 3])
        assert text_data.get_processed_text(0) == tokenizer.tokenize(CORPUS[0])
