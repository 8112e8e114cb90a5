"""
Tests for the text pipeline: processors, vocabulary, embeddings and TextData.
"""

import pytest
import torch

from blocknet.data_preparation.text import (
    Configuration,
    LowerCaseConvertor,
    PunctuationSeparator,
    SimpleTokenizer,
    TextData,
    TextTerminator,
    TextTruncator,
    TrainableTextEmbedding,
    TrainableWordEmbedding,
    Vocabulary,
    VocabularyBuilder,
    get_default_configuration,
)
from blocknet.errors import UninitializedStateError
from blocknet.training.dataset import TextDataset
from blocknet.training.initializer import NormalInitializer

CPU = torch.device("cpu")

SENTENCES = [
    "The cat sat on the mat.",
    "The cat ran, quickly!",
    "The cat hid under the mat.",
    "A dog barked.",
]


def run_chain(processors, text):
    tokens = [text]
    for processor in processors:
        tokens = processor.preprocess(tokens)
    return tokens


class TestProcessors:
    def test_default_chain(self):
        chain = get_default_configuration().text_processors
        assert run_chain(chain, "Hello, World!") == ["hello", ",", "world", "!"]

    def test_simple_tokenizer_with_delimiter(self):
        tokenizer = SimpleTokenizer(delimiter="|")
        assert tokenizer.tokenize("a|b||c") == ["a", "b", "c"]
        assert tokenizer.build_sentence(["a", "b"]) == "a|b"

    def test_punctuation_inside_token(self):
        assert PunctuationSeparator().preprocess(["don't"]) == ["don", "'", "t"]

    def test_truncate_and_terminate(self):
        chain = [SimpleTokenizer(), TextTruncator(2), TextTerminator()]
        assert run_chain(chain, "one two three") == ["<bos>", "one", "two", "<eos>"]

    def test_terminator_eos_only(self):
        assert TextTerminator(add_bos=False).preprocess(["x"]) == ["x", "<eos>"]

    def test_negative_truncation(self):
        with pytest.raises(ValueError):
            TextTruncator(-1)

    def test_lower_case(self):
        assert LowerCaseConvertor().preprocess(["ABC", "dEf"]) == ["abc", "def"]


class TestVocabulary:
    def test_unknown_token_is_appended(self):
        vocab = Vocabulary(["a", "b"])
        assert vocab.tokens == ["a", "b", "<unk>"]
        assert vocab.get_index("zzz") == vocab.unknown_index == 2

    def test_existing_unknown_token_kept_in_place(self):
        vocab = Vocabulary(["<unk>", "a"])
        assert vocab.unknown_index == 0
        assert len(vocab) == 2

    def test_get_token_out_of_range(self):
        vocab = Vocabulary(["a"])
        with pytest.raises(IndexError):
            vocab.get_token(5)
        with pytest.raises(IndexError):
            vocab.get_token(-1)

    def test_encode_decode(self):
        vocab = Vocabulary(["the", "cat"])
        ids = vocab.encode(["the", "dog", "cat"])
        assert ids == [0, 2, 1]
        assert vocab.decode(ids) == ["the", "<unk>", "cat"]

    def test_json_round_trip(self, tmp_path):
        vocab = Vocabulary(["<pad>", "héllo", "x"], unknown_token="[UNK]")
        path = vocab.save(tmp_path / "vocab" / "vocab.json")
        restored = Vocabulary.load(path)
        assert restored.tokens == vocab.tokens
        assert restored.unknown_token == "[UNK]"

    def test_load_rejects_file_without_tokens(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('{"unknown_token": "<unk>"}')
        with pytest.raises(ValueError):
            Vocabulary.load(path)


class TestVocabularyBuilder:
    def test_order_and_min_frequency(self):
        builder = VocabularyBuilder(min_frequency=2, reserved_tokens=["<pad>"])
        builder.add_all([["b", "a", "b", "c"], ["a", "b", "d", "d"]])
        vocab = builder.build()

        # reserved, unknown, then by count (b=3, a=2, d=2 in first-seen order)
        assert vocab.tokens == ["<pad>", "<unk>", "b", "a", "d"]
        assert vocab.get_index("c") == vocab.unknown_index

    def test_max_tokens_excludes_reserved(self):
        builder = VocabularyBuilder(max_tokens=1, reserved_tokens=["<pad>", "<eos>"])
        builder.add(["x", "y", "x"])
        assert builder.build().tokens == ["<pad>", "<eos>", "<unk>", "x"]

    def test_counted_special_tokens_not_duplicated(self):
        builder = VocabularyBuilder(reserved_tokens=["<pad>"])
        builder.add(["<pad>", "<unk>", "w"])
        assert builder.build().tokens == ["<pad>", "<unk>", "w"]

    @pytest.mark.parametrize("kwargs", [{"min_frequency": 0}, {"max_tokens": -1}])
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            VocabularyBuilder(**kwargs)


class TestWordEmbedding:
    def test_rows_follow_vocabulary_ids(self):
        vocab = Vocabulary(["<pad>", "cat", "dog"])
        embedding = TrainableWordEmbedding(vocab, embedding_size=4)
        embedding.initialize(CPU, torch.float32, (2,), initializer=NormalInitializer())

        assert embedding.weight.shape == (4, 4)
        assert embedding.has_item("cat") and not embedding.has_item("emu")
        assert embedding.embed_word("dog") == 2
        assert embedding.embed_word("emu") == vocab.unknown_index
        assert embedding.unembed_word(1) == "cat"

        vectors = embedding.lookup(["dog", "emu"])
        assert torch.equal(vectors[0], embedding.weight.array[2])
        assert torch.equal(vectors[1], embedding.weight.array[vocab.unknown_index])

    def test_text_embedding(self):
        vocab = Vocabulary(["a", "b"])
        word_embedding = TrainableWordEmbedding(vocab, embedding_size=3)
        word_embedding.initialize(CPU, torch.float32, (1,), initializer=NormalInitializer())
        text_embedding = TrainableTextEmbedding(word_embedding)

        ids = text_embedding.preprocess_text_to_embed(["b", "a", "q"])
        assert ids.tolist() == [1, 0, 2]
        assert text_embedding.embed_text(["b", "a"]).shape == (2, 3)
        assert text_embedding.unembed_text(ids) == ["b", "a", "<unk>"]


class TestTextData:
    def test_vocabulary_requires_preprocess(self):
        text_data = TextData(get_default_configuration())
        with pytest.raises(UninitializedStateError):
            text_data.vocabulary
        with pytest.raises(UninitializedStateError):
            text_data.embed_text(0)

    def test_preprocess_substitutes_rare_tokens(self):
        text_data = TextData(get_default_configuration())
        text_data.preprocess(SENTENCES)

        vocab = text_data.vocabulary
        assert vocab.tokens[:4] == ["<pad>", "<bos>", "<eos>", "<unk>"]
        # "the" x5, "cat" x3, "." x3 reach the minimum frequency of 3
        assert {"the", "cat", "."} <= set(vocab.tokens)
        assert "dog" not in vocab
        assert text_data.get_processed_text(3) == ["<unk>", "<unk>", "<unk>", "."]
        assert text_data.train_embedding
        assert len(text_data) == 4

    def test_embed_text_returns_ids(self):
        text_data = TextData(get_default_configuration())
        text_data.preprocess(SENTENCES)
        ids = text_data.embed_text(0)[0]
        vocab = text_data.vocabulary
        assert ids.dtype == torch.long
        assert ids.tolist() == vocab.encode(text_data.get_processed_text(0))

    def test_second_preprocess_rebuilds_over_all_data(self):
        text_data = TextData(get_default_configuration())
        text_data.preprocess(["cat cat", "dog"])
        assert "cat" not in text_data.vocabulary
        first_embedding = text_data.text_embedding

        text_data.preprocess(["dog dog dog"])
        vocab = text_data.vocabulary
        assert "dog" in vocab
        assert len(text_data) == 3
        # earlier rare tokens stay substituted
        assert text_data.get_processed_text(0) == ["<unk>", "<unk>"]
        assert text_data.embed_text(2)[0].tolist() == [vocab.get_index("dog")] * 3
        assert text_data.text_embedding is not first_embedding
        assert text_data.text_embedding.word_embedding.num_embeddings == len(vocab)

    def test_configuration_update(self):
        config = get_default_configuration()
        config.update(Configuration(embedding_size=32))
        assert config.embedding_size == 32
        assert config.train_embedding is False
        assert len(config.text_processors) == 3

    def test_missing_embedding_size(self):
        text_data = TextData(Configuration(text_processors=[SimpleTokenizer()]))
        with pytest.raises(ValueError):
            text_data.preprocess(["a b c"])


class TestTextDataset:
    def test_items_are_padded_ids(self):
        dataset = TextDataset(SENTENCES, [0, 0, 0, 1], TextData(get_default_configuration()), max_length=8)
        ids, label = dataset[3]
        pad = dataset.vocabulary.get_index("<pad>")

        assert ids.shape == (8,)
        assert ids[4:].tolist() == [pad] * 4
        assert label.item() == 1

    def test_long_sentence_is_truncated(self):
        dataset = TextDataset(SENTENCES, [0, 1, 0, 1], TextData(get_default_configuration()), max_length=3)
        assert dataset[0][0].shape == (3,)

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            TextDataset(SENTENCES, [0], TextData(get_default_configuration()), max_length=4)
