"""
Tests for the parameter record format and Block.save_parameters / load_parameters.
"""

import io
import struct

import pytest
import torch

from blocknet.errors import (
    DataTypeMismatchError,
    SerializationFormatError,
    ShapeMismatchError,
    UninitializedStateError,
    UnsupportedFormatError,
)
from blocknet.model.architecture import LSTM, BatchNorm, Conv1D, LambdaBlock, Linear, SequentialBlock
from blocknet.model.parameter import Parameter, ParameterType
from blocknet.model.serialization import DTYPE_TAGS, read_record, write_record
from blocknet.training.initializer import ONES, NormalInitializer

CPU = torch.device("cpu")


def saved_bytes(block) -> bytes:
    buffer = io.BytesIO()
    block.save_parameters(buffer)
    return buffer.getvalue()


def make_net():
    return SequentialBlock().add(Linear(4)).add(BatchNorm()).add(Linear(2))


class TestRecordFormat:
    def test_layout_is_big_endian(self):
        buffer = io.BytesIO()
        write_record(buffer, "w", torch.tensor([[1.0, 2.0]], dtype=torch.float32))
        data = buffer.getvalue()

        assert data[:2] == struct.pack(">H", 1)
        assert data[2:3] == b"w"
        assert data[3:7] == struct.pack(">I", 2)
        assert data[7:23] == struct.pack(">qq", 1, 2)
        assert data[23] == 1
        assert data[24:] == struct.pack(">ff", 1.0, 2.0)

    @pytest.mark.parametrize("tag", sorted(DTYPE_TAGS))
    def test_every_dtype_round_trips(self, tag):
        dtype = DTYPE_TAGS[tag][0]
        if dtype.is_floating_point:
            array = torch.randn(3, 2).to(dtype)
        else:
            array = torch.arange(6).reshape(3, 2).to(dtype)

        buffer = io.BytesIO()
        write_record(buffer, "param", array)
        buffer.seek(0)
        name, restored = read_record(buffer)

        assert name == "param"
        assert restored.dtype == dtype
        assert torch.equal(restored, array)

    def test_scalar_and_unicode_name(self):
        buffer = io.BytesIO()
        write_record(buffer, "größe", torch.tensor(7, dtype=torch.int64))
        buffer.seek(0)
        name, restored = read_record(buffer)
        assert name == "größe"
        assert restored.shape == () and restored.item() == 7

    def test_unknown_dtype_tag(self):
        buffer = io.BytesIO()
        write_record(buffer, "w", torch.ones(2))
        data = bytearray(buffer.getvalue())
        data[2 + 1 + 4 + 8] = 99

        with pytest.raises(UnsupportedFormatError):
            read_record(io.BytesIO(bytes(data)))

    def test_unsupported_dtype_on_write(self):
        with pytest.raises(UnsupportedFormatError):
            write_record(io.BytesIO(), "w", torch.ones(2, dtype=torch.bool))

    @pytest.mark.parametrize("cut", [1, 3, 8, 20, 23])
    def test_truncated_record(self, cut):
        buffer = io.BytesIO()
        write_record(buffer, "w", torch.ones(2))
        data = buffer.getvalue()[:cut]

        with pytest.raises(SerializationFormatError):
            read_record(io.BytesIO(data))

    def test_corrupt_rank(self):
        data = struct.pack(">H", 1) + b"w" + struct.pack(">I", 10_000)
        with pytest.raises(SerializationFormatError):
            read_record(io.BytesIO(data))

    @staticmethod
    def header(dims, tag=1):
        data = struct.pack(">H", 1) + b"w" + struct.pack(">I", len(dims))
        data += b"".join(struct.pack(">q", d) for d in dims)
        return data + struct.pack(">B", tag)

    def test_dims_whose_product_overflows_int64(self):
        data = self.header((2**32,) * 3) + b"\x00" * 16
        with pytest.raises(SerializationFormatError):
            read_record(io.BytesIO(data))

    def test_huge_dimension_in_a_file(self, tmp_path):
        path = tmp_path / "corrupt.params"
        path.write_bytes(self.header((2**60,)) + b"\x00" * 16)
        with open(path, "rb") as f:
            with pytest.raises(SerializationFormatError):
                read_record(f)

    def test_dims_larger_than_remaining_stream(self):
        data = self.header((1000,)) + b"\x00" * 16
        with pytest.raises(SerializationFormatError, match="needed 4000 bytes, got 16"):
            read_record(io.BytesIO(data))

    def test_huge_dimension_on_unseekable_stream(self):
        class Unseekable(io.RawIOBase):
            def __init__(self, data):
                self._source = io.BytesIO(data)

            def readable(self):
                return True

            def readinto(self, buffer):
                chunk = self._source.read(len(buffer))
                buffer[: len(chunk)] = chunk
                return len(chunk)

        stream = Unseekable(self.header((2**60,)) + b"\x00" * 16)
        assert not stream.seekable()
        with pytest.raises(SerializationFormatError):
            read_record(stream)


class TestBlockRoundTrip:
    def test_round_trip_into_fresh_block(self):
        net = make_net()
        net.initialize(CPU, torch.float32, (3, 5), initializer=NormalInitializer())
        net.forward([torch.randn(3, 5)], training=True)  # move the running stats
        data = saved_bytes(net)

        fresh = make_net()
        fresh.initialize(CPU, torch.float32, (3, 5), initializer=NormalInitializer())
        fresh.load_parameters(io.BytesIO(data), expect_end=True)

        for (key, param), (fresh_key, fresh_param) in zip(net.parameters(), fresh.parameters()):
            assert key == fresh_key
            assert torch.equal(param.array, fresh_param.array)

    def test_conv1d_bias_free_round_trip(self):
        block = Conv1D(kernel=2, num_filters=1, use_bias=False)
        block.initialize(CPU, torch.float32, (1, 4, 4), initializer=NormalInitializer())
        data = saved_bytes(block)

        fresh = Conv1D(kernel=2, num_filters=1, use_bias=False)
        fresh.initialize(CPU, torch.float32, (1, 4, 4), initializer=ONES)
        fresh.load_parameters(io.BytesIO(data))

        assert torch.equal(fresh.weight.array, block.weight.array)

    def test_deferred_block_adopts_stored_shapes(self):
        lstm = LSTM(state_size=3, num_stacked_layers=2)
        lstm.initialize(CPU, torch.float64, (4, 2, 5), initializer=NormalInitializer())
        data = saved_bytes(lstm)

        fresh = LSTM(state_size=3, num_stacked_layers=2)
        fresh.load_parameters(io.BytesIO(data))

        assert fresh.is_initialized
        assert fresh._parameters["l0_i2h_weight"].shape == (12, 5)
        assert fresh._parameters["l0_i2h_weight"].dtype == torch.float64
        x = torch.randn(4, 2, 5, dtype=torch.float64)
        assert torch.equal(fresh.forward([x])[0], lstm.forward([x])[0])

    def test_loaded_container_runs_parameter_free_children(self):
        def make():
            return SequentialBlock().add(Linear(4)).add(LambdaBlock(torch.relu)).add(Linear(2))

        net = make()
        net.initialize(CPU, torch.float32, (3, 5), initializer=NormalInitializer())
        fresh = make()
        assert not fresh.is_initialized
        fresh.load_parameters(io.BytesIO(saved_bytes(net)), expect_end=True)

        assert all(child.is_initialized for _, child in fresh.children)
        x = torch.randn(3, 5)
        assert torch.equal(fresh.forward([x])[0], net.forward([x])[0])

    def test_loaded_values_keep_trainable_flags(self):
        net = make_net()
        net.initialize(CPU, torch.float32, (2, 3), initializer=NormalInitializer())
        fresh = make_net()
        fresh.load_parameters(io.BytesIO(saved_bytes(net)))

        params = fresh.parameters()
        assert params.get("00Linear_weight").array.requires_grad
        assert not params.get("01BatchNorm_running_mean").array.requires_grad

    def test_save_uses_parameter_order(self):
        net = make_net()
        net.initialize(CPU, torch.float32, (2, 3), initializer=NormalInitializer())
        stream = io.BytesIO(saved_bytes(net))

        names = []
        while stream.tell() < len(stream.getvalue()):
            names.append(read_record(stream)[0])
        assert names == [key for key, _ in net.parameters()]


class TestSerializationErrors:
    def test_save_uninitialized_writes_nothing(self):
        buffer = io.BytesIO()
        with pytest.raises(UninitializedStateError):
            make_net().save_parameters(buffer)
        assert buffer.getvalue() == b""

    def test_truncated_stream_leaves_block_untouched(self):
        source = make_net()
        source.initialize(CPU, torch.float32, (2, 3), initializer=NormalInitializer())
        data = saved_bytes(source)

        target = make_net()
        target.initialize(CPU, torch.float32, (2, 3), initializer=ONES)
        before = [param.array.clone() for _, param in target.parameters()]

        with pytest.raises(SerializationFormatError):
            target.load_parameters(io.BytesIO(data[:-3]))

        for old, (_, param) in zip(before, target.parameters()):
            assert torch.equal(old, param.array)

    def test_shape_mismatch(self):
        source = Linear(3)
        source.initialize(CPU, torch.float32, (1, 4), initializer=ONES)
        target = Linear(3)
        target.initialize(CPU, torch.float32, (1, 5), initializer=ONES)

        with pytest.raises(ShapeMismatchError):
            target.load_parameters(io.BytesIO(saved_bytes(source)))
        assert target.weight.shape == (3, 5)

    def test_dtype_mismatch(self):
        source = Linear(3)
        source.initialize(CPU, torch.float64, (1, 4), initializer=ONES)
        target = Linear(3)
        target.initialize(CPU, torch.float32, (1, 4), initializer=ONES)

        with pytest.raises(DataTypeMismatchError):
            target.load_parameters(io.BytesIO(saved_bytes(source)))

    def test_name_mismatch(self):
        source = Linear(3, use_bias=False)
        source.initialize(CPU, torch.float32, (1, 4), initializer=ONES)
        target = BatchNorm()

        with pytest.raises(SerializationFormatError):
            target.load_parameters(io.BytesIO(saved_bytes(source)))

    def test_trailing_data_rejected_when_end_expected(self):
        block = Linear(2)
        block.initialize(CPU, torch.float32, (1, 2), initializer=ONES)
        data = saved_bytes(block) + b"\x00"

        block.load_parameters(io.BytesIO(data))
        with pytest.raises(SerializationFormatError):
            block.load_parameters(io.BytesIO(data), expect_end=True)


class TestReinitialization:
    def test_changed_input_shape_is_an_error(self):
        block = Linear(2)
        block.initialize(CPU, torch.float32, (1, 3), initializer=ONES)
        with pytest.raises(ShapeMismatchError):
            block.initialize(CPU, torch.float32, (1, 4), initializer=ONES)
        assert block.weight.shape == (2, 3)

    def test_changed_dtype_is_an_error(self):
        block = Linear(2)
        block.initialize(CPU, torch.float32, (1, 3), initializer=ONES)
        with pytest.raises(DataTypeMismatchError):
            block.initialize(CPU, torch.float64, (1, 3), initializer=ONES)

    def test_parameter_level_reinitialize(self):
        param = Parameter("w")
        param.initialize((2, 2), torch.float32, CPU, ONES)
        param.initialize((2, 2), torch.float32, CPU, ONES)
        with pytest.raises(ShapeMismatchError):
            param.initialize((3, 2), torch.float32, CPU, ONES)

    def test_parameter_without_any_initializer(self):
        with pytest.raises(UninitializedStateError):
            Parameter("w").initialize((2,), torch.float32, CPU)

    def test_type_defaults_override_configured_initializer(self):
        bias = Parameter("b", ParameterType.BIAS)
        bias.initialize((3,), torch.float32, CPU, ONES)
        gamma = Parameter("g", ParameterType.GAMMA)
        gamma.initialize((3,), torch.float32, CPU, NormalInitializer())
        assert torch.equal(bias.array, torch.zeros(3))
        assert torch.equal(gamma.array, torch.ones(3))

    def test_close_returns_to_deferred(self):
        block = Linear(2)
        block.initialize(CPU, torch.float32, (1, 3), initializer=ONES)
        block.close()
        assert not block.is_initialized
        with pytest.raises(UninitializedStateError):
            block.weight.array
        block.initialize(CPU, torch.float32, (1, 4), initializer=ONES)
        assert block.weight.shape == (2, 4)
