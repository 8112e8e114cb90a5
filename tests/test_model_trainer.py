"""
Tests for Model save/load, Trainer and CheckpointManager.
"""

import json
import math

import pytest
import torch

from blocknet.configs.train_config import TrainingConfig
from blocknet.errors import SerializationFormatError, UninitializedStateError
from blocknet.model.architecture import BatchNorm, Linear, SequentialBlock
from blocknet.model.model import Model
from blocknet.training.dataset import ArrayDataset, create_dataloaders
from blocknet.training.utils import count_parameters, get_lr_with_warmup
from blocknet.utils.checkpoints import CheckpointManager
from blocknet.utils.logging import MetricsLogger, save_training_summary


def make_mlp():
    return SequentialBlock().add(Linear(8)).add(BatchNorm()).add(Linear(3))


def small_config(tmp_path, **overrides):
    values = dict(
        initializer="xavier",
        loss="softmax_cross_entropy",
        batch_size=8,
        num_epochs=2,
        learning_rate=0.05,
        eval_interval=0,
        save_interval=0,
        log_interval=1,
        checkpoint_dir=str(tmp_path / "checkpoints"),
        log_dir=str(tmp_path / "logs"),
        device="cpu",
    )
    values.update(overrides)
    return TrainingConfig(**values)


def classification_data(n=32, features=4, seed=0):
    generator = torch.Generator().manual_seed(seed)
    x = torch.randn(n, features, generator=generator)
    y = (x[:, 0] > 0).long() + (x[:, 1] > 0).long()
    return x, y


class TestModel:
    def test_block_required(self):
        with pytest.raises(UninitializedStateError):
            Model("empty", device="cpu").block

    def test_save_and_load_latest_epoch(self, tmp_path):
        with Model("mlp", device="cpu") as model:
            model.block = make_mlp()
            with model.new_trainer(small_config(tmp_path)) as trainer:
                trainer.initialize((-1, 4))
            model.save(tmp_path, epoch=1)
            expected = [p.array.detach().clone() for _, p in model.block.parameters()]
            model.block.parameters().get("00Linear_weight").set_array(torch.zeros(8, 4))
            path = model.save(tmp_path, epoch=3)

        assert path.name == "mlp-0003.params"
        props = json.loads(path.with_suffix(".json").read_text())
        assert props["epoch"] == 3 and props["dtype"] == "float32"

        with Model("mlp", device="cpu") as restored:
            restored.block = make_mlp()
            assert restored.load(tmp_path).name == "mlp-0003.params"
            assert torch.equal(restored.block.parameters().get("00Linear_weight").array, torch.zeros(8, 4))

            restored.block = make_mlp()
            restored.load(tmp_path, epoch=1)
            for old, (_, param) in zip(expected, restored.block.parameters()):
                assert torch.equal(old, param.array)

    def test_save_without_epoch(self, tmp_path):
        model = Model("net", device="cpu").set_block(Linear(2))
        with model.new_trainer(small_config(tmp_path)) as trainer:
            trainer.initialize((1, 2))
        assert model.save(tmp_path).name == "net.params"
        assert model.load(tmp_path).name == "net.params"

    def test_missing_file(self, tmp_path):
        model = Model("ghost", device="cpu").set_block(Linear(2))
        with pytest.raises(FileNotFoundError):
            model.load(tmp_path)

    def test_load_rejects_truncated_and_overlong_files(self, tmp_path):
        model = Model("mlp", device="cpu").set_block(make_mlp())
        with model.new_trainer(small_config(tmp_path)) as trainer:
            trainer.initialize((2, 4))
        path = model.save(tmp_path)
        data = path.read_bytes()

        path.write_bytes(data[:-1])
        with pytest.raises(SerializationFormatError):
            model.load(tmp_path)

        path.write_bytes(data + b"extra")
        with pytest.raises(SerializationFormatError):
            model.load(tmp_path)

    def test_dtype_by_name(self):
        assert Model(dtype="float64", device="cpu").dtype == torch.float64
        with pytest.raises(ValueError):
            Model(dtype="int3", device="cpu")


class TestTrainer:
    def test_initialize_returns_output_shapes(self, tmp_path):
        model = Model("mlp", device="cpu").set_block(make_mlp())
        trainer = model.new_trainer(small_config(tmp_path))
        assert trainer.initialize((-1, 4)) == [(-1, 3)]
        assert count_parameters(model.block) == 4 * 8 + 8 + 8 + 8 + 8 * 3 + 3

    def test_train_batch_requires_initialization(self, tmp_path):
        model = Model("mlp", device="cpu").set_block(make_mlp())
        trainer = model.new_trainer(small_config(tmp_path))
        with pytest.raises(UninitializedStateError):
            trainer.train_batch(torch.randn(2, 4), torch.tensor([0, 1]))

    def test_training_reduces_loss(self, tmp_path):
        torch.manual_seed(0)
        x, y = classification_data()
        model = Model("mlp", device="cpu").set_block(make_mlp())
        with model.new_trainer(small_config(tmp_path, optimizer="adam", weight_decay=0.0)) as trainer:
            trainer.initialize((-1, 4))
            first = trainer.evaluate_batch(x, y)
            for _ in range(60):
                metrics = trainer.train_batch(x, y)
            last = trainer.evaluate_batch(x, y)

        assert metrics["batch_size"] == 32
        assert last < first

    def test_regression_with_sgd(self, tmp_path):
        torch.manual_seed(0)
        x = torch.randn(64, 3)
        y = x @ torch.tensor([[1.0], [-2.0], [0.5]]) + 0.3
        model = Model("reg", device="cpu").set_block(Linear(1))
        config = small_config(tmp_path, loss="l2", optimizer="sgd", learning_rate=0.1, weight_decay=0.0)
        with model.new_trainer(config) as trainer:
            trainer.initialize((-1, 3))
            for _ in range(200):
                trainer.train_batch(x, y)
            assert trainer.evaluate_batch(x, y) < 1e-3

    def test_forward_records_gradients(self, tmp_path):
        model = Model("lin", device="cpu").set_block(Linear(2))
        trainer = model.new_trainer(small_config(tmp_path))
        trainer.initialize((1, 3))
        out = trainer.forward(torch.ones(1, 3))[0]
        out.sum().backward()
        assert model.block.weight.array.grad is not None

    def test_float64_batches_follow_the_model_dtype(self, tmp_path):
        x, y = classification_data()
        model = Model("mlp", device="cpu").set_block(make_mlp())
        with model.new_trainer(small_config(tmp_path)) as trainer:
            trainer.initialize((-1, 4))
            out = trainer.forward(x.double())[0]
            metrics = trainer.train_batch(x.double(), y)
            val_loss = trainer.evaluate_batch(x.double(), y)

        assert out.dtype == torch.float32
        assert math.isfinite(metrics["loss"]) and math.isfinite(val_loss)

    def test_perplexity_only_for_cross_entropy(self, tmp_path):
        x, y = classification_data(n=8)
        loader, _ = create_dataloaders(ArrayDataset(x, y), None, batch_size=4)
        model = Model("mlp", device="cpu").set_block(make_mlp())
        trainer = model.new_trainer(small_config(tmp_path))
        trainer.initialize((-1, 4))
        metrics = trainer.evaluate(loader)
        assert metrics["val_perplexity"] == pytest.approx(math.exp(metrics["val_loss"]))

        targets = torch.randn(8, 1)
        loader, _ = create_dataloaders(ArrayDataset(x, targets), None, batch_size=4)
        model = Model("reg", device="cpu").set_block(Linear(1))
        trainer = model.new_trainer(small_config(tmp_path, loss="l2"))
        trainer.initialize((-1, 4))
        assert set(trainer.evaluate(loader)) == {"val_loss"}

    def test_unknown_optimizer(self, tmp_path):
        model = Model("lin", device="cpu").set_block(Linear(2))
        trainer = model.new_trainer(small_config(tmp_path, optimizer="rmsprop"))
        with pytest.raises(ValueError):
            trainer.initialize((1, 3))

    def test_fit_writes_checkpoints_metrics_and_summary(self, tmp_path):
        torch.manual_seed(0)
        x, y = classification_data()
        train_loader, val_loader = create_dataloaders(
            ArrayDataset(x, y), ArrayDataset(x[:8], y[:8]), batch_size=8
        )
        config = small_config(tmp_path, keep_last_n=3)
        model = Model("mlp", device="cpu").set_block(make_mlp())

        with model.new_trainer(config) as trainer:
            trainer.initialize((-1, 4))
            final = trainer.fit(train_loader, val_loader)

        assert final["total_steps"] == 8
        assert final["best_val_loss"] < float("inf")

        manager = CheckpointManager(tmp_path / "checkpoints")
        assert manager.list_checkpoints() == [4, 8]
        assert (tmp_path / "checkpoints" / "best_model.params").exists()
        assert (tmp_path / "logs" / "training_summary.json").exists()
        lines = (tmp_path / "logs" / "training_metrics.jsonl").read_text().strip().splitlines()
        assert len([line for line in lines if "train_loss" in line]) == 8

    def test_fit_stops_at_max_steps(self, tmp_path):
        x, y = classification_data()
        train_loader, _ = create_dataloaders(ArrayDataset(x, y), None, batch_size=4)
        model = Model("mlp", device="cpu").set_block(make_mlp())
        with model.new_trainer(small_config(tmp_path, max_steps=5, num_epochs=10)) as trainer:
            trainer.initialize((-1, 4))
            assert trainer.fit(train_loader)["total_steps"] == 5


class TestCheckpointManager:
    def test_keep_last_n_and_resume(self, tmp_path):
        model = Model("mlp", device="cpu").set_block(make_mlp())
        trainer = model.new_trainer(small_config(tmp_path))
        trainer.initialize((-1, 4))
        manager = CheckpointManager(tmp_path / "ckpt", keep_last_n=2)

        for step in (10, 20, 30):
            manager.save_checkpoint(model, step=step, epoch=0, val_loss=1.0 / step,
                                    train_config={}, optimizer=trainer.optimizer)

        assert manager.list_checkpoints() == [20, 30]
        assert not (tmp_path / "ckpt" / "checkpoint_step-0010.state.json").exists()
        assert manager.best_val_loss == pytest.approx(1.0 / 30)

        restored = Model("mlp", device="cpu").set_block(make_mlp())
        state = CheckpointManager(tmp_path / "ckpt").load_checkpoint(restored)
        assert state["step"] == 30
        for (_, a), (_, b) in zip(model.block.parameters(), restored.block.parameters()):
            assert torch.equal(a.array, b.array)

    def test_no_checkpoint(self, tmp_path):
        manager = CheckpointManager(tmp_path)
        assert not manager.has_checkpoint()
        with pytest.raises(FileNotFoundError):
            manager.load_checkpoint(Model("m", device="cpu").set_block(Linear(1)))


class TestSchedule:
    def test_warmup_then_cosine(self):
        assert get_lr_with_warmup(0, 10, 1.0, 0.1, 110) == 0.0
        assert get_lr_with_warmup(5, 10, 1.0, 0.1, 110) == pytest.approx(0.5)
        assert get_lr_with_warmup(10, 10, 1.0, 0.1, 110) == pytest.approx(1.0)
        assert get_lr_with_warmup(110, 10, 1.0, 0.1, 110) == pytest.approx(0.1)

    def test_constant(self):
        assert get_lr_with_warmup(50, 0, 0.3, 0.0, 100, decay_type="constant") == 0.3


class TestMetricsLogger:
    def test_history_and_averages(self, tmp_path):
        metrics = MetricsLogger(tmp_path / "logs", experiment_name="run")
        for step, loss in enumerate([4.0, 2.0, 3.0]):
            metrics.log(step, {"train_loss": loss})

        assert metrics.history("train_loss") == [4.0, 2.0, 3.0]
        assert metrics.latest("train_loss") == 3.0
        assert metrics.moving_average("train_loss", window=2) == pytest.approx(2.5)
        assert metrics.moving_average("val_loss") is None

        entries = [json.loads(line) for line in metrics.log_file.read_text().splitlines()]
        assert [entry["step"] for entry in entries] == [0, 1, 2]

    def test_non_finite_values_written_as_null(self, tmp_path):
        metrics = MetricsLogger(tmp_path)
        metrics.log(0, {"val_loss": float("nan")})
        assert json.loads(metrics.log_file.read_text())["val_loss"] is None

        summary = save_training_summary(tmp_path, {"lr": 0.1}, {"best_val_loss": float("inf")})
        assert json.loads(summary.read_text())["final_metrics"]["best_val_loss"] is None
