#!filepath: tests/training/test_one_vs_rest.py
import pytest

from structsvm.config.training_config import TrainingConfig
from structsvm.data.dataset import InMemoryDataset
from structsvm.training.context import TrainingState
from structsvm.training.one_vs_rest import BinaryTask, OneVsRestModel, OneVsRestTrainer, _train_binary
from structsvm.utils.errors import CheckpointFormatError


@pytest.fixture
def cfg():
    return TrainingConfig(variant="svm_dense", l2=0.001, iterations=6, shuffle=False, metrics=["accuracy"])


def test_binary_task_relabels_against_positive(three_class_dataset, cfg):
    result = _train_binary(BinaryTask(positive="B", cfg=cfg, dataset=three_class_dataset))

    assert result.ok
    assert result.model.labels.labels == [False, True]
    predicted = result.model.classify(three_class_dataset)
    assert [predicted[ex.id] for ex in three_class_dataset] == [False, True, False] * 2


def test_one_vs_rest_sequential(three_class_dataset, cfg):
    result = OneVsRestTrainer(cfg, max_workers=1).train(three_class_dataset)
    model = result.model

    assert result.ok
    assert model.labels == ["A", "B", "C"]
    assert set(model.binary_models) == {"A", "B", "C"}
    assert result.metrics["accuracy"] == 1.0
    assert model.classify(three_class_dataset) == {ex.id: ex.label for ex in three_class_dataset}
    assert {row["label"] for row in result.history} == {"A", "B", "C"}


def test_one_vs_rest_on_process_pool(three_class_dataset, cfg):
    sequential = OneVsRestTrainer(cfg, max_workers=1).train(three_class_dataset)
    parallel = OneVsRestTrainer(cfg, max_workers=2).train(three_class_dataset)

    assert parallel.ok
    assert parallel.model.classify(three_class_dataset) == sequential.model.classify(three_class_dataset)
    assert parallel.objective == pytest.approx(sequential.objective)


def test_one_vs_rest_posterior_holds_indicator_probabilities(three_class_dataset, cfg):
    model = OneVsRestTrainer(cfg, max_workers=1).train(three_class_dataset).model
    p = model.posterior(three_class_dataset)[0]

    assert set(p) == {"A", "B", "C"}
    assert all(0.0 <= v <= 1.0 for v in p.values())
    assert max(p, key=p.get) == "A"


def test_failed_sub_problem_fails_the_composite(three_class_dataset):
    bad = TrainingConfig(variant="svm_pegasos", l2=0.0, metrics=[])
    result = OneVsRestTrainer(bad, max_workers=1).train(three_class_dataset)

    assert result.state == TrainingState.FAILED
    assert result.model is None
    assert "pegasos requires l2 > 0" in result.error


def test_needs_two_labels(cfg):
    ds = InMemoryDataset.from_rows([({0: 1.0}, "A")])
    result = OneVsRestTrainer(cfg).train(ds)

    assert result.state == TrainingState.FAILED
    assert "at least two labels" in result.error


def test_saved_directory_reloads_the_same_predictions(three_class_dataset, cfg, tmp_path):
    model = OneVsRestTrainer(cfg, max_workers=1).train(three_class_dataset).model

    root = model.save(tmp_path / "ovr")
    restored = OneVsRestModel.load(root, cfg)

    assert restored.labels == model.labels
    assert restored.classify(three_class_dataset) == model.classify(three_class_dataset)
    for ex_id, p in restored.posterior(three_class_dataset).items():
        assert p == pytest.approx(model.posterior(three_class_dataset)[ex_id])


def test_loading_a_directory_without_index_fails(tmp_path):
    with pytest.raises(CheckpointFormatError):
        OneVsRestModel.load(tmp_path)
