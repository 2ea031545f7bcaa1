#!filepath: tests/model/test_svm_model.py
import numpy as np
import pytest

from structsvm.config.training_config import CostConfig, TrainingConfig
from structsvm.data.dataset import InMemoryDataset
from structsvm.data.structure import register_structure_optimizer
from structsvm.model.svm import SVMModel
from structsvm.training.registry import train_model
from structsvm.utils.errors import ConfigurationError


@pytest.fixture
def model(three_class_dataset):
    cfg = TrainingConfig(variant="svm_dense", l2=0.01, iterations=5, seed=3, metrics=[])
    return train_model(cfg, three_class_dataset).model


def test_classify_is_argmax_of_posterior(model, three_class_dataset):
    posterior = model.posterior(three_class_dataset)
    predicted = model.classify(three_class_dataset)

    for ex in three_class_dataset:
        p = posterior[ex.id]
        assert predicted[ex.id] == max(model.labels, key=lambda lb: p[lb])
        assert sum(p.values()) == pytest.approx(1.0)


def test_posterior_is_stable_for_large_scores(model, three_class_dataset):
    model.arena.bias.w[:] = [1000.0, 0.0, -1000.0]
    ex = three_class_dataset.example(0)

    p = model.posterior_example(three_class_dataset, ex)

    assert np.isfinite(list(p.values())).all()
    assert p["A"] == pytest.approx(1.0)


def test_fixed_labels_override_scores(model, three_class_dataset):
    model.fixed_labels = {0: "C"}

    assert model.classify(three_class_dataset)[0] == "C"
    assert model.posterior(three_class_dataset)[0] == {"A": 0.0, "B": 0.0, "C": 1.0}


def test_label_mapping_onto_valid_labels():
    m = SVMModel(labels=["pos", "neg"], label_mapping={"+1": "pos", "-1": "neg"})

    assert m.map_valid_label("+1") == "pos"
    assert m.map_valid_label("neg") == "neg"
    assert m.map_valid_label("0") is None
    assert m.map_valid_label(None) is None


def test_clone_owns_its_weights(model):
    deep = model.clone()
    shallow = model.clone(shallow=True)

    deep.arena.features.w[:] = 0.0

    assert model.arena.features.w.any()
    assert shallow.arena is None
    assert shallow.labels == model.labels


def test_clone_owns_its_cost_model(three_class_dataset):
    cfg = TrainingConfig(
        variant="svm_cost_learner",
        l2=0.01,
        iterations=3,
        cost=CostConfig(name="label"),
        metrics=[],
    )
    model = train_model(cfg, three_class_dataset).model
    other = model.clone()

    assert other.cost_model is not model.cost_model
    assert other.cost_model.labels == model.cost_model.labels
    assert other.cost_model._gold_of.__self__ is other

    # retraining the clone on relabelled data leaves the original's gold lookup alone
    flipped = three_class_dataset.relabel(lambda lb: {"A": "B", "B": "A"}.get(lb, lb))
    assert train_model(cfg, flipped, model=other).ok

    ex = three_class_dataset.example(0)
    assert model.cost_model.gold(ex) == "A"
    assert other.cost_model.gold(flipped.example(0)) == "B"
    assert model.cost_model._gold_of.__self__ is model


def test_features_outside_trained_vocabulary_are_ignored(model, three_class_dataset):
    wide = InMemoryDataset.from_rows([({0: 1.0, 3: 0.5, 9: 4.0}, "A")], num_features=10)
    narrow = InMemoryDataset.from_rows([({0: 1.0, 3: 0.5}, "A")], num_features=4)

    np.testing.assert_array_equal(
        model.scores(wide, wide.example(0)),
        model.scores(narrow, narrow.example(0)),
    )


def test_warm_restart_shape_mismatch(model):
    with pytest.raises(ConfigurationError):
        model.allocate(model.arena.num_features + 1)


def test_structured_posterior_is_one_hot(three_class_dataset):
    cfg = TrainingConfig(
        variant="svm_structured",
        structure_collection="by_group",
        structure_optimizer="agree",
        iterations=3,
        metrics=[],
    )
    m = train_model(cfg, three_class_dataset).model

    posterior = m.posterior(three_class_dataset)
    predicted = m.classify(three_class_dataset)

    for ex in three_class_dataset:
        assert sorted(posterior[ex.id].values()) == [0.0, 0.0, 1.0]
        assert posterior[ex.id][predicted[ex.id]] == 1.0
    # agree: one label per group
    assert len({predicted[i] for i in (0, 1, 2)}) == 1
    assert len({predicted[i] for i in (3, 4, 5)}) == 1


def test_untrained_model_cannot_score(three_class_dataset):
    with pytest.raises(ConfigurationError):
        SVMModel(labels=["A", "B"]).scorer()


@pytest.mark.parametrize("tie_break, expected", [("first", "A"), ("last", "C")])
def test_exact_ties_follow_the_tie_break_rule(three_class_dataset, tie_break, expected):
    m = SVMModel(labels=["A", "B", "C"], tie_break=tie_break)
    m.allocate(4)

    predicted = m.classify(three_class_dataset)
    posterior = m.posterior(three_class_dataset)

    for ex in three_class_dataset:
        assert predicted[ex.id] == expected
        assert m.argmax_label(posterior[ex.id]) == expected


def _omit_everything():
    class _Omit:
        def optimize(self, scores, fixed_labels, valid_labels, label_mapping):
            return {}

    return _Omit()


@pytest.mark.parametrize("tie_break, expected", [("first", "A"), ("last", "C")])
def test_structured_uniform_posterior_follows_the_tie_break_rule(three_class_dataset, tie_break, expected):
    register_structure_optimizer("omit_everything", _omit_everything)
    m = SVMModel(
        labels=["A", "B", "C"],
        tie_break=tie_break,
        structured=True,
        structure_optimizer="omit_everything",
    )
    m.allocate(4)

    posterior = m.posterior(three_class_dataset)
    predicted = m.classify(three_class_dataset)

    for ex in three_class_dataset:
        assert all(v == pytest.approx(1 / 3) for v in posterior[ex.id].values())
        assert predicted[ex.id] == expected
