#!filepath: tests/training/test_variant_registry.py
import pytest

from structsvm.config.training_config import CostConfig, TrainingConfig
from structsvm.training.registry import (
    build_model,
    build_training_loop,
    load_model,
    resolve_variant,
    train_model,
)
from structsvm.utils.errors import ConfigurationError


@pytest.mark.parametrize(
    "variant, policy, structured, check_every",
    [
        ("svm", "occasional_l2", False, 5),
        ("svm_dense", "dense", False, 5),
        ("svm_cost_learner", "dense", False, 5),
        ("svm_structured", "occasional_l2", True, 1),
        ("structured_svmc", "dense", True, 1),
        ("svm_pegasos", "pegasos", True, 1),
    ],
)
def test_variant_composition(variant, policy, structured, check_every):
    cost = "label" if variant in ("svm_cost_learner", "structured_svmc") else "hamming"
    cfg = TrainingConfig(variant=variant, l2=0.1, cost=CostConfig(name=cost))

    model = build_model(cfg, ["A", "B"])
    loop = build_training_loop(cfg, model)

    assert model.structured is structured
    assert loop.policy.name == policy
    assert loop.monitor.check_every == check_every


def test_check_every_override():
    cfg = TrainingConfig(variant="svm_dense", check_every=2)
    loop = build_training_loop(cfg, build_model(cfg, ["A", "B"]))

    assert loop.monitor.check_every == 2


def test_fit_bias_default_and_override():
    learner = TrainingConfig(variant="svm_cost_learner", cost=CostConfig(name="label"))
    forced = TrainingConfig(variant="svm_dense", fit_bias=False)

    assert build_model(learner, ["A", "B"]).fit_bias is False
    assert build_model(forced, ["A", "B"]).fit_bias is False


@pytest.mark.parametrize(
    "variant, cost",
    [
        ("svm", "label"),
        ("svm_structured", "constant"),
        ("svm_cost_learner", "hamming"),
        ("structured_svmc", "hamming"),
    ],
)
def test_cost_rules(variant, cost):
    with pytest.raises(ConfigurationError):
        build_model(TrainingConfig(variant=variant, cost=CostConfig(name=cost)), ["A", "B"])


def test_unknown_variant():
    with pytest.raises(ConfigurationError):
        resolve_variant("perceptron")


def test_load_model_uses_recorded_variant(separable_dataset, tmp_path):
    cfg = TrainingConfig(variant="svm_pegasos", l2=0.5, iterations=2, metrics=[])
    result = train_model(cfg, separable_dataset)
    path = result.model.save(tmp_path / "pegasos.ckpt")

    restored = load_model(path)

    assert restored.variant == "svm_pegasos"
    assert restored.structured is True
    assert restored.arena.s == result.model.arena.s
    assert restored.classify(separable_dataset) == result.model.classify(separable_dataset)


def test_load_model_with_config_overrides(separable_dataset, tmp_path):
    cfg = TrainingConfig(variant="svm_dense", iterations=1, metrics=[])
    path = train_model(cfg, separable_dataset).model.save(tmp_path / "dense.ckpt")

    restored = load_model(path, TrainingConfig(variant="svm_dense", tie_break="last"))

    assert restored.tie_break == "last"
