#!filepath: tests/data/test_dataset.py
from pathlib import Path

import pytest

from structsvm.data.dataset import Dataset, Example, InMemoryDataset
from structsvm.utils.errors import CollaboratorFailure


def test_from_rows_assigns_stable_ids(separable_dataset):
    ids = [ex.id for ex in separable_dataset]

    assert ids == [0, 1, 2, 3]
    assert separable_dataset.example(2).label == "A"
    assert separable_dataset.sparse_features(separable_dataset.example(1)) == {1: 1.0}
    assert isinstance(separable_dataset, Dataset)


def test_vocabulary_size_from_observed_indices():
    ds = InMemoryDataset.from_rows([({4: 1.0}, "x"), ({0: 2.0}, "y")])

    assert ds.feature_vocabulary_size() == 5


def test_declared_vocabulary_smaller_than_observed():
    with pytest.raises(ValueError):
        InMemoryDataset.from_rows([({4: 1.0}, "x")], num_features=2)


def test_feature_names_default_and_explicit():
    plain = InMemoryDataset.from_rows([({0: 1.0, 1: 1.0}, "x")])
    named = InMemoryDataset.from_rows([({0: 1.0, 1: 1.0}, "x")], names=["bias", "len"])

    assert plain.feature_names([1]) == {1: "f1"}
    assert named.feature_names([0, 1]) == {0: "bias", 1: "len"}


def test_unknown_example_is_collaborator_failure(separable_dataset):
    with pytest.raises(CollaboratorFailure):
        separable_dataset.example(99)
    with pytest.raises(CollaboratorFailure):
        separable_dataset.sparse_features(Example(id=99))


def test_relabel_shares_features(separable_dataset):
    binary = separable_dataset.relabel(lambda y: y == "A")

    assert [ex.label for ex in binary] == [True, False, True, False]
    assert [ex.label for ex in separable_dataset] == ["A", "B", "A", "B"]
    assert binary.sparse_features(binary.example(0)) is separable_dataset.sparse_features(
        separable_dataset.example(0)
    )


def test_labels_in_first_seen_order():
    ds = InMemoryDataset.from_rows([({}, "b"), ({}, "a"), ({}, "b"), ({}, None)])

    assert ds.labels() == ["b", "a"]


def test_from_svmlight_with_query_ids(tmp_path: Path):
    path = tmp_path / "train.svm"
    path.write_text(
        "1 qid:1 0:1.0 2:0.5\n"
        "-1 qid:1 1:1.0\n"
        "2 qid:2 0:0.25\n",
        encoding="utf-8",
    )

    ds = InMemoryDataset.from_svmlight(str(path))

    assert len(ds) == 3
    assert [ex.label for ex in ds] == ["1", "-1", "2"]
    assert [ex.group for ex in ds] == [1, 1, 2]
    assert ds.feature_vocabulary_size() == 3
    assert ds.sparse_features(ds.example(0)) == {0: 1.0, 2: 0.5}


def test_from_svmlight_without_query_ids(tmp_path: Path):
    path = tmp_path / "plain.svm"
    path.write_text("1 0:1.0\n0 1:2.0\n", encoding="utf-8")

    ds = InMemoryDataset.from_svmlight(str(path), num_features=4)

    assert [ex.group for ex in ds] == [None, None]
    assert [ex.label for ex in ds] == ["1", "0"]
    assert ds.feature_vocabulary_size() == 4
