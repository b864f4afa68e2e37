from __future__ import annotations

import copy
import json
import pickle

import pytest

from jsondocstore import FrozenDict, freeze, thaw


def test_freeze_converts_containers():
    frozen = freeze({"a": [1, {"b": [2]}], "c": {"d": None}})
    assert isinstance(frozen, FrozenDict)
    assert frozen["a"] == (1, {"b": (2,)})
    assert isinstance(frozen["a"][1], FrozenDict)
    assert isinstance(frozen["c"], FrozenDict)


def test_frozen_dict_rejects_mutation():
    frozen = freeze({"a": 1})
    with pytest.raises(TypeError):
        frozen["a"] = 2  # type: ignore[index]
    with pytest.raises(TypeError):
        del frozen["a"]  # type: ignore[attr-defined]
    with pytest.raises(AttributeError):
        frozen._data = {}  # type: ignore[misc]
    with pytest.raises(AttributeError):
        frozen.update({"a": 3})  # type: ignore[attr-defined]
    assert frozen == {"a": 1}


def test_freeze_rejects_non_json_values():
    with pytest.raises(TypeError):
        freeze({"s": {1, 2}})
    with pytest.raises(TypeError):
        freeze({1: "int key"})
    with pytest.raises(TypeError):
        freeze(object())


def test_thaw_gives_independent_mutable_copy():
    frozen = freeze({"a": [1, {"b": 2}]})
    thawed = frozen.thaw()
    thawed["a"][1]["b"] = 3
    thawed["a"].append(4)
    assert frozen["a"][1]["b"] == 2
    assert json.loads(json.dumps(thaw(frozen))) == {"a": [1, {"b": 2}]}


def test_copies_share_the_same_value():
    frozen = freeze({"a": {"b": 1}})
    assert copy.copy(frozen) is frozen
    assert copy.deepcopy(frozen) is frozen


def test_pickle_roundtrip():
    frozen = freeze({"a": (1, 2), "b": {"c": "d"}})
    assert pickle.loads(pickle.dumps(frozen)) == frozen


def test_freeze_is_idempotent():
    frozen = freeze({"a": 1})
    assert freeze(frozen) is frozen
    assert freeze("text") == "text"
    assert freeze(None) is None
