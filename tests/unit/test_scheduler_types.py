"""
tests/unit/test_scheduler_types.py — Scheduler Data Contract Tests

Covers:
  - resolve_work_item: callables vs literal values
  - Computation: input passing decided from the callable's signature
  - TaskDescriptor: seed consumption
  - TaskSelector: explicit constructors, inference from raw keys, matching
"""

from __future__ import annotations

import functools

import pytest

from relaytask.scheduler.types import (
    NO_SEED,
    Computation,
    ConstantValue,
    SelectorKind,
    TaskDescriptor,
    TaskSelector,
    resolve_work_item,
)


# ─────────────────────────────────────────────────────────────────────────────
# Work items
# ─────────────────────────────────────────────────────────────────────────────

class TestWorkItems:

    def test_literal_becomes_constant(self):
        item = resolve_work_item(100)
        assert isinstance(item, ConstantValue)
        assert item.invoke("ignored") == 100

    def test_none_becomes_constant(self):
        assert resolve_work_item(None).invoke(5) is None

    def test_callable_becomes_computation(self):
        item = resolve_work_item(lambda x: x + 1)
        assert isinstance(item, Computation)
        assert item.invoke(1) == 2

    def test_zero_arg_callable_called_without_input(self):
        item = Computation.from_callable(lambda: "ok")
        assert item.takes_input is False
        assert item.invoke("ignored") == "ok"

    def test_var_positional_receives_input(self):
        item = Computation.from_callable(lambda *args: args)
        assert item.invoke(7) == (7,)

    def test_keyword_only_callable_gets_no_input(self):
        def fn(*, flag=True):
            return flag
        assert Computation.from_callable(fn).invoke(1) is True

    def test_partial_with_bound_args(self):
        def add(a, b):
            return a + b
        item = Computation.from_callable(functools.partial(add, 1))
        assert item.invoke(2) == 3

    def test_builtin_without_signature_receives_input(self):
        assert Computation.from_callable(str).invoke(5) == "5"

    def test_callable_object(self):
        class Doubler:
            def __call__(self, x):
                return x * 2
        assert Computation.from_callable(Doubler()).invoke(4) == 8


# ─────────────────────────────────────────────────────────────────────────────
# TaskDescriptor
# ─────────────────────────────────────────────────────────────────────────────

class TestTaskDescriptor:

    def test_without_seed_uses_propagated(self):
        d = TaskDescriptor(id=1, name="#1", func=None)
        assert not d.has_seed
        assert d.take_input("chain") == "chain"

    def test_seed_consumed_once(self):
        d = TaskDescriptor(id=1, name="#1", func=None, seed=10)
        assert d.take_input("chain") == 10
        assert d.seed is NO_SEED
        assert d.take_input("chain") == "chain"

    def test_falsy_seed_still_wins(self):
        d = TaskDescriptor(id=1, name="#1", func=None, seed=0)
        assert d.take_input("chain") == 0


# ─────────────────────────────────────────────────────────────────────────────
# TaskSelector
# ─────────────────────────────────────────────────────────────────────────────

class TestTaskSelector:

    def test_infer_callable_is_ref(self):
        fn = lambda: None
        assert TaskSelector.infer(fn) == TaskSelector(SelectorKind.REF, fn)

    def test_infer_int_is_id(self):
        assert TaskSelector.infer(3).kind is SelectorKind.ID

    def test_infer_float_is_id(self):
        selector = TaskSelector.infer(4.0)
        assert selector.kind is SelectorKind.ID
        assert selector.matches(TaskDescriptor(id=4, name="#4", func=None))

    def test_infer_bool_is_name(self):
        assert TaskSelector.infer(True).kind is SelectorKind.NAME

    def test_infer_string_is_name(self):
        assert TaskSelector.infer("fetch").kind is SelectorKind.NAME

    def test_matches(self):
        fn = lambda: None
        d = TaskDescriptor(id=4, name="fetch", func=fn)
        assert TaskSelector.by_id(4).matches(d)
        assert TaskSelector.by_name("fetch").matches(d)
        assert TaskSelector.by_ref(fn).matches(d)
        assert not TaskSelector.by_id(5).matches(d)
        assert not TaskSelector.by_ref(lambda: None).matches(d)

    def test_ref_matching_is_identity(self):
        d = TaskDescriptor(id=1, name="#1", func=[1, 2])
        assert not TaskSelector.by_ref([1, 2]).matches(d)
        assert TaskSelector.by_ref(d.func).matches(d)

    def test_unknown_kind_rejected(self):
        selector = TaskSelector("bogus", 1)  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="selector kind"):
            selector.matches(TaskDescriptor(id=1, name="#1", func=None))
