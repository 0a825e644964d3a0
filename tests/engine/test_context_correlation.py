"""
Tests for Fingerprints and Context Stores.

Verifies:
1. Reference and working copies of a node share a fingerprint.
2. Nested expressions starting at the same token are told apart.
3. The eager store misses rule-created nodes and ignores invalidation.
4. The lazy store state machine (STALE -> RESOLVED -> STALE).
5. A rewriting pass resolves the lazy store once and invalidates it at the end.
"""

import libcst as cst

from cst_preprocessor.core.context_store import EagerContextStore, LazyContextStore
from cst_preprocessor.core.fingerprint import fingerprint, is_addressable
from cst_preprocessor.core.tree import iter_tree
from cst_preprocessor.enums import ContextMode, StoreState
from cst_preprocessor.utils.rendering import canonical_expression

SOURCE = """
class Service:
    def __init__(self, name: str):
        self.name = name

    def run(self):
        return self.name.upper().strip()
"""


def _calls(tree):
  return [n for n in iter_tree(tree) if isinstance(n, cst.Call)]


def test_working_clone_matches_reference(make_unit):
  unit = make_unit(SOURCE)
  for ref_call, work_call in zip(_calls(unit.reference), _calls(unit.working)):
    assert ref_call is not work_call
    assert fingerprint(ref_call, unit.positions.location) == fingerprint(work_call, unit.locate)


def test_nested_calls_on_one_token_differ(make_unit):
  unit = make_unit(SOURCE)
  outer, inner = _calls(unit.working)
  fp_outer, fp_inner = fingerprint(outer, unit.locate), fingerprint(inner, unit.locate)

  assert fp_outer.start_token == fp_inner.start_token
  assert fp_outer.line == fp_inner.line
  assert fp_outer != fp_inner
  assert fp_outer.text == "self.name.upper().strip()"


def test_fingerprints_are_deterministic(make_unit):
  first, second = make_unit(SOURCE), make_unit(SOURCE)
  keys_a = [fingerprint(c, first.locate) for c in _calls(first.working)]
  keys_b = [fingerprint(c, second.locate) for c in _calls(second.working)]
  assert keys_a == keys_b


def test_trivia_is_not_addressable(make_unit):
  unit = make_unit("f(a, b)\n")
  comma = next(n for n in iter_tree(unit.working) if isinstance(n, cst.Comma))
  assert not is_addressable(comma)
  assert fingerprint(comma, unit.locate) is None


def test_rule_created_node_has_no_fingerprint(make_unit):
  unit = make_unit(SOURCE)
  assert fingerprint(cst.Name("fresh"), unit.locate) is None


def test_canonical_text_ignores_layout():
  spaced = cst.parse_expression("foo( 1,\n   2 )")
  tight = cst.parse_expression("foo(1, 2)")
  assert canonical_expression(spaced) == canonical_expression(tight)


def test_eager_store_lookup(make_unit):
  unit = make_unit(SOURCE)
  assert isinstance(unit.store, EagerContextStore)
  assert len(unit.store) > 0

  call = _calls(unit.working)[0]
  context = unit.store.lookup(call)
  assert context is not None
  assert context.class_name == "Service"
  assert str(context.get_type(cst.parse_expression("self"))) == "Service"


def test_eager_store_misses_replacements(make_unit):
  unit = make_unit(SOURCE)
  replacement = cst.parse_expression("self.name.upper().strip()")
  assert unit.store.lookup(replacement) is None

  unit.store.invalidate()
  assert unit.store.lookup(_calls(unit.working)[0]) is not None


def test_lazy_store_state_machine(make_unit):
  unit = make_unit(SOURCE, mode=ContextMode.LAZY)
  store = unit.store
  assert isinstance(store, LazyContextStore)
  assert store.state is StoreState.STALE
  assert store.resolutions == 0

  call = _calls(unit.working)[0]
  assert store.lookup(call) is not None
  assert store.state is StoreState.RESOLVED
  assert store.resolutions == 1

  store.lookup(call)
  assert store.resolutions == 1

  store.invalidate()
  assert store.state is StoreState.STALE
  assert store.lookup(call) is not None
  assert store.resolutions == 2


def test_lazy_store_invalidated_by_replacement(make_unit):
  unit = make_unit("x = 1\ny = x\n", mode=ContextMode.LAZY)
  unit.store.lookup(unit.working.body[0])
  assert unit.store.state is StoreState.RESOLVED

  unit.visit(lambda node: None)
  assert unit.store.state is StoreState.RESOLVED

  unit.visit(lambda node: cst.Integer("2") if isinstance(node, cst.Integer) else None)
  assert unit.store.state is StoreState.STALE

  # The next lookup analyses the rewritten tree
  context = unit.store.lookup(unit.working.body[1])
  assert context is not None
  assert unit.store.state is StoreState.RESOLVED


def test_lazy_store_resolves_once_per_pass(make_batch, texts_of):
  code = """
import logging


class Service:
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def run(self):
        self.logger.debug("one")
        self.logger.debug("two")
        self.logger.debug("three")
"""
  processor = make_batch({"service.py": code}, mode=ContextMode.LAZY)
  processor.comment_out("logging.Logger", "debug")

  unit = processor.units[0]
  assert texts_of(processor)["service.py"].count("# self.logger.debug") == 3
  assert unit.store.resolutions == 1
  assert unit.store.state is StoreState.STALE


def test_get_by_fingerprint(make_unit):
  eager = make_unit(SOURCE)
  lazy = make_unit(SOURCE, mode=ContextMode.LAZY)

  eager_key = fingerprint(_calls(eager.working)[0], eager.locate)
  assert eager.store.get(eager_key).class_name == "Service"

  lazy_call = _calls(lazy.working)[0]
  assert lazy.store.lookup(lazy_call) is not None
  lazy_key = fingerprint(lazy_call, lazy.store._positions.location)
  assert lazy.store.get(lazy_key).class_name == "Service"
  assert lazy.store.resolutions == 1
