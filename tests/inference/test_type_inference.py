"""
Tests for the Symbol Table inference pass.

Verifies:
1. Receivers (``self``/``cls``) and parameters are typed from annotations.
2. Fields are typed from the parameter or call they were assigned from.
3. If/Else branches merge into unions, loops type their targets.
4. Imports bind modules and classes.
5. Class bodies are not visible from their methods.
"""

import textwrap
from pathlib import Path

import libcst as cst

from cst_preprocessor.analysis.declarations import DeclarationUniverse
from cst_preprocessor.analysis.symbol_table import analyze
from cst_preprocessor.analysis.types import ClassRefType, ModuleType, ObjectType, UnionType


def contexts_at(code, node_type):
  """Runs the analyzer and returns the contexts handed out for `node_type` nodes."""
  module = cst.parse_module(textwrap.dedent(code).lstrip("\n"))
  path = Path("sample.py")
  universe = DeclarationUniverse({"logging.getLogger": "logging.Logger"})
  universe.add_module(path, module)
  found = []

  def _collect(node, context):
    if isinstance(node, node_type):
      found.append(context)

  analyze(module, path, universe, _collect)
  return found


def type_of(context, code):
  return context.get_type(cst.parse_expression(code))


def test_fields_from_params_and_calls():
  (ctx,) = contexts_at(
    """
    import logging


    class Service:
        def __init__(self, name: str):
            self.name = name
            self.logger = logging.getLogger(__name__)

        def run(self):
            return self.name
    """,
    cst.Return,
  )
  assert ctx.class_name == "Service"
  assert ctx.function.name == "run"
  assert type_of(ctx, "self") == ObjectType("Service")
  assert type_of(ctx, "self.name") == ObjectType("str")
  assert type_of(ctx, "self.logger") == ObjectType("logging.Logger")
  assert type_of(ctx, "self.missing") is None


def test_constructor_call_and_method_return():
  (ctx,) = contexts_at(
    """
    class Repo:
        def load(self) -> "Item":
            pass


    class Item:
        pass


    def fetch():
        repo = Repo()
        return repo.load()
    """,
    cst.Return,
  )
  assert type_of(ctx, "repo") == ObjectType("Repo")
  assert type_of(ctx, "repo.load()") == ObjectType("Item")
  assert ctx.class_name is None


def test_if_else_merges_into_union():
  (ctx,) = contexts_at(
    """
    def pick(flag):
        if flag:
            x = 1
        else:
            x = "a"
        return x
    """,
    cst.Return,
  )
  merged = type_of(ctx, "x")
  assert isinstance(merged, UnionType)
  assert str(merged) == "Union[int, str]"


def test_same_type_on_both_branches_stays_plain():
  (ctx,) = contexts_at(
    """
    def pick(flag):
        if flag:
            x = 1
        else:
            x = 2
        return x
    """,
    cst.Return,
  )
  assert type_of(ctx, "x") == ObjectType("int")


def test_loop_target_and_subscript():
  (ctx,) = contexts_at(
    """
    from typing import Dict, List


    def walk(items: List[str], counts: Dict[str, int]):
        for item in items:
            return item, counts[item]
    """,
    cst.Return,
  )
  assert type_of(ctx, "item") == ObjectType("str")
  assert type_of(ctx, "counts[item]") == ObjectType("int")
  assert str(type_of(ctx, "counts")) == "dict[str, int]"


def test_imports_bind_modules_and_classes():
  (ctx,) = contexts_at(
    """
    import os.path as osp
    from logging import Logger


    def build():
        return Logger("x")
    """,
    cst.Return,
  )
  bound = type_of(ctx, "osp")
  assert isinstance(bound, ModuleType)
  assert bound.path == "os.path"
  assert type_of(ctx, "Logger") == ClassRefType("logging.Logger")
  assert type_of(ctx, 'Logger("x")') == ObjectType("logging.Logger")


def test_classmethod_receiver_is_class_reference():
  (ctx,) = contexts_at(
    """
    class Factory:
        @classmethod
        def create(cls):
            return cls
    """,
    cst.Return,
  )
  assert type_of(ctx, "cls") == ClassRefType("Factory")


def test_class_body_is_not_visible_from_methods():
  (ctx,) = contexts_at(
    """
    class A:
        x = 1

        def f(self):
            return x
    """,
    cst.Return,
  )
  assert type_of(ctx, "x") is None


def test_class_body_context():
  contexts = contexts_at(
    """
    class A:
        x = 1

        def f(self):
            y = 2
    """,
    cst.Assign,
  )
  assert [c.in_class_body for c in contexts] == [True, False]
  assert all(c.class_name == "A" for c in contexts)


def test_literals():
  (ctx,) = contexts_at("value = 1\n", cst.Assign)
  assert type_of(ctx, "{1: 2}") == ObjectType("dict")
  assert type_of(ctx, "b'x'") == ObjectType("bytes")
  assert type_of(ctx, "'x' 'y'") == ObjectType("str")
  assert type_of(ctx, "a == b") == ObjectType("bool")
  assert type_of(ctx, "1 if c else 'a'") == UnionType([ObjectType("int"), ObjectType("str")])
