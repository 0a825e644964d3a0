"""
Tests for the Declaration Universe and type helpers.

Verifies:
1. Class, method, field and slot collection with their modifiers.
2. Annotation conversion (Optional, Union, ``X | Y``, generics, strings).
3. Subtype checks through batch bases and runtime reflection.
4. Case-insensitive member lookup.
"""

import textwrap
from pathlib import Path

import libcst as cst
import pytest

from cst_preprocessor.analysis.declarations import DeclarationUniverse
from cst_preprocessor.analysis.imports import ImportTable
from cst_preprocessor.analysis.types import (
  NONE_TYPE,
  ClassRefType,
  ObjectType,
  UnionType,
  is_dict_like,
  is_key_type,
  make_union,
  normalize_type_name,
  strip_optional,
)

SHAPES = """
import logging
from dataclasses import dataclass
from typing import final


class MyLogger(logging.Logger):
    pass


@final
class Base:
    __slots__ = ("_size",)

    def __init__(self, size: int):
        self._size = size

    def Size(self):
        return self._size

    def _helper(self):
        pass


class Child(Base):
    label: str = "c"


@dataclass
class Record:
    key: str


def make_child() -> Child:
    return Child(1)
"""


@pytest.fixture
def universe():
  result = DeclarationUniverse({"logging.getLogger": "logging.Logger"})
  result.add_module(Path("shapes.py"), cst.parse_module(textwrap.dedent(SHAPES).lstrip("\n")))
  return result


@pytest.fixture
def typing_imports():
  return ImportTable.from_module(cst.parse_module("from typing import Any, Dict, Optional, Union\n"))


def annotation(universe, imports, code):
  return universe.annotation_type(cst.parse_expression(code), imports)


def test_collects_classes(universe):
  assert set(universe.classes) == {"MyLogger", "Base", "Child", "Record"}
  base = universe.classes["Base"]
  assert base.is_final
  assert base.slots == ["_size"]
  assert set(base.methods) == {"__init__", "Size", "_helper"}
  assert base.methods["_helper"].is_private
  assert not base.methods["__init__"].is_private
  assert universe.classes["Child"].bases == ["Base"]
  assert universe.classes["Record"].is_dataclass
  assert "make_child" in universe.functions[Path("shapes.py")]


def test_field_types(universe):
  assert universe.field_type("Base", "_size") == ObjectType("int")
  assert universe.field_type("Child", "label") == ObjectType("str")
  # Inherited through Base
  assert universe.field_type("Child", "_size") == ObjectType("int")


def test_find_method_walks_bases(universe):
  assert universe.find_method("Child", "Size").owner == "Base"
  assert universe.find_method("Child", "size") is None


def test_has_member_is_case_insensitive(universe):
  assert universe.has_member("Child", "size")
  assert universe.has_member("Base", "SIZE")
  assert universe.has_member("MyLogger", "Debug")
  assert not universe.has_member("Base", "missing")


def test_is_subtype(universe):
  assert universe.is_subtype("Child", "Base")
  assert not universe.is_subtype("Base", "Child")
  assert universe.is_subtype("MyLogger", "logging.Logger")
  assert universe.is_subtype("logging.RootLogger", "logging.Logger")
  assert not universe.is_subtype("dict", "logging.Logger")


def test_duplicate_class_warns(universe, recorded):
  universe.add_module(Path("other.py"), cst.parse_module("class Base:\n    pass\n"))
  assert universe.classes["Base"].path == Path("shapes.py")
  assert "Class Base declared more than once" in recorded.export_text()


def test_annotation_shapes(universe, typing_imports):
  assert str(annotation(universe, typing_imports, "Optional[int]")) == "Union[None, int]"
  assert str(annotation(universe, typing_imports, "int | None")) == "Union[None, int]"
  assert str(annotation(universe, typing_imports, "Union[int, str]")) == "Union[int, str]"
  assert str(annotation(universe, typing_imports, "Dict[str, int]")) == "dict[str, int]"
  assert annotation(universe, typing_imports, "'Child'") == ObjectType("Child")
  assert annotation(universe, typing_imports, "type[Child]") == ClassRefType("Child")
  assert annotation(universe, typing_imports, "Any") is None
  assert annotation(universe, typing_imports, "Optional[Any]") is None


def test_call_result_type(universe):
  imports = ImportTable.from_module(cst.parse_module("import logging\n"))
  assert universe.call_result_type(cst.parse_expression("Child(1)"), imports) == ObjectType("Child")
  assert universe.call_result_type(cst.parse_expression("logging.getLogger()"), imports) == ObjectType(
    "logging.Logger"
  )
  assert universe.call_result_type(cst.parse_expression("unknown()"), imports) is None


def test_make_union():
  assert make_union([ObjectType("int"), None]) is None
  assert make_union([]) is None
  assert make_union([ObjectType("int"), ObjectType("int")]) == ObjectType("int")
  nested = make_union([UnionType([ObjectType("int"), ObjectType("str")]), ObjectType("int")])
  assert isinstance(nested, UnionType)
  assert len(nested.types) == 2


def test_strip_optional():
  assert strip_optional(make_union([ObjectType("int"), NONE_TYPE])) == ObjectType("int")
  assert strip_optional(ObjectType("str")) == ObjectType("str")


def test_is_dict_like():
  assert is_dict_like(ObjectType("dict"))
  assert is_dict_like(ObjectType("collections.OrderedDict"))
  assert not is_dict_like(ObjectType("list"))
  assert not is_dict_like(UnionType([ObjectType("dict"), NONE_TYPE]))
  assert not is_dict_like(None)
  assert not is_dict_like(ObjectType("Counter"))
  assert not is_dict_like(ObjectType("Mapping"))


def test_is_key_type():
  assert is_key_type(ObjectType("str"))
  assert is_key_type(UnionType([ObjectType("int"), ObjectType("str")]))
  assert not is_key_type(ObjectType("tuple", (ObjectType("int"),)))
  assert not is_key_type(ObjectType("list"))
  assert not is_key_type(None)


def test_normalize_type_name():
  assert normalize_type_name("typing.Dict") == "dict"
  assert normalize_type_name("typing.Mapping") == "collections.abc.Mapping"
  assert normalize_type_name("typing.Optional") == "Optional"
  assert normalize_type_name("collections.abc.Mapping") == "collections.abc.Mapping"
  assert normalize_type_name("Counter") == "Counter"
  assert normalize_type_name("builtins.int") == "int"
  assert normalize_type_name("logging.Logger") == "logging.Logger"


def test_class_key_matches_declaring_module(universe):
  assert universe.class_key("Base") == "Base"
  assert universe.class_key("shapes.Base") == "Base"
  assert universe.class_key("typing.Dict") == "dict"
  # Same simple name, other module
  assert universe.class_key("elsewhere.Base") == "elsewhere.Base"


def test_external_class_with_batch_name():
  universe = DeclarationUniverse()
  universe.add_module(Path("mylog.py"), cst.parse_module("class Logger:\n    def debug(self, msg):\n        pass\n"))

  assert universe.class_key("logging.Logger") == "logging.Logger"
  assert universe.class_key("mylog.Logger") == "Logger"
  assert not universe.is_subtype("Logger", "logging.Logger")
