"""
Semantic Contexts.

A `SemanticContext` is the fact bundle the analyzer hands out for one node:
the enclosing class and function, the variables visible at that point and the
universe of declarations. It answers type questions about *any* expression
evaluated at that point, including expressions that rules built after the
analysis ran.

Scopes are persistent: binding a name returns a new `Scope`, so a context can
keep a reference to the scope it was created in without copying it.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import libcst as cst

from cst_preprocessor.analysis.declarations import ClassInfo, DeclarationUniverse, MethodInfo
from cst_preprocessor.analysis.imports import ImportTable
from cst_preprocessor.analysis.reflection import runtime_class
from cst_preprocessor.analysis.types import (
  NONE_TYPE,
  ClassRefType,
  ModuleType,
  ObjectType,
  SymbolType,
  is_dict_like,
  make_union,
)

_SEQUENCES = frozenset(
  {
    "list",
    "tuple",
    "set",
    "frozenset",
    "collections.deque",
    "collections.abc.Sequence",
    "collections.abc.MutableSequence",
    "collections.abc.Iterable",
    "collections.abc.Iterator",
  }
)


class Scope:
  """
  Represents a variable scope (Global, Class, or Function).
  """

  def __init__(
    self,
    parent: Optional["Scope"] = None,
    name: str = "<root>",
    symbols: Optional[Dict[str, SymbolType]] = None,
  ):
    """
    Initialize the scope.

    Args:
        parent: The enclosing scope (None for global).
        name: Debug name for the scope.
        symbols: Initial bindings. Never mutated after construction.
    """
    self.parent = parent
    self.name = name
    self._symbols: Dict[str, SymbolType] = symbols or {}

  def bind(self, name: str, sym_type: SymbolType) -> "Scope":
    """
    Returns a copy of this scope with one more binding.

    Args:
        name: Variable identifier.
        sym_type: Inferred Type object.
    """
    symbols = dict(self._symbols)
    symbols[name] = sym_type
    return Scope(self.parent, self.name, symbols)

  def with_symbols(self, symbols: Dict[str, SymbolType]) -> "Scope":
    """Returns a copy of this scope with its local bindings replaced."""
    return Scope(self.parent, self.name, dict(symbols))

  def get(self, name: str) -> Optional[SymbolType]:
    """
    Resolve a symbol, traversing parent scopes.

    Args:
        name: Variable identifier to lookup.

    Returns:
        The SymbolType if found, else None.
    """
    if name in self._symbols:
      return self._symbols[name]
    if self.parent:
      return self.parent.get(name)
    return None

  def snapshot(self) -> Dict[str, SymbolType]:
    """Returns a shallow copy of the local bindings for branching."""
    return dict(self._symbols)


@dataclass(frozen=True)
class SemanticContext:
  """
  Facts about the point in a file where a node appears.

  Attributes:
      path: File the node belongs to.
      scope: Variables visible at the node.
      universe: Declarations of the whole batch.
      imports: Module-level import bindings of the file.
      class_info: Innermost enclosing class, if any.
      function: Innermost enclosing function, if any.
      in_class_body: True when the innermost enclosing definition is the class
        itself (i.e. the node is a class attribute or a method declaration).
  """

  path: Path
  scope: Scope
  universe: DeclarationUniverse
  imports: ImportTable
  class_info: Optional[ClassInfo] = None
  function: Optional[MethodInfo] = None
  in_class_body: bool = False

  @property
  def class_name(self) -> Optional[str]:
    """Simple name of the enclosing class."""
    return self.class_info.name if self.class_info else None

  def resolve_name(self, dotted: str) -> str:
    """Expands a name as written into its imported, fully qualified form."""
    return self.imports.resolve(dotted)

  def reference_type(self, dotted: str) -> Optional[SymbolType]:
    """
    Types a fully qualified name that is not a variable.

    Returns:
        Optional[SymbolType]: `ClassRefType` for classes of the batch or
        importable classes, `ModuleType` for any other imported path, else None.
    """
    key = self.universe.class_key(dotted)
    if key in self.universe.classes:
      return ClassRefType(key)
    if runtime_class(dotted) is not None:
      return ClassRefType(key)
    if "." in dotted:
      return ModuleType(name="Module", path=dotted)
    return None

  def get_type(self, expr: cst.BaseExpression) -> Optional[SymbolType]:
    """
    Infers the type of an expression evaluated at this point.

    Args:
        expr: Any expression, from the reference or the working tree.

    Returns:
        Optional[SymbolType]: The inferred type, or None if unknown.
    """
    if isinstance(expr, cst.Name):
      return self._name_type(expr.value)
    if isinstance(expr, cst.Attribute):
      return self._attribute_type(expr)
    if isinstance(expr, cst.Call):
      return self._call_type(expr)
    if isinstance(expr, cst.Subscript):
      return self._subscript_type(expr)
    if isinstance(expr, cst.SimpleString):
      return ObjectType("bytes") if "b" in expr.prefix.lower() else ObjectType("str")
    if isinstance(expr, cst.ConcatenatedString):
      return self.get_type(expr.left)
    if isinstance(expr, cst.FormattedString):
      return ObjectType("str")
    if isinstance(expr, cst.Integer):
      return ObjectType("int")
    if isinstance(expr, cst.Float):
      return ObjectType("float")
    if isinstance(expr, cst.Imaginary):
      return ObjectType("complex")
    if isinstance(expr, (cst.Dict, cst.DictComp)):
      return ObjectType("dict")
    if isinstance(expr, (cst.List, cst.ListComp)):
      return ObjectType("list")
    if isinstance(expr, (cst.Set, cst.SetComp)):
      return ObjectType("set")
    if isinstance(expr, cst.Tuple):
      return ObjectType("tuple")
    if isinstance(expr, cst.Comparison):
      return ObjectType("bool")
    if isinstance(expr, cst.UnaryOperation):
      if isinstance(expr.operator, cst.Not):
        return ObjectType("bool")
      return self.get_type(expr.expression)
    if isinstance(expr, cst.BooleanOperation):
      return make_union([self.get_type(expr.left), self.get_type(expr.right)])
    if isinstance(expr, cst.IfExp):
      return make_union([self.get_type(expr.body), self.get_type(expr.orelse)])
    if isinstance(expr, cst.NamedExpr):
      return self.get_type(expr.value)
    if isinstance(expr, cst.BinaryOperation):
      left, right = self.get_type(expr.left), self.get_type(expr.right)
      if left is not None and left == right and isinstance(left, ObjectType):
        return left
    return None

  # --- Resolution helpers ---

  def _name_type(self, name: str) -> Optional[SymbolType]:
    if name in ("True", "False"):
      return ObjectType("bool")
    if name == "None":
      return NONE_TYPE
    bound = self.scope.get(name)
    if bound is not None:
      return bound
    return self.reference_type(self.imports.resolve(name))

  def _attribute_type(self, expr: cst.Attribute) -> Optional[SymbolType]:
    attr = expr.attr.value
    base = self.get_type(expr.value)
    if isinstance(base, ModuleType):
      return self.reference_type(f"{base.path}.{attr}")
    if isinstance(base, (ObjectType, ClassRefType)) and base.name in self.universe.classes:
      return self.universe.field_type(base.name, attr)
    return None

  def _call_type(self, expr: cst.Call) -> Optional[SymbolType]:
    func = expr.func
    if isinstance(func, cst.Attribute):
      receiver = self.get_type(func.value)
      if isinstance(receiver, (ObjectType, ClassRefType)) and receiver.name in self.universe.classes:
        method = self.universe.find_method(receiver.name, func.attr.value)
        return self.universe.return_type(method) if method else None
      if isinstance(receiver, ModuleType):
        dotted = f"{receiver.path}.{func.attr.value}"
        found = self.reference_type(dotted)
        if isinstance(found, ClassRefType):
          return ObjectType(found.name)
        return self.universe.external_return_type(dotted)
      return None

    if isinstance(func, cst.Name):
      bound = self.scope.get(func.value)
      if isinstance(bound, ClassRefType):
        return ObjectType(bound.name)
      if isinstance(bound, ModuleType):
        return self.universe.external_return_type(bound.path)
      if bound is not None:
        return None
      local = self.universe.functions.get(self.path, {}).get(func.value)
      if local is not None:
        return self.universe.return_type(local)
      dotted = self.imports.resolve(func.value)
      found = self.reference_type(dotted)
      if isinstance(found, ClassRefType):
        return ObjectType(found.name)
      return self.universe.external_return_type(dotted)
    return None

  def _subscript_type(self, expr: cst.Subscript) -> Optional[SymbolType]:
    base = self.get_type(expr.value)
    if not isinstance(base, ObjectType) or not base.args:
      return None
    if len(base.args) == 2 and is_dict_like(base):
      return base.args[1]
    if base.name in _SEQUENCES and len(expr.slice) == 1 and isinstance(expr.slice[0].slice, cst.Index):
      return base.args[0]
    return None

  def element_type(self, iterable: cst.BaseExpression) -> Optional[SymbolType]:
    """Type of the items produced by iterating over `iterable`."""
    base = self.get_type(iterable)
    if isinstance(base, ObjectType) and base.args:
      if base.name in _SEQUENCES or is_dict_like(base):
        return base.args[0]
    return None
