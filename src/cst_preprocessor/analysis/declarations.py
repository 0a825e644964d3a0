"""
Declaration Universe.

Indexes every class, method, field and module-level function declared in a
batch, so that rule setup can validate ``Class.member`` targets and the symbol
table can answer questions such as "what does ``Service.load`` return?".

Classes are indexed by simple name. Classes that are not part of the batch
are answered through runtime reflection (see `reflection.py`).
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Set, Union

import libcst as cst

from cst_preprocessor.analysis.imports import ImportTable
from cst_preprocessor.analysis.reflection import runtime_class, runtime_has_member, runtime_is_subclass
from cst_preprocessor.analysis.types import (
  NONE_TYPE,
  ClassRefType,
  ObjectType,
  SymbolType,
  make_union,
  normalize_type_name,
)
from cst_preprocessor.utils.console import log_warning
from cst_preprocessor.utils.rendering import get_full_name

_FINAL_DECORATORS = {"final", "typing.final", "typing_extensions.final"}


def is_private_name(name: str) -> bool:
  """Leading underscore, dunders excluded (``_x`` and ``__x`` but not ``__x__``)."""
  return name.startswith("_") and not (name.startswith("__") and name.endswith("__"))


def is_mangled_name(name: str) -> bool:
  return name.startswith("__") and not name.endswith("__")


@dataclass
class ParamInfo:
  """A declared parameter."""

  name: str
  annotation: Optional[cst.BaseExpression]
  kind: str  # "positional", "keyword", "star" or "star_star"
  default: Optional[cst.BaseExpression] = None


@dataclass
class MethodInfo:
  """A method, or a module-level function when `owner` is None."""

  name: str
  owner: Optional[str]
  path: Path
  params: List[ParamInfo]
  returns: Optional[cst.BaseExpression]
  imports: ImportTable = field(repr=False)
  is_final: bool = False
  is_static: bool = False
  is_classmethod: bool = False
  is_property: bool = False

  @property
  def is_private(self) -> bool:
    return is_private_name(self.name)


@dataclass
class FieldInfo:
  """
  An instance or class attribute.

  `annotation` is the declared annotation or the annotation of the parameter
  the attribute was assigned from. `value` is the call the attribute was
  assigned from (``Service()``, ``logging.getLogger(...)``), if any.
  """

  name: str
  annotation: Optional[cst.BaseExpression]
  imports: ImportTable = field(repr=False)
  value: Optional[cst.Call] = field(default=None, repr=False)


@dataclass
class ClassInfo:
  """A class declared in the batch."""

  name: str
  qualname: str
  path: Path
  bases: List[str]
  is_final: bool = False
  is_dataclass: bool = False
  methods: Dict[str, MethodInfo] = field(default_factory=dict)
  fields: Dict[str, FieldInfo] = field(default_factory=dict)
  slots: List[str] = field(default_factory=list)


def decorator_names(node: Union[cst.FunctionDef, cst.ClassDef], imports: ImportTable) -> Set[str]:
  """Returns the resolved dotted names of a node's decorators (calls unwrapped)."""
  names = set()
  for deco in node.decorators:
    expr = deco.decorator.func if isinstance(deco.decorator, cst.Call) else deco.decorator
    name = get_full_name(expr)
    if name:
      names.add(name)
      names.add(imports.resolve(name))
  return names


def is_final_decorated(node: Union[cst.FunctionDef, cst.ClassDef], imports: ImportTable) -> bool:
  """True for ``@final`` / ``@typing.final`` decorated declarations."""
  return bool(decorator_names(node, imports) & _FINAL_DECORATORS)


def collect_params(params: cst.Parameters) -> List[ParamInfo]:
  """Flattens a parameter list into declaration order."""
  result = []
  for p in list(params.posonly_params) + list(params.params):
    result.append(ParamInfo(p.name.value, _annotation_expr(p.annotation), "positional", p.default))
  if isinstance(params.star_arg, cst.Param):
    result.append(ParamInfo(params.star_arg.name.value, _annotation_expr(params.star_arg.annotation), "star"))
  for p in params.kwonly_params:
    result.append(ParamInfo(p.name.value, _annotation_expr(p.annotation), "keyword", p.default))
  if params.star_kwarg is not None:
    result.append(ParamInfo(params.star_kwarg.name.value, _annotation_expr(params.star_kwarg.annotation), "star_star"))
  return result


def _annotation_expr(annotation: Optional[cst.Annotation]) -> Optional[cst.BaseExpression]:
  return annotation.annotation if annotation is not None else None


def method_info(node: cst.FunctionDef, owner: Optional[str], path: Path, imports: ImportTable) -> MethodInfo:
  """
  Describes a function declaration.

  Args:
      node: The declaration.
      owner: Name of the class whose body declares it, if any.
      path: File the declaration lives in.
      imports: Import bindings of that file, used to resolve decorators.

  Returns:
      MethodInfo: The signature and modifiers of the declaration.
  """
  decorators = decorator_names(node, imports)
  return MethodInfo(
    name=node.name.value,
    owner=owner,
    path=path,
    params=collect_params(node.params),
    returns=_annotation_expr(node.returns),
    imports=imports,
    is_final=bool(decorators & _FINAL_DECORATORS),
    is_static="staticmethod" in decorators,
    is_classmethod="classmethod" in decorators,
    is_property=bool(decorators & {"property", "functools.cached_property", "cached_property"}),
  )


class DeclarationCollector(cst.CSTVisitor):
  """
  Collects the classes and module-level functions of one module.
  """

  def __init__(self, path: Path, imports: ImportTable) -> None:
    self.path = path
    self.imports = imports
    self.classes: List[ClassInfo] = []
    self.functions: Dict[str, MethodInfo] = {}
    self._class_stack: List[ClassInfo] = []
    self._function_stack: List[cst.FunctionDef] = []
    self._method_params: List[Dict[str, Optional[cst.BaseExpression]]] = []

  # --- Scoping ---

  def visit_ClassDef(self, node: cst.ClassDef) -> None:
    """Registers the class and enters its body."""
    qual = ".".join([c.name for c in self._class_stack] + [node.name.value])
    bases = [self.imports.resolve(get_full_name(arg.value)) for arg in node.bases if arg.keyword is None]
    decorators = decorator_names(node, self.imports)
    info = ClassInfo(
      name=node.name.value,
      qualname=qual,
      path=self.path,
      bases=[b for b in bases if b],
      is_final=bool(decorators & _FINAL_DECORATORS),
      is_dataclass=bool(decorators & {"dataclass", "dataclasses.dataclass"}),
    )
    self.classes.append(info)
    self._class_stack.append(info)

  def leave_ClassDef(self, original_node: cst.ClassDef) -> None:
    self._class_stack.pop()

  def visit_FunctionDef(self, node: cst.FunctionDef) -> None:
    """Registers methods and module-level functions."""
    if not self._function_stack:
      owner = self._class_stack[-1] if self._class_stack else None
      info = method_info(node, owner.name if owner else None, self.path, self.imports)
      if owner is not None:
        owner.methods.setdefault(info.name, info)
      else:
        self.functions.setdefault(info.name, info)
    self._function_stack.append(node)
    self._method_params.append({p.name: p.annotation for p in collect_params(node.params)})

  def leave_FunctionDef(self, original_node: cst.FunctionDef) -> None:
    self._function_stack.pop()
    self._method_params.pop()

  # --- Fields ---

  def visit_AnnAssign(self, node: cst.AnnAssign) -> None:
    """Class-level ``x: T`` and ``self.x: T = ...`` declarations."""
    owner = self._current_class()
    if owner is None:
      return
    name = self._field_target(node.target)
    if name:
      owner.fields[name] = FieldInfo(name, node.annotation.annotation, self.imports)

  def visit_Assign(self, node: cst.Assign) -> None:
    """``__slots__`` and ``self.x = <param or constructor>`` assignments."""
    owner = self._current_class()
    if owner is None:
      return
    for target in node.targets:
      if not self._function_stack and isinstance(target.target, cst.Name) and target.target.value == "__slots__":
        owner.slots.extend(_string_elements(node.value))
        continue
      name = self._field_target(target.target)
      if not name:
        continue
      known = owner.fields.get(name)
      if known is not None and (known.annotation is not None or known.value is not None):
        continue
      call = node.value if isinstance(node.value, cst.Call) and get_full_name(node.value.func) else None
      owner.fields[name] = FieldInfo(name, self._param_annotation(node.value), self.imports, call)

  def _current_class(self) -> Optional[ClassInfo]:
    # Methods of nested functions do not declare fields of the outer class.
    if not self._class_stack or len(self._function_stack) > 1:
      return None
    return self._class_stack[-1]

  def _field_target(self, target: cst.BaseExpression) -> Optional[str]:
    if not self._function_stack:
      return target.value if isinstance(target, cst.Name) else None
    if (
      isinstance(target, cst.Attribute)
      and isinstance(target.value, cst.Name)
      and target.value.value == "self"
    ):
      return target.attr.value
    return None

  def _param_annotation(self, value: cst.BaseExpression) -> Optional[cst.BaseExpression]:
    if isinstance(value, cst.Name) and self._method_params:
      return self._method_params[-1].get(value.value)
    return None


def _string_elements(value: cst.BaseExpression) -> List[str]:
  if isinstance(value, cst.SimpleString):
    text = value.evaluated_value
    return [text] if isinstance(text, str) else []
  if isinstance(value, (cst.Tuple, cst.List, cst.Set)):
    names = []
    for el in value.elements:
      if isinstance(el.value, cst.SimpleString) and isinstance(el.value.evaluated_value, str):
        names.append(el.value.evaluated_value)
    return names
  return []


def module_parts(path: Path) -> List[str]:
  """Dotted module segments a file can be imported as (``pkg/__init__.py`` is ``pkg``)."""
  parts = list(path.with_suffix("").parts)
  if parts and parts[-1] == "__init__":
    parts.pop()
  return parts


def declared_in(info: ClassInfo, dotted: str) -> bool:
  """
  True if `dotted` (``pkg.mod.Outer.Inner``) names the batch class `info`.

  The module part has to match the trailing segments of the declaring file.
  """
  if not dotted.endswith(f".{info.qualname}"):
    return False
  module = dotted[: -len(info.qualname) - 1].split(".")
  parts = module_parts(info.path)
  return len(module) <= len(parts) and parts[-len(module) :] == module


class DeclarationUniverse:
  """
  Every declaration of the batch, plus reflection for everything else.

  Attributes:
      classes (Dict[str, ClassInfo]): Batch classes by simple name (first
        declaration wins).
      functions (Dict[Path, Dict[str, MethodInfo]]): Module-level functions per file.
      imports (Dict[Path, ImportTable]): Import bindings per file.
      return_types (Mapping[str, str]): Return types of callables outside
        the batch, e.g. ``logging.getLogger -> logging.Logger``.
  """

  def __init__(self, return_types: Optional[Mapping[str, str]] = None) -> None:
    self.classes: Dict[str, ClassInfo] = {}
    self.functions: Dict[Path, Dict[str, MethodInfo]] = {}
    self.imports: Dict[Path, ImportTable] = {}
    self.return_types: Dict[str, str] = dict(return_types or {})

  def add_module(self, path: Path, module: cst.Module) -> ImportTable:
    """
    Indexes the declarations of one parsed module.

    Args:
        path: File the module was read from.
        module: The reference tree.

    Returns:
        ImportTable: The module's import bindings.
    """
    imports = ImportTable.from_module(module)
    collector = DeclarationCollector(path, imports)
    module.visit(collector)
    for info in collector.classes:
      if info.name in self.classes:
        log_warning(f"Class {info.name} declared more than once, using {self.classes[info.name].path}")
        continue
      self.classes[info.name] = info
    self.functions[path] = collector.functions
    self.imports[path] = imports
    return imports

  # --- Classes ---

  def class_key(self, dotted: str) -> str:
    """
    Canonical name of a class type.

    Batch classes are keyed by simple name. A dotted name maps to a batch
    class only when its module part names the file the class is declared in;
    everything else keeps its dotted path with typing aliases normalised.
    """
    dotted = normalize_type_name(dotted)
    if dotted in self.classes:
      return dotted
    info = self.classes.get(dotted.rsplit(".", 1)[-1])
    if info is not None and declared_in(info, dotted):
      return info.name
    return dotted

  def class_info(self, key: str) -> Optional[ClassInfo]:
    return self.classes.get(key)

  def mro(self, key: str) -> Iterator[str]:
    """Yields the class key and its ancestors' keys, nearest first, each once."""
    seen: Set[str] = set()
    stack = [key]
    while stack:
      current = stack.pop(0)
      if current in seen:
        continue
      seen.add(current)
      yield current
      info = self.classes.get(current)
      if info is not None:
        stack.extend(self.class_key(base) for base in info.bases)

  def is_subtype(self, type_name: str, target: str) -> bool:
    """
    True if `type_name` is `target` or inherits from it.

    Args:
        type_name: A class key (batch simple name or dotted path).
        target: The class to compare against, in any spelling.
    """
    target_key = self.class_key(target)
    for ancestor in self.mro(self.class_key(type_name)):
      if ancestor == target_key:
        return True
      if ancestor not in self.classes and runtime_is_subclass(ancestor, target_key):
        return True
    return False

  def has_member(self, class_name: str, member: str) -> bool:
    """
    True if the class (or an ancestor) declares `member`, case-insensitively.
    """
    wanted = member.lower()
    for ancestor in self.mro(self.class_key(class_name)):
      info = self.classes.get(ancestor)
      if info is None:
        if runtime_has_member(ancestor, member):
          return True
        continue
      if any(name.lower() == wanted for name in info.methods):
        return True
      if any(name.lower() == wanted for name in info.fields):
        return True
    return False

  def find_method(self, class_name: str, name: str) -> Optional[MethodInfo]:
    """Looks a method up along the ancestors of a batch class."""
    for ancestor in self.mro(self.class_key(class_name)):
      info = self.classes.get(ancestor)
      if info is not None and name in info.methods:
        return info.methods[name]
    return None

  def find_field(self, class_name: str, name: str) -> Optional[FieldInfo]:
    """Looks an attribute up along the ancestors of a batch class."""
    for ancestor in self.mro(self.class_key(class_name)):
      info = self.classes.get(ancestor)
      if info is not None and name in info.fields:
        return info.fields[name]
    return None

  def field_type(self, class_name: str, name: str) -> Optional[SymbolType]:
    found = self.find_field(class_name, name)
    if found is None:
      method = self.find_method(class_name, name)
      if method is not None and method.is_property:
        return self.annotation_type(method.returns, method.imports)
      return None
    if found.annotation is None and found.value is not None:
      return self.call_result_type(found.value, found.imports)
    return self.annotation_type(found.annotation, found.imports)

  def return_type(self, method: MethodInfo) -> Optional[SymbolType]:
    return self.annotation_type(method.returns, method.imports)

  def external_return_type(self, dotted: str) -> Optional[SymbolType]:
    """Return type of a callable outside the batch, from the configured table."""
    returned = self.return_types.get(dotted)
    if returned is None:
      return None
    return ObjectType(self.class_key(returned))

  def call_result_type(self, call: cst.Call, imports: ImportTable) -> Optional[SymbolType]:
    """
    Type of a ``Name(...)`` or ``module.func(...)`` call outside any scope.

    Constructor calls give an instance of the class; other callables are
    answered from the configured return types.
    """
    dotted = imports.resolve(get_full_name(call.func))
    if not dotted:
      return None
    key = self.class_key(dotted)
    if key in self.classes or runtime_class(dotted) is not None:
      return ObjectType(key)
    return self.external_return_type(dotted)

  # --- Annotations ---

  def annotation_type(self, expr: Optional[cst.BaseExpression], imports: ImportTable) -> Optional[SymbolType]:
    """
    Converts an annotation expression into a type.

    Understands names, dotted names, string annotations, ``Optional[X]``,
    ``Union[...]``, ``X | Y``, ``Final[X]``, ``ClassVar[X]``, ``Annotated[X, ...]``,
    ``type[X]`` and parameterised generics such as ``Dict[str, int]``.

    Args:
        expr: The annotation (the expression inside `cst.Annotation`).
        imports: Import bindings of the file the annotation is written in.

    Returns:
        Optional[SymbolType]: The type, or None when unknown or ``Any``.
    """
    if expr is None:
      return None
    if isinstance(expr, (cst.SimpleString, cst.ConcatenatedString)):
      value = expr.evaluated_value
      if not isinstance(value, str):
        return None
      try:
        parsed = cst.parse_expression(value.strip())
      except cst.ParserSyntaxError:
        return None
      return self.annotation_type(parsed, imports)
    if isinstance(expr, cst.Name) and expr.value == "None":
      return NONE_TYPE
    if isinstance(expr, (cst.Name, cst.Attribute)):
      dotted = normalize_type_name(imports.resolve(get_full_name(expr)))
      if not dotted or dotted in ("Any", "object"):
        return None
      return ObjectType(self.class_key(dotted))
    if isinstance(expr, cst.BinaryOperation) and isinstance(expr.operator, cst.BitOr):
      return make_union([self.annotation_type(expr.left, imports), self.annotation_type(expr.right, imports)])
    if isinstance(expr, cst.Subscript):
      return self._generic_type(expr, imports)
    return None

  def _generic_type(self, expr: cst.Subscript, imports: ImportTable) -> Optional[SymbolType]:
    base = normalize_type_name(imports.resolve(get_full_name(expr.value)))
    args = [el.slice.value for el in expr.slice if isinstance(el.slice, cst.Index)]
    if not base or not args:
      return None
    if base == "Optional":
      return make_union([self.annotation_type(args[0], imports), NONE_TYPE])
    if base == "Union":
      return make_union([self.annotation_type(a, imports) for a in args])
    if base in ("Final", "ClassVar", "Annotated"):
      return self.annotation_type(args[0], imports)
    if base == "type":
      inner = get_full_name(args[0])
      return ClassRefType(self.class_key(imports.resolve(inner))) if inner else None
    if base in ("Any", "object"):
      return None
    converted = [self.annotation_type(a, imports) for a in args]
    if any(c is None for c in converted):
      return ObjectType(self.class_key(base))
    return ObjectType(self.class_key(base), tuple(converted))
