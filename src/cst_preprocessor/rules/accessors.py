"""
Trivial Accessor Inlining.

Replaces calls to accessors whose whole body is ``return self.<field>`` with
direct attribute access, making private fields public on the way::

    @final
    class User:
      def __init__(self, name: str):
        self._name = name

      def get_name(self):
        return self._name

    user.get_name()   ->   user.name      (and self._name -> self.name)

The rule runs in phases over the whole batch so that no unit is rewritten
before every accessor and every call site is known:

1. Discovery: accessors are private, ``@final`` or members of a ``@final``
   class, take only ``self`` and are not overridden in a subclass. Call sites
   are planned while the trees are still untouched.
2. Widening: each private field read by an accessor is renamed from
   ``_field`` to ``field`` at its declarations and typed references. A name
   collision, or a reference through a receiver of unknown type, skips the
   field (and its accessors) with a warning.
3. Rewriting: planned call sites become attribute reads.
"""

import keyword
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

import libcst as cst

from cst_preprocessor.analysis.context import SemanticContext
from cst_preprocessor.analysis.declarations import DeclarationUniverse, is_mangled_name, is_private_name
from cst_preprocessor.analysis.types import NONE_TYPE, ClassRefType, ModuleType, ObjectType, SymbolType, union_members
from cst_preprocessor.core.source_unit import SourceUnit
from cst_preprocessor.core.traversal import traverse
from cst_preprocessor.rules.expressions import single_expression
from cst_preprocessor.rules.registry import register_rule
from cst_preprocessor.rules.signatures import is_sealed
from cst_preprocessor.utils.console import log_info, log_progress, log_warning
from cst_preprocessor.utils.rendering import capture_node_source, flatten_source


@dataclass(frozen=True)
class Accessor:
  """
  A discovered accessor.

  Attributes:
      owner: Class declaring the accessor method.
      method: Accessor method name.
      field: Attribute the accessor returns.
      field_owner: Class declaring the attribute, None if not declared in the batch.
  """

  owner: str
  method: str
  field: str
  field_owner: Optional[str]


def field_owner(universe: DeclarationUniverse, class_name: str, name: str) -> Optional[str]:
  """The nearest class along the MRO of `class_name` that declares attribute `name`."""
  for ancestor in universe.mro(universe.class_key(class_name)):
    info = universe.classes.get(ancestor)
    if info is not None and (name in info.fields or name in info.slots):
      return ancestor
  return None


def returned_field(node: cst.FunctionDef) -> Optional[str]:
  """
  The attribute returned by a body that is exactly ``return self.<field>``.

  The receiver must be the first parameter, which must also be the only one.
  """
  params = node.params
  if params.posonly_params or params.kwonly_params or params.star_kwarg is not None:
    return None
  if params.star_arg is not cst.MaybeSentinel.DEFAULT or len(params.params) != 1:
    return None
  value = single_expression(node.body, allow_expression=False)
  if not isinstance(value, cst.Attribute) or value.lpar:
    return None
  if not (isinstance(value.value, cst.Name) and value.value.value == params.params[0].name.value):
    return None
  return value.attr.value


class AccessorCatalog:
  """
  Accessors of the batch and the decisions taken about their fields.

  Attributes:
      accessors (Dict[Tuple[str, str], Accessor]): ``(owner, method) -> Accessor``.
      widened (Dict[Tuple[str, str], str]): ``(field_owner, field) -> public name``.
      opaque (Dict[str, str]): Private field name -> ``file:line`` of a
        reference through a receiver of unknown type.
  """

  def __init__(self, universe: DeclarationUniverse) -> None:
    self.universe = universe
    self.accessors: Dict[Tuple[str, str], Accessor] = {}
    self.widened: Dict[Tuple[str, str], str] = {}
    self.opaque: Dict[str, str] = {}

  # --- Phase 1 ---

  def discover(self, node: cst.FunctionDef, context: SemanticContext, class_name: str, method: str) -> None:
    """Declaration callback recording `node` if it is an accessor."""
    info = self.universe.class_info(class_name)
    method_info = info.methods.get(method) if info is not None else None
    if method_info is None or method_info.is_static or method_info.is_classmethod or method_info.is_property:
      return None
    if not is_sealed(node, context):
      return None
    name = returned_field(node)
    if name is None or is_mangled_name(name) or self._is_overridden(class_name, method):
      return None
    self.accessors[(class_name, method)] = Accessor(class_name, method, name, field_owner(self.universe, class_name, name))
    return None

  def _is_overridden(self, class_name: str, method: str) -> bool:
    return any(
      method in info.methods
      for key, info in self.universe.classes.items()
      if key != class_name and self.universe.is_subtype(key, class_name)
    )

  def _related_classes(self, key: str) -> List[str]:
    return [
      other
      for other in self.universe.classes
      if self.universe.is_subtype(other, key) or self.universe.is_subtype(key, other)
    ]

  def find_opaque_reads(self, units: Sequence[SourceUnit]) -> None:
    """
    Records private fields referenced through receivers of unknown type.

    Such references cannot be renamed, so their fields are never widened.
    """
    candidates = {a.field for a in self.accessors.values() if is_private_name(a.field)}
    if not candidates:
      return

    for unit in units:

      def collect(node: cst.CSTNode, context: SemanticContext, unit: SourceUnit = unit) -> None:
        if isinstance(node, cst.Attribute) and node.attr.value in candidates:
          receiver = context.get_type(node.value)
          if _type_key(receiver) is None and not isinstance(receiver, ModuleType):
            self.opaque.setdefault(node.attr.value, f"{unit.path.name}:{unit.line_of(node)}")
        return None

      unit.visit_with_scope(collect)

  def _public_name(self, accessor: Accessor) -> Optional[str]:
    """Chooses the public name of a private field, None if it cannot be widened."""
    owner, field = accessor.field_owner, accessor.field
    if owner is None:
      log_warning(f"[{accessor.owner}] Cannot widen {field}: not declared in a class of the batch")
      return None
    if field in self.opaque:
      log_warning(f"[{owner}] Cannot widen {field}: read through an untyped receiver at {self.opaque[field]}")
      return None
    public = field[1:]
    if not public.isidentifier() or keyword.iskeyword(public):
      log_warning(f"[{owner}] Cannot widen {field}: '{public}' is not a valid name")
      return None
    for other in self._related_classes(owner):
      info = self.universe.classes[other]
      if public in info.fields or public in info.methods or public in info.slots:
        log_warning(f"[{owner}] Cannot widen {field}: {other} already defines '{public}'")
        return None
    return public

  def decide(self) -> None:
    """
    Picks the fields to widen and drops accessors whose field cannot be.
    """
    rejected: Set[Tuple[Optional[str], str]] = set()
    for accessor in self.accessors.values():
      if not is_private_name(accessor.field):
        continue
      field_key = (accessor.field_owner, accessor.field)
      if field_key in self.widened or field_key in rejected:
        continue
      public = self._public_name(accessor)
      if public is None:
        rejected.add(field_key)
      else:
        self.widened[field_key] = public
    self.accessors = {
      key: accessor
      for key, accessor in self.accessors.items()
      if not is_private_name(accessor.field) or (accessor.field_owner, accessor.field) in self.widened
    }

  def resolve(self, receiver: Optional[SymbolType], method: str) -> Optional[Accessor]:
    """The accessor a call on `receiver` dispatches to, if it is unambiguous."""
    members = [m for m in union_members(receiver) if m != NONE_TYPE]
    found: Set[Accessor] = set()
    for member in members:
      if not isinstance(member, ObjectType) or member.name not in self.universe.classes:
        return None
      declared = self.universe.find_method(member.name, method)
      if declared is None or declared.owner is None:
        return None
      accessor = self.accessors.get((declared.owner, method))
      if accessor is None:
        return None
      found.add(accessor)
    return found.pop() if len(found) == 1 else None

  def public_field(self, accessor: Accessor) -> str:
    return self.widened.get((accessor.field_owner, accessor.field), accessor.field)

  # --- Phase 2 ---

  def renamed(self, class_name: Optional[str], name: str) -> Optional[str]:
    """Public name of attribute `name` read through `class_name`, if widened."""
    if class_name is None or class_name not in self.universe.classes:
      return None
    owner = field_owner(self.universe, class_name, name)
    return self.widened.get((owner, name)) if owner is not None else None

  def commit(self) -> None:
    """Renames widened fields in the declaration universe."""
    for (owner, field), public in self.widened.items():
      info = self.universe.classes[owner]
      if field in info.fields:
        declared = info.fields.pop(field)
        declared.name = public
        info.fields[public] = declared
      info.slots = [public if slot == field else slot for slot in info.slots]


def _type_key(t: Optional[SymbolType]) -> Optional[str]:
  if isinstance(t, (ObjectType, ClassRefType)):
    return t.name
  return None


def _rename_string(node: cst.SimpleString, public: str) -> cst.SimpleString:
  return node.with_changes(value=f"{node.prefix}{node.quote}{public}{node.quote}")


def plan_widening(unit: SourceUnit, catalog: AccessorCatalog) -> Dict[cst.CSTNode, cst.CSTNode]:
  """
  Collects the working nodes to rename in one unit, without modifying it.

  Covers typed attribute references (``obj._x``, ``self._x``), class-level
  declarations, ``__slots__`` entries and dataclass constructor keywords.
  """
  plan: Dict[cst.CSTNode, cst.CSTNode] = {}

  def collect(node: cst.CSTNode, context: SemanticContext) -> None:
    if isinstance(node, cst.Attribute):
      public = catalog.renamed(_type_key(context.get_type(node.value)), node.attr.value)
      if public is not None:
        plan[node.attr] = cst.Name(public)
    elif isinstance(node, (cst.AnnAssign, cst.AugAssign)) and context.in_class_body:
      _plan_class_target(plan, catalog, context, node.target)
    elif isinstance(node, cst.Assign) and context.in_class_body:
      for target in node.targets:
        if isinstance(target.target, cst.Name) and target.target.value == "__slots__":
          for element in _slot_strings(node.value):
            public = catalog.renamed(context.class_name, element.evaluated_value)
            if public is not None:
              plan[element] = _rename_string(element, public)
        else:
          _plan_class_target(plan, catalog, context, target.target)
    elif isinstance(node, cst.Call):
      callee = context.get_type(node.func)
      if isinstance(callee, ClassRefType):
        info = catalog.universe.class_info(callee.name)
        if info is not None and info.is_dataclass:
          for arg in node.args:
            if arg.keyword is not None:
              public = catalog.renamed(callee.name, arg.keyword.value)
              if public is not None:
                plan[arg.keyword] = arg.keyword.with_changes(value=public)
    return None

  unit.visit_with_scope(collect)
  return plan


def _plan_class_target(
  plan: Dict[cst.CSTNode, cst.CSTNode],
  catalog: AccessorCatalog,
  context: SemanticContext,
  target: cst.BaseExpression,
) -> None:
  # Class attributes declared at class level, e.g. ``_name: str = ""``.
  if isinstance(target, cst.Name):
    public = catalog.renamed(context.class_name, target.value)
    if public is not None:
      plan[target] = target.with_changes(value=public)


def _slot_strings(value: cst.BaseExpression) -> List[cst.SimpleString]:
  if isinstance(value, cst.SimpleString):
    candidates = [value]
  elif isinstance(value, (cst.Tuple, cst.List, cst.Set)):
    candidates = [el.value for el in value.elements]
  else:
    return []
  return [c for c in candidates if isinstance(c, cst.SimpleString) and isinstance(c.evaluated_value, str)]


def plan_calls(unit: SourceUnit, catalog: AccessorCatalog) -> Dict[cst.CSTNode, Accessor]:
  """
  Maps the reference origin of every accessor call in `unit` to its accessor.

  Origins survive the rebuilds caused by widening, working-node identities
  do not.
  """
  methods = {method for _, method in catalog.accessors}
  plan: Dict[cst.CSTNode, Accessor] = {}

  def collect(node: cst.CSTNode, context: SemanticContext) -> None:
    if not (isinstance(node, cst.Call) and isinstance(node.func, cst.Attribute)) or node.args:
      return None
    method = node.func.attr.value
    if method not in methods:
      return None
    accessor = catalog.resolve(context.get_type(node.func.value), method)
    if accessor is not None:
      plan[unit.origin_of(node) or node] = accessor
    return None

  unit.visit_with_scope(collect)
  return plan


@register_rule("inline_accessors")
def inline_accessors(units: Sequence[SourceUnit]) -> None:
  """
  Inlines trivial accessors across the batch.

  Args:
      units: Units to rewrite. Accessors declared in one unit are inlined in
        all of them.
  """
  if not units:
    return
  catalog = AccessorCatalog(units[0].universe)

  for unit in units:
    unit.visit_declarations(catalog.discover)
  catalog.find_opaque_reads(units)
  catalog.decide()
  if not catalog.accessors:
    log_info("No accessors to inline")
    return
  call_plans = [plan_calls(unit, catalog) for unit in units]

  total = len(units)
  for i, unit in enumerate(units, 1):
    renames = plan_widening(unit, catalog)
    if renames:
      unit.visit(lambda node, renames=renames: renames.get(node))
    log_progress(i, total, "Widen", f"{unit.path.name}: {len(renames)} reference(s)")
  for (owner, field), public in catalog.widened.items():
    log_info(f"[{owner}] Widened {field} to {public}")
  catalog.commit()

  for unit, calls in zip(units, call_plans):
    if not calls:
      continue

    def rewrite(node: cst.CSTNode, unit: SourceUnit = unit, calls: Dict[cst.CSTNode, Accessor] = calls) -> Optional[cst.CSTNode]:
      if not isinstance(node, cst.Call):
        return None
      accessor = calls.get(unit.origin_of(node) or node)
      if accessor is None:
        return None
      read = cst.Attribute(
        value=node.func.value,
        dot=node.func.dot,
        attr=cst.Name(catalog.public_field(accessor)),
        lpar=node.lpar,
        rpar=node.rpar,
      )
      log_info(f"{unit.label(node)} Inlined accessor {flatten_source(capture_node_source(node))}")
      # The receiver may itself be an accessor call.
      return traverse(read, [rewrite])

    unit.visit(rewrite)
