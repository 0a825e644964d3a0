"""
Symbol Table Analysis with Control Flow Support.

This module is the inference pass of the preprocessor. It walks one module and
hands a `SemanticContext` to a callback for every node it visits, before the
node's children are visited. The callback decides what to keep; the analyzer
itself stores nothing per node.

The `SymbolTableAnalyzer` tracks:
1.  **Imports**: Mapping module aliases to `ModuleType`, imported classes to `ClassRefType`.
2.  **Assignments**: Propagating types from RHS (or annotation) to LHS.
3.  **Scopes**: Handling nested function/class definitions, ``self`` and ``cls``.
4.  **Control Flow**: Handling type ambiguity in branches (Phi nodes) via Union types.
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional

import libcst as cst

from cst_preprocessor.analysis.context import Scope, SemanticContext
from cst_preprocessor.analysis.declarations import (
  ClassInfo,
  DeclarationUniverse,
  MethodInfo,
  method_info,
)
from cst_preprocessor.analysis.imports import ImportTable
from cst_preprocessor.analysis.types import ClassRefType, ModuleType, ObjectType, SymbolType, make_union
from cst_preprocessor.utils.rendering import get_full_name

NodeCallback = Callable[[cst.CSTNode, SemanticContext], None]


class SymbolTableAnalyzer(cst.CSTVisitor):
  """
  Static Analysis pass supplying a context for every node.
  Runs post-order logic (via leave methods) to bind names after their value
  has been visited, and implements shallow control flow inference for
  If/Else and Loops.
  """

  def __init__(
    self,
    path: Path,
    universe: DeclarationUniverse,
    imports: ImportTable,
    on_node: Optional[NodeCallback] = None,
  ):
    """
    Initializes the analyzer.

    Args:
        path: File being analysed.
        universe: Declarations of the whole batch.
        imports: Module-level import bindings of the file.
        on_node: Receives ``(node, context)`` for every visited node.
    """
    self.path = path
    self.universe = universe
    self.imports = imports
    self.on_node = on_node
    self.current_scope = Scope(name="global")
    self._classes: List[Optional[ClassInfo]] = []
    self._functions: List[Optional[MethodInfo]] = []
    self._owners: List[str] = []
    self._saved_scopes: List[Scope] = []

  def context(self) -> SemanticContext:
    """Builds the context for the current point of the walk."""
    return SemanticContext(
      path=self.path,
      scope=self.current_scope,
      universe=self.universe,
      imports=self.imports,
      class_info=next((c for c in reversed(self._classes) if c is not None), None),
      function=next((f for f in reversed(self._functions) if f is not None), None),
      in_class_body=bool(self._owners) and self._owners[-1] == "class",
    )

  def on_visit(self, node: cst.CSTNode) -> bool:
    if self.on_node is not None:
      self.on_node(node, self.context())
    return super().on_visit(node)

  def _bind(self, name: str, sym_type: SymbolType) -> None:
    self.current_scope = self.current_scope.bind(name, sym_type)

  # --- Scoping ---

  def visit_ClassDef(self, node: cst.ClassDef) -> bool:
    """Visits the header in the enclosing scope, then the body in class scope."""
    for decorator in node.decorators:
      decorator.visit(self)
    node.name.visit(self)
    for arg in node.bases:
      arg.visit(self)
    for arg in node.keywords:
      arg.visit(self)

    info = self.universe.class_info(node.name.value)
    if info is not None and info.path != self.path:
      info = None
    self._classes.append(info)
    self._owners.append("class")
    self._saved_scopes.append(self.current_scope)
    self.current_scope = Scope(parent=self.current_scope, name=f"class_{node.name.value}")
    node.body.visit(self)
    return False

  def leave_ClassDef(self, original_node: cst.ClassDef) -> None:
    """Exits class scope."""
    self.current_scope = self._saved_scopes.pop()
    self._classes.pop()
    self._owners.pop()

  def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
    """Visits decorators and signature in the enclosing scope, then the body."""
    for decorator in node.decorators:
      decorator.visit(self)
    node.name.visit(self)
    node.params.visit(self)
    if node.returns is not None:
      node.returns.visit(self)

    in_class = bool(self._owners) and self._owners[-1] == "class"
    owner = self._classes[-1] if in_class and self._classes else None
    info = method_info(node, owner.name if owner else None, self.path, self.imports)

    self._saved_scopes.append(self.current_scope)
    self.current_scope = Scope(parent=self._enclosing_function_scope(), name=f"func_{node.name.value}")
    self._bind_params(info, owner if in_class else None, in_class)

    self._functions.append(info)
    self._classes.append(None)
    self._owners.append("function")
    node.body.visit(self)
    return False

  def leave_FunctionDef(self, original_node: cst.FunctionDef) -> None:
    """Exits function scope."""
    self.current_scope = self._saved_scopes.pop()
    self._functions.pop()
    self._classes.pop()
    self._owners.pop()

  def _enclosing_function_scope(self) -> Scope:
    # Class bodies are not visible from the methods they declare.
    scope = self.current_scope
    while scope.parent is not None and scope.name.startswith("class_"):
      scope = scope.parent
    return scope

  def _bind_params(self, info: MethodInfo, owner: Optional[ClassInfo], in_class: bool) -> None:
    params = list(info.params)
    if in_class and params and not info.is_static and params[0].kind == "positional":
      first = params.pop(0)
      if owner is not None:
        receiver = ClassRefType(owner.name) if info.is_classmethod else ObjectType(owner.name)
        self._bind(first.name, receiver)
    for param in params:
      if param.kind == "star":
        sym_type = ObjectType("tuple")
      elif param.kind == "star_star":
        value_type = self.universe.annotation_type(param.annotation, self.imports)
        sym_type = ObjectType("dict", (ObjectType("str"), value_type)) if value_type else ObjectType("dict")
      else:
        sym_type = self.universe.annotation_type(param.annotation, self.imports)
      if sym_type is not None:
        self._bind(param.name, sym_type)

  # --- Control Flow Support ---

  def visit_If(self, node: cst.If) -> bool:
    """
    Handle branching logic.
    1. Visit test, snapshot state.
    2. Visit body -> State_Body.
    3. Revert to snapshot, visit else (if any) -> State_Else.
    4. Merge (State_Body, State_Else).
    """
    node.test.visit(self)
    start = self.current_scope
    node.body.visit(self)
    body_state = self.current_scope.snapshot()

    self.current_scope = start
    # orelse can contain an 'if' (elif) or 'else' block
    if node.orelse:
      node.orelse.visit(self)
    else_state = self.current_scope.snapshot()

    self.current_scope = start.with_symbols(self._merge_states(body_state, else_state))
    return False

  def visit_For(self, node: cst.For) -> bool:
    """
    Handle loop logic.
    Loops may execute 0 times or N times, so the state after the loop body is
    merged with the state before the loop.
    """
    node.iter.visit(self)
    item_type = self.context().element_type(node.iter)
    node.target.visit(self)
    start = self.current_scope
    if isinstance(node.target, cst.Name) and item_type is not None:
      self._bind(node.target.value, item_type)

    node.body.visit(self)
    if node.orelse:
      node.orelse.visit(self)

    end_state = self.current_scope.snapshot()
    self.current_scope = start.with_symbols(self._merge_states(start.snapshot(), end_state))
    return False

  def visit_While(self, node: cst.While) -> bool:
    """Handle while loop logic."""
    node.test.visit(self)
    start = self.current_scope
    node.body.visit(self)
    if node.orelse:
      node.orelse.visit(self)
    end_state = self.current_scope.snapshot()
    self.current_scope = start.with_symbols(self._merge_states(start.snapshot(), end_state))
    return False

  def _merge_states(self, state_a: Dict[str, SymbolType], state_b: Dict[str, SymbolType]) -> Dict[str, SymbolType]:
    """
    Merges two symbol dictionaries, creating Unions for conflicts.
    A missing key in one branch implies a potential Unbound state,
    but we optimistically retain the structured type found in the other branch.
    """
    merged = {}
    for k in set(state_a) | set(state_b):
      if k in state_a and k in state_b:
        val_a, val_b = state_a[k], state_b[k]
        merged[k] = val_a if val_a == val_b else make_union([val_a, val_b])
      else:
        merged[k] = state_a.get(k) or state_b[k]
    return merged

  # --- Definition Tracking ---

  def leave_Import(self, original_node: cst.Import) -> None:
    """
    Track imports.
    e.g. `import os.path` -> symbols['os'] = ModuleType(path='os')
    """
    for alias in original_node.names:
      full_path = get_full_name(alias.name)
      if alias.asname is not None and isinstance(alias.asname.name, cst.Name):
        self._bind(alias.asname.name.value, ModuleType(name="Module", path=full_path))
      else:
        root = full_path.split(".")[0]
        self._bind(root, ModuleType(name="Module", path=root))

  def leave_ImportFrom(self, original_node: cst.ImportFrom) -> None:
    """
    Track from-imports.
    e.g. `from logging import Logger` -> symbols['Logger'] = ClassRefType('logging.Logger')
    """
    if original_node.module is None or original_node.relative or isinstance(original_node.names, cst.ImportStar):
      return
    base_mod = get_full_name(original_node.module)
    for alias in original_node.names:
      import_name = get_full_name(alias.name)
      if alias.asname is not None and isinstance(alias.asname.name, cst.Name):
        bind_name = alias.asname.name.value
      else:
        bind_name = import_name
      ref = self.context().reference_type(f"{base_mod}.{import_name}")
      if ref is not None:
        self._bind(bind_name, ref)

  def leave_Assign(self, original_node: cst.Assign) -> None:
    """
    Propagate type from RHS to LHS.
    x = Service() -> x is Service.
    """
    rhs_type = self.context().get_type(original_node.value)
    if rhs_type is None:
      return
    for target in original_node.targets:
      if isinstance(target.target, cst.Name):
        self._bind(target.target.value, rhs_type)

  def leave_AnnAssign(self, original_node: cst.AnnAssign) -> None:
    """Declared type wins over the value type."""
    if not isinstance(original_node.target, cst.Name):
      return
    sym_type = self.universe.annotation_type(original_node.annotation.annotation, self.imports)
    if sym_type is None and original_node.value is not None:
      sym_type = self.context().get_type(original_node.value)
    if sym_type is not None:
      self._bind(original_node.target.value, sym_type)


def analyze(
  module: cst.Module,
  path: Path,
  universe: DeclarationUniverse,
  on_node: NodeCallback,
  imports: Optional[ImportTable] = None,
) -> None:
  """
  Runs the inference pass over one module.

  Args:
      module: The tree to analyse (never modified).
      path: File the tree belongs to.
      universe: Declarations of the whole batch.
      on_node: Receives ``(node, context)`` for every node, parents first.
      imports: Import bindings of the module, collected when omitted.
  """
  if imports is None:
    imports = universe.imports.get(path) or ImportTable.from_module(module)
  module.visit(SymbolTableAnalyzer(path, universe, imports, on_node))
