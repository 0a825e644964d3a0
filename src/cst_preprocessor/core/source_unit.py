"""
Source Units.

A `SourceUnit` owns everything the preprocessor knows about one file: the
original text and tokens, the reference tree, the working tree rules rewrite,
the node provenance that links the two, and the unit's context store. It
exposes the rule adapters and `regenerate()`.
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import libcst as cst

from cst_preprocessor.analysis.context import SemanticContext
from cst_preprocessor.analysis.declarations import DeclarationUniverse
from cst_preprocessor.analysis.imports import ImportTable
from cst_preprocessor.analysis.symbol_table import analyze
from cst_preprocessor.core.adapters import (
  CallRule,
  DeclarationCallback,
  DeclarationRule,
  ScopedCallback,
  ScopedRule,
  validate_target,
)
from cst_preprocessor.core.context_store import ContextStore, EagerContextStore, LazyContextStore
from cst_preprocessor.core.printer import Printer
from cst_preprocessor.core.source_text import Location, PositionIndex, SourceText
from cst_preprocessor.core.traversal import NodeCallable, Rule, traverse
from cst_preprocessor.core.tree import clone_tree
from cst_preprocessor.enums import ContextMode
from cst_preprocessor.errors import DeclarationNotFoundError


def read_source(path: Path) -> str:
  """Reads a file without translating its line endings."""
  with open(path, encoding="utf-8", newline="") as f:
    return f.read()


class SourceUnit:
  """
  One input file plus its derived trees, tokens and semantic facts.

  Attributes:
      path (Path): The file the unit was read from.
      source (SourceText): Original text and token stream.
      reference (cst.Module): The parse result. Never mutated.
      working (cst.Module): The tree rules rewrite.
      imports (ImportTable): Module-level import bindings.
      store (ContextStore): Semantic contexts of this unit.
  """

  def __init__(
    self,
    path: Path,
    text: str,
    universe: DeclarationUniverse,
    mode: ContextMode = ContextMode.EAGER,
    module: Optional[cst.Module] = None,
  ) -> None:
    """
    Builds a unit and its working tree.

    Args:
        path: File path (used for namespacing and export).
        text: Original file contents.
        universe: Declarations of the whole batch.
        mode: How semantic contexts are attached.
        module: The already parsed reference tree, parsed from `text` if omitted.
    """
    self.path = path
    self.universe = universe
    self.source = SourceText(text)
    self.reference = module if module is not None else cst.parse_module(text)
    self.positions = PositionIndex(self.reference, self.source)
    self.imports = universe.imports.get(path) or ImportTable.from_module(self.reference)

    self.working, self._clone_of, self._shared = clone_tree(self.reference)
    self._provenance: Dict[cst.CSTNode, cst.CSTNode] = dict(self._clone_of)

    self._replaced = False
    self.mode = mode
    if mode is ContextMode.LAZY:
      self.store: ContextStore = LazyContextStore(path, universe, lambda: self.working)
    else:
      self.store = EagerContextStore(self.locate)

    self.printer = Printer(self.reference, self.source, self.positions, self._clone_of, self._provenance, self._shared)

  # --- Semantic facts ---

  def populate(self) -> None:
    """
    Runs the inference pass over the reference tree (eager mode only).

    The analyzer reports every node to the store directly.
    """
    if isinstance(self.store, EagerContextStore):
      analyze(self.reference, self.path, self.universe, self.store.record, self.imports)

  def locate(self, node: cst.CSTNode) -> Optional[Location]:
    """
    Coordinates of a node in the original text.

    Working-tree nodes are located through the reference node they were
    cloned or rebuilt from. Nodes created by rules have no location.
    """
    return self.positions.location(self._provenance.get(node, node))

  def line_of(self, node: cst.CSTNode) -> Optional[int]:
    location = self.locate(node)
    return location.line if location else None

  def label(self, node: cst.CSTNode, context: Optional[SemanticContext] = None) -> str:
    """Log prefix ``[Class:line]`` (file name outside classes, ``?`` for unknown lines)."""
    owner = context.class_name if context is not None and context.class_name else self.path.name
    line = self.line_of(node)
    return f"[{owner}:{line if line is not None else '?'}]"

  def origin_of(self, node: cst.CSTNode) -> Optional[cst.CSTNode]:
    """The reference node a working node descends from, if any."""
    return self._provenance.get(node)

  # --- Traversal hooks ---

  def _on_replace(self, old: cst.CSTNode, new: Optional[cst.CSTNode]) -> None:
    if new is not None and new not in self._provenance and type(new) is type(old):
      origin = self._provenance.get(old)
      if origin is not None:
        self._provenance[new] = origin
    self._replaced = True

  def _on_rebuild(self, old: cst.CSTNode, new: cst.CSTNode) -> None:
    origin = self._provenance.get(old)
    if origin is not None:
      self._provenance[new] = origin

  # --- Rule adapters ---

  def traverse(self, rules: Sequence[Union[Rule, NodeCallable]]) -> cst.Module:
    """
    Runs one traversal of the working tree and keeps the result.

    Contexts are resolved against the tree the pass started from, so the
    store is invalidated once, after the pass, if any node was replaced.
    """
    self._replaced = False
    self.working = traverse(self.working, rules, self._on_replace, self._on_rebuild)
    if self._replaced:
      self.store.invalidate()
    return self.working

  def visit(self, *rules: Union[Rule, NodeCallable]) -> cst.Module:
    """Raw visitation: rules or ``node -> result`` callables."""
    return self.traverse(rules)

  def visit_with_scope(self, *callbacks: ScopedCallback) -> cst.Module:
    """Visits nodes that have a semantic context: ``callback(node, context)``."""
    return self.traverse([ScopedRule(self.store.lookup, callbacks)])

  def visit_calls(
    self,
    target: str,
    member: str,
    *callbacks: ScopedCallback,
    guards: Sequence[Union[Rule, NodeCallable]] = (),
  ) -> cst.Module:
    """
    Visits ``receiver.member(...)`` calls on instances or classes of `target`.

    Args:
        target: Class name (batch simple name or importable dotted path).
        member: Method name, matched case-insensitively.
        *callbacks: ``callback(node, context)``, first non-None result wins.
        guards: Raw rules consulted before the call rule, e.g. to skip
          subtrees where a rewrite would be invalid.

    Raises:
        InvalidTargetError: If ``target.member`` does not exist.
    """
    validate_target(self.universe, target, member)
    return self.traverse([*guards, CallRule(self.store.lookup, self.universe, target, member, callbacks)])

  def visit_declarations(self, *callbacks: DeclarationCallback) -> cst.Module:
    """Visits method declarations: ``callback(node, context, class_name, method_name)``."""
    return self.traverse([DeclarationRule(self.store.lookup, callbacks)])

  def find_declarations(self, class_name: str, member: str) -> List[Tuple[cst.FunctionDef, SemanticContext]]:
    """
    Lists the declarations of `member` in `class_name` and its subclasses.

    Member names are compared case-insensitively.
    """
    wanted = member.lower()
    matches: List[Tuple[cst.FunctionDef, SemanticContext]] = []

    def collect(node: cst.FunctionDef, context: SemanticContext, owner: str, method: str) -> None:
      if method.lower() == wanted and self.universe.is_subtype(owner, class_name):
        matches.append((node, context))

    self.visit_declarations(collect)
    return matches

  def find_declaration(self, class_name: str, member: str) -> cst.FunctionDef:
    """
    Returns the single declaration of `member` in `class_name` (or a subclass).

    Raises:
        DeclarationNotFoundError: If there is no match or more than one.
    """
    matches = self.find_declarations(class_name, member)
    if len(matches) != 1:
      raise DeclarationNotFoundError(class_name, member, len(matches))
    return matches[0][0]

  # --- Output ---

  def regenerate(self) -> str:
    """Text of the working tree, original formatting kept where untouched."""
    return self.printer.regenerate(self.working)
