"""
Semantic Context Stores.

A store maps fingerprints to the `SemanticContext` the analyzer produced for
the node with that fingerprint. Each source unit owns exactly one store.

Two strategies are provided:

* `EagerContextStore`: filled once from the reference tree, before any rule
  runs. Working-tree nodes are located through their reference counterparts.
* `LazyContextStore`: a two-state machine. While `STALE`, the next lookup
  analyses the unit's current working tree and moves to `RESOLVED`. A
  traversal that replaced or removed nodes moves it back to `STALE` when it
  ends.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Optional

import libcst as cst

from cst_preprocessor.analysis.context import SemanticContext
from cst_preprocessor.analysis.declarations import DeclarationUniverse
from cst_preprocessor.analysis.imports import ImportTable
from cst_preprocessor.analysis.symbol_table import analyze
from cst_preprocessor.core.fingerprint import Fingerprint, Locator, fingerprint
from cst_preprocessor.core.source_text import PositionIndex, SourceText
from cst_preprocessor.enums import StoreState


class ContextStore(ABC):
  """
  Abstract contract of a per-unit context store.
  """

  state: StoreState = StoreState.RESOLVED

  @abstractmethod
  def get(self, key: Fingerprint) -> Optional[SemanticContext]:
    """
    Returns the context recorded for a fingerprint.

    Args:
        key: Fingerprint of a node.

    Returns:
        Optional[SemanticContext]: The context, or None on a correlation miss.
    """

  @abstractmethod
  def lookup(self, node: cst.CSTNode) -> Optional[SemanticContext]:
    """Fingerprints a working-tree node and returns its context, if any."""

  @abstractmethod
  def invalidate(self) -> None:
    """Signals that the working tree was structurally modified."""


class EagerContextStore(ContextStore):
  """
  Context store filled by a single analysis of the reference tree.

  Attributes:
      locator (Locator): Maps working-tree nodes to reference coordinates.
  """

  def __init__(self, locator: Locator) -> None:
    self.locator = locator
    self._contexts: Dict[Fingerprint, SemanticContext] = {}

  def record(self, node: cst.CSTNode, context: SemanticContext) -> None:
    """
    Analyzer callback: stores the context of one reference node.

    The first context recorded for a fingerprint wins.
    """
    key = fingerprint(node, self.locator)
    if key is not None and key not in self._contexts:
      self._contexts[key] = context

  def get(self, key: Fingerprint) -> Optional[SemanticContext]:
    return self._contexts.get(key)

  def lookup(self, node: cst.CSTNode) -> Optional[SemanticContext]:
    key = fingerprint(node, self.locator)
    return self.get(key) if key is not None else None

  def invalidate(self) -> None:
    # Facts stay anchored to the reference tree. Replaced nodes have no
    # reference coordinates (or a different canonical text) and miss.
    pass

  def __len__(self) -> int:
    return len(self._contexts)


class LazyContextStore(ContextStore):
  """
  Context store resolved on demand against the current working tree.

  Attributes:
      state (StoreState): `STALE` until the next lookup resolves the tree.
      resolutions (int): Number of analyses performed so far.
  """

  def __init__(
    self,
    path: Path,
    universe: DeclarationUniverse,
    current_tree: Callable[[], cst.Module],
  ) -> None:
    """
    Args:
        path: File of the owning unit.
        universe: Declarations of the whole batch.
        current_tree: Returns the unit's working tree as of now.
    """
    self.path = path
    self.universe = universe
    self._current_tree = current_tree
    self.state = StoreState.STALE
    self.resolutions = 0
    self._contexts: Dict[Fingerprint, SemanticContext] = {}
    self._positions: Optional[PositionIndex] = None

  def _resolve(self) -> None:
    module = self._current_tree()
    positions = PositionIndex(module, SourceText(module.code))
    contexts: Dict[Fingerprint, SemanticContext] = {}

    def record(node: cst.CSTNode, context: SemanticContext) -> None:
      key = fingerprint(node, positions.location)
      if key is not None and key not in contexts:
        contexts[key] = context

    analyze(module, self.path, self.universe, record, ImportTable.from_module(module))
    self._contexts = contexts
    self._positions = positions
    self.state = StoreState.RESOLVED
    self.resolutions += 1

  def get(self, key: Fingerprint) -> Optional[SemanticContext]:
    if self.state is StoreState.STALE:
      self._resolve()
    return self._contexts.get(key)

  def lookup(self, node: cst.CSTNode) -> Optional[SemanticContext]:
    if self.state is StoreState.STALE:
      self._resolve()
    key = fingerprint(node, self._positions.location)
    return self.get(key) if key is not None else None

  def invalidate(self) -> None:
    self.state = StoreState.STALE
    self._contexts = {}
    self._positions = None
