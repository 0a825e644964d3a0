"""
Import Bindings.

Maps the local names a file binds through ``import`` statements to the dotted
paths they refer to. Only module-level imports are recorded; they are what a
name resolves to anywhere in the file unless shadowed locally.
"""

from typing import Dict, Optional

import libcst as cst

from cst_preprocessor.utils.rendering import get_full_name


class ImportTable:
  """
  Local name to dotted path bindings of one module.

  Attributes:
      modules (Dict[str, str]): ``import a.b as m`` binds ``m -> a.b``;
        ``import a.b`` binds ``a -> a``.
      names (Dict[str, str]): ``from a import f as g`` binds ``g -> a.f``.
  """

  def __init__(self) -> None:
    self.modules: Dict[str, str] = {}
    self.names: Dict[str, str] = {}
    self.imported_modules: Dict[str, str] = {}

  @classmethod
  def from_module(cls, module: cst.Module) -> "ImportTable":
    """Collects the top-level imports of a module (including those in if/try blocks)."""
    table = cls()
    for stmt in _top_level_statements(module.body):
      if not isinstance(stmt, cst.SimpleStatementLine):
        continue
      for small in stmt.body:
        if isinstance(small, cst.Import):
          table.add_import(small)
        elif isinstance(small, cst.ImportFrom):
          table.add_import_from(small)
    return table

  def add_import(self, node: cst.Import) -> None:
    for alias in node.names:
      full_path = get_full_name(alias.name)
      if alias.asname is not None and isinstance(alias.asname.name, cst.Name):
        self.modules[alias.asname.name.value] = full_path
        self.imported_modules[full_path] = alias.asname.name.value
      else:
        root = full_path.split(".")[0]
        self.modules[root] = root
        self.imported_modules.setdefault(full_path, full_path)

  def add_import_from(self, node: cst.ImportFrom) -> None:
    if node.module is None or node.relative or isinstance(node.names, cst.ImportStar):
      return
    base_mod = get_full_name(node.module)
    for alias in node.names:
      import_name = get_full_name(alias.name)
      if alias.asname is not None and isinstance(alias.asname.name, cst.Name):
        bind_name = alias.asname.name.value
      else:
        bind_name = import_name
      self.names[bind_name] = f"{base_mod}.{import_name}"

  def resolve(self, dotted: str) -> str:
    """
    Expands the first segment of a dotted name through the import bindings.

    Args:
        dotted: A name as written in the file (``np.array``, ``Logger``).

    Returns:
        str: The fully qualified name (``numpy.array``, ``logging.Logger``),
        or the input unchanged if its first segment is not imported.
    """
    if not dotted:
      return dotted
    head, _, rest = dotted.partition(".")
    if head in self.names:
      base = self.names[head]
    elif head in self.modules:
      base = self.modules[head]
    else:
      return dotted
    return f"{base}.{rest}" if rest else base

  def module_alias(self, module_path: str) -> Optional[str]:
    """
    Finds the expression that names a module in this file.

    Args:
        module_path: Dotted module path (``os.path``).

    Returns:
        Optional[str]: ``m`` for ``import os.path as m``, ``os.path`` for
        ``import os.path``, or None if the module is not imported.
    """
    return self.imported_modules.get(module_path)


def _top_level_statements(body):
  for stmt in body:
    if isinstance(stmt, cst.If):
      yield from _top_level_statements(stmt.body.body)
      orelse = stmt.orelse
      while orelse is not None:
        yield from _top_level_statements(orelse.body.body)
        orelse = orelse.orelse if isinstance(orelse, cst.If) else None
    elif isinstance(stmt, cst.Try):
      yield from _top_level_statements(stmt.body.body)
      for handler in stmt.handlers:
        yield from _top_level_statements(handler.body.body)
    else:
      yield stmt
