"""
Runtime Reflection of Importable Classes.

Classes that are not declared in the batch (``logging.Logger``, ``dict``) are
looked up by importing their module, so that targets such as
``Logger.debug`` can be validated and subclass relations checked.

Only standard library modules and modules the running interpreter already
imported are reflected. Code of the processed project is never executed.
"""

import builtins
import importlib
import inspect
import sys
from functools import lru_cache
from typing import Optional

from cst_preprocessor.utils.console import log_warning

# Used on Python 3.9, which lacks sys.stdlib_module_names.
_COMMON_STDLIB = frozenset(
  (
    "abc",
    "argparse",
    "collections",
    "contextlib",
    "dataclasses",
    "datetime",
    "decimal",
    "enum",
    "fractions",
    "functools",
    "io",
    "itertools",
    "json",
    "logging",
    "os",
    "pathlib",
    "queue",
    "re",
    "socket",
    "string",
    "threading",
    "typing",
    "uuid",
  )
)


def is_stdlib(module_name: str) -> bool:
  """
  Determines if a module belongs to the Python Standard Library.

  Args:
      module_name: Dotted module path, only its first segment is checked.
  """
  root = module_name.split(".")[0]
  if sys.version_info >= (3, 10):
    return root in sys.stdlib_module_names
  return root in _COMMON_STDLIB


def is_reflectable(module_name: str) -> bool:
  """True if importing `module_name` runs no code of the processed project."""
  return module_name in sys.modules or is_stdlib(module_name)


@lru_cache(maxsize=None)
def runtime_class(dotted: str) -> Optional[type]:
  """
  Imports and returns the class a dotted name refers to.

  Args:
      dotted: ``logging.Logger``, ``collections.OrderedDict`` or a builtin
        name such as ``dict``.

  Returns:
      Optional[type]: The class, or None if it cannot be imported or is not
      a class.
  """
  if not dotted:
    return None
  parts = dotted.split(".")
  if len(parts) == 1:
    obj = getattr(builtins, dotted, None)
    return obj if inspect.isclass(obj) else None

  for split in range(len(parts) - 1, 0, -1):
    module_name = ".".join(parts[:split])
    if not is_reflectable(module_name):
      continue
    try:
      obj = importlib.import_module(module_name)
    except ImportError:
      continue
    except Exception as e:
      log_warning(f"Cannot reflect {dotted}: importing {module_name} failed: {e}")
      return None
    try:
      for attr in parts[split:]:
        obj = getattr(obj, attr)
    except AttributeError:
      return None
    return obj if inspect.isclass(obj) else None
  return None


def qualified_name(cls: type) -> str:
  """Returns ``module.qualname`` for a runtime class (bare name for builtins)."""
  if cls.__module__ == "builtins":
    return cls.__qualname__
  return f"{cls.__module__}.{cls.__qualname__}"


def runtime_has_member(dotted: str, member: str) -> bool:
  """
  True if the runtime class has an attribute named `member` (case-insensitive).
  """
  cls = runtime_class(dotted)
  if cls is None:
    return False
  wanted = member.lower()
  return any(name.lower() == wanted for name in dir(cls))


def runtime_is_subclass(dotted: str, parent: str) -> bool:
  """
  True if the runtime class `dotted` is `parent` or inherits from it.

  Args:
      dotted: Candidate subclass.
      parent: Candidate base class, compared by qualified name along the MRO.
  """
  cls = runtime_class(dotted)
  if cls is None:
    return False
  return any(qualified_name(base) == parent for base in inspect.getmro(cls))
