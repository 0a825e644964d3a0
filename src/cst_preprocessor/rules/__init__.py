"""
Rewrite Rules Package.

Imports every rule module in this package so that its ``@register_rule``
functions are available by name. Adding a module here registers its rules
without edits to the orchestrator or the CLI.
"""

import importlib
import pkgutil
from pathlib import Path

from cst_preprocessor.rules.registry import apply_rule, get_rule, list_rules, register_rule

_pkg_dir = Path(__file__).parent

# Helper modules declare no rules.
_HELPERS = {"registry", "expressions"}

for _, module_name, _ in pkgutil.iter_modules([str(_pkg_dir)]):
  if module_name.startswith("_") or module_name in _HELPERS:
    continue
  importlib.import_module(f".{module_name}", package=__name__)

__all__ = ["apply_rule", "get_rule", "list_rules", "register_rule"]
