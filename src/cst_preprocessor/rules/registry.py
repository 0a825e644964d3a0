"""
Rewrite Rule Registry.

Rules register themselves under a name with the `register_rule` decorator. A
rule is a function ``rule(units, *args)`` that rewrites the working trees of
the given source units in place (each unit keeps its own new tree).

The orchestrator and the CLI look rules up by name, which keeps both free of
imports of individual rule modules.
"""

from typing import Callable, Dict, List, Sequence

from cst_preprocessor.core.source_unit import SourceUnit

RuleFunction = Callable[..., None]

# Global Registry
_RULES: Dict[str, RuleFunction] = {}


def register_rule(name: str) -> Callable[[RuleFunction], RuleFunction]:
  """
  Decorator to register a function as a rewrite rule.

  Args:
      name: The unique identifier, also the orchestrator method name.
  """

  def decorator(func: RuleFunction) -> RuleFunction:
    _RULES[name] = func
    return func

  return decorator


def get_rule(name: str) -> RuleFunction:
  """
  Retrieves a registered rule by name.

  Raises:
      KeyError: If no rule is registered under `name`.
  """
  if name not in _RULES:
    raise KeyError(f"Unknown rule '{name}'. Known rules: {', '.join(sorted(_RULES))}")
  return _RULES[name]


def list_rules() -> List[str]:
  """Names of every registered rule, sorted."""
  return sorted(_RULES)


def apply_rule(name: str, units: Sequence[SourceUnit], *args) -> None:
  """Looks a rule up and applies it to `units`."""
  get_rule(name)(units, *args)
