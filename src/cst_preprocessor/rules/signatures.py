"""
Parameter Annotation Stripping.

Drops selected parameter annotations from methods that cannot be overridden
from the outside (private methods, ``@final`` methods, methods of ``@final``
classes)::

    @final
    class Point:
      def _scale(self, factor: int = 2) -> "Point": ...

becomes ``def _scale(self, factor=2) -> "Point": ...`` for the type ``int``.
"""

from typing import Iterable, List, Optional, Sequence, Set, Union

import libcst as cst

from cst_preprocessor.analysis.context import SemanticContext
from cst_preprocessor.analysis.declarations import is_final_decorated, is_private_name
from cst_preprocessor.analysis.types import ObjectType, normalize_type_name, strip_optional
from cst_preprocessor.core.source_unit import SourceUnit
from cst_preprocessor.rules.registry import register_rule
from cst_preprocessor.utils.console import log_info
from cst_preprocessor.utils.rendering import capture_node_source, get_full_name

_NO_SPACE = cst.SimpleWhitespace("")


def parse_type_list(types: Union[str, Iterable[str]]) -> Set[str]:
  """
  Normalises an allow-list given as ``"int, str"`` or ``["int", "str"]``.
  """
  if isinstance(types, str):
    types = types.split(",")
  return {normalize_type_name(t.strip()) for t in types if t.strip()}


def is_sealed(node: cst.FunctionDef, context: SemanticContext) -> bool:
  """True for private methods, final methods and methods of final classes."""
  if is_private_name(node.name.value):
    return True
  if context.class_info is not None and context.class_info.is_final:
    return True
  return is_final_decorated(node, context.imports)


def annotation_names(annotation: cst.BaseExpression, context: SemanticContext) -> Set[str]:
  """
  Spellings under which an annotation can match the allow-list.

  Includes the literal text, the import-resolved name, and the same two for
  the inner type of ``Optional[X]`` / ``X | None``.
  """
  names = {capture_node_source(annotation).strip()}
  dotted = get_full_name(annotation)
  if dotted:
    names.add(dotted)
    names.add(context.resolve_name(dotted))

  inferred = strip_optional(context.universe.annotation_type(annotation, context.imports))
  if isinstance(inferred, ObjectType) and not inferred.args:
    names.add(inferred.name)
    names.add(inferred.name.rsplit(".", 1)[-1])
  return {normalize_type_name(n) for n in names}


def strip_param(param: cst.Param) -> cst.Param:
  """A copy of `param` without annotation (``x=1`` spacing for defaults)."""
  if param.default is not None:
    return param.with_changes(annotation=None, equal=cst.AssignEqual(whitespace_before=_NO_SPACE, whitespace_after=_NO_SPACE))
  return param.with_changes(annotation=None)


@register_rule("remove_type_from_method_parameters")
def remove_type_from_method_parameters(units: Sequence[SourceUnit], types: Union[str, Iterable[str]]) -> None:
  """
  Removes parameter annotations of the listed types from sealed methods.

  Args:
      units: Units to rewrite.
      types: Type names to strip, e.g. ``["int", "str"]`` or ``"int,str"``.
  """
  allowed = parse_type_list(types)
  if not allowed:
    return

  for unit in units:

    def strip(
      node: cst.FunctionDef, context: SemanticContext, class_name: str, method: str, unit: SourceUnit = unit
    ) -> Optional[cst.FunctionDef]:
      if not is_sealed(node, context):
        return None
      stripped: List[str] = []

      def rewrite(params: Sequence[cst.Param]) -> List[cst.Param]:
        result = []
        for param in params:
          if param.annotation is not None and annotation_names(param.annotation.annotation, context) & allowed:
            stripped.append(param.name.value)
            param = strip_param(param)
          result.append(param)
        return result

      params = node.params
      changes = {
        "posonly_params": rewrite(params.posonly_params),
        "params": rewrite(params.params),
        "kwonly_params": rewrite(params.kwonly_params),
      }
      if isinstance(params.star_arg, cst.Param):
        changes["star_arg"] = rewrite([params.star_arg])[0]
      if params.star_kwarg is not None:
        changes["star_kwarg"] = rewrite([params.star_kwarg])[0]
      if not stripped:
        return None

      log_info(f"{unit.label(node, context)} Removed parameter types of {class_name}.{method}: {', '.join(stripped)}")
      return node.with_changes(params=params.with_changes(**changes))

    unit.visit_declarations(strip)
