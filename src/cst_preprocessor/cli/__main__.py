"""
Main Entry Point for the cst-preprocessor CLI.

Rule options are steps: they run in the order they appear on the command
line, and may be repeated::

    cst-preprocessor src/ --out build/ \\
        --comment-out logging.Logger.debug \\
        --qualify-calls \\
        --strip-types int,str
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

from pydantic import ValidationError
from rich.table import Table

from cst_preprocessor import __version__
from cst_preprocessor.config import RuntimeConfig, parse_cli_pairs
from cst_preprocessor.core.preprocessor import PreProcessor
from cst_preprocessor.core.report import ExportReport
from cst_preprocessor.enums import ContextMode
from cst_preprocessor.errors import PreprocessorError
from cst_preprocessor.utils.console import console, log_error, log_success, set_log_level

Step = Tuple[str, Tuple[Any, ...]]


def parse_member_ref(value: str) -> Tuple[str, str]:
  """
  Splits ``Class.member`` (or ``pkg.mod.Class.member``) into its two parts.

  Raises:
      ValueError: If there is no dot, or either part is empty.
  """
  target, _, member = value.rpartition(".")
  if not target or not member:
    raise ValueError(f"expected Class.member, got '{value}'")
  return target, member


def parse_type_names(value: str) -> Tuple[List[str]]:
  names = [name.strip() for name in value.split(",") if name.strip()]
  if not names:
    raise ValueError("expected a comma separated list of type names")
  return (names,)


class RuleStep(argparse.Action):
  """
  Appends ``(rule, args)`` to ``namespace.steps``, keeping command-line order.
  """

  def __init__(
    self,
    option_strings: Sequence[str],
    dest: str,
    rule: str = "",
    parse: Optional[Callable[[str], Tuple[Any, ...]]] = None,
    **kwargs: Any,
  ) -> None:
    self.rule = rule
    self.parse = parse
    super().__init__(option_strings, dest="steps", **kwargs)

  def __call__(self, parser, namespace, values, option_string=None) -> None:
    args: Tuple[Any, ...] = ()
    if self.parse is not None:
      try:
        args = self.parse(values)
      except ValueError as e:
        parser.error(f"{option_string}: {e}")
    steps: List[Step] = list(getattr(namespace, "steps", None) or [])
    steps.append((self.rule, args))
    setattr(namespace, "steps", steps)


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(
    prog="cst-preprocessor",
    description="cst-preprocessor: format-preserving Python source rewriting",
  )
  parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
  parser.add_argument("paths", nargs="+", type=Path, help="Source files, or a single directory")
  parser.add_argument("--out", type=Path, required=True, help="Existing directory to export into")
  parser.add_argument("--overwrite", action="store_true", default=None, help="Replace existing output files")
  parser.add_argument("--lazy", action="store_true", help="Resolve semantic contexts on demand")
  parser.add_argument(
    "--return-type",
    action="append",
    metavar="CALLABLE=CLASS",
    help="Return type of a callable outside the batch (e.g. logging.getLogger=logging.Logger)",
  )
  parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR (default: from toml)")

  steps = parser.add_argument_group("rules (applied in command-line order)")
  steps.add_argument(
    "--comment-out",
    action=RuleStep,
    rule="comment_out",
    parse=parse_member_ref,
    metavar="CLASS.MEMBER",
    help="Elide calls of a method",
  )
  steps.add_argument(
    "--qualify-calls",
    action=RuleStep,
    rule="qualify_function_calls",
    nargs=0,
    help="Qualify from-imported function calls through their module",
  )
  steps.add_argument(
    "--inline",
    action=RuleStep,
    rule="inline_calls",
    parse=parse_member_ref,
    metavar="CLASS.MEMBER",
    help="Inline a single-expression method at its call sites",
  )
  steps.add_argument(
    "--narrow-guards",
    action=RuleStep,
    rule="narrow_existence_checks",
    nargs=0,
    help="Rewrite m.get(k) is not None to k in m on typed mappings",
  )
  steps.add_argument(
    "--strip-types",
    action=RuleStep,
    rule="remove_type_from_method_parameters",
    parse=parse_type_names,
    metavar="TYPES",
    help="Remove these parameter annotations from private or final methods",
  )
  steps.add_argument(
    "--inline-accessors",
    action=RuleStep,
    rule="inline_accessors",
    nargs=0,
    help="Replace trivial accessor calls with attribute reads",
  )
  return parser


def _print_export_summary(report: ExportReport) -> None:
  """
  Renders the export outcome to the console.

  Args:
      report: The export report.
  """
  if not report.has_conflicts:
    log_success(f"Export Complete: {len(report.written)} file(s) written to {report.root}.")
    return

  table = Table(title="Export Report")
  table.add_column("Source", style="cyan")
  table.add_column("Target")
  table.add_column("Status", style="yellow", justify="center")
  for conflict in report.conflicts:
    table.add_row(str(conflict.source), str(conflict.target), "exists")
  console.print(table)
  console.print(f"\n[bold]Summary:[/bold] {len(report.written)} written, {len(report.conflicts)} skipped.")


def main(argv: Optional[List[str]] = None) -> int:
  """
  Main CLI entry point.

  Args:
      argv: Optional list of command line arguments (defaults to sys.argv).

  Returns:
      int: Exit code (0 for success, 1 for configuration or lookup errors).
  """
  parser = build_parser()
  args = parser.parse_args(argv)

  search_path = args.paths[0] if args.paths[0].is_dir() else args.paths[0].parent
  try:
    config = RuntimeConfig.load(
      context_mode=ContextMode.LAZY if args.lazy else None,
      overwrite=args.overwrite,
      log_level=args.log_level,
      return_types=parse_cli_pairs(args.return_type),
      search_path=search_path,
    )
  except ValidationError as e:
    log_error(f"Invalid configuration: {e}")
    return 1
  set_log_level(config.log_level)

  try:
    if len(args.paths) == 1 and args.paths[0].is_dir():
      processor = PreProcessor.from_directory(args.paths[0], config)
    else:
      processor = PreProcessor.from_paths(args.paths, config)
    for rule, rule_args in args.steps or []:
      processor.apply(rule, *rule_args)
    report = processor.export(args.out)
  except PreprocessorError as e:
    log_error(str(e))
    return 1

  _print_export_summary(report)
  return 0


if __name__ == "__main__":
  sys.exit(main())
