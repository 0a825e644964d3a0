"""
Batch Orchestrator.

`PreProcessor` builds the source units of a batch, runs rules over them and
exports the results::

    processor = PreProcessor.from_directory(Path("src"))
    processor.comment_out("logging.Logger", "debug").qualify_function_calls()
    report = processor.export(Path("build"))

Building a batch parses every file and indexes its declarations before any
unit is created, so that each unit sees the classes of all the others. In
eager mode every unit is analysed before the first rule runs.
"""

from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union

import libcst as cst

from cst_preprocessor.analysis.declarations import DeclarationUniverse
from cst_preprocessor.config import RuntimeConfig
from cst_preprocessor.core.report import ExportReport
from cst_preprocessor.core.source_unit import SourceUnit, read_source
from cst_preprocessor.enums import ContextMode
from cst_preprocessor.errors import ConfigurationError, DeclarationNotFoundError, TargetExistsError
from cst_preprocessor.rules import apply_rule
from cst_preprocessor.utils.console import log_progress, log_success, log_warning

PathLike = Union[str, Path]


class PreProcessor:
  """
  A batch of source units sharing one declaration universe.

  Attributes:
      units (List[SourceUnit]): Units in input order.
      universe (DeclarationUniverse): Declarations of every unit.
      config (RuntimeConfig): Settings the batch was built with.
  """

  def __init__(self, units: List[SourceUnit], universe: DeclarationUniverse, config: RuntimeConfig) -> None:
    self.units = units
    self.universe = universe
    self.config = config

  # --- Construction ---

  @classmethod
  def from_paths(cls, paths: Iterable[PathLike], config: Optional[RuntimeConfig] = None) -> "PreProcessor":
    """
    Builds a batch from explicit file paths.

    Args:
        paths: Source files, processed in the given order.
        config: Settings (defaults if omitted).

    Raises:
        ConfigurationError: If a path is missing, is not a file, does not
          have a configured extension, or cannot be parsed.
    """
    config = config or RuntimeConfig()
    files = []
    for raw in paths:
      path = Path(raw)
      if not path.is_file():
        raise ConfigurationError(f"Input not found: {path}")
      if path.suffix not in config.extensions:
        raise ConfigurationError(f"Not a source file: {path} (expected {', '.join(config.extensions)})")
      files.append(path)
    return cls._build(files, config)

  @classmethod
  def from_directory(cls, directory: PathLike, config: Optional[RuntimeConfig] = None) -> "PreProcessor":
    """
    Builds a batch from every source file below a directory.

    Files are sorted by path. Sub-directories are scanned when
    ``config.recursive`` is set.

    Raises:
        ConfigurationError: If `directory` is not a directory, or a file
          cannot be parsed.
    """
    config = config or RuntimeConfig()
    directory = Path(directory)
    if not directory.is_dir():
      raise ConfigurationError(f"Input directory not found: {directory}")
    pattern = "**/*" if config.recursive else "*"
    files = sorted(p for p in directory.glob(pattern) if p.is_file() and p.suffix in config.extensions)
    if not files:
      log_warning(f"No {', '.join(config.extensions)} files found in {directory}")
    return cls._build(files, config)

  @classmethod
  def _build(cls, paths: List[Path], config: RuntimeConfig) -> "PreProcessor":
    universe = DeclarationUniverse(config.return_types)
    parsed: List[Tuple[Path, str, cst.Module]] = []
    total = len(paths)

    # 1. Parse and index declarations of the whole batch
    for i, path in enumerate(paths, 1):
      try:
        text = read_source(path)
        module = cst.parse_module(text)
      except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e
      except cst.ParserSyntaxError as e:
        raise ConfigurationError(f"Cannot parse {path}: {e}") from e
      universe.add_module(path, module)
      parsed.append((path, text, module))
      log_progress(i, total, "Parse", str(path))

    # 2. Create units (and analyse them up front in eager mode)
    units = []
    for i, (path, text, module) in enumerate(parsed, 1):
      unit = SourceUnit(path, text, universe, config.context_mode, module)
      if config.context_mode is ContextMode.EAGER:
        unit.populate()
        log_progress(i, total, "Analyse", str(path))
      units.append(unit)
    return cls(units, universe, config)

  def __len__(self) -> int:
    return len(self.units)

  # --- Rules ---

  def apply(self, rule: str, *args) -> "PreProcessor":
    """
    Runs a registered rule over every unit.

    Args:
        rule: Registered rule name.
        *args: Rule arguments.

    Returns:
        PreProcessor: self, for chaining.
    """
    apply_rule(rule, self.units, *args)
    return self

  def comment_out(self, target: str, member: str) -> "PreProcessor":
    """Elides ``receiver.member(...)`` calls on `target` receivers."""
    return self.apply("comment_out", target, member)

  def qualify_function_calls(self) -> "PreProcessor":
    """Qualifies calls to from-imported functions through their module alias."""
    return self.apply("qualify_function_calls")

  def inline_calls(self, target: str, member: str) -> "PreProcessor":
    """Inlines the single-expression method ``target.member`` at its call sites."""
    return self.apply("inline_calls", target, member)

  def narrow_existence_checks(self) -> "PreProcessor":
    """Rewrites ``m.get(k) is [not] None`` on typed mappings to membership tests."""
    return self.apply("narrow_existence_checks")

  def remove_type_from_method_parameters(self, types: Union[str, Iterable[str]]) -> "PreProcessor":
    """Strips the listed parameter annotations from sealed methods."""
    return self.apply("remove_type_from_method_parameters", types)

  def inline_accessors(self) -> "PreProcessor":
    """Replaces trivial accessor calls with attribute reads."""
    return self.apply("inline_accessors")

  def find_declaration(self, class_name: str, member: str) -> cst.FunctionDef:
    """
    Finds the single declaration of `member` in `class_name` across the batch.

    Raises:
        DeclarationNotFoundError: If there is no match or more than one.
    """
    matches = [node for unit in self.units for node, _ in unit.find_declarations(class_name, member)]
    if len(matches) != 1:
      raise DeclarationNotFoundError(class_name, member, len(matches))
    return matches[0]

  # --- Output ---

  @staticmethod
  def target_path(root: Path, source: Path) -> Path:
    """
    Destination of `source` below `root`.

    Files under the working directory keep their relative path, other files
    keep their absolute path without its anchor.
    """
    absolute = source.resolve()
    try:
      relative = absolute.relative_to(Path.cwd().resolve())
    except ValueError:
      relative = Path(*absolute.parts[1:])
    return root / relative

  def exporter(self, root: PathLike) -> Iterator[Tuple[Path, str]]:
    """
    Yields ``(destination, text)`` for every unit without touching the disk.

    Args:
        root: Directory the destinations are computed below.
    """
    root = Path(root)
    for unit in self.units:
      yield self.target_path(root, unit.path), unit.regenerate()

  def export(self, root: PathLike, overwrite: Optional[bool] = None) -> ExportReport:
    """
    Writes every unit below `root`.

    Args:
        root: Existing output directory.
        overwrite: Replace existing files (defaults to ``config.overwrite``).

    Returns:
        ExportReport: Written files and per-file conflicts.

    Raises:
        ConfigurationError: If `root` is not an existing directory.
    """
    root = Path(root)
    if not root.is_dir():
      raise ConfigurationError(f"Export directory not found: {root}")
    if overwrite is None:
      overwrite = self.config.overwrite

    report = ExportReport(root=root)
    for unit, (target, text) in zip(self.units, self.exporter(root)):
      if target.exists() and not overwrite:
        conflict = TargetExistsError(unit.path, target)
        log_warning(str(conflict))
        report.conflicts.append(conflict)
        continue
      target.parent.mkdir(parents=True, exist_ok=True)
      with open(target, "w", encoding="utf-8", newline="") as f:
        f.write(text)
      report.written.append(target)
      log_success(f"Wrote {unit.path} -> {target}")
    return report
