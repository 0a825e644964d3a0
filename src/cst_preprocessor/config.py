"""
Runtime Configuration Store.

Settings come from three layers, later layers winning:
defaults, the ``[tool.cst_preprocessor]`` table of the nearest
``pyproject.toml``, and explicit (CLI) overrides.
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from cst_preprocessor.enums import ContextMode
from cst_preprocessor.utils.console import log_warning

if sys.version_info >= (3, 11):
  import tomllib
else:
  try:
    import tomli as tomllib
  except ImportError:
    tomllib = None  # type: ignore

_DEFAULT_RETURN_TYPES = {
  "logging.getLogger": "logging.Logger",
}


class RuntimeConfig(BaseModel):
  """
  Global configuration container for the preprocessor.
  """

  context_mode: ContextMode = Field(
    ContextMode.EAGER,
    description="'eager' analyses every file up front, 'lazy' analyses on first lookup.",
  )
  extensions: List[str] = Field(default_factory=lambda: [".py"], description="Suffixes of source files.")
  recursive: bool = Field(True, description="Scan sub-directories in directory mode.")
  overwrite: bool = Field(False, description="Replace existing files on export.")
  log_level: str = Field("INFO", description="Minimum level of log messages.")
  return_types: Dict[str, str] = Field(
    default_factory=lambda: dict(_DEFAULT_RETURN_TYPES),
    description="Return types of callables outside the batch (e.g. logging.getLogger -> logging.Logger).",
  )

  @field_validator("extensions")
  @classmethod
  def validate_extensions(cls, v: List[str]) -> List[str]:
    """
    Normalises suffixes to a leading dot.

    Args:
        v (List[str]): Raw suffixes (``py`` or ``.py``).

    Returns:
        List[str]: Suffixes starting with a dot.

    Raises:
        ValueError: If the list is empty.
    """
    cleaned = [s if s.startswith(".") else f".{s}" for s in (e.strip() for e in v) if s]
    if not cleaned:
      raise ValueError("At least one source file extension is required")
    return cleaned

  @field_validator("log_level")
  @classmethod
  def validate_log_level(cls, v: str) -> str:
    level = v.upper().strip()
    if level not in ("DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"):
      raise ValueError(f"Unknown log level: '{v}'")
    return level

  @classmethod
  def load(
    cls,
    context_mode: Optional[ContextMode] = None,
    extensions: Optional[List[str]] = None,
    recursive: Optional[bool] = None,
    overwrite: Optional[bool] = None,
    log_level: Optional[str] = None,
    return_types: Optional[Dict[str, str]] = None,
    search_path: Optional[Path] = None,
  ) -> "RuntimeConfig":
    """
    Loads configuration from pyproject.toml and overrides with CLI arguments.

    Args:
        context_mode (Optional[ContextMode]): Override for the context strategy.
        extensions (Optional[List[str]]): Override for source file suffixes.
        recursive (Optional[bool]): Override for directory recursion.
        overwrite (Optional[bool]): Override for export overwriting.
        log_level (Optional[str]): Override for the log level.
        return_types (Optional[Dict]): Extra return types, merged over the TOML table.
        search_path (Optional[Path]): Directory to start searching for TOML config.

    Returns:
        RuntimeConfig: The fully resolved configuration object.
    """
    toml_config, _ = _load_toml_settings(search_path or Path.cwd())

    final_returns = dict(_DEFAULT_RETURN_TYPES)
    final_returns.update(toml_config.get("return_types", {}))
    final_returns.update(return_types or {})

    return cls(
      context_mode=context_mode or toml_config.get("context_mode", ContextMode.EAGER),
      extensions=extensions or toml_config.get("extensions", [".py"]),
      recursive=recursive if recursive is not None else toml_config.get("recursive", True),
      overwrite=overwrite if overwrite is not None else toml_config.get("overwrite", False),
      log_level=log_level or toml_config.get("log_level", "INFO"),
      return_types=final_returns,
    )


def _load_toml_settings(start_path: Path) -> Tuple[Dict[str, Any], Optional[Path]]:
  """
  Recursively searches parents for 'pyproject.toml' and extracts config.

  Args:
      start_path (Path): Directory to start search from.

  Returns:
      Tuple[Dict, Optional[Path]]: The config dict and the directory definition was found in.
  """
  if not tomllib:
    return {}, None

  current = start_path.resolve()

  for parent in [current, *current.parents]:
    toml_path = parent / "pyproject.toml"
    if toml_path.exists() and toml_path.is_file():
      try:
        with open(toml_path, "rb") as f:
          data = tomllib.load(f)
      except (OSError, tomllib.TOMLDecodeError) as e:
        log_warning(f"Ignoring unreadable {toml_path}: {e}")
        return {}, None

      tool_section = data.get("tool", {})
      return tool_section.get("cst_preprocessor", {}), parent

  return {}, None


def parse_cli_pairs(items: Optional[List[str]]) -> Dict[str, str]:
  """
  Parses a list of 'key=value' strings into a dictionary.

  Args:
      items (Optional[List[str]]): List of raw CLI strings directly from argparse.

  Returns:
      Dict[str, str]: Parsed dictionary.
  """
  if not items:
    return {}

  pairs = {}
  for item in items:
    if "=" not in item:
      log_warning(f"Ignoring invalid config format: '{item}'. Expected 'key=value'.")
      continue
    key, value = item.split("=", 1)
    pairs[key.strip()] = value.strip()
  return pairs
