"""
Exception hierarchy for the preprocessor.

Configuration errors are raised before any source unit is touched. Lookup
errors are fatal to the rule that raised them but leave the batch usable.
Export conflicts are recorded per file and never abort a batch.
"""

from pathlib import Path
from typing import Optional


class PreprocessorError(Exception):
  """Base class for every error raised by the preprocessor."""


class ConfigurationError(PreprocessorError):
  """
  Raised for invalid inputs detected at setup time.

  Examples are a missing input path, a file that is not a source file, or a
  missing export directory.
  """


class InvalidTargetError(ConfigurationError):
  """
  Raised when a rule is configured with a class/member pair that does not
  name a real member of any known declaration.
  """

  def __init__(self, class_name: str, member: str) -> None:
    self.class_name = class_name
    self.member = member
    super().__init__(f"Method {class_name}.{member} does not exist")


class DeclarationNotFoundError(PreprocessorError):
  """
  Raised by ``find_declaration`` when a declaration is absent or ambiguous.
  """

  def __init__(self, class_name: str, member: str, matches: int) -> None:
    self.class_name = class_name
    self.member = member
    self.matches = matches
    reason = "not found" if matches == 0 else f"ambiguous ({matches} matches)"
    super().__init__(f"Declaration {class_name}.{member} {reason}")


class TargetExistsError(PreprocessorError):
  """
  Raised (and reported, never propagated past the batch) when an export
  destination already exists and overwriting is disabled.
  """

  def __init__(self, source: Path, target: Path) -> None:
    self.source = source
    self.target = target
    super().__init__(f"Failed to write {source} to {target}, file already exists")


class TraversalError(PreprocessorError):
  """Raised when a rule asks the traversal engine for an impossible edit."""

  def __init__(self, message: str, node_type: Optional[str] = None) -> None:
    self.node_type = node_type
    super().__init__(message if node_type is None else f"{message} ({node_type})")
