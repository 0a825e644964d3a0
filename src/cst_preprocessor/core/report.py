"""
Export Reports.
"""

from pathlib import Path
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from cst_preprocessor.errors import TargetExistsError


class ExportReport(BaseModel):
  """
  Structured result of exporting a batch.
  """

  model_config = ConfigDict(arbitrary_types_allowed=True)

  root: Path = Field(description="Directory the batch was exported below.")
  written: List[Path] = Field(default_factory=list, description="Files written, in input order.")
  conflicts: List[TargetExistsError] = Field(
    default_factory=list,
    description="Files skipped because the destination already existed.",
  )

  @property
  def has_conflicts(self) -> bool:
    """
    Returns True if any file was skipped.

    Returns:
        bool: True if the conflicts list is non-empty.
    """
    return len(self.conflicts) > 0

  @property
  def success(self) -> bool:
    return not self.has_conflicts
