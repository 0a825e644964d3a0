"""
Central Logging and Console Utilities.

All preprocessor output goes through the standard `logging` library, rendered
by `rich`. The Rich console sits behind a proxy so that the destination
(stdout or an in-memory recording console in tests) can be swapped at runtime
without re-importing the modules that log.

Logging is purely observational: nothing in the traversal or rewrite path
reads back what was logged.

Attributes:
    console (_ConsoleProxy): A stable reference to the active Rich Console.
"""

import logging
from typing import Any, Union

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

# Between INFO and WARNING, used for "file written" style messages.
SUCCESS_LEVEL_NUM = 25
logging.addLevelName(SUCCESS_LEVEL_NUM, "SUCCESS")

_THEME = Theme(
  {
    "logging.level.success": "green",
    "info": "dim cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "green",
    "path": "bold blue",
    "code": "bold magenta",
  }
)


class _ConsoleProxy:
  """
  A Proxy wrapper around `rich.console.Console`.

  All printing is forwarded to the backend console. When the backend changes,
  the `RichHandler` on the root logger is rebuilt to point at it, so that
  `logging.info(...)` follows the console.

  Attributes:
      _backend (Console): The active Rich Console instance.
      _level (int): The level applied to the root logger.
  """

  def __init__(self) -> None:
    self._backend: Console = Console(theme=_THEME)
    self._level: int = logging.INFO
    self._configure_logging()

  def set_backend(self, new_console: Console) -> None:
    """
    Injects a new Console backend and updates logging handlers.

    Args:
        new_console (Console): The new Rich Console instance to use.
    """
    self._backend = new_console
    self._configure_logging()

  def reset(self) -> None:
    """Resets the proxy to a fresh standard output console."""
    self._backend = Console(theme=_THEME)
    self._configure_logging()

  def set_level(self, level: int) -> None:
    """
    Changes the minimum level routed to the console.

    Args:
        level (int): A `logging` level number.
    """
    self._level = level
    logging.getLogger().setLevel(level)

  @property
  def backend(self) -> Console:
    """The currently active Rich Console."""
    return self._backend

  def _configure_logging(self) -> None:
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
      if isinstance(handler, RichHandler):
        root_logger.removeHandler(handler)

    rich_handler = RichHandler(
      console=self._backend,
      show_time=False,
      omit_repeated_times=False,
      show_path=False,
      markup=False,
      rich_tracebacks=True,
    )
    root_logger.setLevel(self._level)
    root_logger.addHandler(rich_handler)

  def print(self, *args: Any, **kwargs: Any) -> None:
    """Forwards `print` calls to the active backend."""
    self._backend.print(*args, **kwargs)

  def export_text(self, **kwargs: Any) -> str:
    """
    Forwards `export_text` (useful for log capturing with a recording console).

    Returns:
        str: The captured text output.
    """
    return self._backend.export_text(**kwargs)

  def __getattr__(self, name: str) -> Any:
    return getattr(self._backend, name)


console = _ConsoleProxy()


def set_console(new_console: Console) -> None:
  """
  Injects a specific console instance for both printing and logging.

  Args:
      new_console (Console): The configured Rich console to use globally.
  """
  console.set_backend(new_console)


def reset_console() -> None:
  """Resets logging and console to standard output."""
  console.reset()


def set_log_level(level: Union[int, str]) -> None:
  """
  Sets the minimum level of messages emitted by the preprocessor.

  Args:
      level: A `logging` level number or name (e.g. ``"WARNING"``).
  """
  if isinstance(level, str):
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
      raise ValueError(f"Unknown log level: {level}")
    level = resolved
  console.set_level(level)


def log_info(msg: str) -> None:
  """
  Logs an informational message via standard logging.

  Args:
      msg (str): The message content.
  """
  logging.info(msg)


def log_success(msg: str) -> None:
  """
  Logs a success message via standard logging.

  Args:
      msg (str): The message content.
  """
  logging.log(SUCCESS_LEVEL_NUM, msg)


def log_warning(msg: str) -> None:
  """
  Logs a warning message via standard logging.

  Args:
      msg (str): The message content.
  """
  logging.warning(msg)


def log_error(msg: str) -> None:
  """
  Logs an error message via standard logging.

  Args:
      msg (str): The message content.
  """
  logging.error(msg)


def log_progress(done: int, total: int, stage: str, msg: str) -> None:
  """
  Logs a batch progress line such as ``[2 / 5] analysis >> Reading a.py``.

  Args:
      done (int): 1-based index of the current item.
      total (int): Number of items in the batch.
      stage (str): Short stage label.
      msg (str): Description of the step.
  """
  logging.info(f"[{done} / {total}] {stage} >> {msg}")
