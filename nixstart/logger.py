import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "nixstart"
DEFAULT_LOG_FILE = "/tmp/nixstart.log"


class FileFormatter(logging.Formatter):
  """
  Detailed formatter for file output.
  """

  def format(self, record: logging.LogRecord) -> str:
    # Fixed-width columns keep the log file aligned
    record.levelname_fixed = f"{record.levelname:<8}"
    record.name_fixed = f"{record.name:<24}"
    record.lineno_fixed = f"{record.lineno:<4}"

    fmt = "%(asctime)s - %(levelname_fixed)s - %(name_fixed)s:%(lineno_fixed)s - %(message)s"
    self._style._fmt = fmt

    return super().format(record)


def setup_logging(log_file: str = DEFAULT_LOG_FILE, verbose: bool = False, console: Console | None = None) -> logging.Logger:
  """
  Configure the nixstart logger with a file handler and a RichHandler on stderr.

  The file always receives DEBUG records; the console shows INFO, or DEBUG
  when verbose is set.
  """
  logger = logging.getLogger(LOGGER_NAME)
  logger.setLevel(logging.DEBUG)
  logger.propagate = False

  for handler in logger.handlers[:]:
    logger.removeHandler(handler)
    handler.close()

  os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
  file_handler = logging.FileHandler(log_file, encoding="utf-8")
  file_handler.setLevel(logging.DEBUG)
  file_handler.setFormatter(FileFormatter())
  logger.addHandler(file_handler)

  stream_handler = RichHandler(
    console=console or Console(file=sys.stderr),
    show_time=False,
    show_level=True,
    show_path=False,
    keywords=[],
    level=logging.DEBUG if verbose else logging.INFO,
  )
  logger.addHandler(stream_handler)

  return logger


@contextmanager
def console_logging_suspended() -> Iterator[None]:
  """Detach the RichHandler while the wizard owns the screen; the file handler keeps logging."""
  logger = logging.getLogger(LOGGER_NAME)
  detached = [handler for handler in logger.handlers if isinstance(handler, RichHandler)]
  for handler in detached:
    logger.removeHandler(handler)

  try:
    yield
  finally:
    for handler in detached:
      logger.addHandler(handler)
