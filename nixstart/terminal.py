"""
Terminal backend for the wizard.

Puts the terminal into cbreak mode on the alternate screen, decodes key
presses into KeyEvent values and turns SIGWINCH into ResizeEvent values
through a self-pipe, so the main loop only ever blocks in read_event().
"""

from __future__ import annotations

import logging
import os
import select
import signal
import sys
import termios
import tty
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from types import FrameType, TracebackType
from typing import Final

from rich.console import Console, RenderableType

from nixstart.errors import TerminalError

logger = logging.getLogger(__name__)


class Keys:
  """Names of the non-printable keys produced by decode_keys()."""

  UP = "up"
  DOWN = "down"
  LEFT = "left"
  RIGHT = "right"
  HOME = "home"
  END = "end"
  PAGE_UP = "pageup"
  PAGE_DOWN = "pagedown"
  ENTER = "enter"
  ESCAPE = "esc"
  TAB = "tab"
  BACKTAB = "backtab"
  BACKSPACE = "backspace"
  DELETE = "delete"
  SPACE = " "
  CTRL_C = "ctrl+c"
  UNKNOWN = "unknown"


@dataclass(frozen=True)
class KeyEvent:
  """A key press. Printable characters use the character itself as key."""

  key: str

  @property
  def is_printable(self) -> bool:
    return len(self.key) == 1 and self.key.isprintable()


@dataclass(frozen=True)
class ResizeEvent:
  width: int
  height: int


Event = KeyEvent | ResizeEvent

ESCAPE_SEQUENCES: Final[dict[str, str]] = {
  "\x1b[A": Keys.UP,
  "\x1b[B": Keys.DOWN,
  "\x1b[C": Keys.RIGHT,
  "\x1b[D": Keys.LEFT,
  "\x1bOA": Keys.UP,
  "\x1bOB": Keys.DOWN,
  "\x1bOC": Keys.RIGHT,
  "\x1bOD": Keys.LEFT,
  "\x1b[H": Keys.HOME,
  "\x1b[F": Keys.END,
  "\x1bOH": Keys.HOME,
  "\x1bOF": Keys.END,
  "\x1b[1~": Keys.HOME,
  "\x1b[4~": Keys.END,
  "\x1b[7~": Keys.HOME,
  "\x1b[8~": Keys.END,
  "\x1b[3~": Keys.DELETE,
  "\x1b[5~": Keys.PAGE_UP,
  "\x1b[6~": Keys.PAGE_DOWN,
  "\x1b[Z": Keys.BACKTAB,
}

CONTROL_KEYS: Final[dict[str, str]] = {
  "\r": Keys.ENTER,
  "\n": Keys.ENTER,
  "\t": Keys.TAB,
  "\x7f": Keys.BACKSPACE,
  "\x08": Keys.BACKSPACE,
  "\x03": Keys.CTRL_C,
}


def _sequence_length(data: str, start: int) -> int:
  """Length of the escape sequence starting at data[start] (which is ESC)."""
  if start + 1 >= len(data):
    return 1

  introducer = data[start + 1]
  if introducer == "O":
    return min(3, len(data) - start)

  if introducer != "[":
    # Alt+key is reported as ESC followed by the key
    return 1

  end = start + 2
  while end < len(data) and not ("@" <= data[end] <= "~"):
    end += 1

  return min(end + 1, len(data)) - start


def decode_keys(data: str) -> list[KeyEvent]:
  """Split raw terminal input into key events."""
  events: list[KeyEvent] = []
  i = 0
  while i < len(data):
    char = data[i]

    if char == "\x1b":
      length = _sequence_length(data, i)
      sequence = data[i : i + length]
      if length == 1:
        events.append(KeyEvent(Keys.ESCAPE))
      else:
        events.append(KeyEvent(ESCAPE_SEQUENCES.get(sequence, Keys.UNKNOWN)))
      i += length
      continue

    if char in CONTROL_KEYS:
      events.append(KeyEvent(CONTROL_KEYS[char]))

    elif char.isprintable():
      events.append(KeyEvent(char))

    else:
      events.append(KeyEvent(Keys.UNKNOWN))

    i += 1

  return events


class TerminalBackend:
  """
  Owns the terminal for the duration of the wizard.

  Use as a context manager; the previous terminal state is restored on exit
  even when the wizard raises.
  """

  def __init__(self, console: Console | None = None):
    self.console: Console = console or Console()
    self.fd: int = sys.stdin.fileno() if sys.stdin else -1
    self.saved_attrs: list[object] | None = None
    self.wake_r: int | None = None
    self.wake_w: int | None = None
    self.sigwinch_handler: Callable[[int, FrameType | None], object] | int | None = None
    self.pending: deque[KeyEvent] = deque()

  def __enter__(self) -> TerminalBackend:
    self.acquire()
    return self

  def __exit__(
    self,
    exc_type: type[BaseException] | None,
    exc: BaseException | None,
    tb: TracebackType | None,
  ) -> None:
    self.release()

  @property
  def size(self) -> tuple[int, int]:
    width, height = self.console.size
    return width, height

  def acquire(self) -> None:
    if self.fd < 0 or not os.isatty(self.fd):
      raise TerminalError("standard input is not a terminal")

    try:
      self.saved_attrs = termios.tcgetattr(self.fd)
      tty.setcbreak(self.fd)
      # Ctrl+C arrives as a key so the wizard can quit cleanly
      attrs = termios.tcgetattr(self.fd)
      attrs[tty.LFLAG] &= ~termios.ISIG
      termios.tcsetattr(self.fd, termios.TCSANOW, attrs)
    except termios.error as e:
      raise TerminalError(f"cannot configure terminal: {e}") from e

    self.wake_r, self.wake_w = os.pipe()
    os.set_blocking(self.wake_w, False)
    self.sigwinch_handler = signal.signal(signal.SIGWINCH, self._handle_resize)

    self.console.set_alt_screen(True)
    self.console.show_cursor(False)
    logger.debug("Terminal acquired (%sx%s)", *self.size)

  def release(self) -> None:
    if self.saved_attrs is None:
      return

    try:
      termios.tcsetattr(self.fd, termios.TCSADRAIN, self.saved_attrs)
    except termios.error as e:
      raise TerminalError(f"cannot restore terminal: {e}") from e

    finally:
      self.saved_attrs = None
      self.console.show_cursor(True)
      self.console.set_alt_screen(False)

      if self.sigwinch_handler is not None:
        signal.signal(signal.SIGWINCH, self.sigwinch_handler)
        self.sigwinch_handler = None

      for pipe_fd in (self.wake_r, self.wake_w):
        if pipe_fd is not None:
          os.close(pipe_fd)
      self.wake_r = self.wake_w = None

    logger.debug("Terminal restored")

  def _handle_resize(self, _signum: int, _frame: FrameType | None) -> None:
    if self.wake_w is not None:
      try:
        os.write(self.wake_w, b"r")
      except BlockingIOError:
        pass

  def draw(self, renderable: RenderableType) -> None:
    self.console.update_screen(renderable)

  def read_event(self) -> Event:
    """Block until the next key press or terminal resize."""
    if self.pending:
      return self.pending.popleft()

    while True:
      watched = [self.fd] + ([self.wake_r] if self.wake_r is not None else [])
      try:
        readable, _, _ = select.select(watched, [], [])
      except InterruptedError:
        continue

      if self.wake_r is not None and self.wake_r in readable:
        os.read(self.wake_r, 1024)
        width, height = self.size
        return ResizeEvent(width, height)

      if self.fd in readable:
        try:
          data = os.read(self.fd, 1024)
        except OSError as e:
          raise TerminalError(f"cannot read from terminal: {e}") from e

        if not data:
          raise TerminalError("terminal input closed")

        self.pending.extend(decode_keys(data.decode("utf-8", errors="replace")))
        if self.pending:
          return self.pending.popleft()
