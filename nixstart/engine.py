"""
Navigation engine.

The Navigator owns the page stack and the SelectionState. Each iteration it
renders the top page, blocks for one event and hands key events to the top
page, which answers with a Signal. Only the Navigator changes the stack.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from rich.console import RenderableType
from rich.layout import Layout
from rich.text import Text

from nixstart.state import Configs, SelectionState
from nixstart.terminal import Event, KeyEvent, Keys, ResizeEvent

logger = logging.getLogger(__name__)


# =============================================================================
# Signals
# =============================================================================


@dataclass(frozen=True)
class Continue:
  """Stay on the current page."""


@dataclass(frozen=True)
class Push:
  page: Page


@dataclass(frozen=True)
class Pop:
  """Go back one page. Popping the last page ends the wizard as an abort."""


@dataclass(frozen=True)
class PopToRoot:
  """Drop every page above the first."""


@dataclass(frozen=True)
class Quit:
  """Leave the wizard immediately without producing documents."""


@dataclass(frozen=True)
class Complete:
  """
  Leave the wizard because the operator confirmed the configuration.

  configs carries the documents the operator reviewed, so the caller does
  not synthesize them again.
  """

  configs: Configs | None = None


Signal = Continue | Push | Pop | PopToRoot | Quit | Complete


class Page(Protocol):
  title: str

  def render(self, state: SelectionState, area: Layout) -> None: ...

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal: ...


class Backend(Protocol):
  def draw(self, renderable: RenderableType) -> None: ...

  def read_event(self) -> Event: ...


class RunState(Enum):
  RUNNING = "running"
  EXITING = "exiting"


class ExitReason(Enum):
  COMPLETED = "completed"
  ABORTED = "aborted"


# =============================================================================
# Navigator
# =============================================================================


class Navigator:
  def __init__(self, state: SelectionState, root: Page):
    self.state = state
    self.stack: list[Page] = [root]
    self.run_state = RunState.RUNNING
    self.exit_reason: ExitReason | None = None
    self.configs: Configs | None = None

  @property
  def top(self) -> Page | None:
    return self.stack[-1] if self.stack else None

  @property
  def completed(self) -> bool:
    """True only when the wizard ended through a Complete signal."""
    return self.exit_reason is ExitReason.COMPLETED

  def _exit(self, reason: ExitReason) -> None:
    self.run_state = RunState.EXITING
    self.exit_reason = reason
    logger.debug("Navigator exiting: %s", reason.value)

  def apply(self, signal: Signal) -> None:
    """Apply a page's signal to the stack."""
    if self.run_state is RunState.EXITING:
      return

    match signal:
      case Continue():
        pass

      case Push(page=page):
        self.stack.append(page)
        logger.debug("Push %s (depth %d)", page.title, len(self.stack))

      case Pop():
        popped = self.stack.pop()
        logger.debug("Pop %s (depth %d)", popped.title, len(self.stack))
        if not self.stack:
          self._exit(ExitReason.ABORTED)

      case PopToRoot():
        del self.stack[1:]
        logger.debug("Pop to root")

      case Quit():
        self._exit(ExitReason.ABORTED)

      case Complete(configs=configs):
        self.configs = configs
        self._exit(ExitReason.COMPLETED)

      case _:
        logger.debug("Ignoring unknown signal %r", signal)

  def dispatch(self, event: Event) -> None:
    """Route one event. Resizes only trigger the next render."""
    match event:
      case ResizeEvent(width=width, height=height):
        logger.debug("Resize to %sx%s", width, height)

      case KeyEvent(key=Keys.CTRL_C):
        self.apply(Quit())

      case KeyEvent() if self.top is not None:
        self.apply(self.top.handle_input(self.state, event))

      case _:
        pass

  def frame(self) -> Layout:
    """Build the full-screen layout for the current top page."""
    layout = Layout(name="root")
    layout.split_column(
      Layout(name="header", size=1),
      Layout(name="body", ratio=1),
    )

    crumbs = " › ".join(page.title for page in self.stack)
    header = Text(" nixstart ", style="bold black on cyan")
    header.append(f" {crumbs}", style="bold")
    layout["header"].update(header)

    if self.top is not None:
      self.top.render(self.state, layout["body"])

    return layout

  def run(self, backend: Backend) -> ExitReason:
    """
    Drive the render/read/dispatch loop until a page ends the wizard.

    TerminalError raised by the backend propagates to the caller.
    """
    while self.run_state is RunState.RUNNING:
      backend.draw(self.frame())
      self.dispatch(backend.read_event())

    assert self.exit_reason is not None
    return self.exit_reason
