from __future__ import annotations

import logging

from rich.console import Console, ConsoleOptions, RenderResult
from rich.layout import Layout
from rich.panel import Panel
from rich.syntax import Syntax
from rich.text import Text

from nixstart.engine import Complete, Continue, Pop, Signal
from nixstart.pages.common import footer_text, split_footer
from nixstart.state import Configs, SelectionState
from nixstart.terminal import KeyEvent, Keys
from nixstart.types import Outcome
from nixstart.widgets import ButtonRow

logger = logging.getLogger(__name__)

PAGE_STEP = 10


class DocumentView:
  """Syntax-highlighted window over a document, starting at line scroll + 1."""

  def __init__(self, text: str, scroll: int):
    self.text = text
    self.scroll = scroll

  def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
    height = options.height or 20
    yield Syntax(
      self.text,
      "nix",
      theme="ansi_dark",
      line_numbers=True,
      line_range=(self.scroll + 1, self.scroll + height),
      word_wrap=False,
    )


class ConfigPreview:
  """
  Shows the generated documents before anything is written.

  Install ends the wizard with Complete, Back pops to the menu.
  """

  title = "Review"

  def __init__(self, configs: Configs):
    system = configs.system_config
    if system is None:
      system = f"# No configuration.nix is generated.\n# nixos-install will use the flake at {configs.flake_path}\n"

    self.configs = configs
    self.documents = [("configuration.nix", system), ("disko-config.nix", configs.disk_config)]
    self.current = 0
    self.scroll = [0, 0]
    self.buttons = ButtonRow(["Install", "Back"])
    self.buttons.focused = True

  def _scroll_by(self, delta: int) -> None:
    lines = self.documents[self.current][1].count("\n")
    self.scroll[self.current] = max(0, min(self.scroll[self.current] + delta, max(0, lines - 1)))

  def render(self, state: SelectionState, area: Layout) -> None:
    main, footer = split_footer(area)
    main.split_column(Layout(ratio=1), Layout(size=3))
    doc_area, buttons_area = main.children

    tabs = Text()
    for i, (name, _) in enumerate(self.documents):
      tabs.append(f" {name} ", style="bold reverse" if i == self.current else "dim")
    text = self.documents[self.current][1]
    doc_area.update(Panel(DocumentView(text, self.scroll[self.current]), title=tabs, title_align="left"))
    self.buttons.render(buttons_area)

    hints = [("Tab", "switch document"), ("↑↓ PgUp PgDn", "scroll"), ("Enter", "confirm"), ("Esc", "back")]
    footer.update(footer_text(hints))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    match event.key:
      case Keys.ESCAPE:
        return Pop()

      case Keys.TAB | Keys.BACKTAB:
        self.current = (self.current + 1) % len(self.documents)

      case Keys.UP | "k":
        self._scroll_by(-1)

      case Keys.DOWN | "j":
        self._scroll_by(1)

      case Keys.PAGE_UP:
        self._scroll_by(-PAGE_STEP)

      case Keys.PAGE_DOWN:
        self._scroll_by(PAGE_STEP)

      case Keys.HOME:
        self.scroll[self.current] = 0

      case _:
        if self.buttons.handle_input(event) is Outcome.COMMIT:
          if self.buttons.value == "Install":
            logger.debug("Configuration confirmed")
            return Complete(self.configs)
          return Pop()

    return Continue()
