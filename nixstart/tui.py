import shutil
import sys
from collections import deque

from rich import box
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

console = Console()

STEP_MARKERS = {
  "Write Documents": "* ",
  "Partition Disks": "# ",
  "Install System": "^ ",
  "Cleanup": "~ ",
}

# Output kept for the scrolling area; anything older is only in the log file
MAX_OUTPUT_LINES = 500

STYLES = {
  False: {"text": "bold cyan", "border": "blue", "subtitle": ""},
  True: {"text": "bold yellow", "border": "yellow", "subtitle": "dry run"},
}


class TUI:
  """Status panel and scrolling command output shown while the documents are applied."""

  def __init__(self, dry_mode: bool = False):
    self.enabled: bool = sys.stdout.isatty()
    self.style = STYLES[dry_mode]
    self.status_text = ""
    self.active = False
    self.live: Live | None = None
    self.layout: Layout | None = None
    self.output_lines: deque[str] = deque(maxlen=MAX_OUTPUT_LINES)

  def initialize(self) -> None:
    if self.enabled:
      self.active = True

  def _status_panel(self) -> Panel:
    return Panel(
      Text(self.status_text, style=self.style["text"]),
      border_style=self.style["border"],
      padding=(0, 1),
      expand=False,
      box=box.SQUARE,
      title="nixstart",
      title_align="left",
      subtitle=self.style["subtitle"] or None,
      subtitle_align="right",
    )

  def _start_live(self) -> None:
    self.layout = Layout()
    self.layout.split_column(Layout(name="status", size=3), Layout(name="output", ratio=1))
    self.layout["output"].update("")
    self.live = Live(self.layout, console=console, refresh_per_second=10, screen=False)
    self.live.start()

  def update_status(self, message: str, step_name: str = "") -> None:
    if not self.enabled:
      console.print(f"[{self.style['text']}]{message}[/]")
      return

    if not self.active:
      return

    self.status_text = STEP_MARKERS.get(step_name, "") + message
    if self.live is None:
      self._start_live()
    self.layout["status"].update(self._status_panel())

  def print(self, message: str) -> None:
    """Print to the output area while the live display runs, to the console otherwise."""
    if self.live is None or self.layout is None:
      console.print(message)
      return

    self.output_lines.append(message)
    # Three rows for the status panel, one spare
    visible = max(1, shutil.get_terminal_size().lines - 4)
    tail = list(self.output_lines)[-visible:]
    self.layout["output"].update(Text.from_markup("\n".join(tail)))

  def cleanup(self) -> None:
    if self.live:
      self.live.stop()
      self.live = None
    self.active = False
