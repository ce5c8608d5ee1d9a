"""
Reusable input components.

Every widget implements the Widget protocol: render() draws into the
rich Layout region it is given and nothing else, handle_input() reports
whether the event was consumed, ignored (left for the page) or committed a
value. Widgets keep their own cursor and scroll state; they never touch the
SelectionState, the owning page copies committed values into it.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from rich.align import Align
from rich.console import Console, ConsoleOptions, Group, RenderableType, RenderResult
from rich.layout import Layout
from rich.panel import Panel
from rich.text import Text

from nixstart.terminal import KeyEvent, Keys
from nixstart.types import Outcome

FOCUSED_BORDER = "cyan"
UNFOCUSED_BORDER = "bright_black"
HIGHLIGHT = "reverse"


class Widget(Protocol):
  focused: bool

  def render(self, area: Layout) -> None: ...

  def handle_input(self, event: KeyEvent) -> Outcome: ...


def _border(focused: bool) -> str:
  return FOCUSED_BORDER if focused else UNFOCUSED_BORDER


class ScrollWindow:
  """
  Renders the slice of lines that fits the available height, keeping the cursor visible.

  The height is only known once rich lays the frame out, so the resulting
  offset is written back to owner.offset at render time.
  """

  def __init__(self, lines: list[Text], cursor: int, owner: SelectList | MultiSelect):
    self.lines = lines
    self.cursor = cursor
    self.owner = owner

  def window(self, height: int) -> tuple[int, int]:
    height = max(1, height)
    offset = self.owner.offset
    if self.cursor < offset:
      offset = self.cursor
    elif self.cursor >= offset + height:
      offset = self.cursor - height + 1
    offset = max(0, min(offset, max(0, len(self.lines) - height)))
    return offset, min(len(self.lines), offset + height)

  def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
    height = options.height or len(self.lines) or 1
    start, end = self.window(height)
    self.owner.offset = start
    yield from self.lines[start:end]


class TextInput:
  """Single line editor with a cursor. Enter commits."""

  def __init__(self, title: str, value: str = "", placeholder: str = "", masked: bool = False):
    self.title = title
    self.value = value
    self.cursor = len(value)
    self.placeholder = placeholder
    self.masked = masked
    self.error: str | None = None
    self.focused = False

  def clear(self) -> None:
    self.value = ""
    self.cursor = 0

  def handle_input(self, event: KeyEvent) -> Outcome:
    key = event.key
    if event.is_printable:
      self.value = self.value[: self.cursor] + key + self.value[self.cursor :]
      self.cursor += 1
      self.error = None
      return Outcome.CONSUMED

    match key:
      case Keys.BACKSPACE:
        if self.cursor > 0:
          self.value = self.value[: self.cursor - 1] + self.value[self.cursor :]
          self.cursor -= 1
        return Outcome.CONSUMED

      case Keys.DELETE:
        self.value = self.value[: self.cursor] + self.value[self.cursor + 1 :]
        return Outcome.CONSUMED

      case Keys.LEFT:
        self.cursor = max(0, self.cursor - 1)
        return Outcome.CONSUMED

      case Keys.RIGHT:
        self.cursor = min(len(self.value), self.cursor + 1)
        return Outcome.CONSUMED

      case Keys.HOME:
        self.cursor = 0
        return Outcome.CONSUMED

      case Keys.END:
        self.cursor = len(self.value)
        return Outcome.CONSUMED

      case Keys.ENTER:
        return Outcome.COMMIT

      case _:
        return Outcome.IGNORED

  def display_text(self) -> Text:
    if not self.value and not self.focused:
      return Text(self.placeholder, style="dim italic")

    shown = "•" * len(self.value) if self.masked else self.value
    text = Text(shown)
    if self.focused:
      # Cursor past the end is drawn as a highlighted blank
      text.append(" ")
      text.stylize(HIGHLIGHT, self.cursor, self.cursor + 1)
    return text

  def render(self, area: Layout) -> None:
    body: RenderableType = self.display_text()
    if self.error:
      body = Group(body, Text(self.error, style="bold red"))
    area.update(Panel(body, title=self.title, title_align="left", border_style=_border(self.focused)))


class SelectList:
  """Single-select list. Up/down move (wrapping or clamping), Enter commits."""

  def __init__(self, title: str, items: Iterable[str], selected: int = 0, wrap: bool = True):
    self.title = title
    self.items: list[str] = list(items)
    self.selected = max(0, min(selected, len(self.items) - 1)) if self.items else 0
    self.wrap = wrap
    self.offset = 0
    self.focused = False
    self.marked: str | None = None

  @property
  def value(self) -> str | None:
    return self.items[self.selected] if self.items else None

  def set_items(self, items: Iterable[str]) -> None:
    self.items = list(items)
    self.selected = min(self.selected, max(0, len(self.items) - 1))

  def select_value(self, value: str | None) -> None:
    if value in self.items:
      self.selected = self.items.index(value)

  def move(self, delta: int) -> bool:
    """Move the cursor by delta. Returns False when a clamped list is already at the edge."""
    if not self.items:
      return False

    target = self.selected + delta
    if self.wrap:
      self.selected = target % len(self.items)
      return True

    clamped = max(0, min(target, len(self.items) - 1))
    moved = clamped != self.selected
    self.selected = clamped
    return moved

  def handle_input(self, event: KeyEvent) -> Outcome:
    match event.key:
      case Keys.UP | "k":
        return Outcome.CONSUMED if self.move(-1) else Outcome.IGNORED

      case Keys.DOWN | "j":
        return Outcome.CONSUMED if self.move(1) else Outcome.IGNORED

      case Keys.HOME:
        self.selected = 0
        return Outcome.CONSUMED

      case Keys.END:
        self.selected = max(0, len(self.items) - 1)
        return Outcome.CONSUMED

      case Keys.PAGE_UP:
        self.selected = max(0, self.selected - 10)
        return Outcome.CONSUMED

      case Keys.PAGE_DOWN:
        self.selected = max(0, min(len(self.items) - 1, self.selected + 10))
        return Outcome.CONSUMED

      case Keys.ENTER:
        return Outcome.COMMIT if self.items else Outcome.CONSUMED

      case _:
        return Outcome.IGNORED

  def _lines(self) -> list[Text]:
    lines = []
    for i, item in enumerate(self.items):
      marker = "● " if item == self.marked else "  "
      line = Text(f"{marker}{item}")
      if i == self.selected:
        line.stylize(HIGHLIGHT if self.focused else "bold")
      lines.append(line)
    return lines

  def render(self, area: Layout) -> None:
    lines = self._lines() or [Text("(empty)", style="dim italic")]
    view = ScrollWindow(lines, self.selected, self)
    area.update(Panel(view, title=self.title, title_align="left", border_style=_border(self.focused)))


class MultiSelect:
  """Checklist. Space toggles the item under the cursor, Enter commits the whole set."""

  def __init__(self, title: str, items: Iterable[str], checked: Iterable[str] = ()):
    self.title = title
    self.items: list[str] = list(items)
    self.checked: set[str] = {item for item in checked if item in self.items}
    self.cursor = 0
    self.offset = 0
    self.focused = False

  @property
  def values(self) -> list[str]:
    """Checked items in display order."""
    return [item for item in self.items if item in self.checked]

  def toggle(self, item: str) -> None:
    if item in self.checked:
      self.checked.discard(item)
    else:
      self.checked.add(item)

  def handle_input(self, event: KeyEvent) -> Outcome:
    if not self.items:
      return Outcome.IGNORED

    match event.key:
      case Keys.UP | "k":
        self.cursor = (self.cursor - 1) % len(self.items)
        return Outcome.CONSUMED

      case Keys.DOWN | "j":
        self.cursor = (self.cursor + 1) % len(self.items)
        return Outcome.CONSUMED

      case Keys.SPACE:
        self.toggle(self.items[self.cursor])
        return Outcome.CONSUMED

      case Keys.ENTER:
        return Outcome.COMMIT

      case _:
        return Outcome.IGNORED

  def render(self, area: Layout) -> None:
    lines = []
    for i, item in enumerate(self.items):
      box = "[x]" if item in self.checked else "[ ]"
      line = Text(f"{box} {item}")
      if i == self.cursor and self.focused:
        line.stylize(HIGHLIGHT)
      lines.append(line)

    view = ScrollWindow(lines or [Text("(empty)", style="dim italic")], self.cursor, self)
    area.update(Panel(view, title=self.title, title_align="left", border_style=_border(self.focused)))


class CheckBox:
  def __init__(self, label: str, checked: bool = False):
    self.label = label
    self.checked = checked
    self.focused = False

  def handle_input(self, event: KeyEvent) -> Outcome:
    if event.key in (Keys.SPACE, Keys.ENTER):
      self.checked = not self.checked
      return Outcome.COMMIT
    return Outcome.IGNORED

  def render(self, area: Layout) -> None:
    box = "[x]" if self.checked else "[ ]"
    text = Text(f"{box} {self.label}", style=HIGHLIGHT if self.focused else "")
    area.update(text)


class ButtonRow:
  """Horizontal row of buttons. Left/right/tab move, Enter commits the selected button."""

  def __init__(self, labels: Iterable[str], selected: int = 0):
    self.labels: list[str] = list(labels)
    self.selected = selected
    self.focused = False

  @property
  def value(self) -> str:
    return self.labels[self.selected]

  def handle_input(self, event: KeyEvent) -> Outcome:
    match event.key:
      case Keys.LEFT | "h" | Keys.BACKTAB:
        self.selected = (self.selected - 1) % len(self.labels)
        return Outcome.CONSUMED

      case Keys.RIGHT | "l" | Keys.TAB:
        self.selected = (self.selected + 1) % len(self.labels)
        return Outcome.CONSUMED

      case Keys.ENTER:
        return Outcome.COMMIT

      case _:
        return Outcome.IGNORED

  def render(self, area: Layout) -> None:
    text = Text()
    for i, label in enumerate(self.labels):
      style = HIGHLIGHT if (self.focused and i == self.selected) else "bold" if i == self.selected else "dim"
      text.append(f" {label} ", style=style)
      text.append("  ")
    area.update(Align.center(text, vertical="middle"))


class Modal:
  """Overlay that captures every key while visible. Esc, Enter, q or ? dismiss it."""

  DISMISS_KEYS = (Keys.ESCAPE, Keys.ENTER, "q", "?")

  def __init__(self, title: str, lines: list[Text] | None = None):
    self.title = title
    self.lines: list[Text] = lines or []
    self.visible = False
    self.focused = False

  def show(self, lines: list[Text] | None = None) -> None:
    if lines is not None:
      self.lines = lines
    self.visible = True

  def hide(self) -> None:
    self.visible = False

  def toggle(self) -> None:
    self.visible = not self.visible

  def handle_input(self, event: KeyEvent) -> Outcome:
    if not self.visible:
      return Outcome.IGNORED

    if event.key in self.DISMISS_KEYS:
      self.hide()

    return Outcome.CONSUMED

  def render(self, area: Layout) -> None:
    if not self.visible:
      return

    panel = Panel(
      Group(*self.lines, Text(""), Text("Press Esc to close", style="dim")),
      title=self.title,
      border_style="yellow",
      expand=False,
      padding=(1, 2),
    )
    area.update(Align.center(panel, vertical="middle"))


class InfoBox:
  """Render-only panel."""

  def __init__(self, title: str, body: RenderableType, highlighted: bool = False):
    self.title = title
    self.body = body
    self.highlighted = highlighted
    self.focused = False

  def handle_input(self, _event: KeyEvent) -> Outcome:
    return Outcome.IGNORED

  def render(self, area: Layout) -> None:
    border = "red" if self.highlighted else UNFOCUSED_BORDER
    area.update(Panel(self.body, title=self.title, title_align="left", border_style=border))


def help_lines(entries: list[tuple[str, str]]) -> list[Text]:
  """Build key help lines such as "Enter - Select and configure option"."""
  lines = []
  for keys, description in entries:
    line = Text()
    line.append(keys, style="bold yellow")
    line.append(f" - {description}")
    lines.append(line)
  return lines


class FocusRing:
  """Tracks which of a page's widgets has focus."""

  def __init__(self, widgets: Iterable[Widget]):
    self.widgets: list[Widget] = list(widgets)
    self.index = 0
    self._sync()

  @property
  def current(self) -> Widget:
    return self.widgets[self.index]

  def move(self, delta: int) -> None:
    self.index = (self.index + delta) % len(self.widgets)
    self._sync()

  def focus(self, widget: Widget) -> None:
    self.index = self.widgets.index(widget)
    self._sync()

  def _sync(self) -> None:
    for i, widget in enumerate(self.widgets):
      widget.focused = i == self.index
