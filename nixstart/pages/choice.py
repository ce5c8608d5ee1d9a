"""Selection pages: pick one value, toggle flags, or pick a set of kernels."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from rich.layout import Layout
from rich.text import Text

from nixstart.engine import Continue, Pop, Signal
from nixstart.pages.common import footer_text, split_footer
from nixstart.state import SelectionState
from nixstart.terminal import KeyEvent, Keys
from nixstart.types import Outcome
from nixstart.widgets import CheckBox, FocusRing, InfoBox, MultiSelect, SelectList

logger = logging.getLogger(__name__)

Commit = Callable[[SelectionState, str], None]


class ChoicePage:
  """
  Single choice from a list. On Enter the value is handed to commit() and
  the page pops; a ValueError from commit() is shown and the page stays.
  """

  def __init__(
    self,
    title: str,
    items: Iterable[str],
    current: str | None,
    commit: Commit,
    descriptions: dict[str, str] | None = None,
  ):
    self.title = title
    self.list = SelectList(title, items, wrap=True)
    self.list.select_value(current)
    self.list.marked = current
    self.list.focused = True
    self.commit = commit
    self.descriptions = descriptions or {}
    self.error: str | None = None

  def render(self, state: SelectionState, area: Layout) -> None:
    main, footer = split_footer(area)

    if self.descriptions:
      main.split_row(Layout(ratio=1), Layout(ratio=1))
      list_area, info_area = main.children
      self.list.render(list_area)
      description = self.descriptions.get(self.list.value or "", "")
      InfoBox("About", Text(description)).render(info_area)
    else:
      self.list.render(main)

    footer.update(footer_text([("↑↓", "move"), ("Enter", "select"), ("Esc", "back")], self.error))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    if event.key == Keys.ESCAPE:
      return Pop()

    if self.list.handle_input(event) is not Outcome.COMMIT:
      return Continue()

    value = self.list.value
    assert value is not None
    try:
      self.commit(state, value)
    except ValueError as e:
      self.error = str(e)
      return Continue()

    logger.debug("%s set to %s", self.title, value)
    return Pop()


TOGGLES: list[tuple[str, str]] = [
  ("flakes_enabled", "Enable flakes and the nix command"),
  ("swap_enabled", "Enable swap (swap partition in the default layout, zram otherwise)"),
  ("root_only_ack", "Install without user accounts (root only)"),
  ("flatpak_enabled", "Enable Flatpak"),
  ("ipv6_enabled", "Enable IPv6"),
]


class TogglesPage:
  title = "Options"

  def __init__(self, state: SelectionState):
    self.boxes = {name: CheckBox(label, bool(getattr(state, name))) for name, label in TOGGLES}
    self.ring = FocusRing(self.boxes.values())

  def render(self, state: SelectionState, area: Layout) -> None:
    main, footer = split_footer(area)
    main.split_column(*[Layout(size=1) for _ in self.boxes], Layout(ratio=1))
    for box, region in zip(self.boxes.values(), main.children):
      box.render(region)
    footer.update(footer_text([("↑↓", "move"), ("Space", "toggle"), ("Esc", "back")]))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    match event.key:
      case Keys.ESCAPE:
        return Pop()

      case Keys.UP | "k":
        self.ring.move(-1)

      case Keys.DOWN | "j" | Keys.TAB:
        self.ring.move(1)

      case _:
        if self.ring.current.handle_input(event) is Outcome.COMMIT:
          for name, box in self.boxes.items():
            setattr(state, name, box.checked)

    return Continue()


class KernelsPage:
  title = "Kernels"

  def __init__(self, kernels: Iterable[str], selected: Iterable[str]):
    self.select = MultiSelect("Kernel package sets", kernels, checked=selected)
    self.select.focused = True

  def render(self, state: SelectionState, area: Layout) -> None:
    main, footer = split_footer(area)
    main.split_column(Layout(ratio=1), Layout(size=3))
    list_area, note_area = main.children
    self.select.render(list_area)
    InfoBox("Note", Text("The first checked set becomes boot.kernelPackages.")).render(note_area)
    footer.update(footer_text([("Space", "toggle"), ("Enter", "save"), ("Esc", "discard")]))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    if event.key == Keys.ESCAPE:
      return Pop()

    if self.select.handle_input(event) is Outcome.COMMIT:
      state.kernels = self.select.values
      logger.debug("Kernels set to %s", state.kernels)
      return Pop()

    return Continue()
