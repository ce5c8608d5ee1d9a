"""
Drive pages.

DrivesPage picks a device, DiskLayoutPage edits a working copy of its
layout and PartitionEditPage edits one partition of that copy. The copy is
written to the state only when the layout is saved.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable

from rich.console import Group
from rich.layout import Layout
from rich.text import Text

from nixstart.engine import Continue, Pop, PopToRoot, Push, Signal
from nixstart.hardware import BlockDevice
from nixstart.pages.common import footer_text, split_footer
from nixstart.state import BOOT_MOUNTS, Disk, Partition, SelectionState, default_layout
from nixstart.terminal import KeyEvent, Keys
from nixstart.types import Outcome, PartitionScheme
from nixstart.validations import validate_mount_point, validate_partition_size
from nixstart.widgets import ButtonRow, CheckBox, FocusRing, InfoBox, SelectList, TextInput

logger = logging.getLogger(__name__)

ADD_PARTITION = "+ Add partition"


def describe_partition(part: Partition) -> str:
  mount = part.mount_point or "-"
  lock = "  (encrypted)" if part.encrypt else ""
  return f"{part.size:>6}  {part.filesystem:<6} {mount}{lock}"


def describe_disk(disk: Disk) -> Group:
  lines = [Text(f"{disk.device} ({disk.scheme.value})", style="bold")]
  lines.extend(Text(f"  {describe_partition(part)}") for part in disk.partitions)
  return Group(*lines)


def check_layout(disk: Disk) -> str | None:
  """Return a message describing why the layout cannot be saved, or None."""
  if not disk.partitions:
    return "Add at least one partition"

  if any(part.size == "100%" for part in disk.partitions[:-1]):
    return "Only the last partition may use the rest of the disk (100%)"

  mounts = [part.mount_point for part in disk.partitions if part.mount_point]
  if len(mounts) != len(set(mounts)):
    return "Mount points must be unique"

  return None


class DrivesPage:
  title = "Drives"

  def __init__(self, disks: Iterable[BlockDevice], filesystems: Iterable[str]):
    self.disks = list(disks)
    self.filesystems = list(filesystems)
    self.list = SelectList("Devices", [disk.label for disk in self.disks], wrap=True)
    self.list.focused = True

  def render(self, state: SelectionState, area: Layout) -> None:
    main, footer = split_footer(area)
    main.split_row(Layout(ratio=1), Layout(ratio=1))
    list_area, info_area = main.children
    self.list.render(list_area)

    if state.drives:
      body = Group(*(describe_disk(disk) for disk in state.drives))
    elif not self.disks:
      body = Text("No disks were found. Check lsblk output and restart nixstart.", style="yellow")
    else:
      body = Text("No drives configured yet. Select a device to lay it out.")
    InfoBox("Configured drives", body).render(info_area)

    footer.update(footer_text([("Enter", "configure"), ("d/Del", "forget layout"), ("Esc", "back")]))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    if event.key == Keys.ESCAPE:
      return Pop()

    if not self.disks:
      return Continue()

    device = self.disks[self.list.selected]
    if event.key in ("d", Keys.DELETE):
      state.remove_disk(device.path)
      logger.debug("Removed layout for %s", device.path)
      return Continue()

    if self.list.handle_input(event) is Outcome.COMMIT:
      existing = state.find_disk(device.path)
      working = copy.deepcopy(existing) if existing else default_layout(device.path, swap=state.swap_enabled)
      return Push(DiskLayoutPage(working, self.filesystems))

    return Continue()


class DiskLayoutPage:
  """Partition list for one disk. Save writes it to the state, Cancel returns to the main menu."""

  def __init__(self, disk: Disk, filesystems: list[str]):
    self.disk = disk
    self.filesystems = filesystems
    self.title = disk.name
    self.list = SelectList("Partitions", [], wrap=False)
    self.buttons = ButtonRow(["Default Layout", "Save", "Cancel"], selected=1)
    self.ring = FocusRing([self.list, self.buttons])
    self.error: str | None = None

  def _sync(self) -> None:
    self.list.set_items([*(describe_partition(part) for part in self.disk.partitions), ADD_PARTITION])

  def render(self, state: SelectionState, area: Layout) -> None:
    self._sync()
    self.list.title = f"Partitions on {self.disk.device} ({self.disk.scheme.value})"
    main, footer = split_footer(area)
    main.split_column(Layout(ratio=1), Layout(size=3))
    list_area, buttons_area = main.children
    self.list.render(list_area)
    self.buttons.render(buttons_area)

    hints = [("Tab", "switch"), ("Enter", "edit"), ("d/Del", "remove"), ("t", "gpt/msdos"), ("Esc", "back")]
    footer.update(footer_text(hints, self.error))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    self._sync()
    self.error = None

    match event.key:
      case Keys.ESCAPE:
        return Pop()

      case Keys.TAB | Keys.BACKTAB:
        self.ring.move(1)
        return Continue()

      case "t":
        self.disk.scheme = PartitionScheme.MBR if self.disk.scheme is PartitionScheme.GPT else PartitionScheme.GPT
        return Continue()

    if self.ring.current is self.buttons:
      outcome = self.buttons.handle_input(event)
      if outcome is Outcome.COMMIT:
        return self._button(state)
      if outcome is Outcome.IGNORED and event.key == Keys.UP:
        self.ring.focus(self.list)
      return Continue()

    index = self.list.selected
    is_partition = index < len(self.disk.partitions)

    if event.key in ("d", Keys.DELETE) and is_partition:
      del self.disk.partitions[index]
      return Continue()

    outcome = self.list.handle_input(event)
    if outcome is Outcome.COMMIT:
      return Push(PartitionEditPage(self.disk, index if is_partition else None, self.filesystems))

    if outcome is Outcome.IGNORED and event.key == Keys.DOWN:
      self.ring.focus(self.buttons)

    return Continue()

  def _button(self, state: SelectionState) -> Signal:
    match self.buttons.value:
      case "Default Layout":
        self.disk.partitions = default_layout(self.disk.device, self.disk.scheme, state.swap_enabled).partitions
        return Continue()

      case "Save":
        problem = check_layout(self.disk)
        if problem:
          self.error = problem
          return Continue()

        state.upsert_disk(self.disk)
        logger.debug("Saved layout for %s: %s", self.disk.device, self.disk.partitions)
        return Pop()

      case _:
        return PopToRoot()


class PartitionEditPage:
  """Edit or append one partition of a working Disk."""

  def __init__(self, disk: Disk, index: int | None, filesystems: list[str]):
    self.disk = disk
    self.index = index
    part = disk.partitions[index] if index is not None else None
    self.title = f"Partition {index + 1}" if index is not None else "New Partition"
    self.label = part.label if part else None

    self.mount = TextInput("Mount point", (part.mount_point or "") if part else "", placeholder="/home")
    self.filesystem = SelectList("Filesystem", filesystems, wrap=False)
    self.filesystem.select_value(part.filesystem if part else "ext4")
    self.size = TextInput("Size", part.size if part else "100%", placeholder="512M, 20G or 100%")
    self.encrypt = CheckBox("Encrypt (LUKS)", part.encrypt if part else False)
    self.buttons = ButtonRow(["Save", "Cancel"])
    self.ring = FocusRing([self.mount, self.filesystem, self.size, self.encrypt, self.buttons])
    self.error: str | None = None

  def render(self, state: SelectionState, area: Layout) -> None:
    main, footer = split_footer(area)
    main.split_column(Layout(size=3), Layout(ratio=1, minimum_size=3), Layout(size=3), Layout(size=1), Layout(size=3))
    for widget, region in zip(self.ring.widgets, main.children):
      widget.render(region)
    footer.update(footer_text([("Tab", "next field"), ("Enter", "confirm"), ("Esc", "cancel")], self.error))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    match event.key:
      case Keys.ESCAPE:
        return Pop()

      case Keys.TAB:
        self.ring.move(1)
        return Continue()

      case Keys.BACKTAB:
        self.ring.move(-1)
        return Continue()

    widget = self.ring.current
    outcome = widget.handle_input(event)

    if outcome is Outcome.IGNORED and event.key in (Keys.UP, Keys.DOWN):
      self.ring.move(-1 if event.key == Keys.UP else 1)

    elif outcome is Outcome.COMMIT:
      if widget is self.buttons:
        return self._save() if self.buttons.value == "Save" else Pop()
      self.ring.move(1)

    return Continue()

  def _save(self) -> Signal:
    filesystem = self.filesystem.value or "ext4"
    size = self.size.value.strip()
    mount_point = self.mount.value.strip() or None

    if not validate_partition_size(size):
      self.error = self.size.error = f"Invalid size: {size or '(empty)'}"
      self.ring.focus(self.size)
      return Continue()

    if filesystem == "swap":
      mount_point = None
    elif mount_point is not None and not validate_mount_point(mount_point):
      self.error = self.mount.error = f"Invalid mount point: {mount_point}"
      self.ring.focus(self.mount)
      return Continue()

    if self.encrypt.checked and mount_point in BOOT_MOUNTS:
      self.error = f"{mount_point} is read by the bootloader and cannot be encrypted"
      self.ring.focus(self.encrypt)
      return Continue()

    part = Partition(mount_point, filesystem, size, label=self.label, encrypt=self.encrypt.checked)
    if self.index is None:
      self.disk.partitions.append(part)
    else:
      self.disk.partitions[self.index] = part

    return Pop()
