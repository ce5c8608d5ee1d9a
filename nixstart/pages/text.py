"""Pages built around text inputs."""

from __future__ import annotations

import logging
from collections.abc import Callable

from rich.layout import Layout
from rich.text import Text

from nixstart.engine import Continue, Pop, Signal
from nixstart.errors import CommandError
from nixstart.pages.common import footer_text, split_footer
from nixstart.state import SelectionState
from nixstart.terminal import KeyEvent, Keys
from nixstart.types import Outcome
from nixstart.validations import (
  validate_flake_path,
  validate_hostname,
  validate_package_name,
  validate_passphrase,
  validate_password,
)
from nixstart.widgets import FocusRing, InfoBox, SelectList, TextInput

logger = logging.getLogger(__name__)

EDIT_HINTS = [("Enter", "save"), ("Esc", "cancel")]


def _input_with_help(area: Layout, field: TextInput, help_text: str) -> None:
  area.split_column(Layout(size=4), Layout(ratio=1))
  input_area, help_area = area.children
  field.render(input_area)
  InfoBox("Help", Text(help_text)).render(help_area)


class HostnamePage:
  title = "Hostname"

  def __init__(self, current: str):
    self.input = TextInput("Hostname", current, placeholder="nixos")
    self.input.focused = True

  def render(self, state: SelectionState, area: Layout) -> None:
    main, footer = split_footer(area)
    _input_with_help(main, self.input, "Letters, digits and hyphens; dot-separated labels of at most 63 characters.")
    footer.update(footer_text(EDIT_HINTS))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    if event.key == Keys.ESCAPE:
      return Pop()

    if self.input.handle_input(event) is not Outcome.COMMIT:
      return Continue()

    hostname = self.input.value.strip()
    if not validate_hostname(hostname):
      self.input.error = f"Invalid hostname: {hostname or '(empty)'}"
      return Continue()

    state.hostname = hostname
    logger.debug("Hostname set to %s", hostname)
    return Pop()


class FlakePage:
  """Optional path to an existing flake. Saving an empty value clears it."""

  title = "Flake"

  def __init__(self, current: str | None):
    self.input = TextInput("Flake path", current or "", placeholder="/path/to/flake#hostname")
    self.input.focused = True

  def render(self, state: SelectionState, area: Layout) -> None:
    main, footer = split_footer(area)
    _input_with_help(
      main,
      self.input,
      "Directory containing flake.nix, optionally followed by #<host>.\n"
      "When set, nixos-install uses the flake and no configuration.nix is generated.\n"
      "Leave empty to generate the system configuration.",
    )
    footer.update(footer_text(EDIT_HINTS))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    if event.key == Keys.ESCAPE:
      return Pop()

    if self.input.handle_input(event) is not Outcome.COMMIT:
      return Continue()

    path = self.input.value.strip()
    if not path:
      state.flake_path = None
      return Pop()

    if not validate_flake_path(path):
      self.input.error = f"No flake.nix found at {path}"
      return Continue()

    state.flake_path = path
    logger.debug("Flake path set to %s", path)
    return Pop()


class RootPasswordPage:
  """Password and confirmation. Only the hash is stored."""

  title = "Root Password"

  def __init__(self, hash_password: Callable[[str], str]):
    self.hash_password = hash_password
    self.password = TextInput("Root password", masked=True)
    self.confirm = TextInput("Confirm password", masked=True)
    self.ring = FocusRing([self.password, self.confirm])

  def render(self, state: SelectionState, area: Layout) -> None:
    main, footer = split_footer(area)
    main.split_column(Layout(size=4), Layout(size=4), Layout(ratio=1))
    password_area, confirm_area, _ = main.children
    self.password.render(password_area)
    self.confirm.render(confirm_area)
    footer.update(footer_text([("Tab", "next field"), *EDIT_HINTS]))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    match event.key:
      case Keys.ESCAPE:
        return Pop()

      case Keys.TAB | Keys.DOWN:
        self.ring.move(1)
        return Continue()

      case Keys.BACKTAB | Keys.UP:
        self.ring.move(-1)
        return Continue()

    if self.ring.current.handle_input(event) is not Outcome.COMMIT:
      return Continue()

    if self.ring.current is self.password:
      self.ring.focus(self.confirm)
      return Continue()

    return self._save(state)

  def _save(self, state: SelectionState) -> Signal:
    if not validate_password(self.password.value):
      self.password.error = "Password is too short"
      self.ring.focus(self.password)
      return Continue()

    if self.password.value != self.confirm.value:
      self.confirm.error = "Passwords do not match"
      self.confirm.clear()
      return Continue()

    try:
      state.root_passwd_hash = self.hash_password(self.password.value)
    except CommandError as e:
      self.confirm.error = f"Could not hash password: {e}"
      return Continue()

    logger.debug("Root password hash set")
    return Pop()


class EncryptionPage:
  """
  Passphrase for the partitions marked for encryption.

  disko formats the LUKS devices from a key file, so the passphrase is kept
  as typed. It stays in memory only: SelectionState.to_dict drops it and the
  installer removes the key file once disko is done.
  """

  title = "Encryption"

  def __init__(self):
    self.password = TextInput("Encryption passphrase", masked=True)
    self.confirm = TextInput("Confirm passphrase", masked=True)
    self.ring = FocusRing([self.password, self.confirm])

  def render(self, state: SelectionState, area: Layout) -> None:
    main, footer = split_footer(area)
    main.split_column(Layout(size=4), Layout(size=4), Layout(ratio=1))
    password_area, confirm_area, help_area = main.children
    self.password.render(password_area)
    self.confirm.render(confirm_area)

    encrypted = [part.mount_point or part.filesystem for disk in state.drives for part in disk.partitions if part.encrypt]
    if encrypted:
      help_text = "Unlocks " + ", ".join(encrypted) + " at boot."
    else:
      help_text = "No partition is marked for encryption yet. Mark them in Drives."
    InfoBox("Help", Text(help_text)).render(help_area)
    footer.update(footer_text([("Tab", "next field"), *EDIT_HINTS]))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    match event.key:
      case Keys.ESCAPE:
        return Pop()

      case Keys.TAB | Keys.DOWN:
        self.ring.move(1)
        return Continue()

      case Keys.BACKTAB | Keys.UP:
        self.ring.move(-1)
        return Continue()

    if self.ring.current.handle_input(event) is not Outcome.COMMIT:
      return Continue()

    if self.ring.current is self.password:
      self.ring.focus(self.confirm)
      return Continue()

    if not validate_passphrase(self.password.value):
      self.password.error = "Passphrase needs at least 8 characters"
      self.ring.focus(self.password)
      return Continue()

    if self.password.value != self.confirm.value:
      self.confirm.error = "Passphrases do not match"
      self.confirm.clear()
      return Continue()

    state.luks_passphrase = self.password.value
    logger.debug("Encryption passphrase set")
    return Pop()


class PackagesPage:
  """Add packages by attribute name, remove them from the list."""

  title = "Packages"

  def __init__(self) -> None:
    self.input = TextInput("Add package", placeholder="e.g. firefox or python3Packages.rich")
    self.list = SelectList("System packages", [], wrap=False)
    self.ring = FocusRing([self.input, self.list])

  def render(self, state: SelectionState, area: Layout) -> None:
    self.list.set_items(state.system_pkgs)
    main, footer = split_footer(area)
    main.split_column(Layout(size=4), Layout(ratio=1))
    input_area, list_area = main.children
    self.input.render(input_area)
    self.list.render(list_area)

    hints = [("Tab", "switch"), ("Enter", "add"), ("Esc", "back")]
    if self.list.focused:
      hints = [("Tab", "switch"), ("d/Del", "remove"), ("Esc", "back")]
    footer.update(footer_text(hints))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    self.list.set_items(state.system_pkgs)

    match event.key:
      case Keys.ESCAPE:
        return Pop()

      case Keys.TAB | Keys.BACKTAB:
        self.ring.move(1)
        return Continue()

    if self.list.focused:
      if event.key in ("d", Keys.DELETE) and self.list.value:
        state.remove_package(self.list.value)
        self.list.set_items(state.system_pkgs)
        return Continue()

      if self.list.handle_input(event) is Outcome.IGNORED and event.key == Keys.UP:
        self.ring.focus(self.input)
      return Continue()

    outcome = self.input.handle_input(event)
    if outcome is Outcome.IGNORED and event.key == Keys.DOWN:
      self.ring.focus(self.list)

    elif outcome is Outcome.COMMIT:
      names = self.input.value.split()
      invalid = [name for name in names if not validate_package_name(name)]
      if invalid:
        self.input.error = f"Invalid package name: {', '.join(invalid)}"
        return Continue()

      for name in names:
        state.add_package(name)
      self.input.clear()
      logger.debug("Packages: %s", state.system_pkgs)

    return Continue()
