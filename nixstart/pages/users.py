"""User account pages."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable

from rich.console import Group
from rich.layout import Layout
from rich.text import Text

from nixstart.engine import Continue, Pop, Push, Signal
from nixstart.errors import CommandError
from nixstart.pages.common import footer_text, split_footer
from nixstart.state import SelectionState, User
from nixstart.terminal import KeyEvent, Keys
from nixstart.types import Outcome
from nixstart.validations import validate_password, validate_username
from nixstart.widgets import ButtonRow, CheckBox, FocusRing, InfoBox, SelectList, TextInput

logger = logging.getLogger(__name__)

ADD_USER = "+ Add user"


def parse_groups(text: str) -> list[str]:
  """Split a comma or space separated group list, dropping duplicates."""
  return list(dict.fromkeys(group for group in re.split(r"[,\s]+", text) if group))


class UsersPage:
  title = "User Accounts"

  def __init__(self, shells: Iterable[str], hash_password: Callable[[str], str]):
    self.shells = list(shells)
    self.hash_password = hash_password
    self.list = SelectList("Users", [ADD_USER], wrap=True)
    self.list.focused = True

  def _sync(self, state: SelectionState) -> None:
    self.list.set_items([*(user.username for user in state.users), ADD_USER])

  def render(self, state: SelectionState, area: Layout) -> None:
    self._sync(state)
    main, footer = split_footer(area)
    main.split_row(Layout(ratio=1), Layout(ratio=1))
    list_area, info_area = main.children
    self.list.render(list_area)

    user = state.find_user(self.list.value or "")
    if user:
      details = Group(
        Text(f"Groups: {', '.join(user.groups) or '-'}"),
        Text(f"Shell:  {user.shell}"),
        Text(f"Sudo:   {'yes' if user.sudo else 'no'}"),
      )
    else:
      details = Text("Add a user account. Users in the wheel group may use sudo.")
    InfoBox("Details", details).render(info_area)

    footer.update(footer_text([("Enter", "edit"), ("d/Del", "remove"), ("Esc", "back")]))

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    self._sync(state)

    if event.key == Keys.ESCAPE:
      return Pop()

    selected = self.list.value
    if event.key in ("d", Keys.DELETE) and selected and selected != ADD_USER:
      state.remove_user(selected)
      logger.debug("Removed user %s", selected)
      return Continue()

    if self.list.handle_input(event) is Outcome.COMMIT:
      user = state.find_user(selected or "")
      return Push(UserEditPage(self.shells, self.hash_password, user))

    return Continue()


class UserEditPage:
  """
  Create or edit one user. When editing, an empty password keeps the
  existing hash. Renaming replaces the old entry in place.
  """

  def __init__(self, shells: list[str], hash_password: Callable[[str], str], user: User | None = None):
    self.original = user
    self.title = f"Edit {user.username}" if user else "New User"
    self.hash_password = hash_password

    self.username = TextInput("Username", user.username if user else "")
    self.password = TextInput("Password", masked=True, placeholder="(unchanged)" if user else "")
    self.groups = TextInput("Extra groups", ", ".join(user.groups) if user else "", placeholder="networkmanager, video")
    self.shell = SelectList("Shell", shells, wrap=False)
    self.shell.select_value(user.shell if user else "bash")
    self.shell.marked = user.shell if user else None
    self.sudo = CheckBox("Administrator (wheel group, sudo)", user.sudo if user else False)
    self.buttons = ButtonRow(["Save", "Cancel"])
    self.ring = FocusRing([self.username, self.password, self.groups, self.shell, self.sudo, self.buttons])
    self.error: str | None = None

  def render(self, state: SelectionState, area: Layout) -> None:
    main, footer = split_footer(area)
    main.split_column(
      Layout(size=3),
      Layout(size=3),
      Layout(size=3),
      Layout(ratio=1, minimum_size=3),
      Layout(size=1),
      Layout(size=3),
    )
    regions = main.children
    for widget, region in zip(self.ring.widgets, regions):
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
        return self._save(state) if self.buttons.value == "Save" else Pop()
      if widget is not self.sudo:
        self.ring.move(1)

    return Continue()

  def _fail(self, message: str, widget: TextInput) -> Signal:
    self.error = message
    widget.error = message
    self.ring.focus(widget)
    return Continue()

  def _save(self, state: SelectionState) -> Signal:
    username = self.username.value.strip()
    original_name = self.original.username if self.original else None

    if not validate_username(username):
      return self._fail(f"Invalid username: {username or '(empty)'}", self.username)

    if username != original_name and state.find_user(username):
      return self._fail(f"User {username} already exists", self.username)

    password_hash = self.original.password_hash if self.original else ""
    if self.password.value or not self.original:
      if not validate_password(self.password.value):
        return self._fail("Password is too short", self.password)
      try:
        password_hash = self.hash_password(self.password.value)
      except CommandError as e:
        return self._fail(f"Could not hash password: {e}", self.password)

    user = User(
      username=username,
      password_hash=password_hash,
      groups=parse_groups(self.groups.value),
      shell=self.shell.value or "bash",
      sudo=self.sudo.checked,
    )

    if original_name and original_name != username:
      # Keep the renamed user at its original position
      index = next(i for i, u in enumerate(state.users) if u.username == original_name)
      state.users[index] = user
    else:
      state.upsert_user(user)

    logger.debug("Saved user %s", username)
    return Pop()
