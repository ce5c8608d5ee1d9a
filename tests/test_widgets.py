from rich.console import Console
from rich.layout import Layout

from nixstart.terminal import KeyEvent, Keys
from nixstart.types import Outcome
from nixstart.widgets import ButtonRow, CheckBox, FocusRing, Modal, MultiSelect, SelectList, TextInput


def press(widget, *names: str) -> list[Outcome]:
  return [widget.handle_input(KeyEvent(name)) for name in names]


def rendered(widget, width: int = 40, height: int = 6) -> str:
  area = Layout()
  widget.render(area)
  console = Console(record=True, width=width, height=height, color_system=None)
  console.print(area)
  return console.export_text()


# --- TextInput ---


def test_text_input_editing():
  field = TextInput("Hostname")

  assert press(field, "n", "i", "x") == [Outcome.CONSUMED] * 3
  press(field, Keys.LEFT, Keys.BACKSPACE, Keys.END, "!")

  assert field.value == "nx!"
  assert field.handle_input(KeyEvent(Keys.ENTER)) is Outcome.COMMIT
  assert field.handle_input(KeyEvent(Keys.UP)) is Outcome.IGNORED


def test_typing_clears_the_error():
  field = TextInput("Hostname")
  field.error = "Invalid hostname"

  press(field, "a")

  assert field.error is None


def test_masked_input_never_renders_the_value():
  field = TextInput("Password", "secret", masked=True)
  field.focused = True

  text = rendered(field)

  assert "secret" not in text
  assert "••••••" in text


# --- SelectList ---


def test_select_list_wraps():
  items = SelectList("Bootloader", ["systemd-boot", "grub"])

  press(items, Keys.UP)
  assert items.value == "grub"

  press(items, Keys.DOWN)
  assert items.value == "systemd-boot"


def test_clamped_list_reports_the_edge():
  items = SelectList("Shell", ["bash", "zsh"], wrap=False)

  assert press(items, Keys.UP) == [Outcome.IGNORED]
  assert press(items, "j", "j") == [Outcome.CONSUMED, Outcome.IGNORED]
  assert items.value == "zsh"


def test_select_list_paging_and_commit():
  items = SelectList("Timezone", [f"zone{i}" for i in range(25)])

  press(items, Keys.PAGE_DOWN, Keys.PAGE_DOWN, Keys.PAGE_DOWN)
  assert items.selected == 24

  press(items, Keys.HOME)
  assert items.selected == 0
  assert items.handle_input(KeyEvent(Keys.ENTER)) is Outcome.COMMIT


def test_empty_list_never_commits():
  items = SelectList("Devices", [])

  assert items.value is None
  assert items.handle_input(KeyEvent(Keys.ENTER)) is Outcome.CONSUMED


def test_scrolling_keeps_the_cursor_visible():
  items = SelectList("Timezone", [f"zone{i:02}" for i in range(30)])
  items.focused = True
  press(items, Keys.END)

  text = rendered(items, height=7)

  assert "zone29" in text
  assert "zone00" not in text
  assert items.offset > 0


# --- MultiSelect / CheckBox / ButtonRow ---


def test_multi_select_keeps_display_order():
  kernels = MultiSelect("Kernels", ["a", "b", "c"], checked=["c", "unknown"])

  press(kernels, Keys.SPACE)

  assert kernels.values == ["a", "c"]
  assert kernels.handle_input(KeyEvent(Keys.ENTER)) is Outcome.COMMIT


def test_checkbox_toggles():
  box = CheckBox("Enable flakes")

  assert press(box, Keys.SPACE) == [Outcome.COMMIT]
  assert box.checked
  assert press(box, "x") == [Outcome.IGNORED]


def test_button_row_moves_and_commits():
  buttons = ButtonRow(["Save", "Cancel"])

  press(buttons, Keys.RIGHT)
  assert buttons.value == "Cancel"

  press(buttons, "l")
  assert buttons.value == "Save"
  assert press(buttons, Keys.ENTER) == [Outcome.COMMIT]


# --- Modal / FocusRing ---


def test_modal_captures_keys_while_visible():
  modal = Modal("Help")
  assert modal.handle_input(KeyEvent("x")) is Outcome.IGNORED

  modal.show()
  assert modal.handle_input(KeyEvent("x")) is Outcome.CONSUMED
  assert modal.visible

  modal.handle_input(KeyEvent(Keys.ESCAPE))
  assert not modal.visible


def test_focus_ring():
  first, second = TextInput("a"), TextInput("b")
  ring = FocusRing([first, second])

  assert first.focused and not second.focused

  ring.move(1)
  assert ring.current is second
  assert second.focused and not first.focused

  ring.move(1)
  assert ring.current is first

  ring.focus(second)
  assert second.focused
