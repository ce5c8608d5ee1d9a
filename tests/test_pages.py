import copy

from conftest import keys, screen, send, typed
from nixstart.engine import Complete, Continue, Navigator, Pop, Push, Quit
from nixstart import hardware
from nixstart.errors import CommandError
from nixstart.pages import (
  ChoicePage,
  ConfigPreview,
  DiskLayoutPage,
  DrivesPage,
  EncryptionPage,
  HostnamePage,
  KernelsPage,
  MainMenu,
  PackagesPage,
  PartitionEditPage,
  RootPasswordPage,
  TogglesPage,
  UserEditPage,
  UsersPage,
)
from nixstart.state import Partition, SelectionState, User, default_layout
from nixstart.synthesis import synthesize
from nixstart.terminal import Keys


def section_index(menu: MainMenu, label: str) -> int:
  return [section.label for section in menu.sections].index(label)


def open_section(navigator: Navigator, label: str) -> None:
  menu = navigator.stack[0]
  for event in keys(*[Keys.DOWN] * section_index(menu, label), Keys.ENTER):
    navigator.dispatch(event)


# --- Main menu ---


def test_done_is_refused_while_requirements_are_missing(services):
  state = SelectionState()
  navigator = Navigator(state, MainMenu(services))

  for event in keys(Keys.TAB, Keys.ENTER):
    navigator.dispatch(event)

  assert len(navigator.stack) == 1
  assert navigator.exit_reason is None
  text = screen(navigator)
  assert "Missing requirements" in text
  assert "Complete these before finishing" in text
  assert "Drive Configuration" in text


def test_done_opens_the_review_when_complete(services, complete_state):
  menu = MainMenu(services)

  signal = send(menu, complete_state, keys(Keys.TAB, Keys.ENTER))

  assert isinstance(signal, Push)
  assert isinstance(signal.page, ConfigPreview)


def test_done_shows_synthesis_errors_in_page(services, complete_state):
  complete_state.desktop_environment = "kde"
  navigator = Navigator(complete_state, MainMenu(services))

  for event in keys(Keys.TAB, Keys.ENTER):
    navigator.dispatch(event)

  assert len(navigator.stack) == 1
  assert navigator.exit_reason is None
  assert "desktop_environment" in navigator.stack[0].error
  assert "Cannot build the configuration" in screen(navigator)

  complete_state.desktop_environment = "gnome"
  navigator.dispatch(*keys(Keys.TAB))
  open_section(navigator, "Hostname")
  assert isinstance(navigator.top, HostnamePage)
  assert navigator.stack[0].error is None


def test_abort_and_escape_quit(services):
  state = SelectionState()

  assert isinstance(send(MainMenu(services), state, keys(Keys.TAB, Keys.RIGHT, Keys.ENTER)), Quit)
  assert isinstance(send(MainMenu(services), state, keys(Keys.ESCAPE)), Quit)


def test_help_modal_swallows_keys(services):
  state = SelectionState()
  menu = MainMenu(services)

  assert isinstance(send(menu, state, keys("?", Keys.ESCAPE)), Continue)
  assert not menu.help.visible
  assert isinstance(send(menu, state, keys(Keys.ESCAPE)), Quit)


def test_menu_renders_current_values(services, complete_state):
  navigator = Navigator(complete_state, MainMenu(services))

  text = screen(navigator)

  assert "Hostname" in text
  assert "nixbox" in text
  assert "All requirements met" in text


def test_every_section_opens_and_renders(services, complete_state):
  menu = MainMenu(services)
  for section in menu.sections:
    navigator = Navigator(complete_state, menu)
    navigator.apply(Push(section.open(complete_state)))

    assert section.label.split()[0] in screen(navigator)


def test_profile_section_applies_the_profile(services):
  state = SelectionState()
  navigator = Navigator(state, MainMenu(services))
  open_section(navigator, "Profile")

  for event in keys(Keys.DOWN, Keys.ENTER):
    navigator.dispatch(event)

  assert len(navigator.stack) == 1
  assert state.profile == "desktop"
  assert state.desktop_environment == "gnome"
  assert "firefox" in state.system_pkgs


# --- Single value pages ---


def test_choice_page_commits_and_pops():
  state = SelectionState()
  page = ChoicePage("Bootloader", ["systemd-boot", "grub"], "systemd-boot", lambda s, v: setattr(s, "bootloader", v))

  assert isinstance(send(page, state, keys(Keys.DOWN, Keys.ENTER)), Pop)
  assert state.bootloader == "grub"


def test_choice_page_shows_commit_errors():
  def refuse(_state, value):
    raise ValueError(f"cannot use {value}")

  page = ChoicePage("Profile", ["broken"], None, refuse)

  assert isinstance(send(page, SelectionState(), keys(Keys.ENTER)), Continue)
  assert page.error == "cannot use broken"


def test_choice_page_escape_keeps_state():
  state = SelectionState(timezone="UTC")
  page = ChoicePage("Timezone", ["UTC", "Europe/Berlin"], "UTC", lambda s, v: setattr(s, "timezone", v))

  assert isinstance(send(page, state, keys(Keys.DOWN, Keys.ESCAPE)), Pop)
  assert state.timezone == "UTC"


def test_hostname_validation():
  state = SelectionState(hostname="nixos")
  page = HostnamePage("nixos")

  signal = send(page, state, [*typed("_bad"), *keys(Keys.ENTER)])
  assert isinstance(signal, Continue)
  assert page.input.error is not None
  assert state.hostname == "nixos"

  page.input.clear()
  signal = send(page, state, [*typed("nixbox"), *keys(Keys.ENTER)])
  assert isinstance(signal, Pop)
  assert state.hostname == "nixbox"


def test_root_password_confirmation():
  state = SelectionState()
  page = RootPasswordPage(lambda password: f"hash:{password}")

  send(page, state, [*typed("secret"), *keys(Keys.ENTER), *typed("other"), *keys(Keys.ENTER)])
  assert page.confirm.error == "Passwords do not match"
  assert state.root_passwd_hash is None

  signal = send(page, state, [*typed("secret"), *keys(Keys.ENTER)])
  assert isinstance(signal, Pop)
  assert state.root_passwd_hash == "hash:secret"


def test_root_password_hash_failure_is_shown():
  def failing(_password):
    raise CommandError("mkpasswd", 127, "not found")

  page = RootPasswordPage(failing)
  state = SelectionState()

  signal = send(page, state, [*typed("secret"), *keys(Keys.ENTER), *typed("secret"), *keys(Keys.ENTER)])

  assert isinstance(signal, Continue)
  assert "mkpasswd" in page.confirm.error


def test_missing_hash_tool_is_shown_in_page(monkeypatch):
  monkeypatch.setenv("PATH", "/nonexistent")
  page = RootPasswordPage(hardware.hash_password)
  state = SelectionState()

  signal = send(page, state, [*typed("secret"), *keys(Keys.ENTER), *typed("secret"), *keys(Keys.ENTER)])

  assert isinstance(signal, Continue)
  assert state.root_passwd_hash is None
  assert "exit code 127" in page.confirm.error


def test_encryption_passphrase_is_checked_and_kept_in_memory():
  state = SelectionState(drives=[default_layout("/dev/sda")])
  state.drives[0].partitions[1].encrypt = True
  page = EncryptionPage()
  assert "Unlocks / at boot." in screen(Navigator(state, page))

  send(page, state, [*typed("short"), *keys(Keys.ENTER), *typed("short"), *keys(Keys.ENTER)])
  assert page.password.error == "Passphrase needs at least 8 characters"
  assert state.luks_passphrase is None

  page.password.clear()
  page.confirm.clear()
  send(page, state, [*typed("correct horse"), *keys(Keys.ENTER), *typed("correct hose"), *keys(Keys.ENTER)])
  assert page.confirm.error == "Passphrases do not match"
  assert state.luks_passphrase is None

  signal = send(page, state, [*typed("correct horse"), *keys(Keys.ENTER)])
  assert isinstance(signal, Pop)
  assert state.luks_passphrase == "correct horse"
  assert "luks_passphrase" not in state.to_dict()


def test_packages_page_adds_and_removes():
  state = SelectionState(system_pkgs=["git"])
  page = PackagesPage()

  send(page, state, [*typed("vim git python3Packages.rich"), *keys(Keys.ENTER)])
  assert state.system_pkgs == ["git", "vim", "python3Packages.rich"]

  send(page, state, [*typed("bad name!"), *keys(Keys.ENTER)])
  assert "bad" not in state.system_pkgs
  assert page.input.error == "Invalid package name: name!"

  page.input.clear()
  send(page, state, keys(Keys.TAB, Keys.DOWN, "d"))
  assert state.system_pkgs == ["git", "python3Packages.rich"]


def test_toggles_page():
  state = SelectionState()
  page = TogglesPage(state)

  send(page, state, keys(Keys.SPACE, Keys.DOWN, Keys.DOWN, Keys.SPACE))

  assert state.flakes_enabled
  assert not state.swap_enabled
  assert state.root_only_ack
  assert not state.flatpak_enabled
  assert state.ipv6_enabled

  send(page, state, keys(Keys.DOWN, Keys.SPACE, Keys.DOWN, Keys.SPACE))

  assert state.flatpak_enabled
  assert not state.ipv6_enabled


def test_kernels_page():
  state = SelectionState()
  page = KernelsPage(["linuxPackages", "linuxPackages_latest"], [])

  signal = send(page, state, keys(Keys.DOWN, Keys.SPACE, Keys.ENTER))

  assert isinstance(signal, Pop)
  assert state.kernels == ["linuxPackages_latest"]


# --- Users ---


def test_add_user_through_the_edit_page(options):
  state = SelectionState()
  users = UsersPage(options["shells"], lambda password: f"hash:{password}")

  signal = send(users, state, keys(Keys.ENTER))
  assert isinstance(signal, Push)
  edit = signal.page

  events = [
    *typed("alice"),
    *keys(Keys.TAB),
    *typed("hunter22"),
    *keys(Keys.TAB),
    *typed("video, audio"),
    *keys(Keys.TAB, Keys.DOWN, Keys.TAB, Keys.SPACE, Keys.TAB, Keys.ENTER),
  ]
  assert isinstance(send(edit, state, events), Pop)

  assert state.users == [User("alice", "hash:hunter22", ["video", "audio"], "zsh", True)]


def test_editing_keeps_the_hash_and_position(options):
  state = SelectionState(users=[User("alice", "old-hash"), User("bob", "bob-hash")])
  edit = UserEditPage(options["shells"], lambda password: "new-hash", state.users[0])

  edit.username.clear()
  events = [*typed("carol"), *keys(Keys.TAB, Keys.TAB, Keys.TAB, Keys.TAB, Keys.TAB, Keys.ENTER)]
  assert isinstance(send(edit, state, events), Pop)

  assert [u.username for u in state.users] == ["carol", "bob"]
  assert state.users[0].password_hash == "old-hash"


def test_user_validation(options):
  state = SelectionState(users=[User("bob", "h")])
  edit = UserEditPage(options["shells"], lambda password: "h")

  send(edit, state, [*typed("root"), *keys(Keys.BACKTAB, Keys.ENTER)])
  assert edit.error == "Invalid username: root"
  assert edit.ring.current is edit.username

  edit.username.clear()
  send(edit, state, [*typed("bob"), *keys(Keys.BACKTAB, Keys.ENTER)])
  assert edit.error == "User bob already exists"

  edit.username.clear()
  send(edit, state, [*typed("carol"), *keys(Keys.BACKTAB, Keys.ENTER)])
  assert edit.error == "Password is too short"
  assert len(state.users) == 1


def test_missing_hash_tool_keeps_user_unsaved(monkeypatch, options):
  monkeypatch.setenv("PATH", "/nonexistent")
  state = SelectionState()
  edit = UserEditPage(options["shells"], hardware.hash_password)

  events = [*typed("alice"), *keys(Keys.TAB), *typed("hunter22"), *keys(Keys.TAB, Keys.TAB, Keys.TAB, Keys.TAB, Keys.ENTER)]
  assert isinstance(send(edit, state, events), Continue)

  assert state.users == []
  assert "mkpasswd" in edit.error
  assert edit.ring.current is edit.password


def test_remove_user(options):
  state = SelectionState(users=[User("alice", "h")])

  send(UsersPage(options["shells"], str), state, keys("d"))

  assert state.users == []


# --- Drives ---


def test_drive_flow_saves_the_default_layout(services):
  state = SelectionState()
  navigator = Navigator(state, MainMenu(services))
  open_section(navigator, "Drives")
  assert isinstance(navigator.top, DrivesPage)

  navigator.dispatch(keys(Keys.ENTER)[0])
  assert isinstance(navigator.top, DiskLayoutPage)
  assert "sda" in screen(navigator)

  for event in keys(Keys.TAB, Keys.ENTER):
    navigator.dispatch(event)

  assert isinstance(navigator.top, DrivesPage)
  assert [d.device for d in state.drives] == ["/dev/sda"]
  assert [p.mount_point for p in state.drives[0].partitions] == ["/boot", "/"]


def test_layout_cancel_returns_to_menu_without_saving(services):
  state = SelectionState()
  navigator = Navigator(state, MainMenu(services))
  open_section(navigator, "Drives")

  for event in keys(Keys.DOWN, Keys.ENTER, Keys.TAB, Keys.RIGHT, Keys.ENTER):
    navigator.dispatch(event)

  assert len(navigator.stack) == 1
  assert state.drives == []


def test_layout_edits_stay_on_the_copy_until_saved(options):
  state = SelectionState(drives=[default_layout("/dev/sda")])
  page = DiskLayoutPage(copy.deepcopy(state.drives[0]), options["filesystems"])

  send(page, state, keys("d", "t"))

  assert len(state.drives[0].partitions) == 2
  assert len(page.disk.partitions) == 1


def test_layout_save_rejects_rest_of_disk_before_last(options):
  state = SelectionState()
  disk = default_layout("/dev/sda")
  disk.partitions.append(Partition("/home", "ext4", "20G"))
  page = DiskLayoutPage(disk, options["filesystems"])

  signal = send(page, state, keys(Keys.TAB, Keys.ENTER))

  assert isinstance(signal, Continue)
  assert page.error == "Only the last partition may use the rest of the disk (100%)"
  assert state.drives == []


def test_partition_edit_appends(options):
  disk = default_layout("/dev/sda")
  page = PartitionEditPage(disk, None, options["filesystems"])

  events = [
    *typed("/home"),
    *keys(Keys.TAB, Keys.DOWN, Keys.TAB, Keys.BACKSPACE, Keys.BACKSPACE, Keys.BACKSPACE, Keys.BACKSPACE),
    *typed("20G"),
    *keys(Keys.TAB, Keys.TAB, Keys.ENTER),
  ]
  assert isinstance(send(page, SelectionState(), events), Pop)

  assert disk.partitions[-1] == Partition("/home", "btrfs", "20G")


def test_partition_edit_rejects_bad_size(options):
  disk = default_layout("/dev/sda")
  page = PartitionEditPage(disk, 1, options["filesystems"])
  page.size.clear()

  signal = send(page, SelectionState(), [*keys(Keys.TAB, Keys.TAB), *typed("big"), *keys(Keys.TAB, Keys.TAB, Keys.ENTER)])

  assert isinstance(signal, Continue)
  assert page.error == "Invalid size: big"
  assert page.ring.current is page.size
  assert disk.partitions[1].size == "100%"


def test_partition_edit_sets_encryption(options):
  disk = default_layout("/dev/sda")
  disk.partitions[1].label = "system"
  page = PartitionEditPage(disk, 1, options["filesystems"])
  assert "[ ] Encrypt (LUKS)" in screen(Navigator(SelectionState(), page))

  signal = send(page, SelectionState(), keys(Keys.TAB, Keys.TAB, Keys.TAB, Keys.SPACE, Keys.ENTER))

  assert isinstance(signal, Pop)
  assert disk.partitions[1] == Partition("/", "ext4", "100%", label="system", encrypt=True)


def test_partition_edit_refuses_to_encrypt_boot(options):
  disk = default_layout("/dev/sda")
  page = PartitionEditPage(disk, 0, options["filesystems"])

  signal = send(page, SelectionState(), keys(Keys.TAB, Keys.TAB, Keys.TAB, Keys.ENTER, Keys.ENTER))

  assert isinstance(signal, Continue)
  assert page.error == "/boot is read by the bootloader and cannot be encrypted"
  assert page.ring.current is page.encrypt
  assert not disk.partitions[0].encrypt


# --- Review ---


def test_review_install_completes(complete_state):
  page = ConfigPreview(synthesize(complete_state))

  assert isinstance(send(page, complete_state, keys(Keys.ENTER)), Complete)


def test_review_back_and_tabs(complete_state):
  page = ConfigPreview(synthesize(complete_state))

  send(page, complete_state, keys(Keys.TAB, Keys.DOWN, Keys.DOWN))
  assert page.current == 1
  assert page.scroll == [0, 2]

  assert isinstance(send(page, complete_state, keys(Keys.RIGHT, Keys.ENTER)), Pop)
  assert isinstance(send(page, complete_state, keys(Keys.ESCAPE)), Pop)


def test_review_renders_documents(services, complete_state):
  navigator = Navigator(complete_state, MainMenu(services))
  navigator.apply(Push(ConfigPreview(synthesize(complete_state))))

  text = screen(navigator, width=120, height=40)

  assert "configuration.nix" in text
  assert "disko-config.nix" in text
  assert "Generated by nixstart" in text


def test_review_for_flake_explains_missing_document(complete_state, tmp_path):
  (tmp_path / "flake.nix").write_text("{ }")
  complete_state.flake_path = str(tmp_path)

  page = ConfigPreview(synthesize(complete_state))

  assert str(tmp_path) in page.documents[0][1]
