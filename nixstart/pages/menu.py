"""
The main menu, root of the page stack.

Every configuration section opens its own page. Done is only accepted once
every requirement holds; until then the requirements box lists what is
missing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from rich.console import Group
from rich.layout import Layout
from rich.text import Text

from nixstart.engine import Continue, Page, Push, Quit, Signal
from nixstart.errors import SynthesisError
from nixstart.pages.choice import ChoicePage, KernelsPage, TogglesPage
from nixstart.pages.common import Services, footer_text, split_footer
from nixstart.pages.drives import DrivesPage
from nixstart.pages.preview import ConfigPreview
from nixstart.pages.text import EncryptionPage, FlakePage, HostnamePage, PackagesPage, RootPasswordPage
from nixstart.pages.users import UsersPage
from nixstart.registry import PROFILES, list_profiles
from nixstart.state import REQUIREMENT_LABELS, SelectionState
from nixstart.synthesis import synthesize
from nixstart.terminal import KeyEvent, Keys
from nixstart.types import AudioBackend, Bootloader, NetworkBackend, Outcome
from nixstart.widgets import ButtonRow, FocusRing, InfoBox, Modal, SelectList, help_lines

logger = logging.getLogger(__name__)

NONE = "none"

HELP = [
  ("↑/↓, j/k", "Move between sections"),
  ("Enter", "Select and configure option"),
  ("Tab", "Switch between the menu and the buttons"),
  ("←/→", "Choose Done or Abort"),
  ("Esc, q", "Quit without installing"),
  ("?", "Show this help"),
]


@dataclass(frozen=True)
class Section:
  label: str
  describe: Callable[[SelectionState], str]
  open: Callable[[SelectionState], Page]
  help: str = ""


def _setter(field: str, optional: bool = False) -> Callable[[SelectionState, str], None]:
  """Commit function storing the chosen value in field; "none" clears optional fields."""

  def commit(state: SelectionState, value: str) -> None:
    setattr(state, field, None if optional and value == NONE else value)

  return commit


def _or_none(value: str | None) -> str:
  return value or NONE


def _describe_options(state: SelectionState) -> str:
  # fmt: off
  flags = [
    ("flakes", state.flakes_enabled), ("swap", state.swap_enabled), ("root only", state.root_only_ack),
    ("flatpak", state.flatpak_enabled), ("no ipv6", not state.ipv6_enabled),
  ]
  # fmt: on
  return ", ".join(name for name, on in flags if on) or NONE


def _describe_encryption(state: SelectionState) -> str:
  if not state.has_encryption:
    return NONE
  return "passphrase set" if state.luks_passphrase else "passphrase missing"


class MainMenu:
  title = "Main Menu"

  def __init__(self, services: Services):
    self.services = services
    self.sections = self._sections()
    self.menu = SelectList("Configuration", [section.label for section in self.sections], wrap=True)
    self.buttons = ButtonRow(["Done", "Abort"])
    self.help = Modal("Help", help_lines(HELP))
    self.ring = FocusRing([self.menu, self.buttons])
    self.message: str | None = None
    self.error: str | None = None

  def _profile_commit(self, state: SelectionState, value: str) -> None:
    if value == NONE:
      state.profile = None
      return
    self.services.load_profile(value).apply(state)

  def _sections(self) -> list[Section]:
    options = self.services.options

    def choice(title: str, items: list[str], field: str, optional: bool = False) -> Callable[[SelectionState], Page]:
      def open_page(state: SelectionState) -> Page:
        current = getattr(state, field)
        return ChoicePage(title, items, _or_none(current) if optional else current, _setter(field, optional))

      return open_page

    def profile_page(state: SelectionState) -> Page:
      descriptions = {name: str(PROFILES[name]["description"]) for name in list_profiles()}
      descriptions[NONE] = "Keep the current selections."
      return ChoicePage("Profile", [NONE, *list_profiles()], _or_none(state.profile), self._profile_commit, descriptions)

    # fmt: off
    return [
      Section("Hostname", lambda s: s.hostname, lambda s: HostnamePage(s.hostname),
              "Name of the machine on the network."),
      Section("Root Password", lambda s: "set" if s.root_passwd_hash else "not set",
              lambda s: RootPasswordPage(self.services.hash_password),
              "Password of the root account. Only its hash is kept."),
      Section("User Accounts", lambda s: ", ".join(u.username for u in s.users) or "none",
              lambda s: UsersPage(options["shells"], self.services.hash_password),
              "Regular accounts. Administrators join the wheel group."),
      Section("Drives", lambda s: ", ".join(d.device for d in s.drives) or "none",
              lambda s: DrivesPage(self.services.disks, options["filesystems"]),
              "Disks to partition with disko. ALL DATA on them will be erased."),
      Section("Encryption", _describe_encryption, lambda s: EncryptionPage(),
              "Passphrase that unlocks the partitions marked for encryption at boot."),
      Section("Bootloader", lambda s: _or_none(s.bootloader),
              choice("Bootloader", [b.value for b in Bootloader], "bootloader"),
              "systemd-boot for UEFI systems, GRUB for BIOS or mixed setups."),
      Section("Kernels", lambda s: ", ".join(s.kernels) or "default",
              lambda s: KernelsPage(options["kernels"], s.kernels),
              "Kernel package set used by the installed system."),
      Section("Desktop Environment", lambda s: _or_none(s.desktop_environment),
              choice("Desktop Environment", options["desktops"], "desktop_environment", optional=True),
              "Graphical environment, or none for a console-only system."),
      Section("Greeter", lambda s: _or_none(s.greeter),
              choice("Greeter", options["greeters"], "greeter", optional=True),
              "Display manager shown at boot."),
      Section("Profile", lambda s: _or_none(s.profile), profile_page,
              "Preset that overlays a desktop, services and packages."),
      Section("Network", lambda s: s.network_backend,
              choice("Network", options["network_backends"] or [n.value for n in NetworkBackend], "network_backend"),
              "Network management backend."),
      Section("Audio", lambda s: s.audio_backend,
              choice("Audio", options["audio_backends"] or [a.value for a in AudioBackend], "audio_backend"),
              "Sound server."),
      Section("Timezone", lambda s: s.timezone, choice("Timezone", options["timezones"], "timezone"),
              "System timezone."),
      Section("Locale", lambda s: s.locale, choice("Locale", options["locales"], "locale"),
              "Regional formats for dates, numbers and currency."),
      Section("Language", lambda s: s.language, choice("Language", options["languages"], "language"),
              "Default system language."),
      Section("Keyboard Layout", lambda s: s.keyboard_layout,
              choice("Keyboard Layout", options["keymaps"], "keyboard_layout"),
              "Layout for the console and the graphical session."),
      Section("Packages", lambda s: f"{len(s.system_pkgs)} selected", lambda s: PackagesPage(),
              "Extra packages for environment.systemPackages."),
      Section("Options", _describe_options, TogglesPage,
              "Flakes, swap and root-only installation."),
      Section("Flake", lambda s: s.flake_path or "none", lambda s: FlakePage(s.flake_path),
              "Use an existing flake instead of the generated configuration."),
    ]
    # fmt: on

  # ---------------------------------------------------------------------------
  # Rendering
  # ---------------------------------------------------------------------------

  def _requirements(self, state: SelectionState) -> InfoBox:
    if self.error:
      return InfoBox("Cannot build the configuration", Text(self.error, style="red"), highlighted=True)

    missing = state.missing_requirements()
    if not missing:
      return InfoBox("Requirements", Text("All requirements met. Select Done to review.", style="green"))

    lines = [Text(f"✗ {REQUIREMENT_LABELS[name]}", style="red") for name in missing]
    if self.message:
      lines.insert(0, Text(self.message, style="bold"))
    return InfoBox("Missing requirements", Group(*lines), highlighted=bool(self.message))

  def render(self, state: SelectionState, area: Layout) -> None:
    main, footer = split_footer(area)
    footer.update(footer_text([("Enter", "select"), ("Tab", "buttons"), ("?", "help"), ("q", "quit")]))

    if self.help.visible:
      self.help.render(main)
      return

    main.split_column(Layout(ratio=1), Layout(size=3))
    top, buttons_area = main.children
    top.split_row(Layout(ratio=2), Layout(ratio=3))
    menu_area, side = top.children
    side.split_column(Layout(ratio=1), Layout(ratio=1))
    info_area, requirements_area = side.children

    self.menu.render(menu_area)

    section = self.sections[self.menu.selected]
    info = Group(
      Text(section.describe(state), style="bold cyan"),
      Text(""),
      Text(section.help),
    )
    InfoBox(section.label, info).render(info_area)
    self._requirements(state).render(requirements_area)
    self.buttons.render(buttons_area)

  # ---------------------------------------------------------------------------
  # Input
  # ---------------------------------------------------------------------------

  def handle_input(self, state: SelectionState, event: KeyEvent) -> Signal:
    if self.help.visible:
      self.help.handle_input(event)
      return Continue()

    match event.key:
      case "?":
        self.help.show()
        return Continue()

      case Keys.ESCAPE | "q":
        return Quit()

      case Keys.TAB | Keys.BACKTAB:
        self.ring.move(1)
        return Continue()

    widget = self.ring.current
    if widget.handle_input(event) is not Outcome.COMMIT:
      return Continue()

    if widget is self.menu:
      section = self.sections[self.menu.selected]
      logger.debug("Opening %s", section.label)
      self.error = None
      return Push(section.open(state))

    if self.buttons.value == "Abort":
      return Quit()

    if not state.has_all_requirements():
      self.message = "Complete these before finishing:"
      logger.debug("Done refused, missing %s", state.missing_requirements())
      return Continue()

    self.message = None
    try:
      configs = synthesize(state)
    except SynthesisError as e:
      self.error = str(e)
      logger.debug("Done refused: %s", e)
      return Continue()

    self.error = None
    return Push(ConfigPreview(configs))
