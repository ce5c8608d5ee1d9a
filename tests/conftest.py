import logging

import pytest
from rich.console import Console

from nixstart.engine import Navigator
from nixstart.hardware import BlockDevice
from nixstart.pages import Services
from nixstart.state import Disk, Partition, SelectionState, User
from nixstart.terminal import KeyEvent, decode_keys
from nixstart.types import OptionsConfig


# --- Helpers ---


def keys(*names: str) -> list[KeyEvent]:
  """Key events for named keys ("enter", "down") or literal characters."""
  return [KeyEvent(name) for name in names]


def typed(text: str) -> list[KeyEvent]:
  return decode_keys(text)


def send(target, state: SelectionState, events: list[KeyEvent]):
  """Feed events to a page and return the last signal."""
  signal = None
  for event in events:
    signal = target.handle_input(state, event)
  return signal


def screen(navigator: Navigator, width: int = 100, height: int = 30) -> str:
  console = Console(record=True, width=width, height=height, color_system=None)
  console.print(navigator.frame())
  return console.export_text()


class FakeBackend:
  """Backend that replays a fixed list of events and records what was drawn."""

  def __init__(self, events):
    self.events = list(events)
    self.frames = []

  def draw(self, renderable) -> None:
    self.frames.append(renderable)

  def read_event(self):
    if not self.events:
      raise AssertionError("FakeBackend ran out of events")
    return self.events.pop(0)


# --- Fixtures ---


@pytest.fixture
def complete_state() -> SelectionState:
  """A state that meets every requirement."""
  return SelectionState(
    hostname="nixbox",
    drives=[Disk(device="/dev/sda", partitions=[Partition(mount_point="/", filesystem="ext4", size="100%")])],
    users=[User(username="alice", password_hash="$6$alice", sudo=True)],
    root_passwd_hash="$6$root",
    bootloader="systemd-boot",
  )


@pytest.fixture
def options() -> OptionsConfig:
  return OptionsConfig(
    timezones=["UTC", "Europe/Berlin"],
    locales=["en_US.UTF-8", "de_DE.UTF-8"],
    languages=["en_US.UTF-8", "de_DE.UTF-8"],
    keymaps=["us", "de"],
    desktops=["none", "gnome", "hyprland"],
    greeters=["none", "gdm", "greetd"],
    kernels=["linuxPackages", "linuxPackages_latest"],
    shells=["bash", "zsh", "fish"],
    filesystems=["ext4", "btrfs", "vfat", "swap"],
    network_backends=["networkmanager", "iwd", "none"],
    audio_backends=["pipewire", "none"],
  )


@pytest.fixture
def services(options) -> Services:
  return Services(
    options=options,
    disks=[
      BlockDevice(name="sda", path="/dev/sda", size=256 * 1024**3, model="Test SSD"),
      BlockDevice(name="sdb", path="/dev/sdb", size=1024**4),
    ],
    hash_password=lambda password: f"$6$hashed${password}",
  )


@pytest.fixture(autouse=True)
def reset_nixstart_logger():
  """Keep handlers added by setup_logging from leaking between tests."""
  yield
  logger = logging.getLogger("nixstart")
  for handler in logger.handlers[:]:
    logger.removeHandler(handler)
    handler.close()
