"""
Type definitions for nixstart.

This module contains the custom type definitions shared by the state,
pages and synthesis modules.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TypedDict


class DefaultsConfig(TypedDict):
  """Default selections loaded from defaults.json."""

  hostname: str
  timezone: str
  locale: str
  language: str
  keymap: str
  bootloader: str
  network_backend: str
  audio_backend: str
  state_version: str


class OptionsConfig(TypedDict):
  """Option catalogues offered by the selection pages."""

  timezones: list[str]
  locales: list[str]
  languages: list[str]
  keymaps: list[str]
  desktops: list[str]
  greeters: list[str]
  kernels: list[str]
  shells: list[str]
  filesystems: list[str]
  network_backends: list[str]
  audio_backends: list[str]


class Bootloader(Enum):
  """Supported bootloaders."""

  SYSTEMD_BOOT = "systemd-boot"
  GRUB = "grub"


class PartitionScheme(Enum):
  """Partition table formats understood by disko."""

  GPT = "gpt"
  MBR = "msdos"


class NetworkBackend(Enum):
  """Network management backends."""

  NETWORKMANAGER = "networkmanager"
  IWD = "iwd"
  WPA_SUPPLICANT = "wpa_supplicant"
  NONE = "none"


class AudioBackend(Enum):
  """Sound server backends."""

  PIPEWIRE = "pipewire"
  PULSEAUDIO = "pulseaudio"
  NONE = "none"


class Outcome(Enum):
  """Result of a widget handling an input event."""

  CONSUMED = "consumed"
  IGNORED = "ignored"
  COMMIT = "commit"


@dataclass
class ContextConfig:
  """Typed configuration object with all command line arguments."""

  dry: bool
  output: str
  log_file: str
  verbose: bool = False
  no_apply: bool = False
  hostname: str | None = None
  timezone: str | None = None
  locale: str | None = None
  keymap: str | None = None
  profile: str | None = None
  state_file: str | None = None
  flake: str | None = None
