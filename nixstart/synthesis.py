"""
Configuration synthesis.

synthesize() turns a finished SelectionState into the NixOS
configuration.nix and the disko layout. Both documents are built as nested
Python dicts and rendered by nixstart.nix, so the output only depends on
the state: the same state always yields byte-identical text.
"""

import logging
import re
from typing import Final

from nixstart.errors import RequirementsError, SynthesisError
from nixstart.nix import NixExpr, package_ref, render_module
from nixstart.state import LUKS_KEY_FILE, Configs, Disk, Partition, SelectionState, User
from nixstart.types import Bootloader, NetworkBackend, PartitionScheme

logger = logging.getLogger(__name__)

Tree = dict[object, object]

SYSTEM_HEADER: Final[str] = (
  "Generated by nixstart.\n"
  "Edit this configuration file to define what should be installed on your system.\n"
  "See configuration.nix(5) and https://search.nixos.org/options"
)
DISK_HEADER: Final[str] = "Disk layout generated by nixstart, applied with disko before nixos-install."

# LC_* categories set from the regional locale when it differs from the language
REGIONAL_CATEGORIES: Final[tuple[str, ...]] = (
  "LC_ADDRESS",
  "LC_IDENTIFICATION",
  "LC_MEASUREMENT",
  "LC_MONETARY",
  "LC_NAME",
  "LC_NUMERIC",
  "LC_PAPER",
  "LC_TELEPHONE",
  "LC_TIME",
)

# Console keymaps whose X11 layout has a different name
XKB_LAYOUTS: Final[dict[str, tuple[str, str | None]]] = {
  "uk": ("gb", None),
  "br-abnt2": ("br", None),
  "jp106": ("jp", None),
  "dvorak": ("us", "dvorak"),
}

# fmt: off
DESKTOPS: Final[dict[str, list[tuple[str, object]]]] = {
  "gnome":    [("services.xserver.enable", True), ("services.xserver.desktopManager.gnome.enable", True)],
  "plasma":   [("services.desktopManager.plasma6.enable", True)],
  "xfce":     [("services.xserver.enable", True), ("services.xserver.desktopManager.xfce.enable", True)],
  "cinnamon": [("services.xserver.enable", True), ("services.xserver.desktopManager.cinnamon.enable", True)],
  "mate":     [("services.xserver.enable", True), ("services.xserver.desktopManager.mate.enable", True)],
  "hyprland": [("programs.hyprland.enable", True)],
  "sway":     [("programs.sway.enable", True)],
}

GREETERS: Final[dict[str, list[tuple[str, object]]]] = {
  "gdm":     [("services.xserver.enable", True), ("services.xserver.displayManager.gdm.enable", True)],
  "sddm":    [("services.displayManager.sddm.enable", True)],
  "lightdm": [("services.xserver.enable", True), ("services.xserver.displayManager.lightdm.enable", True)],
  "greetd":  [("services.greetd.enable", True)],
}

AUDIO: Final[dict[str, list[tuple[str, object]]]] = {
  "pipewire": [
    ("security.rtkit.enable", True),
    ("services.pipewire.enable", True),
    ("services.pipewire.alsa.enable", True),
    ("services.pipewire.alsa.support32Bit", True),
    ("services.pipewire.pulse.enable", True),
  ],
  "pulseaudio": [("hardware.pulseaudio.enable", True)],
  "none": [],
}
# fmt: on

# Session commands started by tuigreet for compositors without a display manager
GREETD_SESSIONS: Final[dict[str, str]] = {"hyprland": "Hyprland", "sway": "sway"}

# Login shells that need programs.<shell>.enable to be registered in /etc/shells
PROGRAM_SHELLS: Final[tuple[str, ...]] = ("zsh", "fish")

# Desktops whose modules already enable an xdg portal for Flatpak
PORTAL_DESKTOPS: Final[tuple[str, ...]] = ("gnome", "plasma")

SIZE_UNITS: Final[dict[str, int]] = {"K": 1, "M": 1024, "G": 1024**2, "T": 1024**3}


# =============================================================================
# Tree helpers
# =============================================================================


def _path(key: str | tuple[str, ...]) -> tuple[str, ...]:
  """Option path from "a.b.c" notation, or a tuple when a segment may contain dots."""
  return tuple(key.split(".")) if isinstance(key, str) else key


def _segments(key: object) -> tuple[str, ...]:
  # Tree keys are single attribute names, never dotted paths
  return key if isinstance(key, tuple) else (str(key),)


def assign(tree: Tree, key: str | tuple[str, ...], value: object) -> None:
  """Set tree[a][b][c] = value for key "a.b.c", creating intermediate attribute sets."""
  path = _path(key)
  node = tree
  for i, segment in enumerate(path[:-1]):
    child = node.setdefault(segment, {})
    if not isinstance(child, dict):
      raise SynthesisError(".".join(path[: i + 1]), child, "attribute is both a value and an attribute set")
    node = child

  leaf = path[-1]
  if leaf in node and node[leaf] != value:
    raise SynthesisError(".".join(path), value, f"conflicts with existing value {node[leaf]!r}")
  node[leaf] = value


def collapse(tree: Tree) -> Tree:
  """
  Fold single-attribute sets into dotted paths.

  {"a": {"b": {"c": 1}}} becomes {("a", "b", "c"): 1}, which renders as
  a.b.c = 1; instead of three nested blocks.
  """
  result: Tree = {}
  for key, value in tree.items():
    path = _segments(key)
    while isinstance(value, dict) and len(value) == 1:
      child_key, value = next(iter(value.items()))
      path = path + _segments(child_key)

    if isinstance(value, dict):
      value = collapse(value)

    result[path] = value
  return result


# =============================================================================
# System configuration
# =============================================================================


def _kernels_on_luks(state: SelectionState) -> bool:
  """True when the kernels end up on the encrypted root, i.e. there is no separate /boot partition."""
  parts = [part for disk in state.drives for part in disk.partitions]
  if any(part.mount_point == "/boot" for part in parts):
    return False
  return any(part.mount_point == "/" and part.encrypt for part in parts)


def _bootloader(state: SelectionState, tree: Tree) -> None:
  match state.bootloader:
    case Bootloader.SYSTEMD_BOOT.value:
      assign(tree, "boot.loader.systemd-boot.enable", True)
      assign(tree, "boot.loader.efi.canTouchEfiVariables", True)

    case Bootloader.GRUB.value:
      assign(tree, "boot.loader.grub.enable", True)
      if any(part.is_esp for disk in state.drives for part in disk.partitions):
        assign(tree, "boot.loader.grub.efiSupport", True)
        assign(tree, "boot.loader.grub.efiInstallAsRemovable", True)
        assign(tree, "boot.loader.grub.device", "nodev")
      else:
        assign(tree, "boot.loader.grub.device", state.drives[0].device)

      if _kernels_on_luks(state):
        assign(tree, "boot.loader.grub.enableCryptodisk", True)

    case _:
      raise SynthesisError("bootloader", state.bootloader, "unsupported bootloader")

  if state.kernels:
    assign(tree, "boot.kernelPackages", package_ref(state.kernels[0], "kernels"))


def network_attrs(backend: str) -> list[tuple[str, object]]:
  """Map a network backend name to the NixOS options enabling it."""
  match backend:
    case NetworkBackend.NETWORKMANAGER.value:
      return [("networking.networkmanager.enable", True)]

    case NetworkBackend.IWD.value:
      return [("networking.wireless.iwd.enable", True), ("networking.useNetworkd", True)]

    case NetworkBackend.WPA_SUPPLICANT.value:
      return [("networking.wireless.enable", True)]

    case NetworkBackend.NONE.value:
      return []

    case _:
      raise SynthesisError("network_backend", backend, "unsupported network backend")


def locale_attrs(language: str, locale: str) -> list[tuple[str, object]]:
  """Map the language and regional locale to i18n options."""
  attrs: list[tuple[str, object]] = [("i18n.defaultLocale", language)]
  if locale != language:
    attrs.extend((f"i18n.extraLocaleSettings.{category}", locale) for category in REGIONAL_CATEGORIES)
  return attrs


def keyboard_attrs(keymap: str, graphical: bool) -> list[tuple[str, object]]:
  attrs: list[tuple[str, object]] = [("console.keyMap", keymap)]
  if graphical:
    layout, variant = XKB_LAYOUTS.get(keymap, (keymap, None))
    attrs.append(("services.xserver.xkb.layout", layout))
    if variant:
      attrs.append(("services.xserver.xkb.variant", variant))
  return attrs


def _desktop(state: SelectionState, tree: Tree) -> None:
  desktop = state.desktop_environment
  if desktop and desktop != "none":
    if desktop not in DESKTOPS:
      raise SynthesisError("desktop_environment", desktop, "unsupported desktop environment")
    for key, value in DESKTOPS[desktop]:
      assign(tree, key, value)

  greeter = state.greeter
  if greeter and greeter != "none":
    if greeter not in GREETERS:
      raise SynthesisError("greeter", greeter, "unsupported greeter")
    for key, value in GREETERS[greeter]:
      assign(tree, key, value)

    if greeter == "greetd":
      session = GREETD_SESSIONS.get(desktop or "", "")
      command = "${pkgs.greetd.tuigreet}/bin/tuigreet --time" + (f" --cmd {session}" if session else "")
      assign(tree, "services.greetd.settings.default_session.command", NixExpr(f'"{command}"'))

  if state.audio_backend not in AUDIO:
    raise SynthesisError("audio_backend", state.audio_backend, "unsupported audio backend")
  for key, value in AUDIO[state.audio_backend]:
    assign(tree, key, value)


def _user(user: User, tree: Tree, shells: list[str]) -> None:
  field = f"users.users.{user.username}"
  if not user.username:
    raise SynthesisError(field, user.username, "username must not be empty")

  groups = list(dict.fromkeys([*user.groups, *(["wheel"] if user.sudo else [])]))

  entry: Tree = {
    "isNormalUser": True,
    "extraGroups": groups,
    "hashedPassword": user.password_hash,
  }

  if user.shell and user.shell != "bash":
    entry["shell"] = package_ref(user.shell, f"{field}.shell")
    if user.shell in PROGRAM_SHELLS and user.shell not in shells:
      shells.append(user.shell)

  assign(tree, ("users", "users", user.username), entry)


def system_config(state: SelectionState) -> str:
  """Render configuration.nix for state."""
  tree: Tree = {}
  assign(tree, "imports", [NixExpr("./hardware-configuration.nix")])

  _bootloader(state, tree)

  assign(tree, "networking.hostName", state.hostname)
  for key, value in network_attrs(state.network_backend):
    assign(tree, key, value)
  if not state.ipv6_enabled:
    assign(tree, "networking.enableIPv6", False)

  assign(tree, "time.timeZone", state.timezone)
  for key, value in locale_attrs(state.language, state.locale):
    assign(tree, key, value)

  graphical = bool(state.desktop_environment and state.desktop_environment != "none")
  for key, value in keyboard_attrs(state.keyboard_layout, graphical):
    assign(tree, key, value)

  _desktop(state, tree)

  shells: list[str] = []
  for user in state.users:
    _user(user, tree, shells)
  assign(tree, "users.users.root.hashedPassword", state.root_passwd_hash)

  for shell in shells:
    assign(tree, ("programs", shell, "enable"), True)

  packages = [package_ref(pkg, f"environment.systemPackages[{i}]") for i, pkg in enumerate(state.system_pkgs)]
  assign(tree, "environment.systemPackages", packages)

  if state.flakes_enabled:
    assign(tree, "nix.settings.experimental-features", ["nix-command", "flakes"])

  if state.flatpak_enabled:
    assign(tree, "services.flatpak.enable", True)
    if state.desktop_environment not in PORTAL_DESKTOPS:
      assign(tree, "xdg.portal.enable", True)
      assign(tree, "xdg.portal.extraPortals", [package_ref("xdg-desktop-portal-gtk", "xdg.portal.extraPortals[0]")])

  if state.swap_enabled and not any(part.filesystem == "swap" for disk in state.drives for part in disk.partitions):
    assign(tree, "zramSwap.enable", True)

  assign(tree, "system.stateVersion", state.state_version)

  return render_module(collapse(tree), args=["config", "lib", "pkgs"], comment=SYSTEM_HEADER)


# =============================================================================
# Disk configuration
# =============================================================================


def partition_name(part: Partition) -> str:
  """Derive a disko partition name: explicit label, ESP, swap, root or the mount path."""
  if part.label:
    return part.label
  if part.is_esp:
    return "ESP"
  if part.filesystem == "swap":
    return "swap"
  if part.mount_point == "/":
    return "root"
  if part.mount_point:
    return part.mount_point.strip("/").replace("/", "-")
  return part.filesystem


def _unique(name: str, used: set[str]) -> str:
  candidate = name
  n = 2
  while candidate in used:
    candidate = f"{name}{n}"
    n += 1
  used.add(candidate)
  return candidate


def partition_content(part: Partition, field: str, name: str) -> Tree:
  if part.filesystem == "swap":
    content: Tree = {"type": "swap"}
  elif not part.filesystem:
    raise SynthesisError(f"{field}.filesystem", part.filesystem, "filesystem must not be empty")
  else:
    content = {"type": "filesystem", "format": part.filesystem}
    if part.mount_point:
      content["mountpoint"] = part.mount_point
    if part.is_esp:
      content["mountOptions"] = ["umask=0077"]

  if not part.encrypt:
    return content

  if part.is_boot:
    raise SynthesisError(f"{field}.encrypt", part.mount_point, "boot partitions cannot be encrypted")

  # nixos-generate-config picks up the opened mapper for boot.initrd.luks
  return {
    "type": "luks",
    "name": f"crypt{name}",
    "passwordFile": LUKS_KEY_FILE,
    "settings": {"allowDiscards": True},
    "content": content,
  }


def _size_in_kib(size: str, field: str) -> int:
  match = re.fullmatch(r"([1-9][0-9]*)([KMGT])", size)
  if not match:
    raise SynthesisError(field, size, "expected a size such as 512M or 20G")
  return int(match.group(1)) * SIZE_UNITS[match.group(2)]


def _format_kib(kib: int) -> str:
  for unit in ("T", "G", "M"):
    if kib % SIZE_UNITS[unit] == 0:
      return f"{kib // SIZE_UNITS[unit]}{unit}"
  return f"{kib}K"


def _check_rest_of_disk(disk: Disk, field: str) -> None:
  for part in disk.partitions[:-1]:
    if part.size == "100%":
      raise SynthesisError(f"{field}.partitions", part.size, "only the last partition may use the rest of the disk")


def gpt_content(disk: Disk, field: str) -> Tree:
  partitions: Tree = {}
  used: set[str] = set()
  for i, part in enumerate(disk.partitions):
    name = _unique(partition_name(part), used)
    part_field = f"{field}.partitions.{name}"
    if part.size != "100%":
      _size_in_kib(part.size, f"{part_field}.size")

    entry: Tree = {"priority": i + 1, "size": part.size}
    if part.is_esp:
      entry["type"] = "EF00"
    entry["content"] = partition_content(part, part_field, name)
    partitions[name] = entry

  return {"type": "gpt", "partitions": partitions}


def msdos_content(disk: Disk, field: str, bootloader: str | None) -> Tree:
  """Legacy disko "table" layout; partitions are a list with explicit start and end."""
  boot_mount = "/boot" if any(p.mount_point == "/boot" for p in disk.partitions) else "/"
  start = SIZE_UNITS["M"]
  used: set[str] = set()
  partitions: list[Tree] = []

  for i, part in enumerate(disk.partitions):
    name = _unique(partition_name(part), used)
    part_field = f"{field}.partitions[{i}]"

    if part.size == "100%":
      end_text = "100%"
    else:
      end = start + _size_in_kib(part.size, f"{part_field}.size")
      end_text = _format_kib(end)

    entry: Tree = {"name": name, "start": _format_kib(start), "end": end_text}
    if bootloader == Bootloader.GRUB.value and part.mount_point == boot_mount:
      entry["bootable"] = True
    entry["content"] = partition_content(part, part_field, name)
    partitions.append(entry)

    if part.size != "100%":
      start = end

  return {"type": "table", "format": "msdos", "partitions": partitions}


def disk_config(state: SelectionState) -> str:
  """Render the disko layout; disks and partitions keep their order from state."""
  disks: Tree = {}
  used: set[str] = set()
  for disk in state.drives:
    name = _unique(disk.name, used)
    field = f"disko.devices.disk.{name}"
    _check_rest_of_disk(disk, field)

    match disk.scheme:
      case PartitionScheme.GPT:
        content = gpt_content(disk, field)
      case PartitionScheme.MBR:
        content = msdos_content(disk, field, state.bootloader)
      case _:
        raise SynthesisError(f"{field}.content.type", disk.scheme, "unsupported partition scheme")

    disks[name] = {"type": "disk", "device": disk.device, "content": content}

  tree: Tree = {("disko", "devices", "disk"): disks}
  return render_module(tree, comment=DISK_HEADER)


# =============================================================================
# Entry point
# =============================================================================


def synthesize(state: SelectionState) -> Configs:
  """
  Build both documents from state.

  Raises RequirementsError when the state is incomplete and SynthesisError
  when a value cannot be written as Nix. When a flake path is set, no
  configuration.nix is generated and the path is passed through instead.
  """
  missing = state.missing_requirements()
  if missing:
    raise RequirementsError(missing)

  disks = disk_config(state)

  if state.flake_path:
    logger.debug("Flake %s supersedes the generated system configuration", state.flake_path)
    return Configs(system_config=None, disk_config=disks, flake_path=state.flake_path)

  return Configs(system_config=system_config(state), disk_config=disks)
