import json
import os
import subprocess
import sys

from rich.console import Console
from rich.markup import escape

from nixstart.errors import CommandError
from nixstart.tui import TUI
from nixstart.types import DefaultsConfig, OptionsConfig
from nixstart.validations import validate_defaults_json, validate_options_json

console = Console()

FALLBACK_DEFAULTS = DefaultsConfig(
  hostname="nixos",
  timezone="UTC",
  locale="en_US.UTF-8",
  language="en_US.UTF-8",
  keymap="us",
  bootloader="systemd-boot",
  network_backend="networkmanager",
  audio_backend="pipewire",
  state_version="24.11",
)


def get_resource_path(relative_path: str) -> str:
  """
  Get absolute path to a bundled resource for both normal execution and frozen binaries.
  For --onefile builds, files are extracted to a temporary directory.
  """
  if getattr(sys, "frozen", False):
    if hasattr(sys, "_MEIPASS"):
      base_path = sys._MEIPASS
    else:
      # Fallback: use the directory containing the frozen executable
      base_path = os.path.dirname(sys.executable)
    return os.path.join(base_path, "nixstart", "data", relative_path)

  return os.path.join(os.path.dirname(os.path.abspath(__file__)), "data", relative_path)


def cmd(command: str, dry_run: bool, ui: TUI) -> None:
  if dry_run:
    message = f"[bold green][dim][DRY RUN] {escape(command)}[/][/]"
    ui.print(message)
    return

  ui.print(f"[dim]$ {escape(command)}[/]")
  result = subprocess.run(command, shell=True, capture_output=True, text=True)
  for line in result.stdout.splitlines():
    ui.print(escape(line))

  if result.returncode != 0:
    raise CommandError(command, result.returncode, result.stderr)


def write(text: str, path: str, dry_run: bool, ui: TUI) -> None:
  if dry_run:
    message = f"[bold green][dim][DRY RUN] Writing to {escape(path)}:[/][/]"
    ui.print(message)
    for line in text.splitlines():
      ui.print(f"[dim]{escape(line)}[/]")
    return

  os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
  with open(path, "w", encoding="utf-8") as f:
    f.write(text)


def write_secret(text: str, path: str, dry_run: bool, ui: TUI) -> None:
  """Write text readable by root only. Dry runs name the file but never show its content."""
  if dry_run:
    ui.print(f"[bold green][dim][DRY RUN] Writing secret to {escape(path)}[/][/]")
    return

  fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
  with os.fdopen(fd, "w", encoding="utf-8") as f:
    f.write(text)


def _load_resource_json() -> dict[str, object]:
  config_file = get_resource_path("defaults.json")
  with open(config_file, "r", encoding="utf-8") as f:
    return json.load(f)


def load_defaults() -> DefaultsConfig:
  """Load default selections from the bundled defaults.json."""
  try:
    config_data = _load_resource_json()
    if "defaults" not in config_data:
      return FALLBACK_DEFAULTS

    data = validate_defaults_json(config_data["defaults"])
    return DefaultsConfig(**{k: str(data[k]) for k in FALLBACK_DEFAULTS})

  except (FileNotFoundError, json.JSONDecodeError) as e:
    console.print(f"\n[bold red]Error loading defaults.json: {e}[/]")
    sys.exit(1)

  except (KeyError, ValueError) as e:
    console.print(f"\n[bold red]Invalid defaults.json format: {e}[/]")
    sys.exit(1)


def load_options() -> OptionsConfig:
  """Load the option catalogues offered by the selection pages."""
  try:
    config_data = _load_resource_json()
    data = validate_options_json(config_data.get("options", {}))

    return OptionsConfig(
      timezones=data.get("timezones", [FALLBACK_DEFAULTS["timezone"]]),
      locales=data.get("locales", [FALLBACK_DEFAULTS["locale"]]),
      languages=data.get("languages", [FALLBACK_DEFAULTS["language"]]),
      keymaps=data.get("keymaps", [FALLBACK_DEFAULTS["keymap"]]),
      desktops=data.get("desktops", ["none"]),
      greeters=data.get("greeters", ["none"]),
      kernels=data.get("kernels", ["linuxPackages"]),
      shells=data.get("shells", ["bash"]),
      filesystems=data.get("filesystems", ["ext4", "vfat", "swap"]),
      network_backends=data.get("network_backends", ["networkmanager", "none"]),
      audio_backends=data.get("audio_backends", ["pipewire", "none"]),
    )

  except (FileNotFoundError, json.JSONDecodeError) as e:
    console.print(f"\n[bold red]Error loading defaults.json: {e}[/]")
    sys.exit(1)

  except ValueError as e:
    console.print(f"\n[bold red]Invalid defaults.json format: {e}[/]")
    sys.exit(1)


def format_step_name(name: str) -> str:
  """
  Format step name from function name string.

  Args:
      name: Step function name

  Returns:
      Formatted step name (e.g., "Partition Disks")
  """
  return name.replace("step_", "").replace("_", " ").title().lstrip("0123456789 ")
