"""
Thin wrappers around the host tools the wizard depends on.

Root check, block device enumeration, password hashing and the optional
nixfmt pass. Nothing here touches the SelectionState.
"""

import json
import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass

from rich.console import Console

from nixstart.errors import CommandError

logger = logging.getLogger(__name__)
console = Console()


@dataclass(frozen=True)
class BlockDevice:
  name: str
  path: str
  size: int
  model: str | None = None

  @property
  def size_label(self) -> str:
    size = float(self.size)
    for unit in ("B", "K", "M", "G", "T"):
      if size < 1024 or unit == "T":
        return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
      size /= 1024
    return f"{size:.1f}T"

  @property
  def label(self) -> str:
    model = f"  {self.model}" if self.model else ""
    return f"{self.path}  {self.size_label}{model}"


def check_system_requirements() -> None:
  """Check if the system meets installation requirements."""
  if os.geteuid() != 0:
    console.print("\n[prompt.invalid]Root privileges are required. Please re-run nixstart as root.[/]")
    sys.exit(2)

  try:
    with open("/proc/mounts", "r") as f:
      if any(line.split()[1].startswith("/mnt") for line in f if line.strip() and len(line.split()) > 1):
        console.print("\n[prompt.invalid]/mnt is currently mounted or has mounted subdirectories.[/]")
        console.print("Please unmount before running the installer.")
        sys.exit(2)
  except OSError:
    logger.debug("/proc/mounts is not readable, skipping mount check")


def list_disks() -> list[BlockDevice]:
  """Enumerate writable whole disks with lsblk."""
  command = ["lsblk", "--json", "--bytes", "--nodeps", "--output", "NAME,PATH,SIZE,MODEL,TYPE,RO"]
  result = subprocess.run(command, capture_output=True, text=True)
  if result.returncode != 0:
    raise CommandError(" ".join(command), result.returncode, result.stderr)

  devices = json.loads(result.stdout).get("blockdevices", [])

  # fmt: off
  disks = [
    BlockDevice(
      name=str(dev["name"]),
      path=str(dev.get("path") or f"/dev/{dev['name']}"),
      size=int(dev.get("size") or 0),
      model=(dev.get("model") or "").strip() or None,
    )
    for dev in devices
    if dev.get("type") == "disk" and not dev.get("ro")
  ]
  # fmt: on

  logger.debug("Found disks: %s", [disk.path for disk in disks])
  return disks


def hash_password(password: str) -> str:
  """Hash a password as SHA-512 crypt, passing it on stdin so it never shows up in the process list."""
  command = ["mkpasswd", "--method=sha-512", "--stdin"]
  try:
    result = subprocess.run(command, input=password, capture_output=True, text=True)
  except OSError as e:
    raise CommandError(" ".join(command), 127, str(e)) from e

  if result.returncode != 0:
    raise CommandError(" ".join(command), result.returncode, result.stderr)

  return result.stdout.strip()


def format_nix(text: str) -> str:
  """Pretty-print a Nix document with nixfmt. Returns text unchanged when nixfmt is missing or fails."""
  if shutil.which("nixfmt") is None:
    logger.debug("nixfmt not found, leaving document unformatted")
    return text

  result = subprocess.run(["nixfmt"], input=text, capture_output=True, text=True)
  if result.returncode != 0:
    logger.warning("nixfmt failed, leaving document unformatted: %s", result.stderr.strip())
    return text

  return result.stdout
