"""
Profile management for nixstart.

Profiles can be loaded from the embedded registry, local files or HTTP URLs.
A profile overlays settings (desktop, greeter, backends, locale...) and a
package selection on top of the current SelectionState.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

from rich.console import Console

from nixstart.registry import get_embedded_profile
from nixstart.state import SelectionState
from nixstart.utils import load_options
from nixstart.validations import validate_profile_json

console = Console()
logger = logging.getLogger(__name__)

# Settings a profile may override, all optional
OVERRIDABLE_FIELDS = (
  "hostname",
  "timezone",
  "locale",
  "language",
  "keyboard_layout",
  "desktop_environment",
  "greeter",
  "network_backend",
  "audio_backend",
  "flakes_enabled",
  "swap_enabled",
  "flatpak_enabled",
  "ipv6_enabled",
)


@dataclass
class PackageSelection:
  """Package selection configuration."""

  additional: list[str] = field(default_factory=list)
  exclude: list[str] = field(default_factory=list)


@dataclass
class InstallationProfile:
  """Installation profile definition."""

  name: str
  description: str
  source: str = ""
  config: dict[str, object] = field(default_factory=dict)
  packages: PackageSelection = field(default_factory=PackageSelection)

  @classmethod
  def from_dict(cls, data: dict[str, object], source: str = "") -> InstallationProfile:
    """Create profile from dictionary."""
    config_data = data.get("config", {})
    config = (
      {key: value for key, value in config_data.items() if key in OVERRIDABLE_FIELDS}
      if isinstance(config_data, dict)
      else {}
    )

    packages_data = data.get("packages", {})
    packages = (
      PackageSelection(
        additional=cast(list[str], packages_data.get("additional", [])),
        exclude=cast(list[str], packages_data.get("exclude", [])),
      )
      if isinstance(packages_data, dict)
      else PackageSelection()
    )

    return cls(
      name=str(data["name"]),
      description=str(data["description"]),
      source=source,
      config=config,
      packages=packages,
    )

  def apply(self, state: SelectionState) -> None:
    """Overlay this profile onto state. Packages are merged, never replaced."""
    for key, value in self.config.items():
      setattr(state, key, value)

    for pkg in self.packages.additional:
      state.add_package(pkg)

    for pkg in self.packages.exclude:
      state.remove_package(pkg)

    state.profile = self.source or self.name
    logger.debug("Applied profile %s", state.profile)


class ProfileLoader:
  """Handles loading profiles from the registry, local files or HTTP URLs."""

  @staticmethod
  def _load_from_url(url: str) -> dict[str, object]:
    """Load JSON data from HTTP URL."""
    try:
      req = urllib.request.Request(
        url,
        headers={
          "User-Agent": "nixstart/0.1.0",
          "Accept": "application/json",
        },
      )

      with urllib.request.urlopen(req, timeout=10) as response:
        status_code = getattr(response, "status", getattr(response, "code", 200))

        if status_code != 200:
          reason = getattr(response, "reason", "Unknown error")
          raise ValueError(f"HTTP {status_code}: {reason}")

        content_type = response.headers.get("Content-Type", "")
        if content_type and "application/json" not in content_type and "text/json" not in content_type:
          console.print(f"[yellow]Warning: Server returned Content-Type '{content_type}', expected JSON[/]")

        parsed_data = json.loads(response.read().decode("utf-8"))
        if not isinstance(parsed_data, dict):
          raise ValueError("Profile JSON must be an object")

        return parsed_data

    except urllib.error.URLError as e:
      raise ValueError(f"Failed to load profile from URL: {e}") from e

    except json.JSONDecodeError as e:
      raise ValueError(f"Invalid JSON in profile: {e}") from e

  @staticmethod
  def _load_from_file(file_path: str | Path) -> dict[str, object]:
    """Load JSON data from local file."""
    try:
      path = Path(file_path)
      if not path.exists():
        raise FileNotFoundError(f"Profile file not found: {path}")

      with open(path, "r", encoding="utf-8") as f:
        parsed_data = json.load(f)
        if not isinstance(parsed_data, dict):
          raise ValueError("Profile JSON must be an object")

        return parsed_data

    except json.JSONDecodeError as e:
      raise ValueError(f"Invalid JSON in profile file: {e}") from e

    except OSError as e:
      raise ValueError(f"Failed to read profile file: {e}") from e

  @classmethod
  def load(cls, source: str) -> InstallationProfile:
    """
    Load profile from source (profile name, file path, or HTTP URL).

    Args:
        source: Profile name (e.g., 'desktop'), HTTP URL, or local file path

    Returns:
        InstallationProfile object

    Raises:
        ValueError: If profile cannot be loaded or is invalid
    """
    data = get_embedded_profile(source) if not source.startswith(("http://", "https://", "/", "./")) else None

    if data is None:
      if source.startswith(("http://", "https://")):
        data = cls._load_from_url(source)
      else:
        data = cls._load_from_file(source)

    validation_issues = validate_profile_json(data, load_options())
    if validation_issues:
      for issue in validation_issues:
        logger.error("Profile '%s': %s", source, issue)
      raise ValueError(f"Profile contains {len(validation_issues)} validation error(s): {'; '.join(validation_issues)}")

    return InstallationProfile.from_dict(data, source=source)
