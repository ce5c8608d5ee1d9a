"""
Embedded profile registry.

Profiles are stored as Python constants so they ship inside the package
(and inside a frozen binary) without external files. A profile overlays
settings and packages on top of the current selections.
"""

from typing import Final

PROFILES: Final[dict[str, dict[str, object]]] = {
  "minimal": {
    "name": "Minimal",
    "description": "Console-only system with a handful of admin tools",
    "config": {
      "desktop_environment": None,
      "greeter": None,
      "network_backend": "networkmanager",
      "audio_backend": "none",
    },
    "packages": {"additional": ["git", "vim", "wget"], "exclude": []},
  },
  "desktop": {
    "name": "GNOME Desktop",
    "description": "GNOME with GDM, PipeWire and everyday applications",
    "config": {
      "desktop_environment": "gnome",
      "greeter": "gdm",
      "network_backend": "networkmanager",
      "audio_backend": "pipewire",
    },
    "packages": {
      "additional": [
        "firefox",
        "git",
        "gnome-tweaks",
        "mpv",
        "vim",
        "wl-clipboard",
      ],
      "exclude": [],
    },
  },
  "hyprland": {
    "name": "Hyprland",
    "description": "Hyprland compositor with greetd and PipeWire",
    "config": {
      "desktop_environment": "hyprland",
      "greeter": "greetd",
      "network_backend": "networkmanager",
      "audio_backend": "pipewire",
    },
    "packages": {
      "additional": [
        "alacritty",
        "dunst",
        "firefox",
        "fuzzel",
        "git",
        "libnotify",
        "mpv",
        "starship",
        "waybar",
        "xdg-utils",
        "zoxide",
      ],
      "exclude": [],
    },
  },
  "server": {
    "name": "Server",
    "description": "Headless server with OpenSSH tooling and flakes enabled",
    "config": {
      "desktop_environment": None,
      "greeter": None,
      "network_backend": "networkmanager",
      "audio_backend": "none",
      "flakes_enabled": True,
    },
    "packages": {"additional": ["curl", "git", "htop", "tmux", "vim"], "exclude": []},
  },
}


def get_embedded_profile(profile_name: str) -> dict[str, object] | None:
  """
  Get an embedded profile by name.

  Args:
      profile_name: Profile name without extension (e.g., 'desktop')

  Returns:
      A copy of the profile data, or None if not found
  """
  profile_data = PROFILES.get(profile_name)
  return dict(profile_data) if profile_data is not None else None


def list_profiles() -> list[str]:
  """Return the names of all embedded profiles, sorted."""
  return sorted(PROFILES)
