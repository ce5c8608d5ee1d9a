"""
Validation functions for nixstart.

This module contains the validation functions used by the pages and the
command line for usernames, hostnames, locales, partition sizes, profiles,
flake paths and the bundled JSON resources.
"""

import re
import urllib.parse
from collections.abc import Mapping
from pathlib import Path
from typing import Any

# =============================================================================
# Validation Functions
# =============================================================================
# Functions that validate data and return boolean or list of issues


USERNAME_MAX_LEN = 32
USERNAME_PATTERN = re.compile(rf"[a-z_][a-z0-9_-]{{0,{USERNAME_MAX_LEN - 1}}}")
# Names NixOS already defines in users.users
RESERVED_USERNAMES = {"root", "nobody", "nixbld"}


def validate_username(username: str) -> bool:
  if username in RESERVED_USERNAMES or username.isdigit():
    return False
  return bool(USERNAME_PATTERN.fullmatch(username))


def validate_password(password: str) -> bool:
  return len(password.strip()) > 1


def validate_passphrase(passphrase: str) -> bool:
  """LUKS passphrases need at least eight characters; surrounding spaces count."""
  return len(passphrase) >= 8 and not passphrase.isspace()


def validate_url(url: str) -> bool:
  """Validate that a URL is properly formatted."""
  if not url:
    return False

  result = urllib.parse.urlparse(url)
  return bool(result.scheme and result.netloc)


def validate_timezone(timezone: str) -> bool:
  """Validate timezone against tz database naming (UTC or Area/Location[/Sub])."""
  if timezone == "UTC":
    return True

  parts = timezone.split("/")
  if not 2 <= len(parts) <= 3:
    return False

  return all(part and re.fullmatch(r"[A-Za-z][A-Za-z0-9_+-]*", part) for part in parts)


def validate_locale(locale: str) -> bool:
  """Validate locale format - supports various glibc locale formats."""
  if not locale:
    return False

  # Allow C/POSIX locales
  if locale in ("C", "POSIX", "C.UTF-8"):
    return True

  # Basic pattern: language[_territory][.encoding][@modifier]
  # Examples: en, en_US, en_US.UTF-8, en_US@euro, de_DE.ISO-8859-1@euro
  pattern = r"^[a-z]{2,3}(_[A-Z]{2})?(\.[A-Za-z0-9_-]+)?(@[A-Za-z0-9_-]+)?$"
  return bool(re.match(pattern, locale))


def validate_hostname(hostname: str) -> bool:
  """Validate hostname format according to RFC 1123."""
  if not hostname or len(hostname) > 253:
    return False

  labels = hostname.split(".")

  def is_valid_label(label: str) -> bool:
    return (
      bool(label)
      and len(label) <= 63
      and label[0].isalnum()
      and label[-1].isalnum()
      and all(c.isascii() and (c.isalnum() or c == "-") for c in label)
    )

  return all(is_valid_label(label) for label in labels)


def validate_partition_size(size: str) -> bool:
  """Validate a partition size policy: a number with K/M/G/T suffix, or "100%"."""
  return size == "100%" or bool(re.fullmatch(r"[1-9][0-9]*[KMGT]", size))


def validate_mount_point(mount_point: str) -> bool:
  """Validate an absolute mount point without whitespace or parent references."""
  if not mount_point.startswith("/"):
    return False

  if any(c.isspace() for c in mount_point):
    return False

  return ".." not in mount_point.split("/")


def validate_package_name(name: str) -> bool:
  """Validate a nixpkgs attribute path such as firefox or python3Packages.rich."""
  return bool(name) and all(re.fullmatch(r"[A-Za-z_][A-Za-z0-9_'-]*", part) for part in name.split("."))


def validate_flake_path(path: str) -> bool:
  """A flake path must point to a directory containing flake.nix, or to flake.nix itself."""
  if not path:
    return False

  candidate = Path(path.split("#", 1)[0]).expanduser()
  if candidate.is_dir():
    return (candidate / "flake.nix").is_file()

  return candidate.name == "flake.nix" and candidate.is_file()


def validate_profile(source: str) -> bool:
  """Validate profile source (name, path, or URL). Returns True if valid, False if invalid."""
  if source.startswith(("http://", "https://")):
    return validate_url(source)

  if not source.startswith(("/", "./")):
    from nixstart.registry import get_embedded_profile

    if get_embedded_profile(source):
      return True

  return Path(source).exists()


# Profile settings that must name an entry of an option catalogue
CATALOGUE_FIELDS = {
  "desktop_environment": "desktops",
  "greeter": "greeters",
  "network_backend": "network_backends",
  "audio_backend": "audio_backends",
}

PROFILE_FLAGS = ("flakes_enabled", "swap_enabled", "flatpak_enabled", "ipv6_enabled")


def validate_profile_json(data: dict[str, object], catalogues: Mapping[str, list[str]] | None = None) -> list[str]:
  """
  Validate profile JSON structure and return list of issues.

  When catalogues are given, settings such as the desktop or the backends
  must name one of their entries. Returns empty list if valid, list of
  error messages if invalid.
  """
  required_validators = [
    (lambda: isinstance(data.get("name"), str), "Profile must have a 'name' field as string"),
    (lambda: isinstance(data.get("description"), str), "Profile must have a 'description' field as string"),
  ]

  issues = [msg for validator, msg in required_validators if not validator()]

  # Optional but validated fields
  config = data.get("config", {})
  if config is not None and not isinstance(config, dict):
    issues.append("'config' field must be an object")

  packages = data.get("packages", {})
  if packages is not None and not isinstance(packages, dict):
    issues.append("'packages' field must be an object")

  if isinstance(config, dict):
    issues.extend(_config_issues(config, catalogues))

  if isinstance(packages, dict):
    for field in ["additional", "exclude"]:
      value = packages.get(field)

      if value is not None and not isinstance(value, list):
        issues.append(f"packages.{field} must be a list")

      elif isinstance(value, list) and not all(isinstance(item, str) for item in value):
        issues.append(f"packages.{field} must be a list of strings")

      elif isinstance(value, list):
        issues.extend(f"packages.{field}: invalid package name '{item}'" for item in value if not validate_package_name(item))

  return issues


def _config_issues(config: dict[str, object], catalogues: Mapping[str, list[str]] | None) -> list[str]:
  issues: list[str] = []

  for key, catalogue in CATALOGUE_FIELDS.items():
    value = config.get(key)
    if value is None:
      continue
    if not isinstance(value, str):
      issues.append(f"config.{key} must be a string")
    elif catalogues is not None and value not in catalogues.get(catalogue, []):
      issues.append(f"config.{key}: unknown value '{value}' (expected one of {', '.join(catalogues[catalogue])})")

  for key in PROFILE_FLAGS:
    if key in config and not isinstance(config[key], bool):
      issues.append(f"config.{key} must be true or false")

  # fmt: off
  text_validators = {
    "hostname": (validate_hostname, "invalid hostname"),
    "timezone": (validate_timezone, "invalid timezone"),
    "locale": (validate_locale, "invalid locale"),
    "language": (validate_locale, "invalid locale"),
  }
  # fmt: on

  for key, (validator, message) in text_validators.items():
    value = config.get(key)
    if value is not None and not (isinstance(value, str) and validator(value)):
      issues.append(f"config.{key}: {message} '{value}'")

  return issues


def validate_defaults_json(data: Any) -> dict[str, Any]:
  """Validate and return defaults JSON data with proper typing."""
  if not isinstance(data, dict):
    raise ValueError("Defaults JSON must be an object")

  required_keys = {
    "hostname",
    "timezone",
    "locale",
    "language",
    "keymap",
    "bootloader",
    "network_backend",
    "audio_backend",
    "state_version",
  }
  missing_keys = required_keys - data.keys()
  if missing_keys:
    raise KeyError(f"Missing required keys: {sorted(missing_keys)}")

  return data


def validate_options_json(data: Any) -> dict[str, list[str]]:
  """Validate and return the option catalogues; every entry must be a list of strings."""
  if not isinstance(data, dict):
    raise ValueError("Options JSON must be an object")

  for key, value in data.items():
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
      raise ValueError(f"options.{key} must be a list of strings")

  return data


def validate_cli_arguments(
  hostname: str | None = None,
  timezone: str | None = None,
  locale: str | None = None,
  profile: str | None = None,
  flake: str | None = None,
  state_file: str | None = None,
) -> list[str]:
  """
  Validate all command line arguments and return list of error messages.

  Returns empty list if all arguments are valid, list of error messages otherwise.
  """
  validators: list[tuple[bool, str]] = []

  if hostname:
    validators.append((validate_hostname(hostname), f"Invalid hostname: {hostname} (must follow RFC 1123 format)"))

  if timezone:
    validators.append((validate_timezone(timezone), f"Invalid timezone: {timezone} (expected format: Region/City)"))

  if locale:
    validators.append(
      (validate_locale(locale), f"Invalid locale: {locale} (expected format: language[_COUNTRY][.encoding][@modifier])")
    )

  if profile:
    validators.append((validate_profile(profile), f"Profile not found: {profile}"))

  if flake:
    validators.append((validate_flake_path(flake), f"Flake not found: {flake} (expected a directory with flake.nix)"))

  if state_file:
    validators.append((Path(state_file).is_file(), f"State file not found: {state_file}"))

  return [msg for valid, msg in validators if not valid]
