import json
from unittest.mock import MagicMock, patch

import pytest

from nixstart.profiles import InstallationProfile, ProfileLoader
from nixstart.registry import PROFILES, get_embedded_profile, list_profiles
from nixstart.state import SelectionState


def test_registry():
  assert list_profiles() == sorted(PROFILES)
  assert get_embedded_profile("nope") is None

  copy = get_embedded_profile("server")
  copy["name"] = "changed"
  assert PROFILES["server"]["name"] != "changed"


def test_embedded_profile_overlays_state():
  state = SelectionState(system_pkgs=["nano"])

  ProfileLoader.load("desktop").apply(state)

  assert state.desktop_environment == "gnome"
  assert state.greeter == "gdm"
  assert state.system_pkgs[0] == "nano"
  assert "firefox" in state.system_pkgs
  assert state.profile == "desktop"


def test_unknown_config_keys_are_dropped():
  profile = InstallationProfile.from_dict(
    {"name": "x", "description": "y", "config": {"hostname": "box", "root_passwd_hash": "nope"}}
  )

  assert profile.config == {"hostname": "box"}


def test_excluded_packages_are_removed():
  state = SelectionState(system_pkgs=["nano", "git"])
  profile = InstallationProfile.from_dict(
    {"name": "x", "description": "y", "packages": {"additional": ["vim"], "exclude": ["nano"]}}
  )

  profile.apply(state)

  assert state.system_pkgs == ["git", "vim"]


def test_load_from_file(tmp_path):
  path = tmp_path / "work.json"
  path.write_text(json.dumps({"name": "Work", "description": "d", "config": {"timezone": "Europe/Berlin"}}))

  profile = ProfileLoader.load(str(path))

  assert profile.name == "Work"
  assert profile.source == str(path)
  assert profile.config["timezone"] == "Europe/Berlin"


def test_invalid_file_raises_value_error(tmp_path):
  path = tmp_path / "bad.json"
  path.write_text(json.dumps({"description": "no name"}))

  with pytest.raises(ValueError, match="validation error"):
    ProfileLoader.load(str(path))

  with pytest.raises(ValueError):
    ProfileLoader.load(str(tmp_path / "missing.json"))


@patch("nixstart.profiles.urllib.request.urlopen")
def test_load_from_url(mock_urlopen):
  response = MagicMock()
  response.status = 200
  response.headers = {"Content-Type": "application/json"}
  response.read.return_value = json.dumps({"name": "Remote", "description": "d"}).encode()
  mock_urlopen.return_value.__enter__.return_value = response

  profile = ProfileLoader.load("https://example.org/remote.json")

  assert profile.name == "Remote"
  request = mock_urlopen.call_args[0][0]
  assert request.full_url == "https://example.org/remote.json"


def test_profile_values_outside_the_catalogues_are_rejected(tmp_path):
  path = tmp_path / "kde.json"
  data = {
    "name": "KDE",
    "description": "d",
    "config": {"desktop_environment": "kde", "network_backend": "connman", "swap_enabled": "yes"},
    "packages": {"additional": ["foo bar"]},
  }
  path.write_text(json.dumps(data))

  with pytest.raises(ValueError) as excinfo:
    ProfileLoader.load(str(path))

  message = str(excinfo.value)
  assert "4 validation error(s)" in message
  assert "config.desktop_environment: unknown value 'kde'" in message
  assert "config.network_backend: unknown value 'connman'" in message
  assert "config.swap_enabled must be true or false" in message
  assert "invalid package name 'foo bar'" in message


@pytest.mark.parametrize("name", sorted(PROFILES))
def test_embedded_profiles_are_valid(name):
  assert ProfileLoader.load(name).name == PROFILES[name]["name"]
