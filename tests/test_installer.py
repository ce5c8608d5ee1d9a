import json
from unittest.mock import MagicMock, patch

import pytest

import installer
from nixstart.state import SelectionState
from nixstart.synthesis import synthesize
from nixstart.utils import FALLBACK_DEFAULTS


def parse(*argv: str):
  parser = installer._create_argument_parser(FALLBACK_DEFAULTS)
  return installer._create_context_config(parser.parse_args(list(argv)))


def run_main(monkeypatch, *argv: str) -> None:
  monkeypatch.setattr("sys.argv", ["nixstart", *argv])
  installer.main()


@pytest.fixture
def state_file(tmp_path, complete_state):
  path = tmp_path / "state.json"
  path.write_text(json.dumps(complete_state.to_dict()))
  return path


@pytest.fixture(autouse=True)
def no_nixfmt():
  with patch("installer.format_nix", side_effect=lambda text: text):
    yield


def test_defaults():
  config = parse()

  assert not config.dry
  assert config.output == installer.DEFAULT_OUTPUT
  assert config.hostname is None
  assert config.state_file is None


def test_flags():
  config = parse("-d", "--hostname", "box", "-o", "/srv/out", "--state", "s.json", "--no-apply", "-v")

  assert config.dry
  assert config.hostname == "box"
  assert config.output == "/srv/out"
  assert config.state_file == "s.json"
  assert config.no_apply
  assert config.verbose


def test_initial_state_layers(tmp_path):
  partial = tmp_path / "partial.json"
  partial.write_text(json.dumps({"hostname": "nixbox", "audio_backend": "pipewire"}))
  config = parse("--profile", "server", "--state", str(partial), "--timezone", "Europe/Berlin")

  state = installer._initial_state(config, FALLBACK_DEFAULTS)

  # The state file wins over the profile, the command line wins over both
  assert state.hostname == "nixbox"
  assert state.audio_backend == "pipewire"
  assert state.flakes_enabled is True
  assert state.timezone == "Europe/Berlin"
  assert "tmux" in state.system_pkgs


def test_profile_errors_exit(tmp_path):
  bad = tmp_path / "bad.json"
  bad.write_text("[]")

  with pytest.raises(SystemExit) as excinfo:
    installer._initial_state(parse("--profile", str(bad)), FALLBACK_DEFAULTS)

  assert excinfo.value.code == 1


def test_non_interactive_dry_run(monkeypatch, state_file, tmp_path, capsys):
  run_main(monkeypatch, "--dry", "--state", str(state_file), "--log-file", str(tmp_path / "n.log"))

  output = capsys.readouterr().out
  assert "disko --mode disko" in output
  assert "nixos-install --root /mnt" in output
  assert "Dry run completed successfully!" in output


def test_no_apply_writes_documents(monkeypatch, state_file, tmp_path, capsys):
  out = tmp_path / "out"
  with patch("installer.check_system_requirements") as mock_check:
    run_main(monkeypatch, "--no-apply", "--state", str(state_file), "-o", str(out), "--log-file", str(tmp_path / "n.log"))

  mock_check.assert_called_once()

  assert (out / "configuration.nix").read_text().startswith("# Generated by nixstart.")
  assert "/dev/sda" in (out / "disko-config.nix").read_text()
  assert "Documents written to" in capsys.readouterr().out


def test_incomplete_state_exits(monkeypatch, tmp_path, capsys):
  path = tmp_path / "state.json"
  path.write_text(json.dumps(SelectionState(hostname="empty").to_dict()))

  with pytest.raises(SystemExit) as excinfo:
    run_main(monkeypatch, "--dry", "--state", str(path), "--log-file", str(tmp_path / "n.log"))

  assert excinfo.value.code == 1
  assert "Drive Configuration" in capsys.readouterr().out


def test_aborted_wizard_changes_nothing(monkeypatch, tmp_path, capsys):
  with patch("installer._run_wizard", return_value=None):
    with pytest.raises(SystemExit) as excinfo:
      run_main(monkeypatch, "--dry", "--log-file", str(tmp_path / "n.log"))

  assert excinfo.value.code == 0
  assert "aborted" in capsys.readouterr().out


def test_invalid_arguments_exit(monkeypatch, capsys):
  with pytest.raises(SystemExit) as excinfo:
    run_main(monkeypatch, "--hostname", "bad_host")

  assert excinfo.value.code == 1
  assert "Invalid hostname" in capsys.readouterr().out


def test_reviewed_documents_are_not_synthesized_again(monkeypatch, complete_state, tmp_path, capsys):
  reviewed = synthesize(complete_state)
  out = tmp_path / "out"

  with (
    patch("installer._run_wizard", return_value=reviewed),
    patch("installer.synthesize") as mock_synthesize,
  ):
    run_main(monkeypatch, "--dry", "--no-apply", "-o", str(out), "--log-file", str(tmp_path / "n.log"))

  mock_synthesize.assert_not_called()
  assert "Dry run completed successfully!" in capsys.readouterr().out


def test_interrupted_wizard_is_an_abort(complete_state):
  backend = MagicMock()
  backend.__enter__.side_effect = KeyboardInterrupt

  with (
    patch("installer.TerminalBackend", return_value=backend),
    patch("installer._enumerate_disks", return_value=[]),
  ):
    configs = installer._run_wizard(complete_state, parse("--dry"))

  assert configs is None
