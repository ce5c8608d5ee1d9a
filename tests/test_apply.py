from unittest.mock import MagicMock, patch

import pytest

from nixstart.apply import (
  get_apply_steps,
  step_1_write_documents,
  step_2_partition_disks,
  step_3_install_system,
  step_4_cleanup,
)
from nixstart.context import InstallerContext
from nixstart.errors import CommandError
from nixstart.state import LUKS_KEY_FILE
from nixstart.synthesis import synthesize
from nixstart.types import ContextConfig
from nixstart.utils import format_step_name


@pytest.fixture
def make_context(tmp_path, complete_state):
  def factory(dry=True, no_apply=False, state=None):
    state = state or complete_state
    config = ContextConfig(dry=dry, output=str(tmp_path / "out"), log_file=str(tmp_path / "log"), no_apply=no_apply)
    ctx = InstallerContext(config, state, synthesize(state))
    ctx.ui = MagicMock()
    return ctx

  return factory


def printed(ctx) -> str:
  return "\n".join(call.args[0] for call in ctx.ui.print.call_args_list)


def test_steps_in_order(make_context):
  steps = get_apply_steps(make_context())

  assert [format_step_name(step.__name__) for step in steps] == [
    "Write Documents",
    "Partition Disks",
    "Install System",
    "Cleanup",
  ]


def test_no_apply_only_writes_documents(make_context):
  assert get_apply_steps(make_context(no_apply=True)) == [step_1_write_documents]


def test_dry_run_prints_commands(make_context):
  ctx = make_context()
  warnings = []

  for step in get_apply_steps(ctx):
    step(ctx, warnings)

  output = printed(ctx)
  assert "[DRY RUN] Writing to" in output
  assert "disko --mode disko" in output
  assert "Writing secret" not in output
  assert "rm -f" not in output
  assert "nixos-generate-config --root /mnt" in output
  assert "nixos-install --root /mnt --no-root-passwd" in output
  assert "umount --recursive /mnt" in output
  assert warnings == []


def test_documents_are_written(make_context):
  ctx = make_context(dry=False)

  step_1_write_documents(ctx, [])

  with open(ctx.system_config_path, encoding="utf-8") as f:
    assert f.read() == ctx.configs.system_config
  with open(ctx.disk_config_path, encoding="utf-8") as f:
    assert f.read() == ctx.configs.disk_config


def test_flake_install(make_context, complete_state, tmp_path):
  (tmp_path / "flake.nix").write_text("{ }")
  complete_state.flake_path = f"{tmp_path}#nixbox"
  ctx = make_context(state=complete_state)

  step_1_write_documents(ctx, [])
  step_3_install_system(ctx, [])

  output = printed(ctx)
  assert "configuration.nix" not in output
  assert "--flake" in output
  assert f"{tmp_path}#nixbox" in output
  assert "nixos-generate-config" not in output


def test_root_only_install_warns(make_context, complete_state):
  complete_state.users = []
  complete_state.root_only_ack = True
  ctx = make_context(state=complete_state)
  warnings = []

  step_3_install_system(ctx, warnings)

  assert warnings == ["No user accounts configured; only root can log in"]


def test_partition_and_cleanup_quote_paths(make_context):
  ctx = make_context()

  step_2_partition_disks(ctx, [])
  step_4_cleanup(ctx, [])

  assert ctx.disk_config_path in printed(ctx)


def test_encrypted_layout_gets_a_key_file_only_while_partitioning(make_context, complete_state):
  complete_state.drives[0].partitions[0].encrypt = True
  complete_state.luks_passphrase = "correct horse"
  ctx = make_context(state=complete_state)

  step_2_partition_disks(ctx, [])

  output = printed(ctx)
  assert f"[DRY RUN] Writing secret to {LUKS_KEY_FILE}" in output
  assert output.index("Writing secret") < output.index("disko --mode disko") < output.index(f"rm -f {LUKS_KEY_FILE}")
  assert "correct horse" not in output


def test_key_file_is_removed_when_disko_fails(make_context, complete_state):
  complete_state.drives[0].partitions[0].encrypt = True
  complete_state.luks_passphrase = "correct horse"
  ctx = make_context(state=complete_state)
  commands = []

  def fake_cmd(command, dry_run, ui):
    commands.append(command)
    if command.startswith("disko"):
      raise CommandError(command, 1, "no such device")

  with patch("nixstart.apply.cmd", side_effect=fake_cmd), patch("nixstart.apply.write_secret") as mock_secret:
    with pytest.raises(CommandError):
      step_2_partition_disks(ctx, [])

  mock_secret.assert_called_once_with("correct horse", LUKS_KEY_FILE, True, ctx.ui)
  assert commands[-1] == f"rm -f {LUKS_KEY_FILE}"
