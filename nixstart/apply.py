"""
Apply steps.

The wizard itself never touches the disks. Once the documents exist, these
steps hand them to disko and nixos-install, in order.
"""

import logging
import shlex
from collections.abc import Callable

from nixstart.context import MOUNT_ROOT, InstallerContext
from nixstart.state import LUKS_KEY_FILE
from nixstart.utils import cmd, write, write_secret

logger = logging.getLogger(__name__)

Step = Callable[[InstallerContext, list[str]], None]


def step_1_write_documents(ctx: InstallerContext, _warnings: list[str]) -> None:
  assert ctx.ui is not None
  write(ctx.configs.disk_config, ctx.disk_config_path, ctx.dry, ctx.ui)
  logger.info("Wrote %s", ctx.disk_config_path)

  if ctx.configs.system_config is not None:
    write(ctx.configs.system_config, ctx.system_config_path, ctx.dry, ctx.ui)
    logger.info("Wrote %s", ctx.system_config_path)


def step_2_partition_disks(ctx: InstallerContext, _warnings: list[str]) -> None:
  assert ctx.ui is not None
  devices = ", ".join(disk.device for disk in ctx.state.drives)
  logger.info("Partitioning %s", devices)

  if not ctx.state.has_encryption:
    cmd(f"disko --mode disko {shlex.quote(ctx.disk_config_path)}", ctx.dry, ctx.ui)
    return

  assert ctx.state.luks_passphrase is not None
  write_secret(ctx.state.luks_passphrase, LUKS_KEY_FILE, ctx.dry, ctx.ui)
  try:
    cmd(f"disko --mode disko {shlex.quote(ctx.disk_config_path)}", ctx.dry, ctx.ui)
  finally:
    # The key is only read while formatting; boot asks for the passphrase
    cmd(f"rm -f {LUKS_KEY_FILE}", ctx.dry, ctx.ui)


def step_3_install_system(ctx: InstallerContext, warnings: list[str]) -> None:
  assert ctx.ui is not None
  root = MOUNT_ROOT

  if ctx.flake:
    logger.info("Installing from flake %s", ctx.flake)
    cmd(f"nixos-install --root {root} --no-root-passwd --flake {shlex.quote(ctx.flake)}", ctx.dry, ctx.ui)
    return

  # Detects the filesystems disko just mounted into hardware-configuration.nix
  cmd(f"nixos-generate-config --root {root}", ctx.dry, ctx.ui)

  assert ctx.configs.system_config is not None
  write(ctx.configs.system_config, f"{root}/etc/nixos/configuration.nix", ctx.dry, ctx.ui)
  write(ctx.configs.disk_config, f"{root}/etc/nixos/disko-config.nix", ctx.dry, ctx.ui)

  if not ctx.state.users:
    warnings.append("No user accounts configured; only root can log in")

  logger.info("Running nixos-install")
  cmd(f"nixos-install --root {root} --no-root-passwd", ctx.dry, ctx.ui)


def step_4_cleanup(ctx: InstallerContext, _warnings: list[str]) -> None:
  assert ctx.ui is not None
  cmd(f"umount --recursive {MOUNT_ROOT}", ctx.dry, ctx.ui)


def get_apply_steps(ctx: InstallerContext) -> list[Step]:
  """Get the steps to run. With --no-apply only the documents are written."""
  if ctx.config.no_apply:
    return [step_1_write_documents]

  return [
    step_1_write_documents,
    step_2_partition_disks,
    step_3_install_system,
    step_4_cleanup,
  ]
