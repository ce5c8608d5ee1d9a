from __future__ import annotations

import os

from nixstart.state import Configs, SelectionState
from nixstart.tui import TUI
from nixstart.types import ContextConfig

MOUNT_ROOT = "/mnt"


class InstallerContext:
  """
  Holds what the apply steps need once the wizard has finished.

  The selections are final at this point; steps only read them together
  with the synthesized documents.
  """

  def __init__(self, config: ContextConfig, state: SelectionState, configs: Configs) -> None:
    self.config: ContextConfig = config
    self.state: SelectionState = state
    self.configs: Configs = configs
    self.ui: TUI | None = None

  @property
  def dry(self) -> bool:
    """Access dry run flag from config."""
    return self.config.dry

  @property
  def flake(self) -> str | None:
    return self.configs.flake_path

  @property
  def system_config_path(self) -> str:
    return os.path.join(self.config.output, "configuration.nix")

  @property
  def disk_config_path(self) -> str:
    return os.path.join(self.config.output, "disko-config.nix")
