from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from typing import Final

from nixstart.types import Bootloader, DefaultsConfig, PartitionScheme

ESP_SIZE: Final[str] = "512M"
SWAP_SIZE: Final[str] = "8G"

# disko reads the passphrase of encrypted partitions from here while formatting
LUKS_KEY_FILE: Final[str] = "/tmp/nixstart-luks.key"

# Mount points the bootloader reads before any LUKS device is open
BOOT_MOUNTS: Final[tuple[str, ...]] = ("/boot", "/boot/efi")

# Requirement names paired with the label shown to the operator.
REQUIREMENT_LABELS: Final[dict[str, str]] = {
  "root_passwd_hash": "Root Password",
  "users": "At least one User Account (or acknowledge a root-only install)",
  "drives": "Drive Configuration",
  "partitions": "At least one partition on every drive",
  "bootloader": "Bootloader",
  "luks_passphrase": "Encryption passphrase (for encrypted partitions)",
}


@dataclass
class Partition:
  """A partition in provisioning order. size is "512M", "20G" or "100%" for the rest of the disk."""

  mount_point: str | None
  filesystem: str
  size: str
  label: str | None = None
  encrypt: bool = False

  @property
  def is_boot(self) -> bool:
    return self.mount_point in BOOT_MOUNTS

  @property
  def is_esp(self) -> bool:
    return self.filesystem == "vfat" and self.is_boot


@dataclass
class Disk:
  device: str
  scheme: PartitionScheme = PartitionScheme.GPT
  partitions: list[Partition] = field(default_factory=list)

  @property
  def name(self) -> str:
    """Device basename, e.g. "sda" for /dev/sda."""
    return self.device.rstrip("/").rsplit("/", 1)[-1]


@dataclass
class User:
  username: str
  password_hash: str
  groups: list[str] = field(default_factory=list)
  shell: str = "bash"
  sudo: bool = False


def default_layout(device: str, scheme: PartitionScheme = PartitionScheme.GPT, swap: bool = False) -> Disk:
  """
  The layout offered by the drives page: an ESP on GPT disks, an optional
  swap partition and an ext4 root filling the rest of the disk.
  """
  partitions: list[Partition] = []
  if scheme is PartitionScheme.GPT:
    partitions.append(Partition(mount_point="/boot", filesystem="vfat", size=ESP_SIZE))
  if swap:
    partitions.append(Partition(mount_point=None, filesystem="swap", size=SWAP_SIZE))
  partitions.append(Partition(mount_point="/", filesystem="ext4", size="100%"))
  return Disk(device=device, scheme=scheme, partitions=partitions)


@dataclass(frozen=True)
class Configs:
  """Documents produced by synthesis. system_config is None when a flake supersedes it."""

  system_config: str | None
  disk_config: str
  flake_path: str | None = None


@dataclass
class SelectionState:
  """
  Holds every choice made by the operator.

  A single instance lives for the whole wizard run. Pages mutate it while
  they handle input; synthesis reads a finished copy and never mutates it.
  """

  hostname: str = "nixos"
  timezone: str = "UTC"
  locale: str = "en_US.UTF-8"
  language: str = "en_US.UTF-8"
  keyboard_layout: str = "us"
  bootloader: str | None = Bootloader.SYSTEMD_BOOT.value
  desktop_environment: str | None = None
  greeter: str | None = None
  profile: str | None = None
  network_backend: str = "networkmanager"
  audio_backend: str = "pipewire"
  flakes_enabled: bool = False
  swap_enabled: bool = False
  flatpak_enabled: bool = False
  ipv6_enabled: bool = True
  state_version: str = "24.11"

  drives: list[Disk] = field(default_factory=list)
  users: list[User] = field(default_factory=list)
  root_passwd_hash: str | None = None
  root_only_ack: bool = False
  system_pkgs: list[str] = field(default_factory=list)
  kernels: list[str] = field(default_factory=list)
  flake_path: str | None = None
  # Kept in memory only, never written to a state file
  luks_passphrase: str | None = field(default=None, repr=False)

  @classmethod
  def from_defaults(cls, defaults: DefaultsConfig) -> SelectionState:
    """Create a state seeded with the defaults loaded from defaults.json."""
    return cls(
      hostname=defaults["hostname"],
      timezone=defaults["timezone"],
      locale=defaults["locale"],
      language=defaults["language"],
      keyboard_layout=defaults["keymap"],
      bootloader=defaults["bootloader"],
      network_backend=defaults["network_backend"],
      audio_backend=defaults["audio_backend"],
      state_version=defaults["state_version"],
    )

  # ---------------------------------------------------------------------------
  # Mutation helpers
  # ---------------------------------------------------------------------------

  def add_package(self, name: str) -> bool:
    """Add a package name, collapsing duplicates. Returns True if it was new."""
    name = name.strip()
    if not name or name in self.system_pkgs:
      return False
    self.system_pkgs.append(name)
    return True

  def remove_package(self, name: str) -> None:
    if name in self.system_pkgs:
      self.system_pkgs.remove(name)

  def find_user(self, username: str) -> User | None:
    return next((user for user in self.users if user.username == username), None)

  def upsert_user(self, user: User) -> None:
    """Replace the user with the same name, or append a new one."""
    for i, existing in enumerate(self.users):
      if existing.username == user.username:
        self.users[i] = user
        return
    self.users.append(user)

  def remove_user(self, username: str) -> None:
    self.users = [user for user in self.users if user.username != username]

  def find_disk(self, device: str) -> Disk | None:
    return next((disk for disk in self.drives if disk.device == device), None)

  def upsert_disk(self, disk: Disk) -> None:
    """Replace the disk with the same device in place, keeping provisioning order, or append it."""
    for i, existing in enumerate(self.drives):
      if existing.device == disk.device:
        self.drives[i] = disk
        return
    self.drives.append(disk)

  def remove_disk(self, device: str) -> None:
    self.drives = [disk for disk in self.drives if disk.device != device]

  def clone(self) -> SelectionState:
    return copy.deepcopy(self)

  @property
  def has_encryption(self) -> bool:
    return any(part.encrypt for disk in self.drives for part in disk.partitions)

  # ---------------------------------------------------------------------------
  # Requirements
  # ---------------------------------------------------------------------------

  def missing_requirements(self) -> list[str]:
    """Return the names of unmet requirements, in REQUIREMENT_LABELS order."""
    valid_bootloaders = {b.value for b in Bootloader}

    # fmt: off
    checks = [
      ("root_passwd_hash", bool(self.root_passwd_hash)),
      ("users", bool(self.users) or self.root_only_ack),
      ("drives", bool(self.drives)),
      ("partitions", not self.drives or all(disk.partitions for disk in self.drives)),
      ("bootloader", self.bootloader in valid_bootloaders),
      ("luks_passphrase", bool(self.luks_passphrase) or not self.has_encryption),
    ]
    # fmt: on

    return [name for name, ok in checks if not ok]

  def has_all_requirements(self) -> bool:
    return not self.missing_requirements()

  # ---------------------------------------------------------------------------
  # Plain data conversion
  # ---------------------------------------------------------------------------

  def to_dict(self) -> dict[str, object]:
    data = asdict(self)
    del data["luks_passphrase"]
    for disk in data["drives"]:
      disk["scheme"] = disk["scheme"].value
    return data

  @classmethod
  def from_dict(cls, data: dict[str, object], base: SelectionState | None = None) -> SelectionState:
    """
    Build a state from plain JSON data.

    Keys missing from data keep the values of base (or the dataclass
    defaults). Unknown keys are ignored.
    """
    state = base.clone() if base else cls()

    scalars = [
      "hostname", "timezone", "locale", "language", "keyboard_layout", "bootloader",
      "desktop_environment", "greeter", "profile", "network_backend", "audio_backend",
      "flakes_enabled", "swap_enabled", "flatpak_enabled", "ipv6_enabled", "state_version",
      "root_passwd_hash", "root_only_ack", "flake_path", "luks_passphrase",
    ]  # fmt: skip

    for name in (n for n in scalars if n in data):
      setattr(state, name, data[name])

    if isinstance(data.get("drives"), list):
      state.drives = [
        Disk(
          device=str(disk["device"]),
          scheme=PartitionScheme(disk.get("scheme", PartitionScheme.GPT.value)),
          partitions=[Partition(**part) for part in disk.get("partitions", [])],
        )
        for disk in data["drives"]
      ]

    if isinstance(data.get("users"), list):
      state.users = [User(**user) for user in data["users"]]

    if isinstance(data.get("kernels"), list):
      state.kernels = [str(k) for k in data["kernels"]]

    if isinstance(data.get("system_pkgs"), list):
      state.system_pkgs = []
      for pkg in data["system_pkgs"]:
        state.add_package(str(pkg))

    return state
