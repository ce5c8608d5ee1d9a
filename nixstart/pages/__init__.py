"""
Wizard pages.

Each page implements the Page protocol from nixstart.engine. Pages never
reference each other: moving forward means building the next page and
returning it in a Push signal.
"""

from nixstart.pages.choice import ChoicePage, KernelsPage, TogglesPage
from nixstart.pages.common import Services
from nixstart.pages.drives import DiskLayoutPage, DrivesPage, PartitionEditPage
from nixstart.pages.menu import MainMenu
from nixstart.pages.preview import ConfigPreview
from nixstart.pages.text import EncryptionPage, FlakePage, HostnamePage, PackagesPage, RootPasswordPage
from nixstart.pages.users import UserEditPage, UsersPage

__all__ = [
  "ChoicePage",
  "ConfigPreview",
  "DiskLayoutPage",
  "DrivesPage",
  "EncryptionPage",
  "FlakePage",
  "HostnamePage",
  "KernelsPage",
  "MainMenu",
  "PackagesPage",
  "PartitionEditPage",
  "RootPasswordPage",
  "Services",
  "TogglesPage",
  "UserEditPage",
  "UsersPage",
]
