from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from rich.layout import Layout
from rich.text import Text

from nixstart import hardware
from nixstart.hardware import BlockDevice
from nixstart.profiles import InstallationProfile, ProfileLoader
from nixstart.types import OptionsConfig


@dataclass
class Services:
  """Catalogues and collaborators the pages need. Shared by every page of one run."""

  options: OptionsConfig
  disks: list[BlockDevice] = field(default_factory=list)
  hash_password: Callable[[str], str] = hardware.hash_password
  load_profile: Callable[[str], InstallationProfile] = ProfileLoader.load


def split_footer(area: Layout) -> tuple[Layout, Layout]:
  """Split a page area into its main region and a one-line footer."""
  area.split_column(Layout(name="main", ratio=1), Layout(name="footer", size=1))
  main, footer = area.children
  return main, footer


def footer_text(hints: list[tuple[str, str]], error: str | None = None) -> Text:
  """Key hints such as "Enter select  Esc back", or an error message when one is pending."""
  if error:
    return Text(f" {error}", style="bold red")

  text = Text(" ")
  for key, description in hints:
    text.append(key, style="bold yellow")
    text.append(f" {description}   ", style="dim")
  return text
