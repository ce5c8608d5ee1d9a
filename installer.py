#!/usr/bin/env python3

import argparse
import json
import logging
import sys
from argparse import Namespace
from dataclasses import replace
from textwrap import dedent
from typing import override

from rich.console import Console

from nixstart.apply import get_apply_steps
from nixstart.context import InstallerContext
from nixstart.engine import Navigator
from nixstart.errors import CommandError, RequirementsError, SynthesisError, TerminalError
from nixstart.hardware import BlockDevice, check_system_requirements, format_nix, list_disks
from nixstart.logger import DEFAULT_LOG_FILE, console_logging_suspended, setup_logging
from nixstart.pages import MainMenu, Services
from nixstart.profiles import ProfileLoader
from nixstart.state import REQUIREMENT_LABELS, Configs, SelectionState
from nixstart.synthesis import synthesize
from nixstart.terminal import TerminalBackend
from nixstart.tui import TUI
from nixstart.types import ContextConfig, DefaultsConfig
from nixstart.utils import format_step_name, load_defaults, load_options
from nixstart.validations import validate_cli_arguments

console = Console()
logger = logging.getLogger("nixstart.installer")

VERSION = "nixstart 0.1.0"
DEFAULT_OUTPUT = "/tmp/nixstart"


class IndentedHelpFormatter(argparse.RawDescriptionHelpFormatter):
  def __init__(self, prog: str, **kwargs) -> None:
    super().__init__(prog, max_help_position=30, width=80, **kwargs)

  @override
  def _format_action_invocation(self, action: argparse.Action) -> str:
    options = action.option_strings
    if not options:
      return super()._format_action_invocation(action)

    parts: list[str] = []
    if len(options) == 1:
      parts.append(f"{'':4}{options[0]}")

    else:
      parts.append(f"{', '.join(options)}")

    if action.nargs != 0:
      default_metavar = self._get_default_metavar_for_optional(action)
      parts[-1] += f" {self._format_args(action, default_metavar)}"

    return parts[-1]


def _create_argument_parser(defaults: DefaultsConfig) -> argparse.ArgumentParser:
  """Create and configure the argument parser."""
  parser = argparse.ArgumentParser(
    formatter_class=IndentedHelpFormatter,
    description=dedent("""
      A full-screen terminal wizard for installing NixOS.

      Walk through disks, users, locale, desktop and packages, review the
      generated configuration.nix and disko layout, then let disko and
      nixos-install apply them.
    """),
    epilog=dedent("""
      Examples:
        %(prog)s --dry                              # Preview without touching disks
        %(prog)s --profile desktop                  # Start from an embedded profile
        %(prog)s --state state.json --no-apply      # Generate documents only
        %(prog)s --flake /etc/nixos#laptop          # Install an existing flake
    """),
  )

  _ = parser.add_argument(
    "-d",
    "--dry",
    action="store_true",
    help="preview apply steps without executing commands or writing files",
    dest="dry",
  )

  _ = parser.add_argument(
    "-o",
    "--output",
    metavar="DIR",
    type=str,
    default=DEFAULT_OUTPUT,
    help="directory for the generated documents [default: %(default)s]",
    dest="output",
  )

  _ = parser.add_argument(
    "-p",
    "--profile",
    metavar="PROFILE",
    type=str,
    help="load installation profile by name, file path, or HTTP URL",
    dest="profile",
  )

  _ = parser.add_argument(
    "-s",
    "--state",
    metavar="FILE",
    type=str,
    help="skip the wizard and read the selections from a JSON file",
    dest="state_file",
  )

  _ = parser.add_argument(
    "-f",
    "--flake",
    metavar="PATH",
    type=str,
    help="install an existing flake instead of the generated configuration",
    dest="flake",
  )

  _ = parser.add_argument(
    "--hostname",
    metavar="HOSTNAME",
    type=str,
    help=f"system hostname [default: {defaults['hostname']}]",
    dest="hostname",
  )

  _ = parser.add_argument(
    "-t",
    "--timezone",
    metavar="TIMEZONE",
    type=str,
    help=f"system timezone in Region/City format [default: {defaults['timezone']}]",
    dest="timezone",
  )

  _ = parser.add_argument(
    "--locale",
    metavar="LOCALE",
    type=str,
    help=f"system locale [default: {defaults['locale']}]",
    dest="locale",
  )

  _ = parser.add_argument(
    "-k",
    "--keymap",
    metavar="KEYMAP",
    type=str,
    help=f"keyboard layout for the system [default: {defaults['keymap']}]",
    dest="keymap",
  )

  _ = parser.add_argument(
    "--log-file",
    metavar="PATH",
    type=str,
    default=DEFAULT_LOG_FILE,
    help="write the debug log to PATH [default: %(default)s]",
    dest="log_file",
  )

  _ = parser.add_argument(
    "-v",
    "--verbose",
    action="store_true",
    help="show debug messages on the console",
    dest="verbose",
  )

  _ = parser.add_argument(
    "--no-apply",
    action="store_true",
    help="write the documents and stop before partitioning",
    dest="no_apply",
  )

  _ = parser.add_argument("--version", action="version", version=VERSION)

  return parser


def _create_context_config(args: Namespace) -> ContextConfig:
  """Create a typed ContextConfig from an argparse Namespace."""
  return ContextConfig(
    dry=bool(getattr(args, "dry", False)),
    output=str(getattr(args, "output", DEFAULT_OUTPUT)),
    log_file=str(getattr(args, "log_file", DEFAULT_LOG_FILE)),
    verbose=bool(getattr(args, "verbose", False)),
    no_apply=bool(getattr(args, "no_apply", False)),
    hostname=getattr(args, "hostname", None),
    timezone=getattr(args, "timezone", None),
    locale=getattr(args, "locale", None),
    keymap=getattr(args, "keymap", None),
    profile=getattr(args, "profile", None),
    state_file=getattr(args, "state_file", None),
    flake=getattr(args, "flake", None),
  )


def _initial_state(config: ContextConfig, defaults: DefaultsConfig) -> SelectionState:
  """Defaults, then the profile, then the state file, then explicit command line values."""
  state = SelectionState.from_defaults(defaults)

  if config.profile:
    try:
      ProfileLoader.load(config.profile).apply(state)
    except ValueError as e:
      console.print(f"\n[prompt.invalid]Failed to load profile: {e}[/]")
      sys.exit(1)

  if config.state_file:
    try:
      with open(config.state_file, "r", encoding="utf-8") as f:
        state = SelectionState.from_dict(json.load(f), base=state)
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
      console.print(f"\n[prompt.invalid]Failed to load state file: {e}[/]")
      sys.exit(1)

  # fmt: off
  overrides = {
    "hostname": config.hostname,
    "timezone": config.timezone,
    "locale": config.locale,
    "keyboard_layout": config.keymap,
    "flake_path": config.flake,
  }
  # fmt: on

  for field, value in overrides.items():
    if value is not None:
      setattr(state, field, value)

  return state


def _enumerate_disks(dry: bool) -> list[BlockDevice]:
  try:
    return list_disks()
  except (CommandError, OSError) as e:
    if not dry:
      console.print(f"\n[prompt.invalid]Cannot list disks: {e}[/]")
      sys.exit(1)
    logger.warning("Cannot list disks in dry run: %s", e)
    return []


def _run_wizard(state: SelectionState, config: ContextConfig) -> Configs | None:
  """Run the full-screen wizard. Returns the reviewed documents, or None when the operator aborted."""
  services = Services(options=load_options(), disks=_enumerate_disks(config.dry))
  navigator = Navigator(state, MainMenu(services))

  try:
    with console_logging_suspended(), TerminalBackend(console) as backend:
      navigator.run(backend)

  except TerminalError as e:
    console.print(f"\n[prompt.invalid]Terminal error: {e}[/]")
    sys.exit(1)

  except KeyboardInterrupt:
    logger.info("Wizard interrupted")
    return None

  logger.info("Wizard finished: %s", navigator.exit_reason.value if navigator.exit_reason else "unknown")
  return navigator.configs if navigator.completed else None


def _synthesize(state: SelectionState) -> Configs:
  try:
    return synthesize(state)

  except RequirementsError as e:
    console.print("\n[prompt.invalid]The selections are incomplete:[/]")
    console.print("\n".join(f" • {REQUIREMENT_LABELS.get(name, name)}" for name in e.missing))
    sys.exit(1)

  except SynthesisError as e:
    console.print(f"\n[prompt.invalid]{e}[/]")
    logger.exception("Synthesis failed")
    sys.exit(1)


def _format(configs: Configs) -> Configs:
  # nixfmt only changes presentation
  system = format_nix(configs.system_config) if configs.system_config is not None else None
  return replace(configs, system_config=system, disk_config=format_nix(configs.disk_config))


def _run_installation(ctx: InstallerContext, ui: TUI, warnings: list[str]) -> None:
  """Run the apply steps with proper error handling."""
  steps = get_apply_steps(ctx)
  total_steps = len(steps)
  ui.initialize()

  for i, step in enumerate(steps, start=1):
    step_name = format_step_name(step.__name__)

    filled = "▓" * i
    empty = "░" * (total_steps - i)
    progress_bar = f"[{filled}{empty}]"
    ui.update_status(f"{progress_bar} {step_name} · Step {i}/{total_steps}", step_name)

    try:
      step(ctx, warnings)

    except KeyboardInterrupt:
      ui.cleanup()
      console.print("\n\n[prompt.invalid]Installation interrupted by user. Exiting...[/]")
      sys.exit(130)

    except Exception as e:
      ui.cleanup()
      logger.exception("Step %s failed", step_name)
      console.print(f"\n[prompt.invalid]Step '{step_name}' failed with error: {e}[/]")
      console.print("\n[prompt.invalid]Installation cannot continue.[/]")
      if ctx.dry:
        console.print("\n[prompt.invalid]This error occurred during dry run - actual installation might fail.[/]")
      sys.exit(1)

  # Clear status line when installation completes
  ui.cleanup()


def main() -> None:
  """Main entry point for the installer."""
  warnings: list[str] = []
  defaults = load_defaults()
  parser = _create_argument_parser(defaults)
  config = _create_context_config(parser.parse_args())

  errors = validate_cli_arguments(
    hostname=config.hostname,
    timezone=config.timezone,
    locale=config.locale,
    profile=config.profile,
    flake=config.flake,
    state_file=config.state_file,
  )

  if errors:
    console.print("\n[prompt.invalid]Invalid arguments provided:[/]")
    console.print("\n".join(f" • {err}" for err in errors))
    console.print("\n[yellow]Use --help for valid options[/]")
    sys.exit(1)

  setup_logging(config.log_file, config.verbose)
  logger.debug("Starting with %s", config)

  if not config.dry:
    check_system_requirements()

  state = _initial_state(config, defaults)

  if config.state_file:
    configs = _synthesize(state)
  else:
    # The documents the operator reviewed are the ones installed
    configs = _run_wizard(state, config)
    if configs is None:
      console.print("\n[bold red]Installation aborted. No changes were made to the system.[/]")
      sys.exit(0)

  ctx = InstallerContext(config, state, _format(configs))
  ctx.ui = TUI(dry_mode=config.dry)

  if config.dry:
    console.print("[bold yellow]DRY RUN MODE[/] - No actual changes will be made to your system")
    console.print()

  _run_installation(ctx, ctx.ui, warnings)

  console.print("\n")
  if warnings:
    console.print("[bold yellow]Warnings:[/]")
    for warning in warnings:
      console.print(f" • {warning}")
    console.print()

  if config.dry:
    console.print("[bold green]Dry run completed successfully![/]")
    console.print("[bold green]Run without --dry flag to perform actual installation.[/]")

  elif config.no_apply:
    console.print(f"[bold green]Documents written to {config.output}[/]")

  else:
    console.print("[bold green]Installation completed successfully![/]")
    console.print("[bold green]You can now reboot your system.[/]")

  console.print()


if __name__ == "__main__":
  try:
    main()

  except KeyboardInterrupt:
    console.print("\n[prompt.invalid]Installation interrupted. Exiting...[/]")
    sys.exit(130)

  except Exception as e:
    console.print(f"\n[prompt.invalid]Fatal error: {e}[/]")
    sys.exit(1)
