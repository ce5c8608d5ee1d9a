"""
Lexical helpers for emitting Nix expressions.

Values are described with plain Python data and rendered deterministically:
  str           -> double-quoted string literal
  bool          -> true / false
  int           -> integer literal
  list / tuple  -> list, one element per line
  dict          -> attribute set, keys rendered in insertion order
  NixExpr       -> inserted verbatim (package references, function headers)

Dict keys are attribute paths: a str key is a single attribute name and a
tuple key is a dotted path, one segment per item. Segments that are not
plain identifiers are quoted.
"""

import re
from dataclasses import dataclass
from typing import Final

from nixstart.errors import SynthesisError

INDENT: Final[str] = "  "

KEYWORDS: Final[frozenset[str]] = frozenset(
  {"assert", "else", "if", "in", "inherit", "let", "or", "rec", "then", "with"}
)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_'-]*$")

_ESCAPES: Final[dict[str, str]] = {
  "\\": "\\\\",
  '"': '\\"',
  "\n": "\\n",
  "\r": "\\r",
  "\t": "\\t",
}


@dataclass(frozen=True)
class NixExpr:
  """A pre-rendered Nix expression inserted verbatim."""

  text: str


def is_identifier(name: str) -> bool:
  """Return True if name can be used unquoted as an attribute name."""
  return bool(_IDENTIFIER.fullmatch(name)) and name not in KEYWORDS


def nix_str(value: str, field: str) -> str:
  """
  Quote value as a Nix double-quoted string.

  Backslashes, quotes, interpolation openers and the common whitespace
  escapes are escaped. Any other control character cannot be written in a
  Nix string literal and raises SynthesisError naming the field.
  """
  out: list[str] = ['"']
  for i, char in enumerate(value):
    if char in _ESCAPES:
      out.append(_ESCAPES[char])

    elif char == "$" and value[i + 1 : i + 2] == "{":
      out.append("\\$")

    elif ord(char) < 0x20 or ord(char) == 0x7F:
      raise SynthesisError(field, value, f"control character U+{ord(char):04X} is not allowed")

    else:
      out.append(char)

  out.append('"')
  return "".join(out)


def attr_name(name: str, field: str) -> str:
  """Render a single attribute path segment, quoting it when needed."""
  if not name:
    raise SynthesisError(field, name, "attribute names must not be empty")
  return name if is_identifier(name) else nix_str(name, field)


def attr_path(key: str | tuple[str, ...], field: str) -> str:
  segments = [key] if isinstance(key, str) else list(key)
  return ".".join(attr_name(segment, field) for segment in segments)


def package_ref(name: str, field: str, prefix: str = "pkgs") -> NixExpr:
  """Reference a package attribute such as pkgs.firefox or pkgs.python3Packages.rich."""
  segments = name.split(".")
  if not name or not all(is_identifier(segment) for segment in segments):
    raise SynthesisError(field, name, "not a valid package attribute path")
  return NixExpr(f"{prefix}.{name}")


def render(value: object, field: str, depth: int = 0) -> str:
  """Render value as a Nix expression. field names the value in error messages."""
  match value:
    case NixExpr(text=text):
      return text

    case bool():
      return "true" if value else "false"

    case int():
      return str(value)

    case str():
      return nix_str(value, field)

    case list() | tuple():
      if not value:
        return "[ ]"
      inner = INDENT * (depth + 1)
      items = [f"{inner}{render(item, f'{field}[{i}]', depth + 1)}" for i, item in enumerate(value)]
      return "[\n" + "\n".join(items) + f"\n{INDENT * depth}]"

    case dict():
      if not value:
        return "{ }"
      inner = INDENT * (depth + 1)
      lines: list[str] = []
      for key, item in value.items():
        key_text = key if isinstance(key, str) else ".".join(key)
        child_field = f"{field}.{key_text}" if field else key_text
        lines.append(f"{inner}{attr_path(key, child_field)} = {render(item, child_field, depth + 1)};")
      return "{\n" + "\n".join(lines) + f"\n{INDENT * depth}}}"

    case None:
      return "null"

    case _:
      raise SynthesisError(field, value, f"unsupported value type {type(value).__name__}")


def render_module(body: dict[str, object], args: list[str] | None = None, comment: str | None = None) -> str:
  """Render a complete NixOS module file, optionally as a function of args."""
  parts: list[str] = []
  if comment:
    parts.extend(f"# {line}" if line else "#" for line in comment.splitlines())
    parts.append("")

  if args is not None:
    parts.append("{ " + ", ".join([*args, "..."]) + " }:")
    parts.append("")

  parts.append(render(body, ""))
  return "\n".join(parts) + "\n"
