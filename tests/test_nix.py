import pytest

from nixstart.errors import SynthesisError
from nixstart.nix import NixExpr, attr_path, is_identifier, nix_str, package_ref, render, render_module


def test_plain_strings_are_quoted():
  assert nix_str("nixbox", "hostname") == '"nixbox"'


def test_special_characters_are_escaped():
  assert nix_str('say "hi"\\', "f") == '"say \\"hi\\"\\\\"'
  assert nix_str("a\nb\tc", "f") == '"a\\nb\\tc"'


def test_interpolation_is_escaped():
  assert nix_str("${pkgs.evil}", "f") == '"\\${pkgs.evil}"'
  # A lone dollar sign is not an interpolation
  assert nix_str("cost $5", "f") == '"cost $5"'


def nix_unquote(literal: str) -> str:
  """Read back a double-quoted Nix string the way the Nix lexer does."""
  assert literal[0] == literal[-1] == '"'
  body = literal[1:-1]
  out: list[str] = []
  i = 0
  while i < len(body):
    char = body[i]
    assert char != '"', f"unescaped quote at {i}"
    assert body[i : i + 2] != "${", f"unescaped interpolation at {i}"
    if char == "\\":
      escaped = body[i + 1]
      out.append({"n": "\n", "r": "\r", "t": "\t"}.get(escaped, escaped))
      i += 2
    else:
      out.append(char)
      i += 1
  return "".join(out)


PRINTABLE_ASCII = "".join(chr(code) for code in range(0x20, 0x7F))


@pytest.mark.parametrize(
  "text",
  [
    PRINTABLE_ASCII,
    PRINTABLE_ASCII[::-1],
    "héllo wörld ß € 日本語 🦀  ",
    "${x} $${y} \\${z} $\\{ \\\\${w}",
    'end with backslash \\',
    '"\\"',
    "$",
    "tab\tline\nreturn\r",
  ],
)
def test_escaping_round_trips(text):
  assert nix_unquote(nix_str(text, "f")) == text


def test_every_printable_character_round_trips_alone():
  for char in PRINTABLE_ASCII:
    assert nix_unquote(nix_str(char, "f")) == char
    assert nix_unquote(nix_str(char + "{", "f")) == char + "{"


def test_control_characters_raise_with_field_name():
  with pytest.raises(SynthesisError) as excinfo:
    nix_str("bad\x07bell", "users.users.alice.description")

  assert excinfo.value.field == "users.users.alice.description"
  assert "U+0007" in str(excinfo.value)


def test_identifiers():
  assert is_identifier("systemd-boot")
  assert is_identifier("_private")
  assert not is_identifier("1st")
  assert not is_identifier("with")
  assert not is_identifier("has.dot")


def test_attr_path_quotes_segments_that_need_it():
  assert attr_path(("boot", "loader", "systemd-boot", "enable"), "f") == "boot.loader.systemd-boot.enable"
  assert attr_path(("users", "users", "first.last"), "f") == 'users.users."first.last"'
  assert attr_path("LC_TIME", "f") == "LC_TIME"


def test_empty_attribute_name_raises():
  with pytest.raises(SynthesisError):
    attr_path(("users", ""), "users")


def test_package_ref():
  assert package_ref("python3Packages.rich", "pkgs").text == "pkgs.python3Packages.rich"

  with pytest.raises(SynthesisError):
    package_ref("rm -rf /", "environment.systemPackages[0]")


def test_render_scalars():
  assert render(True, "f") == "true"
  assert render(False, "f") == "false"
  assert render(42, "f") == "42"
  assert render(None, "f") == "null"
  assert render(NixExpr("pkgs.vim"), "f") == "pkgs.vim"


def test_render_nested_values():
  value = {"a": 1, ("b", "c"): ["x", NixExpr("pkgs.y")], "d": {}}

  assert render(value, "") == "\n".join(
    [
      "{",
      "  a = 1;",
      "  b.c = [",
      '    "x"',
      "    pkgs.y",
      "  ];",
      "  d = { };",
      "}",
    ]
  )


def test_render_rejects_unknown_types():
  with pytest.raises(SynthesisError) as excinfo:
    render({"a": {"b": 1.5}}, "")

  assert excinfo.value.field == "a.b"


def test_render_module_with_args_and_comment():
  text = render_module({"x": True}, args=["config", "pkgs"], comment="Line one\n\nLine three")

  assert text == "# Line one\n#\n# Line three\n\n{ config, pkgs, ... }:\n\n{\n  x = true;\n}\n"
