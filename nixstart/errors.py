"""
Exception types for nixstart.

Input and validation problems never raise; they are absorbed or rendered
in-page. The exceptions below are the ones allowed to unwind past the
wizard loop.
"""


class NixstartError(Exception):
  """Base class for all nixstart errors."""


class SynthesisError(NixstartError):
  """A selection value cannot be represented in a generated document."""

  def __init__(self, field: str, value: object, reason: str):
    self.field = field
    self.value = value
    self.reason = reason
    super().__init__(f"Cannot synthesize field '{field}' (value={value!r}): {reason}")


class RequirementsError(NixstartError):
  """Synthesis was attempted while required selections are still missing."""

  def __init__(self, missing: list[str]):
    self.missing = missing
    super().__init__(f"Missing required selections: {', '.join(missing)}")


class TerminalError(NixstartError):
  """The terminal could not be acquired, read or restored."""


class CommandError(NixstartError):
  """An external tool exited with a non-zero status."""

  def __init__(self, command: str, exit_code: int, stderr: str = ""):
    self.command = command
    self.exit_code = exit_code
    self.stderr = stderr
    message = f"Command '{command}' failed with exit code {exit_code}"
    if stderr.strip():
      message += f": {stderr.strip()}"
    super().__init__(message)
