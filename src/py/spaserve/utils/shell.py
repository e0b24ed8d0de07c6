import shutil
import subprocess  # nosec: B404
from pathlib import Path

# --
# # Shell Utils
#
# Runs external tools (like a JavaScript bundler) as part of a build.


class ShellCommandError(RuntimeError):
	"""Wrapper for a shell command error."""

	__slots__ = ["command", "status", "error"]

	def __init__(self, command: list[str], status: int, error: bytes):
		super().__init__()
		self.command = command
		self.status = status
		self.error = error

	def __str__(self) -> str:
		return f"{self.__class__.__name__}: '{' '.join(self.command)}', failed with status {self.status}: {self.error.decode('utf8', errors='replace')}"


def which(name: str) -> str | None:
	"""Returns the path to the given executable, if it is available."""
	return shutil.which(name)


def shell(
	command: list[str],
	cwd: Path | str | None = None,
	input: bytes | None = None,
) -> bytes:
	"""Runs a shell command, and returns the stdout as a byte output. Raises
	`FileNotFoundError` when the executable does not exist and
	`ShellCommandError` when it fails."""
	res = subprocess.run(  # nosec: B603
		command,
		stdout=subprocess.PIPE,
		stderr=subprocess.PIPE,
		input=input,
		cwd=str(cwd) if cwd else None,
	)
	if res.returncode == 0:
		return res.stdout
	else:
		raise ShellCommandError(command, res.returncode, res.stderr)


# EOF
