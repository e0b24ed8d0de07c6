import os
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

DEFAULT_CONTENT_TYPE: str = "application/octet-stream"

# Extensions are lowercase and include the leading dot. The table is
# read-only once the module is loaded.
CONTENT_TYPES: Mapping[str, str] = MappingProxyType(
	{
		".html": "text/html",
		".htm": "text/html",
		".js": "text/javascript",
		".mjs": "text/javascript",
		".css": "text/css",
		".json": "application/json",
		".map": "application/json",
		".txt": "text/plain",
		".png": "image/png",
		".jpg": "image/jpeg",
		".jpeg": "image/jpeg",
		".gif": "image/gif",
		".svg": "image/svg+xml",
		".ico": "image/x-icon",
		".webp": "image/webp",
		".woff": "font/woff",
		".woff2": "font/woff2",
	}
)


def extension(path: Path | str) -> str:
	"""Returns the lowercase extension of the path, with its leading dot,
	or an empty string."""
	return os.path.splitext(str(path))[1].lower()


def contentType(path: Path | str, types: Mapping[str, str] = CONTENT_TYPES) -> str:
	"""Returns the content type for the given path, based on its extension"""
	return types.get(extension(path), DEFAULT_CONTENT_TYPE)


def listFiles(
	path: Path | str, suffixes: tuple[str, ...] | None = None
) -> list[Path]:
	"""Lists the non-hidden regular files directly within `path`, sorted by
	name, optionally restricted to the given (lowercase) suffixes."""
	return [
		_
		for _ in sorted(Path(path).iterdir())
		if not _.name.startswith(".")
		and _.is_file()
		and (suffixes is None or _.name.lower().endswith(suffixes))
	]


# EOF
