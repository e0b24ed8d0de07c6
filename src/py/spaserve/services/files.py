import asyncio
import os
from pathlib import Path
from typing import Mapping, NamedTuple
from urllib.parse import unquote

from ..config import FALLBACK
from ..features.cors import setCORSHeaders
from ..http.model import (
	Forbidden,
	HTTPRequest,
	HTTPRequestError,
	HTTPResponse,
	InternalError,
	NotFound,
)
from ..utils.files import CONTENT_TYPES, contentType, listFiles
from ..utils.logging import debug, error, info, logged, warning


class FileServiceConfig(NamedTuple):
	"""The immutable configuration of a file service, created once at startup."""

	root: Path
	fallback: str = FALLBACK
	contentTypes: Mapping[str, str] = CONTENT_TYPES
	cors: bool = True


def normpath(path: Path | str) -> Path:
	"""Returns the absolute, lexically normalized version of `path`. This
	does not touch the filesystem, so symlinks are not resolved."""
	return Path(os.path.normpath(os.path.abspath(path)))


def resolvePath(root: Path | str, path: str, fallback: str = FALLBACK) -> Path:
	"""Resolves the URL `path` to a local path within `root`, substituting the
	`fallback` file name for `/`. The URL path is percent-decoded and the
	result is normalized before it is checked against the root, so `..`
	segments, encoded slashes and duplicate slashes can't escape it.

	Raises `Forbidden` when the path would escape the root. No filesystem
	access is made."""
	base: Path = normpath(root)
	relative: str = fallback if path in ("", "/") else unquote(path)
	if "\x00" in relative:
		raise Forbidden(f"Path contains a null byte: {path!r}")
	local: Path = Path(os.path.normpath(os.path.join(base, relative.lstrip("/"))))
	# We compare components, so that `/srv/app-other` is not within `/srv/app`
	if local.parts[: len(parts := base.parts)] != parts:
		raise Forbidden(f"Path escapes the root directory: {path!r}")
	return local


def isFile(path: Path) -> bool:
	# `os.path.isfile` returns False instead of raising on stat errors
	return os.path.isfile(path)


class FileService:
	"""Serves the files of a root directory. Paths that don't match a regular
	file get the fallback file instead, which is what single-page
	applications expect from their server."""

	def __init__(
		self,
		root: str | Path | None = None,
		fallback: str = FALLBACK,
		*,
		contentTypes: Mapping[str, str] = CONTENT_TYPES,
		cors: bool = True,
	):
		self.config: FileServiceConfig = FileServiceConfig(
			root=normpath(os.getcwd() if root is None else root),
			fallback=fallback,
			contentTypes=contentTypes,
			cors=cors,
		)
		try:
			self._fallbackPath: Path = self.resolve("/")
		except Forbidden as e:
			raise ValueError(
				f"Fallback file must be within the root directory: {fallback}"
			) from e

	@property
	def root(self) -> Path:
		return self.config.root

	@property
	def fallbackPath(self) -> Path:
		return self._fallbackPath

	def resolve(self, path: str) -> Path:
		return resolvePath(self.config.root, path, self.config.fallback)

	async def locate(self, path: Path) -> Path:
		"""Returns the path to serve for the resolved `path`: the path itself
		when it is a regular file, the fallback file otherwise. Raises
		`NotFound` when the fallback is not there either."""
		if await asyncio.to_thread(isFile, path):
			return path
		fallback: Path = self.fallbackPath
		if await asyncio.to_thread(isFile, fallback):
			logged(debug) and debug(
				"Serving fallback", Path=str(path), Fallback=str(fallback)
			)
			return fallback
		raise NotFound(f"Neither {path} nor the fallback {fallback} exist")

	async def serve(self, request: HTTPRequest, path: Path) -> HTTPResponse:
		"""Reads the file at `path` and responds with its content. The file may
		have changed since it was located, in which case this raises an
		`InternalError`."""
		try:
			content: bytes = await asyncio.to_thread(path.read_bytes)
		except OSError as e:
			raise InternalError(f"Could not read file {path}: {e}") from e
		response = request.respondBytes(
			content, contentType(path, self.config.contentTypes)
		)
		return setCORSHeaders(response) if self.config.cors else response

	async def process(self, request: HTTPRequest) -> HTTPResponse:
		"""Processes any request as a GET, the method is not inspected."""
		try:
			path: Path = self.resolve(request.path)
			return await self.serve(request, await self.locate(path))
		except HTTPRequestError as e:
			return self.onError(request, e)

	def onError(self, request: HTTPRequest, e: HTTPRequestError) -> HTTPResponse:
		if isinstance(e, Forbidden):
			warning("Path traversal attempt rejected", Path=request.path)
		elif isinstance(e, NotFound):
			warning("File not found", Path=request.path)
		else:
			error(
				"Could not serve file",
				"READERR",
				Path=request.path,
				Cause=str(e.__cause__ or e.message),
			)
		return request.error(e.status, e.content, e.contentType)

	async def start(self, url: str) -> None:
		"""Checks the root directory and announces what's being served."""
		root: Path = self.config.root
		if not root.is_dir():
			error("Root directory does not exist", "NOROOT", Root=str(root))
			raise NotADirectoryError(f"Root directory does not exist: {root}")
		info("Serving files", icon="📁", Root=str(root))
		info("Default page", icon="🏠", Fallback=self.config.fallback)
		if not self.fallbackPath.is_file():
			warning(
				"Fallback file is missing, unknown paths will get a 404",
				Fallback=str(self.fallbackPath),
			)
		files: list[Path] = await asyncio.to_thread(listFiles, root)
		if files:
			info("Available files", Count=len(files))
			for p in files:
				info(f"  - {url}/{p.name}")

	async def stop(self) -> None:
		pass


# EOF
