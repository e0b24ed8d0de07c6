import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import (
	Any,
	ClassVar,
	NamedTuple,
	TypeAlias,
	Union,
)

from ..utils.io import DEFAULT_ENCODING
from .api import ResponseFactory
from .status import HTTP_STATUS

# -----------------------------------------------------------------------------
#
# HELPERS
#
# -----------------------------------------------------------------------------


@lru_cache(maxsize=1024)
def headername(name: str) -> str:
	"""Normalizes the header name as `Kebab-Case`."""
	return "-".join(_.capitalize() for _ in name.strip().split("-"))


# -----------------------------------------------------------------------------
#
# DATA MODEL
#
# -----------------------------------------------------------------------------


class HTTPRequestLine(NamedTuple):
	"""Represents a request status line"""

	method: str
	path: str
	query: str
	protocol: str


class HTTPHeaders(NamedTuple):
	"""Wraps HTTP headers, keeping key information for response/request processing."""

	headers: dict[str, str]
	contentType: str | None = None
	contentLength: int | None = None


class HTTPProcessingStatus(Enum):
	"""Internal parser/processor state management"""

	Processing = 0
	Body = 1
	Complete = 2
	Timeout = 10
	NoData = 11
	BadFormat = 12


# Type alias for what the parser produces
HTTPAtom: TypeAlias = Union[
	HTTPRequestLine,
	HTTPHeaders,
	HTTPProcessingStatus,
	"HTTPRequest",
]

# -----------------------------------------------------------------------------
#
# ERRORS
#
# -----------------------------------------------------------------------------


class HTTPRequestError(Exception):
	"""Raised while processing a request to produce an error response. The
	`message` is meant for the logs, the `content` is what the client gets."""

	STATUS: ClassVar[int] = 500
	CONTENT: ClassVar[str] = "Internal Server Error"

	def __init__(
		self,
		message: str,
		status: int | None = None,
		content: str | None = None,
		contentType: str = "text/plain",
	):
		super().__init__(message)
		self.message: str = message
		self.status: int = self.STATUS if status is None else status
		self.content: str = self.CONTENT if content is None else content
		self.contentType: str = contentType


class Forbidden(HTTPRequestError):
	"""The requested path escapes the root directory."""

	STATUS = 403
	CONTENT = "Forbidden"


class NotFound(HTTPRequestError):
	"""Neither the requested file nor the fallback file exist."""

	STATUS = 404
	CONTENT = "File not found"


class InternalError(HTTPRequestError):
	"""A file could not be read after it was found."""

	STATUS = 500
	CONTENT = "Internal Server Error"


# -----------------------------------------------------------------------------
#
# BODY
#
# -----------------------------------------------------------------------------


class HTTPBodyBlob(NamedTuple):
	"""Represents a whole body as bytes."""

	payload: bytes = b""
	length: int = 0

	@staticmethod
	def FromBytes(data: bytes) -> "HTTPBodyBlob":
		return HTTPBodyBlob(payload=data, length=len(data))


class HTTPBodyWriter(ABC):
	"""A generic writer for response heads and bodies."""

	__slots__ = ["written"]

	def __init__(self) -> None:
		self.written: int = 0

	async def write(self, body: HTTPBodyBlob | bytes | None) -> bool:
		"""Writes the given type of body."""
		if isinstance(body, bytes):
			return await self._write(body)
		elif isinstance(body, HTTPBodyBlob):
			return await self._write(body.payload)
		elif body is None:
			return True
		else:
			raise ValueError(f"Unsupported body format: {body}")

	async def _write(self, chunk: bytes) -> bool:
		if chunk:
			await self._writeBytes(chunk)
			self.written += len(chunk)
		return True

	@abstractmethod
	async def _writeBytes(self, chunk: bytes) -> None: ...


# -----------------------------------------------------------------------------
#
# REQUESTS
#
# -----------------------------------------------------------------------------


class HTTPRequest(ResponseFactory["HTTPResponse"]):
	"""Represents an HTTP requests, which also acts as a factory for
	responses."""

	__slots__ = [
		"protocol",
		"method",
		"path",
		"query",
		"arrivedAt",
		"_headers",
	]

	def __init__(
		self,
		method: str,
		path: str,
		query: str = "",
		headers: HTTPHeaders | None = None,
		protocol: str = "HTTP/1.1",
		arrivedAt: float | None = None,
	):
		super().__init__()
		self.method: str = method
		self.path: str = path
		self.query: str = query
		self.protocol: str = protocol
		self.arrivedAt: float = time.time() if arrivedAt is None else arrivedAt
		self._headers: HTTPHeaders = headers or HTTPHeaders({})

	@property
	def headers(self) -> dict[str, str]:
		return self._headers.headers

	def header(self, name: str) -> str | None:
		return self._headers.headers.get(headername(name))

	@property
	def contentLength(self) -> int | None:
		return self._headers.contentLength

	@property
	def keepAlive(self) -> bool:
		"""Tells if the connection can be reused once this request is answered."""
		if self.protocol == "HTTP/1.0":
			return False
		return (self.header("Connection") or "").lower() != "close"

	@property
	def timestamp(self) -> str:
		"""The arrival time as an ISO-8601 UTC string."""
		return datetime.fromtimestamp(self.arrivedAt, timezone.utc).isoformat(
			timespec="milliseconds"
		)

	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> "HTTPResponse":
		return HTTPResponse.Create(
			status=status,
			message=message,
			content=content,
			contentType=contentType,
			protocol=self.protocol,
			headers=headers,
		)

	def __str__(self) -> str:
		return f"Request({self.method} {self.path}{f'?{self.query}' if self.query else ''} {self.headers})"


# -----------------------------------------------------------------------------
#
# RESPONSE
#
# -----------------------------------------------------------------------------


class HTTPResponse:
	"""An HTTP response."""

	__slots__ = [
		"protocol",
		"status",
		"message",
		"headers",
		"body",
	]

	@staticmethod
	def Create(
		content: str | bytes | None = None,
		contentType: str | None = None,
		headers: dict[str, str] | None = None,
		status: int = 200,
		message: str | None = None,
		protocol: str = "HTTP/1.1",
	) -> "HTTPResponse":
		"""Factory method to create HTTP response objects."""
		payload: bytes
		if content is None:
			payload = b""
		elif isinstance(content, str):
			payload = content.encode(DEFAULT_ENCODING)
		elif isinstance(content, bytes):
			payload = content
		else:
			raise ValueError(f"Unsupported content {type(content)}:{content}")
		updated_headers: dict[str, str] = {
			headername(k): v for k, v in (headers or {}).items()
		}
		if contentType is not None:
			updated_headers["Content-Type"] = contentType
		# We always know the length, which is what makes keep-alive possible
		updated_headers["Content-Length"] = str(len(payload))
		return HTTPResponse(
			status=status,
			message=message or HTTP_STATUS.get(status, "Unknown status"),
			headers=HTTPHeaders(
				updated_headers,
				contentType=updated_headers.get("Content-Type"),
				contentLength=len(payload),
			),
			body=HTTPBodyBlob.FromBytes(payload) if payload else None,
			protocol=protocol,
		)

	def __init__(
		self,
		protocol: str,
		status: int,
		message: str | None,
		headers: HTTPHeaders,
		body: HTTPBodyBlob | None = None,
	):
		super().__init__()
		self.protocol: str = protocol
		self.status: int = status
		self.message: str | None = message
		self.headers: HTTPHeaders = headers
		self.body: HTTPBodyBlob | None = body

	@property
	def contentType(self) -> str | None:
		return self.getHeader("Content-Type")

	@property
	def payload(self) -> bytes:
		return self.body.payload if self.body else b""

	def getHeader(self, name: str) -> str | None:
		return self.headers.headers.get(headername(name))

	def setHeader(self, name: str, value: str | int | None) -> "HTTPResponse":
		if value is None:
			self.headers.headers.pop(headername(name), None)
		else:
			self.headers.headers[headername(name)] = str(value)
		return self

	def head(self) -> bytes:
		"""Serializes the head as a payload."""
		message: str = self.message or HTTP_STATUS.get(self.status, "Unknown status")
		lines: list[str] = [f"{k}: {v}" for k, v in self.headers.headers.items()]
		lines.insert(0, f"{self.protocol} {self.status} {message}")
		lines.append("")
		lines.append("")
		# NOTE: Header values are expected to be ASCII, Latin-1 is what
		# HTTP/1.1 historically allows.
		return "\r\n".join(lines).encode("latin-1")

	def __str__(self) -> str:
		return f"Response({self.protocol} {self.status} {self.message} {self.headers.headers})"


# EOF
