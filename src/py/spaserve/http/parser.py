import time
from typing import Iterator, Literal
from ..utils.io import LineParser, LineTooLong, DEFAULT_ENCODING
from .model import (
	HTTPRequest,
	HTTPRequestLine,
	HTTPHeaders,
	HTTPAtom,
	HTTPProcessingStatus,
	headername,
)


# Header lines accepted for a single request
MAX_HEADERS: int = 100


class BadRequestLine(ValueError):
	"""The request line does not follow `METHOD TARGET HTTP/x.y`."""


class MessageParser:
	"""Parses an HTTP request line."""

	__slots__ = ["line", "value"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.value: HTTPRequestLine | None = None

	def flush(self) -> HTTPRequestLine | None:
		res = self.value
		self.reset()
		return res

	def reset(self) -> "MessageParser":
		self.line.reset()
		self.value = None
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		line, read = self.line.feed(chunk, start)
		if line is None:
			return None, read
		elif not line:
			# Empty lines before a request line are to be ignored (RFC 9112 §2.2)
			return None, read
		else:
			# NOTE: Targets are expected to be percent-encoded, anything else
			# is replaced rather than rejected.
			ln = line.decode(DEFAULT_ENCODING, errors="replace")
			parts = ln.split(" ")
			if len(parts) != 3 or not parts[0] or not parts[1]:
				raise BadRequestLine(f"Malformed request line: {ln!r}")
			method, target, protocol = parts
			if not protocol.startswith("HTTP/"):
				raise BadRequestLine(f"Unsupported protocol: {protocol!r}")
			p: list[str] = target.split("?", 1)
			self.value = HTTPRequestLine(
				method.upper(), p[0], p[1] if len(p) > 1 else "", protocol
			)
			return True, read

	def __str__(self) -> str:
		return f"MessageParser({self.value})"


class TooManyHeaders(ValueError):
	"""The request has more header lines than `MAX_HEADERS`."""


class HeadersParser:
	__slots__ = ["headers", "contentType", "contentLength", "line", "count", "limit"]

	def __init__(self, limit: int = MAX_HEADERS) -> None:
		super().__init__()
		self.line: LineParser = LineParser()
		self.count: int = 0
		self.limit: int = limit
		self.headers: dict[str, str] = {}
		self.contentType: str | None = None
		self.contentLength: int | None = None

	def flush(self) -> HTTPHeaders:
		res = HTTPHeaders(self.headers, self.contentType, self.contentLength)
		self.reset()
		return res

	def reset(self) -> "HeadersParser":
		self.line.reset()
		self.headers = {}
		self.count = 0
		self.contentType = None
		self.contentLength = None
		return self

	def feed(
		self, chunk: bytes, start: int = 0
	) -> tuple[str | Literal[False] | None, int]:
		"""Feeds data from chunk, starting at `start` offset. Returns
		a value and the next start offset. When the value is `None`, no
		header has been extracted, when the value is `False` it's the empty
		line ending the headers, otherwise it's the name of the parsed header."""
		line, read = self.line.feed(chunk, start)
		if line is None:
			return None, read
		elif not line:
			return False, read
		self.count += 1
		if self.count > self.limit:
			raise TooManyHeaders(f"More than {self.limit} header lines")
		# Headers are expected to be in ASCII format
		ln: str = line.decode("latin-1")
		i = ln.find(":")
		if i == -1:
			# Not a header, we skip the line
			return None, read
		h = ln[:i].lower().strip()
		v = ln[i + 1 :].strip()
		if h == "content-length":
			try:
				self.contentLength = max(0, int(v))
			except ValueError:
				self.contentLength = None
		elif h == "content-type":
			self.contentType = v
		n: str = headername(h)
		self.headers[n] = v
		return n, read

	def __str__(self) -> str:
		return f"HeadersParser({self.headers})"


class BodyLengthParser:
	"""Skips over the body of a request with Content-Length set. Bodies are
	never used when serving files, so they are counted, not kept."""

	__slots__ = ["expected", "read"]

	def __init__(self) -> None:
		self.expected: int = 0
		self.read: int = 0

	def reset(self, length: int = 0) -> "BodyLengthParser":
		self.expected = length
		self.read = 0
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		left: int = len(chunk) - start
		to_read: int = min(left, self.expected - self.read)
		self.read += to_read
		return (True if self.read >= self.expected else None), to_read


class HTTPParser:
	"""A stateful HTTP request parser. Chunks are fed as they arrive from
	the socket, and atoms are yielded as soon as they're complete, so a
	single chunk may produce more than one request (pipelining)."""

	def __init__(self) -> None:
		self.message: MessageParser = MessageParser()
		self.headers: HeadersParser = HeadersParser()
		self.bodyLength: BodyLengthParser = BodyLengthParser()
		self.parser: MessageParser | HeadersParser | BodyLengthParser = self.message
		self.requestLine: HTTPRequestLine | None = None
		self.requestHeaders: HTTPHeaders | None = None
		self.arrivedAt: float | None = None

	def reset(self) -> "HTTPParser":
		self.message.reset()
		self.headers.reset()
		self.bodyLength.reset()
		self.parser = self.message
		self.requestLine = None
		self.requestHeaders = None
		self.arrivedAt = None
		return self

	def feed(self, chunk: bytes) -> Iterator[HTTPAtom]:
		"""Feeds the given chunk, yielding the atoms parsed so far. A
		malformed request yields `HTTPProcessingStatus.BadFormat`, after which
		the parser needs to be reset."""
		size: int = len(chunk)
		offset: int = 0
		while offset < size:
			if self.arrivedAt is None:
				self.arrivedAt = time.time()
			try:
				ln, read = self.parser.feed(chunk, offset)
			except (BadRequestLine, LineTooLong, TooManyHeaders):
				yield HTTPProcessingStatus.BadFormat
				return
			offset += read
			if ln is None:
				continue
			elif self.parser is self.message:
				# We've parsed a request line
				self.requestLine = self.message.flush()
				if self.requestLine is not None:
					yield self.requestLine
				self.parser = self.headers
			elif self.parser is self.headers:
				if ln is False:
					# We've parsed the headers
					headers = self.headers.flush()
					self.requestHeaders = headers
					yield headers
					if headers.contentLength:
						self.parser = self.bodyLength.reset(headers.contentLength)
						yield HTTPProcessingStatus.Body
					else:
						yield self.complete()
				else:
					# `ln` is the header name, we keep reading headers
					pass
			elif self.parser is self.bodyLength:
				yield self.complete()
			else:
				raise RuntimeError(f"Unsupported parser: {self.parser}")

	def complete(self) -> HTTPRequest:
		"""Creates the request from the parsed line and headers, and gets
		ready for the next one."""
		line = self.requestLine
		if line is None:
			raise RuntimeError("Cannot complete a request without a request line")
		req = HTTPRequest(
			method=line.method,
			path=line.path,
			query=line.query,
			headers=self.requestHeaders or HTTPHeaders({}),
			protocol=line.protocol,
			arrivedAt=self.arrivedAt,
		)
		self.requestLine = None
		self.requestHeaders = None
		self.arrivedAt = None
		self.parser = self.message.reset()
		return req


# EOF
