DEFAULT_ENCODING: str = "utf8"
EOL: bytes = b"\r\n"
# Longest request or header line we accept before giving up on a client
MAX_LINE: int = 64_000


class LineTooLong(ValueError):
	"""Raised when a line exceeds the parser's limit without an end of line."""


class LineParser:
	"""Accumulates chunks until an end of line is found, keeping the
	partial data between feeds."""

	__slots__ = ["buffer", "line", "eol", "eolsize", "offset", "limit"]

	def __init__(self, eol: bytes = EOL, limit: int = MAX_LINE) -> None:
		self.buffer: bytearray = bytearray()
		self.line: bytes | None = None
		self.offset: int = 0
		self.eol: bytes = eol
		self.eolsize: int = len(eol)
		self.limit: int = limit

	def reset(self) -> "LineParser":
		self.buffer.clear()
		self.line = None
		self.offset = 0
		return self

	def flush(self) -> bytes | None:
		return self.line

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bytes | None, int]:
		"""Returns the matching line and how many bytes were read in chunk from start. When line is None,
		then the whole chunk has been processed."""
		pos = len(self.buffer)
		self.buffer += chunk[start:]
		end = self.buffer.find(self.eol, self.offset)
		if end == -1:
			if len(self.buffer) > self.limit:
				raise LineTooLong(f"Line exceeds {self.limit} bytes")
			# The end of line may be split between this chunk and the next
			self.offset = max(0, len(self.buffer) - self.eolsize + 1)
			return None, len(chunk) - start
		else:
			self.line = bytes(self.buffer[:end])
			self.buffer.clear()
			self.offset = 0
			return self.line, (end - pos) + self.eolsize


# EOF
