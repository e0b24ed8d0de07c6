from os import getenv

DEFAULT_PORT: int = 3000
DEFAULT_FALLBACK: str = "fallback.html"


def parsePort(value: str | None, default: int = DEFAULT_PORT) -> int:
	"""Parses a port number, returning `default` when the value is missing,
	not a number or not a valid TCP port."""
	try:
		port = int(value) if value else default
	except ValueError:
		return default
	return port if 0 < port < 65536 else default


PORT: int = parsePort(getenv("PORT"))

# We want the development server to be accessible from everywhere
HOST: str = getenv("HOST") or "0.0.0.0"  # nosec: B104

FALLBACK: str = getenv("SPASERVE_FALLBACK") or DEFAULT_FALLBACK

LOG_REQUESTS: bool = getenv("SPASERVE_LOG_REQUESTS", "1") == "1"

# EOF
