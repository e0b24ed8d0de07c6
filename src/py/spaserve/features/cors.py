from ..http.model import HTTPResponse

# SEE: https://developer.mozilla.org/en-US/docs/Web/HTTP/CORS

ALLOW_ALL: str = "*"


def setCORSHeaders(response: HTTPResponse) -> HTTPResponse:
	"""Allows any origin to use the response, which is meant for local
	development: sensitive content should not be served this way.

	See <https://en.wikipedia.org/wiki/Cross-origin_resource_sharing>
	"""
	return response.setHeader("Access-Control-Allow-Origin", ALLOW_ALL)


# EOF
