from spaserve.features.cors import setCORSHeaders
from spaserve.http.model import (
	Forbidden,
	HTTPRequest,
	HTTPResponse,
	InternalError,
	NotFound,
	headername,
)


def test_headername():
	assert headername("content-type") == "Content-Type"
	assert headername(" ACCESS-CONTROL-ALLOW-ORIGIN ") == "Access-Control-Allow-Origin"


def test_response_head():
	r = HTTPResponse.Create(b"body { }", "text/css")
	assert r.head() == (
		b"HTTP/1.1 200 OK\r\n"
		b"Content-Type: text/css\r\n"
		b"Content-Length: 8\r\n"
		b"\r\n"
	)
	assert r.payload == b"body { }"


def test_empty_response():
	r = HTTPResponse.Create(status=204)
	assert r.body is None
	assert r.payload == b""
	assert r.getHeader("Content-Length") == "0"
	assert r.head().startswith(b"HTTP/1.1 204 No Content\r\n")


def test_headers():
	r = setCORSHeaders(HTTPResponse.Create("Hello", "text/plain"))
	assert r.getHeader("access-control-allow-origin") == "*"
	r.setHeader("connection", "close")
	assert b"\r\nConnection: close\r\n" in r.head()
	r.setHeader("Connection", None)
	assert r.getHeader("Connection") is None


def test_request_errors():
	req = HTTPRequest("GET", "/", protocol="HTTP/1.0")
	for e, status, content in (
		(Forbidden("Escapes"), 403, b"Forbidden"),
		(NotFound("Missing"), 404, b"File not found"),
		(InternalError("Broken"), 500, b"Internal Server Error"),
	):
		r = req.error(e.status, e.content, e.contentType)
		assert r.status == status
		assert r.payload == content
		assert r.contentType == "text/plain"
		assert r.protocol == "HTTP/1.0"
	assert Forbidden("Escapes", content="Nope").content == "Nope"


# EOF
