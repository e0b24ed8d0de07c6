import asyncio
import errno
import os
import signal
import socket
import subprocess  # nosec: B404
import sys
import time
from pathlib import Path
from typing import Awaitable, Callable

import pytest

import spaserve
from spaserve.http.model import HTTPRequest, HTTPResponse
from spaserve.server import (
	AIOSocketServer,
	ServerOptions,
	ServerState,
	ServerStatus,
	run,
)
from spaserve.services.files import FileService

OPTIONS = ServerOptions(
	host="127.0.0.1",
	port=0,
	polling=0.05,
	keepalive=2.0,
	drain=2.0,
	logRequests=False,
	stopSignals=False,
)


async def fetch(port: int, payload: bytes) -> bytes:
	"""Sends the payload and reads until the server closes the connection."""
	reader, writer = await asyncio.open_connection("127.0.0.1", port)
	try:
		writer.write(payload)
		await writer.drain()
		return await asyncio.wait_for(reader.read(), timeout=5.0)
	finally:
		writer.close()


async def serving(
	app, test: Callable[[int, ServerState], Awaitable[bytes]]
) -> tuple[bytes, ServerState]:
	state = ServerState()
	task = asyncio.create_task(AIOSocketServer.Serve(app, OPTIONS, state))
	while state.status is ServerStatus.Starting and not task.done():
		await asyncio.sleep(0.01)
	assert state.address is not None
	try:
		res = await test(state.address[1], state)
	finally:
		state.stop()
		await asyncio.wait_for(task, timeout=5.0)
	return res, state


@pytest.fixture
def site(tmp_path):
	(tmp_path / "fallback.html").write_text("<h1>Home</h1>")
	(tmp_path / "style.css").write_text("body{}")
	return tmp_path


def test_serve(site):
	async def test(port: int, state: ServerState) -> bytes:
		assert state.status is ServerStatus.Listening
		return await fetch(port, b"GET /style.css HTTP/1.1\r\nConnection: close\r\n\r\n")

	data, state = asyncio.run(serving(FileService(site), test))
	head, body = data.split(b"\r\n\r\n", 1)
	assert head.startswith(b"HTTP/1.1 200 OK\r\n")
	assert b"\r\nContent-Type: text/css" in head
	assert b"\r\nAccess-Control-Allow-Origin: *" in head
	assert b"\r\nConnection: close" in head
	assert body == b"body{}"
	assert state.status is ServerStatus.Stopped
	assert state.error is None


def test_keep_alive(site):
	async def test(port: int, state: ServerState) -> bytes:
		return await fetch(
			port,
			b"GET / HTTP/1.1\r\nHost: localhost\r\n\r\n"
			b"GET /../../etc/passwd HTTP/1.1\r\n\r\n"
			b"GET /missing HTTP/1.1\r\nConnection: close\r\n\r\n",
		)

	data, _ = asyncio.run(serving(FileService(site), test))
	assert data.count(b"HTTP/1.1 200 OK") == 2
	assert data.count(b"HTTP/1.1 403 Forbidden") == 1
	# Responses come in the order of the requests
	assert data.index(b" 403 ") < data.rindex(b" 200 ")
	assert data.count(b"<h1>Home</h1>") == 2
	assert data.endswith(b"<h1>Home</h1>")


def test_not_found(tmp_path):
	async def test(port: int, state: ServerState) -> bytes:
		return await fetch(port, b"GET /app.js HTTP/1.0\r\n\r\n")

	data, _ = asyncio.run(serving(FileService(tmp_path), test))
	assert data.startswith(b"HTTP/1.0 404 Not Found\r\n")
	assert data.endswith(b"\r\n\r\nFile not found")


def test_bad_request(site):
	async def test(port: int, state: ServerState) -> bytes:
		return await fetch(port, b"NONSENSE\r\n\r\n")

	data, state = asyncio.run(serving(FileService(site), test))
	assert data.startswith(b"HTTP/1.1 400 Bad Request\r\n")
	assert state.error is None


def test_drain():
	processing = asyncio.Event()

	class SlowApp:
		async def process(self, request: HTTPRequest) -> HTTPResponse:
			processing.set()
			await asyncio.sleep(0.3)
			return request.respond("done", "text/plain")

		async def start(self, url: str) -> None:
			pass

		async def stop(self) -> None:
			pass

	async def test(port: int, state: ServerState) -> bytes:
		response = asyncio.create_task(fetch(port, b"GET / HTTP/1.1\r\n\r\n"))
		await asyncio.wait_for(processing.wait(), timeout=5.0)
		state.stop()
		assert state.status is ServerStatus.Draining
		return await response

	data, state = asyncio.run(serving(SlowApp(), test))
	assert data.startswith(b"HTTP/1.1 200 OK\r\n")
	assert b"\r\nConnection: close\r\n" in data
	assert data.endswith(b"done")
	assert state.status is ServerStatus.Stopped
	assert state.error is None


def test_idle_connections_close_on_stop(site):
	async def test(port: int, state: ServerState) -> bytes:
		reader, writer = await asyncio.open_connection("127.0.0.1", port)
		try:
			await asyncio.sleep(0.1)
			state.stop()
			# The connection gets closed without a response
			return await asyncio.wait_for(reader.read(), timeout=5.0)
		finally:
			writer.close()

	data, state = asyncio.run(serving(FileService(site), test))
	assert data == b""
	assert state.status is ServerStatus.Stopped


def test_fatal_error():
	class BrokenApp:
		def process(self, request: HTTPRequest) -> HTTPResponse:
			raise RuntimeError("Unexpected")

		async def start(self, url: str) -> None:
			pass

		async def stop(self) -> None:
			pass

	async def test(port: int, state: ServerState) -> bytes:
		return await fetch(port, b"GET / HTTP/1.1\r\n\r\n")

	data, state = asyncio.run(serving(BrokenApp(), test))
	assert data.startswith(b"HTTP/1.1 500 Internal Server Error\r\n")
	assert data.endswith(b"Internal Server Error")
	assert isinstance(state.error, RuntimeError)
	assert state.status is ServerStatus.Stopped


def test_head_has_no_body(site):
	async def test(port: int, state: ServerState) -> bytes:
		return await fetch(
			port,
			b"HEAD /style.css HTTP/1.1\r\n\r\n"
			b"GET /style.css HTTP/1.1\r\nConnection: close\r\n\r\n",
		)

	data, _ = asyncio.run(serving(FileService(site), test))
	head, rest = data.split(b"\r\n\r\n", 1)
	assert head.startswith(b"HTTP/1.1 200 OK\r\n")
	assert b"\r\nContent-Length: 6" in head
	# The next response starts right after the head of the first one
	assert rest.startswith(b"HTTP/1.1 200 OK\r\n")
	assert rest.endswith(b"\r\n\r\nbody{}")
	assert data.count(b"body{}") == 1


def test_client_network_error(site):
	async def test(port: int, state: ServerState) -> bytes:
		loop = asyncio.get_running_loop()
		receive = loop.sock_recv_into
		failed: list[socket.socket] = []

		async def unreachable(client: socket.socket, buffer: bytearray) -> int:
			if not failed:
				failed.append(client)
				raise OSError(errno.EHOSTUNREACH, os.strerror(errno.EHOSTUNREACH))
			return await receive(client, buffer)

		loop.sock_recv_into = unreachable  # type: ignore[method-assign]
		reader, writer = await asyncio.open_connection("127.0.0.1", port)
		try:
			assert await asyncio.wait_for(reader.read(), timeout=5.0) == b""
		finally:
			writer.close()
		assert failed
		assert state.status is ServerStatus.Listening
		return await fetch(port, b"GET /style.css HTTP/1.1\r\nConnection: close\r\n\r\n")

	data, state = asyncio.run(serving(FileService(site), test))
	assert data.startswith(b"HTTP/1.1 200 OK\r\n")
	assert data.endswith(b"body{}")
	assert state.error is None


def test_run_bind_failure(site):
	with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
		busy.bind(("127.0.0.1", 0))
		busy.listen(1)
		port = busy.getsockname()[1]
		assert run(root=site, host="127.0.0.1", port=port, logRequests=False) == 1


def test_run_missing_root(tmp_path):
	assert run(root=tmp_path / "missing", host="127.0.0.1", port=0) == 1


def test_run_condition(site):
	assert (
		run(root=site, host="127.0.0.1", port=0, polling=0.01, condition=lambda: False)
		== 0
	)



def freePort() -> int:
	with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
		s.bind(("127.0.0.1", 0))
		return s.getsockname()[1]


def request(port: int, path: str = "/") -> bytes:
	with socket.create_connection(("127.0.0.1", port), timeout=5.0) as client:
		client.sendall(f"GET {path} HTTP/1.1\r\nConnection: close\r\n\r\n".encode())
		res = b""
		while chunk := client.recv(4096):
			res += chunk
		return res


@pytest.mark.parametrize("stop", [signal.SIGINT, signal.SIGTERM])
def test_signal_stops_gracefully(site, stop):
	port = freePort()
	env = dict(
		os.environ,
		PORT=str(port),
		HOST="127.0.0.1",
		PYTHONPATH=os.pathsep.join(
			[str(Path(spaserve.__file__).parent.parent), os.environ.get("PYTHONPATH", "")]
		),
	)
	process = subprocess.Popen(  # nosec: B603
		[sys.executable, "-m", "spaserve", "-r", str(site)],
		env=env,
		stdout=subprocess.DEVNULL,
		stderr=subprocess.DEVNULL,
	)
	try:
		deadline = time.monotonic() + 10.0
		while True:
			assert process.poll() is None, "Server exited before listening"
			try:
				data = request(port, "/style.css")
				break
			except OSError:
				assert time.monotonic() < deadline, "Server did not start"
				time.sleep(0.1)
		assert data.startswith(b"HTTP/1.1 200 OK\r\n")
		process.send_signal(stop)
		assert process.wait(timeout=10.0) == 0
	finally:
		if process.poll() is None:
			process.kill()
			process.wait()


# EOF
