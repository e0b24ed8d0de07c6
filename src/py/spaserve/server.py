import asyncio
import errno
import os
import socket
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from signal import SIGINT, SIGTERM
from typing import Any, Awaitable, Callable, NamedTuple, Protocol

from .config import FALLBACK, HOST, LOG_REQUESTS, PORT
from .http.model import (
	HTTPBodyWriter,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPResponse,
)
from .http.parser import HTTPParser
from .services.files import FileService
from .utils.limits import LimitType, unlimit
from .utils.logging import debug, error, event, exception, info, logged, warning


class Application(Protocol):
	"""What the server expects from the application it runs."""

	def process(
		self, request: HTTPRequest
	) -> HTTPResponse | Awaitable[HTTPResponse]: ...

	async def start(self, url: str) -> None: ...

	async def stop(self) -> None: ...


class ServerStatus(Enum):
	Starting = 0
	Listening = 1
	Draining = 2
	Stopped = 3


@dataclass(slots=True)
class ServerState:
	status: ServerStatus = ServerStatus.Starting
	error: BaseException | None = None
	address: tuple[str, int] | None = None

	@property
	def isRunning(self) -> bool:
		return self.status in (ServerStatus.Starting, ServerStatus.Listening)

	def stop(self) -> None:
		"""Stops accepting connections, letting the ones in flight complete."""
		if self.isRunning:
			info("Server shutting down gracefully…", icon="🛑")
			self.status = ServerStatus.Draining

	def fail(self, e: BaseException) -> None:
		"""Stops the server right away, as an unexpected error means we're in
		a state we can't recover from."""
		exception(e, "Fatal error")
		if self.error is None:
			self.error = e
		self.status = ServerStatus.Stopped

	def onException(
		self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
	) -> None:
		e = context.get("exception")
		self.fail(
			e
			if isinstance(e, BaseException)
			else RuntimeError(context.get("message", "Unhandled error in event loop"))
		)


class ServerOptions(NamedTuple):
	host: str = HOST
	port: int = PORT
	backlog: int = 10_000
	# This is the polling timeout for accepting new requests and reading from
	# idle connections, which is how they notice the server is stopping.
	polling: float = 1.0
	readsize: int = 4_096
	# Idle connections are closed after this many seconds
	keepalive: float = 30.0
	# How long we wait for connections to complete when draining
	drain: float = 10.0
	logRequests: bool = LOG_REQUESTS
	condition: Callable[[], bool] | None = None
	stopSignals: bool = True


OPTIONS: ServerOptions = ServerOptions()

SERVER_ERROR: bytes = (
	b"HTTP/1.1 500 Internal Server Error\r\n"
	b"Content-Type: text/plain\r\n"
	b"Content-Length: 21\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"Internal Server Error"
)

SERVER_BAD_REQUEST: bytes = (
	b"HTTP/1.1 400 Bad Request\r\n"
	b"Content-Type: text/plain\r\n"
	b"Content-Length: 11\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"Bad Request"
)


class AIOSocketBodyWriter(HTTPBodyWriter):
	"""Specialized body writer to work with AIO sockets."""

	__slots__ = ["client", "loop"]

	def __init__(
		self,
		client: "socket.socket",
		loop: asyncio.AbstractEventLoop,
	) -> None:
		super().__init__()
		self.client: socket.socket = client
		self.loop: asyncio.AbstractEventLoop = loop

	async def _writeBytes(self, chunk: bytes) -> None:
		await self.loop.sock_sendall(self.client, chunk)


class AIOSocketServer:
	"""AsyncIO backend using non-blocking sockets directly."""

	@classmethod
	async def OnRequest(
		cls,
		app: Application,
		client: socket.socket,
		*,
		loop: asyncio.AbstractEventLoop,
		options: ServerOptions,
		state: ServerState,
	) -> None:
		"""Asynchronous worker, processing the requests of a client socket
		in the context of an application, until the connection closes."""
		size: int = options.readsize
		buffer = bytearray(size)
		keep_alive: bool = True
		idle: float = 0.0
		req_count: int = 0
		res_count: int = 0
		status: HTTPProcessingStatus = HTTPProcessingStatus.Processing
		parser: HTTPParser = HTTPParser()
		writer: AIOSocketBodyWriter = AIOSocketBodyWriter(client, loop)
		try:
			# NOTE: The response to a request is fully sent before the next
			# read, so pipelined requests are answered in order.
			while keep_alive and state.isRunning:
				try:
					n = await asyncio.wait_for(
						loop.sock_recv_into(client, buffer),
						timeout=options.polling,
					)
				except asyncio.TimeoutError:
					idle += options.polling
					if idle >= options.keepalive:
						status = HTTPProcessingStatus.Timeout
						break
					continue
				idle = 0.0
				if not n:
					# A no-data means a close
					status = HTTPProcessingStatus.NoData
					break
				for atom in parser.feed(bytes(buffer[:n])):
					if atom is HTTPProcessingStatus.BadFormat:
						warning("Malformed request", Client=f"{id(client):x}")
						status = atom
						await writer.write(SERVER_BAD_REQUEST)
						keep_alive = False
						break
					elif isinstance(atom, HTTPRequest):
						req_count += 1
						if options.logRequests:
							event(atom.method, atom.path, At=atom.timestamp)
						await cls.SendResponse(
							atom, app, writer, close=not atom.keepAlive, state=state
						)
						res_count += 1
						# Draining connections answer what they have, then close
						if not (atom.keepAlive and state.isRunning):
							keep_alive = False
							break
			if req_count != res_count:
				warning("Incomplete responses", Requests=req_count, Responses=res_count)
			logged(debug) and debug(
				"Connection closed",
				Client=f"{id(client):x}",
				Status=status.name,
				Requests=req_count,
			)
		except OSError as e:
			# Client did an early close or its network failed, this only ends
			# this connection.
			logged(debug) and debug(
				"Client disconnected", Client=f"{id(client):x}", Reason=str(e)
			)
		except Exception as e:
			state.fail(e)
		finally:
			# NOTE: The above loop takes care of keep alive, so we always close
			# the connection on exit.
			client.close()

	@staticmethod
	async def SendResponse(
		request: HTTPRequest,
		app: Application,
		writer: HTTPBodyWriter,
		*,
		close: bool = False,
		state: ServerState | None = None,
	) -> HTTPResponse:
		"""Processes the request within the application and sends a response
		using the given writer. Errors raised by the application are
		unexpected: the client gets a generic 500 and the error is re-raised."""
		try:
			r: HTTPResponse | Awaitable[HTTPResponse] = app.process(request)
			res: HTTPResponse = r if isinstance(r, HTTPResponse) else await r
		except Exception:
			try:
				await writer.write(SERVER_ERROR)
			except ConnectionError:
				pass
			raise
		# The server may have started draining while the response was processed
		if close or (state is not None and not state.isRunning):
			res.setHeader("Connection", "close")
		# We send the request head, and then the body. HEAD responses keep the
		# Content-Length of the body they don't send.
		await writer.write(res.head())
		if request.method != "HEAD":
			await writer.write(res.body)
		return res

	@classmethod
	async def Serve(
		cls,
		app: Application,
		options: ServerOptions = OPTIONS,
		state: ServerState | None = None,
	) -> ServerState:
		"""Main server coroutine, returns the state of the server once it
		has stopped."""
		state = ServerState() if state is None else state
		server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
		server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
		server.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
		try:
			server.bind((options.host, options.port))
		except OSError:
			error(
				f"Unable to bind to {options.host}:{options.port}, aborting.",
				"HOSTPORTERR",
			)
			server.close()
			raise
		# The argument is the backlog of connections that will be accepted before
		# they are refused.
		server.listen(options.backlog)
		# This is what we need to use it with asyncio
		server.setblocking(False)
		host, port = server.getsockname()[:2]
		state.address = (host, port)

		loop = asyncio.get_running_loop()
		tasks: set[asyncio.Task[None]] = set()
		# Registers handlers for signals and exception (so that we log them). Note
		# that we'll get a `set_wakeup_fd only works in main thread of the main interpreter`
		# when this is not run out of the main thread.
		signals: bool = (
			options.stopSignals
			and threading.current_thread() is threading.main_thread()
		)
		if signals:
			loop.add_signal_handler(SIGINT, state.stop)
			loop.add_signal_handler(SIGTERM, state.stop)
		loop.set_exception_handler(state.onException)

		try:
			await app.start(f"http://localhost:{port}")
			if state.status is ServerStatus.Starting:
				state.status = ServerStatus.Listening
			info("Server listening", icon="🚀", Host=host, Port=port)
			info(f"Server running at http://localhost:{port}", icon="📡")
			info("Press Ctrl+C to stop the server")
			while state.isRunning:
				if options.condition and not options.condition():
					state.stop()
					break
				try:
					client, _ = await asyncio.wait_for(
						loop.sock_accept(server), timeout=options.polling
					)
				except asyncio.TimeoutError:
					continue
				except OSError as e:
					if e.errno in (errno.EMFILE, errno.ENFILE):
						# Too many open files, we wait for some to be closed
						warning("Too many open files, delaying accept")
						await asyncio.sleep(0.1)
					else:
						warning("Could not accept connection", Reason=str(e))
					continue
				task = loop.create_task(
					cls.OnRequest(app, client, loop=loop, options=options, state=state)
				)
				tasks.add(task)
				task.add_done_callback(tasks.discard)
		except Exception as e:
			state.fail(e)
		finally:
			if tasks and state.status is ServerStatus.Draining:
				info("Waiting for connections to complete", Count=len(tasks))
				_, pending = await asyncio.wait(tasks, timeout=options.drain)
				for task in pending:
					task.cancel()
			else:
				for task in tasks:
					task.cancel()
			await asyncio.gather(*tasks, return_exceptions=True)
			server.close()
			if signals:
				loop.remove_signal_handler(SIGINT)
				loop.remove_signal_handler(SIGTERM)
			try:
				await app.stop()
			except Exception as e:
				state.fail(e)
			state.status = ServerStatus.Stopped
			info("Server closed", icon="✅")
		return state


def run(
	app: Application | None = None,
	*,
	root: str | Path | None = None,
	fallback: str = FALLBACK,
	host: str = HOST,
	port: int = PORT,
	backlog: int = OPTIONS.backlog,
	polling: float = OPTIONS.polling,
	keepalive: float = OPTIONS.keepalive,
	drain: float = OPTIONS.drain,
	logRequests: bool = LOG_REQUESTS,
	condition: Callable[[], bool] | None = None,
) -> int:
	"""High level function to run the server, serving the files of `root`
	(the current directory by default) unless an `app` is given. Returns
	the process exit status."""
	unlimit(LimitType.Files)
	options = ServerOptions(
		host=host,
		port=port,
		backlog=backlog,
		polling=polling,
		keepalive=keepalive,
		drain=drain,
		logRequests=logRequests,
		condition=condition,
	)
	state = ServerState()
	try:
		application: Application = (
			FileService(os.getcwd() if root is None else root, fallback)
			if app is None
			else app
		)
		asyncio.run(AIOSocketServer.Serve(application, options, state))
	except KeyboardInterrupt:
		event("ManualShutdown")
	except Exception as e:
		state.fail(e)
	if state.error is not None:
		event("EFATAL", type(state.error).__name__)
		return 1
	event("EOK")
	return 0


# EOF
