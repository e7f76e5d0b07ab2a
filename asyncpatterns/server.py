"""A TCP server whose worker threads each run their own executor, and a matching client."""

from __future__ import annotations

import argparse
import logging
import queue
import socket
import threading
import time
from collections.abc import Sequence

from asyncpatterns.runtime import Executor, Sleep, TcpReceiver, TcpSender
from asyncpatterns.wire import Data

_log = logging.getLogger(__name__)

DEFAULT_ADDRESS = ("127.0.0.1", 7878)
REPLY = b"Hello, client!"
_READ_CHUNK = 1024


async def handle_client(stream: socket.socket, reply_delay: float = 1.0) -> Data | None:
    """Read one message, wait, reply and close the connection.

    Returns the decoded message, or None if it could not be decoded.
    """
    try:
        stream.setblocking(False)
        buffer = bytearray()
        while True:
            try:
                chunk = stream.recv(_READ_CHUNK)
            except (BlockingIOError, InterruptedError):
                if buffer:
                    break
                await Sleep(0.01)
                continue
            except OSError as exc:
                _log.warning("Failed to read from connection: %s", exc)
                break
            if not chunk:
                break
            buffer.extend(chunk)

        message: Data | None
        try:
            message = Data.deserialize(bytes(buffer))
            _log.info("Received message: %r", message)
        except (EOFError, ValueError) as exc:
            message = None
            _log.warning("Failed to decode message: %s", exc)

        await Sleep(reply_delay)
        await TcpSender(stream, REPLY)
        return message
    finally:
        stream.close()


def _peer(connection: socket.socket) -> str:
    try:
        return str(connection.getpeername())
    except OSError:
        return "unknown"


class Worker:
    """A thread with its own executor; it sleeps when it has no work."""

    def __init__(self, name: str, reply_delay: float = 1.0) -> None:
        self.name = name
        self._reply_delay = reply_delay
        self._inbox: queue.SimpleQueue[socket.socket] = queue.SimpleQueue()
        self._wake = threading.Event()
        self._stopping = False
        self._executor = Executor()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def submit(self, connection: socket.socket) -> None:
        self._inbox.put(connection)
        self._wake.set()

    def stop(self) -> None:
        self._stopping = True
        self._wake.set()
        self._thread.join(timeout=5)

    def _run(self) -> None:
        while not self._stopping:
            try:
                connection = self._inbox.get_nowait()
            except queue.Empty:
                if not self._executor:
                    _log.debug("%s is sleeping", self.name)
                    self._wake.wait()
                    self._wake.clear()
                    continue
            else:
                _log.info("%s Received connection: %s", self.name, _peer(connection))
                self._executor.spawn(handle_client(connection, self._reply_delay))
            self._executor.poll()


class Server:
    """Accepts connections and hands them to workers in round-robin order."""

    def __init__(
        self,
        host: str = DEFAULT_ADDRESS[0],
        port: int = DEFAULT_ADDRESS[1],
        worker_count: int = 3,
        reply_delay: float = 1.0,
    ) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        self._listener = socket.create_server((host, port))
        self._listener.settimeout(0.1)
        self.address: tuple[str, int] = self._listener.getsockname()[:2]
        self._stopping = threading.Event()
        names = ("One", "Two", "Three")
        self.workers = [
            Worker(names[i] if i < len(names) else f"Worker {i + 1}", reply_delay)
            for i in range(worker_count)
        ]

    def serve_forever(self) -> None:
        index = 0
        while not self._stopping.is_set():
            try:
                connection, _ = self._listener.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if self._stopping.is_set():
                    break
                _log.warning("Connection failed: %s", exc)
                continue
            self.workers[index].submit(connection)
            index = (index + 1) % len(self.workers)

    def shutdown(self) -> None:
        self._stopping.set()
        for worker in self.workers:
            worker.stop()
        self._listener.close()

    def __enter__(self) -> Server:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()


async def send_data(
    field1: int,
    field2: int,
    field3: str,
    address: tuple[str, int] = DEFAULT_ADDRESS,
) -> str:
    """Send one message to the server and return its reply as text."""
    stream = socket.create_connection(address)
    try:
        await TcpSender(stream, Data(field1, field2, field3).serialize())
        reply = await TcpReceiver(stream)
    finally:
        stream.close()
    try:
        return reply.decode("utf-8")
    except UnicodeDecodeError:
        raise ValueError("Invalid UTF-8") from None


def run_clients(
    count: int = 4000, address: tuple[str, int] = DEFAULT_ADDRESS
) -> list[str | Exception]:
    """Send ``count`` messages concurrently; return each reply or the error it raised."""
    executor = Executor()
    handles = [
        executor.spawn(send_data(i, i & 0xFFFF, f"Hello, server! {i}", address))
        for i in range(count)
    ]

    def drive() -> None:
        while executor:
            executor.poll()

    driver = threading.Thread(target=drive, daemon=True)
    driver.start()
    results: list[str | Exception] = []
    for handle in handles:
        try:
            results.append(handle.recv())
        except (OSError, ValueError) as exc:
            results.append(exc)
    driver.join()
    return results


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Busy-polling TCP server and client.")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="run the server")
    serve.add_argument("--host", default=DEFAULT_ADDRESS[0])
    serve.add_argument("--port", type=int, default=DEFAULT_ADDRESS[1])
    serve.add_argument("--workers", type=int, default=3)
    serve.add_argument("--delay", type=float, default=1.0)

    client = commands.add_parser("client", help="send messages to the server")
    client.add_argument("--host", default=DEFAULT_ADDRESS[0])
    client.add_argument("--port", type=int, default=DEFAULT_ADDRESS[1])
    client.add_argument("--count", type=int, default=4000)

    args = parser.parse_args(argv)

    if args.command == "serve":
        logging.basicConfig(level=logging.INFO, format="%(message)s")
        server = Server(args.host, args.port, args.workers, args.delay)
        print(f"Server listening on port {server.address[1]}")
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
        finally:
            server.shutdown()
        return 0

    start = time.monotonic()
    print("Waiting for result...")
    for result in run_clients(args.count, (args.host, args.port)):
        if isinstance(result, Exception):
            print(f"Error: {result}")
        else:
            print(f"Result: {result}")
    print(f"Time elapsed: {time.monotonic() - start:.3f}s")
    return 0