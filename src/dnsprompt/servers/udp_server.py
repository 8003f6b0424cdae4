"""Asyncio DNS-over-UDP listener spawning one task per datagram.

Brief:
  DNSUDPServer owns the UDP socket and a fire-once shutdown event. Its receive
  loop races the next datagram against shutdown; each parsed request is
  handed to an independent task that resolves it and sends the reply. Shutdown
  stops the loop only; in-flight tasks run to completion and the socket is
  closed after the last of them finishes.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Set, Tuple

from dnslib import DNSRecord

from .server import LLMDNSHandler, handle_request

logger = logging.getLogger("dnsprompt.server")

RECV_BUFFER_SIZE = 4096
READ_ERROR_BACKOFF_SECONDS = 0.1

# IPv4/IPv6 literals and host names; anything else is rejected before lookup.
_HOST_RE = re.compile(r"^[A-Za-z0-9._:%-]+$")


class ServerState(enum.Enum):
    INIT = "init"
    BOUND = "bound"
    SERVING = "serving"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


def _resolve_bind_address(host: str, port: int) -> Tuple[int, tuple]:
    """Brief: Resolve host/port into (address family, sockaddr) for binding.

    Inputs:
      - host: Listen address (IPv4/IPv6 literal or resolvable name).
      - port: Listen port (0 for an ephemeral port).

    Outputs:
      - (family, sockaddr) suitable for socket.bind().

    Raises:
      - ValueError: when the address is malformed or cannot be resolved.
    """

    try:
        port = int(port)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid bind port: {port!r}") from e
    if not 0 <= port <= 65535:
        raise ValueError(f"Invalid bind port: {port}")
    if not host or not _HOST_RE.match(str(host)):
        raise ValueError(f"Failed to parse bind address {host!r}:{port}")
    try:
        infos = socket.getaddrinfo(
            host, port, type=socket.SOCK_DGRAM, flags=socket.AI_PASSIVE
        )
    except (socket.gaierror, UnicodeError) as e:
        raise ValueError(f"Failed to parse bind address {host}:{port}: {e}") from e
    family, _type, _proto, _canon, sockaddr = infos[0]
    return family, sockaddr


class DNSUDPServer:
    """Brief: UDP listener driving the LLM DNS pipeline.

    Inputs:
      - host: Listen address.
      - port: Listen port (0 picks an ephemeral port).
      - handler: LLMDNSHandler used for TXT questions.
      - max_concurrent: Optional ceiling on pipelines running at once; None
        leaves fan-out unbounded.
      - workers: Thread count for the blocking LLM/HTTP calls.

    Outputs:
      - DNSUDPServer instance.

    Example:
      >>> server = DNSUDPServer("127.0.0.1", 0, handler)  # doctest: +SKIP
      >>> asyncio.run(server.serve())  # doctest: +SKIP
    """

    def __init__(
        self,
        host: str,
        port: int,
        handler: LLMDNSHandler,
        *,
        max_concurrent: Optional[int] = None,
        workers: int = 32,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.handler = handler
        self.max_concurrent = max_concurrent
        self.workers = max(1, int(workers))

        self.state = ServerState.INIT
        self._sock: Optional[socket.socket] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._limiter: Optional[asyncio.Semaphore] = None
        self._shutdown_event = asyncio.Event()
        self._shutdown_lock = threading.Lock()
        self._shutdown_requested = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def bind_address(self) -> str:
        if self._sock is not None:
            addr = self._sock.getsockname()
            return f"{addr[0]}:{addr[1]}"
        return f"{self.host}:{self.port}"

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def bind(self) -> None:
        """Brief: Bind the UDP socket and enter the BOUND state.

        Outputs:
          - None.

        Raises:
          - ValueError: malformed bind address.
          - OSError: bind failed (address in use, permission denied, ...).
        """

        if self._sock is not None:
            return
        family, sockaddr = _resolve_bind_address(self.host, self.port)
        sock = socket.socket(family, socket.SOCK_DGRAM)
        try:
            sock.setblocking(False)
            sock.bind(sockaddr)
        except OSError:
            sock.close()
            raise
        self._sock = sock
        self.state = ServerState.BOUND
        logger.info("DNS server listening on %s", self.bind_address)

    async def serve(self) -> None:
        """Brief: Run the receive loop until shutdown() is called.

        Outputs:
          - None; returns once the loop has stopped accepting datagrams.
        """

        self.bind()
        loop = asyncio.get_running_loop()
        self._loop = loop
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="dnsprompt-llm"
            )
        if self.max_concurrent and self._limiter is None:
            self._limiter = asyncio.Semaphore(int(self.max_concurrent))

        self.state = ServerState.SERVING
        logger.info("Waiting for DNS queries...")

        stop = asyncio.ensure_future(self._shutdown_event.wait())
        recv: Optional[asyncio.Future] = None
        try:
            while True:
                if recv is None:
                    recv = asyncio.ensure_future(
                        loop.sock_recvfrom(self._sock, RECV_BUFFER_SIZE)
                    )
                done, _ = await asyncio.wait(
                    {recv, stop}, return_when=asyncio.FIRST_COMPLETED
                )
                if stop in done:
                    logger.info("Shutdown signal received, stopping server")
                    break

                finished, recv = recv, None
                try:
                    data, addr = finished.result()
                except OSError as e:
                    logger.error("UDP socket error: %s", e)
                    await asyncio.sleep(READ_ERROR_BACKOFF_SECONDS)
                    continue
                self._on_datagram(data, addr)
        finally:
            self.state = ServerState.SHUTTING_DOWN
            pending = [f for f in (recv, stop) if f is not None and not f.done()]
            for fut in pending:
                fut.cancel()
            if pending:
                await asyncio.wait(pending)
            self.state = ServerState.STOPPED
            self._maybe_close()
            logger.info("DNS server shutdown complete")

    async def wait_closed(self) -> None:
        """Brief: Wait until every in-flight request task has finished.

        Notes:
          - serve() itself never waits for in-flight tasks. A caller whose
            event loop would otherwise end right after serve() (asyncio.run
            cancels leftover tasks) can await this to let them complete.
        """

        while self._tasks:
            await asyncio.wait(set(self._tasks))

    def _on_datagram(self, data: bytes, addr) -> None:
        logger.debug("Received %d bytes from %s", len(data), addr)
        try:
            request = DNSRecord.parse(data)
        except Exception as e:
            logger.warning("Failed to parse DNS message from %s: %s", addr, e)
            return

        task = asyncio.ensure_future(self._respond(request, addr))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    async def _respond(self, request: DNSRecord, addr) -> None:
        try:
            if self._limiter is not None:
                async with self._limiter:
                    response = await handle_request(
                        request, self.handler, executor=self._executor
                    )
            else:
                response = await handle_request(
                    request, self.handler, executor=self._executor
                )
            wire = response.pack()
            logger.debug(
                "Serialized response: %d bytes, code: %s",
                len(wire),
                response.header.rcode,
            )
            await asyncio.get_running_loop().sock_sendto(self._sock, wire, addr)
            logger.debug("Successfully sent response to %s", addr)
        except Exception:
            logger.exception("Failed to handle DNS request from %s", addr)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._maybe_close()

    def _maybe_close(self) -> None:
        if self.state is not ServerState.STOPPED or self._tasks:
            return
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:  # pragma: no cover - already closed
                pass
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def shutdown(self) -> None:
        """Brief: Ask the receive loop to stop; effective on the first call only.

        Inputs:
          - None. Safe to call from signal handlers or other threads.

        Outputs:
          - None. In-flight requests are not cancelled.
        """

        with self._shutdown_lock:
            if self._shutdown_requested:
                return
            self._shutdown_requested = True

        loop = self._loop
        if loop is not None and loop.is_running() and not loop.is_closed():
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                self._shutdown_event.set()
            else:
                loop.call_soon_threadsafe(self._shutdown_event.set)
        else:
            self._shutdown_event.set()
