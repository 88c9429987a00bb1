import asyncio
import logging
import sys
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TextIO

from kvexplorer.models.exceptions import DecodeFailureError, ExplorerError
from .request import Request
from .response import ErrorCode, Response, failure, success

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Any]]

# Chunk payloads arrive base64-encoded on one line, so allow long lines
MAX_LINE_BYTES = 16 * 1024 * 1024


class RPCServer:
    """
    Line-delimited JSON request dispatcher.

    Every input line becomes its own task, so a slow handler never holds up
    intake of the lines behind it. Responses go out in completion order, not
    request order; callers correlate them by id. All responses for one stream
    pass through a queue drained by a single writer, so lines never interleave.
    """

    def __init__(self, host: str = '127.0.0.1', port: int = 8765):
        self.host = host
        self.port = port
        self.routes: Dict[str, Handler] = {}

    def route(self, request_type: str):
        """Decorator for registering request handlers"""
        def decorator(handler: Handler) -> Handler:
            self.routes[request_type] = handler
            return handler
        return decorator

    async def handle_line(self, line: bytes | str) -> Response:
        """Decode one envelope, run its handler and build the response"""
        start_time = time.perf_counter()

        try:
            request = Request.decode(line)
        except DecodeFailureError as e:
            logger.debug(f"Rejected malformed envelope: {e}")
            return failure(e.request_id, ErrorCode.MALFORMED_REQUEST, str(e))

        handler = self.routes.get(request.type)
        if handler is None:
            return failure(request.id, ErrorCode.UNKNOWN_REQUEST, "Unknown request type")

        logger.debug(f"--> {request.type} id={request.id}")
        try:
            result = await handler(request)
            response = success(request.id, request.type, result)
        except ExplorerError as e:
            response = failure(request.id, ErrorCode.OPERATION_FAILED, str(e))
        except Exception as e:
            logger.exception(f"Handler error for {request.type} id={request.id}")
            response = failure(request.id, ErrorCode.OPERATION_FAILED, f"Internal error: {e}")

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"<-- {response.type} id={request.id} - {elapsed_ms:.2f}ms")
        return response

    async def serve_stream(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Read request lines until EOF, answering each one exactly once"""
        responses: asyncio.Queue[Optional[Response]] = asyncio.Queue()
        writer_task = asyncio.create_task(self._write_responses(responses, writer))
        in_flight: set[asyncio.Task] = set()

        try:
            while True:
                try:
                    line = await reader.readline()
                except ValueError:
                    # Line exceeded MAX_LINE_BYTES; the reader already dropped it
                    await responses.put(
                        failure("", ErrorCode.MALFORMED_REQUEST, "Request line too long")
                    )
                    continue

                if not line:
                    break
                line = line.strip()
                if not line:
                    continue

                task = asyncio.create_task(self._dispatch(line, responses))
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)

            if in_flight:
                await asyncio.gather(*in_flight)
        finally:
            await responses.put(None)
            await writer_task

    async def _dispatch(self, line: bytes, responses: asyncio.Queue) -> None:
        await responses.put(await self.handle_line(line))

    async def _write_responses(self, responses: asyncio.Queue, writer: asyncio.StreamWriter):
        """Single consumer: writes one full response line at a time"""
        broken = False
        while True:
            response = await responses.get()
            if response is None:
                break
            if broken:
                continue

            try:
                writer.write(response.encode())
                await writer.drain()
            except (ConnectionError, BrokenPipeError) as e:
                logger.error(f"Output stream closed, dropping responses: {e}")
                broken = True

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Serve one TCP connection"""
        peer = writer.get_extra_info('peername')
        logger.debug(f"Client connected: {peer}")

        try:
            await self.serve_stream(reader, writer)
        except ConnectionResetError:
            pass
        except Exception as e:
            logger.error(f"Connection error from {peer}: {e}")
        finally:
            try:
                writer.close()
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass

    async def serve_stdio(self, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout):
        """Subprocess mode: requests on stdin, responses on stdout"""
        loop = asyncio.get_running_loop()

        reader = asyncio.StreamReader(limit=MAX_LINE_BYTES)
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), stdin)

        transport, protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, stdout
        )
        writer = asyncio.StreamWriter(transport, protocol, reader, loop)

        try:
            await self.serve_stream(reader, writer)
        finally:
            writer.close()

    async def start(self):
        """Start the TCP server"""
        server = await asyncio.start_server(
            self.handle_client,
            self.host,
            self.port,
            limit=MAX_LINE_BYTES,
        )

        addr = server.sockets[0].getsockname()
        logger.info(f'KV explorer RPC server listening on {addr[0]}:{addr[1]}')

        try:
            async with server:
                await server.serve_forever()
        except asyncio.CancelledError:
            logger.info("Server shutdown requested")
        finally:
            await self.shutdown(server)

    async def shutdown(self, server):
        """Gracefully shutdown the server"""
        logger.info("Shutting down server...")
        server.close()
        await server.wait_closed()
        logger.info("Server shutdown complete")
