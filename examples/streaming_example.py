"""
Example usage of tiny_http_client response streaming.

A small in-process server answers with a chunked body; the client
consumes it fragment by fragment with a pooled connection and then
reuses that connection for a second request.
"""

import asyncio
import logging

from tiny_http_client import Client, ClientConfig, ConnectionStrategy

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CHUNKS = [b"Hello", b", ", b"streaming", b" world!"]


async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """Answer every request on the connection with a chunked body."""
    while True:
        try:
            await reader.readuntil(b"\r\n\r\n")
        except asyncio.IncompleteReadError:
            break
        writer.write(b"HTTP/1.1 200 OK\r\nTransfer-Encoding: chunked\r\n\r\n")
        for chunk in CHUNKS:
            writer.write(b"%x\r\n%s\r\n" % (len(chunk), chunk))
            await writer.drain()
            await asyncio.sleep(0.05)
        writer.write(b"0\r\n\r\n")
        await writer.drain()
    writer.close()


async def main() -> None:
    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    url = f"http://127.0.0.1:{port}/stream"

    config = ClientConfig(connection_strategy=ConnectionStrategy.POOLED)
    async with server, Client(config=config) as client:
        for attempt in range(2):
            async with client.request(url).stream("GET") as response:
                logger.info(f"Response status: {response.status_code}")
                async for chunk in response.stream:
                    logger.info(f"Received chunk: {chunk!r}")
                logger.info(f"Total bytes: {response.stream.bytes_read}")

        logger.info(f"Pool metrics: {client.metrics}")


if __name__ == "__main__":
    asyncio.run(main())
