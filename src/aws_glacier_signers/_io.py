# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from io import BytesIO
from inspect import iscoroutinefunction

from .exceptions import BodyReadError
from .interfaces.io import AsyncByteStream, ByteStream, Seekable

# Leaves of a tree hash are 1 MiB, so reading in the same unit keeps every read
# aligned with a chunk boundary.
_DEFAULT_CHUNK_SIZE = 1024 * 1024

# Non-blocking raw streams return None from read() when no data is available yet.
_WOULD_BLOCK_MESSAGE = "Unable to read the request body: the read would block."


class AsyncBytesReader:
    """A file-like object with an async read method over in-memory bytes."""

    def __init__(self, data: bytes | bytearray | BytesIO):
        if isinstance(data, bytes | bytearray):
            data = BytesIO(data)
        self._data = data

    async def read(self, size: int = -1) -> bytes:
        """Read a number of bytes from the stream.

        :param size: The maximum number of bytes to read. If less than 0, all bytes will
            be read.
        """
        return self._data.read(size)

    def seek(self, offset: int, whence: int = 0) -> int:
        return self._data.seek(offset, whence)

    def tell(self) -> int:
        return self._data.tell()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.iter_chunks()

    async def iter_chunks(
        self, chunk_size: int = _DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        """Iterate over the reader in chunks of a given size."""
        while chunk := await self.read(chunk_size):
            yield chunk


def iter_body_chunks(
    body: bytes | bytearray | ByteStream | Iterable[bytes],
    chunk_size: int = _DEFAULT_CHUNK_SIZE,
) -> Iterable[bytes]:
    """Yield the content of a synchronous body in order.

    :param body: bytes, a file-like object with a ``read`` method, or an iterable of
        bytes.
    :param chunk_size: The size of each read issued against file-like bodies.
    :raises BodyReadError: If the body fails to read or yields something other than
        bytes.
    :raises TypeError: If the body is an async type.
    """
    if isinstance(body, bytes | bytearray | memoryview):
        yield bytes(body)
        return

    if isinstance(body, ByteStream) and not iscoroutinefunction(body.read):
        chunks: Iterable[bytes] = _read_stream(body, chunk_size)
    elif isinstance(body, Iterable):
        chunks = body
    else:
        raise TypeError(
            "An async body was attached to a synchronous operation. Please use "
            "AsyncSigV4Signer for async bodies or ensure your body is of type "
            "bytes, a readable file-like object, or Iterable[bytes]."
        )

    try:
        for chunk in chunks:
            if not isinstance(chunk, bytes | bytearray | memoryview):
                raise BodyReadError(
                    f"Expected the body to produce bytes, but got {type(chunk)}."
                )
            yield bytes(chunk)
    except BodyReadError:
        raise
    except OSError as e:
        raise BodyReadError(f"Unable to read the request body: {e}") from e


def _read_stream(stream: ByteStream, chunk_size: int) -> Iterable[bytes]:
    while True:
        chunk = stream.read(chunk_size)
        if chunk is None:
            raise BodyReadError(_WOULD_BLOCK_MESSAGE)
        if not chunk:
            return
        yield chunk


def rewind_position(body: object) -> int | None:
    """Return the current position of a seekable body, if it has one."""
    if isinstance(body, Seekable) and not iscoroutinefunction(body.seek):
        try:
            return body.tell()
        except OSError:
            return None
    return None


async def read_async_body(body: AsyncByteStream | AsyncIterable[bytes]) -> bytes:
    """Read an async body to exhaustion.

    :raises BodyReadError: If the body fails to read.
    """
    buffer = BytesIO()
    try:
        if isinstance(body, AsyncByteStream) and iscoroutinefunction(body.read):
            while True:
                chunk = await body.read(_DEFAULT_CHUNK_SIZE)
                if chunk is None:
                    raise BodyReadError(_WOULD_BLOCK_MESSAGE)
                if not chunk:
                    break
                buffer.write(chunk)
        else:
            async for chunk in body:
                buffer.write(chunk)
    except BodyReadError:
        raise
    except OSError as e:
        raise BodyReadError(f"Unable to read the request body: {e}") from e
    return buffer.getvalue()
