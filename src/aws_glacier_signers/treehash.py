# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""SHA-256 tree hashes of upload bodies.

Each 1 MiB chunk of the body is hashed into a leaf. Consecutive pairs of nodes are
then concatenated and hashed into the next level; a node left without a partner is
promoted to the next level unchanged. This repeats until a single node, the tree
hash, remains.

See https://docs.aws.amazon.com/amazonglacier/latest/dev/checksum-calculations.html
"""

import logging
import re
from collections.abc import Iterable, Sequence
from hashlib import sha256
from types import TracebackType
from typing import Self

from ._io import iter_body_chunks, rewind_position
from .exceptions import HexDecodeError, InvalidStateError, NotReadyError
from .interfaces.io import ByteStream

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
DIGEST_SIZE = sha256().digest_size
EMPTY_SHA256_DIGEST = sha256(b"").digest()

_HEX_DIGEST = re.compile(rf"[0-9a-fA-F]{{{DIGEST_SIZE * 2}}}")


def reduce_tree(nodes: Sequence[bytes]) -> bytes | None:
    """Reduce an ordered sequence of digests to their root digest.

    A single node is returned as is. ``nodes`` is not modified.

    :returns: The root digest, or None if ``nodes`` is empty.
    """
    if not nodes:
        return None

    level = list(nodes)
    while len(level) > 1:
        parents = [
            sha256(level[i] + level[i + 1]).digest()
            for i in range(0, len(level) - 1, 2)
        ]
        if len(level) % 2:
            parents.append(level[-1])
        level = parents
    return level[0]


class ChunkHasher:
    """Streams an upload body into its tree hash and linear hash.

    Bytes may be written in slices of any size; the results only depend on the
    concatenation of everything written. Once :py:meth:`close` is called the results
    are final until :py:meth:`reset`.

    A single instance must not be written to concurrently, since leaves are appended
    in the order the bytes arrive.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Discard all state, allowing the hasher to be reused."""
        self._leaves: list[bytes] = []
        self._remaining = bytearray()
        self._running_hash = sha256()
        self._tree_hash: bytes | None = None
        self._linear_hash: bytes | None = None

    @property
    def closed(self) -> bool:
        return self._linear_hash is not None

    @property
    def leaves(self) -> tuple[bytes, ...]:
        """The digests of every chunk completed so far, in order."""
        return tuple(self._leaves)

    def write(self, data: bytes | bytearray | memoryview) -> int:
        """Write all of ``data``, storing the digest of every completed 1 MiB chunk.

        :returns: The number of bytes written, which is always ``len(data)``.
        :raises InvalidStateError: If the hasher is closed.
        """
        if self.closed:
            raise InvalidStateError("Cannot write to a ChunkHasher after close().")

        view = memoryview(data).cast("B")
        written = len(view)

        # Not enough data to fill a chunk.
        if len(self._remaining) + written < CHUNK_SIZE:
            self._remaining += view
            return written

        # Top up the partial chunk and flush it.
        fill = CHUNK_SIZE - len(self._remaining)
        self._remaining += view[:fill]
        self._add_leaf(self._remaining)
        self._remaining = bytearray()
        view = view[fill:]

        # Flush every whole chunk left in data without copying it.
        while len(view) >= CHUNK_SIZE:
            self._add_leaf(view[:CHUNK_SIZE])
            view = view[CHUNK_SIZE:]

        self._remaining += view
        return written

    def _add_leaf(self, chunk: bytes | bytearray | memoryview) -> None:
        self._leaves.append(sha256(chunk).digest())
        self._running_hash.update(chunk)

    def close(self) -> None:
        """Flush the final partial chunk and compute both hashes.

        Calling ``close`` again has no effect.
        """
        if self.closed:
            return

        # The final chunk is the only one allowed to be shorter than CHUNK_SIZE.
        if self._remaining:
            self._add_leaf(self._remaining)
            self._remaining = bytearray()

        self._linear_hash = self._running_hash.digest()
        # An empty body has no leaves; its tree hash is the digest of no bytes.
        self._tree_hash = reduce_tree(self._leaves) or EMPTY_SHA256_DIGEST
        logger.debug(
            "Computed tree hash %s over %d chunk(s).",
            self._tree_hash.hex(),
            len(self._leaves),
        )

    def tree_hash(self) -> bytes:
        """The root digest of the tree of 1 MiB chunk digests.

        :raises NotReadyError: If the hasher has not been closed.
        """
        if self._tree_hash is None:
            raise NotReadyError("The tree hash is only available after close().")
        return self._tree_hash

    def linear_hash(self) -> bytes:
        """The SHA-256 digest of everything written.

        :raises NotReadyError: If the hasher has not been closed.
        """
        if self._linear_hash is None:
            raise NotReadyError("The linear hash is only available after close().")
        return self._linear_hash

    def tree_hash_hex(self) -> str:
        return self.tree_hash().hex()

    def linear_hash_hex(self) -> str:
        return self.linear_hash().hex()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.close()


class MultiTreeHasher:
    """Combines the tree hashes of the parts of a multipart upload.

    Call :py:meth:`add` with the hex tree hash of each part in the order the parts
    make up the archive, then :py:meth:`create_hash` for the archive's tree hash to
    send when completing the upload.

    The result matches hashing the whole archive at once when every part but the last
    has the same size, a power of two multiple of 1 MiB, which is also what the
    service requires of multipart uploads.
    """

    def __init__(self) -> None:
        self._nodes: list[bytes] = []

    def add(self, hex_digest: str) -> None:
        """Append the hex-encoded tree hash of the next part.

        :raises HexDecodeError: If ``hex_digest`` is not exactly 64 hex characters.
        """
        if not isinstance(hex_digest, str) or not _HEX_DIGEST.fullmatch(hex_digest):
            raise HexDecodeError(
                f"Expected a {DIGEST_SIZE * 2} character hex digest, "
                f"got {hex_digest!r}."
            )
        self._nodes.append(bytes.fromhex(hex_digest))

    def create_hash(self) -> str:
        """The hex-encoded root of every part added so far.

        :returns: The tree hash, or an empty string if no parts were added.
        """
        root = reduce_tree(self._nodes)
        if root is None:
            return ""
        return root.hex()

    def __len__(self) -> int:
        return len(self._nodes)


def compute_hashes(
    body: bytes | bytearray | ByteStream | Iterable[bytes],
    chunk_size: int = CHUNK_SIZE,
) -> tuple[str, str]:
    """Compute the tree hash and linear hash of a complete body.

    Seekable bodies are returned to their original position afterwards.

    :param body: bytes, a readable file-like object, or an iterable of bytes.
    :param chunk_size: The size of each read issued against file-like bodies.
    :returns: The hex-encoded ``(tree_hash, linear_hash)``.
    :raises BodyReadError: If the body cannot be read in full.
    """
    position = rewind_position(body)
    hasher = ChunkHasher()
    try:
        for chunk in iter_body_chunks(body, chunk_size):
            hasher.write(chunk)
    finally:
        if position is not None:
            body.seek(position)  # type: ignore[union-attr]
    hasher.close()
    return hasher.tree_hash_hex(), hasher.linear_hash_hex()
