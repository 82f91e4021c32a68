# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Construction of the SigV4 canonical request.

The canonical request is a standardized string laying out the components used in
the SigV4 signing algorithm. It is defined to be::

    <HTTPMethod>\\n
    <CanonicalURI>\\n
    <CanonicalQueryString>\\n
    <CanonicalHeaders>\\n
    <SignedHeaders>\\n
    <HashedPayload>

where ``<CanonicalHeaders>`` is itself a sequence of ``name:value\\n`` lines, so a
blank line always separates it from ``<SignedHeaders>``.
"""

import logging
import re
from dataclasses import dataclass
from hashlib import sha256
from io import BytesIO
from typing import cast
from urllib.parse import parse_qsl, quote

from ._http import URI, AWSRequest, Fields
from ._io import iter_body_chunks, rewind_position
from .exceptions import EncodingError
from .interfaces.io import Seekable

logger = logging.getLogger(__name__)

DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}
EMPTY_SHA256_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

_INVALID_PERCENT_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass(frozen=True, kw_only=True)
class CanonicalRequest:
    """An immutable, byte-exact canonical request.

    ``str()`` gives the canonical form and ``bytes()`` its UTF-8 encoding, which is
    what gets hashed into the string to sign.
    """

    method: str
    path: str
    query: str
    headers: tuple[tuple[str, str], ...]
    """Lower-cased header names paired with their canonical values, sorted by name."""

    payload_hash: str
    """Lower-case hex SHA-256 of the request body."""

    @property
    def signed_headers(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.headers)

    @property
    def canonical_headers(self) -> str:
        return "".join(f"{name}:{value}\n" for name, value in self.headers)

    def __str__(self) -> str:
        return (
            f"{self.method}\n"
            f"{self.path}\n"
            f"{self.query}\n"
            f"{self.canonical_headers}\n"
            f"{';'.join(self.signed_headers)}\n"
            f"{self.payload_hash}"
        )

    def __bytes__(self) -> bytes:
        return str(self).encode("utf-8")


def canonical_request(
    request: AWSRequest, *, payload_hash: str | None = None
) -> CanonicalRequest:
    """Build the canonical request of ``request``.

    :param request: The request to canonicalize. ``request.destination.path`` is the
        decoded path; ``request.destination.query`` is the raw, still encoded query.
    :param payload_hash: A precomputed hex SHA-256 of the body. When omitted, the body
        is read in full (see :py:func:`hash_payload`).
    :raises EncodingError: If the query string is malformed.
    :raises BodyReadError: If the body cannot be read in full.
    """
    path = canonical_path(request.destination.path)
    query = canonical_query(request.destination.query)
    headers = canonical_fields(request.fields, request.destination)
    if payload_hash is None:
        payload_hash = hash_payload(request)

    result = CanonicalRequest(
        method=request.method.upper(),
        path=path,
        query=query,
        headers=headers,
        payload_hash=payload_hash,
    )
    # Header values may carry a session token, so only the names are logged.
    logger.debug(
        "Calculated canonical request for %s %s with signed headers %s.",
        result.method,
        result.path,
        ";".join(result.signed_headers),
    )
    return result


def uri_encode(value: str) -> str:
    """Percent-encode ``value`` as UTF-8, preserving only the unreserved characters.

    The unreserved characters are ``A-Z a-z 0-9 - _ . ~``. Every other byte becomes
    ``%XX`` with upper-case hex digits.
    """
    return quote(value, safe="")


def canonical_path(path: str | None) -> str:
    """Normalize dot segments and encode each path segment independently.

    Consecutive slashes collapse. A trailing slash is kept unless the whole path
    reduces to ``/``.
    """
    if not path:
        return "/"

    segments: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        elif segment == "..":
            if segments:
                segments.pop()
        else:
            segments.append(uri_encode(segment))

    if not segments:
        return "/"
    trailing_slash = "/" if path.endswith("/") else ""
    return "/" + "/".join(segments) + trailing_slash


def canonical_query(query: str | None) -> str:
    """Decode the query string, then re-encode and sort its parameters.

    :raises EncodingError: If the query contains an invalid percent-escape or one that
        does not decode as UTF-8.
    """
    if not query:
        return ""

    if (match := _INVALID_PERCENT_ESCAPE.search(query)) is not None:
        raise EncodingError(
            f"Invalid percent-escape at offset {match.start()} of query string "
            f"{query!r}."
        )
    try:
        query_params = parse_qsl(qs=query, keep_blank_values=True, errors="strict")
    except ValueError as e:
        raise EncodingError(f"Unable to decode query string {query!r}: {e}") from e

    query_parts = (
        (uri_encode(key), uri_encode(value)) for key, value in query_params
    )
    # key-value pairs must be in sorted order for their encoded forms.
    return "&".join(f"{key}={value}" for key, value in sorted(query_parts))


def canonical_fields(fields: Fields, destination: URI) -> tuple[tuple[str, str], ...]:
    """Normalize the request headers into sorted ``(name, value)`` pairs.

    Fields whose names are equal once stripped and lower-cased are merged. Repeated
    values are sorted and joined by commas. A ``host`` entry is derived from the
    destination unless the request already carries one.
    """
    normalized: dict[str, list[str]] = {}
    for field in fields:
        name = field.name.strip().lower()
        values = normalized.setdefault(name, [])
        values.extend(" ".join(value.split()) for value in field.values)

    if "host" not in normalized:
        normalized["host"] = [host_field_value(destination)]

    return tuple(
        (name, ",".join(sorted(values))) for name, values in sorted(normalized.items())
    )


def host_field_value(uri: URI) -> str:
    """The ``host`` header for ``uri``, omitting the port when it is the default."""
    if uri.port is not None and DEFAULT_PORTS.get(uri.scheme) == uri.port:
        return uri.host
    return uri.netloc


def hash_payload(request: AWSRequest) -> str:
    """Compute the lower-case hex SHA-256 of the complete request body.

    Seekable bodies are returned to their original position afterwards. Other
    iterable bodies can only be consumed once, so they are buffered and replaced on
    ``request`` by an equivalent :py:class:`io.BytesIO`.

    :raises BodyReadError: If the body cannot be read in full.
    :raises TypeError: If the body is an async type.
    """
    body = request.body
    if body is None:
        return EMPTY_SHA256_HASH

    checksum = sha256()
    if isinstance(body, bytes | bytearray):
        checksum.update(body)
        return checksum.hexdigest()

    position = rewind_position(body)
    if position is not None:
        try:
            for chunk in iter_body_chunks(body):  # type: ignore[arg-type]
                checksum.update(chunk)
        finally:
            cast(Seekable, body).seek(position)
    else:
        buffer = BytesIO()
        for chunk in iter_body_chunks(body):  # type: ignore[arg-type]
            buffer.write(chunk)
            checksum.update(chunk)
        buffer.seek(0)
        request.body = buffer
    return checksum.hexdigest()
