# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import typing
from hashlib import sha256
from io import BytesIO

import pytest
from aws_glacier_signers import URI, AsyncBytesReader, AWSRequest, Field, Fields
from aws_glacier_signers.canonical import (
    EMPTY_SHA256_HASH,
    CanonicalRequest,
    canonical_fields,
    canonical_path,
    canonical_query,
    canonical_request,
    hash_payload,
    uri_encode,
)
from aws_glacier_signers.exceptions import BodyReadError, EncodingError

HOST = "glacier.us-east-1.amazonaws.com"


def _request(
    *,
    method: str = "GET",
    path: str | None = "/",
    query: str | None = None,
    fields: Fields | None = None,
    body: typing.Any = None,
    port: int | None = None,
) -> AWSRequest:
    return AWSRequest(
        destination=URI(host=HOST, port=port, path=path, query=query),
        method=method,
        body=body,
        fields=fields if fields is not None else Fields(),
    )


@pytest.mark.parametrize(
    "value,expected",
    [
        ("abcXYZ019", "abcXYZ019"),
        ("-_.~", "-_.~"),
        ("a b", "a%20b"),
        ("a/b", "a%2Fb"),
        ("a+b=c&d", "a%2Bb%3Dc%26d"),
        ("ሴ", "%E1%88%B4"),
        ("*", "%2A"),
    ],
)
def test_uri_encode(value: str, expected: str) -> None:
    assert uri_encode(value) == expected


@pytest.mark.parametrize(
    "path,expected",
    [
        (None, "/"),
        ("", "/"),
        ("/", "/"),
        ("//", "/"),
        ("/./", "/"),
        ("/a/../", "/"),
        ("/-/vaults", "/-/vaults"),
        ("/-/vaults/", "/-/vaults/"),
        ("/a/./b/../c", "/a/c"),
        ("/a/./b/../c/", "/a/c/"),
        ("/../a", "/a"),
        ("//a//b", "/a/b"),
        ("/a/.", "/a"),
        ("/example space/", "/example%20space/"),
        ("/ሴ", "/%E1%88%B4"),
        ("/a:b@c", "/a%3Ab%40c"),
        ("/-_.~", "/-_.~"),
    ],
)
def test_canonical_path(path: str | None, expected: str) -> None:
    assert canonical_path(path) == expected


@pytest.mark.parametrize(
    "query,expected",
    [
        (None, ""),
        ("", ""),
        ("b=2&a=1&a=3", "a=1&a=3&b=2"),
        ("a=3&a=1", "a=1&a=3"),
        ("Param2=value2&Param1=value1", "Param1=value1&Param2=value2"),
        ("a=1&A=2", "A=2&a=1"),
        ("a", "a="),
        ("a=", "a="),
        ("a=b+c", "a=b%20c"),
        ("a=b%20c", "a=b%20c"),
        ("k%20y=v%2Fal", "k%20y=v%2Fal"),
        ("a=%7E", "a=~"),
        ("a=%e1%88%b4", "a=%E1%88%B4"),
        ("upload-id=abc&limit=10&marker=", "limit=10&marker=&upload-id=abc"),
    ],
)
def test_canonical_query(query: str | None, expected: str) -> None:
    assert canonical_query(query) == expected


@pytest.mark.parametrize("query", ["a=%zz", "a=%2", "a=100%", "%GGa=1", "a=%FF"])
def test_canonical_query_malformed(query: str) -> None:
    with pytest.raises(EncodingError):
        canonical_query(query)


def test_canonical_fields_adds_host() -> None:
    fields = Fields([Field(name="X-Amz-Glacier-Version", values=["2012-06-01"])])
    assert canonical_fields(fields, URI(host=HOST)) == (
        ("host", HOST),
        ("x-amz-glacier-version", "2012-06-01"),
    )


def test_canonical_fields_keeps_existing_host() -> None:
    fields = Fields([Field(name="Host", values=["example.com"])])
    assert canonical_fields(fields, URI(host=HOST)) == (("host", "example.com"),)


@pytest.mark.parametrize(
    "uri,expected",
    [
        (URI(host=HOST, port=443), HOST),
        (URI(scheme="http", host=HOST, port=80), HOST),
        (URI(host=HOST, port=80), f"{HOST}:80"),
        (URI(host="127.0.0.1", port=8000), "127.0.0.1:8000"),
    ],
)
def test_canonical_fields_host_port(uri: URI, expected: str) -> None:
    assert canonical_fields(Fields(), uri) == (("host", expected),)


def test_canonical_fields_collapse_case_variants() -> None:
    fields = Fields(
        [
            Field(name="X-Amz-Date", values=["20150830T123600Z"]),
            Field(name="x-amz-date", values=["20150830T000000Z"]),
        ]
    )
    assert canonical_fields(fields, URI(host=HOST)) == (
        ("host", HOST),
        ("x-amz-date", "20150830T000000Z,20150830T123600Z"),
    )


def test_canonical_fields_merge_names_with_whitespace() -> None:
    fields = Fields()
    fields.entries["a"] = Field(name="My-Header", values=["b"])
    fields.entries["b"] = Field(name=" my-header ", values=["a"])
    assert canonical_fields(fields, URI(host=HOST)) == (
        ("host", HOST),
        ("my-header", "a,b"),
    )


def test_canonical_fields_normalize_value_whitespace() -> None:
    fields = Fields([Field(name="My-Header", values=["  value   with\tspaces  "])])
    assert canonical_fields(fields, URI(host=HOST)) == (
        ("host", HOST),
        ("my-header", "value with spaces"),
    )


def test_canonical_request_layout() -> None:
    fields = Fields(
        [
            Field(name="X-Amz-Date", values=["20120525T002453Z"]),
            Field(name="X-Amz-Glacier-Version", values=["2012-06-01"]),
        ]
    )
    request = _request(
        method="put", path="/-/vaults/examplevault", query="b=2&a=1", fields=fields
    )
    result = canonical_request(request)
    assert result.signed_headers == ("host", "x-amz-date", "x-amz-glacier-version")
    assert str(result) == (
        "PUT\n"
        "/-/vaults/examplevault\n"
        "a=1&b=2\n"
        f"host:{HOST}\n"
        "x-amz-date:20120525T002453Z\n"
        "x-amz-glacier-version:2012-06-01\n"
        "\n"
        "host;x-amz-date;x-amz-glacier-version\n"
        f"{EMPTY_SHA256_HASH}"
    )
    assert bytes(result) == str(result).encode()


def test_canonical_request_is_deterministic() -> None:
    fields = Fields([Field(name="X-Amz-Date", values=["20120525T002453Z"])])
    request = _request(method="POST", query="z=1&y=2", fields=fields, body=BytesIO(b"x"))
    first = canonical_request(request)
    second = canonical_request(request)
    assert first == second
    assert bytes(first) == bytes(second)


def test_canonical_request_uses_given_payload_hash() -> None:
    class UnreadableBody:
        def read(self, size: int = -1) -> bytes:
            raise AssertionError("The body should not have been read.")

    request = _request(body=UnreadableBody())
    result = canonical_request(request, payload_hash="abc")
    assert result.payload_hash == "abc"


def test_canonical_request_fails_without_partial_result() -> None:
    request = _request(query="a=%zz", body=b"body")
    with pytest.raises(EncodingError):
        canonical_request(request)


def test_canonical_request_is_frozen() -> None:
    result = CanonicalRequest(
        method="GET", path="/", query="", headers=(), payload_hash=EMPTY_SHA256_HASH
    )
    with pytest.raises(AttributeError):
        result.method = "PUT"  # type: ignore[misc]


class TestHashPayload:
    def test_no_body(self) -> None:
        assert hash_payload(_request(body=None)) == EMPTY_SHA256_HASH

    def test_bytes(self) -> None:
        assert hash_payload(_request(body=b"archive")) == sha256(b"archive").hexdigest()

    def test_seekable_body_is_rewound(self) -> None:
        body = BytesIO(b"--archive")
        body.seek(2)
        request = _request(body=body)
        assert hash_payload(request) == sha256(b"archive").hexdigest()
        assert request.body is body
        assert body.tell() == 2

    def test_iterable_body_is_buffered(self) -> None:
        request = _request(body=iter([b"arc", b"hive"]))
        assert hash_payload(request) == sha256(b"archive").hexdigest()
        assert isinstance(request.body, BytesIO)
        assert request.body.read() == b"archive"

    def test_unreadable_body(self) -> None:
        def chunks() -> typing.Iterator[bytes]:
            yield b"arc"
            raise OSError("connection reset")

        with pytest.raises(BodyReadError):
            hash_payload(_request(body=chunks()))

    def test_non_bytes_chunk(self) -> None:
        with pytest.raises(BodyReadError):
            hash_payload(_request(body=["not bytes"]))

    def test_async_body(self) -> None:
        with pytest.raises(TypeError):
            hash_payload(_request(body=AsyncBytesReader(b"archive")))

    def test_read_would_block(self) -> None:
        class NonBlockingStream:
            def read(self, size: int = -1) -> bytes | None:
                return None

        request = _request(body=NonBlockingStream())
        with pytest.raises(BodyReadError):
            hash_payload(request)
