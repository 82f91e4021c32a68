# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import datetime
import hmac
import logging
import re
from collections.abc import AsyncIterable
from copy import deepcopy
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from hashlib import sha256
from inspect import iscoroutinefunction
from io import BytesIO
from typing import Required, TypedDict

from ._http import AWSRequest, Field
from ._identity import AWSCredentialIdentity
from ._io import AsyncBytesReader, iter_body_chunks, read_async_body, rewind_position
from .canonical import CanonicalRequest, canonical_request, hash_payload
from .exceptions import DateParseError, MissingExpectedParameterError
from .interfaces.identity import AWSCredentialsIdentity as _AWSCredentialsIdentity
from .interfaces.io import AsyncByteStream
from .treehash import compute_hashes

logger = logging.getLogger(__name__)

SIGNING_ALGORITHM: str = "AWS4-HMAC-SHA256"
SCOPE_TERMINATOR: str = "aws4_request"
SIGV4_TIMESTAMP_FORMAT: str = "%Y%m%dT%H%M%SZ"
SIGV4_DATE_FORMAT: str = "%Y%m%d"

CONTENT_SHA256_FIELD: str = "X-Amz-Content-SHA256"
TREE_HASH_FIELD: str = "X-Amz-SHA256-Tree-Hash"

_SCOPE_DATE = re.compile(r"[0-9]{8}")
# Extended ISO 8601 is only accepted with a time of day.
_ISO_DATE_TIME = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}[T ][0-9]{2}:[0-9]{2}")


class SigV4SigningProperties(TypedDict, total=False):
    region: Required[str]
    service: Required[str]
    date: str | datetime.datetime
    content_checksum_enabled: bool
    tree_hash_enabled: bool


@dataclass(frozen=True)
class Scope:
    """The date, region and service a signing key is valid for."""

    date: str
    """The signing date as ``YYYYMMDD``."""

    region: str
    service: str

    def __post_init__(self) -> None:
        if not isinstance(self.date, str) or not _SCOPE_DATE.fullmatch(self.date):
            raise DateParseError(
                f"Scope date must be 8 digits (YYYYMMDD), got {self.date!r}."
            )

    @classmethod
    def from_timestamp(
        cls, timestamp: str | datetime.datetime, region: str, service: str
    ) -> "Scope":
        return cls(format_timestamp(timestamp)[0:8], region, service)

    def __str__(self) -> str:
        # Scope format: <YYYYMMDD>/<AWS Region>/<AWS Service>/aws4_request
        return f"{self.date}/{self.region}/{self.service}/{SCOPE_TERMINATOR}"


def format_timestamp(value: str | datetime.datetime) -> str:
    """Re-emit a request date in the compact ISO 8601 form ``YYYYMMDDThhmmssZ``.

    Naive datetimes are assumed to be UTC. Strings may be in the compact form, an
    HTTP date such as ``Mon, 09 Sep 2011 23:36:00 GMT``, or extended ISO 8601.

    :raises DateParseError: If ``value`` is not a recognizable timestamp.
    """
    if isinstance(value, datetime.datetime):
        timestamp = value
    elif isinstance(value, str):
        timestamp = _parse_timestamp(value)
    else:
        raise DateParseError(f"Expected a str or datetime timestamp, got {type(value)}.")

    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=datetime.UTC)
    return timestamp.astimezone(datetime.UTC).strftime(SIGV4_TIMESTAMP_FORMAT)


def _parse_timestamp(value: str) -> datetime.datetime:
    value = value.strip()
    try:
        return datetime.datetime.strptime(value, SIGV4_TIMESTAMP_FORMAT)
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        pass
    if _ISO_DATE_TIME.match(value):
        try:
            return datetime.datetime.fromisoformat(value)
        except ValueError:
            pass
    raise DateParseError(f"Unable to parse timestamp {value!r}.")


def string_to_sign(
    canonical_request: CanonicalRequest | str | bytes,
    timestamp: str | datetime.datetime,
    scope: Scope | str,
) -> str:
    """The string to sign concatenates the formal identifier of the signing
    algorithm, the signing DateTime, the scope of the credentials, and a hash of the
    canonical request.

    The SigV4 specification defines the string to sign as:
        Algorithm \\n
        RequestDateTime \\n
        CredentialScope  \\n
        HashedCanonicalRequest

    :raises DateParseError: If ``timestamp`` cannot be parsed.
    """
    if isinstance(canonical_request, str):
        canonical_request = canonical_request.encode("utf-8")
    return (
        f"{SIGNING_ALGORITHM}\n"
        f"{format_timestamp(timestamp)}\n"
        f"{scope}\n"
        f"{sha256(bytes(canonical_request)).hexdigest()}"
    )


def derive_signing_key(secret: str, date: str, region: str, service: str) -> bytes:
    """Derive the signing key scoped to one day, region and service.

    The long-term secret is only ever used as the key of the first step.
    """
    # DateKey              = HMAC-SHA256("AWS4"+"<SecretAccessKey>", "<YYYYMMDD>")
    # DateRegionKey        = HMAC-SHA256(<DateKey>, "<aws-region>")
    # DateRegionServiceKey = HMAC-SHA256(<DateRegionKey>, "<aws-service>")
    # SigningKey           = HMAC-SHA256(<DateRegionServiceKey>, "aws4_request")
    k_date = _hmac(f"AWS4{secret}".encode(), date.encode())
    k_region = _hmac(k_date, region.encode())
    k_service = _hmac(k_region, service.encode())
    return _hmac(k_service, SCOPE_TERMINATOR.encode())


def compute_signature(signing_key: bytes, string_to_sign: str | bytes) -> str:
    if isinstance(string_to_sign, str):
        string_to_sign = string_to_sign.encode("utf-8")
    return _hmac(signing_key, string_to_sign).hex()


def _hmac(key: bytes, msg: bytes) -> bytes:
    return hmac.new(key, msg, sha256).digest()


class _SigV4Algorithm:
    """Steps of the signing algorithm shared by the sync and async signers."""

    def generate_authorization_field(
        self, *, credential: str, signed_headers: list[str], signature: str
    ) -> Field:
        """Generate the `Authorization` field.

        :param credential:
            Credential scope string for generating the Authorization header.
            Defined as:
                <access_key>/<date>/<region>/<service>/<request_type>
        :param signed_headers:
            A list of the field names used in signing.
        :param signature:
            Final hash of the SigV4 signing algorithm generated from the
            canonical request and string to sign.
        """
        signed_headers_str = ";".join(signed_headers)
        auth_str = (
            f"{SIGNING_ALGORITHM} Credential={credential}, "
            f"SignedHeaders={signed_headers_str}, Signature={signature}"
        )
        return Field(name="Authorization", values=[auth_str])

    def _validate_identity(self, *, identity: AWSCredentialIdentity) -> None:
        """Perform runtime and expiration checks before attempting signing."""
        if not isinstance(identity, _AWSCredentialsIdentity):  # pyright: ignore
            raise ValueError(
                "Received unexpected value for identity parameter. Expected "
                f"AWSCredentialIdentity but received {type(identity)}."
            )
        elif identity.is_expired:
            raise ValueError(
                f"Provided identity expired at {identity.expiration}. Please "
                "refresh the credentials or update the expiration parameter."
            )

    def _validate_signing_properties(
        self, *, signing_properties: SigV4SigningProperties
    ) -> None:
        for name in ("region", "service"):
            if not signing_properties.get(name):
                raise MissingExpectedParameterError(
                    f"Cannot sign a request without a {name} in the signing "
                    f"properties. Current value: {signing_properties.get(name)}"
                )

    def _generate_new_request(self, *, request: AWSRequest) -> AWSRequest:
        new_request = deepcopy(request)
        if "Authorization" in new_request.fields:
            del new_request.fields["Authorization"]
        return new_request

    def _resolve_timestamp(
        self, *, request: AWSRequest, signing_properties: SigV4SigningProperties
    ) -> str:
        if "date" in signing_properties:
            return format_timestamp(signing_properties["date"])
        for name in ("X-Amz-Date", "Date"):
            field = request.fields.get(name)
            if field is not None and field.values:
                return format_timestamp(field.values[0])
        return format_timestamp(datetime.datetime.now(datetime.UTC))

    def _apply_required_fields(
        self,
        *,
        request: AWSRequest,
        timestamp: str,
        identity: AWSCredentialIdentity,
        signing_properties: SigV4SigningProperties,
    ) -> None:
        # An explicit signing date replaces any X-Amz-Date already on the request.
        # Otherwise X-Amz-Date is only added if neither it nor Date are present.
        if "date" in signing_properties or (
            "Date" not in request.fields and "X-Amz-Date" not in request.fields
        ):
            request.fields.set_field(Field(name="X-Amz-Date", values=[timestamp]))
        # Apply required X-Amz-Security-Token if token present on identity
        if (
            "X-Amz-Security-Token" not in request.fields
            and identity.session_token is not None
        ):
            request.fields.set_field(
                Field(name="X-Amz-Security-Token", values=[identity.session_token])
            )

    def _apply_checksum_fields(
        self,
        *,
        request: AWSRequest,
        signing_properties: SigV4SigningProperties,
        tree_hash: str | None,
        payload_hash: str | None,
    ) -> None:
        if tree_hash is not None and signing_properties.get("tree_hash_enabled", False):
            request.fields.set_field(Field(name=TREE_HASH_FIELD, values=[tree_hash]))
        if payload_hash is not None and signing_properties.get(
            "content_checksum_enabled", False
        ):
            request.fields.set_field(
                Field(name=CONTENT_SHA256_FIELD, values=[payload_hash])
            )

    def _sign_request(
        self,
        *,
        request: AWSRequest,
        timestamp: str,
        signing_properties: SigV4SigningProperties,
        identity: AWSCredentialIdentity,
        payload_hash: str | None,
    ) -> AWSRequest:
        canonical = canonical_request(request, payload_hash=payload_hash)
        scope = Scope(
            timestamp[0:8], signing_properties["region"], signing_properties["service"]
        )
        sts = string_to_sign(canonical, timestamp, scope)
        logger.debug("Calculated string to sign:\n%s", sts)

        signing_key = derive_signing_key(
            identity.secret_access_key, scope.date, scope.region, scope.service
        )
        authorization = self.generate_authorization_field(
            credential=f"{identity.access_key_id}/{scope}",
            signed_headers=list(canonical.signed_headers),
            signature=compute_signature(signing_key, sts),
        )
        request.fields.set_field(authorization)
        logger.debug(
            "Signed %s request to %s with credential scope %s.",
            canonical.method,
            request.destination.host,
            scope,
        )
        return request


class SigV4Signer(_SigV4Algorithm):
    """Request signer for applying the AWS Signature Version 4 algorithm."""

    def sign(
        self,
        *,
        signing_properties: SigV4SigningProperties,
        http_request: AWSRequest,
        identity: AWSCredentialIdentity,
    ) -> AWSRequest:
        """Generate and apply a SigV4 Signature to a copy of the supplied request.

        :param signing_properties: SigV4SigningProperties to define signing primitives
            such as the target service, region, and date.
        :param http_request: An AWSRequest to sign prior to sending to the service.
        :param identity: A set of credentials representing an AWS Identity or role
            capacity.
        """
        self._validate_identity(identity=identity)
        self._validate_signing_properties(signing_properties=signing_properties)

        # Copy and prepopulate any missing values in the supplied request.
        new_request = self._generate_new_request(request=http_request)
        timestamp = self._resolve_timestamp(
            request=new_request, signing_properties=signing_properties
        )
        self._apply_required_fields(
            request=new_request,
            timestamp=timestamp,
            identity=identity,
            signing_properties=signing_properties,
        )

        tree_hash = payload_hash = None
        if signing_properties.get("tree_hash_enabled", False):
            self._make_body_replayable(request=new_request)
            body = new_request.body if new_request.body is not None else b""
            tree_hash, payload_hash = compute_hashes(body)  # type: ignore[arg-type]
        elif signing_properties.get("content_checksum_enabled", False):
            payload_hash = hash_payload(new_request)
        self._apply_checksum_fields(
            request=new_request,
            signing_properties=signing_properties,
            tree_hash=tree_hash,
            payload_hash=payload_hash,
        )

        return self._sign_request(
            request=new_request,
            timestamp=timestamp,
            signing_properties=signing_properties,
            identity=identity,
            payload_hash=payload_hash,
        )

    def _make_body_replayable(self, *, request: AWSRequest) -> None:
        # A one-shot iterable has to be buffered so it can be hashed and still sent.
        body = request.body
        if body is None or isinstance(body, bytes | bytearray):
            return
        if rewind_position(body) is None:
            request.body = BytesIO(b"".join(iter_body_chunks(body)))  # type: ignore[arg-type]


class AsyncSigV4Signer(_SigV4Algorithm):
    """Request signer for applying the AWS Signature Version 4 algorithm to requests
    with async bodies."""

    async def sign(
        self,
        *,
        signing_properties: SigV4SigningProperties,
        http_request: AWSRequest,
        identity: AWSCredentialIdentity,
    ) -> AWSRequest:
        """Generate and apply a SigV4 Signature to a copy of the supplied request.

        The body is read once and replaced by an in-memory
        :py:class:`AsyncBytesReader` on the signed copy.

        :param signing_properties: SigV4SigningProperties to define signing primitives
            such as the target service, region, and date.
        :param http_request: An AWSRequest to sign prior to sending to the service.
        :param identity: A set of credentials representing an AWS Identity or role
            capacity.
        """
        self._validate_identity(identity=identity)
        self._validate_signing_properties(signing_properties=signing_properties)

        new_request = self._generate_new_request(request=http_request)
        timestamp = self._resolve_timestamp(
            request=new_request, signing_properties=signing_properties
        )
        self._apply_required_fields(
            request=new_request,
            timestamp=timestamp,
            identity=identity,
            signing_properties=signing_properties,
        )

        body = new_request.body
        if body is None:
            data = b""
        elif isinstance(body, bytes | bytearray):
            data = bytes(body)
        elif isinstance(body, AsyncIterable) or (
            isinstance(body, AsyncByteStream) and iscoroutinefunction(body.read)
        ):
            data = await read_async_body(body)
            new_request.body = AsyncBytesReader(data)
        else:
            raise TypeError(
                "A sync body was attached to an asynchronous signer. Please use "
                "SigV4Signer for sync AWSRequests or ensure your body is "
                "of type AsyncIterable[bytes]."
            )

        payload_hash = sha256(data).hexdigest()
        tree_hash = None
        if signing_properties.get("tree_hash_enabled", False):
            tree_hash, _ = compute_hashes(data)
        self._apply_checksum_fields(
            request=new_request,
            signing_properties=signing_properties,
            tree_hash=tree_hash,
            payload_hash=payload_hash,
        )

        return self._sign_request(
            request=new_request,
            timestamp=timestamp,
            signing_properties=signing_properties,
            identity=identity,
            payload_hash=payload_hash,
        )
