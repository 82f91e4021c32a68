# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""AWS Glacier Signers provides stand-alone SigV4 request signing and SHA-256 tree
hashing for Amazon S3 Glacier uploads, for use with HTTP tools such as AioHTTP,
Curl, Requests, urllib3, etc."""

from __future__ import annotations

from ._http import URI, AWSRequest, Field, Fields
from ._identity import AWSCredentialIdentity
from ._io import AsyncBytesReader
from .canonical import CanonicalRequest, canonical_request
from .config import SignerConfig
from .endpoints import glacier_host, glacier_uri
from .signers import (
    AsyncSigV4Signer,
    Scope,
    SigV4Signer,
    SigV4SigningProperties,
    compute_signature,
    derive_signing_key,
    format_timestamp,
    string_to_sign,
)
from .treehash import (
    CHUNK_SIZE,
    ChunkHasher,
    MultiTreeHasher,
    compute_hashes,
    reduce_tree,
)

__license__ = "Apache-2.0"
__version__ = "0.1.0"

__all__ = (
    "CHUNK_SIZE",
    "URI",
    "AWSCredentialIdentity",
    "AWSRequest",
    "AsyncBytesReader",
    "AsyncSigV4Signer",
    "CanonicalRequest",
    "ChunkHasher",
    "Field",
    "Fields",
    "MultiTreeHasher",
    "Scope",
    "SigV4Signer",
    "SigV4SigningProperties",
    "SignerConfig",
    "canonical_request",
    "compute_hashes",
    "compute_signature",
    "derive_signing_key",
    "format_timestamp",
    "glacier_host",
    "glacier_uri",
    "reduce_tree",
    "string_to_sign",
)
