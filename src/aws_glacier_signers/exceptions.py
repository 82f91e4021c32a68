# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0


class GlacierSignersError(Exception):
    """Top-level exception to capture signing and checksum errors."""


class MissingExpectedParameterError(GlacierSignersError, ValueError):
    """Some operations require specific signing properties to be present."""


class EncodingError(GlacierSignersError, ValueError):
    """A query string could not be decoded for canonicalization."""


class BodyReadError(GlacierSignersError, OSError):
    """The request body could not be read in full."""


class DateParseError(GlacierSignersError, ValueError):
    """A timestamp or scope date could not be parsed."""


class InvalidStateError(GlacierSignersError, RuntimeError):
    """An operation was invoked in the wrong lifecycle state.

    For example, writing to a :py:class:`ChunkHasher` that has already been closed.
    """


class NotReadyError(GlacierSignersError, RuntimeError):
    """A result was read before it was finalized."""


class HexDecodeError(GlacierSignersError, ValueError):
    """A hex-encoded digest was malformed."""


class EndpointResolutionError(GlacierSignersError):
    """Exception type for all exceptions raised by endpoint resolution."""
