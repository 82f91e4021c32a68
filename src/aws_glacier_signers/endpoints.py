# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from ._http import URI
from .exceptions import EndpointResolutionError

ENDPOINT_PREFIX = "glacier"


def glacier_host(region: str, dns_suffix: str = "amazonaws.com") -> str:
    """Resolve the standard regional hostname of the Glacier endpoint.

    :raises EndpointResolutionError: If no region is given.
    """
    if not region:
        raise EndpointResolutionError("Unable to resolve endpoint - region is required.")
    return f"{ENDPOINT_PREFIX}.{region}.{dns_suffix}"


def glacier_uri(region: str, path: str | None = None, query: str | None = None) -> URI:
    return URI(host=glacier_host(region), path=path, query=query)
