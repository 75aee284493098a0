"""
Request signers for the HMAC-authenticated provider APIs.

All signers are pure functions: the timestamp and nonce are passed in, so
identical inputs always produce an identical ``Authorization`` header.

- Aliyun: ACS3-HMAC-SHA256, RPC style (parameters in the query string,
  empty body).
- DNSPod: TC3-HMAC-SHA256 over a JSON body.
- Huawei Cloud: SDK-HMAC-SHA256.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from urllib.parse import quote

from dns_orchestrator.providers.common import hmac_sha256, sha256_hex
from dns_orchestrator.providers.http_client import truncate_for_log

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Final


# SHA-256 of the empty string, used as the Aliyun payload hash
EMPTY_BODY_SHA256: Final[str] = (
    "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
)

ACS3_ALGORITHM: Final[str] = "ACS3-HMAC-SHA256"
TC3_ALGORITHM: Final[str] = "TC3-HMAC-SHA256"
SDK_ALGORITHM: Final[str] = "SDK-HMAC-SHA256"

ALIYUN_SIGNED_HEADERS: Final[str] = (
    "host;x-acs-action;x-acs-content-sha256;x-acs-date;x-acs-signature-nonce;x-acs-version"
)
TC3_SIGNED_HEADERS: Final[str] = "content-type;host;x-tc-action"
TC3_CONTENT_TYPE: Final[str] = "application/json; charset=utf-8"


logger = logging.getLogger(__name__)


def percent_encode(value: str) -> str:
    """
    RFC 3986 percent-encoding.

    Unreserved characters ``A-Za-z0-9-._~`` stay literal; every other UTF-8
    byte becomes ``%XX`` with uppercase hex.
    """
    return quote(value, safe="")


def aliyun_canonical_query(params: Mapping[str, str]) -> str:
    """
    Build the sorted, encoded query string signed by ACS3.

    Parameters
    ----------
    params : Mapping[str, str]
        Query parameters.

    Returns
    -------
    str
        ``k1=v1&k2=v2`` sorted by key, keys and values percent-encoded.
    """
    return "&".join(
        f"{percent_encode(key)}={percent_encode(params[key])}" for key in sorted(params)
    )


def sign_aliyun(
    access_key_id: str,
    access_key_secret: str,
    *,
    action: str,
    query_string: str,
    timestamp: str,
    nonce: str,
    host: str,
    version: str,
) -> str:
    """
    Compute the ACS3-HMAC-SHA256 ``Authorization`` header.

    Parameters
    ----------
    access_key_id : str
        AccessKey ID.
    access_key_secret : str
        AccessKey secret.
    action : str
        API action (``x-acs-action``).
    query_string : str
        Canonical query string from `aliyun_canonical_query`.
    timestamp : str
        ``x-acs-date`` value, ``YYYY-mm-ddTHH:MM:SSZ``.
    nonce : str
        ``x-acs-signature-nonce`` value.
    host : str
        API host.
    version : str
        API version (``x-acs-version``).

    Returns
    -------
    str
        ``ACS3-HMAC-SHA256 Credential=<id>,SignedHeaders=<list>,Signature=<hex>``.
    """
    canonical_headers = (
        f"host:{host}\n"
        f"x-acs-action:{action}\n"
        f"x-acs-content-sha256:{EMPTY_BODY_SHA256}\n"
        f"x-acs-date:{timestamp}\n"
        f"x-acs-signature-nonce:{nonce}\n"
        f"x-acs-version:{version}\n"
    )
    canonical_request = (
        f"POST\n/\n{query_string}\n{canonical_headers}\n"
        f"{ALIYUN_SIGNED_HEADERS}\n{EMPTY_BODY_SHA256}"
    )
    logger.debug("[aliyun] CanonicalRequest:\n%s", truncate_for_log(canonical_request))

    string_to_sign = f"{ACS3_ALGORITHM}\n{sha256_hex(canonical_request)}"
    signature = hmac_sha256(access_key_secret, string_to_sign).hex()

    return (
        f"{ACS3_ALGORITHM} Credential={access_key_id},"
        f"SignedHeaders={ALIYUN_SIGNED_HEADERS},Signature={signature}"
    )


def sign_tc3(
    secret_id: str,
    secret_key: str,
    *,
    action: str,
    payload: str,
    timestamp: int,
    host: str,
    service: str,
) -> str:
    """
    Compute the TC3-HMAC-SHA256 ``Authorization`` header.

    The signing key is derived by chaining HMAC over the UTC date of
    `timestamp`, the service name and ``tc3_request``.

    Parameters
    ----------
    secret_id : str
        SecretId.
    secret_key : str
        SecretKey.
    action : str
        API action (``X-TC-Action``).
    payload : str
        JSON request body, exactly as sent.
    timestamp : int
        Unix timestamp (``X-TC-Timestamp``).
    host : str
        API host.
    service : str
        Service name used in the credential scope.

    Returns
    -------
    str
        ``TC3-HMAC-SHA256 Credential=<id>/<scope>, SignedHeaders=..., Signature=<hex>``.
    """
    date = datetime.fromtimestamp(timestamp, tz=UTC).strftime("%Y-%m-%d")

    canonical_headers = (
        f"content-type:{TC3_CONTENT_TYPE}\nhost:{host}\nx-tc-action:{action.lower()}\n"
    )
    canonical_request = (
        f"POST\n/\n\n{canonical_headers}\n{TC3_SIGNED_HEADERS}\n{sha256_hex(payload)}"
    )

    credential_scope = f"{date}/{service}/tc3_request"
    string_to_sign = (
        f"{TC3_ALGORITHM}\n{timestamp}\n{credential_scope}\n{sha256_hex(canonical_request)}"
    )

    secret_date = hmac_sha256(f"TC3{secret_key}", date)
    secret_service = hmac_sha256(secret_date, service)
    secret_signing = hmac_sha256(secret_service, "tc3_request")
    signature = hmac_sha256(secret_signing, string_to_sign).hex()

    return (
        f"{TC3_ALGORITHM} Credential={secret_id}/{credential_scope}, "
        f"SignedHeaders={TC3_SIGNED_HEADERS}, Signature={signature}"
    )


def huawei_canonical_query(query: str) -> str:
    """Sort the ``k=v`` segments of an already-encoded query string."""
    if not query:
        return ""
    return "&".join(sorted(query.split("&")))


def sign_huawei(
    access_key_id: str,
    secret_access_key: str,
    *,
    method: str,
    uri: str,
    query: str,
    headers: Mapping[str, str],
    payload: str,
    timestamp: str,
) -> str:
    """
    Compute the SDK-HMAC-SHA256 ``Authorization`` header.

    Parameters
    ----------
    access_key_id : str
        Access key (AK).
    secret_access_key : str
        Secret key (SK).
    method : str
        HTTP method.
    uri : str
        Request path; a trailing ``/`` is added for signing.
    query : str
        Encoded query string (unsorted is fine).
    headers : Mapping[str, str]
        Headers to sign (``Host``, ``X-Sdk-Date`` and optionally
        ``Content-Type``).
    payload : str
        Request body, empty for GET and DELETE.
    timestamp : str
        ``X-Sdk-Date`` value, ``YYYYmmddTHHMMSSZ``.

    Returns
    -------
    str
        ``SDK-HMAC-SHA256 Access=<ak>, SignedHeaders=<list>, Signature=<hex>``.
    """
    canonical_uri = uri if uri.endswith("/") else f"{uri}/"

    sorted_headers = sorted(headers.items(), key=lambda item: item[0].lower())
    canonical_headers = "".join(
        f"{name.lower()}:{value.strip()}\n" for name, value in sorted_headers
    )
    signed_headers = ";".join(name.lower() for name, _ in sorted_headers)

    canonical_request = (
        f"{method}\n{canonical_uri}\n{huawei_canonical_query(query)}\n"
        f"{canonical_headers}\n{signed_headers}\n{sha256_hex(payload)}"
    )
    logger.debug("[huaweicloud] CanonicalRequest:\n%s", truncate_for_log(canonical_request))

    string_to_sign = f"{SDK_ALGORITHM}\n{timestamp}\n{sha256_hex(canonical_request)}"
    signature = hmac_sha256(secret_access_key, string_to_sign).hex()

    return (
        f"{SDK_ALGORITHM} Access={access_key_id}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
