"""
Certificate set comparison for TLS proxies.

Remote APIs keep the order in which certificates were attached, but that
order carries no meaning: two lists match when they hold the same
identifiers with the same multiplicity. Identifiers are compared by logical
identity, so a relative locator matches the full URL the API hands back.
"""

from __future__ import annotations

from collections import Counter
from typing import List, Optional, Sequence

from .errors import LimitExceededError
from .resources import CertificateRef, ResourceId

# Every target https proxy accepts up to 10 ssl certificates.
TARGET_PROXY_CERT_LIMIT = 10


def _parse(ref: CertificateRef) -> Optional[ResourceId]:
    try:
        return ResourceId.parse(ref)
    except ValueError:
        return None


def _specificity(ref: CertificateRef) -> int:
    rid = _parse(ref)
    if rid is None:
        return 4
    return sum(1 for f in (rid.collection, rid.location, rid.project) if f is not None)


def certs_match(desired: Sequence[CertificateRef], remote: Sequence[CertificateRef]) -> bool:
    if len(desired) != len(remote):
        return False

    # identical strings pair off first, the rest by parsed identity
    left = Counter(desired)
    right = Counter(remote)
    common = left & right
    left -= common
    right -= common
    if not left:
        return True

    pending: List[CertificateRef] = sorted(right.elements(), key=_specificity, reverse=True)
    for ref in sorted(left.elements(), key=_specificity, reverse=True):
        mine = _parse(ref)
        if mine is None:
            return False
        for i, other in enumerate(pending):
            theirs = _parse(other)
            if theirs is not None and mine.matches(theirs):
                del pending[i]
                break
        else:
            return False
    return True


def check_cert_limit(certificates: Sequence[CertificateRef], proxy_name: str) -> None:
    """Raise LimitExceededError when the list does not fit on one proxy."""
    if len(certificates) > TARGET_PROXY_CERT_LIMIT:
        raise LimitExceededError(
            f"{len(certificates)} certificates requested for {proxy_name}; "
            f"a proxy accepts at most {TARGET_PROXY_CERT_LIMIT}"
        )
