"""
Device fingerprinting.

A fingerprint is a SHA-256 digest over the ordered tuple
(user-agent, client IP, accept-language, accept-encoding). Requests from
the same browser on the same network collide; different devices
practically never do.

This is a coarse multiplexing key for sessions, not a security boundary
on its own: every component is client-controlled.
"""

import hashlib
from dataclasses import dataclass

from fastapi import Request


@dataclass(frozen=True)
class DeviceMetadata:
    """Connection metadata the fingerprint is derived from."""
    user_agent: str = ""
    ip_address: str = ""
    accept_language: str = ""
    accept_encoding: str = ""

    @classmethod
    def from_request(cls, request: Request, trust_forwarded_for: bool = False) -> "DeviceMetadata":
        ip_address = request.client.host if request.client else ""
        if trust_forwarded_for:
            forwarded = request.headers.get("x-forwarded-for", "")
            if forwarded:
                # Left-most hop is the original client
                ip_address = forwarded.split(",")[0].strip()

        return cls(
            user_agent=request.headers.get("user-agent", ""),
            ip_address=ip_address,
            accept_language=request.headers.get("accept-language", ""),
            accept_encoding=request.headers.get("accept-encoding", ""),
        )


def fingerprint(metadata: DeviceMetadata) -> str:
    """Return the hex SHA-256 digest identifying the calling device."""
    components = (
        metadata.user_agent,
        metadata.ip_address,
        metadata.accept_language,
        metadata.accept_encoding,
    )
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()
