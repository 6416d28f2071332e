"""HMAC-signed, time-limited stream URL tokens.

Token Scheme:
    expires = floor(now) + window                      (unix seconds)
    token   = hex(HMAC-SHA256(secret, "{video_id}:{user}:{expires}"))

The signed URL carries ``user``, ``expires`` and ``token`` as query
parameters. A token is valid for any number of requests (including Range
sub-requests) until ``now > expires``. Authorization happens when the URL is
issued; verification only proves the URL was issued by us and is unexpired.

The clock and the secret provider are injected so tests can pin time and
keys without touching globals.

Usage:
    signer = StreamTokenSigner()
    signed = signer.issue(str(video.id), user_id, timedelta(minutes=30))
    signer.verify(video_id, request_user, request_expires, request_token)
"""

import hashlib
import hmac
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.config import get_stream_signing_secret
from app.exceptions import ExpiredStreamTokenError, InvalidStreamTokenError

Clock = Callable[[], float]
SecretProvider = Callable[[], str]

# User identity signed into URLs issued to unauthenticated callers
ANONYMOUS_USER = "anonymous"


@dataclass(frozen=True)
class SignedStream:
    """Query parameters of an issued stream URL."""

    video_id: str
    user: str
    expires: int
    token: str

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.expires, tz=timezone.utc)

    def query_params(self) -> dict[str, str]:
        return {"user": self.user, "expires": str(self.expires), "token": self.token}


class StreamTokenSigner:
    """Issues and verifies stream tokens.

    Args:
        secret_provider: Returns the HMAC secret (default: STREAM_SIGNING_SECRET).
        clock: Returns the current unix time in seconds (default: time.time).
    """

    def __init__(
        self,
        secret_provider: SecretProvider = get_stream_signing_secret,
        clock: Clock = time.time,
    ):
        self._secret_provider = secret_provider
        self._clock = clock

    def sign(self, video_id: str, user: str, expires: int | str) -> str:
        message = f"{video_id}:{user}:{expires}".encode()
        return hmac.new(self._secret_provider().encode(), message, hashlib.sha256).hexdigest()

    def issue(self, video_id: str, user_id: str | None, window: timedelta) -> SignedStream:
        """Issue a token for ``user_id`` (anonymous when None) valid for ``window``."""
        user = user_id or ANONYMOUS_USER
        expires = int(self._clock()) + int(window.total_seconds())
        return SignedStream(
            video_id=video_id,
            user=user,
            expires=expires,
            token=self.sign(video_id, user, expires),
        )

    def verify(self, video_id: str, user: str, expires: int | str, token: str) -> None:
        """Check a token taken off a stream request.

        Raises:
            InvalidStreamTokenError: Token does not match the signed inputs.
            ExpiredStreamTokenError: Token matches but the current time is past expires.
        """
        expected = self.sign(video_id, user, expires)
        if not hmac.compare_digest(expected.encode(), token.encode()):
            raise InvalidStreamTokenError()

        try:
            expires_at = int(expires)
        except (TypeError, ValueError) as e:
            raise InvalidStreamTokenError() from e

        if self._clock() > expires_at:
            raise ExpiredStreamTokenError()
