"""
Error taxonomy for the relay.

Every failure that reaches the request boundary is turned into exactly one
RelayError subclass, which knows its HTTP status and JSON payload.
"""

# Resolver messages that mean the resource exists but we are not allowed to see it
ACCESS_DENIED_MARKERS = ("private", "unavailable", "sign in", "login", "members-only")
COOKIE_MARKERS = ("cookies",)

DEFAULT_MAX_DETAIL_LENGTH = 200


def truncate(text: str, limit: int = DEFAULT_MAX_DETAIL_LENGTH) -> str:
    text = str(text)
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


class RelayError(Exception):
    status = 500
    kind = "internal_failure"

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = {k: v for k, v in extra.items() if v is not None}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        payload.update(self.extra)
        return payload


class InvalidRequest(RelayError):
    status = 400
    kind = "invalid_request"


class AccessDenied(RelayError):
    status = 403
    kind = "access_denied"


class NoUsableVariant(RelayError):
    status = 400
    kind = "no_usable_variant"


class UpstreamStreamFailure(RelayError):
    status = 500
    kind = "upstream_stream_failure"


class InternalFailure(RelayError):
    status = 500
    kind = "internal_failure"


def classify(exc: Exception, max_detail: int = DEFAULT_MAX_DETAIL_LENGTH) -> RelayError:
    """Map any exception raised while resolving to one RelayError.

    Already-classified errors pass through untouched. Anything else is judged
    by its message, the same way yt-dlp errors have to be: yt-dlp reports
    private/removed videos as a plain DownloadError with a descriptive text.
    """
    if isinstance(exc, RelayError):
        return exc

    msg = str(exc).lower()
    if any(marker in msg for marker in ACCESS_DENIED_MARKERS):
        return AccessDenied(
            "Video unavailable. This might require authentication.",
            details=truncate(exc, max_detail),
        )
    if any(marker in msg for marker in COOKIE_MARKERS):
        return AccessDenied(
            "Authentication required. Check cookies.txt file.",
            note="Export fresh cookies in Netscape format and place them at the configured COOKIES_PATH.",
        )
    return InternalFailure(
        "Failed to process download request",
        details=truncate(exc, max_detail),
    )
