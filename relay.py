"""
relay.py
Request orchestration: validate, resolve, select a variant, then relay the
upstream bytes to the client.

The body is a generator handed to the WSGI server. The server only asks for
the next chunk once the previous one is written, and it closes the generator
when the client goes away; closing it releases the upstream stream.
"""

import enum
import logging
import re
from types import MappingProxyType

import errors
import variant_selector

logger = logging.getLogger("VideoRelay.relay")

DISALLOWED_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9]")
DEFAULT_FILENAME = "video"

MIMETYPES = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "3gp": "video/3gpp",
    "flv": "video/x-flv",
}

USAGE = "/api/download?url=<video-url>"
EXAMPLE = "/api/download?url=https://www.youtube.com/watch?v=dQw4w9WgXcQ"


class RelayState(enum.Enum):
    VALIDATING = "validating"
    RESOLVING = "resolving"
    SELECTING_VARIANT = "selecting_variant"
    STREAMING_HEADERS = "streaming_headers"
    STREAMING_BODY = "streaming_body"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


def safe_filename(title, max_length: int = 50) -> str:
    name = DISALLOWED_FILENAME_CHARS.sub("_", title or "")[:max_length]
    return name or DEFAULT_FILENAME


def build_request_options(cookie_header: str, user_agent: str):
    headers = {"User-Agent": user_agent}
    if cookie_header:
        headers["Cookie"] = cookie_header
    return MappingProxyType(headers)


class RelayResult:
    """Headers plus a body iterator, ready to become a streaming response."""

    def __init__(self, headers: dict, body):
        self.headers = headers
        self.body = body


class RelayHandler:
    def __init__(self, resolver, cookie_store, user_agent: str,
                 max_filename_length: int = 50, max_detail_length: int = errors.DEFAULT_MAX_DETAIL_LENGTH,
                 policies=variant_selector.DEFAULT_POLICIES):
        self.resolver = resolver
        self.cookie_store = cookie_store
        self.user_agent = user_agent
        self.max_filename_length = max_filename_length
        self.max_detail_length = max_detail_length
        self.policies = policies
        self.state = RelayState.VALIDATING
        self.bytes_sent = 0

    def _fail(self, exc: Exception) -> errors.RelayError:
        self.state = RelayState.FAILED
        return errors.classify(exc, self.max_detail_length)

    def validate(self, url) -> str:
        self.state = RelayState.VALIDATING
        url = (url or "").strip()
        if not url:
            self.state = RelayState.FAILED
            raise errors.InvalidRequest("Missing required parameter: url", usage=USAGE, example=EXAMPLE)
        if not self.resolver.is_valid_identifier(url):
            self.state = RelayState.FAILED
            raise errors.InvalidRequest("Invalid or unsupported video URL", usage=USAGE, example=EXAMPLE)
        return url

    def prepare(self, url) -> RelayResult:
        """Run every step up to (and including) opening the upstream stream.

        Any failure here happens before a single response byte is committed,
        so it surfaces as a RelayError with a JSON payload.
        """
        url = self.validate(url)
        options = build_request_options(self.cookie_store.load(), self.user_agent)

        self.state = RelayState.RESOLVING
        try:
            metadata = self.resolver.resolve(url, options)
        except Exception as e:
            logger.error("Download error: %s", e)
            raise self._fail(e) from e

        self.state = RelayState.SELECTING_VARIANT
        try:
            variant = variant_selector.select(metadata.variants, self.policies)
        except variant_selector.VariantNotFound as e:
            self.state = RelayState.FAILED
            raise errors.NoUsableVariant("No MP4 format available for this video") from e
        logger.info("Selected format: ID=%s, container=%s, height=%s, video=%s, audio=%s",
                    variant.format_id, variant.container, variant.height, variant.has_video, variant.has_audio)

        self.state = RelayState.STREAMING_HEADERS
        ext = variant.container or "mp4"
        filename = safe_filename(metadata.title, self.max_filename_length)
        headers = {
            "Content-Type": MIMETYPES.get(ext, "application/octet-stream"),
            "Content-Disposition": f'attachment; filename="{filename}.{ext}"',
        }

        try:
            upstream = self.resolver.open_stream(variant, options)
        except Exception as e:
            self.state = RelayState.FAILED
            logger.error("Stream error: %s", e)
            raise errors.UpstreamStreamFailure(
                "Stream failed", details=errors.truncate(e, self.max_detail_length)
            ) from e

        content_length = variant.content_length or getattr(upstream, "content_length", None)
        if content_length:
            headers["Content-Length"] = str(content_length)

        logger.info("Starting stream for: %s.%s", filename, ext)
        return RelayResult(headers, RelayBody(self, upstream))

    def relay(self, upstream):
        self.state = RelayState.STREAMING_BODY
        try:
            for chunk in upstream:
                yield chunk
                self.bytes_sent += len(chunk)
            self.state = RelayState.COMPLETED
            logger.info("Stream completed: %d bytes", self.bytes_sent)
        except GeneratorExit:
            self.state = RelayState.ABORTED
            logger.warning("Client disconnected after %d bytes; closing upstream", self.bytes_sent)
            raise
        except Exception as e:
            self.state = RelayState.FAILED
            logger.error("Stream error after %d bytes: %s", self.bytes_sent, e)
            # Headers are already on the wire; all we can do is drop the connection.
            raise errors.UpstreamStreamFailure(
                "Stream failed", details=errors.truncate(e, self.max_detail_length)
            ) from e
        finally:
            upstream.close()


class RelayBody:
    """Response body that always releases the upstream when the server closes it.

    A generator closed before its first ``next()`` never runs its ``finally``,
    so the upstream is closed here as well.
    """

    TERMINAL = (RelayState.COMPLETED, RelayState.FAILED, RelayState.ABORTED)

    def __init__(self, handler: RelayHandler, upstream):
        self.handler = handler
        self.upstream = upstream
        self._chunks = handler.relay(upstream)

    def __iter__(self):
        return self._chunks

    def close(self):
        self._chunks.close()
        if self.handler.state not in self.TERMINAL:
            self.handler.state = RelayState.ABORTED
            logger.warning("Client disconnected before streaming started; closing upstream")
        self.upstream.close()
