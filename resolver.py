"""
resolver.py
yt-dlp backed resolver: validates URLs, extracts metadata and formats,
and opens the byte stream of one chosen format with requests.
"""

import logging
from typing import NamedTuple, Optional, Tuple
from urllib.parse import urlparse

import requests
from yt_dlp import YoutubeDL
from yt_dlp.extractor import get_info_extractor

from variant_selector import Variant

logger = logging.getLogger("VideoRelay.resolver")

# Formats served over these protocols are a single plain GET; HLS/DASH
# manifests are not relayable byte streams.
DIRECT_PROTOCOLS = ("http", "https")


class ResourceMetadata(NamedTuple):
    title: str
    variants: Tuple[Variant, ...]


def _has_codec(value) -> bool:
    return bool(value) and value != "none"


def is_direct_format(fmt: dict) -> bool:
    url = fmt.get("url") or ""
    if not url or fmt.get("fragments"):
        return False
    protocol = fmt.get("protocol") or urlparse(url).scheme
    if protocol not in DIRECT_PROTOCOLS:
        return False
    lowered = url.lower()
    return not (lowered.endswith(".m3u8") or lowered.endswith(".mpd") or "manifest" in lowered)


def variant_from_format(fmt: dict) -> Variant:
    size = fmt.get("filesize")
    return Variant(
        format_id=str(fmt.get("format_id", "")),
        container=fmt.get("ext") or "mp4",
        has_video=_has_codec(fmt.get("vcodec")),
        has_audio=_has_codec(fmt.get("acodec")),
        height=int(fmt.get("height") or 0),
        url=fmt["url"],
        content_length=int(size) if size else None,
        http_headers=dict(fmt.get("http_headers") or {}),
    )


class UpstreamStream:
    """An open upstream response, consumed chunk by chunk."""

    def __init__(self, response: requests.Response, chunk_size: int):
        self._response = response
        self.chunk_size = chunk_size
        self.closed = False
        self._chunks = None

    @property
    def content_length(self) -> Optional[int]:
        value = self._response.headers.get("Content-Length")
        if value and value.isdigit():
            return int(value)
        return None

    def __iter__(self):
        if self.closed:
            return
        if self._chunks is None:
            self._chunks = self._response.iter_content(chunk_size=self.chunk_size)
        for chunk in self._chunks:
            if self.closed:
                return
            if chunk:
                yield chunk

    def close(self):
        if not self.closed:
            self.closed = True
            if self._chunks is not None and hasattr(self._chunks, "close"):
                self._chunks.close()
            self._response.close()


class YtDlpResolver:
    def __init__(self, extractors=("Youtube",), proxy_url: Optional[str] = None,
                 connect_timeout: float = 10, read_timeout: float = 30,
                 chunk_size: int = 64 * 1024, player_client: Optional[str] = None):
        self.extractors = tuple(extractors)
        self.proxy_url = proxy_url
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.chunk_size = chunk_size
        self.player_client = player_client

    def is_valid_identifier(self, url: str) -> bool:
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return False
        return any(get_info_extractor(key).suitable(url) for key in self.extractors)

    def build_ydl_opts(self, options) -> dict:
        opts = {
            "noplaylist": True,
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            "socket_timeout": self.read_timeout,
            "http_headers": dict(options),
        }
        if self.proxy_url:
            opts["proxy"] = self.proxy_url
        if self.player_client:
            opts["extractor_args"] = {"youtube": {"player_client": [self.player_client]}}
        return opts

    def resolve(self, url: str, options) -> ResourceMetadata:
        logger.info("Extracting info: %s", url)
        with YoutubeDL(self.build_ydl_opts(options)) as ydl:
            info = ydl.extract_info(url, download=False)
        if not info:
            raise RuntimeError("Failed to extract video info")

        formats = info.get("formats") or []
        variants = tuple(variant_from_format(f) for f in formats if is_direct_format(f))
        logger.info("Available formats: %d, directly streamable: %d", len(formats), len(variants))
        return ResourceMetadata(title=info.get("title") or "", variants=variants)

    def open_stream(self, variant: Variant, options) -> UpstreamStream:
        headers = dict(variant.http_headers or {})
        headers.update(options)
        proxies = {"http": self.proxy_url, "https": self.proxy_url} if self.proxy_url else None
        r = requests.get(
            variant.url,
            headers=headers,
            stream=True,
            timeout=(self.connect_timeout, self.read_timeout),
            proxies=proxies,
        )
        try:
            r.raise_for_status()
        except requests.HTTPError:
            r.close()
            raise
        logger.info("Connected to upstream stream: %s", r.status_code)
        return UpstreamStream(r, self.chunk_size)
