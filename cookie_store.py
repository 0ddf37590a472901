"""
cookie_store.py
Turns a Netscape cookies.txt into a Cookie header value.

Each useful line looks like:
    domain \t flag \t path \t secure \t expiration \t name \t value
"""

import logging
from pathlib import Path

logger = logging.getLogger("VideoRelay.cookies")

COMMENT_PREFIXES = ("#", "//")
MIN_FIELDS = 7


def parse_cookie_line(line: str):
    """Return (name, value) for a usable cookie line, else None."""
    line = line.strip()
    if not line or line.startswith(COMMENT_PREFIXES):
        return None
    parts = line.split("\t")
    if len(parts) < MIN_FIELDS:
        return None
    name, value = parts[5].strip(), parts[6].strip()
    if not name or not value:
        return None
    return name, value


class CookieStore:
    def __init__(self, path):
        self.path = Path(path)

    def tokens(self) -> list:
        if not self.path.exists():
            logger.warning("Cookies file not found at %s. Proceeding without authentication cookies.", self.path)
            return []
        try:
            with self.path.open("r", encoding="utf-8", errors="replace") as f:
                lines = f.read().splitlines()
        except OSError as e:
            logger.warning("Error reading cookies file %s: %s", self.path, e)
            return []

        result = []
        for line in lines:
            token = parse_cookie_line(line)
            if token:
                result.append(token)
        return result

    def load(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self.tokens())

    def status(self) -> dict:
        """Presence and token count only; values never leave the process."""
        present = self.path.exists()
        return {"present": present, "tokens": len(self.tokens()) if present else 0}
