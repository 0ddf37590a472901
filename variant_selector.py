"""
variant_selector.py
Variant descriptors and the policy list used to pick one of them.
"""

from typing import Callable, Iterable, NamedTuple, Optional, Sequence


class Variant(NamedTuple):
    format_id: str
    container: str
    has_video: bool
    has_audio: bool
    height: int
    url: str
    content_length: Optional[int] = None
    http_headers: Optional[dict] = None


class VariantNotFound(LookupError):
    pass


PREFERRED_CONTAINER = "mp4"


def lowest_combined(variants: Sequence[Variant]) -> Optional[Variant]:
    """Smallest muxed audio+video variant; ties go to the first one seen.

    mp4 muxed variants win over any other container, whatever their height.
    """
    combined = [v for v in variants if v.has_video and v.has_audio]
    if not combined:
        return None
    preferred = [v for v in combined if v.container == PREFERRED_CONTAINER]
    # min() keeps the first of equal keys
    return min(preferred or combined, key=lambda v: v.height or 0)


def first_video(variants: Sequence[Variant]) -> Optional[Variant]:
    """Not every resource exposes a muxed stream; any video beats nothing."""
    for v in variants:
        if v.has_video:
            return v
    return None


Policy = Callable[[Sequence[Variant]], Optional[Variant]]

DEFAULT_POLICIES = (lowest_combined, first_video)


def select(variants: Iterable[Variant], policies: Sequence[Policy] = DEFAULT_POLICIES) -> Variant:
    variants = list(variants)
    for policy in policies:
        chosen = policy(variants)
        if chosen is not None:
            return chosen
    raise VariantNotFound(f"No usable variant among {len(variants)} candidates")
