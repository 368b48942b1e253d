"""
Rich-text span extraction for published posts.

Bluesky facets index text by UTF-8 byte offsets, so every scan here runs over
the encoded bytes rather than the ``str``.
"""

import enum
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

MENTION_REGEX = re.compile(
    rb"@((?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)"
)

URL_REGEX = re.compile(
    rb"https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    rb"(?:[-a-zA-Z0-9()@:%_+.~#?&/=]*[-a-zA-Z0-9@%_+~#/=])?"
)

TAG_REGEX = re.compile(rb"(?:^|\s)(#[^\d\s]\S*)")

FACET_TYPES = {
    "mention": "app.bsky.richtext.facet#mention",
    "link": "app.bsky.richtext.facet#link",
    "tag": "app.bsky.richtext.facet#tag",
}


class SpanKind(str, enum.Enum):
    MENTION = "mention"
    LINK = "link"
    TAG = "tag"


@dataclass(frozen=True)
class CandidateSpan:
    """Half-open byte range ``[start, end)`` over the UTF-8 encoded text."""

    start: int
    end: int
    kind: SpanKind
    payload: str


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8")


def find_mentions(data: bytes, handles: Mapping[str, str]) -> List[CandidateSpan]:
    """Mention spans whose handle resolves through ``handles``; others are dropped."""
    spans = []
    for match in MENTION_REGEX.finditer(data):
        did = handles.get(_decode(match.group(1)))
        if did is None:
            continue
        spans.append(CandidateSpan(match.start(), match.end(), SpanKind.MENTION, did))
    return spans


def find_links(data: bytes) -> List[CandidateSpan]:
    return [
        CandidateSpan(match.start(), match.end(), SpanKind.LINK, _decode(match.group(0)))
        for match in URL_REGEX.finditer(data)
    ]


def find_tags(data: bytes) -> List[CandidateSpan]:
    # The span covers "#tag" only, not the whitespace that anchors it.
    return [
        CandidateSpan(match.start(1), match.end(1), SpanKind.TAG, _decode(match.group(1)[1:]))
        for match in TAG_REGEX.finditer(data)
    ]


def extract_spans(text: str, handles: Optional[Mapping[str, str]] = None) -> List[CandidateSpan]:
    """
    Extract mention, link and tag spans from ``text``.

    Args:
        text: Message text
        handles: Handle to DID lookup used to resolve mentions

    Returns:
        Mention spans, then link spans, then tag spans, each group in scan order
    """
    data = text.encode("utf-8")
    return find_mentions(data, handles or {}) + find_links(data) + find_tags(data)


def span_to_facet(span: CandidateSpan) -> Dict[str, Any]:
    feature: Dict[str, Any] = {"$type": FACET_TYPES[span.kind.value]}
    if span.kind is SpanKind.MENTION:
        feature["did"] = span.payload
    elif span.kind is SpanKind.LINK:
        feature["uri"] = span.payload
    else:
        feature["tag"] = span.payload

    return {
        "index": {"byteStart": span.start, "byteEnd": span.end},
        "features": [feature],
    }


def build_facets(spans: List[CandidateSpan]) -> List[Dict[str, Any]]:
    """Serialize spans as ``app.bsky.richtext.facet`` objects."""
    return [span_to_facet(span) for span in spans]
