"""Bluesky XRPC client, session handling and rich-text helpers."""

from .client import BskyClient
from .richtext import CandidateSpan, SpanKind, build_facets, extract_spans
from .session import BskySession
from .types import PostRef

__all__ = [
    "BskyClient",
    "BskySession",
    "CandidateSpan",
    "PostRef",
    "SpanKind",
    "build_facets",
    "extract_spans",
]
