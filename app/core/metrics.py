from __future__ import annotations

"""Prometheus metrics for the signing and playlist paths.

Label values are fixed small sets (`result`, `kind`); never put keys or
URLs in labels.
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

signed_urls_total = Counter(
    "edge_signed_urls_total",
    "Signed URLs issued through the signing endpoint",
    labelnames=("result",),
)
playlist_rewrites_total = Counter(
    "edge_playlist_rewrites_total",
    "Playlist rewrite requests",
    labelnames=("result",),
)
playlist_rewrite_latency = Histogram(
    "edge_playlist_rewrite_seconds",
    "Wall time to fetch and rewrite one playlist",
    labelnames=("result",),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
playlist_references_total = Counter(
    "edge_playlist_references_total",
    "References rewritten inside playlists",
    labelnames=("kind",),
)
secret_fetches_total = Counter(
    "edge_secret_fetches_total",
    "Secret vault fetches (cache misses)",
)


def inc_signed_url(result: str) -> None:
    signed_urls_total.labels(result=result).inc()


def observe_playlist_rewrite(result: str, seconds: float) -> None:
    playlist_rewrites_total.labels(result=result).inc()
    playlist_rewrite_latency.labels(result=result).observe(seconds)


def inc_playlist_references(kind: str, count: int) -> None:
    if count:
        playlist_references_total.labels(kind=kind).inc(count)


def inc_secret_fetch() -> None:
    secret_fetches_total.inc()


def render_latest() -> tuple[bytes, str]:
    """Exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST


__all__ = [
    "inc_signed_url",
    "observe_playlist_rewrite",
    "inc_playlist_references",
    "inc_secret_fetch",
    "render_latest",
]
