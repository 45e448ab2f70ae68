from __future__ import annotations

"""
HLS playlist rewriting for the signed CDN.

A stored playlist references its media by relative or absolute paths. Players
fetch those through the CDN, which only serves signed requests, so on every
request we:

1. fetch the playlist from storage (fresh; the stored object is never touched),
2. collect every `<path>.<ext>[?query]` reference in document order,
3. make each reference absolute against `{protocol}://{host}/{base_path}/`,
4. sign segment references (pattern `{protocol}://{host}/*`) concurrently,
   keyed by match index, and append the forwarded signing parameters to
   sub-playlist references (or sign them too when configured),
5. rebuild the document from the untouched spans and the replacements.

Sub-playlists are normally left unsigned in place: the player requests them
through this proxy again, carrying the forwarded parameters, and the edge
validates those via its trusted key group.
"""

import asyncio
import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

from app.core.exceptions import NotFoundException, StorageException
from app.core.metrics import inc_playlist_references
from app.services.signing import PrivateKeyInput, load_private_key, sign_url
from app.utils.aws import S3NotFoundError, S3StorageError

logger = logging.getLogger(__name__)

SEGMENT = "segment"
MANIFEST = "manifest"

_ABSOLUTE_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")

# encodeURIComponent leaves these unescaped besides alphanumerics
_URI_COMPONENT_SAFE = "-_.!~*'()"


# ─────────────────────────────────────────────────────────────
# Models
# ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class RewriteContext:
    """Per-request inputs resolved by the HTTP layer."""

    protocol: str
    host: str
    query_params: Mapping[str, str] = field(default_factory=dict)

    @property
    def origin(self) -> str:
        return f"{self.protocol}://{self.host}"

    @property
    def resource_pattern(self) -> str:
        return f"{self.origin}/*"


@dataclass(frozen=True)
class PlaylistReference:
    """One matched reference and where it sits in the document."""

    index: int
    start: int
    end: int
    path: str
    extension: str
    kind: str
    query: str = ""

    @property
    def is_absolute(self) -> bool:
        return bool(_ABSOLUTE_RE.match(self.path))


@dataclass(frozen=True)
class RewriterOptions:
    key_pair_id: str
    segment_ttl_seconds: int = 3600
    signing_param_marker: str = "-PREFIX"
    segment_extensions: Tuple[str, ...] = ("ts",)
    manifest_extensions: Tuple[str, ...] = ("m3u8",)
    sign_manifests: bool = False
    max_concurrent_signs: int = 256


# ─────────────────────────────────────────────────────────────
# Pure helpers
# ─────────────────────────────────────────────────────────────
def build_reference_pattern(extensions: Sequence[str]) -> "re.Pattern[str]":
    """`<path>.<ext>` + optional `?query`, not followed by more path characters."""
    alternation = "|".join(sorted((re.escape(e) for e in extensions), key=len, reverse=True))
    return re.compile(
        rf"""(?P<path>[^\s"']+?\.(?P<ext>{alternation}))(?P<query>\?[^\s"']*)?(?![^\s"'?])"""
    )


def base_path_of(storage_key: str) -> str:
    """Storage key minus its filename, without leading/trailing slashes."""
    return posixpath.dirname(storage_key.strip("/"))


def forwarded_signing_query(params: Mapping[str, str], marker: str) -> str:
    """
    Rebuild the signing parameters an upstream signer forwarded to us.

    Parameters whose name contains `marker` are kept with the marker removed
    and their value percent-encoded; everything else is ignored. Returns
    ``"?a=1&b=2"`` or ``""``.
    """
    if not marker:
        return ""
    parts: List[str] = []
    for name, value in params.items():
        if marker in name:
            parts.append(f"{name.replace(marker, '', 1)}={quote(str(value), safe=_URI_COMPONENT_SAFE)}")
    return "?" + "&".join(parts) if parts else ""


def append_query(url: str, query: str) -> str:
    """Append ``?a=1`` style `query`, joining with ``&`` when `url` already has one."""
    if not query:
        return url
    params = query.lstrip("?&")
    if not params:
        return url
    if "?" not in url:
        return f"{url}?{params}"
    if url.endswith(("?", "&")):
        return url + params
    return f"{url}&{params}"


def resolve_reference(ref: PlaylistReference, context: RewriteContext, base_path: str) -> str:
    """Absolute URL for `ref`, query string preserved."""
    if ref.is_absolute:
        return ref.path + ref.query
    if ref.path.startswith("/"):
        return f"{context.origin}{ref.path}{ref.query}"
    prefix = f"{context.origin}/{base_path}/" if base_path else f"{context.origin}/"
    return f"{prefix}{ref.path}{ref.query}"


def assemble(body: str, references: Sequence[PlaylistReference], replacements: Mapping[int, str]) -> str:
    """Interleave untouched spans with replacements, in document order."""
    out: List[str] = []
    cursor = 0
    for ref in references:
        out.append(body[cursor:ref.start])
        out.append(replacements[ref.index])
        cursor = ref.end
    out.append(body[cursor:])
    return "".join(out)


# ─────────────────────────────────────────────────────────────
# Rewriter
# ─────────────────────────────────────────────────────────────
Fetcher = Callable[[str], bytes]


class PlaylistRewriter:
    """
    Rewrite one playlist per call; holds no per-request state.

    Parameters
    ----------
    fetch : callable
        Blocking ``key -> bytes`` storage read (e.g. `S3Client.get_bytes`).
        Raises `S3NotFoundError` / `S3StorageError`.
    options : RewriterOptions
        Signing and matching policy.
    """

    def __init__(self, fetch: Fetcher, options: RewriterOptions) -> None:
        self._fetch = fetch
        self.options = options
        self._kinds: Dict[str, str] = {e.lower(): SEGMENT for e in options.segment_extensions}
        for ext in options.manifest_extensions:
            self._kinds.setdefault(ext.lower(), MANIFEST)
        self._pattern = build_reference_pattern(list(self._kinds))

    # ── Pass 1 ────────────────────────────────────────────────
    def collect(self, body: str) -> List[PlaylistReference]:
        refs: List[PlaylistReference] = []
        for m in self._pattern.finditer(body):
            ext = m.group("ext")
            refs.append(
                PlaylistReference(
                    index=len(refs),
                    start=m.start(),
                    end=m.end(),
                    path=m.group("path"),
                    extension=ext,
                    kind=self._kinds[ext.lower()],
                    query=m.group("query") or "",
                )
            )
        return refs

    def _should_sign(self, ref: PlaylistReference) -> bool:
        return ref.kind == SEGMENT or self.options.sign_manifests

    # ── Pass 2 ────────────────────────────────────────────────
    async def _sign_all(
        self,
        targets: Dict[int, str],
        private_key: PrivateKeyInput,
        resource_pattern: str,
    ) -> Dict[int, str]:
        sem = asyncio.Semaphore(max(1, self.options.max_concurrent_signs))
        ttl = self.options.segment_ttl_seconds
        key_pair_id = self.options.key_pair_id

        async def _one(url: str) -> str:
            async with sem:
                return await asyncio.to_thread(sign_url, url, private_key, ttl, resource_pattern, key_pair_id)

        # Fan out: every task exists before any is awaited.
        tasks = {idx: asyncio.ensure_future(_one(url)) for idx, url in targets.items()}
        try:
            await asyncio.gather(*tasks.values())
        except BaseException:
            for t in tasks.values():
                t.cancel()
            raise
        return {idx: t.result() for idx, t in tasks.items()}

    async def rewrite_body(self, body: str, storage_key: str, context: RewriteContext, private_key: PrivateKeyInput) -> str:
        """Rewrite an already-fetched playlist `body` stored at `storage_key`."""
        refs = self.collect(body)
        if not refs:
            return body

        base_path = base_path_of(storage_key)
        forwarded = forwarded_signing_query(context.query_params, self.options.signing_param_marker)

        replacements: Dict[int, str] = {}
        to_sign: Dict[int, str] = {}
        for ref in refs:
            absolute = resolve_reference(ref, context, base_path)
            if self._should_sign(ref):
                to_sign[ref.index] = absolute
            else:
                replacements[ref.index] = append_query(absolute, forwarded)

        if to_sign:
            # Parse once; worker threads share the loaded key.
            key = load_private_key(private_key)
            replacements.update(await self._sign_all(to_sign, key, context.resource_pattern))

        inc_playlist_references(SEGMENT, sum(1 for r in refs if r.kind == SEGMENT))
        inc_playlist_references(MANIFEST, sum(1 for r in refs if r.kind == MANIFEST))
        logger.debug(
            "playlist.rewrite key=%s refs=%d signed=%d forwarded=%s",
            storage_key, len(refs), len(to_sign), bool(forwarded),
        )
        # Pass 3
        return assemble(body, refs, replacements)

    async def fetch(self, storage_key: str) -> str:
        try:
            raw = await asyncio.to_thread(self._fetch, storage_key)
        except S3NotFoundError as e:
            raise NotFoundException(message="Playlist not found") from e
        except S3StorageError as e:
            raise StorageException(message=str(e)) from e
        return raw.decode("utf-8")

    async def rewrite(self, storage_key: str, context: RewriteContext, private_key: PrivateKeyInput) -> str:
        """Fetch `storage_key` and return the rewritten playlist text."""
        body = await self.fetch(storage_key)
        return await self.rewrite_body(body, storage_key, context, private_key)


__all__ = [
    "SEGMENT",
    "MANIFEST",
    "RewriteContext",
    "PlaylistReference",
    "RewriterOptions",
    "PlaylistRewriter",
    "build_reference_pattern",
    "base_path_of",
    "forwarded_signing_query",
    "append_query",
    "resolve_reference",
    "assemble",
]
