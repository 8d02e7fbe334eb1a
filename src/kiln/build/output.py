"""Output tree — URLs, file paths, fingerprints and the on-disk sync.

Every file kiln writes is described by an ``Artifact``; ``OutputWriter``
makes the output directory match the artifact set of a generation:

- changed files are written atomically (temp file + ``os.replace``),
- files whose bytes did not change are left alone,
- files written by an earlier generation and no longer produced are
  removed, along with directories they leave empty.

File identity (path + bytes) depends only on source state, so two full
builds of the same tree are byte-identical.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Literal

from kiln._errors import OutputError
from kiln._hashing import digest_bytes

if TYPE_CHECKING:
    from kiln._types import ContentKind, NodeId, URLPath

MANIFEST_NAME = "manifest.json"


@dataclass(frozen=True, slots=True)
class Artifact:
    """One file of the output tree.

    Attributes:
        node_id: Source node that produced it (empty for generated files).
        url: Public URL.
        output_path: POSIX path relative to the output directory.
        data: File bytes.
        digest: sha256 of ``data``.
        source_type: Category of the file.

    """

    node_id: NodeId
    url: URLPath
    output_path: str
    data: bytes
    digest: str
    source_type: Literal["page", "asset", "sitemap", "feed", "manifest"]

    @classmethod
    def build(
        cls,
        node_id: NodeId,
        url: URLPath,
        data: bytes | str,
        source_type: Literal["page", "asset", "sitemap", "feed", "manifest"],
    ) -> Artifact:
        raw = data.encode("utf-8") if isinstance(data, str) else data
        return cls(
            node_id=node_id,
            url=url,
            output_path=url_to_output_path(url),
            data=raw,
            digest=digest_bytes(raw),
            source_type=source_type,
        )


@dataclass(frozen=True, slots=True)
class ExportedFile:
    """Record of a single file written during a generation.

    Attributes:
        url: Public URL of the file.
        output_path: Absolute filesystem path to the written file.
        source_type: Category of the written file.
        size_bytes: Size of the written file in bytes.
        duration_ms: Time taken to write this file.

    """

    url: URLPath
    output_path: Path
    source_type: Literal["page", "asset", "sitemap", "feed", "manifest"]
    size_bytes: int
    duration_ms: float


@dataclass(frozen=True, slots=True)
class SyncResult:
    """What one ``OutputWriter.sync`` did.

    ``failed`` pairs the node id (or URL) of each artifact that could not be
    written or removed with the reason; those files are retried next sync.
    """

    written: tuple[ExportedFile, ...]
    removed: tuple[Path, ...]
    unchanged: int
    failed: tuple[tuple[str, str], ...] = ()


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------


def normalize_url(url: str) -> URLPath:
    """Leading slash always; trailing slash unless the last segment is a file."""
    url = "/" + url.strip().lstrip("/")
    last = url.rsplit("/", 1)[-1]
    if last and "." not in last:
        url += "/"
    return url


def page_url(relative: str, metadata: dict[str, Any] | None = None) -> URLPath:
    """URL of a page from its path inside the content tree.

    Clean URL convention:
        ``index.md``          -> ``/``
        ``about.md``          -> ``/about/``
        ``blog/index.md``     -> ``/blog/``
        ``blog/first.html``   -> ``/blog/first/``

    A ``url`` (or ``permalink``) front-matter value overrides the path.
    """
    if metadata:
        override = metadata.get("url") or metadata.get("permalink")
        if isinstance(override, str) and override.strip():
            return normalize_url(override)

    path = PurePosixPath(relative)
    parts = [p for p in path.parent.parts if p not in (".", "")]
    if path.stem != "index":
        parts.append(path.stem)
    return "/" + "".join(f"{p}/" for p in parts)


_OUTPUT_SUFFIX: dict[str, str] = {
    ".scss": ".css",
    ".sass": ".css",
    ".ts": ".js",
    ".mts": ".js",
}


def asset_url(relative: str, kind: ContentKind) -> URLPath:
    """URL of a stylesheet, script or opaque asset."""
    path = PurePosixPath(relative)
    if kind in ("stylesheet", "script"):
        suffix = _OUTPUT_SUFFIX.get(path.suffix.lower())
        if suffix is not None:
            path = path.with_suffix(suffix)
    return "/" + path.as_posix()


def url_to_output_path(url: URLPath) -> str:
    """Convert a URL to a path relative to the output directory.

        ``/``                -> ``index.html``
        ``/about/``          -> ``about/index.html``
        ``/css/main.css``    -> ``css/main.css``

    """
    clean = url.lstrip("/")
    if not clean:
        return "index.html"
    if clean.endswith("/"):
        return clean + "index.html"
    return clean


def fingerprint_url(url: URLPath, digest: str) -> URLPath:
    """``/css/style.css`` -> ``/css/style.a1b2c3d4.css`` (first 8 hex chars)."""
    path = PurePosixPath(url)
    return str(path.with_name(f"{path.stem}.{digest[:8]}{path.suffix}"))


def manifest_artifact(manifest: dict[str, str]) -> Artifact:
    """The asset manifest as a ``manifest.json`` artifact."""
    body = json.dumps(manifest, indent=2, sort_keys=True) + "\n"
    return Artifact.build("", "/" + MANIFEST_NAME, body, "manifest")


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


class OutputWriter:
    """Keeps the output directory in sync with a generation's artifact set.

    Remembers which files it wrote and their digests; files it never wrote
    are never deleted (except by ``clean``).
    """

    __slots__ = ("_output_dir", "_written")

    def __init__(self, output_dir: Path) -> None:
        self._output_dir = output_dir
        self._written: dict[str, str] = {}

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    @property
    def written_paths(self) -> frozenset[str]:
        return frozenset(self._written)

    def clean(self) -> None:
        """Remove the output directory and start from an empty tree.

        Raises:
            OutputError: If the directory cannot be removed or recreated.

        """
        try:
            if self._output_dir.exists():
                shutil.rmtree(self._output_dir)
            self._output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputError(str(self._output_dir), f"cannot reset output directory: {exc}") from exc
        self._written.clear()

    def sync(self, artifacts: list[Artifact]) -> SyncResult:
        """Write new or changed artifacts and remove stale files.

        A file that cannot be written or removed is reported in
        ``SyncResult.failed``; the rest of the tree is still synced.

        Raises:
            ValueError: If two artifacts claim the same output path.
            OutputError: If the output directory itself cannot be created.

        """
        desired: dict[str, Artifact] = {}
        for artifact in artifacts:
            other = desired.get(artifact.output_path)
            if other is not None and other.node_id != artifact.node_id:
                msg = (
                    f"output path collision: {artifact.output_path} is produced by "
                    f"{other.node_id or other.url} and {artifact.node_id or artifact.url}"
                )
                raise ValueError(msg)
            desired[artifact.output_path] = artifact

        try:
            self._output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputError(str(self._output_dir), f"cannot create output directory: {exc}") from exc

        written: list[ExportedFile] = []
        failed: list[tuple[str, str]] = []
        unchanged = 0
        for rel in sorted(desired):
            artifact = desired[rel]
            target = self._output_dir / rel
            if self._written.get(rel) == artifact.digest and target.is_file():
                unchanged += 1
                continue
            t0 = time.perf_counter()
            try:
                _write_atomic(target, artifact.data)
            except OSError as exc:
                failed.append((artifact.node_id or artifact.url, f"cannot write {rel}: {exc}"))
                continue
            elapsed = (time.perf_counter() - t0) * 1000
            self._written[rel] = artifact.digest
            written.append(ExportedFile(
                url=artifact.url,
                output_path=target,
                source_type=artifact.source_type,
                size_bytes=len(artifact.data),
                duration_ms=elapsed,
            ))

        removed: list[Path] = []
        for rel in sorted(set(self._written) - set(desired)):
            target = self._output_dir / rel
            try:
                target.unlink(missing_ok=True)
            except OSError as exc:
                failed.append((rel, f"cannot remove {rel}: {exc}"))
                continue
            del self._written[rel]
            removed.append(target)
            _prune_empty_dirs(target.parent, self._output_dir)

        return SyncResult(
            written=tuple(written),
            removed=tuple(removed),
            unchanged=unchanged,
            failed=tuple(failed),
        )


def _write_atomic(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _prune_empty_dirs(directory: Path, stop: Path) -> None:
    while directory != stop and directory.is_relative_to(stop):
        try:
            directory.rmdir()
        except OSError:
            return
        directory = directory.parent
