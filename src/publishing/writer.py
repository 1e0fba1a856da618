"""
Writing posts and media into the site source tree.

Every file written for a request is recorded, in order, in a ``WriteSet``
(post file first, then media in submission order). The write set is what
gets undone when the publish command fails, or when a later write in the
same request fails.

Rollback is best-effort: each deletion is attempted, failures are logged
and collected, and ``rollback`` itself never raises, so the error that
caused the rollback is never lost.
"""
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from microformat import MediaFile
from publishing.paths import ResolvedIdentity


logger = logging.getLogger(__name__)


class WriteSet(list):
    """Ordered list of absolute paths written during one request."""


class PersistenceError(Exception):
    """Raised when a post or media file cannot be written.

    Attributes:
        write_set: Paths written before the failure (already cleaned up)
    """

    def __init__(self, message: str, write_set: Optional[WriteSet] = None):
        super().__init__(message)
        self.write_set = write_set if write_set is not None else WriteSet()


def rollback(write_set: Sequence[Path]) -> List[Tuple[Path, OSError]]:
    """Delete every path in ``write_set``, in the order written.

    Args:
        write_set: Paths to delete

    Returns:
        List of (path, error) pairs for deletions that failed. Never raises.
    """
    failures = []
    for path in write_set:
        try:
            Path(path).unlink()
            logger.info(f"Removed unpublished file: {path}")
        except OSError as e:
            logger.error(f"Couldn't remove unpublished file {path}: {e}")
            failures.append((Path(path), e))
    return failures


class PersistenceWriter:
    """Writes post and media files below a site root."""

    def __init__(self, site_root: str):
        self.site_root = Path(site_root)

    def _inside_root(self, path: Path) -> Path:
        if not path.is_relative_to(self.site_root.resolve()):
            raise ValueError(f"{path} is outside the site root {self.site_root}")
        return path

    def post_path(self, identity: ResolvedIdentity) -> Path:
        return self._inside_root((self.site_root / identity.filename).resolve())

    def media_path(self, identity: ResolvedIdentity, media_file: MediaFile) -> Path:
        return self._inside_root((self.site_root / (identity.media_prefix or "") / media_file.filename).resolve())

    def _write(self, path: Path, data: bytes, write_set: WriteSet) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        write_set.append(path)
        logger.debug(f"Wrote {len(data)} bytes to {path}")

    def write(
        self,
        identity: ResolvedIdentity,
        contents: str,
        media_files: Sequence[MediaFile] = (),
    ) -> WriteSet:
        """Write the post file and its media files.

        Args:
            identity: Resolved post identity
            contents: Rendered post
            media_files: Media files to write under the identity's media prefix

        Returns:
            WriteSet of every path written

        Raises:
            PersistenceError: If a directory or file cannot be written, or a
                path resolves outside the site root. Files
                written earlier in the request are removed before raising.
        """
        write_set = WriteSet()
        current = None
        try:
            current = self.post_path(identity)
            self._write(current, contents.encode("utf-8"), write_set)

            for media_file in media_files:
                current = self.media_path(identity, media_file)
                self._write(current, media_file.buffer, write_set)
        except (OSError, ValueError) as e:
            logger.error(f"Error writing {current}: {e}")
            if write_set:
                logger.info(f"Cleaning up {len(write_set)} partially written file(s)...")
                rollback(write_set)
            raise PersistenceError(f"Couldn't write {current}: {e}", write_set) from e

        logger.info(f"Wrote post to {write_set[0]}" + (f" with {len(media_files)} media file(s)" if media_files else ""))
        return write_set
