"""
Running the site's publish command.

The publish command is an arbitrary executable (build the site, commit and
push, sync to a server, ...). It runs synchronously from its own directory.
If it fails, everything written for the request is rolled back so that a
retried request does not publish a duplicate post.
"""
import logging
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from publishing.writer import rollback


logger = logging.getLogger(__name__)


class PublishError(Exception):
    """Raised when the publish command fails.

    The underlying failure (``subprocess.CalledProcessError`` or ``OSError``)
    is chained as ``__cause__``.
    """


class PublishInvoker:
    """Runs the configured publish command, rolling back writes on failure."""

    def __init__(self, command: str):
        # Absolute, since the command runs from its own directory
        self.command = str(Path(command).absolute())

    @property
    def working_directory(self) -> str:
        return str(Path(self.command).parent)

    def publish(self, write_set: Optional[Sequence[Path]] = None) -> None:
        """Run the publish command.

        Args:
            write_set: Files written for this request; deleted if publishing fails

        Raises:
            PublishError: If the command cannot be run or exits non-zero
        """
        logger.info("Publishing post...")
        try:
            result = subprocess.run(
                [self.command],
                cwd=self.working_directory,
                capture_output=True,
                text=True,
                check=True,
            )
        except (subprocess.CalledProcessError, OSError) as publish_error:
            logger.error(f"Error publishing post! {publish_error}")
            if isinstance(publish_error, subprocess.CalledProcessError):
                logger.error(f"Publish command output: stdout={publish_error.stdout!r}, stderr={publish_error.stderr!r}")

            if write_set:
                # Remove the unpublished post so a retried request doesn't
                # publish it twice
                logger.info("Cleaning up unpublished post...")
                failures = rollback(write_set)
                if failures:
                    logger.error(f"Couldn't clean up {len(failures)} unpublished file(s)")
                else:
                    logger.info("Done cleaning up.")

            raise PublishError(f"Publish command failed: {publish_error}") from publish_error

        logger.debug(f"Publish command output: stdout={result.stdout!r}, stderr={result.stderr!r}")
        logger.info("Post published.")
