"""
Artifact download with bounded retry.
"""

import http.client
import logging
import os
import random
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import Callable, Optional

from .. import __version__
from ..models.dependency import FetchPolicy
from ..models.installation import FetchResult
from ..utils.logging import stage_logger
from .exceptions import FatalFetchError, TransientFetchError


USER_AGENT = f"runtime-provisioner/{__version__}"

Opener = Callable[[str, float], object]


def urlopen(url: str, timeout: float):
    """Open a URL for streaming with the provisioner's user agent."""
    request = urllib.request.Request(url)
    request.add_header("User-Agent", USER_AGENT)
    return urllib.request.urlopen(request, timeout=timeout)


class Fetcher:
    """
    Downloads remote artifacts to local paths.

    Every failure (DNS, connection, HTTP status, timeout, disk) is treated
    the same way: the attempt is discarded and retried after a delay until
    the policy's attempt bound is reached.
    """

    def __init__(self,
                 policy: Optional[FetchPolicy] = None,
                 opener: Optional[Opener] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None):
        """
        Initialize the fetcher.

        Args:
            policy: Retry policy (defaults to 3 attempts, fixed 2s delay)
            opener: Callable ``(url, timeout)`` returning a response context manager
            sleep: Function used to wait between attempts
            rng: Random source for jitter
        """
        self.logger = logging.getLogger(__name__)
        self.policy = policy or FetchPolicy()
        self.opener = opener or urlopen
        self.sleep = sleep
        self.rng = rng or random.Random()

    def fetch(self, url: str, destination: Path, dependency: str = "artifact") -> FetchResult:
        """
        Download ``url`` to ``destination``.

        Args:
            url: Source URL
            destination: Local file to create or overwrite
            dependency: Name used in log messages

        Returns:
            FetchResult; ``success`` is False only after all attempts failed
        """
        log = stage_logger(self.logger, dependency, "fetch")
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        max_attempts = self.policy.max_attempts
        last_error: Optional[str] = None

        for attempt in range(1, max_attempts + 1):
            log.info(f"Downloading {url} (attempt {attempt}/{max_attempts})")
            try:
                size = self._transfer(url, destination, dependency)
            except TransientFetchError as e:
                last_error = e.detail
                log.warning(f"Attempt {attempt}/{max_attempts} failed: {last_error}")
                if attempt < max_attempts:
                    delay = self.policy.delay_for(attempt, self.rng)
                    log.info(f"Retrying in {delay:.1f}s")
                    self.sleep(delay)
                continue

            log.info(f"Downloaded {size} bytes to {destination}")
            return FetchResult(path=destination, success=True, attempts=attempt)

        log.error(f"Giving up on {url} after {max_attempts} attempts: {last_error}")
        return FetchResult(path=destination, success=False, attempts=max_attempts, error=last_error)

    def fetch_or_raise(self, url: str, destination: Path, dependency: str = "artifact") -> FetchResult:
        """Like :meth:`fetch` but raises FatalFetchError when attempts run out."""
        result = self.fetch(url, destination, dependency)
        if not result.success:
            raise FatalFetchError(
                f"Download of {url} failed after {result.attempts} attempts: {result.error}",
                dependency=dependency,
            )
        return result

    def _transfer(self, url: str, destination: Path, dependency: str) -> int:
        """Run one attempt; the destination is only replaced on success."""
        partial = destination.with_name(destination.name + ".part")
        try:
            with self.opener(url, self.policy.timeout_seconds) as response:
                status = getattr(response, "status", None) or 200
                if not 200 <= status < 300:
                    raise TransientFetchError(f"HTTP {status} for {url}", dependency=dependency)
                size = 0
                with open(partial, "wb") as handle:
                    while True:
                        chunk = response.read(self.policy.chunk_size)
                        if not chunk:
                            break
                        handle.write(chunk)
                        size += len(chunk)
            os.replace(partial, destination)
            return size
        except TransientFetchError:
            partial.unlink(missing_ok=True)
            raise
        except urllib.error.HTTPError as e:
            partial.unlink(missing_ok=True)
            raise TransientFetchError(f"HTTP {e.code} for {url}", dependency=dependency) from e
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as e:
            partial.unlink(missing_ok=True)
            raise TransientFetchError(f"{type(e).__name__}: {e}", dependency=dependency) from e
