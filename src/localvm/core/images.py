"""Boot image cache for localvm.

Boot images are downloaded once into ``<home>/cache/iso`` and reused by
every later machine creation.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path
from urllib.parse import urlparse

import requests

from localvm.core.constants import get_localvm_home
from localvm.core.exceptions import ImageCacheError
from localvm.utils.logging import get_logger
from localvm.utils.output import create_download_progress

logger = get_logger("images")

CHUNK_SIZE = 256 * 1024
DOWNLOAD_TIMEOUT = 60


class ImageCache:
    """Downloads and caches boot images.

    Args:
        cache_dir: Cache directory. Uses <home>/cache/iso if not given.
        session: Optional requests session.
        show_progress: Show a download progress bar.

    Example:
        >>> cache = ImageCache()
        >>> cache.cache_image_from_url("https://example.com/boot.iso")
        >>> cache.path_for("https://example.com/boot.iso")
        PosixPath('/home/user/.localvm/cache/iso/boot.iso')
    """

    def __init__(
        self,
        cache_dir: Path | str | None = None,
        session: requests.Session | None = None,
        show_progress: bool = True,
    ) -> None:
        self.cache_dir = Path(cache_dir) if cache_dir else get_localvm_home() / "cache" / "iso"
        self.session = session or requests.Session()
        self.show_progress = show_progress

    def path_for(self, url: str) -> Path:
        """Location of the cached copy of an image URL.

        Local file URLs are used in place.
        """
        parsed = urlparse(url)
        if parsed.scheme == "file":
            return Path(parsed.path)
        name = Path(parsed.path).name
        if not name:
            raise ImageCacheError(url, "URL has no file name")
        return self.cache_dir / name

    def is_cached(self, url: str) -> bool:
        return self.path_for(url).is_file()

    def cache_image_from_url(self, url: str) -> Path:
        """Make sure the image behind a URL is available locally.

        Returns:
            Path to the cached image.

        Raises:
            ImageCacheError: If the download fails or a local image is missing.
        """
        destination = self.path_for(url)
        if destination.is_file():
            logger.debug(f"Image already cached at {destination}")
            return destination
        if urlparse(url).scheme == "file":
            raise ImageCacheError(url, f"local image {destination} does not exist")

        destination.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading {url} to {destination}")
        self._download(url, destination)
        return destination

    def _download(self, url: str, destination: Path) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=destination.parent, prefix=".download-")
        tmp_path = Path(tmp_name)
        try:
            with (
                os.fdopen(fd, "wb") as f,
                self.session.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT) as response,
            ):
                response.raise_for_status()
                total = int(response.headers.get("Content-Length") or 0) or None
                chunks = response.iter_content(chunk_size=CHUNK_SIZE)

                if self.show_progress:
                    progress = create_download_progress()
                    with progress:
                        task = progress.add_task(f"Downloading {destination.name}", total=total)
                        for chunk in chunks:
                            f.write(chunk)
                            progress.update(task, advance=len(chunk))
                else:
                    for chunk in chunks:
                        f.write(chunk)

            tmp_path.replace(destination)
        except requests.RequestException as e:
            raise ImageCacheError(url, str(e)) from e
        except OSError as e:
            raise ImageCacheError(url, f"unable to write {destination}: {e}") from e
        finally:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
