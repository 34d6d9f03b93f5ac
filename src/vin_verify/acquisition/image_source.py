"""
Image Acquisition
=================

Resolves the VIN plate photo referenced by a vehicle record to a readable
local file. Remote images are downloaded into the run workspace, a temporary
directory owned by a single verification and removed on every exit path.

Usage:
    from vin_verify.acquisition import ImageAcquirer, RunWorkspace

    with RunWorkspace() as workspace:
        path = ImageAcquirer().resolve("https://cdn.example.com/vin.jpg", workspace.path)
"""

import logging
import os
import tempfile
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

import requests

from ..config import AcquisitionConfig
from ..core.errors import AcquisitionFailed, InvalidInput

logger = logging.getLogger(__name__)


REMOTE_SCHEMES = ('http', 'https')

# Content types we know how to name; anything else keeps the URL suffix
_CONTENT_TYPE_EXTENSIONS = {
    'image/jpeg': '.jpg',
    'image/png': '.png',
    'image/webp': '.webp',
    'image/bmp': '.bmp',
    'image/tiff': '.tiff',
}


@dataclass(frozen=True)
class ImageSource:
    """
    Reference to the VIN plate photo: a local path or an http(s) URL.

    Attributes:
        location: Path or URL exactly as supplied (whitespace stripped)
        is_remote: True for http(s) URLs
    """
    location: str
    is_remote: bool = False

    @classmethod
    def parse(cls, source: Union[str, Path, 'ImageSource']) -> 'ImageSource':
        """Classify a raw image reference as local or remote."""
        if isinstance(source, ImageSource):
            return source
        if isinstance(source, Path):
            return cls(location=str(source), is_remote=False)
        if not isinstance(source, str) or not source.strip():
            raise InvalidInput("image source is empty", value=source)

        location = source.strip()
        parsed = urlparse(location)
        is_remote = parsed.scheme.lower() in REMOTE_SCHEMES and bool(parsed.netloc)
        return cls(location=location, is_remote=is_remote)

    def __str__(self) -> str:
        return self.location


class RunWorkspace:
    """
    Temporary directory owned by one verification run.

    Holds the downloaded original and every preprocessed variant. The
    directory and its contents are removed when the context exits, whether
    the run succeeded, failed or was cancelled.

    A removal that fails (a straggling worker still writing into the
    directory, say) is logged and stays pending. retry_cleanup() finishes it
    once the straggler is done.
    """

    def __init__(self, prefix: str = 'vin_verify_', base_dir: Optional[str] = None):
        self._prefix = prefix
        self._base_dir = base_dir
        self._tmp: Optional[tempfile.TemporaryDirectory] = None
        self._closed = False
        self._lock = threading.Lock()
        self.path: Optional[Path] = None

    def __enter__(self) -> 'RunWorkspace':
        self._tmp = tempfile.TemporaryDirectory(prefix=self._prefix, dir=self._base_dir)
        self._closed = False
        self.path = Path(self._tmp.name)
        logger.debug(f"Opened run workspace {self.path}")
        return self

    def __exit__(self, exc_type, exc, tb):
        self._closed = True
        self.cleanup()
        return False

    def cleanup(self) -> bool:
        """
        Remove the workspace directory. Safe to call more than once, and from
        any thread.

        Returns:
            True once the directory is gone
        """
        with self._lock:
            if self._tmp is None:
                return True
            try:
                self._tmp.cleanup()
            except OSError as e:
                logger.warning(f"Could not remove run workspace {self.path}, will retry: {e}")
                return False
            logger.debug(f"Removed run workspace {self.path}")
            self._tmp = None
            return True

    def retry_cleanup(self) -> bool:
        """Finish a pending removal. Does nothing while the run still owns the workspace."""
        if not self._closed:
            return False
        return self.cleanup()


class ImageAcquirer:
    """
    Turns an ImageSource into a local file path.

    Example:
        acquirer = ImageAcquirer(AcquisitionConfig(download_timeout=10))
        path = acquirer.resolve("photo.jpg", workdir)
    """

    def __init__(self, config: Optional[AcquisitionConfig] = None):
        self.config = config or AcquisitionConfig()

    def resolve(self, source: Union[str, Path, ImageSource], workdir: Path) -> Path:
        """
        Resolve a source to a readable local file.

        Args:
            source: Local path, URL or parsed ImageSource
            workdir: Run workspace; downloads are written here

        Returns:
            Path of a readable local image file

        Raises:
            AcquisitionFailed: If the image cannot be fetched or read
            InvalidInput: If the source is empty
        """
        image_source = ImageSource.parse(source)
        if image_source.is_remote:
            return self.download(image_source.location, Path(workdir))
        return self._resolve_local(image_source.location)

    def download(self, url: str, workdir: Path) -> Path:
        """Fetch a remote image with a single bounded GET. No retries."""
        logger.info(f"Downloading image from {url}")
        try:
            response = requests.get(
                url,
                timeout=self.config.download_timeout,
                headers={'User-Agent': self.config.user_agent},
            )
            response.raise_for_status()
        except requests.Timeout as e:
            raise AcquisitionFailed(
                f"download timed out after {self.config.download_timeout}s", source=url
            ) from e
        except requests.HTTPError as e:
            raise AcquisitionFailed(
                f"HTTP {e.response.status_code if e.response is not None else 'error'}",
                source=url,
            ) from e
        except requests.RequestException as e:
            raise AcquisitionFailed(f"network error: {e}", source=url) from e

        content = response.content
        if not content:
            raise AcquisitionFailed("empty response body", source=url)

        target = Path(workdir) / f"source_{uuid.uuid4().hex}{self._guess_extension(url, response)}"
        with open(target, 'wb') as f:
            f.write(content)

        logger.debug(f"Saved {len(content)} bytes to {target}")
        return target

    @staticmethod
    def _resolve_local(location: str) -> Path:
        path = Path(location).expanduser()
        if not path.is_file():
            raise AcquisitionFailed("file not found", source=location)
        if not os.access(path, os.R_OK):
            raise AcquisitionFailed("file is not readable", source=location)
        return path

    @staticmethod
    def _guess_extension(url: str, response: requests.Response) -> str:
        content_type = response.headers.get('Content-Type', '').split(';')[0].strip().lower()
        if content_type in _CONTENT_TYPE_EXTENSIONS:
            return _CONTENT_TYPE_EXTENSIONS[content_type]
        suffix = Path(urlparse(url).path).suffix.lower()
        return suffix if suffix else '.img'
