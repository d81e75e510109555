"""Byte-level access to repositories: local directories and HTTP servers.

Resolvers compute locations from patterns and use a Repository to check,
list and read them. "Absent" is reported through ``exists()`` / None values;
anything else (timeouts, 5xx, I/O errors) raises TransportError.
"""
from __future__ import annotations

import logging
import os
import re
import urllib.parse
from abc import ABC, abstractmethod
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Iterator, List, Optional

from constants import Constants
from common import http_client
from common.errors import TransportError
from common.logging_utils import safe_url

logger = logging.getLogger(__name__)

_HREF = re.compile(r'<a\s[^>]*href\s*=\s*"([^"?#]+)"', re.IGNORECASE)


class Resource(ABC):
    """A single file in a repository."""

    def __init__(self, location: str):
        self.location = location

    is_local = False

    @abstractmethod
    def exists(self) -> bool:
        ...

    @abstractmethod
    def last_modified(self) -> Optional[datetime]:
        ...

    @abstractmethod
    def iter_content(self) -> Iterator[bytes]:
        """Yield the content in chunks; raises TransportError if unreadable."""

    def read_bytes(self) -> bytes:
        return b"".join(self.iter_content())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.location!r})"


class FileResource(Resource):
    is_local = True

    def exists(self) -> bool:
        return os.path.isfile(self.location)

    def last_modified(self) -> Optional[datetime]:
        try:
            return datetime.fromtimestamp(os.path.getmtime(self.location))
        except OSError:
            return None

    def iter_content(self) -> Iterator[bytes]:
        try:
            with open(self.location, "rb") as fh:
                while True:
                    chunk = fh.read(Constants.DOWNLOAD_CHUNK_SIZE)
                    if not chunk:
                        return
                    yield chunk
        except OSError as exc:
            raise TransportError(f"cannot read {self.location}: {exc}", location=self.location) from exc


class UrlResource(Resource):
    """HTTP resource; the HEAD answer is fetched once and memoised."""

    def __init__(self, location: str, timeout: Optional[float] = None):
        super().__init__(location)
        self.timeout = timeout
        self._head = None

    def _head_response(self):
        if self._head is None:
            res = http_client.safe_head(self.location, context="resolver", timeout=self.timeout)
            if res.status_code >= 500:
                raise TransportError(
                    f"HTTP {res.status_code} for {safe_url(self.location)}", location=self.location
                )
            self._head = res
        return self._head

    def exists(self) -> bool:
        return self._head_response().status_code == 200

    def last_modified(self) -> Optional[datetime]:
        value = self._head_response().headers.get("Last-Modified") if self.exists() else None
        if not value:
            return None
        try:
            return parsedate_to_datetime(value).replace(tzinfo=None)
        except (TypeError, ValueError):
            return None

    def iter_content(self) -> Iterator[bytes]:
        res = http_client.safe_get(self.location, context="resolver", timeout=self.timeout, stream=True)
        if res.status_code != 200:
            raise TransportError(
                f"HTTP {res.status_code} for {safe_url(self.location)}", location=self.location
            )
        try:
            for chunk in res.iter_content(chunk_size=Constants.DOWNLOAD_CHUNK_SIZE):
                if chunk:
                    yield chunk
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise TransportError(
                f"transfer of {safe_url(self.location)} interrupted: {exc}", location=self.location
            ) from exc
        finally:
            res.close()


class Repository(ABC):
    """Where a resolver reads from."""

    is_local = False

    @abstractmethod
    def get_resource(self, location: str) -> Resource:
        ...

    @abstractmethod
    def list(self, parent: str) -> Optional[List[str]]:
        """Entry names directly under ``parent``, or None if it cannot be listed."""

    def read_bytes(self, location: str) -> Optional[bytes]:
        resource = self.get_resource(location)
        if not resource.exists():
            return None
        return resource.read_bytes()


class FileRepository(Repository):
    is_local = True

    def get_resource(self, location: str) -> Resource:
        return FileResource(location)

    def list(self, parent: str) -> Optional[List[str]]:
        if not os.path.isdir(parent or "."):
            return None
        try:
            return sorted(os.listdir(parent or "."))
        except OSError as exc:
            raise TransportError(f"cannot list {parent}: {exc}", location=parent) from exc


class UrlRepository(Repository):
    """HTTP repository; listings come from server-generated directory pages."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def get_resource(self, location: str) -> Resource:
        return UrlResource(location, self.timeout)

    def list(self, parent: str) -> Optional[List[str]]:
        url = parent if parent.endswith("/") else parent + "/"
        text = http_client.get_text(url, context="resolver", timeout=self.timeout)
        if text is None:
            return None
        names = []
        for href in _HREF.findall(text):
            if href.startswith(("..", "/")) or "://" in href:
                continue
            name = urllib.parse.unquote(href.rstrip("/"))
            if name and name not in names:
                names.append(name)
        return names

    def read_bytes(self, location: str) -> Optional[bytes]:
        return http_client.get_bytes(location, context="resolver", timeout=self.timeout)
