"""
Bookmark Content Fetching Module

This module downloads bookmarked URLs and hands back a buffered content
stream together with the content type declared by the server.
"""

import threading
import logging
from typing import Optional, Dict

import requests

from .errors import FetchFailed, FetchCancelled
from .models import ContentStream
from ..config import DEFAULT_USER_AGENT
from ..utils.validators import validate_absolute_url


CHUNK_SIZE = 64 * 1024


class Fetcher:
    """
    Retrieves URLs over HTTP(S) and buffers the full response body.

    Buffering the whole body before any encoder sees it means a stream can
    be rewound and offered to the next encoder when one fails. No retries
    are attempted here; retry policy belongs to the caller.
    """

    def __init__(self,
                 timeout: float = 30.0,
                 max_body_bytes: int = 50 * 1024 * 1024,
                 user_agent: str = DEFAULT_USER_AGENT,
                 extra_headers: Optional[Dict[str, str]] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize the fetcher.

        Args:
            timeout: Default timeout in seconds for connect and read
            max_body_bytes: Responses larger than this are rejected
            user_agent: User-Agent header sent with every request
            extra_headers: Additional headers merged into the session
            session: Optional pre-built session (mainly for tests)
        """
        self.timeout = timeout
        self.max_body_bytes = max_body_bytes
        self.logger = logging.getLogger(__name__)

        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,application/pdf,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.5',
        })
        if extra_headers:
            self.session.headers.update(extra_headers)

    @classmethod
    def from_config(cls, config) -> "Fetcher":
        return cls(timeout=config.fetch_timeout,
                   max_body_bytes=config.max_body_bytes,
                   user_agent=config.user_agent,
                   extra_headers=config.extra_headers)

    def fetch(self,
              url: str,
              timeout: Optional[float] = None,
              cancel_event: Optional[threading.Event] = None,
              max_bytes: Optional[int] = None) -> ContentStream:
        """
        Fetch a URL and return its body as a ContentStream.

        Args:
            url: Absolute http(s) URL
            timeout: Per-call timeout overriding the default
            cancel_event: When set, the download is abandoned between chunks
            max_bytes: Per-call body size cap overriding the default

        Returns:
            A rewindable ContentStream positioned at offset 0. The caller
            owns it and must close it.

        Raises:
            FetchFailed: invalid URL, timeout, connection error, non-2xx
                status or oversized body
            FetchCancelled: cancel_event was set before the body completed
        """
        is_valid, normalized_url, error = validate_absolute_url(url)
        if not is_valid:
            raise FetchFailed(f"invalid url {url!r}: {error}", url=url)

        limit = self.max_body_bytes if max_bytes is None else max_bytes
        timeout = self.timeout if timeout is None else timeout

        if cancel_event is not None and cancel_event.is_set():
            raise FetchCancelled(f"fetch of {url} cancelled", url=url)

        self.logger.info(f"Fetching: {url}")

        try:
            response = self.session.get(normalized_url, timeout=timeout, stream=True)
        except requests.exceptions.Timeout as e:
            raise FetchFailed(f"timeout fetching {url}", url=url) from e
        except requests.exceptions.RequestException as e:
            raise FetchFailed(f"error fetching {url}: {e}", url=url) from e

        try:
            try:
                response.raise_for_status()
            except requests.exceptions.HTTPError as e:
                raise FetchFailed(f"HTTP {response.status_code} fetching {url}",
                                  url=url, status_code=response.status_code) from e

            declared = response.headers.get('content-length')
            if declared and declared.isdigit() and int(declared) > limit:
                raise FetchFailed(f"response for {url} is {declared} bytes, limit is {limit}",
                                  url=url, status_code=response.status_code)

            chunks = []
            received = 0
            try:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if cancel_event is not None and cancel_event.is_set():
                        raise FetchCancelled(f"fetch of {url} cancelled", url=url)
                    if not chunk:
                        continue
                    received += len(chunk)
                    if received > limit:
                        raise FetchFailed(f"response for {url} exceeds {limit} bytes",
                                          url=url, status_code=response.status_code)
                    chunks.append(chunk)
            except requests.exceptions.RequestException as e:
                raise FetchFailed(f"error reading body of {url}: {e}",
                                  url=url, status_code=response.status_code) from e

            content_type = response.headers.get('content-type', '') or 'application/octet-stream'
        finally:
            response.close()

        body = b''.join(chunks)
        self.logger.info(f"Fetched {len(body)} bytes ({content_type}) from {url}")
        return ContentStream(body, content_type, url=url)

    def fetch_bytes(self, url: str, max_bytes: Optional[int] = None) -> ContentStream:
        """Fetch a page resource (image, stylesheet); same contract as fetch()."""
        return self.fetch(url, max_bytes=max_bytes)

    def close(self):
        """Close the HTTP session."""
        self.session.close()
        self.logger.debug("Fetcher session closed")
