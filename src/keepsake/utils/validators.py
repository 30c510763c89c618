"""
URL Validation Utilities

This module provides URL validation and normalization functions
for bookmark fetching.
"""

import posixpath
from urllib.parse import urlparse, urlunparse, unquote
from typing import Tuple, Optional
import logging


class URLValidator:
    """
    Validates and normalizes bookmark URLs before they are fetched.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def validate_absolute(self, url: str) -> Tuple[bool, str, str]:
        """
        Validate that a URL is an absolute http(s) URL with a valid host.

        Unlike user-facing input, bookmark URLs are never completed with a
        default scheme: a missing scheme is an error.

        Args:
            url: The URL to validate

        Returns:
            Tuple of (is_valid, normalized_url, error_message)
        """
        if not url or not isinstance(url, str):
            return False, "", "URL cannot be empty"

        url = url.strip()

        try:
            parsed = urlparse(url)
        except ValueError as e:
            return False, "", f"URL validation error: {e}"

        if not parsed.scheme:
            return False, "", "URL must be absolute"
        if parsed.scheme.lower() not in ['http', 'https']:
            return False, "", "URL must use HTTP or HTTPS protocol"
        if not parsed.netloc:
            return False, "", "URL must have a valid domain"

        # Host syntax beyond this is left to the HTTP client
        if not parsed.hostname:
            return False, "", "URL must have a valid domain"

        try:
            # Accessing .port validates it
            parsed.port
        except ValueError:
            return False, "", "Invalid port"

        return True, self._normalize_url(parsed), ""

    def _normalize_url(self, parsed_url) -> str:
        """Lowercase scheme and host, drop the fragment, keep path and query."""
        scheme = parsed_url.scheme.lower()
        netloc = parsed_url.netloc.lower()
        path = parsed_url.path or '/'
        return urlunparse((scheme, netloc, path, parsed_url.params, parsed_url.query, ''))

    def filename_from_url(self, url: str) -> str:
        """Return the last path segment of a URL, percent-decoded."""
        try:
            path = urlparse(url).path
        except ValueError:
            return ""
        return unquote(posixpath.basename(path.rstrip('/')))


# Global validator instance
_validator_instance: Optional[URLValidator] = None


def get_validator() -> URLValidator:
    """
    Get the global URL validator instance.

    Returns:
        URLValidator instance
    """
    global _validator_instance
    if _validator_instance is None:
        _validator_instance = URLValidator()
    return _validator_instance


def validate_absolute_url(url: str) -> Tuple[bool, str, str]:
    """
    Validate and normalize an absolute URL.

    Args:
        url: URL to validate

    Returns:
        Tuple of (is_valid, normalized_url, error_message)
    """
    return get_validator().validate_absolute(url)
