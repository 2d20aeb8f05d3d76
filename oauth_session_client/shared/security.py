"""
Security utilities for the OAuth session client.

URL and parameter validation used when building configuration and redirect
targets, and standard security headers for responses that carry
authentication state.
"""

from typing import Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


class InputValidator:
    """
    Input validation for configuration values and callback parameters.
    """

    DANGEROUS_URL_CHARS = ['<', '>', '"', "'", '`', ' ']

    @staticmethod
    def validate_absolute_url(url: str, allowed_schemes: Optional[list] = None) -> bool:
        """
        Validate that a URL is absolute.

        Args:
            url: URL to validate
            allowed_schemes: List of allowed URI schemes (default: ['http', 'https'])

        Returns:
            bool: True if ``url`` has an allowed scheme and a host
        """
        if not isinstance(url, str) or not url:
            return False

        if allowed_schemes is None:
            allowed_schemes = ['http', 'https']

        try:
            parsed = urlparse(url)
        except ValueError:
            return False

        if parsed.scheme not in allowed_schemes or not parsed.netloc:
            return False

        return not any(char in url for char in InputValidator.DANGEROUS_URL_CHARS)

    @staticmethod
    def sanitize_string(input_str: str, max_length: int = 1000) -> str:
        """
        Sanitize string input by removing control characters.

        Args:
            input_str: String to sanitize
            max_length: Maximum allowed length

        Returns:
            str: Sanitized string
        """
        if not isinstance(input_str, str):
            return ""

        sanitized = ''.join(char for char in input_str if ord(char) >= 32)
        return sanitized[:max_length].strip()


def merge_query_params(url: str, params: Mapping[str, str]) -> str:
    """
    Add or replace query parameters on a (possibly relative) URL.

    Existing parameters are kept, keys in ``params`` overwrite them, and the
    result never contains a duplicated ``?`` or ``&``.

    Example:
        merge_query_params("/login?next=/", {"error_code": "invalid_state"})
        # "/login?next=%2F&error_code=invalid_state"
    """
    parsed = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
             if k not in params]
    query.extend(params.items())
    return urlunparse(parsed._replace(query=urlencode(query)))


class SecurityHeaders:
    """
    Security headers for HTTP responses.

    Provides standard security headers to protect against
    common web vulnerabilities.
    """

    @staticmethod
    def get_oauth_security_headers() -> Dict[str, str]:
        """
        Get security headers for pages that handle authentication state.

        Returns:
            dict: Dictionary of security headers
        """
        return {
            'X-Content-Type-Options': 'nosniff',
            'X-Frame-Options': 'DENY',
            'Referrer-Policy': 'no-referrer',
            'Cache-Control': 'no-cache, no-store, must-revalidate',
            'Pragma': 'no-cache',
            'Expires': '0'
        }
