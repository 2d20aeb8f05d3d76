"""
PKCE (Proof Key for Code Exchange) cryptographic utilities.

This module implements the RFC 7636 pieces the client needs: state and code
verifier generation, S256 challenge derivation, and constant-time comparison
for the CSRF state check.
"""

import secrets
import hashlib
import base64
from typing import Optional, Tuple


# 32 random bytes -> 43 base64url characters, 256 bits of entropy
RANDOM_BYTES = 32
VERIFIER_MIN_LENGTH = 43
VERIFIER_MAX_LENGTH = 128


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode('ascii').rstrip('=')


class PKCEGenerator:
    """
    PKCE code verifier, challenge and state generator.

    Implements the RFC 7636 S256 method, which is the only method the
    authorization service accepts.
    """

    @staticmethod
    def generate_state() -> str:
        """
        Generate a fresh state parameter for CSRF protection.

        Returns:
            str: 43-character base64url string with 256 bits of randomness

        Example:
            state = PKCEGenerator.generate_state()
        """
        return _b64url(secrets.token_bytes(RANDOM_BYTES))

    @staticmethod
    def generate_code_verifier() -> str:
        """
        Generate a PKCE code verifier.

        The base64url alphabet is a subset of the RFC 7636 unreserved
        character set, and 32 bytes encode to exactly 43 characters.

        Returns:
            str: Code verifier within the 43-128 character bound
        """
        return _b64url(secrets.token_bytes(RANDOM_BYTES))

    @staticmethod
    def derive_code_challenge(verifier: str) -> str:
        """
        Derive the S256 code challenge for a verifier.

        Computes BASE64URL(SHA256(ASCII(verifier))) without padding. The
        transform must match the authorization service's validation exactly.

        Args:
            verifier: The PKCE code verifier

        Returns:
            str: Base64url encoded SHA256 digest

        Example:
            PKCEGenerator.derive_code_challenge(
                "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
            )
            # "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
        """
        return _b64url(hashlib.sha256(verifier.encode('ascii')).digest())

    @staticmethod
    def generate_pkce_pair() -> Tuple[str, str]:
        """
        Generate a verifier and its challenge.

        Returns:
            Tuple[str, str]: (code_verifier, code_challenge)
        """
        verifier = PKCEGenerator.generate_code_verifier()
        return verifier, PKCEGenerator.derive_code_challenge(verifier)

    @staticmethod
    def verify_challenge(verifier: str, challenge: str) -> bool:
        """
        Check that a verifier produces the expected challenge.

        Args:
            verifier: The PKCE code verifier
            challenge: The expected PKCE challenge

        Returns:
            bool: True if verifier matches challenge, False otherwise
        """
        if not isinstance(verifier, str) or not isinstance(challenge, str):
            return False
        if not verifier or not challenge:
            return False

        try:
            expected_challenge = PKCEGenerator.derive_code_challenge(verifier)
        except UnicodeEncodeError:
            return False

        return secrets.compare_digest(expected_challenge, challenge)


def validate_base64url(value: str) -> bool:
    """
    Validate base64url encoded string format.

    Checks if a string is properly base64url encoded without padding.

    Args:
        value: String to validate

    Returns:
        bool: True if valid base64url format, False otherwise
    """
    if not isinstance(value, str) or '=' in value:
        return False
    try:
        padded = value + '=' * (-len(value) % 4)
        base64.urlsafe_b64decode(padded.encode('ascii'))
        return True
    except (ValueError, TypeError):
        return False


def is_valid_code_verifier(verifier: str) -> bool:
    """Return True if ``verifier`` satisfies the RFC 7636 length and charset rules."""
    if not isinstance(verifier, str):
        return False
    if not VERIFIER_MIN_LENGTH <= len(verifier) <= VERIFIER_MAX_LENGTH:
        return False
    unreserved = set(
        "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
    )
    return all(char in unreserved for char in verifier)


def constant_time_compare(a: Optional[str], b: Optional[str]) -> bool:
    """
    Perform constant-time string comparison.

    Missing or empty values on either side never compare equal, so a lost
    session value cannot match an absent callback parameter.

    Args:
        a: First string
        b: Second string

    Returns:
        bool: True if strings are equal and non-empty, False otherwise
    """
    if not isinstance(a, str) or not isinstance(b, str) or not a or not b:
        return False
    return secrets.compare_digest(a.encode('utf-8'), b.encode('utf-8'))


# Module-level shortcuts
generate_state = PKCEGenerator.generate_state
generate_code_verifier = PKCEGenerator.generate_code_verifier
derive_code_challenge = PKCEGenerator.derive_code_challenge
