"""
Unit tests for PKCE cryptographic utilities.

Tests state and verifier generation, S256 challenge derivation and the
comparison helpers against RFC 7636.
"""

import base64
import hashlib

from oauth_session_client.shared.crypto_utils import (
    PKCEGenerator,
    constant_time_compare,
    derive_code_challenge,
    generate_code_verifier,
    generate_state,
    is_valid_code_verifier,
    validate_base64url,
)


class TestPKCEGenerator:
    """Test cases for PKCEGenerator class."""

    def test_state_values_are_unique(self):
        """Two calls never return the same state."""
        states = {PKCEGenerator.generate_state() for _ in range(50)}
        assert len(states) == 50

    def test_state_is_url_safe(self):
        state = generate_state()
        assert len(state) == 43
        assert validate_base64url(state)

    def test_code_verifier_within_rfc_bounds(self):
        verifier = generate_code_verifier()
        assert 43 <= len(verifier) <= 128
        assert is_valid_code_verifier(verifier)

    def test_code_verifiers_are_unique(self):
        assert generate_code_verifier() != generate_code_verifier()

    def test_challenge_is_deterministic(self):
        verifier = generate_code_verifier()
        assert derive_code_challenge(verifier) == derive_code_challenge(verifier)

    def test_challenge_differs_for_different_verifiers(self):
        assert derive_code_challenge(generate_code_verifier()) != derive_code_challenge(generate_code_verifier())

    def test_challenge_matches_rfc7636_appendix_b(self):
        """Known-answer test from RFC 7636 Appendix B."""
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert derive_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_challenge_is_sha256_base64url_without_padding(self):
        verifier = generate_code_verifier()
        expected = base64.urlsafe_b64encode(
            hashlib.sha256(verifier.encode('ascii')).digest()
        ).decode('ascii').rstrip('=')

        challenge = derive_code_challenge(verifier)

        assert challenge == expected
        assert '=' not in challenge
        assert len(challenge) == 43

    def test_generate_pkce_pair_is_consistent(self):
        verifier, challenge = PKCEGenerator.generate_pkce_pair()
        assert PKCEGenerator.verify_challenge(verifier, challenge)

    def test_verify_challenge_rejects_wrong_verifier(self):
        _, challenge = PKCEGenerator.generate_pkce_pair()
        assert PKCEGenerator.verify_challenge(generate_code_verifier(), challenge) is False

    def test_verify_challenge_handles_malformed_input(self):
        assert PKCEGenerator.verify_challenge(None, "challenge") is False
        assert PKCEGenerator.verify_challenge("verifier", None) is False
        assert PKCEGenerator.verify_challenge("", "challenge") is False
        assert PKCEGenerator.verify_challenge(123, "challenge") is False
        assert PKCEGenerator.verify_challenge("vérifier", "challenge") is False


class TestHelpers:
    """Test cases for module-level helpers."""

    def test_constant_time_compare_equal(self):
        assert constant_time_compare("abc", "abc") is True

    def test_constant_time_compare_different(self):
        assert constant_time_compare("abc", "abd") is False

    def test_constant_time_compare_missing_values_never_match(self):
        assert constant_time_compare(None, None) is False
        assert constant_time_compare("", "") is False
        assert constant_time_compare("abc", None) is False
        assert constant_time_compare(None, "abc") is False

    def test_validate_base64url(self):
        assert validate_base64url("dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk")
        assert not validate_base64url("padded==")
        assert not validate_base64url(None)

    def test_is_valid_code_verifier_rejects_short_and_invalid(self):
        assert not is_valid_code_verifier("short")
        assert not is_valid_code_verifier("a" * 129)
        assert not is_valid_code_verifier("a" * 42 + "!")
        assert is_valid_code_verifier("a" * 43)
