# tests/core/security/test_crypto.py
"""Tests for token encryption and certificate parsing."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from siteagent.contracts.errors import CertificateError, NonRetryableError, TokenDecryptionError
from siteagent.core.security.crypto import certificate_expiry, decrypt_token, encrypt_token


class TestTokenEncryption:
    @given(token=st.binary(min_size=1, max_size=256), site_id=st.text(min_size=1, max_size=64))
    def test_decrypt_recovers_token(self, token: bytes, site_id: str) -> None:
        assert decrypt_token(encrypt_token(token, site_id), site_id) == token

    def test_nonce_makes_ciphertexts_differ(self) -> None:
        assert encrypt_token(b"otp", "site-1") != encrypt_token(b"otp", "site-1")

    def test_wrong_site_fails(self) -> None:
        ciphertext = encrypt_token(b"otp", "site-1")
        with pytest.raises(TokenDecryptionError):
            decrypt_token(ciphertext, "site-2")

    def test_tampered_ciphertext_fails(self) -> None:
        ciphertext = bytearray(encrypt_token(b"otp", "site-1"))
        ciphertext[-1] ^= 0x01
        with pytest.raises(TokenDecryptionError):
            decrypt_token(bytes(ciphertext), "site-1")

    def test_truncated_ciphertext_fails(self) -> None:
        with pytest.raises(TokenDecryptionError, match="too short"):
            decrypt_token(b"short", "site-1")

    def test_decryption_errors_are_not_retried(self) -> None:
        assert issubclass(TokenDecryptionError, NonRetryableError)

    def test_empty_site_id_rejected(self) -> None:
        with pytest.raises(ValueError):
            encrypt_token(b"otp", "")


class TestCertificateExpiry:
    def test_reads_not_after(self, pki) -> None:
        assert certificate_expiry(pki.certificate) == pki.cert_expiry
        assert certificate_expiry(pki.ca_certificate.encode()) == pki.ca_expiry

    def test_invalid_pem(self) -> None:
        with pytest.raises(CertificateError):
            certificate_expiry("-----BEGIN CERTIFICATE-----\nnope\n-----END CERTIFICATE-----\n")
