# tests/bootstrap/test_token.py
"""Tests for rotation token delivery."""

import base64

import httpx
import pytest

from siteagent.bootstrap.downloader import CredentialDownloader
from siteagent.bootstrap.manager import BootstrapManager
from siteagent.bootstrap.token import TokenHandler
from siteagent.contracts.errors import BootstrapError, NonRetryableError, PublishError, TokenDecryptionError, is_retryable
from siteagent.core.security.crypto import encrypt_token


def _encrypted(token: str, site_id: str = "site-0001") -> str:
    return base64.b64encode(encrypt_token(token.encode(), site_id)).decode()


class TestReceiveAndSaveToken:
    def test_rotation_round_trip(self, bootstrap_manager, secret_store, endpoint, recording_publisher, pki) -> None:
        handler = TokenHandler(bootstrap_manager, "site-0001", recording_publisher)

        expiry = handler.receive_and_save_token(_encrypted("token-2"))

        assert expiry == pki.cert_expiry
        assert secret_store.read("bootstrap-info")["otp"] == "token-2"
        assert secret_store.read("site-credentials")["otp"] == "token-2"
        assert endpoint.requests == [{"uuid": "site-0001", "otp": "token-2"}]
        assert recording_publisher.cert_expiries == [("site-0001", pki.cert_expiry)]
        assert bootstrap_manager.status()["agent_cert_expiry"] == pki.cert_expiry.isoformat()

    def test_same_token_still_downloads(self, bootstrap_manager, endpoint) -> None:
        bootstrap_manager.download_and_store()
        handler = TokenHandler(bootstrap_manager, "site-0001")

        handler.receive_and_save_token(_encrypted("token-1"))

        assert len(endpoint.requests) == 2

    def test_publish_failure_is_not_fatal(self, bootstrap_manager, recording_publisher, pki) -> None:
        recording_publisher.cert_expiry_error = PublishError("cloud down")
        handler = TokenHandler(bootstrap_manager, "site-0001", recording_publisher)

        assert handler.receive_and_save_token(_encrypted("token-2")) == pki.cert_expiry

    def test_download_failure_propagates(self, bootstrap_manager, endpoint) -> None:
        endpoint.statuses = [401]
        handler = TokenHandler(bootstrap_manager, "site-0001")

        with pytest.raises(BootstrapError) as exc_info:
            handler.receive_and_save_token(_encrypted("token-2"))

        assert not isinstance(exc_info.value, NonRetryableError)


class TestNonRetryableErrors:
    @pytest.mark.parametrize(
        ("payload", "error_type"),
        [("", "ErrEmptyOTP"), ("***not base64***", "ErrBase64DecodeOTP")],
    )
    def test_bad_input(self, bootstrap_manager, payload: str, error_type: str) -> None:
        with pytest.raises(NonRetryableError) as exc_info:
            TokenHandler(bootstrap_manager, "site-0001").receive_and_save_token(payload)
        assert exc_info.value.type == error_type

    def test_no_secret_access(self) -> None:
        with pytest.raises(NonRetryableError) as exc_info:
            TokenHandler(None, "site-0001").receive_and_save_token(_encrypted("token-2"))
        assert exc_info.value.type == "ErrNilSecretInterface"

    def test_empty_bootstrap_secret(self, secret_store, tmp_path) -> None:
        (tmp_path / "sitereg").mkdir()
        manager = BootstrapManager(
            bootstrap_store=secret_store,
            bootstrap_secret_name="bootstrap-info",
            credential_store=secret_store,
            credentials_secret_name="site-credentials",
            downloader=CredentialDownloader(transport=httpx.MockTransport(lambda r: httpx.Response(500))),
        )
        with pytest.raises(NonRetryableError) as exc_info:
            TokenHandler(manager, "site-0001").receive_and_save_token(_encrypted("token-2"))
        assert exc_info.value.type == "ErrNilSecretData"

    def test_token_for_another_site(self, bootstrap_manager, endpoint) -> None:
        with pytest.raises(NonRetryableError) as exc_info:
            TokenHandler(bootstrap_manager, "site-0001").receive_and_save_token(_encrypted("token-2", "site-9999"))

        assert exc_info.value.type == "ErrDecryptOTP"
        assert endpoint.requests == []

    def test_token_not_utf8(self, bootstrap_manager, endpoint) -> None:
        payload = base64.b64encode(encrypt_token(b"\xff\xfe\xfd", "site-0001")).decode()

        with pytest.raises(TokenDecryptionError) as exc_info:
            TokenHandler(bootstrap_manager, "site-0001").receive_and_save_token(payload)

        assert exc_info.value.type == "ErrDecryptOTP"
        assert not is_retryable(exc_info.value)
        assert endpoint.requests == []
