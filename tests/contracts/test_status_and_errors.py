# tests/contracts/test_status_and_errors.py
"""Tests for status enums, payloads and the error taxonomy."""

import pytest

from siteagent.contracts import (
    SUCCESS_OBJECT_STATUS,
    ActivityFailedError,
    BackendError,
    BackendStatus,
    BootstrapSecret,
    CompositeStatus,
    NonRetryableError,
    ObjectStatus,
    OperationKind,
    ResourceInfo,
    ResourceListInfo,
    ResourceStaleError,
    SiteCredentials,
    TokenDecryptionError,
    TransactionValidationError,
    WorkflowOutcome,
    WorkflowStatus,
    is_retryable,
)


class TestSuccessObjectStatus:
    @pytest.mark.parametrize(
        ("kind", "expected"),
        [
            (OperationKind.CREATE, ObjectStatus.CREATED),
            (OperationKind.UPDATE, ObjectStatus.UPDATED),
            (OperationKind.DELETE, ObjectStatus.DELETED),
            (OperationKind.READ, ObjectStatus.UNSPECIFIED),
            (OperationKind.NONE, ObjectStatus.UNSPECIFIED),
        ],
    )
    def test_mapping(self, kind: OperationKind, expected: ObjectStatus) -> None:
        assert SUCCESS_OBJECT_STATUS[kind] is expected

    def test_every_kind_is_mapped(self) -> None:
        assert set(SUCCESS_OBJECT_STATUS) == set(OperationKind)


class TestCompositeStatus:
    @pytest.mark.parametrize(
        ("activity_failed", "publish_failed", "expected"),
        [
            (False, False, CompositeStatus.SUCCESS),
            (True, False, CompositeStatus.ACTIVITY_FAILED),
            (False, True, CompositeStatus.PUBLISH_FAILED),
            (True, True, CompositeStatus.ACTIVITY_PUBLISH_FAILED),
        ],
    )
    def test_from_outcome(self, activity_failed: bool, publish_failed: bool, expected: CompositeStatus) -> None:
        assert CompositeStatus.from_outcome(activity_failed, publish_failed) is expected


class TestErrors:
    @pytest.mark.parametrize("status", [BackendStatus.UNAVAILABLE, BackendStatus.UNAUTHENTICATED])
    def test_transport_statuses(self, status: BackendStatus) -> None:
        assert BackendError(status, "down").is_transport_failure

    @pytest.mark.parametrize("status", [BackendStatus.ALREADY_EXISTS, BackendStatus.NOT_FOUND, BackendStatus.INTERNAL])
    def test_application_statuses(self, status: BackendStatus) -> None:
        assert not BackendError(status, "rejected").is_transport_failure

    def test_stale_is_an_application_error(self) -> None:
        error = ResourceStaleError()
        assert isinstance(error, BackendError)
        assert not error.is_transport_failure

    def test_retryability(self) -> None:
        assert not is_retryable(TransactionValidationError("empty"))
        assert not is_retryable(TokenDecryptionError("bad"))
        assert not is_retryable(NonRetryableError("x", type="ErrEmptyOTP"))
        assert is_retryable(BackendError(BackendStatus.UNAVAILABLE, "down"))

    def test_non_retryable_carries_type(self) -> None:
        assert TransactionValidationError("empty").type == "ErrInvalidTransaction"
        assert TokenDecryptionError("bad").type == "ErrDecryptOTP"

    def test_activity_failed_message_is_last_error(self) -> None:
        last = BackendError(BackendStatus.INTERNAL, "boom")
        error = ActivityFailedError("VpcCreate", 7, last)
        assert str(error) == str(last)
        assert error.attempts == 7
        assert error.last_error is last


class TestPayloads:
    def test_resource_info_is_seeded_with_failure(self) -> None:
        info = ResourceInfo()
        assert info.status is WorkflowStatus.FAILURE
        assert info.object_status is ObjectStatus.UNSPECIFIED

    def test_resource_info_to_dict_uses_wire_values(self) -> None:
        info = ResourceInfo(status=WorkflowStatus.SUCCESS, object_status=ObjectStatus.CREATED, resource={"id": "v"})
        assert info.to_dict() == {
            "status": "WORKFLOW_STATUS_SUCCESS",
            "object_status": "OBJECT_STATUS_CREATED",
            "status_msg": "",
            "resource": {"id": "v"},
        }

    def test_list_info_to_dict(self) -> None:
        info = ResourceListInfo(items=[{"id": "a"}])
        assert info.to_dict()["items"] == [{"id": "a"}]
        assert info.to_dict()["status"] == "WORKFLOW_STATUS_FAILURE"

    def test_outcome_succeeded(self) -> None:
        assert WorkflowOutcome(None, None, ResourceInfo()).succeeded
        assert not WorkflowOutcome(None, RuntimeError("x"), ResourceInfo()).succeeded


class TestBootstrapRecords:
    def test_missing_fields(self) -> None:
        secret = BootstrapSecret(site_uuid="s", token="", credentials_url="https://x", ca_certificate="")
        assert secret.missing_fields() == ["token", "ca_certificate"]
        assert not secret.is_complete

    def test_credentials_secret_layout(self) -> None:
        creds = SiteCredentials(ca_certificate="ca", certificate="cert", key="key")
        assert creds.as_secret_data("tok") == {"otp": "tok", "cacertificate": "ca", "certificate": "cert", "key": "key"}
