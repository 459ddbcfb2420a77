# tests/core/security/test_fingerprint.py
"""Tests for material and secret fingerprints."""

from hypothesis import given
from hypothesis import strategies as st

from siteagent.core.security.fingerprint import material_fingerprint, secret_fingerprint


class TestMaterialFingerprint:
    def test_stable(self) -> None:
        assert material_fingerprint(["ca", "cert", "key"]) == material_fingerprint([b"ca", b"cert", b"key"])

    def test_part_boundaries_matter(self) -> None:
        assert material_fingerprint(["ab", "c"]) != material_fingerprint(["a", "bc"])

    @given(parts=st.lists(st.text(), min_size=1, max_size=4), extra=st.text(min_size=1))
    def test_any_change_changes_fingerprint(self, parts: list[str], extra: str) -> None:
        changed = [*parts[:-1], parts[-1] + extra]
        assert material_fingerprint(parts) != material_fingerprint(changed)


class TestSecretFingerprint:
    def test_short_and_does_not_contain_secret(self) -> None:
        fp = secret_fingerprint("super-secret-token")
        assert len(fp) == 12
        assert "secret" not in fp

    def test_empty(self) -> None:
        assert secret_fingerprint("") == ""
