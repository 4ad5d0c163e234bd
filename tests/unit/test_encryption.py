"""
Tests for Field Encryption
==========================
"""

import pytest

from warden.core.encryption import FieldEncryptor
from warden.engine.field_access import apply_mask
from warden.engine.models import DataMaskingRule, MaskType


@pytest.fixture
def encryptor():
    # Low iteration count keeps key derivation fast
    return FieldEncryptor(master_key="test-master-key", iterations=1000)


class TestFieldEncryptor:
    """Tests for FieldEncryptor."""

    def test_round_trip(self, encryptor):
        token = encryptor.encrypt_text("123-45-6789")
        assert token != "123-45-6789"
        assert encryptor.decrypt_text(token) == "123-45-6789"

    def test_salt_per_value(self, encryptor):
        assert encryptor.encrypt_text("same") != encryptor.encrypt_text("same")

    def test_empty_plaintext_rejected(self, encryptor):
        with pytest.raises(ValueError):
            encryptor.encrypt("")

    def test_wrong_key(self, encryptor):
        token = encryptor.encrypt_text("secret")
        other = FieldEncryptor(master_key="another-key", iterations=1000)
        with pytest.raises(ValueError):
            other.decrypt_text(token)

    def test_truncated_data(self, encryptor):
        with pytest.raises(ValueError):
            encryptor.decrypt(b"short")

    def test_encrypt_mask(self, encryptor):
        token = apply_mask("555-0100", DataMaskingRule(MaskType.ENCRYPT), encryptor)
        assert encryptor.decrypt_text(token) == "555-0100"
