import base64

import pytest

from socialsync.config import settings
from socialsync.db import token_crypto
from socialsync.errors import ConfigurationError, DecryptionError


def test_round_trip_unicode():
    plain = "ig-token-ünïcode-✓"
    cipher = token_crypto.encrypt(plain)
    assert cipher != plain
    assert token_crypto.decrypt(cipher) == plain


def test_same_plaintext_gets_fresh_nonce():
    assert token_crypto.encrypt("same") != token_crypto.encrypt("same")


def test_wire_layout_is_nonce_ciphertext_tag():
    raw = base64.b64decode(token_crypto.encrypt("abc"))
    assert len(raw) == token_crypto.NONCE_LENGTH + 3 + token_crypto.TAG_LENGTH


def test_single_bit_flip_is_detected():
    raw = bytearray(base64.b64decode(token_crypto.encrypt("secret-value")))
    raw[token_crypto.NONCE_LENGTH] ^= 0x01
    with pytest.raises(DecryptionError):
        token_crypto.decrypt(base64.b64encode(bytes(raw)).decode())


def test_short_or_garbage_input():
    with pytest.raises(DecryptionError):
        token_crypto.decrypt(base64.b64encode(b"x" * 20).decode())
    with pytest.raises(DecryptionError):
        token_crypto.decrypt("not base64 at all!!")


def test_wrong_key_fails_as_integrity_error(monkeypatch):
    cipher = token_crypto.encrypt("secret")
    monkeypatch.setattr(settings, "encryption_key", base64.b64encode(b"z" * 32).decode())
    with pytest.raises(DecryptionError):
        token_crypto.decrypt(cipher)


@pytest.mark.parametrize("key", ["", "%%%not-base64%%%", base64.b64encode(b"short").decode()])
def test_bad_key_is_configuration_error(monkeypatch, key):
    monkeypatch.setattr(settings, "encryption_key", key)
    with pytest.raises(ConfigurationError):
        token_crypto.encrypt("anything")


def test_encrypt_optional():
    assert token_crypto.encrypt_optional(None) is None
    assert token_crypto.encrypt_optional("") is None
    assert token_crypto.decrypt(token_crypto.encrypt_optional("r")) == "r"


def test_mask_secret():
    assert token_crypto.mask_secret("abcd1234") == "****1234"
    assert token_crypto.mask_secret("ab") == "****"
    assert token_crypto.mask_secret("abcd") == "****"
    assert token_crypto.mask_secret("abcde") == "****bcde"
