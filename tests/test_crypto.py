"""
Tests for the encryption core: keys, cipher and field codec.

Test strategy:
1. Every cipher property is checked on real AES-GCM, no mocks
2. Tamper tests flip every single bit, not a sample
3. Slow key derivation uses a reduced iteration count except where the
   default itself is under test
"""

from decimal import Decimal

import pytest

from datum.crypto import codec
from datum.crypto.cipher import (
    NONCE_LENGTH,
    TAG_LENGTH,
    decrypt,
    decrypt_with_password,
    encrypt,
    encrypt_with_password,
)
from datum.crypto.codec import FieldKind
from datum.crypto.errors import (
    AuthenticationError,
    ErrorKind,
    InvalidKeyError,
    KeyDerivationError,
    ParseError,
)
from datum.crypto.keys import (
    KEY_LENGTH,
    EncryptionKey,
    derive_key,
    derive_key_async,
    generate_random_key,
    generate_salt,
    is_valid_key_material,
)


FAST_ITERATIONS = 1_000


def flip_bit(data: bytes, bit: int) -> bytes:
    flipped = bytearray(data)
    flipped[bit // 8] ^= 1 << (bit % 8)
    return bytes(flipped)


class TestEncryptionKey:
    """Tests for the in-memory key handle."""

    def test_material_round_trip(self, key):
        """Exported material imports back to an equal key."""
        assert EncryptionKey.from_material(key.to_material()) == key

    def test_rejects_wrong_length(self):
        """Keys must be exactly 32 bytes."""
        with pytest.raises(InvalidKeyError):
            EncryptionKey(b"\x00" * 16)

    def test_rejects_invalid_material(self):
        """Non-base64 and short material are both invalid."""
        with pytest.raises(InvalidKeyError):
            EncryptionKey.from_material("not base64!!")
        with pytest.raises(InvalidKeyError):
            EncryptionKey.from_material(codec.to_text(b"short"))
        with pytest.raises(InvalidKeyError):
            EncryptionKey.from_material("")

    def test_is_valid_key_material(self, key):
        """Checking material never raises."""
        assert is_valid_key_material(key.to_material())
        assert not is_valid_key_material("garbage")

    def test_repr_hides_key(self, key):
        """repr() must never show key bytes."""
        assert key.to_material() not in repr(key)
        assert repr(key) == "EncryptionKey(<redacted>)"

    def test_key_is_immutable(self, key):
        """Attributes cannot be reassigned."""
        with pytest.raises(AttributeError):
            key._raw = b"\x00" * KEY_LENGTH

    def test_random_keys_differ(self):
        """Two random keys are never equal."""
        assert generate_random_key() != generate_random_key()


class TestKeyDerivation:
    """Tests for PBKDF2 key derivation."""

    def test_deterministic(self):
        """Same password, salt and iterations give the same key."""
        salt = generate_salt()
        key1, _ = derive_key("correct horse", salt, FAST_ITERATIONS)
        key2, _ = derive_key("correct horse", salt, FAST_ITERATIONS)
        assert key1 == key2

    def test_single_bit_salt_change_changes_key(self):
        """Flipping any one salt bit yields a different key."""
        salt = generate_salt()
        key, _ = derive_key("correct horse", salt, FAST_ITERATIONS)
        for bit in (0, 7, 64, len(salt) * 8 - 1):
            other, _ = derive_key("correct horse", flip_bit(salt, bit), FAST_ITERATIONS)
            assert other != key

    def test_different_password_different_key(self):
        """Password matters."""
        salt = generate_salt()
        key1, _ = derive_key("password-one", salt, FAST_ITERATIONS)
        key2, _ = derive_key("password-two", salt, FAST_ITERATIONS)
        assert key1 != key2

    def test_fresh_salt_when_none_given(self):
        """A salt is generated and returned when not supplied."""
        _, salt1 = derive_key("password", iterations=FAST_ITERATIONS)
        _, salt2 = derive_key("password", iterations=FAST_ITERATIONS)
        assert len(salt1) >= 16
        assert salt1 != salt2

    def test_empty_password_rejected(self):
        """An empty password is a KeyDerivationFailure."""
        with pytest.raises(KeyDerivationError) as exc_info:
            derive_key("", generate_salt(), FAST_ITERATIONS)
        assert exc_info.value.kind == ErrorKind.KEY_DERIVATION_FAILURE

    def test_short_salt_rejected(self):
        """Salts shorter than 16 bytes are refused."""
        with pytest.raises(KeyDerivationError):
            derive_key("password", b"\x01" * 8, FAST_ITERATIONS)

    def test_bad_iterations_rejected(self):
        """Iteration count must be positive."""
        with pytest.raises(KeyDerivationError):
            derive_key("password", generate_salt(), 0)

    def test_short_salt_length_rejected(self):
        """generate_salt enforces the minimum length."""
        with pytest.raises(KeyDerivationError):
            generate_salt(8)

    def test_configured_salt_length(self, monkeypatch):
        """Salt length comes from DATUM_CRYPTO_SALT_LENGTH."""
        monkeypatch.setenv("DATUM_CRYPTO_SALT_LENGTH", "32")
        assert len(generate_salt()) == 32

    @pytest.mark.asyncio
    async def test_async_matches_sync(self):
        """The async variant derives the same key."""
        salt = generate_salt()
        sync_key, _ = derive_key("password", salt, FAST_ITERATIONS)
        async_key, async_salt = await derive_key_async("password", salt, FAST_ITERATIONS)
        assert async_key == sync_key
        assert async_salt == salt


class TestCipher:
    """Tests for AES-256-GCM encrypt/decrypt."""

    def test_round_trip(self, key):
        """decrypt(encrypt(m)) == m."""
        for message in (b"", b"42.50", "coffee with Jo".encode(), b"\x00" * 1000):
            ciphertext, nonce = encrypt(message, key)
            assert decrypt(ciphertext, nonce, key) == message

    def test_output_sizes(self, key):
        """Nonce is 12 bytes; ciphertext carries a 16-byte tag."""
        ciphertext, nonce = encrypt(b"hello", key)
        assert len(nonce) == NONCE_LENGTH
        assert len(ciphertext) == len(b"hello") + TAG_LENGTH

    def test_nonce_uniqueness(self, key):
        """Repeated encryptions of the same plaintext never share a nonce."""
        results = [encrypt(b"same plaintext", key) for _ in range(1000)]
        nonces = {nonce for _, nonce in results}
        ciphertexts = {ciphertext for ciphertext, _ in results}
        assert len(nonces) == 1000
        assert len(ciphertexts) == 1000

    def test_every_ciphertext_bit_flip_detected(self, key):
        """Flipping any single ciphertext bit fails authentication."""
        ciphertext, nonce = encrypt(b"42.50", key)
        for bit in range(len(ciphertext) * 8):
            with pytest.raises(AuthenticationError):
                decrypt(flip_bit(ciphertext, bit), nonce, key)

    def test_every_nonce_bit_flip_detected(self, key):
        """Flipping any single nonce bit fails authentication."""
        ciphertext, nonce = encrypt(b"42.50", key)
        for bit in range(len(nonce) * 8):
            with pytest.raises(AuthenticationError):
                decrypt(ciphertext, flip_bit(nonce, bit), key)

    def test_wrong_key_rejected(self):
        """A different key never decrypts, across many key pairs."""
        for _ in range(128):
            key_a, key_b = generate_random_key(), generate_random_key()
            ciphertext, nonce = encrypt(b"secret amount", key_a)
            with pytest.raises(AuthenticationError) as exc_info:
                decrypt(ciphertext, nonce, key_b)
            assert exc_info.value.kind == ErrorKind.AUTHENTICATION_FAILURE

    def test_malformed_nonce_rejected(self, key):
        """Wrong nonce length is an AuthenticationFailure, not a crash."""
        ciphertext, nonce = encrypt(b"data", key)
        with pytest.raises(AuthenticationError):
            decrypt(ciphertext, nonce[:8], key)

    def test_truncated_ciphertext_rejected(self, key):
        """Ciphertext shorter than the tag cannot verify."""
        ciphertext, nonce = encrypt(b"data", key)
        with pytest.raises(AuthenticationError):
            decrypt(ciphertext[:10], nonce, key)


class TestPasswordEncryption:
    """Tests for one-off password encryption."""

    @pytest.fixture(autouse=True)
    def fast_kdf(self, monkeypatch):
        monkeypatch.setenv("DATUM_CRYPTO_KDF_ITERATIONS", "10000")

    def test_round_trip_carries_salt(self):
        """The field holds its own salt and decrypts with the password."""
        field = encrypt_with_password(b"backup blob", "hunter2hunter2")
        assert field.salt is not None
        assert decrypt_with_password(field, "hunter2hunter2") == b"backup blob"

    def test_fresh_salt_per_call(self):
        """Two calls never share a salt."""
        first = encrypt_with_password(b"x", "hunter2hunter2")
        second = encrypt_with_password(b"x", "hunter2hunter2")
        assert first.salt != second.salt

    def test_wrong_password_rejected(self):
        """Wrong password is an AuthenticationFailure."""
        field = encrypt_with_password(b"backup blob", "hunter2hunter2")
        with pytest.raises(AuthenticationError):
            decrypt_with_password(field, "hunter3hunter3")

    def test_missing_salt_rejected(self):
        """A field without a salt was not password-encrypted."""
        field = encrypt_with_password(b"x", "hunter2hunter2").model_copy(update={"salt": None})
        with pytest.raises(AuthenticationError):
            decrypt_with_password(field, "hunter2hunter2")


class TestFieldCodec:
    """Tests for canonical value encoding."""

    def test_decimal_keeps_scale(self):
        """42.50 encodes as its exact text and keeps two decimal places."""
        assert codec.encode(Decimal("42.50"), FieldKind.DECIMAL) == b"42.50"
        decoded = codec.decode(b"42.50", FieldKind.DECIMAL)
        assert decoded == Decimal("42.50")
        assert str(decoded) == "42.50"

    def test_decimal_never_uses_exponent(self):
        """Exponent forms are written out in full."""
        assert codec.encode(Decimal("1E+3"), FieldKind.DECIMAL) == b"1000"
        assert codec.encode(Decimal("0.0000001"), FieldKind.DECIMAL) == b"0.0000001"

    def test_int_accepted_as_decimal(self):
        """Plain ints are exact and accepted."""
        assert codec.encode(12, FieldKind.DECIMAL) == b"12"

    def test_rejects_float_and_bool(self):
        """Binary floats and bools are programming errors."""
        with pytest.raises(TypeError):
            codec.encode(42.5, FieldKind.DECIMAL)
        with pytest.raises(TypeError):
            codec.encode(True, FieldKind.DECIMAL)

    def test_rejects_non_finite(self):
        """NaN and infinity are not amounts."""
        with pytest.raises(ValueError):
            codec.encode(Decimal("NaN"), FieldKind.DECIMAL)
        with pytest.raises(ParseError):
            codec.decode(b"Infinity", FieldKind.DECIMAL)

    def test_decode_rejects_garbage(self):
        """Anything outside the decimal grammar is a ParseFailure."""
        for data in (b"abc", b"", b" 1.00", b"1_000", b"\xff\xfe"):
            with pytest.raises(ParseError) as exc_info:
                codec.decode(data, FieldKind.DECIMAL)
            assert exc_info.value.kind == ErrorKind.PARSE_FAILURE

    def test_text_round_trip(self):
        """UTF-8 text survives unchanged."""
        for text in ("coffee with Jo", "", "café ☕ 東京"):
            assert codec.decode(codec.encode(text, FieldKind.TEXT), FieldKind.TEXT) == text

    def test_text_rejects_invalid_utf8(self):
        """Invalid UTF-8 is a ParseFailure."""
        with pytest.raises(ParseError):
            codec.decode(b"\xc3\x28", FieldKind.TEXT)

    def test_text_rejects_non_str(self):
        """Only str is text."""
        with pytest.raises(TypeError):
            codec.encode(b"bytes", FieldKind.TEXT)

    def test_base64_boundary(self):
        """Storage text is standard base64 and invalid text is rejected."""
        assert codec.to_text(b"\xfb\xff") == "+/8="
        assert codec.from_text("+/8=") == b"\xfb\xff"
        with pytest.raises(ParseError):
            codec.from_text("not*base64")
