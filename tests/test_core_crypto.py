"""
Unit tests for core cryptographic primitives.

Tests:
- Randomness sources
- Key pair generation and ECDH
- HKDF key derivation
- AES-256-GCM
- ECDSA r || s signatures
"""

import os

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from ecies_study.config import CURVE_ORDERS, NONCE_SIZE, SIGNATURE_SIZE, TAG_SIZE
from ecies_study.core_crypto import (
    AESGCMCipher,
    DeterministicRandomSource,
    ECDSASigner,
    KeyPair,
    SystemRandomSource,
    decrypt,
    encode_public_key,
    derive_key,
    diffie_hellman,
    encrypt,
    generate_keypair,
    generate_nonce,
    public_key_from_bytes,
    require_valid_signature,
    sign,
    verify,
)
from ecies_study.core_crypto.random_source import RandomSource
from ecies_study.errors import (
    AuthenticationFailure,
    EncryptionFailure,
    KdfExpansionError,
    MalformedSignature,
    SignatureVerificationFailed,
)


class _ScriptedRandom(RandomSource):
    """Returns queued chunks, then falls back to fixed bytes."""

    def __init__(self, chunks):
        self._chunks = list(chunks)

    def token_bytes(self, n):
        if self._chunks:
            return self._chunks.pop(0)
        return b"\x01" * n


class TestRandomSources:
    """Tests for randomness capabilities."""

    def test_system_source_length(self):
        """System source returns the requested number of bytes."""
        assert len(SystemRandomSource().token_bytes(12)) == 12

    def test_deterministic_source_reproducible(self):
        """Same seed gives the same stream."""
        a = DeterministicRandomSource(b"seed")
        b = DeterministicRandomSource(b"seed")
        assert a.token_bytes(50) == b.token_bytes(50)

    def test_deterministic_source_advances(self):
        """Consecutive draws differ."""
        rng = DeterministicRandomSource(b"seed")
        assert rng.token_bytes(32) != rng.token_bytes(32)

    def test_different_seeds_differ(self):
        assert DeterministicRandomSource(b"a").token_bytes(32) != \
            DeterministicRandomSource(b"b").token_bytes(32)

    def test_negative_length_rejected(self):
        with pytest.raises(ValueError):
            DeterministicRandomSource(b"x").token_bytes(-1)


class TestKeyPair:
    """Tests for the Curve Key Provider."""

    def test_generate_keypair(self):
        """Key pair generation should work."""
        kp = generate_keypair()
        assert kp.secret_key is not None
        assert kp.public_key is not None
        assert kp.curve_name == "secp256k1"

    def test_public_bytes_compressed(self):
        """Public key is a 33-byte SEC1 compressed point."""
        data = KeyPair.generate().public_bytes()
        assert len(data) == 33
        assert data[0] in (0x02, 0x03)

    def test_public_key_derived_from_secret(self):
        """Public key is always secret * G."""
        kp = generate_keypair()
        rebuilt = KeyPair.from_secret_scalar(kp.secret_scalar)
        assert rebuilt.public_bytes() == kp.public_bytes()

    def test_deterministic_generation(self):
        """Same random stream gives the same key pair."""
        kp1 = generate_keypair(DeterministicRandomSource(b"alice"))
        kp2 = generate_keypair(DeterministicRandomSource(b"alice"))
        assert kp1.public_bytes() == kp2.public_bytes()

    def test_zero_scalar_never_used(self):
        """A zero candidate is rejected and sampling continues."""
        order = CURVE_ORDERS["secp256k1"]
        rng = _ScriptedRandom([
            b"\x00" * 32,
            order.to_bytes(32, "big"),
            (5).to_bytes(32, "big"),
        ])
        kp = generate_keypair(rng)
        assert kp.secret_scalar == 5

    def test_scalar_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            KeyPair.from_secret_scalar(0)
        with pytest.raises(ValueError):
            KeyPair.from_secret_scalar(CURVE_ORDERS["secp256k1"])

    def test_repr_hides_secret(self):
        kp = KeyPair.generate()
        assert str(kp.secret_scalar) not in repr(kp)
        assert kp.fingerprint() in repr(kp)

    def test_p256_supported(self):
        kp = generate_keypair(curve_name="secp256r1")
        assert kp.curve_name == "secp256r1"
        assert len(kp.public_bytes()) == 33

    def test_public_key_round_trip(self):
        kp = KeyPair.generate()
        parsed = public_key_from_bytes(kp.public_bytes())
        assert encode_public_key(parsed) == kp.public_bytes()


class TestDiffieHellman:
    """Tests for ECDH key agreement."""

    def test_shared_secret_symmetry(self):
        """Both parties derive the same shared secret."""
        alice = generate_keypair()
        bob = generate_keypair()
        assert diffie_hellman(alice, bob.public_key) == diffie_hellman(bob, alice.public_key)

    def test_shared_secret_from_bytes(self):
        """Peer key may be given as SEC1 bytes."""
        alice = generate_keypair()
        bob = generate_keypair()
        assert diffie_hellman(alice, bob.public_bytes()) == \
            diffie_hellman(bob.secret_key, alice.public_bytes())

    def test_shared_secret_size(self):
        alice = generate_keypair()
        bob = generate_keypair()
        assert len(diffie_hellman(alice, bob.public_key)) == 32

    def test_different_keypairs_different_secrets(self):
        """Different peers produce different secrets."""
        alice = generate_keypair()
        bob1 = generate_keypair()
        bob2 = generate_keypair()
        assert diffie_hellman(alice, bob1.public_key) != diffie_hellman(alice, bob2.public_key)

    def test_known_scalars(self):
        """1*G and 2*G agree the same way as any other pair."""
        one = KeyPair.from_secret_scalar(1)
        two = KeyPair.from_secret_scalar(2)
        assert diffie_hellman(one, two.public_key) == diffie_hellman(two, one.public_key)


class TestHKDF:
    """Tests for HKDF key derivation."""

    def test_derive_key_length(self):
        """HKDF should derive key of correct length."""
        assert len(derive_key(os.urandom(32))) == 32
        assert len(derive_key(os.urandom(32), 64)) == 64

    def test_deterministic(self):
        """HKDF should be deterministic with same inputs."""
        secret = b"fixed_secret_for_test"
        assert derive_key(secret, 32) == derive_key(secret, 32)

    def test_different_secrets_different_keys(self):
        assert derive_key(b"a" * 32) != derive_key(b"b" * 32)

    def test_info_changes_key(self):
        secret = os.urandom(32)
        assert derive_key(secret, info=b"one") != derive_key(secret, info=b"two")

    def test_rfc5869_case3(self):
        """RFC 5869 test case 3: no salt, no info."""
        okm = derive_key(b"\x0b" * 22, 42)
        assert okm.hex() == (
            "8da4e775a563c18f715f802a063c5a31b8a11f5c5ee1879ec3454e5f3c738d2d"
            "9d201395faa4b61a96c8"
        )

    def test_maximum_length_allowed(self):
        assert len(derive_key(b"secret", 255 * 32)) == 255 * 32

    def test_too_long_rejected(self):
        """Expansion beyond 255 * hash length must fail, not truncate."""
        with pytest.raises(KdfExpansionError):
            derive_key(b"secret", 255 * 32 + 1)

    def test_zero_length_rejected(self):
        with pytest.raises(KdfExpansionError):
            derive_key(b"secret", 0)


class TestAESGCM:
    """Tests for AES-GCM encryption."""

    def test_encrypt_decrypt(self):
        """Encryption/decryption roundtrip should work."""
        key = os.urandom(32)
        nonce = generate_nonce()
        ciphertext = encrypt(key, nonce, b"Hello, secure world!")
        assert decrypt(key, nonce, ciphertext) == b"Hello, secure world!"

    def test_tag_appended(self):
        """Ciphertext carries a 16-byte tag."""
        key = os.urandom(32)
        ciphertext = encrypt(key, generate_nonce(), b"milady")
        assert len(ciphertext) == len(b"milady") + TAG_SIZE

    def test_nonce_size(self):
        assert len(generate_nonce()) == NONCE_SIZE

    def test_empty_plaintext(self):
        key = os.urandom(32)
        nonce = generate_nonce()
        assert decrypt(key, nonce, encrypt(key, nonce, b"")) == b""

    def test_wrong_key_rejected(self):
        """Wrong key should fail decryption."""
        nonce = generate_nonce()
        ciphertext = encrypt(os.urandom(32), nonce, b"message")
        with pytest.raises(AuthenticationFailure):
            decrypt(os.urandom(32), nonce, ciphertext)

    def test_flipped_key_bit_rejected(self):
        key = os.urandom(32)
        nonce = generate_nonce()
        ciphertext = encrypt(key, nonce, b"message")
        bad_key = bytes([key[0] ^ 0x01]) + key[1:]
        with pytest.raises(AuthenticationFailure):
            decrypt(bad_key, nonce, ciphertext)

    def test_wrong_nonce_rejected(self):
        """Wrong nonce should fail decryption."""
        key = os.urandom(32)
        nonce = generate_nonce()
        ciphertext = encrypt(key, nonce, b"message")
        bad_nonce = bytes([nonce[0] ^ 0x80]) + nonce[1:]
        with pytest.raises(AuthenticationFailure):
            decrypt(key, bad_nonce, ciphertext)

    def test_modified_ciphertext_rejected(self):
        """Modified ciphertext should fail decryption."""
        key = os.urandom(32)
        nonce = generate_nonce()
        ciphertext = bytearray(encrypt(key, nonce, b"secret message"))
        ciphertext[0] ^= 0xFF
        with pytest.raises(AuthenticationFailure):
            decrypt(key, nonce, bytes(ciphertext))

    def test_truncated_ciphertext_rejected(self):
        """Truncated ciphertext should fail decryption."""
        key = os.urandom(32)
        nonce = generate_nonce()
        ciphertext = encrypt(key, nonce, b"secret message")
        with pytest.raises(AuthenticationFailure):
            decrypt(key, nonce, ciphertext[:-5])
        with pytest.raises(AuthenticationFailure):
            decrypt(key, nonce, ciphertext[:4])

    def test_bad_sizes_on_encrypt(self):
        """Wrong key or nonce size is a contract violation."""
        with pytest.raises(EncryptionFailure):
            encrypt(os.urandom(16), generate_nonce(), b"x")
        with pytest.raises(EncryptionFailure):
            encrypt(os.urandom(32), os.urandom(8), b"x")

    def test_cipher_nonces_unique(self):
        """Each encryption should use a different nonce."""
        cipher = AESGCMCipher(os.urandom(32))
        nonce1, ct1 = cipher.encrypt(b"message")
        nonce2, ct2 = cipher.encrypt(b"message")
        assert nonce1 != nonce2
        assert ct1 != ct2
        assert cipher.decrypt(nonce1, ct1) == b"message"

    def test_cipher_skips_repeated_nonce(self):
        """A repeated nonce from the source is never used twice."""
        first = b"\x00" * NONCE_SIZE
        rng = _ScriptedRandom([first, first, b"\x02" * NONCE_SIZE])
        cipher = AESGCMCipher(os.urandom(32), rng=rng)
        nonce1, _ = cipher.encrypt(b"a")
        nonce2, _ = cipher.encrypt(b"b")
        assert nonce1 == first
        assert nonce2 == b"\x02" * NONCE_SIZE

    def test_cipher_message_limit(self):
        """A cipher refuses to encrypt past its per-key message limit."""
        cipher = AESGCMCipher(os.urandom(32), max_messages=2)
        nonce, ciphertext = cipher.encrypt(b"one")
        cipher.encrypt(b"two")
        with pytest.raises(EncryptionFailure):
            cipher.encrypt(b"three")
        assert cipher.decrypt(nonce, ciphertext) == b"one"

    def test_cipher_limit_must_be_positive(self):
        with pytest.raises(ValueError):
            AESGCMCipher(os.urandom(32), max_messages=0)

    def test_aad_verified(self):
        """Associated data should be verified."""
        key = os.urandom(32)
        nonce = generate_nonce()
        ciphertext = encrypt(key, nonce, b"message", b"correct_aad")
        assert decrypt(key, nonce, ciphertext, b"correct_aad") == b"message"
        with pytest.raises(AuthenticationFailure):
            decrypt(key, nonce, ciphertext, b"wrong_aad")


class TestECDSA:
    """Tests for ECDSA signatures."""

    def test_sign_verify(self):
        """Signature should verify correctly."""
        kp = KeyPair.generate()
        signature = sign(kp, b"Message to sign")
        assert len(signature) == SIGNATURE_SIZE
        assert verify(kp.public_key, b"Message to sign", signature)

    def test_verify_with_bytes_key(self):
        kp = KeyPair.generate()
        signature = sign(kp, b"data")
        assert verify(kp.public_bytes(), b"data", signature)

    def test_wrong_message_rejected(self):
        """Signature should not verify with wrong message."""
        kp = KeyPair.generate()
        signature = sign(kp, b"original message")
        assert not verify(kp.public_key, b"different message", signature)

    def test_tampered_signature_rejected(self):
        """Tampered signature should not verify."""
        kp = KeyPair.generate()
        signature = bytearray(sign(kp, b"test message"))
        signature[40] ^= 0x01
        assert not verify(kp.public_key, b"test message", bytes(signature))

    def test_wrong_public_key_rejected(self):
        """Signature should not verify with wrong public key."""
        kp1 = KeyPair.generate()
        kp2 = KeyPair.generate()
        assert not verify(kp2.public_key, b"test", sign(kp1, b"test"))

    def test_wrong_length_malformed(self):
        kp = KeyPair.generate()
        signature = sign(kp, b"test")
        with pytest.raises(MalformedSignature):
            verify(kp.public_key, b"test", signature[:-1])
        with pytest.raises(MalformedSignature):
            verify(kp.public_key, b"test", signature + b"\x00")

    def test_zero_components_malformed(self):
        kp = KeyPair.generate()
        with pytest.raises(MalformedSignature):
            verify(kp.public_key, b"test", b"\x00" * SIGNATURE_SIZE)

    def test_out_of_range_component_malformed(self):
        kp = KeyPair.generate()
        with pytest.raises(MalformedSignature):
            verify(kp.public_key, b"test", b"\xff" * SIGNATURE_SIZE)

    def test_require_valid_signature_raises(self):
        kp = KeyPair.generate()
        signature = sign(kp, b"one")
        require_valid_signature(kp.public_key, b"one", signature)
        with pytest.raises(SignatureVerificationFailed):
            require_valid_signature(kp.public_key, b"two", signature)

    def test_signer_class(self):
        kp = KeyPair.generate()
        signer = ECDSASigner(kp)
        signature = signer.sign(b"payload")
        assert signer.verify_with_key(b"payload", signature)
        assert not signer.verify_with_key(b"other", signature)

    def test_p256_signatures(self):
        kp = generate_keypair(curve_name="secp256r1")
        signature = sign(kp, b"data")
        assert verify(kp.public_key, b"data", signature)
        assert isinstance(kp.public_key.curve, ec.SECP256R1)
