"""Cryptographic primitives: PBKDF2 key derivation and AES-256-GCM envelopes."""
from __future__ import annotations
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Union
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.backends import default_backend
from config.settings import (
	DEFAULT_ITERATIONS, SALT_LENGTH, KEY_LENGTH, IV_LENGTH, AUTH_TAG_LENGTH
)

class CryptoError(Exception):
	pass

class InvalidParameter(CryptoError):
	pass

class DecryptionError(CryptoError):
	pass


class MasterKey:
	"""Symmetric key held in a mutable buffer so it can be overwritten on lock."""

	__slots__ = ('_buf',)

	def __init__(self, material: bytes):
		if len(material) != KEY_LENGTH:
			raise InvalidParameter(f"Key must be {KEY_LENGTH} bytes")
		self._buf = bytearray(material)

	@property
	def wiped(self) -> bool:
		return not self._buf

	def material(self) -> bytes:
		if self.wiped:
			raise InvalidParameter("Key has been wiped")
		return bytes(self._buf)

	def wipe(self) -> None:
		for i in range(len(self._buf)):
			self._buf[i] = 0
		self._buf = bytearray()

	def __eq__(self, other: object) -> bool:
		if not isinstance(other, MasterKey):
			return NotImplemented
		return secrets.compare_digest(bytes(self._buf), bytes(other._buf))

	__hash__ = None  # type: ignore[assignment]

	def __repr__(self) -> str:
		return '<MasterKey wiped>' if self.wiped else '<MasterKey ***>'


@dataclass(frozen=True)
class EncryptedEnvelope:
	iv: bytes
	ciphertext: bytes

	def to_record(self) -> Dict[str, Any]:
		# numeric byte arrays, not base64
		return {'iv': list(self.iv), 'ciphertext': list(self.ciphertext)}

	@classmethod
	def from_record(cls, raw: Dict[str, Any]) -> 'EncryptedEnvelope':
		try:
			return cls(iv=_as_bytes(raw['iv']), ciphertext=_as_bytes(raw['ciphertext']))
		except (KeyError, TypeError, ValueError) as e:
			raise DecryptionError('Malformed envelope') from e


KeyLike = Union[MasterKey, bytes]

def _as_bytes(value: Union[bytes, bytearray, Iterable[int]]) -> bytes:
	return bytes(value)

def _key_bytes(key: KeyLike) -> bytes:
	raw = key.material() if isinstance(key, MasterKey) else bytes(key)
	if len(raw) != KEY_LENGTH:
		raise InvalidParameter(f"Key must be {KEY_LENGTH} bytes")
	return raw


class VaultCrypto:
	def __init__(self, iterations: int = DEFAULT_ITERATIONS):
		self._backend = default_backend()
		self.iterations = iterations

	def generate_salt(self) -> bytes:
		return secrets.token_bytes(SALT_LENGTH)

	def derive_key(self, password: str, salt: bytes, iterations: int | None = None) -> MasterKey:
		"""Derive a 256-bit AES key from a password with PBKDF2-HMAC-SHA256.

		The same password, salt and iteration count always yield the same key,
		which is what lets unlock re-derive it instead of storing it.
		"""
		iterations = self.iterations if iterations is None else iterations
		if not salt:
			raise InvalidParameter("Salt empty")
		if iterations < 1:
			raise InvalidParameter("Iterations must be positive")
		kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_LENGTH, salt=bytes(salt), iterations=iterations, backend=self._backend)
		return MasterKey(kdf.derive(password.encode('utf-8')))

	def encrypt_data(self, key: KeyLike, plaintext: str) -> EncryptedEnvelope:
		raw = _key_bytes(key)
		iv = secrets.token_bytes(IV_LENGTH)
		enc = Cipher(algorithms.AES(raw), modes.GCM(iv), backend=self._backend).encryptor()
		ct = enc.update(plaintext.encode('utf-8')) + enc.finalize()
		return EncryptedEnvelope(iv=iv, ciphertext=ct + enc.tag)

	def decrypt_data(self, key: KeyLike, iv: bytes | Iterable[int], ciphertext: bytes | Iterable[int]) -> str:
		raw = _key_bytes(key)
		try:
			iv = _as_bytes(iv); blob = _as_bytes(ciphertext)
		except (TypeError, ValueError) as e:
			raise DecryptionError("Decryption failed") from e
		if len(iv) != IV_LENGTH or len(blob) < AUTH_TAG_LENGTH:
			raise DecryptionError("Decryption failed")
		ct = blob[:-AUTH_TAG_LENGTH]; tag = blob[-AUTH_TAG_LENGTH:]
		dec = Cipher(algorithms.AES(raw), modes.GCM(iv, tag), backend=self._backend).decryptor()
		try:
			return (dec.update(ct) + dec.finalize()).decode('utf-8')
		except (InvalidTag, UnicodeDecodeError) as e:
			# same message for wrong key and tampered data
			raise DecryptionError("Decryption failed") from e

	def decrypt_envelope(self, key: KeyLike, envelope: EncryptedEnvelope) -> str:
		return self.decrypt_data(key, envelope.iv, envelope.ciphertext)
