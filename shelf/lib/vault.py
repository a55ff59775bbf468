"""Vault manager: lock state, master key ownership and credential lifecycle.

Storage layout
- settings table, `vault-salt`: plaintext salt and the PBKDF2 iteration count
- vault table, `vault-metadata`: encrypted VaultMetadata, the unlock check
- vault table, one record per credential: `{id, url, username, data}` where
  `data` is the encrypted full credential

Metadata presence is the "initialized" predicate, so it is always written
after the salt.
"""
from __future__ import annotations
import asyncio, json, logging, secrets, time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from config.settings import (
	DEFAULT_ITERATIONS, VAULT_METADATA_ID, SALT_SETTING_ID, METADATA_VERSION
)
from .crypto import VaultCrypto, MasterKey, EncryptedEnvelope, DecryptionError
from .preferences import load_user_settings
from .store import StorageError

log = logging.getLogger(__name__)

class VaultError(Exception): ...
class NotInitialized(VaultError): ...
class InitializationError(VaultError): ...
class WrongPassword(VaultError): ...
class VaultLockedError(VaultError): ...
class RotationError(VaultError): ...


def _now() -> str:
	return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')

def new_credential_id() -> str:
	return f"cred-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


@dataclass
class Credential:
	id: str = ''
	url: str = ''
	username: str = ''
	password: str = ''
	name: str = ''
	notes: str = ''
	created_at: str = ''
	updated_at: str = ''
	extra: Dict[str, Any] = field(default_factory=dict)

	_WIRE = {'id': 'id', 'url': 'url', 'username': 'username', 'password': 'password',
		'name': 'name', 'notes': 'notes', 'created_at': 'createdAt', 'updated_at': 'updatedAt'}

	@classmethod
	def from_dict(cls, raw: Dict[str, Any]) -> 'Credential':
		known = {}; extra = {}
		wire_to_attr = {v: k for k, v in cls._WIRE.items()}
		for k, v in raw.items():
			attr = wire_to_attr.get(k, k if k in cls._WIRE else None)
			if attr is None:
				extra[k] = v
			else:
				known[attr] = '' if v is None else v
		return cls(**known, extra=extra)

	def to_dict(self) -> Dict[str, Any]:
		out = dict(self.extra)
		out.update({wire: getattr(self, attr) for attr, wire in self._WIRE.items()})
		return out


@dataclass
class VaultMetadata:
	created: str
	last_modified: str
	last_accessed: str = ''
	version: int = METADATA_VERSION

	@classmethod
	def from_dict(cls, raw: Dict[str, Any]) -> 'VaultMetadata':
		return cls(created=raw['created'], last_modified=raw.get('lastModified', raw['created']),
			last_accessed=raw.get('lastAccessed', ''), version=int(raw.get('version', METADATA_VERSION)))

	def to_dict(self) -> Dict[str, Any]:
		return {'id': VAULT_METADATA_ID, 'created': self.created, 'lastModified': self.last_modified,
			'lastAccessed': self.last_accessed, 'version': self.version}


def _salt_record(salt: bytes, iterations: int) -> Dict[str, Any]:
	return {'id': SALT_SETTING_ID, 'salt': list(salt), 'iterations': iterations}

def _parse_salt_record(rec: Dict[str, Any]) -> Tuple[bytes, int]:
	try:
		return bytes(rec['salt']), int(rec.get('iterations', DEFAULT_ITERATIONS))
	except (KeyError, TypeError, ValueError) as e:
		raise NotInitialized('Vault salt is corrupt') from e

def _url_matches(stored: str, query: str) -> bool:
	"""Loose match: equal, or either URL contains the other.

	Deliberately tolerant of scheme, path and subdomain differences so that a
	login page URL finds the credential saved for the bare site.
	"""
	return isinstance(stored, str) and bool(stored) and (stored == query or stored in query or query in stored)


class VaultManager:
	"""Owns one vault's master key and lock state.

	Every operation touching the key runs under one asyncio.Lock, so a lock
	request or auto-lock cannot land in the middle of a multi-step operation
	such as a password change.
	"""

	def __init__(self, store, settings_store, *, iterations: int | None = None):
		self.store = store
		self.settings = settings_store
		self.crypto = VaultCrypto()
		self._iterations = iterations
		self._key: Optional[MasterKey] = None
		self._locked = True
		self._mutex = asyncio.Lock()
		self._auto_lock: Optional[asyncio.TimerHandle] = None
		self._auto_lock_minutes: float = 0
		self._requested_auto_lock: float | None = None
		self._arm_generation = 0
		self._pending: set = set()

	# --- state ---

	def is_locked(self) -> bool:
		return self._locked or self._key is None

	async def is_vault_initialized(self) -> bool:
		return await self.store.get(VAULT_METADATA_ID) is not None

	async def initialize_vault(self, password: str) -> bool:
		if not password:
			raise InitializationError('Master password cannot be empty')
		async with self._mutex:
			if await self.store.get(VAULT_METADATA_ID) is not None:
				raise InitializationError('Vault exists')
			iterations = await self._iteration_count()
			salt = self.crypto.generate_salt()
			key = await asyncio.to_thread(self.crypto.derive_key, password, salt, iterations)
			now = _now()
			meta = VaultMetadata(created=now, last_modified=now, last_accessed=now)
			try:
				await self.settings.save_settings(_salt_record(salt, iterations))
				await self.store.put(VAULT_METADATA_ID, self._seal_metadata(key, meta))
			except StorageError as e:
				key.wipe()
				log.error('Failed to create vault: %s', e)
				raise InitializationError(f'Failed to create vault: {e}') from e
			self._set_key(key)
			log.info('Vault initialized (%d iterations)', iterations)
			return True

	async def unlock_vault(self, password: str, auto_lock_minutes: float | None = None) -> bool:
		"""Unlock with the master password.

		Returns False for a wrong password or a tampered metadata record; the
		two are deliberately indistinguishable. `auto_lock_minutes=None` takes
		the value from the user settings, 0 disables auto-lock.
		"""
		async with self._mutex:
			return await self._unlock(password, auto_lock_minutes)

	async def lock_vault(self) -> None:
		async with self._mutex:
			self._wipe()

	async def get_metadata(self) -> VaultMetadata:
		async with self._mutex:
			key = self._require_key()
			meta = self._open_metadata(key, await self.store.get(VAULT_METADATA_ID) or {})
			if meta is None:
				raise DecryptionError('Decryption failed')
			return meta

	def record_activity(self) -> None:
		"""Push the auto-lock deadline back by the configured interval."""
		if self.is_locked() or not self._auto_lock_minutes:
			return
		self._arm_auto_lock(self._auto_lock_minutes)

	# --- credentials ---

	async def add_credential(self, record: Credential | Dict[str, Any]) -> str:
		async with self._mutex:
			key = self._require_key()
			raw = record.to_dict() if isinstance(record, Credential) else record
			cred = Credential.from_dict(raw)
			if not cred.id:
				cred.id = new_credential_id()
			if cred.id == VAULT_METADATA_ID:
				raise VaultError(f'Reserved id: {cred.id}')
			cred.created_at = cred.updated_at = _now()
			await self.store.put(cred.id, self._seal_credential(key, cred))
			log.debug('Credential %s added', cred.id)
			return cred.id

	async def update_credential(self, credential_id: str, patch: Dict[str, Any]) -> bool:
		async with self._mutex:
			key = self._require_key()
			if credential_id == VAULT_METADATA_ID:
				return False
			item = await self.store.get(credential_id)
			if item is None:
				return False
			current = self._open_credential(key, item)
			merged = {**current.to_dict(), **patch, 'id': credential_id, 'updatedAt': _now()}
			cred = Credential.from_dict(merged)
			await self.store.put(credential_id, self._seal_credential(key, cred))
			log.debug('Credential %s updated', credential_id)
			return True

	async def get_credential(self, credential_id: str) -> Optional[Credential]:
		async with self._mutex:
			key = self._require_key()
			if credential_id == VAULT_METADATA_ID:
				return None
			item = await self.store.get(credential_id)
			if item is None:
				return None
			return self._open_credential(key, item)

	async def get_all_credentials(self) -> List[Credential]:
		async with self._mutex:
			key = self._require_key()
			return await self._get_all(key)

	async def delete_credential(self, credential_id: str) -> bool:
		async with self._mutex:
			self._require_key()
			if credential_id == VAULT_METADATA_ID:
				return False
			try:
				await self.store.delete(credential_id)
			except StorageError as e:
				log.error('Error deleting credential %s: %s', credential_id, e)
				return False
			return True

	async def find_credentials_by_url(self, url: str) -> List[Credential]:
		async with self._mutex:
			key = self._require_key()
			if not url:
				return []
			return [c for c in await self._get_all(key) if _url_matches(c.url, url)]

	async def change_master_password(self, current_password: str, new_password: str) -> bool:
		"""Re-encrypt every record under a key derived from a new password and salt.

		All new envelopes are built in memory before anything is written, then
		committed with one put_many. The salt is written last; if that fails the
		previous records are put back so the old password keeps working.
		Returns False when `current_password` is wrong.
		"""
		if not new_password:
			raise RotationError('New master password cannot be empty')
		async with self._mutex:
			# keep the auto-lock choice of the current session
			minutes = None if self.is_locked() else self._requested_auto_lock
			if not await self._unlock(current_password, minutes):
				return False
			old_key = self._require_key()
			snapshot = [(item.get('id'), item) for item in await self.store.get_all()]
			creds: List[Credential] = []
			meta: Optional[VaultMetadata] = None
			try:
				for rid, item in snapshot:
					if rid == VAULT_METADATA_ID:
						meta = self._open_metadata(old_key, item)
					else:
						creds.append(self._open_credential(old_key, item))
			except DecryptionError as e:
				raise RotationError(f'Cannot re-encrypt record {rid}: {e}') from e
			if meta is None:
				raise RotationError('Vault metadata unreadable')

			iterations = await self._iteration_count()
			new_salt = self.crypto.generate_salt()
			new_key = await asyncio.to_thread(self.crypto.derive_key, new_password, new_salt, iterations)
			meta.last_modified = _now()
			staged = [(c.id, self._seal_credential(new_key, c)) for c in creds]
			staged.append((VAULT_METADATA_ID, self._seal_metadata(new_key, meta)))
			try:
				await self.store.put_many(staged)
			except StorageError as e:
				new_key.wipe()
				raise RotationError(f'Failed to write re-encrypted records: {e}') from e
			try:
				await self.settings.save_settings(_salt_record(new_salt, iterations))
			except StorageError as e:
				new_key.wipe()
				try:
					await self.store.put_many(snapshot)
				except StorageError as restore_err:
					log.critical('Restoring records after failed password change failed: %s', restore_err)
				raise RotationError(f'Failed to save new salt: {e}') from e
			self._set_key(new_key)
			log.info('Master password changed, %d credentials re-encrypted', len(creds))
			return True

	# --- internals ---

	async def _iteration_count(self) -> int:
		if self._iterations is not None:
			return self._iterations
		return (await load_user_settings(self.settings)).iterations

	async def _unlock(self, password: str, auto_lock_minutes: float | None) -> bool:
		salt_rec = await self.settings.get_settings(SALT_SETTING_ID)
		sealed = await self.store.get(VAULT_METADATA_ID)
		if not salt_rec or sealed is None:
			raise NotInitialized('Vault not initialised')
		salt, iterations = _parse_salt_record(salt_rec)
		key = await asyncio.to_thread(self.crypto.derive_key, password, salt, iterations)
		meta = self._open_metadata(key, sealed)
		if meta is None:
			key.wipe()
			log.info('Unlock rejected')
			return False
		self._set_key(key)
		meta.last_accessed = _now()
		try:
			await self.store.put(VAULT_METADATA_ID, self._seal_metadata(key, meta))
		except StorageError as e:
			log.warning('Could not record last access: %s', e)
		self._requested_auto_lock = auto_lock_minutes
		if auto_lock_minutes is None:
			auto_lock_minutes = (await load_user_settings(self.settings)).effective_auto_lock
		self._arm_auto_lock(auto_lock_minutes)
		log.info('Vault unlocked')
		return True

	def _require_key(self) -> MasterKey:
		if self._locked or self._key is None:
			raise VaultLockedError('Vault is locked')
		return self._key

	def _set_key(self, key: MasterKey) -> None:
		if self._key is not None and self._key is not key:
			self._key.wipe()
		self._key = key
		self._locked = False

	def _wipe(self) -> None:
		self._cancel_auto_lock()
		self._auto_lock_minutes = 0
		if self._key is not None:
			self._key.wipe()
			self._key = None
		if not self._locked:
			log.info('Vault locked')
		self._locked = True

	def _arm_auto_lock(self, minutes: float) -> None:
		self._cancel_auto_lock()
		self._auto_lock_minutes = minutes if minutes and minutes > 0 else 0
		if not self._auto_lock_minutes:
			return
		generation = self._arm_generation
		loop = asyncio.get_running_loop()
		self._auto_lock = loop.call_later(self._auto_lock_minutes * 60, self._auto_lock_due, generation)

	def _cancel_auto_lock(self) -> None:
		# bumping the generation invalidates a timer that already fired
		self._arm_generation += 1
		if self._auto_lock is not None:
			self._auto_lock.cancel()
			self._auto_lock = None

	def _auto_lock_due(self, generation: int) -> None:
		if generation != self._arm_generation:
			return
		self._auto_lock = None
		task = asyncio.ensure_future(self._auto_lock_fire(generation))
		self._pending.add(task)
		task.add_done_callback(self._pending.discard)

	async def _auto_lock_fire(self, generation: int) -> None:
		async with self._mutex:
			if generation != self._arm_generation or self._locked:
				return
			log.info('Auto-lock timer expired')
			self._wipe()

	async def _get_all(self, key: MasterKey) -> List[Credential]:
		creds = []
		for item in await self.store.get_all():
			if item.get('id') == VAULT_METADATA_ID:
				continue
			try:
				creds.append(self._open_credential(key, item))
			except DecryptionError as e:
				log.error('Error decrypting credential %s: %s', item.get('id'), e)
		return creds

	def _seal_credential(self, key: MasterKey, cred: Credential) -> Dict[str, Any]:
		env = self.crypto.encrypt_data(key, json.dumps(cred.to_dict()))
		return {'id': cred.id, 'url': cred.url, 'username': cred.username, 'data': env.to_record()}

	def _open_credential(self, key: MasterKey, item: Dict[str, Any]) -> Credential:
		env = EncryptedEnvelope.from_record(item.get('data'))
		plaintext = self.crypto.decrypt_envelope(key, env)
		try:
			raw = json.loads(plaintext)
		except ValueError as e:
			raise DecryptionError('Decryption failed') from e
		if not isinstance(raw, dict):
			raise DecryptionError('Decryption failed')
		return Credential.from_dict(raw)

	def _seal_metadata(self, key: MasterKey, meta: VaultMetadata) -> Dict[str, Any]:
		env = self.crypto.encrypt_data(key, json.dumps(meta.to_dict()))
		return {'id': VAULT_METADATA_ID, 'data': env.to_record()}

	def _open_metadata(self, key: MasterKey, sealed: Dict[str, Any]) -> Optional[VaultMetadata]:
		"""Decrypt and parse the metadata record, None when either step fails."""
		try:
			env = EncryptedEnvelope.from_record(sealed.get('data'))
			return VaultMetadata.from_dict(json.loads(self.crypto.decrypt_envelope(key, env)))
		except (DecryptionError, ValueError, KeyError, TypeError):
			return None
