"""Key-value persistence consumed by the vault manager.

Records are plain dicts keyed by a string id. Two implementations ship:
an in-memory store and a JSON file holding named tables. Every method is a
coroutine, but the file store finishes each call without suspending, so one
call never interleaves with another.
"""
from __future__ import annotations
import copy, json, logging, os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
from config.settings import VAULT_TABLE, SETTINGS_TABLE

log = logging.getLogger(__name__)

class StorageError(Exception): ...

Record = Dict[str, Any]


class MemoryStore:
	def __init__(self):
		self._records: Dict[str, Record] = {}

	async def put(self, record_id: str, record: Record) -> None:
		self._records[record_id] = copy.deepcopy(record)

	async def put_many(self, records: Iterable[Tuple[str, Record]]) -> None:
		staged = {rid: copy.deepcopy(rec) for rid, rec in records}
		self._records.update(staged)

	async def get(self, record_id: str) -> Optional[Record]:
		rec = self._records.get(record_id)
		return copy.deepcopy(rec) if rec is not None else None

	async def get_all(self) -> List[Record]:
		return [copy.deepcopy(r) for r in self._records.values()]

	async def delete(self, record_id: str) -> None:
		self._records.pop(record_id, None)


class JsonFileStore:
	"""One table inside a JSON document on disk.

	Several instances may share a file as long as they use different tables.
	"""

	def __init__(self, path: Path | str, table: str = VAULT_TABLE):
		self.path = Path(path)
		self.table = table

	def exists(self) -> bool:
		return self.path.exists() and self.path.stat().st_size > 0

	async def put(self, record_id: str, record: Record) -> None:
		doc = self._read()
		doc.setdefault(self.table, {})[record_id] = record
		self._write(doc)

	async def put_many(self, records: Iterable[Tuple[str, Record]]) -> None:
		doc = self._read()
		table = doc.setdefault(self.table, {})
		for rid, rec in records:
			table[rid] = rec
		self._write(doc)

	async def get(self, record_id: str) -> Optional[Record]:
		return self._read().get(self.table, {}).get(record_id)

	async def get_all(self) -> List[Record]:
		return list(self._read().get(self.table, {}).values())

	async def delete(self, record_id: str) -> None:
		doc = self._read()
		if doc.get(self.table, {}).pop(record_id, None) is not None:
			self._write(doc)

	def _read(self) -> Dict[str, Any]:
		if not self.exists():
			return {}
		try:
			doc = json.loads(self.path.read_text(encoding='utf-8'))
		except (OSError, ValueError) as e:
			raise StorageError(f'Cannot read store {self.path}: {e}') from e
		if not isinstance(doc, dict):
			raise StorageError(f'Corrupt store {self.path}')
		return doc

	def _write(self, doc: Dict[str, Any]) -> None:
		tmp = self.path.with_suffix(self.path.suffix + '.tmp')
		try:
			self.path.parent.mkdir(parents=True, exist_ok=True)
			tmp.write_text(json.dumps(doc), encoding='utf-8')
			os.replace(tmp, self.path)
		except OSError as e:
			if tmp.exists():
				tmp.unlink()
			raise StorageError(f'Cannot write store {self.path}: {e}') from e
		log.debug('Store written -> %s [%s]', self.path, self.table)


class SettingsStore:
	"""Plain (unencrypted) settings records on top of any key-value store."""

	def __init__(self, store):
		self.store = store

	async def get_settings(self, settings_id: str) -> Optional[Record]:
		return await self.store.get(settings_id)

	async def save_settings(self, settings: Record) -> None:
		settings_id = settings.get('id')
		if not settings_id:
			raise StorageError('Settings record needs an id')
		await self.store.put(settings_id, settings)


def open_file_stores(path: Path | str) -> tuple[JsonFileStore, SettingsStore]:
	"""Vault table and settings adapter sharing one JSON file."""
	return JsonFileStore(path, VAULT_TABLE), SettingsStore(JsonFileStore(path, SETTINGS_TABLE))
