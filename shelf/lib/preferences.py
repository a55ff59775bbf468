"""Non-secret user preferences stored as plain settings records."""
from __future__ import annotations
import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Dict
from config.settings import (
	DEFAULT_AUTO_LOCK_MINUTES, DEFAULT_ITERATIONS, USER_SETTINGS_ID, PASSWORD_SETTINGS_ID
)
from .store import StorageError

log = logging.getLogger(__name__)


@dataclass
class UserSettings:
	auto_lock_enabled: bool = True
	auto_lock_time: float = DEFAULT_AUTO_LOCK_MINUTES
	iterations: int = DEFAULT_ITERATIONS
	theme: str = 'system'
	autofill_enabled: bool = True
	auto_submit: bool = False
	save_prompt: bool = True

	_KEYS = {
		'auto_lock_enabled': 'autoLockEnabled',
		'auto_lock_time': 'autoLockTime',
		'iterations': 'iterations',
		'theme': 'theme',
		'autofill_enabled': 'autofillEnabled',
		'auto_submit': 'autoSubmit',
		'save_prompt': 'savePrompt',
	}

	@property
	def effective_auto_lock(self) -> float:
		"""Minutes until auto-lock, 0 when disabled."""
		if not self.auto_lock_enabled:
			return 0
		return max(0, self.auto_lock_time or 0)

	@classmethod
	def from_record(cls, raw: Dict[str, Any] | None) -> 'UserSettings':
		if not raw:
			return cls()
		kwargs = {attr: raw[key] for attr, key in cls._KEYS.items() if key in raw}
		return cls(**kwargs)

	def to_record(self) -> Dict[str, Any]:
		rec = {key: getattr(self, attr) for attr, key in self._KEYS.items()}
		rec['id'] = USER_SETTINGS_ID
		return rec


@dataclass
class PasswordSettings:
	password_length: int = 16
	use_uppercase: bool = True
	use_lowercase: bool = True
	use_numbers: bool = True
	use_symbols: bool = True
	exclude_ambiguous: bool = False
	exclude_similar: bool = False
	avoid_consecutive: bool = False
	avoid_repeats: bool = False
	passphrase_word_count: int = 4
	passphrase_capitalize: bool = True
	passphrase_include_number: bool = True
	passphrase_include_symbol: bool = True
	passphrase_separator: str = '-'
	pin_length: int = 4
	pin_avoid_repeats: bool = False
	pin_avoid_consecutive: bool = False
	default_generator_type: str = 'password'

	_KEYS = {
		'password_length': 'passwordLength',
		'use_uppercase': 'useUppercase',
		'use_lowercase': 'useLowercase',
		'use_numbers': 'useNumbers',
		'use_symbols': 'useSymbols',
		'exclude_ambiguous': 'excludeAmbiguous',
		'exclude_similar': 'excludeSimilar',
		'avoid_consecutive': 'avoidConsecutive',
		'avoid_repeats': 'avoidRepeats',
		'passphrase_word_count': 'passphraseWordCount',
		'passphrase_capitalize': 'passphraseCapitalize',
		'passphrase_include_number': 'passphraseIncludeNumber',
		'passphrase_include_symbol': 'passphraseIncludeSymbol',
		'passphrase_separator': 'passphraseSeparator',
		'pin_length': 'pinLength',
		'pin_avoid_repeats': 'pinAvoidRepeats',
		'pin_avoid_consecutive': 'pinAvoidConsecutive',
		'default_generator_type': 'defaultGeneratorType',
	}

	@classmethod
	def from_record(cls, raw: Dict[str, Any] | None) -> 'PasswordSettings':
		if not raw:
			return cls()
		return cls(**{attr: raw[key] for attr, key in cls._KEYS.items() if key in raw})

	def to_record(self) -> Dict[str, Any]:
		rec = {key: getattr(self, attr) for attr, key in self._KEYS.items()}
		rec['id'] = PASSWORD_SETTINGS_ID
		return rec


async def load_user_settings(settings_store) -> UserSettings:
	try:
		raw = await settings_store.get_settings(USER_SETTINGS_ID)
	except StorageError as e:
		log.warning('Falling back to default user settings: %s', e)
		return UserSettings()
	return UserSettings.from_record(raw)

async def save_user_settings(settings_store, settings: UserSettings) -> None:
	await settings_store.save_settings(settings.to_record())

async def load_password_settings(settings_store) -> PasswordSettings:
	try:
		raw = await settings_store.get_settings(PASSWORD_SETTINGS_ID)
	except StorageError as e:
		log.warning('Falling back to default generator settings: %s', e)
		return PasswordSettings()
	return PasswordSettings.from_record(raw)

async def save_password_settings(settings_store, changes: Dict[str, Any]) -> PasswordSettings:
	"""Merge `changes` over the defaults and persist the result.

	`changes` may use record keys (`passwordLength`) or attribute names
	(`password_length`); unknown keys are ignored.
	"""
	attrs = {f.name for f in fields(PasswordSettings)}
	merged = replace(PasswordSettings.from_record(changes),
		**{k: v for k, v in changes.items() if k in attrs})
	await settings_store.save_settings(merged.to_record())
	return merged


def settings_to_options(settings: PasswordSettings, kind: str = 'password') -> Dict[str, Any]:
	"""Keyword arguments for the generator function matching `kind`."""
	if kind == 'password':
		return {
			'length': settings.password_length,
			'uppercase': settings.use_uppercase,
			'lowercase': settings.use_lowercase,
			'numbers': settings.use_numbers,
			'symbols': settings.use_symbols,
			'exclude_ambiguous': settings.exclude_ambiguous,
			'exclude_similar': settings.exclude_similar,
			'no_consecutive': settings.avoid_consecutive,
			'no_repeats': settings.avoid_repeats,
		}
	if kind == 'passphrase':
		return {
			'words': settings.passphrase_word_count,
			'capitalize': settings.passphrase_capitalize,
			'include_number': settings.passphrase_include_number,
			'include_symbol': settings.passphrase_include_symbol,
			'separator': settings.passphrase_separator,
		}
	if kind == 'pin':
		return {
			'length': settings.pin_length,
			'no_repeats': settings.pin_avoid_repeats,
			'no_consecutive': settings.pin_avoid_consecutive,
		}
	return {}
