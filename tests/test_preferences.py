import pytest
from shelf.lib.generator import generate_password, generate_passphrase, generate_pin
from shelf.lib.preferences import (
    UserSettings, PasswordSettings, load_user_settings, save_user_settings,
    load_password_settings, save_password_settings, settings_to_options
)
from shelf.lib.store import MemoryStore, SettingsStore, StorageError

class BrokenStore(MemoryStore):
    async def get(self, record_id):
        raise StorageError('unreadable')

def test_user_settings_record_round_trip():
    s = UserSettings(auto_lock_time=10, theme='dark', autofill_enabled=False)
    rec = s.to_record()
    assert rec['id'] == 'user-settings'
    assert rec['autoLockTime'] == 10 and rec['autofillEnabled'] is False
    assert UserSettings.from_record(rec) == s

def test_effective_auto_lock():
    assert UserSettings().effective_auto_lock == 5
    assert UserSettings(auto_lock_enabled=False).effective_auto_lock == 0
    assert UserSettings(auto_lock_time=-3).effective_auto_lock == 0
    assert UserSettings.from_record({'autoLockEnabled': True, 'autoLockTime': 2, 'unknown': 1}).effective_auto_lock == 2

@pytest.mark.asyncio
async def test_load_defaults_and_save():
    store = SettingsStore(MemoryStore())
    assert await load_user_settings(store) == UserSettings()
    await save_user_settings(store, UserSettings(iterations=200_000))
    assert (await load_user_settings(store)).iterations == 200_000

@pytest.mark.asyncio
async def test_unreadable_settings_fall_back_to_defaults():
    store = SettingsStore(BrokenStore())
    assert await load_user_settings(store) == UserSettings()
    assert await load_password_settings(store) == PasswordSettings()

@pytest.mark.asyncio
async def test_password_settings_merge_over_defaults():
    store = SettingsStore(MemoryStore())
    saved = await save_password_settings(store, {'password_length': 24, 'use_symbols': False, 'bogus': 1})
    assert saved.password_length == 24 and saved.use_uppercase is True
    loaded = await load_password_settings(store)
    assert loaded == saved

def test_options_feed_generators():
    s = PasswordSettings(password_length=20, use_symbols=False, passphrase_word_count=3,
                         passphrase_separator='.', pin_length=6)
    pw = generate_password(**settings_to_options(s, 'password'))
    assert len(pw) == 20 and pw.isalnum()
    phrase = generate_passphrase(**settings_to_options(s, 'passphrase'))
    assert len(phrase.split('.')) == 5
    assert len(generate_pin(**settings_to_options(s, 'pin'))) == 6
    assert settings_to_options(s, 'unknown') == {}

@pytest.mark.asyncio
async def test_password_settings_read_camel_case_record():
    backend = MemoryStore()
    await backend.put('passwordGeneratorSettings',
                      {'id': 'passwordGeneratorSettings', 'passwordLength': 24, 'useSymbols': False,
                       'pinAvoidRepeats': True, 'autoRegenerateOnOptionChange': True})
    loaded = await load_password_settings(SettingsStore(backend))
    assert loaded.password_length == 24
    assert loaded.use_symbols is False and loaded.pin_avoid_repeats is True
    assert loaded.use_uppercase is True

def test_password_settings_record_uses_camel_case():
    rec = PasswordSettings(password_length=20, avoid_repeats=True).to_record()
    assert rec['id'] == 'passwordGeneratorSettings'
    assert rec['passwordLength'] == 20 and rec['avoidRepeats'] is True
    assert 'password_length' not in rec
    assert PasswordSettings.from_record(rec) == PasswordSettings(password_length=20, avoid_repeats=True)
