"""CLI commands implemented with click.

Each command opens the JSON store, unlocks the vault for the duration of
the command and locks it again before returning; no key outlives a command.
"""
from __future__ import annotations
import asyncio, json, logging, shutil, click
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from config import settings
from shelf.lib.crypto import CryptoError
from shelf.lib.generator import (
	generate_password, generate_passphrase, generate_pin, evaluate_password_strength, GeneratorError
)
from shelf.lib.preferences import (
	load_password_settings, load_user_settings, save_user_settings, settings_to_options
)
from shelf.lib.store import open_file_stores, StorageError
from shelf.lib.vault import VaultManager, VaultError, NotInitialized, WrongPassword


def _manager() -> VaultManager:
	store, settings_store = open_file_stores(settings.vault_path())
	return VaultManager(store, settings_store)

@asynccontextmanager
async def unlocked(password: str):
	"""Unlocked manager for one command; always locked again on exit."""
	vm = _manager()
	if not await vm.is_vault_initialized():
		raise NotInitialized('Vault not initialised')
	if not await vm.unlock_vault(password, auto_lock_minutes=0):
		raise WrongPassword('Invalid password')
	try:
		yield vm
	finally:
		await vm.lock_vault()

def _run(coro):
	"""Run a coroutine, printing vault/storage failures the way every command does."""
	try:
		return asyncio.run(coro)
	except (VaultError, StorageError, CryptoError, GeneratorError) as e:
		click.echo(f'Error: {e}')
		return None

def _show(cred) -> str:
	return (f"ID: {cred.id}\nName: {cred.name or '-'}\nURL: {cred.url or '-'}\n"
		f"Username: {cred.username or '-'}\nPassword: {cred.password}\n"
		f"Created: {cred.created_at}\nUpdated: {cred.updated_at}\n---\n{cred.notes}")


@click.group()
@click.option('--verbose', is_flag=True, help='Debug logging.')
def cli(verbose):
	"""secure-shelf encrypted credential vault"""
	logging.basicConfig(level=logging.DEBUG if verbose else settings.LOG_LEVEL,
		format='%(asctime)s %(levelname)s %(name)s: %(message)s')

@cli.command()
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--force', is_flag=True, help='Recreate if vault already exists.')
def init(password, force):
	"""Initialise a new encrypted vault (use --force to recreate)."""
	path = settings.vault_path()
	if force and path.exists():
		path.unlink()
	async def go():
		vm = _manager()
		await vm.initialize_vault(password)
		await vm.lock_vault()
		return True
	if _run(go()):
		click.echo('Vault created.')

@cli.command()
@click.option('--password', prompt=True, hide_input=True)
def info(password):
	"""Show vault metadata."""
	async def go():
		async with unlocked(password) as vm:
			meta = (await vm.get_metadata()).to_dict()
			meta['credentials'] = len(await vm.get_all_credentials())
			return meta
	meta = _run(go())
	if meta is not None:
		click.echo(json.dumps(meta, indent=2))

@cli.command('add')
@click.option('--password', prompt=True, hide_input=True)
@click.option('--url', prompt=True)
@click.option('--username', prompt=True)
@click.option('--name', default='')
@click.option('--notes', default='')
@click.option('--secret', help='Credential password; generated when omitted.')
def add_credential(password, url, username, name, notes, secret):
	"""Store a credential."""
	async def go():
		async with unlocked(password) as vm:
			generated = None
			if not secret:
				opts = settings_to_options(await load_password_settings(vm.settings), 'password')
				generated = generate_password(**opts)
			cid = await vm.add_credential({'url': url, 'username': username, 'name': name,
				'notes': notes, 'password': secret or generated})
			return cid, generated
	res = _run(go())
	if res:
		cid, generated = res
		click.echo(f'Added credential {cid}.')
		if generated:
			click.echo(f'Generated password: {generated}')

@cli.command('list')
@click.option('--password', prompt=True, hide_input=True)
def list_credentials(password):
	async def go():
		async with unlocked(password) as vm:
			return await vm.get_all_credentials()
	creds = _run(go())
	for c in sorted(creds or [], key=lambda c: c.updated_at, reverse=True):
		click.echo(f"{c.id}: {c.name or c.url} [{c.username}]")

@cli.command('show')
@click.argument('credential_id')
@click.option('--password', prompt=True, hide_input=True)
def show_credential(credential_id, password):
	"""Show a credential in full, including its password."""
	async def go():
		async with unlocked(password) as vm:
			return await vm.get_credential(credential_id) or False
	cred = _run(go())
	if cred is False:
		click.echo('Not found')
	elif cred is not None:
		click.echo(_show(cred))

@cli.command('update')
@click.argument('credential_id')
@click.option('--password', prompt=True, hide_input=True)
@click.option('--url')
@click.option('--username')
@click.option('--name')
@click.option('--notes')
@click.option('--secret')
def update_credential(credential_id, password, **fields):
	patch = {k if k != 'secret' else 'password': v for k, v in fields.items() if v is not None}
	async def go():
		async with unlocked(password) as vm:
			return await vm.update_credential(credential_id, patch)
	ok = _run(go())
	if ok is not None:
		click.echo('Updated.' if ok else 'Not found')

@cli.command('delete')
@click.argument('credential_id')
@click.option('--password', prompt=True, hide_input=True)
def delete_credential(credential_id, password):
	async def go():
		async with unlocked(password) as vm:
			return await vm.delete_credential(credential_id)
	ok = _run(go())
	if ok is not None:
		click.echo('Deleted.' if ok else 'Delete failed')

@cli.command('find')
@click.argument('url')
@click.option('--password', prompt=True, hide_input=True)
def find_credentials(url, password):
	"""List credentials whose URL matches loosely."""
	async def go():
		async with unlocked(password) as vm:
			return await vm.find_credentials_by_url(url)
	creds = _run(go())
	if creds is not None and not creds:
		click.echo('No matches')
	for c in creds or []:
		click.echo(f"{c.id}: {c.url} [{c.username}]")

@cli.command('change-password')
@click.option('--password', prompt='Current password', hide_input=True)
@click.option('--new-password', prompt=True, hide_input=True, confirmation_prompt=True)
def change_password(password, new_password):
	async def go():
		vm = _manager()
		try:
			return await vm.change_master_password(password, new_password)
		finally:
			await vm.lock_vault()
	ok = _run(go())
	if ok is not None:
		click.echo('Master password changed.' if ok else 'Error: Invalid password')

@cli.command('settings')
@click.option('--auto-lock', type=float, help='Minutes before auto-lock, 0 disables.')
@click.option('--iterations', type=click.IntRange(min=1), help='PBKDF2 iterations for new keys.')
@click.option('--theme')
def settings_cmd(auto_lock, iterations, theme):
	"""Show or change user settings."""
	async def go():
		_store, settings_store = open_file_stores(settings.vault_path())
		prefs = await load_user_settings(settings_store)
		if auto_lock is not None:
			prefs.auto_lock_enabled = auto_lock > 0
			prefs.auto_lock_time = auto_lock
		if iterations is not None:
			prefs.iterations = iterations
		if theme is not None:
			prefs.theme = theme
		if auto_lock is not None or iterations is not None or theme is not None:
			await save_user_settings(settings_store, prefs)
		return prefs.to_record()
	rec = _run(go())
	if rec is not None:
		click.echo(json.dumps(rec, indent=2))

@cli.command('backup')
@click.option('--dest', type=click.Path(file_okay=False, path_type=Path), default=Path('backups'), help='Destination directory for backups.')
def backup(dest: Path):
	"""Copy the store file; it only ever holds ciphertext and salts."""
	path = settings.vault_path()
	if not path.exists():
		click.echo(f"No vault at {path}; nothing to backup.")
		raise SystemExit(1)
	dest.mkdir(parents=True, exist_ok=True)
	stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
	target = dest / f"{path.stem}_{stamp}{path.suffix}{settings.BACKUP_SUFFIX}"
	shutil.copy2(path, target)
	click.echo(f"Backup written: {target}")


# --- generator subcommands ---

@cli.group()
def generate():
	"""Generate passwords, passphrases and PINs."""

@generate.command('password')
@click.option('--length', type=int, default=16, show_default=True)
@click.option('--no-uppercase', is_flag=True)
@click.option('--no-lowercase', is_flag=True)
@click.option('--no-numbers', is_flag=True)
@click.option('--no-symbols', is_flag=True)
@click.option('--exclude-ambiguous', is_flag=True)
@click.option('--exclude-similar', is_flag=True)
@click.option('--required', default='')
@click.option('--excluded', default='')
@click.option('--no-consecutive', is_flag=True)
@click.option('--no-repeats', is_flag=True)
def generate_password_cmd(length, no_uppercase, no_lowercase, no_numbers, no_symbols, **opts):
	try:
		pw = generate_password(length=length, uppercase=not no_uppercase, lowercase=not no_lowercase,
			numbers=not no_numbers, symbols=not no_symbols, **opts)
	except GeneratorError as e:
		click.echo(f'Error: {e}')
		return
	click.echo(pw)

@generate.command('passphrase')
@click.option('--words', type=int, default=4, show_default=True)
@click.option('--separator', default='-', show_default=True)
@click.option('--no-capitalize', is_flag=True)
@click.option('--no-number', is_flag=True)
@click.option('--no-symbol', is_flag=True)
def generate_passphrase_cmd(words, separator, no_capitalize, no_number, no_symbol):
	try:
		click.echo(generate_passphrase(words=words, capitalize=not no_capitalize,
			include_number=not no_number, include_symbol=not no_symbol, separator=separator))
	except GeneratorError as e:
		click.echo(f'Error: {e}')

@generate.command('pin')
@click.option('--length', type=int, default=4, show_default=True)
@click.option('--no-repeats', is_flag=True)
@click.option('--no-consecutive', is_flag=True)
def generate_pin_cmd(length, no_repeats, no_consecutive):
	try:
		click.echo(generate_pin(length=length, no_repeats=no_repeats, no_consecutive=no_consecutive))
	except GeneratorError as e:
		click.echo(f'Error: {e}')

@cli.command('pw-strength')
@click.argument('password')
def pw_strength_cmd(password):
	r = evaluate_password_strength(password)
	click.echo(f"Score: {r.score}/4 -> {r.label} (~{r.entropy} bits). {r.feedback}")
