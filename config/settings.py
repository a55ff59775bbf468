"""Project configuration settings.

Constants shared by the crypto engine, the vault manager and the CLI.
"""

from pathlib import Path
import os

# Security / crypto
DEFAULT_ITERATIONS = 100_000
SALT_LENGTH = 16
KEY_LENGTH = 32  # AES-256
IV_LENGTH = 12   # GCM nonce
AUTH_TAG_LENGTH = 16  # GCM tag length

# Vault
DEFAULT_VAULT_PATH = Path("vault_data/shelf.json")
VAULT_PATH_ENV = "VAULT_PATH"
VAULT_TABLE = "vault"
SETTINGS_TABLE = "settings"
VAULT_METADATA_ID = "vault-metadata"
SALT_SETTING_ID = "vault-salt"
USER_SETTINGS_ID = "user-settings"
PASSWORD_SETTINGS_ID = "passwordGeneratorSettings"
METADATA_VERSION = 1

# Auto-lock
DEFAULT_AUTO_LOCK_MINUTES = 5

# Generator
GENERATOR_MAX_ATTEMPTS = 100
PIN_DIGIT_ATTEMPTS = 10

# Backup
BACKUP_SUFFIX = ".backup"

# Logging
LOG_LEVEL = os.environ.get("SHELF_LOG_LEVEL", "WARNING")


def vault_path() -> Path:
	"""Store path, honouring the VAULT_PATH override at call time."""
	env_path = os.environ.get(VAULT_PATH_ENV)
	return Path(env_path) if env_path else DEFAULT_VAULT_PATH


__all__ = [
	'DEFAULT_ITERATIONS','SALT_LENGTH','KEY_LENGTH','IV_LENGTH','AUTH_TAG_LENGTH',
	'DEFAULT_VAULT_PATH','VAULT_PATH_ENV','VAULT_TABLE','SETTINGS_TABLE',
	'VAULT_METADATA_ID','SALT_SETTING_ID','USER_SETTINGS_ID','PASSWORD_SETTINGS_ID',
	'METADATA_VERSION','DEFAULT_AUTO_LOCK_MINUTES','GENERATOR_MAX_ATTEMPTS',
	'PIN_DIGIT_ATTEMPTS','BACKUP_SUFFIX','LOG_LEVEL','vault_path'
]
