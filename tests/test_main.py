from click.testing import CliRunner
from shelf.cli.commands import cli

def test_cli_help():
	r = CliRunner().invoke(cli, ['--help'])
	assert r.exit_code == 0
	assert 'init' in r.output
	assert 'generate' in r.output


def test_add_generates_password_from_settings(monkeypatch, tmp_path):
	monkeypatch.setenv('VAULT_PATH', str(tmp_path / 'shelf.json'))
	runner = CliRunner()
	runner.invoke(cli, ['settings', '--iterations', '1000'])
	runner.invoke(cli, ['init'], input='pw\npw\n')
	add = runner.invoke(cli, ['add', '--url', 'https://a.com', '--username', 'u'], input='pw\n')
	assert add.exit_code == 0
	generated = add.output.split('Generated password: ')[1].strip()
	assert len(generated) == 16
	cid = add.output.split('Added credential ')[1].split('.')[0]
	show = runner.invoke(cli, ['show', cid], input='pw\n')
	assert f'Password: {generated}' in show.output


def test_store_file_holds_no_plaintext(monkeypatch, tmp_path):
	path = tmp_path / 'shelf.json'
	monkeypatch.setenv('VAULT_PATH', str(path))
	runner = CliRunner()
	runner.invoke(cli, ['settings', '--iterations', '1000'])
	runner.invoke(cli, ['init'], input='pw\npw\n')
	runner.invoke(cli, ['add', '--url', 'https://a.com', '--username', 'u', '--secret', 'topsecret', '--notes', 'private note'], input='pw\n')
	text = path.read_text()
	assert 'topsecret' not in text and 'private note' not in text
	assert 'https://a.com' in text


def test_generate_commands():
	runner = CliRunner()
	pw = runner.invoke(cli, ['generate', 'password', '--length', '24', '--no-symbols'])
	assert pw.exit_code == 0
	assert len(pw.output.strip()) == 24 and pw.output.strip().isalnum()
	pin = runner.invoke(cli, ['generate', 'pin', '--length', '6'])
	assert pin.output.strip().isdigit() and len(pin.output.strip()) == 6
	phrase = runner.invoke(cli, ['generate', 'passphrase', '--words', '5', '--no-number', '--no-symbol'])
	assert len(phrase.output.strip().split('-')) == 5
	bad = runner.invoke(cli, ['generate', 'pin', '--length', '12', '--no-repeats'])
	assert 'Error:' in bad.output
	empty = runner.invoke(cli, ['generate', 'password', '--no-uppercase', '--no-numbers', '--no-symbols', '--excluded', 'abcdefghijklmnopqrstuvwxyz'])
	assert 'Error:' in empty.output


def test_pw_strength():
	r = CliRunner().invoke(cli, ['pw-strength', 'VeryStrong#Passw0rd-2024!'])
	assert r.exit_code == 0
	assert 'Score: 4/4 -> Very Strong' in r.output
	weak = CliRunner().invoke(cli, ['pw-strength', 'weak'])
	assert 'Very Weak' in weak.output
