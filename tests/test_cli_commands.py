import json
import pytest
from click.testing import CliRunner
from shelf.cli.commands import cli

@pytest.fixture
def runner(monkeypatch, tmp_path):
    monkeypatch.setenv('VAULT_PATH', str(tmp_path / 'shelf.json'))
    r = CliRunner()
    # cheap key stretching for tests; pinned into the salt at init
    assert r.invoke(cli, ['settings', '--iterations', '1000']).exit_code == 0
    return r

def init(runner, pw='pw'):
    r = runner.invoke(cli, ['init'], input=f'{pw}\n{pw}\n')
    assert r.exit_code == 0, r.output
    return r

def add(runner, *args, pw='pw'):
    r = runner.invoke(cli, ['add', *args], input=f'{pw}\n')
    assert r.exit_code == 0, r.output
    return r.output.split('Added credential ')[1].split('.')[0]

def test_cli_init_and_info(runner):
    r = init(runner)
    assert 'Vault created' in r.output
    r2 = runner.invoke(cli, ['info'], input='pw\n')
    assert r2.exit_code == 0
    assert '"version": 1' in r2.output
    assert '"credentials": 0' in r2.output

def test_cli_init_twice(runner):
    init(runner)
    r = runner.invoke(cli, ['init'], input='pw\npw\n')
    assert 'Error: Vault exists' in r.output
    r = runner.invoke(cli, ['init', '--force'], input='pw2\npw2\n')
    assert 'Vault created' in r.output

def test_cli_add_list_show(runner):
    init(runner)
    cid = add(runner, '--url', 'https://example.com/login', '--username', 'alice', '--secret', 's3cret', '--name', 'Example')
    lst = runner.invoke(cli, ['list'], input='pw\n')
    assert f'{cid}: Example [alice]' in lst.output
    show = runner.invoke(cli, ['show', cid], input='pw\n')
    assert 'Password: s3cret' in show.output
    assert 'URL: https://example.com/login' in show.output
    missing = runner.invoke(cli, ['show', 'nope'], input='pw\n')
    assert 'Not found' in missing.output

def test_cli_update_find_delete(runner):
    init(runner)
    cid = add(runner, '--url', 'https://example.com/login', '--username', 'alice', '--secret', 'old')
    up = runner.invoke(cli, ['update', cid, '--secret', 'new-secret'], input='pw\n')
    assert 'Updated.' in up.output
    assert 'Password: new-secret' in runner.invoke(cli, ['show', cid], input='pw\n').output
    found = runner.invoke(cli, ['find', 'https://example.com'], input='pw\n')
    assert cid in found.output
    assert 'No matches' in runner.invoke(cli, ['find', 'https://other.org'], input='pw\n').output
    assert 'Deleted.' in runner.invoke(cli, ['delete', cid], input='pw\n').output
    assert 'Not found' in runner.invoke(cli, ['update', cid, '--name', 'x'], input='pw\n').output

def test_cli_wrong_password_and_uninitialised(runner):
    r = runner.invoke(cli, ['list'], input='pw\n')
    assert 'Error: Vault not initialised' in r.output
    init(runner)
    r = runner.invoke(cli, ['list'], input='bad\n')
    assert 'Error: Invalid password' in r.output

def test_cli_change_password(runner):
    init(runner, 'old')
    cid = add(runner, '--url', 'https://a.com', '--username', 'u', '--secret', 'p', pw='old')
    bad = runner.invoke(cli, ['change-password'], input='wrong\nnew\nnew\n')
    assert 'Error: Invalid password' in bad.output
    ok = runner.invoke(cli, ['change-password'], input='old\nnew\nnew\n')
    assert 'Master password changed.' in ok.output
    assert 'Error: Invalid password' in runner.invoke(cli, ['list'], input='old\n').output
    assert 'Password: p' in runner.invoke(cli, ['show', cid], input='new\n').output

def test_cli_settings(runner):
    r = runner.invoke(cli, ['settings', '--auto-lock', '0', '--theme', 'dark'])
    rec = json.loads(r.output)
    assert rec['autoLockEnabled'] is False and rec['theme'] == 'dark'
    assert rec['iterations'] == 1000
    assert json.loads(runner.invoke(cli, ['settings']).output)['theme'] == 'dark'

def test_cli_backup(runner, tmp_path):
    init(runner)
    r = runner.invoke(cli, ['backup', '--dest', str(tmp_path / 'bk')])
    assert r.exit_code == 0
    assert 'Backup written' in r.output
    files = list((tmp_path / 'bk').iterdir())
    assert len(files) == 1
    assert 'vault-metadata' in files[0].read_text()

def test_cli_backup_without_vault(monkeypatch, tmp_path):
    monkeypatch.setenv('VAULT_PATH', str(tmp_path / 'missing.json'))
    r = CliRunner().invoke(cli, ['backup', '--dest', str(tmp_path / 'bk')])
    assert r.exit_code == 1
    assert 'nothing to backup' in r.output
