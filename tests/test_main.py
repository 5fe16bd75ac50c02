import json

import pytest

import main
from fakes import FakeRunner, MemoryStore
from wpcli import WPCLI


@pytest.fixture
def cli(tmp_path, monkeypatch):
    """Ejecuta main() con un store en memoria y devuelve el código de salida."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('WPMIG_LOG_FILE', str(tmp_path / 'wpmig.log'))
    store = MemoryStore()
    runner = FakeRunner()
    monkeypatch.setattr(main, 'build_store', lambda args: (WPCLI(runner), store))

    def run(*argv):
        with pytest.raises(SystemExit) as exc:
            main.main(list(argv))
        return exc.value.code

    run.store = store
    run.runner = runner
    return run


def test_parser_accepts_shared_options():
    args = main.build_parser().parse_args(
        ['export', 'all', '--blog-id', '3', '--plugins', '--login-suffix', 'corp'])

    assert (args.group, args.command, args.file) == ('export', 'all', None)
    assert args.blog_id == 3
    assert args.plugins and not args.themes
    assert args.login_suffix == 'corp'


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        main.build_parser().parse_args(['export'])


def test_export_and_import_users(tmp_path, cli):
    cli.store.add_user('ana', 'ana@example.org')
    output = tmp_path / 'users.csv'

    assert cli('export', 'users', str(output)) == 0
    assert output.read_text(encoding='utf-8').startswith('ID,user_login')

    cli.store.users.clear()
    assert cli('import', 'users', str(output)) == 0
    assert json.loads((tmp_path / 'ids_maps.json').read_text()) == {'1': 2}


def test_import_tables_with_transaction(tmp_path, cli):
    dump = tmp_path / 'site.sql'
    dump.write_text("CREATE TABLE `wp_posts` (ID int);\n")

    code = cli('import', 'tables', str(dump), '--old-prefix', 'wp_', '--new-prefix', 'wp_2_',
               '--mysql-single-transaction')

    assert code == 0
    text = dump.read_text()
    assert text.startswith('START TRANSACTION;')
    assert 'CREATE TABLE `wp_2_posts`' in text
    assert cli.runner.calls_for('db import')


def test_migration_errors_exit_with_failure(tmp_path, cli):
    assert cli('posts', 'update_author', str(tmp_path / 'missing.json')) == 1


def test_import_all_requires_package(cli):
    assert cli('import', 'all', '--yes') == 1
