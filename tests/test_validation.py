import zipfile

from fakes import FakeRunner
from postmigration import run_post_migration_tasks
from runner import CommandResult
from validation import (
    check_disk_space,
    check_package,
    check_wordpress_installation,
    check_wp_cli,
    locate_package_files,
    run_pre_import_validation,
)
from wpcli import WPCLI


def make_package(path, names=('a.json', 'a.csv', 'a.sql')):
    with zipfile.ZipFile(path, 'w') as zf:
        for name in names:
            zf.writestr(name, 'x')
    return str(path)


def test_check_package(tmp_path):
    text = tmp_path / 'notes.txt'
    text.write_text('hola')

    assert check_package(make_package(tmp_path / 'site.zip'))[0]
    assert not check_package(str(tmp_path / 'missing.zip'))[0]
    assert not check_package(str(text))[0]


def test_check_wp_cli_and_installation():
    ok = WPCLI(FakeRunner({'core version': CommandResult(0, '6.5.2', '')}))
    broken = WPCLI(FakeRunner({
        'cli version': CommandResult(127, '', 'wp: not found'),
        'core is-installed': CommandResult(1, '', ''),
    }))

    assert check_wp_cli(ok)[0]
    assert check_wordpress_installation(ok) == (True, "WordPress 6.5.2 encontrado")
    assert not check_wp_cli(broken)[0]
    assert not check_wordpress_installation(broken)[0]


def test_check_disk_space(tmp_path):
    success, message = check_disk_space(make_package(tmp_path / 'site.zip'), str(tmp_path))

    assert success
    assert 'Espacio suficiente' in message


def test_locate_package_files(tmp_path):
    (tmp_path / 'wp-content' / 'themes' / 'child').mkdir(parents=True)
    for name in ('b.json', 'a.json', 'a.csv', 'a.sql'):
        (tmp_path / name).write_text('x')

    success, _, files = locate_package_files(str(tmp_path))

    assert success
    assert files['json'] == str(tmp_path / 'a.json')
    assert files['themes'] == str(tmp_path / 'wp-content' / 'themes')
    assert files['plugins'] is None
    assert files['uploads'] is None


def test_locate_package_files_reports_missing(tmp_path):
    (tmp_path / 'a.json').write_text('{}')

    success, message, files = locate_package_files(str(tmp_path))

    assert not success
    assert '*.csv' in message and '*.sql' in message
    assert files['sql'] is None


def test_run_pre_import_validation(tmp_path):
    package = make_package(tmp_path / 'site.zip')

    assert run_pre_import_validation(WPCLI(FakeRunner()), package, str(tmp_path))
    assert not run_pre_import_validation(WPCLI(FakeRunner()), str(tmp_path / 'x.zip'), str(tmp_path))


def test_post_migration_tasks():
    runner = FakeRunner()

    assert run_post_migration_tasks(WPCLI(runner), url='https://b.example')

    lines = [' '.join(args) for _, args in runner.calls]
    assert lines == [
        'transient delete --all --url=https://b.example',
        'rewrite flush --url=https://b.example',
        'cache flush --url=https://b.example',
    ]


def test_post_migration_failures_are_not_fatal(caplog):
    runner = FakeRunner({'cache flush': CommandResult(1, '', 'no cache')})

    assert not run_post_migration_tasks(WPCLI(runner))
    assert len(runner.calls) == 3
    assert 'no cache' in caplog.text
