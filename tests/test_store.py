import json

import pytest

from errors import AccountCreationError
from fakes import FakeRunner
from posts import update_authors
from runner import CommandResult
from store import WPCLIStore, plugin_slug, sql_quote
from users import import_users
from wpcli import WPCLI

SITES = [
    {'blog_id': '1', 'domain': 'example.org', 'path': '/', 'url': 'https://example.org/'},
    {'blog_id': '3', 'domain': 'c.example', 'path': '/', 'url': 'https://c.example/'},
]

DENIED = CommandResult(1, '', 'ERROR 1142 UPDATE denied')
SINGLE_SITE = CommandResult(1, '', '')


def json_result(data):
    return CommandResult(0, json.dumps(data), '')


def make_store(responses=None):
    runner = FakeRunner(responses)
    return WPCLIStore(WPCLI(runner)), runner


def test_plugin_slug_and_sql_quote():
    assert plugin_slug('akismet/akismet.php') == 'akismet'
    assert plugin_slug('hello.php') == 'hello'
    assert sql_quote("o'brien\\") == "'o\\'brien\\\\'"


class TestSites:

    def test_switch_to_blog_adds_url(self):
        store, runner = make_store({'site list': json_result(SITES)})

        store.switch_to_blog(3)
        store.update_option('home', 'https://c.example')
        store.restore_current_blog()
        store.update_option('home', 'https://example.org')

        assert runner.calls_for('option update') == [
            ['option', 'update', 'home', 'https://c.example', '--url=https://c.example/'],
            ['option', 'update', 'home', 'https://example.org'],
        ]
        assert store.current_blog_id() == 1

    def test_single_site_switch_keeps_default_url(self):
        store, runner = make_store({'core is-installed': SINGLE_SITE})

        store.switch_to_blog(3)

        assert store.url is None
        assert store.current_blog_id() == 3
        assert runner.calls_for('site list') == []

    def test_site_exists(self):
        store, _ = make_store({'site list': json_result(SITES)})

        assert store.site_exists('C.example', '/')
        assert not store.site_exists('c.example', '/blog/')

    def test_insert_site_error(self):
        store, _ = make_store({'eval': json_result({'error': 'Sitio duplicado'})})

        assert store.insert_site('c.example', '/') is None

    def test_base_prefix_from_config(self):
        store, runner = make_store({'config get': CommandResult(0, 'wpx_', '')})

        assert store.base_prefix() == 'wpx_'
        assert store.base_prefix() == 'wpx_'
        assert len(runner.calls_for('config get')) == 1


class TestUsers:

    def test_iter_users_parses_roles(self):
        store, runner = make_store({'user list': json_result([
            {'ID': 1, 'user_login': 'admin', 'roles': 'administrator,editor'},
            {'ID': 2, 'user_login': 'nobody', 'roles': ''},
        ])})

        users = list(store.iter_users(blog_id=2))

        assert [u['roles'] for u in users] == [['administrator', 'editor'], []]
        assert '--blog_id=2' in runner.calls_for('user list')[0]

    def test_get_user_meta_groups_values(self):
        store, _ = make_store({'user meta list': json_result([
            {'meta_key': 'nickname', 'meta_value': 'ana'},
            {'meta_key': 'favorite', 'meta_value': '3'},
            {'meta_key': 'favorite', 'meta_value': '5'},
        ])})

        assert store.get_user_meta(4) == {'nickname': ['ana'], 'favorite': ['3', '5']}

    def test_update_user_meta_values(self):
        store, runner = make_store()

        assert store.update_user_meta(3, 'show_admin_bar_front', True)
        store.update_user_meta(3, 'rich_editing', False)
        store.update_user_meta(3, 'nickname', None)
        store.update_user_meta(3, 'wp_capabilities', {'editor': True})

        assert runner.calls_for('user meta update') == [
            ['user', 'meta', 'update', '3', 'show_admin_bar_front', '1'],
            ['user', 'meta', 'update', '3', 'rich_editing', ''],
            ['user', 'meta', 'update', '3', 'nickname', ''],
            ['user', 'meta', 'update', '3', 'wp_capabilities', '{"editor": true}', '--format=json'],
        ]

    def test_update_user_meta_failure(self):
        store, _ = make_store({'user meta update': DENIED})

        assert not store.update_user_meta(3, 'nickname', 'ana')

    def test_find_user_query(self):
        store, runner = make_store({'db query': CommandResult(0, '7\n9', '')})

        assert store.find_user("o'brien", 'ob@example.org') == 7

        sql = runner.calls_for('db query')[0][2]
        assert sql.startswith('SELECT ID FROM wp_users ')
        assert "user_login = 'o\\'brien'" in sql
        assert "(user_email = 'ob@example.org' AND user_email != '')" in sql

    def test_find_user_without_match(self):
        store, _ = make_store({'db query': CommandResult(0, '', '')})

        assert store.find_user('ana', '') is None

    def test_find_user_failure_raises(self):
        store, _ = make_store({'db query': DENIED})

        with pytest.raises(AccountCreationError):
            store.find_user('ana', 'ana@example.org')

    def test_insert_user_error_raises(self):
        store, _ = make_store({'eval': json_result({'error': 'Login duplicado'})})

        with pytest.raises(AccountCreationError, match='Login duplicado'):
            store.insert_user({'user_login': 'ana'})

    def test_set_user_password_hash(self):
        store, runner = make_store()

        assert store.set_user_password_hash(42, '$P$abc')
        assert runner.calls_for('db query')[0][2] == (
            "UPDATE wp_users SET user_pass = '$P$abc' WHERE ID = 42;"
        )


class TestContent:

    def test_fetch_records_payload(self):
        store, runner = make_store({'eval': json_result([{'ID': '1'}])})

        assert store.fetch_records('posts', ['ID'], 100, 200) == [{'ID': '1'}]
        payload = json.loads(runner.calls_for('eval')[0][2])
        assert payload == {'table': 'posts', 'columns': ['ID'], 'limit': 100, 'offset': 200}

    def test_count_records(self):
        store, _ = make_store({'eval': CommandResult(0, '12', '')})

        assert store.count_records('posts') == 12

    def test_update_post_author_uses_blog_prefix(self):
        store, runner = make_store({'site list': json_result(SITES)})

        store.switch_to_blog(3)
        assert store.update_post_author(10, 50)

        args = runner.calls_for('db query')[0]
        assert args[2] == 'UPDATE wp_3_posts SET post_author = 50 WHERE ID = 10;'
        assert args[-1] == '--url=https://c.example/'

    def test_rename_option_uses_blog_prefix(self):
        store, runner = make_store({'site list': json_result(SITES)})

        store.switch_to_blog(3)
        assert store.rename_option('wp_user_roles', 'wp_3_user_roles')

        assert runner.calls_for('db query')[0][2] == (
            "UPDATE wp_3_options SET option_name = 'wp_3_user_roles' "
            "WHERE option_name = 'wp_user_roles';"
        )

    def test_write_failures_return_false(self):
        store, _ = make_store({
            'db query': DENIED,
            'post meta update': DENIED,
            'option update': DENIED,
        })

        assert not store.update_post_author(10, 50)
        assert not store.update_post_meta(10, '_customer_user', 50)
        assert not store.update_option('home', 'https://c.example')
        assert not store.rename_option('wp_user_roles', 'wp_3_user_roles')


def records_eval(command, args):
    payload = json.loads(args[2])
    if isinstance(payload, dict):
        rows = [{'ID': '5', 'post_author': '5', 'post_title': 'Hola'}]
        return json_result(rows if payload['offset'] == 0 else [])
    return CommandResult(0, '1', '')


def test_update_authors_does_not_count_failed_writes():
    store, _ = make_store({
        'plugin is-active': CommandResult(1, '', ''),
        'eval': records_eval,
        'db query': DENIED,
    })

    report = update_authors(store, {5: 50})

    assert report.authors_updated == 0
    assert report.failed == [5]


@pytest.fixture
def users_csv(tmp_path):
    path = tmp_path / 'users.csv'
    path.write_text('ID,user_login,user_pass,user_email\n7,ana,$P$abc,ana@example.org\n')
    return str(path)


def test_import_users_fails_when_password_hash_is_not_stored(users_csv):
    def db_query(command, args):
        return CommandResult(0, '', '') if args[2].startswith('SELECT') else DENIED

    store, runner = make_store({
        'core is-installed': SINGLE_SITE,
        'db query': db_query,
        'eval': json_result({'id': 42}),
    })

    result = import_users(store, users_csv)

    assert result.failed == 1
    assert result.created == 0
    assert result.id_map == {}
    assert runner.calls_for('user meta update') == []


def test_import_users_fails_when_lookup_fails(users_csv):
    store, runner = make_store({
        'core is-installed': SINGLE_SITE,
        'db query': DENIED,
    })

    result = import_users(store, users_csv)

    assert result.failed == 1
    assert runner.calls_for('eval') == []
