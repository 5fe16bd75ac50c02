import json

import pytest

from errors import InvalidPackageError, RoleAssignmentError
from fakes import FakeRunner, MemoryStore
from runner import CommandResult
from sites import (
    SiteMetadata,
    build_home_url,
    compute_new_prefix,
    create_site,
    grant_role_without_context_switch,
    parse_url_for_search_replace,
    resolve_target_site,
    run_url_search_replace,
    split_site_url,
    tenant_context,
    uploads_path_pair,
    with_tenant,
)
from wpcli import WPCLI


@pytest.mark.parametrize('blog_id, expected', [
    (1, 'wp_'),
    (0, 'wp_'),
    (None, 'wp_'),
    (2, 'wp_2_'),
    (15, 'wp_15_'),
])
def test_compute_new_prefix(blog_id, expected):
    assert compute_new_prefix('wp_', blog_id) == expected


@pytest.mark.parametrize('url, expected', [
    ('https://Example.com/', 'example.com/'),
    ('https://old.de', 'old.de'),
    ('http://example.com/blog/', 'example.com/blog'),
    ('example.com//sub//site/', 'example.com/sub/site'),
    ('https://example.com:8080/x?a=1#top', 'example.com:8080/x'),
    ('http://[::1]:8080/', '[::1]:8080/'),
    ('', ''),
    ('http://', ''),
])
def test_parse_url_for_search_replace(url, expected):
    assert parse_url_for_search_replace(url) == expected


@pytest.mark.parametrize('url, expected', [
    ('https://Net.example/', ('net.example', '/')),
    ('https://net.example/sub', ('net.example', '/sub/')),
    ('sub.net.example', ('sub.net.example', '/')),
    ('', ('', '/')),
])
def test_split_site_url(url, expected):
    assert split_site_url(url) == expected


def test_build_home_url():
    assert build_home_url('https://new.example/') == 'https://new.example'
    assert build_home_url('new.example', 'http://old.example') == 'http://new.example'
    assert build_home_url('new.example') == 'https://new.example'


def test_uploads_path_pair():
    assert uploads_path_pair(1, 1) == ('wp-content/uploads', 'wp-content/uploads')
    assert uploads_path_pair(1, 3) == ('wp-content/uploads', 'wp-content/uploads/sites/3')
    assert uploads_path_pair(4, 1) == ('wp-content/uploads/sites/4', 'wp-content/uploads')


def test_create_site_and_duplicates(network_store):
    metadata = SiteMetadata(url='https://shop.example/')

    blog_id = create_site(network_store, metadata)

    assert blog_id == 2
    assert network_store.get_site(2)['domain'] == 'shop.example'
    assert create_site(network_store, metadata) is None
    assert create_site(network_store, SiteMetadata(url='')) is None


def test_resolve_target_site(store, network_store):
    metadata = SiteMetadata(url='https://shop.example/')

    assert resolve_target_site(store, metadata) == 1
    assert resolve_target_site(network_store, metadata) == 2


def test_tenant_context_restores_on_error(network_store):
    network_store.insert_site('b.example', '/')

    with pytest.raises(RuntimeError):
        with tenant_context(network_store, 2):
            assert network_store.current_blog_id() == 2
            raise RuntimeError('boom')

    assert network_store.current_blog_id() == 1


def test_tenant_context_does_not_switch_when_unneeded(store, network_store):
    with tenant_context(store, 5):
        assert store.current_blog_id() == 1
    with tenant_context(network_store, None):
        pass
    with tenant_context(network_store, 1):
        pass

    assert store.switches == []
    assert network_store.switches == []


def test_with_tenant_returns_result(network_store):
    network_store.insert_site('b.example', '/')

    assert with_tenant(network_store, 2, lambda s: s.current_blog_id()) == 2
    assert network_store.current_blog_id() == 1


USER_ID = 1


class TestGrantRole:

    @pytest.fixture
    def network(self):
        store = MemoryStore(multisite=True)
        store.insert_site('b.example', '/')
        store.add_user('ana', 'ana@example.org')
        return store

    def test_grants_role_and_level(self, network):
        network.update_user_meta(USER_ID, 'wp_2_capabilities', {'subscriber': True, 'level_0': True})

        grant_role_without_context_switch(network, 2, USER_ID, 'editor')

        meta = network.user_meta[USER_ID]
        assert meta['wp_2_capabilities'] == {'subscriber': True, 'editor': True}
        assert meta['wp_2_user_level'] == 7
        assert meta['primary_blog'] == 2
        assert meta['source_domain'] == 'b.example'
        assert network.current_blog_id() == 1
        assert network.switches == []

    def test_keeps_existing_primary_blog(self, network):
        network.update_user_meta(USER_ID, 'primary_blog', 1)

        grant_role_without_context_switch(network, 2, USER_ID, 'subscriber')

        meta = network.user_meta[USER_ID]
        assert meta['primary_blog'] == 1
        assert 'source_domain' not in meta
        assert meta['wp_2_user_level'] == 0

    def test_main_site_uses_base_prefix(self, network):
        grant_role_without_context_switch(network, 1, USER_ID, 'administrator')

        assert network.user_meta[USER_ID]['wp_capabilities'] == {'administrator': True}
        assert network.user_meta[USER_ID]['wp_user_level'] == 10

    @pytest.mark.parametrize('blog_id, user_id, role, code', [
        (2, 999, 'editor', 'user_does_not_exist'),
        (9, None, 'editor', 'blog_does_not_exist'),
        (2, None, 'pirate', 'invalid_role'),
    ])
    def test_errors(self, network, blog_id, user_id, role, code):
        with pytest.raises(RoleAssignmentError) as exc:
            grant_role_without_context_switch(network, blog_id, user_id or USER_ID, role)
        assert exc.value.code == code

    def test_meta_write_failure(self, network, monkeypatch):
        monkeypatch.setattr(network, 'update_user_meta', lambda user_id, key, value: False)

        with pytest.raises(RoleAssignmentError) as exc:
            grant_role_without_context_switch(network, 2, USER_ID, 'editor')
        assert exc.value.code == 'meta_update_failed'


class TestSearchReplace:

    def test_same_blog_id_runs_single_pass(self):
        runner = FakeRunner()
        wp = WPCLI(runner)

        success, _ = run_url_search_replace(wp, 'wp_', 'https://old.de', 'https://Example.com/')

        assert success
        calls = runner.calls_for('search-replace')
        assert len(calls) == 1
        assert calls[0][:3] == ['search-replace', 'old.de', 'example.com/']
        assert '--precise' in calls[0]
        assert '--all-tables' in calls[0]
        assert '--skip-tables=wp_blogs' in calls[0]
        assert '--url=https://Example.com/' in calls[0]

    def test_different_blog_ids_rewrite_uploads(self):
        runner = FakeRunner()
        wp = WPCLI(runner)

        success, _ = run_url_search_replace(wp, 'wp_', 'old.de', 'new.de', original_blog_id=1, blog_id=4)

        assert success
        calls = runner.calls_for('search-replace')
        assert [c[1:3] for c in calls] == [
            ['old.de', 'new.de'],
            ['wp-content/uploads', 'wp-content/uploads/sites/4'],
        ]

    def test_failure_stops(self):
        runner = FakeRunner({'search-replace': CommandResult(1, '', 'DB error')})
        wp = WPCLI(runner)

        success, message = run_url_search_replace(wp, 'wp_', 'old.de', 'new.de', 1, 4)

        assert not success
        assert 'DB error' in message
        assert len(runner.calls) == 1

    def test_invalid_urls(self):
        runner = FakeRunner()
        success, _ = run_url_search_replace(WPCLI(runner), 'wp_', '', 'new.de')

        assert not success
        assert runner.calls == []


class TestSiteMetadata:

    def test_from_dict_normalizes_php_arrays(self):
        metadata = SiteMetadata.from_dict({
            'url': 'https://a.example',
            'blog_plugins': {'0': 'akismet/akismet.php'},
            'network_plugins': [],
            'plugins': [],
            'blog_id': '3',
        })

        assert metadata.blog_plugins == ['akismet/akismet.php']
        assert metadata.network_plugins == {}
        assert metadata.plugins == {}
        assert metadata.blog_id == 3

    def test_save_and_load(self, tmp_path):
        path = tmp_path / 'site.json'
        metadata = SiteMetadata(url='https://a.example', name='Sitio A', db_prefix='wp_',
                                plugins={'hello.php': {'Name': 'Hello'}}, blog_id=2)

        metadata.save(str(path))

        assert SiteMetadata.load(str(path)) == metadata

    @pytest.mark.parametrize('content', [
        '{broken',
        '[]',
        json.dumps({'name': 'sin url'}),
        json.dumps({'url': 'https://a.example', 'blog_id': 0}),
        json.dumps({'url': 'https://bad_host!/', 'blog_id': 1}),
    ])
    def test_load_rejects_invalid_metadata(self, tmp_path, content):
        path = tmp_path / 'site.json'
        path.write_text(content)

        with pytest.raises(InvalidPackageError):
            SiteMetadata.load(str(path))
