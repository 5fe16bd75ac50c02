import json

from fakes import FakeRunner
from runner import CommandResult
from wpcli import WPCLI, build_args


def test_build_args():
    argv = build_args(
        "search-replace", ['old.example', 'new.example'],
        {'precise': True, 'dry-run': False, 'skip-tables': 'wp_blogs', 'url': None}
    )
    assert argv == ['search-replace', 'old.example', 'new.example',
                    '--precise', '--skip-tables=wp_blogs']


def test_build_args_repeats_list_values():
    assert build_args("plugin list", assoc_args={'field': ['name', 'status']}) == [
        'plugin', 'list', '--field=name', '--field=status']


def test_run_appends_global_arguments():
    runner = FakeRunner()
    wp = WPCLI(runner, binary='/usr/local/bin/wp', path='/srv/wp', allow_root=True)

    wp.run("db export", ['out.sql'], {'tables': 'wp_posts'}, url='https://a.example')

    command, args = runner.calls[0]
    assert command == '/usr/local/bin/wp'
    assert args == ['db', 'export', 'out.sql', '--tables=wp_posts', '--path=/srv/wp',
                    '--url=https://a.example', '--allow-root']


def test_run_json_decodes_output():
    runner = FakeRunner({'site list': CommandResult(0, '[{"blog_id": "1"}]', '')})
    wp = WPCLI(runner)

    assert wp.run_json("site list") == [{'blog_id': '1'}]
    assert '--format=json' in runner.calls[0][1]


def test_run_json_returns_default_on_failure_or_bad_output():
    runner = FakeRunner({
        'option get broken': CommandResult(0, 'not json', ''),
        'option get': CommandResult(1, '', 'Error'),
    })
    wp = WPCLI(runner)

    assert wp.run_json("option get", ['broken'], default='x') == 'x'
    assert wp.run_json("option get", ['home'], default={}) == {}


def test_eval_passes_payload_as_json():
    runner = FakeRunner({'eval': CommandResult(0, '{"id": 7}', '')})
    wp = WPCLI(runner)

    assert wp.eval_json('echo 1;', {'domain': 'a.example'}) == {'id': 7}
    args = runner.calls[0][1]
    assert args[:2] == ['eval', 'echo 1;']
    assert json.loads(args[2]) == {'domain': 'a.example'}
