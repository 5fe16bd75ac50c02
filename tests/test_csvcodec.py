import pytest

from csvcodec import decode_cell, encode_cell, is_serialized, unwrap_meta


@pytest.mark.parametrize('value, expected', [
    (None, ''),
    (True, '1'),
    (False, ''),
    (0, '0'),
    ('texto', 'texto'),
])
def test_encode_scalars(value, expected):
    assert encode_cell(value) == expected


def test_encode_list_as_php_array():
    assert encode_cell(['a', 'b']) == 'a:2:{i:0;s:1:"a";i:1;s:1:"b";}'


def test_encode_and_decode_capabilities():
    caps = {'editor': True, 'level_7': True}
    encoded = encode_cell(caps)

    assert is_serialized(encoded)
    assert decode_cell(encoded) == caps


def test_decode_nested_structures():
    encoded = encode_cell({'items': ['x', 'y'], 'count': 2})

    assert decode_cell(encoded) == {'items': ['x', 'y'], 'count': 2}


@pytest.mark.parametrize('text', ['', 'hola', '12', 'a:2:{broken', 's:10:"short";'])
def test_decode_returns_plain_or_invalid_text_unchanged(text):
    assert decode_cell(text) == text


def test_decode_non_strings_unchanged():
    assert decode_cell(None) is None
    assert decode_cell(5) == 5


def test_is_serialized():
    assert is_serialized('N;')
    assert is_serialized('i:5;')
    assert is_serialized('b:1;')
    assert is_serialized('s:4:"hola";')
    assert not is_serialized('hola')
    assert not is_serialized('a:1:{')


def test_unwrap_meta():
    assert unwrap_meta(['solo']) == 'solo'
    assert unwrap_meta(['a', 'b']) == ['a', 'b']
    assert unwrap_meta([]) == []
    assert unwrap_meta('x') == 'x'
