"""
Codificación de celdas del CSV de usuarios.

Los valores compuestos (listas y diccionarios, como las capacidades) se
guardan en formato PHP serialize para que el CSV sea intercambiable con las
herramientas de WordPress.
"""

import re

import phpserialize

_SERIALIZED_RE = re.compile(r'^(?:[aOCs]:\d+:|[bid]:[^;]*;)', re.DOTALL)


def encode_cell(value) -> str:
    """
    Convierte un valor en texto para una celda del CSV.

    None -> "", True -> "1", False -> "", listas/diccionarios -> PHP serialize.
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        return '1' if value else ''
    if isinstance(value, (list, tuple, dict)):
        return phpserialize.dumps(_to_php(value)).decode('utf-8')
    return str(value)


def _to_php(value):
    if isinstance(value, (list, tuple)):
        return {i: _to_php(v) for i, v in enumerate(value)}
    if isinstance(value, dict):
        return {k: _to_php(v) for k, v in value.items()}
    return value


def is_serialized(text: str) -> bool:
    """Comprueba si una cadena tiene el aspecto de un valor PHP serializado."""
    text = text.strip()
    if text == 'N;':
        return True
    if len(text) < 4 or text[-1] not in ';}':
        return False
    return bool(_SERIALIZED_RE.match(text))


def _from_php(value):
    if isinstance(value, dict):
        converted = {k: _from_php(v) for k, v in value.items()}
        if list(converted.keys()) == list(range(len(converted))):
            return list(converted.values())
        return converted
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return value


def decode_cell(text):
    """
    Interpreta una celda del CSV.

    Las cadenas serializadas se convierten en su valor; el resto (o un
    serializado inválido) se devuelve tal cual.
    """
    if not isinstance(text, str) or not is_serialized(text):
        return text
    try:
        value = phpserialize.loads(
            text.strip().encode('utf-8'),
            decode_strings=True,
            object_hook=phpserialize.phpobject
        )
    except ValueError:
        return text
    return _from_php(value)


def unwrap_meta(values):
    """Un metadato con un único valor se exporta como escalar."""
    if isinstance(values, list) and len(values) == 1:
        return values[0]
    return values
