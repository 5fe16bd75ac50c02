"""
Archivo de correspondencia de IDs de usuario (origen -> destino).

Se guarda como un objeto JSON con claves de texto; en memoria se usa
siempre dict[int, int].
"""

import json
import logging

from errors import MigrationError

logger = logging.getLogger(__name__)


def normalize_id_map(raw) -> dict:
    """
    Convierte claves y valores a enteros y descarta las entradas inválidas
    (no numéricas, cero o negativas).
    """
    id_map = {}
    for key, value in (raw or {}).items():
        try:
            old_id, new_id = int(key), int(value)
        except (TypeError, ValueError):
            old_id = new_id = 0
        if old_id > 0 and new_id > 0:
            id_map[old_id] = new_id
        else:
            logger.warning(f":!: Entrada inválida en el mapa de IDs: {key!r} -> {value!r}")
    return id_map


def save_id_map(path: str, id_map: dict) -> None:
    try:
        with open(path, 'w', encoding='utf-8') as fh:
            json.dump({str(k): int(v) for k, v in id_map.items()}, fh)
    except OSError as e:
        raise MigrationError(f"No se pudo escribir el mapa de IDs {path}: {e}") from e


def load_id_map(path: str) -> dict:
    """
    Lee el mapa de IDs desde un archivo JSON.

    Raises:
        MigrationError: Si el archivo no existe o no es un objeto JSON.
    """
    try:
        with open(path, encoding='utf-8') as fh:
            raw = json.load(fh)
    except (OSError, ValueError) as e:
        raise MigrationError(f"No se pudo leer el mapa de IDs {path}: {e}") from e

    if not isinstance(raw, dict):
        raise MigrationError(f"El mapa de IDs {path} no es un objeto JSON")
    return normalize_id_map(raw)
