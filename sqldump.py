"""
Transformaciones de texto sobre volcados SQL.

Funciones:
    rewrite_prefix: Sustituye el prefijo de tablas en las sentencias DDL/DML.
    wrap_in_transaction: Envuelve el volcado en START TRANSACTION / COMMIT.

Ambas funciones trabajan en streaming sobre bytes y reemplazan el archivo
original de forma atómica (archivo temporal + os.replace).
"""

import logging
import os
import re
import shutil
import tempfile

from errors import SQLDumpError

logger = logging.getLogger(__name__)

# Sentencias en las que el nombre de tabla aparece entre backticks
PREFIX_KEYWORDS = (
    'DROP TABLE IF EXISTS',
    'CREATE TABLE',
    'LOCK TABLES',
    'INSERT INTO',
    'CREATE TABLE IF NOT EXISTS',
    'ALTER TABLE',
    'CONSTRAINT',
    'REFERENCES',
    'RENAME TABLE',
    'DROP VIEW IF EXISTS',
    'CREATE VIEW',
    'ALTER VIEW',
    'TRIGGER',
)

TRANSACTION_START = b"START TRANSACTION"

_GZIP_RE = re.compile(r'\.(sql\.gz|gz)$', re.IGNORECASE)


def _prefix_pattern(old_prefix: str):
    # Alternativas más largas primero para que "CREATE TABLE IF NOT EXISTS" gane
    keywords = sorted(PREFIX_KEYWORDS, key=len, reverse=True)
    alternatives = b'|'.join(re.escape(k.encode()) for k in keywords)
    return re.compile(b'(' + alternatives + b') `' + re.escape(old_prefix.encode()))


def _replace_file(file_path: str, transform) -> int:
    """
    Reescribe file_path aplicando transform(fin, fout) y devuelve los bytes escritos.
    """
    directory = os.path.dirname(os.path.abspath(file_path))
    fd, tmp_path = tempfile.mkstemp(prefix='.wpmig-', suffix='.sql', dir=directory)
    try:
        with os.fdopen(fd, 'wb') as fout, open(file_path, 'rb') as fin:
            written = transform(fin, fout)
        if written == 0:
            raise SQLDumpError(
                f"No fue posible reescribir el archivo SQL, el resultado está vacío: {file_path}"
            )
        shutil.copymode(file_path, tmp_path)
        os.replace(tmp_path, file_path)
        return written
    except OSError as e:
        raise SQLDumpError(f"No se pudo sobrescribir el archivo SQL {file_path}: {e}") from e
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def rewrite_prefix(file_path: str, old_prefix: str, new_prefix: str) -> bool:
    """
    Sustituye old_prefix por new_prefix solo en los nombres de tabla que
    siguen a las sentencias de PREFIX_KEYWORDS.

    Los valores de datos que contengan el texto del prefijo no se modifican.

    Args:
        file_path: Ruta del volcado SQL.
        old_prefix: Prefijo presente en el volcado (ej. "wp_").
        new_prefix: Prefijo a escribir (ej. "wp_3_").

    Returns:
        True si el archivo quedó reescrito (o no había nada que hacer).

    Raises:
        SQLDumpError: Si el resultado está vacío o el archivo no se puede escribir,
            o si old_prefix está vacío.
    """
    if not new_prefix:
        return True
    if not old_prefix:
        raise SQLDumpError("El prefijo de origen no puede estar vacío")

    pattern = _prefix_pattern(old_prefix)
    replacement = b'\\1 `' + new_prefix.encode().replace(b'\\', b'\\\\')
    replaced = 0

    def transform(fin, fout):
        nonlocal replaced
        written = 0
        for line in fin:
            line, n = pattern.subn(replacement, line)
            replaced += n
            written += fout.write(line)
        return written

    _replace_file(file_path, transform)
    logger.info(f":✓: Prefijo reescrito en {replaced} sentencias: {old_prefix} -> {new_prefix}")
    return True


def wrap_in_transaction(file_path: str) -> bool:
    """
    Envuelve el contenido del volcado en START TRANSACTION; ... COMMIT;.

    Los volcados comprimidos se omiten con una advertencia y los que ya
    contienen START TRANSACTION en su primer KiB no se tocan.

    Args:
        file_path: Ruta del volcado SQL.

    Returns:
        True si el archivo fue envuelto, False si se omitió.

    Raises:
        SQLDumpError: Si el archivo no se puede leer o reemplazar.
    """
    if _GZIP_RE.search(file_path):
        logger.warning(f":!: Transacción omitida: volcado comprimido ({file_path})")
        return False

    try:
        with open(file_path, 'rb') as fh:
            head = fh.read(1024)
    except OSError as e:
        raise SQLDumpError(f"No se pudo abrir el archivo SQL {file_path}: {e}") from e

    if TRANSACTION_START in head.upper():
        logger.info("El volcado ya contiene START TRANSACTION, no se modifica")
        return False

    def transform(fin, fout):
        fout.write(TRANSACTION_START + b";\n")
        shutil.copyfileobj(fin, fout)
        fout.write(b"\nCOMMIT;\n")
        return fout.tell()

    _replace_file(file_path, transform)
    logger.info(":✓: Volcado envuelto en una transacción")
    return True
