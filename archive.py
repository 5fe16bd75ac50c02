"""
Códec del paquete de migración (archivo zip).

Funciones:
    sniff: Identifica un zip por su firma de 4 bytes.
    is_safe_entry: Valida el nombre de una entrada antes de extraer.
    write_package: Crea el paquete a partir de archivos y directorios.
    read_package: Extrae el paquete con protección contra zip-slip.

Ejemplo:
    from archive import write_package, read_package

    write_package("sitio.zip", {
        "wpmig-1a2b-sitio.sql": "/tmp/wpmig-1a2b-sitio.sql",
        "wp-content/uploads": "/var/www/html/wp-content/uploads",
    })
    read_package("sitio.zip", "/tmp/extraido")
"""

import logging
import os
import re
import zipfile

from errors import ArchiveError, UnsafeArchiveEntryError

logger = logging.getLogger(__name__)

# Cabecera local, fin de directorio central (zip vacío) y marca de zip dividido
ZIP_SIGNATURES = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")

_DRIVE_RE = re.compile(r'^[A-Za-z]:')


def sniff(path: str) -> bool:
    """
    Verifica si un archivo es un zip leyendo sus primeros 4 bytes.

    Args:
        path: Ruta del archivo.

    Returns:
        True si la firma coincide con alguna firma zip conocida.
    """
    if not os.path.isfile(path):
        return False
    try:
        with open(path, 'rb') as fh:
            signature = fh.read(4)
    except OSError:
        return False
    return signature in ZIP_SIGNATURES


def is_safe_entry(name: str, destination_dir: str) -> bool:
    """
    Valida que una entrada del zip se extraiga dentro de destination_dir.

    Args:
        name: Nombre de la entrada tal como aparece en el zip.
        destination_dir: Directorio de extracción.

    Returns:
        False si contiene bytes nulos, es absoluta o recorre directorios padre.
    """
    if '\0' in name:
        return False

    normalized = name.replace('\\', '/')
    if normalized.startswith('/') or _DRIVE_RE.match(normalized):
        return False
    if '..' in normalized.split('/'):
        return False

    root = os.path.realpath(destination_dir)
    target = os.path.realpath(os.path.join(root, normalized))
    return target == root or target.startswith(root + os.sep)


def _normalize_archive_path(archive_path: str) -> str:
    return archive_path.replace(os.sep, '/').strip('/')


def write_package(target_path: str, entries: dict) -> int:
    """
    Crea el paquete zip con los archivos y directorios indicados.

    Los directorios se agregan recursivamente conservando su estructura
    relativa bajo la ruta del archivo. Las fuentes inexistentes o ilegibles
    se omiten con una advertencia. Un zip previo en target_path se reemplaza.

    Args:
        target_path: Ruta del zip a crear.
        entries: Diccionario ruta_en_zip -> ruta_origen.

    Returns:
        Número de archivos agregados.

    Raises:
        ArchiveError: Si no se puede crear el zip.
    """
    zip_dir = os.path.dirname(os.path.abspath(target_path))
    try:
        os.makedirs(zip_dir, exist_ok=True)
        if os.path.exists(target_path):
            os.remove(target_path)
    except OSError as e:
        raise ArchiveError(f"No se pudo preparar el archivo {target_path}: {e}") from e

    added = 0
    try:
        with zipfile.ZipFile(target_path, 'w', zipfile.ZIP_DEFLATED) as zf:
            for archive_path, source in entries.items():
                archive_path = _normalize_archive_path(archive_path)

                if not os.path.exists(source):
                    logger.warning(f":!: Ruta no encontrada, se omite: {source}")
                    continue

                if os.path.isdir(source):
                    added += _add_directory(zf, source, archive_path)
                    continue

                if not os.access(source, os.R_OK):
                    logger.warning(f":!: Archivo ilegible, se omite: {source}")
                    continue

                zf.write(source, archive_path)
                added += 1
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveError(f"Error al crear el paquete {target_path}: {e}") from e

    return added


def _add_directory(zf: zipfile.ZipFile, source: str, archive_path: str) -> int:
    """Agrega un árbol de directorios en orden determinista."""
    added = 0
    for root, dirs, files in os.walk(source):
        dirs.sort()
        rel_root = os.path.relpath(root, source)
        base = archive_path if rel_root == '.' else f"{archive_path}/{rel_root.replace(os.sep, '/')}"

        if not dirs and not files:
            zf.writestr(base.rstrip('/') + '/', b'')
            continue

        for name in sorted(files):
            full = os.path.join(root, name)
            if not os.access(full, os.R_OK):
                logger.warning(f":!: Archivo ilegible, se omite: {full}")
                continue
            zf.write(full, f"{base}/{name}")
            added += 1
    return added


def read_package(archive_path: str, destination_dir: str) -> list:
    """
    Extrae el paquete en destination_dir con protección contra zip-slip.

    Todas las entradas se validan antes de extraer nada; una sola entrada
    insegura hace fallar toda la operación.

    Args:
        archive_path: Ruta del zip.
        destination_dir: Directorio de destino (se crea si no existe).

    Returns:
        Lista de nombres de las entradas extraídas.

    Raises:
        UnsafeArchiveEntryError: Si alguna entrada escribiría fuera del destino.
        ArchiveError: Si el zip no se puede abrir o extraer.
    """
    try:
        os.makedirs(destination_dir, exist_ok=True)
    except OSError as e:
        raise ArchiveError(f"No se pudo crear el destino {destination_dir}: {e}") from e

    try:
        with zipfile.ZipFile(archive_path) as zf:
            names = zf.namelist()
            for name in names:
                if not is_safe_entry(name, destination_dir):
                    raise UnsafeArchiveEntryError(name)
            zf.extractall(destination_dir)
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveError(f"Error al extraer {archive_path}: {e}") from e

    logger.info(f":✓: {len(names)} entradas extraídas en {destination_dir}")
    return names
