"""
Reasignación de autoría de entradas según el mapa de IDs de usuario.
"""

import logging
import os
from dataclasses import dataclass, field

from errors import MigrationError
from idmap import load_id_map
from sites import tenant_context

logger = logging.getLogger(__name__)

BATCH_SIZE = 1000

WOOCOMMERCE_PLUGIN = 'woocommerce'
WOOCOMMERCE_UID_FIELD = '_customer_user'

POST_COLUMNS = ['ID', 'post_author', 'post_title']


@dataclass
class AuthorUpdateReport:
    authors_updated: int = 0
    meta_updated: int = 0
    no_mapping: list = field(default_factory=list)
    self_mapped: list = field(default_factory=list)
    failed: list = field(default_factory=list)


def iter_records(store, table: str, columns: list, batch_size: int = BATCH_SIZE,
                 label: str = None):
    """
    Recorre una tabla en páginas de batch_size filas hasta obtener una página vacía.

    Args:
        store: SiteStore.
        table: Nombre lógico de la tabla (ej. "posts").
        columns: Columnas a leer.
        batch_size: Tamaño de página.
        label: Texto del progreso en el log.

    Yields:
        Cada fila como diccionario.
    """
    total = store.count_records(table)
    label = label or f"Procesando {table}"
    offset = 0

    while True:
        page = store.fetch_records(table, columns, batch_size, offset)
        if not page:
            break
        yield from page
        offset += batch_size
        logger.info(f"{label}: {min(offset, total) if total else offset}/{total}")


def parse_uid_fields(uid_fields) -> list:
    """Acepta una lista o una cadena separada por comas; sin vacíos ni duplicados."""
    if isinstance(uid_fields, str):
        uid_fields = uid_fields.split(',')
    fields = [f.strip() for f in (uid_fields or []) if f and f.strip()]
    return list(dict.fromkeys(fields))


def _remap_meta(store, post_id: int, fields: list, id_map: dict,
                report: AuthorUpdateReport, verbose: bool) -> None:
    for meta_key in fields:
        value = store.get_post_meta(post_id, meta_key)
        if value is None:
            continue
        value = str(value).strip()
        if not value.isdigit():
            continue

        old_user = int(value)
        new_user = id_map.get(old_user)
        if new_user is None or new_user == old_user:
            continue

        if not store.update_post_meta(post_id, meta_key, new_user):
            if post_id not in report.failed:
                report.failed.append(post_id)
            continue
        report.meta_updated += 1
        if verbose:
            logger.info(f"{meta_key} actualizado en la entrada #{post_id}: {old_user} -> {new_user}")


def update_authors(store, id_map: dict, blog_id: int = None, uid_fields=None,
                   batch_size: int = BATCH_SIZE, verbose: bool = False) -> AuthorUpdateReport:
    """
    Reasigna post_author (y los metadatos que guardan IDs de usuario) según id_map.

    Las entradas sin autor (0) no se tocan. Las que no tienen correspondencia
    o cuyo autor se mapea a sí mismo se omiten y se listan en el informe, igual
    que aquellas cuya escritura falla (failed).

    Args:
        store: SiteStore de destino.
        id_map: Diccionario ID origen -> ID destino.
        blog_id: Sitio sobre el que se trabaja.
        uid_fields: Metadatos de entrada que guardan IDs de usuario.
        batch_size: Tamaño de página.
        verbose: Mostrar detalles por entrada.

    Returns:
        AuthorUpdateReport con contadores y listas de entradas omitidas.
    """
    report = AuthorUpdateReport()
    fields = parse_uid_fields(uid_fields)

    with tenant_context(store, blog_id):
        if store.is_plugin_active(WOOCOMMERCE_PLUGIN) and WOOCOMMERCE_UID_FIELD not in fields:
            fields.append(WOOCOMMERCE_UID_FIELD)

        records = iter_records(store, 'posts', POST_COLUMNS, batch_size,
                               label="Actualizando autores de entradas")
        for post in records:
            post_id = int(post['ID'])
            author = int(post.get('post_author') or 0)

            if author == 0:
                continue

            new_author = id_map.get(author)
            if new_author is None:
                if verbose:
                    logger.info(f"Entrada #{post_id} omitida: sin correspondencia para el autor {author}")
                report.no_mapping.append(post_id)
            elif new_author == author:
                if verbose:
                    logger.info(f"Entrada #{post_id} omitida: el nuevo autor es igual al anterior ({author})")
                report.self_mapped.append(post_id)
            elif not store.update_post_author(post_id, new_author):
                report.failed.append(post_id)
            else:
                report.authors_updated += 1
                if verbose:
                    logger.info(
                        f"Autor actualizado en \"{post.get('post_title', '')}\" "
                        f"(#{post_id}): {author} -> {new_author}"
                    )

            if fields:
                _remap_meta(store, post_id, fields, id_map, report, verbose)

    if report.no_mapping:
        logger.warning(
            f":!: {len(report.no_mapping)} entradas sin correspondencia de autor: "
            f"{','.join(str(i) for i in report.no_mapping)}"
        )
    if report.self_mapped:
        logger.warning(
            f":!: Entradas con el mismo autor de origen y destino: "
            f"{','.join(str(i) for i in report.self_mapped)}"
        )
    if report.failed:
        logger.warning(
            f":x: No se pudieron actualizar {len(report.failed)} entradas: "
            f"{','.join(str(i) for i in report.failed)}"
        )
    logger.info(
        f":✓: Autores actualizados: {report.authors_updated} | "
        f"Metadatos actualizados: {report.meta_updated}"
    )
    return report


def update_authors_from_file(store, map_file: str, blog_id: int = None, uid_fields=None,
                             verbose: bool = False) -> AuthorUpdateReport:
    """
    Igual que update_authors() leyendo el mapa de IDs desde un archivo JSON.

    Raises:
        MigrationError: Si el archivo no existe, no es válido, no contiene
            pares numéricos o falta blog_id en multisitio.
    """
    if not map_file or not os.path.isfile(map_file):
        raise MigrationError(f"Archivo de mapa inválido: {map_file}")

    if store.is_multisite() and not blog_id:
        raise MigrationError("Se requiere --blog-id en una instalación multisitio")

    id_map = load_id_map(map_file)
    if not id_map:
        raise MigrationError("El mapa de IDs está vacío o no contiene pares numéricos válidos")

    return update_authors(store, id_map, blog_id, uid_fields, verbose=verbose)
