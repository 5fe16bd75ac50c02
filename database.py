"""
Módulo de exportación e importación de tablas de la base de datos.

Este módulo resuelve el conjunto de tablas de un sitio, las exporta con
``wp db export`` y las importa con ``wp db import``, adaptando el volcado
(prefijo de tablas) y la base de datos importada (URLs, rutas de uploads,
opción de roles y home/siteurl) a la instalación de destino.

Funciones:
    parse_table_list: Convierte "a,b,c" en una lista de tablas
    select_tables: Decide qué tablas se exportan a partir del listado completo
    resolve_tables: Descubre las tablas de la instalación y aplica select_tables
    export_tables: Exporta el conjunto de tablas a un archivo SQL
    import_tables: Importa un volcado y lo adapta a la instalación de destino

Ejemplo:
    from database import export_tables

    success, message = export_tables(wp, store, "sitio.sql", blog_id=3)
"""

import logging
import os
import re

from errors import SQLDumpError
from sites import (
    build_home_url,
    compute_new_prefix,
    run_url_search_replace,
    tenant_context,
)
from sqldump import rewrite_prefix

logger = logging.getLogger(__name__)

# Tablas de usuarios y de la red, compartidas por todos los sitios
GLOBAL_TABLES = (
    'users',
    'usermeta',
    'blog_versions',
    'blogs',
    'site',
    'sitemeta',
    'registration_log',
    'signups',
    'sitecategories',
)


def parse_table_list(value) -> list:
    """Acepta una lista o una cadena separada por comas; sin vacíos ni duplicados."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(',')
    return list(dict.fromkeys(t.strip() for t in value if t and t.strip()))


def select_tables(all_tables: list, base_prefix: str, blog_id: int = 1,
                  multisite: bool = False, tables=None, custom_tables=None) -> list:
    """
    Selecciona las tablas a exportar.

    Una lista explícita en ``tables`` se usa tal cual. En otro caso:
    instalación simple -> todas las tablas con el prefijo base; multisitio ->
    las tablas del prefijo del sitio (para el sitio principal, las del
    prefijo base que no pertenecen a otro sitio). Las tablas globales de
    usuarios y de red se excluyen siempre del descubrimiento automático y
    ``custom_tables`` se añade al final.

    Args:
        all_tables: Todas las tablas de la base de datos.
        base_prefix: Prefijo base de la instalación.
        blog_id: Sitio a exportar.
        multisite: Si la instalación es multisitio.
        tables: Lista explícita de tablas.
        custom_tables: Tablas adicionales.

    Returns:
        Lista de tablas sin duplicados.
    """
    explicit = parse_table_list(tables)
    if explicit:
        return explicit

    blog_id = int(blog_id or 1)
    prefix = compute_new_prefix(base_prefix, blog_id)
    excluded = {f"{base_prefix}{name}" for name in GLOBAL_TABLES}

    if multisite and blog_id == 1:
        other_site = re.compile(rf'^{re.escape(base_prefix)}\d+_')
        selected = [
            t for t in all_tables
            if t.startswith(base_prefix) and not other_site.match(t)
        ]
    else:
        selected = [t for t in all_tables if t.startswith(prefix)]

    selected = [t for t in selected if t not in excluded]
    return list(dict.fromkeys(selected + parse_table_list(custom_tables)))


def resolve_tables(wp, store, blog_id: int = None, tables=None, custom_tables=None) -> list:
    """
    Descubre las tablas de la base de datos y aplica select_tables().

    Returns:
        Lista de tablas (vacía si WP-CLI no pudo listarlas).
    """
    explicit = parse_table_list(tables)
    if explicit:
        return explicit

    result = wp.run("db tables", assoc_args={'all-tables': True, 'format': 'csv'})
    if result.status != 0:
        logger.error(f":x: No se pudo obtener el listado de tablas: {result.stderr}")
        return []

    all_tables = [t.strip() for t in result.stdout.replace('\n', ',').split(',') if t.strip()]

    return select_tables(
        all_tables,
        store.base_prefix(),
        blog_id or store.current_blog_id(),
        store.is_multisite(),
        custom_tables=custom_tables
    )


def export_tables(wp, store, output_path: str, blog_id: int = None, tables=None,
                  custom_tables=None, verbose: bool = False) -> tuple:
    """
    Exporta las tablas de un sitio con ``wp db export``.

    Args:
        wp: Instancia de WPCLI.
        store: SiteStore de origen.
        output_path: Archivo SQL a crear.
        blog_id: Sitio a exportar.
        tables: Lista explícita de tablas.
        custom_tables: Tablas adicionales.
        verbose: Mostrar detalles.

    Returns:
        Tupla con (success, message).
    """
    logger.info("Exportando tablas...")

    table_set = resolve_tables(wp, store, blog_id, tables, custom_tables)
    if not table_set:
        return False, "No se pudo obtener la lista de tablas a exportar"

    if verbose:
        logger.info(f"Tablas: {', '.join(table_set)}")

    result = wp.run("db export", [output_path], {'tables': ','.join(table_set)})
    if result.status != 0:
        return False, f"Error al exportar la base de datos: {result.stderr}"

    logger.info(f":✓: {len(table_set)} tablas exportadas en {output_path}")
    return True, "Exportación de tablas completada"


def import_tables(wp, store, input_path: str, blog_id: int = 1, original_blog_id: int = 1,
                  old_prefix: str = '', new_prefix: str = '', old_url: str = '',
                  new_url: str = '', verbose: bool = False) -> tuple:
    """
    Importa un volcado SQL y lo adapta a la instalación de destino.

    Pasos: reescritura del prefijo (si new_prefix difiere de old_prefix),
    ``wp db import``, search-replace de URL y uploads (si se dan ambas URLs),
    renombrado de la opción <prefijo>user_roles y, si hay nueva URL,
    actualización de home/siteurl.

    Args:
        wp: Instancia de WPCLI.
        store: SiteStore de destino.
        input_path: Volcado SQL.
        blog_id: Sitio de destino.
        original_blog_id: ID del sitio en la instalación de origen.
        old_prefix: Prefijo presente en el volcado (por defecto, el del sitio actual).
        new_prefix: Prefijo a aplicar.
        old_url: URL de origen.
        new_url: URL de destino.
        verbose: Mostrar detalles.

    Returns:
        Tupla con (success, message).
    """
    logger.info("=" * 60)
    logger.info("Importando tablas")
    logger.info("=" * 60)

    if not input_path or not os.path.isfile(input_path):
        return False, f"Archivo de entrada inválido: {input_path}"

    if not blog_id:
        return False, "Debe indicar el ID del sitio de destino"

    if not old_prefix:
        old_prefix = compute_new_prefix(store.base_prefix(), store.current_blog_id())
        logger.info(f"Sin prefijo de origen, se usa el del sitio actual: {old_prefix}")

    if new_prefix and new_prefix != old_prefix:
        logger.info(f"Reemplazando el prefijo de tablas: {old_prefix} -> {new_prefix}")
        try:
            rewrite_prefix(input_path, old_prefix, new_prefix)
        except SQLDumpError as e:
            return False, f"No se pudo reemplazar el prefijo de tablas: {e}"

    result = wp.run("db import", [input_path])
    if result.status != 0:
        return False, f"No se pudo importar la base de datos: {result.stderr}"

    logger.info(":✓: Base de datos importada")

    if old_url and new_url:
        success, message = run_url_search_replace(
            wp, store.base_prefix(), old_url, new_url,
            original_blog_id, blog_id, verbose
        )
        if not success:
            return False, message

    target_prefix = compute_new_prefix(store.base_prefix(), blog_id)
    with tenant_context(store, blog_id):
        if old_prefix and old_prefix != target_prefix:
            if not store.rename_option(f"{old_prefix}user_roles", f"{target_prefix}user_roles"):
                logger.warning(f":!: No se pudo renombrar la opción {old_prefix}user_roles")
            elif verbose:
                logger.info(f"Opción de roles renombrada: {old_prefix}user_roles -> {target_prefix}user_roles")

        if new_url:
            home_url = build_home_url(new_url, old_url)
            for option in ('home', 'siteurl'):
                if not store.update_option(option, home_url):
                    return False, f"No se pudo actualizar la opción {option}"
            if verbose:
                logger.info(f"home/siteurl actualizados a {home_url}")

    logger.info(":✓: Importación de tablas completada")
    return True, "Importación de tablas completada"
