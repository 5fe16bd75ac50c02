"""
Comandos compuestos de exportación e importación de un sitio completo.

export_all reúne metadatos, usuarios y tablas (y opcionalmente plugins,
temas y uploads) en un paquete zip. import_all lo extrae, prepara el sitio
de destino, restaura y adapta la base de datos, coloca los archivos,
importa los usuarios y reasigna la autoría de las entradas.

Los pasos no se deshacen si uno posterior falla: el primer error detiene
el comando con MigrationError y los archivos temporales se eliminan.
"""

import logging
import os
import re
import secrets
import tempfile
import unicodedata
from dataclasses import dataclass
from typing import Optional

from archive import read_package, write_package
from database import export_tables, import_tables
from errors import InvalidPackageError, MigrationError
from filesystem import delete_folder, place_plugins, place_themes, place_uploads
from postmigration import run_post_migration_tasks
from posts import AuthorUpdateReport, update_authors_from_file
from sites import (
    SiteMetadata,
    build_home_url,
    compute_new_prefix,
    resolve_target_site,
    tenant_context,
)
from sqldump import wrap_in_transaction
from users import UserImportResult, export_users, import_users
from validation import check_package, locate_package_files

logger = logging.getLogger(__name__)

FILE_PREFIX = 'wpmig'
MAP_FILE_NAME = 'users_map.json'


@dataclass
class ImportSummary:
    blog_id: int
    url: str
    users: UserImportResult
    authors: Optional[AuthorUpdateReport] = None


def slugify(value: str) -> str:
    value = unicodedata.normalize('NFKD', value or '').encode('ascii', 'ignore').decode('ascii')
    return re.sub(r'[^a-z0-9]+', '-', value.lower()).strip('-')


def package_base_name(site_name: str) -> str:
    """Nombre base de los archivos del paquete: <prefijo>-<aleatorio>-<sitio>."""
    return f"{FILE_PREFIX}-{secrets.token_hex(8)}-{slugify(site_name) or 'site'}"


def resolve_package_path(path: str, wp_path: str = None) -> str:
    """
    Ruta absoluta del paquete. Las rutas relativas se buscan en el
    directorio actual y, si no existen allí, en la instalación de WordPress.
    """
    if os.path.isabs(path):
        return path
    if os.path.exists(path) or not wp_path:
        return os.path.abspath(path)
    return os.path.join(os.path.abspath(wp_path), path)


def export_all(wp, store, output_path: str = None, blog_id: int = None, tables=None,
               custom_tables=None, include_plugins: bool = False,
               include_themes: bool = False, include_uploads: bool = False,
               login_suffix: str = '', login_suffix_trim: str = '',
               work_dir: str = None, hooks=None, verbose: bool = False) -> str:
    """
    Exporta un sitio completo a un paquete zip.

    Args:
        wp: Instancia de WPCLI.
        store: SiteStore de origen.
        output_path: Zip a crear (por defecto wpmig-<sitio>.zip).
        blog_id: Sitio a exportar.
        tables: Lista explícita de tablas.
        custom_tables: Tablas adicionales.
        include_plugins: Incluir la carpeta de plugins.
        include_themes: Incluir el tema activo y su tema padre.
        include_uploads: Incluir la carpeta de uploads del sitio.
        login_suffix: Sufijo a añadir a los logins.
        login_suffix_trim: Sufijo a quitar de los logins.
        work_dir: Directorio para archivos temporales.
        hooks: users.UserHooks.
        verbose: Mostrar detalles.

    Returns:
        Ruta del paquete creado.

    Raises:
        MigrationError: Si algún paso falla.
    """
    work_dir = work_dir or os.getcwd()

    with tenant_context(store, blog_id):
        metadata = SiteMetadata.from_dict(store.site_metadata())
        if not metadata.url:
            raise MigrationError("No se pudieron obtener los metadatos del sitio")
        metadata.blog_id = int(blog_id) if blog_id else 1

        if not output_path:
            output_path = os.path.join(work_dir, f"{FILE_PREFIX}-{slugify(metadata.name) or 'site'}.zip")

        base_name = package_base_name(metadata.name)
        temp_dir = tempfile.mkdtemp(prefix=f"{FILE_PREFIX}-", dir=work_dir)

        try:
            meta_file = os.path.join(temp_dir, f"{base_name}.json")
            users_file = os.path.join(temp_dir, f"{base_name}.csv")
            tables_file = os.path.join(temp_dir, f"{base_name}.sql")

            logger.info("Exportando metadatos del sitio...")
            metadata.save(meta_file)

            logger.info("Exportando usuarios...")
            export_users(store, users_file, blog_id, login_suffix, login_suffix_trim,
                         hooks, verbose)

            success, message = export_tables(wp, store, tables_file, blog_id, tables,
                                             custom_tables, verbose)
            if not success:
                raise MigrationError(message)

            entries = {os.path.basename(f): f for f in (users_file, tables_file, meta_file)}

            if include_plugins:
                entries['wp-content/plugins'] = store.plugins_dir()

            if include_themes:
                for theme_dir in store.active_theme_dirs():
                    entries[f"wp-content/themes/{os.path.basename(theme_dir.rstrip('/'))}"] = theme_dir

            if include_uploads:
                entries['wp-content/uploads'] = store.upload_basedir()

            logger.info("Comprimiendo archivos...")
            added = write_package(output_path, entries)
        finally:
            delete_folder(temp_dir)

    logger.info(f":✓: Paquete creado: {output_path} ({added} archivos)")
    return output_path


def import_all(wp, store, package_path: str, new_url: str = '',
               mysql_single_transaction: bool = False, uid_fields=None,
               work_dir: str = None, hooks=None, verbose: bool = False) -> ImportSummary:
    """
    Importa un paquete creado por export_all.

    Args:
        wp: Instancia de WPCLI de la instalación de destino.
        store: SiteStore de destino.
        package_path: Paquete zip (ruta absoluta o relativa).
        new_url: URL del sitio en el destino (por defecto la de origen).
        mysql_single_transaction: Envolver el volcado en una transacción.
        uid_fields: Metadatos de entrada que guardan IDs de usuario.
        work_dir: Directorio para la extracción.
        hooks: users.UserHooks.
        verbose: Mostrar detalles.

    Returns:
        ImportSummary del sitio importado.

    Raises:
        MigrationError: Si el paquete es inválido o falla un paso.
    """
    package_path = resolve_package_path(package_path, wp.path)
    success, message = check_package(package_path)
    if not success:
        raise InvalidPackageError(message)

    work_dir = work_dir or os.getcwd()
    temp_dir = tempfile.mkdtemp(prefix=f"{FILE_PREFIX}-", dir=work_dir)

    try:
        logger.info("Extrayendo paquete...")
        read_package(package_path, temp_dir)

        success, message, files = locate_package_files(temp_dir)
        if not success:
            raise InvalidPackageError(message)

        metadata = SiteMetadata.load(files['json'])
        old_url = metadata.url
        if new_url:
            metadata.url = new_url

        blog_id = resolve_target_site(store, metadata)
        if not blog_id:
            raise MigrationError("No se pudo obtener el ID del sitio de destino")

        new_prefix = compute_new_prefix(store.base_prefix(), blog_id)

        if mysql_single_transaction:
            wrap_in_transaction(files['sql'])

        success, message = import_tables(
            wp, store, files['sql'],
            blog_id=blog_id,
            original_blog_id=metadata.blog_id,
            old_prefix=metadata.db_prefix,
            new_prefix=new_prefix,
            old_url=old_url if new_url else '',
            new_url=new_url,
            verbose=verbose
        )
        if not success:
            raise MigrationError(message)

        logger.info("Moviendo archivos...")
        if files['plugins']:
            with tenant_context(store, blog_id):
                success, message = place_plugins(
                    store, files['plugins'], metadata.plugins,
                    metadata.blog_plugins, list(metadata.network_plugins), verbose
                )
            if not success:
                logger.warning(f":!: {message}")

        if files['uploads']:
            success, message = place_uploads(store, files['uploads'], blog_id)
            if not success:
                logger.warning(f":!: {message}")

        if files['themes']:
            success, message = place_themes(store, files['themes'], verbose)
            if not success:
                logger.warning(f":!: {message}")

        logger.info("Importando usuarios...")
        map_file = os.path.join(temp_dir, MAP_FILE_NAME)
        users = import_users(store, files['csv'], map_file, blog_id, hooks, verbose)

        authors = None
        if os.path.exists(map_file):
            authors = update_authors_from_file(store, map_file, blog_id, uid_fields, verbose)

        site_url = build_home_url(metadata.url, old_url)
        run_post_migration_tasks(wp, site_url if store.is_multisite() else None)
    finally:
        logger.info("Eliminando archivos temporales...")
        delete_folder(temp_dir)

    logger.info(f":✓: Todo listo, el nuevo sitio está disponible en {site_url}")
    return ImportSummary(blog_id=blog_id, url=site_url, users=users, authors=authors)
