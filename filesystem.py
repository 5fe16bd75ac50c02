"""
Módulo de colocación de archivos (plugins, temas y uploads) en la instalación
de destino.

Los directorios extraídos del paquete se mueven a su ubicación definitiva
sin sobrescribir nunca un plugin o tema ya instalado; después se activan
los plugins y se habilitan los temas mediante WP-CLI.

Funciones:
    delete_folder: Elimina un directorio (o solo su contenido).
    move_folder: Mueve un archivo o directorio (rename, o copia + borrado).
    place_plugins: Mueve y activa los plugins del paquete.
    place_themes: Mueve y habilita los temas del paquete.
    place_uploads: Mueve los uploads al directorio del sitio de destino.

Ejemplo:
    from filesystem import place_themes

    success, message = place_themes(store, "/tmp/wpmig-x/wp-content/themes")
"""

import logging
import os
import shutil

from errors import FolderMoveError
from sites import tenant_context

logger = logging.getLogger(__name__)


def delete_folder(path: str, delete_parent: bool = True) -> bool:
    """
    Elimina un directorio de forma recursiva.

    Args:
        path: Directorio a eliminar.
        delete_parent: Si es False solo se vacía el directorio.

    Returns:
        True si había algo que eliminar.
    """
    if not os.path.isdir(path):
        return False

    if delete_parent:
        shutil.rmtree(path)
        return True

    for entry in os.scandir(path):
        if entry.is_dir(follow_symlinks=False):
            shutil.rmtree(entry.path)
        else:
            os.remove(entry.path)
    return True


def _is_inside(path: str, parent: str) -> bool:
    return path == parent or path.startswith(parent.rstrip(os.sep) + os.sep)


def move_folder(source: str, dest: str) -> None:
    """
    Mueve un archivo o directorio a dest.

    Intenta primero un rename; si falla (otro dispositivo, permisos o
    destino no vacío) copia preservando permisos y fechas, fusionando con el
    contenido existente, y elimina el origen.

    Raises:
        FolderMoveError: Si el origen no existe, el destino está dentro del
            origen o la copia falla.
    """
    if not os.path.exists(source):
        raise FolderMoveError(f"El origen no existe: {source}")

    src_real = os.path.realpath(source)
    dest_real = os.path.realpath(dest)
    if os.path.isdir(src_real) and _is_inside(dest_real, src_real):
        raise FolderMoveError(f"El destino no puede estar dentro del origen ({dest})")

    try:
        os.makedirs(os.path.dirname(dest_real), exist_ok=True)
    except OSError as e:
        raise FolderMoveError(f"No se pudo crear el destino {dest}: {e}") from e

    try:
        os.rename(src_real, dest_real)
        return
    except OSError:
        logger.debug(f"rename no disponible para {source}, se copia")

    try:
        if os.path.isdir(src_real):
            shutil.copytree(src_real, dest_real, copy_function=shutil.copy2, dirs_exist_ok=True)
            shutil.rmtree(src_real)
        else:
            shutil.copy2(src_real, dest_real)
            os.remove(src_real)
    except (OSError, shutil.Error) as e:
        raise FolderMoveError(f"No se pudo mover {source} a {dest}: {e}") from e


def _plugin_paths(source_dir: str, plugins_dir: str, plugin_file: str) -> tuple:
    # Los plugins de un solo archivo se mueven como archivo
    folder = os.path.dirname(plugin_file) or plugin_file
    return os.path.join(source_dir, folder), os.path.join(plugins_dir, folder)


def place_plugins(store, source_dir: str, plugins: dict, blog_plugins=None,
                  network_plugins=None, verbose: bool = False) -> tuple:
    """
    Mueve los plugins del paquete a la carpeta de plugins y los activa.

    Si alguna de las listas de activos no está vacía solo se procesan los
    plugins que aparecen en ellas; si ambas están vacías se mueven todos y
    no se activa ninguno. Un plugin ya instalado nunca se sobrescribe.

    Args:
        store: SiteStore de destino.
        source_dir: Carpeta wp-content/plugins extraída.
        plugins: Inventario archivo_plugin -> datos.
        blog_plugins: Plugins activos en el sitio.
        network_plugins: Plugins activos en la red.
        verbose: Mostrar detalles.

    Returns:
        Tupla con (success, message).
    """
    if not os.path.isdir(source_dir):
        return False, f"No se encontró la carpeta de plugins: {source_dir}"

    logger.info("Moviendo plugins...")

    blog_plugins = list(blog_plugins or [])
    network_plugins = list(network_plugins or [])
    selective = bool(blog_plugins or network_plugins)
    plugins_dir = store.plugins_dir()

    moved = 0
    activated = 0
    for plugin_file in plugins or {}:
        if selective and plugin_file not in blog_plugins and plugin_file not in network_plugins:
            continue

        src, dst = _plugin_paths(source_dir, plugins_dir, plugin_file)
        if os.path.exists(src) and not os.path.exists(dst):
            if verbose:
                logger.info(f"Moviendo {plugin_file} a la carpeta de plugins")
            try:
                move_folder(src, dst)
                moved += 1
            except FolderMoveError as e:
                logger.warning(f":!: {e}")
                continue
        elif os.path.exists(dst) and verbose:
            logger.warning(f":!: {plugin_file} ya está instalado, no se sobrescribe")

        if plugin_file in blog_plugins:
            network = False
        elif plugin_file in network_plugins:
            network = True
        else:
            continue

        if verbose:
            logger.info(f"Activando plugin{' en la red' if network else ''}: {plugin_file}")
        success, output = store.activate_plugin(plugin_file, network=network)
        if success:
            activated += 1
        else:
            logger.warning(f":!: Error al activar {plugin_file}: {output}")

    logger.info(f":✓: Plugins movidos: {moved} | activados: {activated}")
    return True, f"{moved} plugins movidos y {activated} activados"


def place_themes(store, source_dir: str, verbose: bool = False) -> tuple:
    """
    Mueve cada tema del paquete (subdirectorios de source_dir) a la carpeta
    de temas y lo habilita. Los temas ya instalados no se tocan.

    Returns:
        Tupla con (success, message).
    """
    if not os.path.isdir(source_dir):
        return False, f"No se encontró la carpeta de temas: {source_dir}"

    logger.info("Moviendo temas...")

    themes_dir = store.themes_dir()
    moved = 0
    for slug in sorted(os.listdir(source_dir)):
        src = os.path.join(source_dir, slug)
        if not os.path.isdir(src):
            continue

        dst = os.path.join(themes_dir, slug)
        if os.path.exists(dst):
            if verbose:
                logger.warning(f":!: El tema {slug} ya existe, no se sobrescribe")
            continue

        if verbose:
            logger.info(f"Moviendo {slug} a la carpeta de temas")
        try:
            move_folder(src, dst)
        except FolderMoveError as e:
            logger.warning(f":!: {e}")
            continue
        moved += 1

        success, output = store.enable_theme(slug)
        if not success:
            logger.warning(f":!: No se pudo habilitar el tema {slug}: {output}")

    logger.info(f":✓: Temas movidos: {moved}")
    return True, f"{moved} temas movidos"


def place_uploads(store, source_dir: str, blog_id: int = 1) -> tuple:
    """
    Mueve el árbol de uploads al directorio de uploads del sitio blog_id.

    Returns:
        Tupla con (success, message).
    """
    if not os.path.isdir(source_dir):
        return False, f"No se encontró la carpeta de uploads: {source_dir}"

    logger.info("Moviendo uploads...")

    with tenant_context(store, blog_id):
        basedir = store.upload_basedir()

    if not basedir:
        return False, "No se pudo obtener el directorio de uploads del sitio"

    try:
        move_folder(source_dir, basedir)
    except FolderMoveError as e:
        return False, str(e)

    logger.info(f":✓: Uploads movidos a {basedir}")
    return True, f"Uploads movidos a {basedir}"
