"""
Módulo de tareas posteriores a la importación de un sitio.

Una vez restaurada la base de datos y colocados los archivos, elimina los
transients heredados del origen, regenera las reglas de reescritura y vacía
la caché de objetos del sitio de destino.

Funciones:
    delete_transients: Elimina todos los transients del sitio.
    flush_rewrite_rules: Regenera las reglas de reescritura.
    flush_object_cache: Vacía la caché de objetos.
    run_post_migration_tasks: Ejecuta todas las tareas posteriores.

Ejemplo:
    from postmigration import run_post_migration_tasks

    success = run_post_migration_tasks(wp, url="https://nuevo.example")
"""

import logging

logger = logging.getLogger(__name__)


def delete_transients(wp, url: str = None) -> tuple:
    """
    Elimina los transients del sitio.

    Returns:
        Tupla con (success, message).
    """
    logger.info("Eliminando transients...")
    result = wp.run("transient delete", assoc_args={'all': True}, url=url)
    if result.status != 0:
        return False, f"No se pudieron eliminar los transients: {result.stderr}"
    return True, "Transients eliminados"


def flush_rewrite_rules(wp, url: str = None) -> tuple:
    """
    Regenera las reglas de reescritura.

    Returns:
        Tupla con (success, message).
    """
    logger.info("Regenerando reglas de reescritura...")
    result = wp.run("rewrite flush", url=url)
    if result.status != 0:
        return False, f"No se pudieron regenerar las reglas de reescritura: {result.stderr}"
    return True, "Reglas de reescritura regeneradas"


def flush_object_cache(wp, url: str = None) -> tuple:
    """
    Vacía la caché de objetos.

    Returns:
        Tupla con (success, message).
    """
    logger.info("Vaciando caché de objetos...")
    result = wp.run("cache flush", url=url)
    if result.status != 0:
        return False, f"No se pudo vaciar la caché: {result.stderr}"
    return True, "Caché de objetos vaciada"


def run_post_migration_tasks(wp, url: str = None) -> bool:
    """
    Flujo de trabajo post-importación completo.

    Los fallos se registran como advertencias: el sitio ya está importado
    y las tareas se pueden repetir manualmente.

    Args:
        wp: Instancia de WPCLI de la instalación de destino.
        url: URL del sitio importado (--url de WP-CLI).

    Returns:
        Booleano. True si todas las tareas se completan con
        éxito, False en caso contrario.
    """
    logger.info("=" * 60)
    logger.info("Comenzando tareas post-importación")
    logger.info("=" * 60)

    all_passed = True
    for task in (delete_transients, flush_rewrite_rules, flush_object_cache):
        success, message = task(wp, url)
        if success:
            logger.info(f":✓: {message}")
        else:
            logger.warning(f":!: {message}")
            all_passed = False

    return all_passed
