"""
Módulo de validación previa a la importación de un paquete de migración.

Realiza las comprobaciones necesarias antes de cualquier paso destructivo:
que el paquete sea un zip legible, que WP-CLI responda, que WordPress esté
instalado, que haya espacio en disco para la extracción y, una vez extraído,
que el paquete contenga los archivos obligatorios.

Funciones:
    check_package: Valida que el paquete exista, sea legible y sea un zip.
    check_wp_cli: Verifica que WP-CLI se pueda ejecutar.
    check_wordpress_installation: Verifica que WordPress esté instalado.
    check_disk_space: Garantiza espacio suficiente para extraer el paquete.
    locate_package_files: Localiza los archivos del paquete extraído.
    run_pre_import_validation: Ejecuta todas las validaciones previas.

Ejemplo:
    from validation import run_pre_import_validation

    if not run_pre_import_validation(wp, "sitio.zip", "/tmp"):
        print("La validación falló")
"""

import glob
import logging
import os
import shutil
import zipfile

from archive import sniff

logger = logging.getLogger(__name__)

PACKAGE_FOLDERS = {
    'plugins': 'wp-content/plugins',
    'themes': 'wp-content/themes',
    'uploads': 'wp-content/uploads',
}


def check_package(path: str) -> tuple:
    """
    Valida que el paquete exista, sea legible y tenga firma zip.

    Returns:
        Tupla con (success, message).
    """
    if not path or not os.path.isfile(path):
        return False, f"El paquete no existe: {path}"
    if not os.access(path, os.R_OK):
        return False, f"El paquete no se puede leer: {path}"
    if not sniff(path):
        return False, f"El archivo no parece ser un zip: {path}"
    return True, f"Paquete válido: {path}"


def check_wp_cli(wp) -> tuple:
    """
    Verifica que WP-CLI se pueda ejecutar.

    Returns:
        Tupla con (success, message).
    """
    result = wp.run("cli version")
    if result.status != 0:
        return False, f"WP-CLI no disponible ({wp.binary}): {result.stderr}"
    return True, result.stdout or "WP-CLI disponible"


def check_wordpress_installation(wp) -> tuple:
    """
    Verifica si WordPress está instalado en la ruta configurada.

    Returns:
        Tupla con (success, message).
    """
    result = wp.run("core is-installed")
    if result.status != 0:
        return False, "Instalación de WordPress no encontrada"

    version = wp.run("core version")
    if version.status == 0 and version.stdout:
        return True, f"WordPress {version.stdout} encontrado"
    return True, "WordPress encontrado (versión desconocida)"


def check_disk_space(package_path: str, work_dir: str) -> tuple:
    """
    Validar espacio de disco suficiente para extraer el paquete.

    Se exige el doble del tamaño descomprimido: la extracción y la copia
    de los archivos a su destino final.

    Returns:
        Tupla con (success, message).
    """
    try:
        with zipfile.ZipFile(package_path) as zf:
            required = sum(info.file_size for info in zf.infolist())
        available = shutil.disk_usage(work_dir).free
    except (OSError, zipfile.BadZipFile) as e:
        return False, f"No se pudo determinar el espacio necesario: {e}"

    required_mb = required * 2 // (1024 * 1024)
    available_mb = available // (1024 * 1024)

    if available >= required * 2:
        return True, (f"Espacio suficiente: {available_mb}MB disponibles, "
                      f"{required_mb}MB recomendados")
    return False, (f"Espacio insuficiente: {available_mb}MB disponibles, "
                   f"{required_mb}MB requeridos")


def _first_match(directory: str, pattern: str):
    matches = sorted(glob.glob(os.path.join(glob.escape(directory), pattern)))
    return matches[0] if matches else None


def locate_package_files(extract_dir: str) -> tuple:
    """
    Localiza los archivos de un paquete extraído.

    Los archivos .json, .csv y .sql son obligatorios; las carpetas de
    plugins, temas y uploads son opcionales.

    Returns:
        Tupla con (success, message, files). ``files`` tiene las claves
        'json', 'csv', 'sql', 'plugins', 'themes' y 'uploads' (None si faltan).
    """
    files = {
        'json': _first_match(extract_dir, '*.json'),
        'csv': _first_match(extract_dir, '*.csv'),
        'sql': _first_match(extract_dir, '*.sql'),
    }

    for key, folder in PACKAGE_FOLDERS.items():
        path = os.path.join(extract_dir, *folder.split('/'))
        files[key] = path if os.path.isdir(path) else None

    missing = [ext for ext in ('json', 'csv', 'sql') if not files[ext]]
    if missing:
        return False, (f"Hay un problema con el paquete, faltan archivos requeridos: "
                       f"{', '.join('*.' + m for m in missing)}"), files

    return True, "Archivos del paquete localizados", files


def run_pre_import_validation(wp, package_path: str, work_dir: str) -> bool:
    """
    Ejecutar todas las validaciones previas a la importación.

    Args:
        wp: Instancia de WPCLI de la instalación de destino.
        package_path: Ruta del paquete zip.
        work_dir: Directorio donde se extraerá el paquete.

    Returns:
        Booleano. True si se pasan todas las validaciones, de otra forma False.
    """
    logger.info("=" * 60)
    logger.info("Comenzando validación previa a la importación")
    logger.info("=" * 60)

    all_passed = True

    logger.info("[VALIDAR] Paquete de migración...")
    success, message = check_package(package_path)
    if success:
        logger.info(f":✓: ÉXITO: {message}")
    else:
        logger.error(f":x: FALLA: {message}")
        return False

    logger.info("[VALIDAR] WP-CLI...")
    success, message = check_wp_cli(wp)
    if success:
        logger.info(f":✓: ÉXITO: {message}")
    else:
        logger.error(f":x: FALLA: {message}")
        return False

    logger.info("[VALIDAR] Instalación de WordPress - Destino...")
    success, message = check_wordpress_installation(wp)
    if success:
        logger.info(f":✓: ÉXITO: {message}")
    else:
        logger.error(f":x: FALLA: {message}")
        all_passed = False

    logger.info("[VALIDAR] Espacio de disco...")
    success, message = check_disk_space(package_path, work_dir)
    if success:
        logger.info(f":✓: ÉXITO: {message}")
    else:
        logger.error(f":x: FALLA: {message}")
        all_passed = False

    logger.info("=" * 60)
    if all_passed:
        logger.info("Resumen de la validación: PRUEBAS EXITOSAS :✓:")
    else:
        logger.error("Resumen de la validación: ALGUNAS PRUEBAS FALLARON :x:")
    logger.info("=" * 60)

    return all_passed
