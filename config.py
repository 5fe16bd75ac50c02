"""
Módulo de configuración de la herramienta de migración de WordPress.

Reúne la configuración de logging, los ajustes de WP-CLI y del directorio
de trabajo, la configuración SSH de los servidores remotos y las utilidades
interactivas (banners, preguntas sí/no, resumen antes de importar).

Los valores predeterminados se cargan desde variables de entorno mediante
dotenv, lo que permite usar la herramienta en flujos no interactivos.

Funciones:
    setup_logging: Configura el logging de la aplicación.
    print_banner: Muestra el banner inicial de la aplicación.
    print_section: Muestra un encabezado de sección en consola.
    get_input: Solicita una entrada al usuario con valor predeterminado opcional.
    get_yes_no: Solicita una confirmación de sí/no al usuario.
    validate_ip_or_hostname: Valida el formato de una dirección IP o nombre de host.
    validate_port: Valida un número de puerto.
    validate_file_path: Verifica la existencia de un archivo en el sistema.
    get_wp_settings: Ajustes de WP-CLI (ejecutable, ruta, --allow-root).
    get_work_dir: Directorio de trabajo para archivos temporales.
    get_server_config: Configuración SSH de un servidor (Origen o Destino).
    display_configuration_summary: Muestra un resumen de la importación.

Ejemplo:
    from config import setup_logging, get_wp_settings

    setup_logging()
    settings = get_wp_settings()
"""

import getpass
import logging
import os
import sys

from dotenv import load_dotenv
load_dotenv()

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
DEFAULT_LOG_FILE = 'wp_migration.log'

SERVER_NAME_MAP = {
    "origen": "SOURCE",
    "destino": "DESTINATION",
    "source": "SOURCE",
    "destination": "DESTINATION"
}


def setup_logging(verbose: bool = False):
    """
    Configura logging a archivo y a la salida estándar.

    Args:
        verbose: Registrar también los mensajes de depuración.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(os.getenv("WPMIG_LOG_FILE", DEFAULT_LOG_FILE)),
            logging.StreamHandler(sys.stdout)
        ]
    )
    logging.getLogger("paramiko").setLevel(logging.WARNING)


def print_banner():
    """Imprimir banner de la aplicación"""
    print("\n" + "=" * 60)
    print("    WPMIG: Migrador de sitios WordPress")
    print("=" * 60 + "\n")


def print_section(title: str):
    """Imprimir encabezado"""
    print(f"\n{'─' * 60}")
    print(f"    {title}")
    print('─' * 60)


def get_input(prompt: str, default: str = None) -> str:
    """
    Obtiene una entrada del usuario con un valor predeterminado opcional.

    Args:
        prompt: Mensaje que se mostrará al usuario.
        default: Valor predeterminado si el usuario presiona Enter.

    Returns:
        La entrada proporcionada por el usuario o el valor predeterminado.
    """
    if default:
        user_input = input(f"{prompt} [{default}]: ").strip()
        return user_input if user_input else default

    user_input = input(f"{prompt}: ").strip()
    while not user_input:
        print(":!: Este campo no puede quedar vacío. Por favor intente de nuevo.")
        user_input = input(f"{prompt}: ").strip()
    return user_input


def get_yes_no(prompt: str, default: bool = True) -> bool:
    """
    Obtiene una confirmación de sí/no por parte del usuario.

    Args:
        prompt: Pregunta que se mostrará al usuario.
        default: Valor predeterminado (True para sí, False para no).

    Returns:
        Respuesta booleana.
    """
    default_str = "S/n" if default else "s/N"

    response = input(f"{prompt} [{default_str}]: ").strip().lower()

    if not response:
        return default

    return response in ['y', 'yes', 's', 'si', 'sí']


def validate_ip_or_hostname(value: str) -> bool:
    """
    Realiza una validación básica de una dirección IP o un nombre de host.

    Args:
        value: Cadena que representa la dirección IP o el nombre de host.

    Returns:
        True si el formato es válido.
    """
    if not value or len(value) > 253:
        return False

    parts = value.split('.')

    # Dirección IPv4 (4 partes, todas numéricas)
    if len(parts) == 4 and all(part.isdigit() and 0 <= int(part) <= 255 for part in parts):
        return True

    # Hostname (caracteres alfanuméricos y puntos/guiones)
    return all(c.isalnum() or c in '.-' for c in value)


def validate_port(port_str: str) -> bool:
    """
    Valida un número de puerto.

    Args:
        port_str: Número de puerto como cadena.

    Returns:
        True si el puerto es válido (1–65535).
    """
    try:
        port = int(port_str)
        return 1 <= port <= 65535
    except (TypeError, ValueError):
        return False


def validate_file_path(path: str) -> bool:
    """Verifica si un archivo existe."""
    return os.path.isfile(path)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'si', 'sí', 'on')


def get_wp_settings() -> dict:
    """
    Ajustes de WP-CLI desde el entorno.

    Variables: WP_CLI_BIN (ejecutable, "wp" por defecto), WP_PATH (ruta de
    la instalación) y WP_ALLOW_ROOT (añadir --allow-root).

    Returns:
        Diccionario con 'binary', 'path' y 'allow_root'.
    """
    return {
        'binary': os.getenv("WP_CLI_BIN", "wp"),
        'path': os.getenv("WP_PATH") or None,
        'allow_root': _env_bool("WP_ALLOW_ROOT"),
    }


def get_work_dir() -> str:
    """Directorio de trabajo (WPMIG_WORK_DIR o el directorio actual)."""
    return os.path.abspath(os.getenv("WPMIG_WORK_DIR") or os.getcwd())


def get_server_config(server_name: str, host: str = None, interactive: bool = True) -> dict:
    """
    Obtiene los parámetros de conexión SSH para un servidor (Origen o Destino).

    Las variables de entorno (por ejemplo, SOURCE_HOST, DESTINATION_USER,
    DESTINATION_KEY_PATH) se utilizan como valores predeterminados. Solo se
    pregunta al usuario por los datos que faltan, y únicamente en modo
    interactivo.

    Args:
        server_name: Nombre del servidor ("Origen" o "Destino").
        host: Host que reemplaza a <PREFIJO>_HOST.
        interactive: Permitir preguntas al usuario.

    Returns:
        Diccionario con la configuración de conexión del servidor.

    Raises:
        ValueError: Si falta un dato obligatorio o es inválido.
    """
    normalized_name = server_name.strip().lower()
    env_prefix = SERVER_NAME_MAP.get(normalized_name, server_name.upper())

    def value(key, prompt, default=None):
        current = os.getenv(f"{env_prefix}_{key}", default)
        if current:
            return current
        if not interactive:
            raise ValueError(f"{server_name}: falta {env_prefix}_{key}")
        return get_input(prompt)

    config = {}

    host = host or value("HOST", f"{server_name} — Hostname o dirección IP")
    if not validate_ip_or_hostname(host):
        raise ValueError(f"{server_name}: hostname o dirección IP inválida: {host}")
    config['host'] = host

    port = os.getenv(f"{env_prefix}_PORT", "22")
    if not validate_port(port):
        raise ValueError(f"{server_name}: número de puerto inválido (debe ser 1-65535)")
    config['port'] = int(port)

    config['username'] = value("USER", "Usuario SSH")

    key_path = os.getenv(f"{env_prefix}_KEY_PATH")
    if key_path and validate_file_path(os.path.expanduser(key_path)):
        config['key_path'] = os.path.expanduser(key_path)
        return config

    if key_path:
        print(f":!: Archivo no encontrado: {key_path}, se usa contraseña")

    password = os.getenv(f"{env_prefix}_PASSWORD")
    if not password:
        if not interactive:
            raise ValueError(f"{server_name}: falta {env_prefix}_KEY_PATH o {env_prefix}_PASSWORD")
        password = getpass.getpass(f"{server_name} contraseña SSH del servidor: ")
    config['password'] = password

    return config


def display_configuration_summary(settings: dict):
    """
    Muestra un resumen de la importación antes de confirmarla.

    Args:
        settings: Diccionario con 'package', 'wp_path', 'new_url',
            'transaction' y 'uid_fields'.
    """
    print_section("Resumen de la importación")

    print(f"\n   Paquete:      {settings.get('package')}")
    print(f"   WordPress:    {settings.get('wp_path') or '(directorio actual)'}")
    print(f"   URL nueva:    {settings.get('new_url') or '(sin cambio)'}")
    print(f"   Transacción:  {'Sí' if settings.get('transaction') else 'No'}")
    if settings.get('uid_fields'):
        print(f"   Campos UID:   {settings.get('uid_fields')}")

    print()
