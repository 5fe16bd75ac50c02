"""
Transferencia de paquetes de migración entre servidores vía SSH/SFTP.

Funciones:
    create_ssh_connection: Crea una conexión SSH a un servidor.
    execute_remote_command: Ejecuta un comando remoto.
    push_package: Sube un paquete exportado al servidor de destino.
    fetch_package: Descarga un paquete del servidor de origen.

Ejemplo:
    from config import get_server_config
    from transfer import push_package

    dest_config = get_server_config("Destino")
    success, message = push_package(dest_config, "sitio.zip", "/var/backups")
"""

import logging
import os
import posixpath
import shlex

import paramiko

logger = logging.getLogger(__name__)


SSH_TIMEOUT = 15


def create_ssh_connection(config: dict) -> paramiko.SSHClient:
    """
    Abre un cliente SSH con la configuración devuelta por get_server_config().

    La llave ('key_path') tiene prioridad sobre la contraseña.

    Raises:
        paramiko.SSHException: Si la autenticación o la conexión fallan.
        OSError: Si el host no es alcanzable.
    """
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    credentials = {'key_filename': config['key_path']} if config.get('key_path') \
        else {'password': config['password'], 'look_for_keys': False, 'allow_agent': False}

    logger.debug(f"Conectando a {config['username']}@{config['host']}:{config.get('port', 22)}")
    client.connect(
        hostname=config['host'],
        port=config.get('port', 22),
        username=config['username'],
        timeout=config.get('timeout', SSH_TIMEOUT),
        **credentials
    )
    return client


def execute_remote_command(ssh_client: paramiko.SSHClient, command: str) -> tuple:
    """Devuelve (exit_code, stdout, stderr) de un comando remoto."""
    _, stdout, stderr = ssh_client.exec_command(command)
    exit_code = stdout.channel.recv_exit_status()
    output = stdout.read().decode(errors='replace').strip()
    return exit_code, output, stderr.read().decode(errors='replace').strip()


def push_package(config: dict, local_path: str, remote_dir: str) -> tuple:
    """
    Sube un paquete al servidor remoto por SFTP.

    Args:
        config: Configuración SSH del servidor de destino.
        local_path: Paquete local.
        remote_dir: Directorio remoto (se crea si no existe).

    Returns:
        Tupla con (success, message, remote_path).
    """
    logger.info("=" * 60)
    logger.info("Transfiriendo paquete al servidor de destino")
    logger.info("=" * 60)

    if not os.path.isfile(local_path):
        return False, f"El paquete no existe: {local_path}", ""

    remote_path = posixpath.join(remote_dir, os.path.basename(local_path))
    ssh_client = None

    try:
        ssh_client = create_ssh_connection(config)

        exit_code, _, stderr = execute_remote_command(
            ssh_client, f"mkdir -p {shlex.quote(remote_dir)}"
        )
        if exit_code != 0:
            return False, f"Error al crear directorio de destino: {stderr}", ""

        logger.info(f"Subiendo {local_path} -> {config['host']}:{remote_path}")
        sftp = ssh_client.open_sftp()
        try:
            sftp.put(local_path, remote_path)
        finally:
            sftp.close()

        logger.info(":✓: Transferencia completada con éxito")
        return True, f"Paquete transferido: {remote_path}", remote_path

    except (paramiko.SSHException, OSError) as e:
        return False, f"Error en la transferencia: {e}", ""
    finally:
        if ssh_client:
            ssh_client.close()


def fetch_package(config: dict, remote_path: str, local_dir: str) -> tuple:
    """
    Descarga un paquete del servidor remoto por SFTP.

    Args:
        config: Configuración SSH del servidor de origen.
        remote_path: Paquete remoto.
        local_dir: Directorio local de descarga.

    Returns:
        Tupla con (success, message, local_path).
    """
    logger.info("=" * 60)
    logger.info("Descargando paquete del servidor de origen")
    logger.info("=" * 60)

    local_path = os.path.join(local_dir, posixpath.basename(remote_path))
    ssh_client = None

    try:
        os.makedirs(local_dir, exist_ok=True)
        ssh_client = create_ssh_connection(config)

        logger.info(f"Descargando {config['host']}:{remote_path} -> {local_path}")
        sftp = ssh_client.open_sftp()
        try:
            sftp.get(remote_path, local_path)
        finally:
            sftp.close()

        logger.info(":✓: Descarga completada con éxito")
        return True, f"Paquete descargado: {local_path}", local_path

    except (paramiko.SSHException, OSError) as e:
        return False, f"Error en la descarga: {e}", ""
    finally:
        if ssh_client:
            ssh_client.close()
