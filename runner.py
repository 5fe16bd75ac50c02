"""
Ejecución de comandos externos.

Toda herramienta externa (WP-CLI y, a través de él, mysqldump/mysql y
search-replace) se invoca mediante un objeto con el método
``execute(command, args)`` que devuelve un CommandResult. El núcleo de la
migración solo depende de esa interfaz, por lo que las pruebas pueden
sustituir LocalRunner por una implementación con estados predefinidos.

Las invocaciones son síncronas y bloqueantes: no hay timeout ni reintentos.
"""

import logging
import subprocess
from collections import namedtuple

logger = logging.getLogger(__name__)

CommandResult = namedtuple('CommandResult', ['status', 'stdout', 'stderr'])
CommandResult.__doc__ = "Resultado de un comando externo: (status, stdout, stderr)."


class LocalRunner:
    """
    Ejecuta comandos en la máquina local con subprocess.

    Args:
        cwd: Directorio de trabajo para los comandos (opcional).
        env: Variables de entorno (opcional, por defecto las del proceso).
    """

    def __init__(self, cwd: str = None, env: dict = None):
        self.cwd = cwd
        self.env = env

    def execute(self, command: str, args=()) -> CommandResult:
        """
        Ejecuta un comando y espera a que termine.

        Args:
            command: Ejecutable a invocar.
            args: Argumentos posicionales del ejecutable.

        Returns:
            CommandResult con el código de salida, stdout y stderr.
        """
        argv = [command, *[str(a) for a in args]]
        logger.debug(f"Ejecutando: {' '.join(argv)}")

        try:
            completed = subprocess.run(
                argv,
                cwd=self.cwd,
                env=self.env,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            return CommandResult(127, "", str(e))

        return CommandResult(
            completed.returncode,
            completed.stdout.strip(),
            completed.stderr.strip(),
        )
