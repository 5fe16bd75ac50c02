"""
Envoltorio mínimo sobre WP-CLI.

Construye la línea de argumentos de un subcomando de ``wp`` (argumentos
posicionales, argumentos asociativos y globales) y la ejecuta con el
runner inyectado.

Ejemplo:
    from runner import LocalRunner
    from wpcli import WPCLI

    wp = WPCLI(LocalRunner(), path="/var/www/html")
    result = wp.run("db export", ["dump.sql"], {"tables": "wp_posts,wp_options"})
"""

import json
import logging

logger = logging.getLogger(__name__)


def build_args(command: str, args=(), assoc_args: dict = None,
               global_args: dict = None) -> list:
    """
    Convierte un subcomando y sus argumentos a la lista de argv de WP-CLI.

    Los valores booleanos True se emiten como ``--clave``, False y None se
    omiten, las listas generan una opción repetida por elemento.

    Args:
        command: Subcomando (ej. "db export").
        args: Argumentos posicionales.
        assoc_args: Argumentos asociativos del subcomando.
        global_args: Argumentos globales (path, url, allow-root).

    Returns:
        Lista de argumentos sin el ejecutable.
    """
    argv = command.split()
    argv.extend(str(a) for a in args)

    merged = dict(assoc_args or {})
    merged.update(global_args or {})

    for key, value in merged.items():
        if value is None or value is False:
            continue
        if value is True:
            argv.append(f"--{key}")
        elif isinstance(value, (list, tuple)):
            argv.extend(f"--{key}={v}" for v in value)
        else:
            argv.append(f"--{key}={value}")

    return argv


class WPCLI:
    """
    Invoca WP-CLI sobre una instalación concreta.

    Args:
        runner: Objeto con ``execute(command, args)``.
        binary: Ejecutable de WP-CLI.
        path: Ruta de la instalación de WordPress (--path).
        allow_root: Añadir --allow-root a cada invocación.
    """

    def __init__(self, runner, binary: str = "wp", path: str = None,
                 allow_root: bool = False):
        self.runner = runner
        self.binary = binary
        self.path = path
        self.allow_root = allow_root

    def run(self, command: str, args=(), assoc_args: dict = None,
            url: str = None):
        """Ejecuta un subcomando y devuelve el CommandResult."""
        global_args = {
            'path': self.path,
            'url': url,
            'allow-root': self.allow_root,
        }
        return self.runner.execute(
            self.binary,
            build_args(command, args, assoc_args, global_args)
        )

    def run_json(self, command: str, args=(), assoc_args: dict = None,
                 url: str = None, default=None):
        """
        Ejecuta un subcomando con --format=json y decodifica la salida.

        Returns:
            Objeto decodificado, o ``default`` si el comando falla o la
            salida no es JSON válido.
        """
        assoc = dict(assoc_args or {})
        assoc.setdefault('format', 'json')
        result = self.run(command, args, assoc, url=url)
        if result.status != 0:
            return default
        try:
            return json.loads(result.stdout) if result.stdout else default
        except ValueError:
            logger.debug(f"Salida no JSON de 'wp {command}': {result.stdout[:200]}")
            return default

    def eval(self, php: str, payload=None, url: str = None):
        """
        Ejecuta código PHP con ``wp eval``.

        El payload se pasa codificado en JSON como primer argumento
        posicional y está disponible en PHP como ``$args[0]``.
        """
        args = [php]
        if payload is not None:
            args.append(json.dumps(payload))
        return self.run("eval", args, url=url)

    def eval_json(self, php: str, payload=None, url: str = None, default=None):
        """Igual que eval() pero decodifica la salida JSON del código PHP."""
        result = self.eval(php, payload, url=url)
        if result.status != 0:
            return default
        try:
            return json.loads(result.stdout) if result.stdout else default
        except ValueError:
            return default
