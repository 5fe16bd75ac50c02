"""
Excepciones de la herramienta de migración de WordPress.

Las operaciones a nivel de paquete (escritura/lectura del zip, reescritura
del volcado SQL, movimiento de carpetas) lanzan estas excepciones ante
problemas de E/S. Los comandos compuestos las dejan propagar hasta main.py,
que muestra el mensaje y termina con un estado distinto de cero.

Las excepciones por registro (AccountCreationError, RoleAssignmentError)
se capturan dentro de los motores de usuarios y se contabilizan.
"""


class MigrationError(Exception):
    """Error fatal que detiene el comando en curso."""


class ArchiveError(MigrationError):
    """No se pudo crear o leer el paquete zip."""


class UnsafeArchiveEntryError(ArchiveError):
    """El paquete contiene una entrada que escribiría fuera del destino."""

    def __init__(self, entry: str):
        super().__init__(f"Entrada insegura detectada en el paquete: {entry!r}")
        self.entry = entry


class InvalidPackageError(MigrationError):
    """El paquete no contiene los archivos requeridos o sus metadatos son inválidos."""


class SQLDumpError(MigrationError):
    """No se pudo reescribir el archivo de volcado SQL."""


class FolderMoveError(MigrationError):
    """No se pudo mover una carpeta a su destino."""


class AccountCreationError(Exception):
    """No se pudo crear una cuenta de usuario (error por fila, no fatal)."""


class RoleAssignmentError(Exception):
    """No se pudo asignar un rol a un usuario en un sitio.

    Attributes:
        code: 'user_does_not_exist', 'blog_does_not_exist', 'invalid_role'
            o 'meta_update_failed'.
    """

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
