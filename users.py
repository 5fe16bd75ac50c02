"""
Exportación e importación de usuarios mediante CSV.

La exportación se hace en dos pasadas: la primera reúne los registros y
descubre las claves de metadatos (en el orden en que aparecen); la segunda
escribe la cabecera completa y las filas rellenadas con celdas vacías.

La importación procesa cada fila con los estados
PARSING -> MATCHING -> {CREATING | REUSING} -> META_MERGE -> MAPPED
(o SKIPPED / FAILED) y genera el mapa de IDs origen -> destino.
"""

import csv
import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from csvcodec import decode_cell, encode_cell, unwrap_meta
from errors import AccountCreationError, MigrationError, RoleAssignmentError
from idmap import save_id_map
from sites import grant_role_without_context_switch, tenant_context

logger = logging.getLogger(__name__)

CSV_DELIMITER = ','

# Campos de la cuenta
ACCOUNT_FIELDS = [
    'ID',
    'user_login',
    'user_pass',
    'user_nicename',
    'user_email',
    'user_url',
    'user_registered',
    'role',
    'user_status',
    'display_name',
]

# Metadatos de perfil con columna fija
PROFILE_FIELDS = [
    'rich_editing',
    'admin_color',
    'show_admin_bar_front',
    'first_name',
    'last_name',
    'nickname',
    'aim',
    'yim',
    'jabber',
    'description',
]

CSV_HEADERS = ACCOUNT_FIELDS + PROFILE_FIELDS

EXCLUDED_META_KEYS = frozenset({'session_tokens', 'primary_blog', 'source_domain'})

# Claves que dependen del prefijo de tablas de la instalación
EXCLUDED_META_PATTERNS = tuple(re.compile(p) for p in (
    r'capabilities$',
    r'user_level$',
    r'dashboard_quick_press_last_post_id$',
    r'user-settings$',
    r'user-settings-time$',
))


@dataclass
class UserHooks:
    """
    Puntos de extensión de la exportación/importación de usuarios.

    Attributes:
        export_headers: Columnas fijas adicionales.
        export_data: fn(user) -> dict con valores para esas columnas.
        import_before: fn(record, user_id) antes de los datos adicionales.
        import_data: fn(user_id) -> dict de metadatos adicionales.
        import_after: fn(record, user_id) al terminar la fila.
    """
    export_headers: list = field(default_factory=list)
    export_data: Optional[Callable] = None
    import_before: Optional[Callable] = None
    import_data: Optional[Callable] = None
    import_after: Optional[Callable] = None


class RowState(Enum):
    PARSING = 'parsing'
    MATCHING = 'matching'
    CREATING = 'creating'
    REUSING = 'reusing'
    META_MERGE = 'meta_merge'
    MAPPED = 'mapped'
    SKIPPED = 'skipped'
    FAILED = 'failed'


@dataclass
class UserImportResult:
    created: int = 0
    existing: int = 0
    skipped: int = 0
    failed: int = 0
    id_map: dict = field(default_factory=dict)
    states: list = field(default_factory=list)


def normalize_suffix(value: str) -> str:
    """Normaliza un sufijo de login: sin espacios, minúsculas y con "@" inicial."""
    value = (value or '').strip().lower()
    if not value:
        return ''
    if not value.startswith('@'):
        value = '@' + value
    return value


def resolve_suffixes(login_suffix: str, login_suffix_trim: str) -> tuple:
    """
    Normaliza los sufijos de login.

    Si ambos coinciden tras normalizarlos la configuración no tiene sentido:
    se desactivan los dos y se emite una advertencia.

    Returns:
        Tupla (sufijo_a_añadir, sufijo_a_quitar).
    """
    suffix = normalize_suffix(login_suffix)
    trim = normalize_suffix(login_suffix_trim)
    if suffix and suffix == trim:
        logger.warning(
            f":!: El sufijo a añadir y el sufijo a quitar son idénticos ({suffix}), se ignoran ambos"
        )
        return '', ''
    return suffix, trim


def normalize_login(login: str, suffix: str = '', trim: str = '') -> str:
    """
    Aplica los sufijos (ya normalizados) a un login.

    Primero quita ``trim`` si el login termina en él y después añade
    ``suffix`` si el login no contiene "@".
    """
    if trim and login.lower().endswith(trim):
        login = login[:-len(trim)]
    if suffix and '@' not in login:
        login = login + suffix
    return login


def is_excluded_meta(key: str) -> bool:
    if key in EXCLUDED_META_KEYS:
        return True
    return any(pattern.search(key) for pattern in EXCLUDED_META_PATTERNS)


def _collect_records(store, headers: list, blog_id, suffix: str, trim: str,
                     hooks: UserHooks) -> tuple:
    """Primera pasada: registros de usuario y claves de metadatos descubiertas."""
    records = []
    meta_columns = []
    known = set(headers)

    for user in store.iter_users(blog_id):
        roles = user.get('roles') or []
        record = dict.fromkeys(headers, '')
        record.update({
            'ID': encode_cell(user.get('ID')),
            'user_login': normalize_login(str(user.get('user_login') or ''), suffix, trim),
            'user_pass': encode_cell(user.get('user_pass')),
            'user_nicename': encode_cell(user.get('user_nicename')),
            'user_email': encode_cell(user.get('user_email')),
            'user_url': encode_cell(user.get('user_url')),
            'user_registered': encode_cell(user.get('user_registered')),
            'role': roles[0] if roles else '',
            'user_status': encode_cell(user.get('user_status')),
            'display_name': encode_cell(user.get('display_name')),
        })

        meta = store.get_user_meta(user['ID']) or {}
        for key, values in meta.items():
            if is_excluded_meta(key):
                continue
            record[key] = encode_cell(unwrap_meta(values))
            if key not in known:
                known.add(key)
                meta_columns.append(key)

        if hooks.export_data:
            custom = hooks.export_data(user) or {}
            record.update({k: encode_cell(v) for k, v in custom.items()})

        if set(record) - known:
            raise MigrationError(
                f"Las cabeceras y los datos no coinciden para el usuario {record['user_login']}"
            )

        records.append(record)

    return records, meta_columns


def export_users(store, output_path: str, blog_id=None, login_suffix: str = '',
                 login_suffix_trim: str = '', hooks: UserHooks = None,
                 verbose: bool = False) -> int:
    """
    Exporta los usuarios de la instalación (o de un sitio) a un CSV.

    Args:
        store: SiteStore de origen.
        output_path: Ruta del CSV a crear.
        blog_id: Limitar a los usuarios de este sitio.
        login_suffix: Sufijo a añadir a los logins sin "@".
        login_suffix_trim: Sufijo a quitar de los logins.
        hooks: Puntos de extensión.
        verbose: Mostrar detalles.

    Returns:
        Número de usuarios exportados.

    Raises:
        MigrationError: Si el archivo no se puede crear o una fila no
            coincide con la cabecera.
    """
    hooks = hooks or UserHooks()
    suffix, trim = resolve_suffixes(login_suffix, login_suffix_trim)
    headers = CSV_HEADERS + [h for h in hooks.export_headers if h not in CSV_HEADERS]

    records, meta_columns = _collect_records(store, headers, blog_id, suffix, trim, hooks)
    columns = headers + meta_columns

    if verbose:
        logger.info(f"Columnas de metadatos descubiertas: {len(meta_columns)}")

    try:
        with open(output_path, 'w', newline='', encoding='utf-8') as fh:
            writer = csv.writer(fh, delimiter=CSV_DELIMITER)
            writer.writerow(columns)
            for record in records:
                writer.writerow([record.get(column, '') for column in columns])
    except OSError as e:
        raise MigrationError(f"Imposible crear el archivo {output_path}: {e}") from e

    logger.info(f":✓: {len(records)} usuarios exportados")
    return len(records)


def _parse_old_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _run_hooks(store, hooks: UserHooks, record: dict, user_id: int) -> None:
    if hooks.import_before:
        hooks.import_before(record, user_id)
    if hooks.import_data:
        for key, value in (hooks.import_data(user_id) or {}).items():
            if not store.update_user_meta(user_id, key, value):
                logger.warning(f":!: No se pudo guardar {key} del usuario {user_id}")
    if hooks.import_after:
        hooks.import_after(record, user_id)


def _create_user(store, record: dict, hooks: UserHooks) -> int:
    fixed = {k: record[k] for k in CSV_HEADERS if k in record and k != 'ID'}
    meta = {k: v for k, v in record.items() if k not in fixed and k != 'ID'}

    user_id = store.insert_user(fixed)
    if not store.set_user_password_hash(user_id, record.get('user_pass', '')):
        raise AccountCreationError(f"no se pudo fijar el hash de contraseña del usuario {user_id}")

    for key, value in meta.items():
        if not store.update_user_meta(user_id, key, decode_cell(value)):
            raise AccountCreationError(f"no se pudo guardar {key} del usuario {user_id}")

    _run_hooks(store, hooks, record, user_id)
    return user_id


def import_users(store, input_path: str, map_file: str = None, blog_id: int = 1,
                 hooks: UserHooks = None, verbose: bool = False) -> UserImportResult:
    """
    Importa usuarios desde un CSV y genera el mapa de IDs.

    Las cuentas existentes (mismo login, o mismo email no vacío) se
    reutilizan; el resto se crean conservando el hash de contraseña
    original. En multisitio el rol de la fila se asigna en blog_id.
    Los errores de una fila se registran y la importación continúa.

    Args:
        store: SiteStore de destino.
        input_path: CSV exportado por export_users.
        map_file: Ruta del JSON de mapa de IDs (solo se escribe si no está vacío).
        blog_id: Sitio de destino.
        hooks: Puntos de extensión.
        verbose: Mostrar detalles por fila.

    Returns:
        UserImportResult con contadores, mapa de IDs y estado final por fila.

    Raises:
        MigrationError: Si el CSV no existe o no se puede leer.
    """
    hooks = hooks or UserHooks()
    result = UserImportResult()

    if not input_path or not os.path.isfile(input_path):
        raise MigrationError(f"Archivo de entrada inválido: {input_path}")

    multisite = store.is_multisite()

    if verbose:
        logger.info(f"Procesando {input_path}...")

    try:
        with open(input_path, newline='', encoding='utf-8') as fh, tenant_context(store, blog_id):
            reader = csv.reader(fh, delimiter=CSV_DELIMITER)
            labels = next(reader, None) or []

            for line, row in enumerate(reader, start=2):
                state = _import_row(store, labels, row, line, result, hooks, blog_id,
                                    multisite, verbose)
                result.states.append(state)
    except OSError as e:
        raise MigrationError(f"No se puede leer el archivo {input_path}: {e}") from e

    if result.skipped:
        logger.warning(f":!: {result.skipped} filas omitidas por no coincidir con la cabecera")
    if result.failed:
        logger.warning(f":!: {result.failed} usuarios no se pudieron crear")

    if result.id_map and map_file:
        save_id_map(map_file, result.id_map)
        logger.info(f":✓: Mapa de IDs creado: {map_file}")

    logger.info(
        f":✓: {result.created} usuarios importados y {result.existing} ya existían"
    )
    return result


def _import_row(store, labels: list, row: list, line: int, result: UserImportResult,
                hooks: UserHooks, blog_id: int, multisite: bool, verbose: bool) -> RowState:
    state = RowState.PARSING
    if len(row) != len(labels):
        if verbose:
            logger.warning(f":!: Línea {line}: la cabecera y los datos no coinciden, se omite")
        result.skipped += 1
        return RowState.SKIPPED

    record = dict(zip(labels, row))
    login = record.get('user_login', '')

    state = RowState.MATCHING
    try:
        user_id = store.find_user(login, record.get('user_email', ''))
        if user_id is None:
            state = RowState.CREATING
            user_id = _create_user(store, record, hooks)
            state = RowState.META_MERGE
            result.created += 1
    except AccountCreationError as e:
        if verbose:
            logger.warning(f":!: Error al crear {login}: {e}")
        result.failed += 1
        return RowState.FAILED

    if state == RowState.MATCHING:
        state = RowState.REUSING
        if verbose:
            logger.warning(f":!: {login} ya existe, se usa el ID {user_id}")
        result.existing += 1

    role = record.get('role', '')
    if multisite and role:
        try:
            grant_role_without_context_switch(store, blog_id, user_id, role)
        except RoleAssignmentError as e:
            logger.warning(f":!: No se pudo asignar el rol {role} a {login}: {e} ({e.code})")

    old_id = _parse_old_id(record.get('ID'))
    if old_id is None:
        if verbose:
            logger.warning(f":!: Línea {line}: ID de origen inválido, no se incluye en el mapa")
        return state

    result.id_map[old_id] = int(user_id)
    if verbose:
        logger.info(f"{login}: {old_id} -> {user_id}")
    return RowState.MAPPED
