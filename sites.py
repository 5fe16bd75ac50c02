"""
Aprovisionamiento del sitio de destino y reescritura de URLs.

Este módulo decide en qué sitio se importa el paquete (creándolo en una
instalación multisitio), calcula el prefijo de tablas de ese sitio, asigna
roles a usuarios sin cambiar de contexto y lanza las dos pasadas de
search-replace (URL del sitio y ruta de uploads).

Funciones:
    compute_new_prefix: Prefijo de tablas de un sitio.
    parse_url_for_search_replace: Normaliza una URL a host+ruta.
    split_site_url: Separa una URL en dominio y ruta de sitio.
    build_home_url: URL absoluta para las opciones home/siteurl.
    create_site: Crea un sitio nuevo en la red.
    resolve_target_site: Sitio de destino de la importación.
    grant_role_without_context_switch: Asigna un rol escribiendo metadatos.
    tenant_context / with_tenant: Cambio de sitio con restauración garantizada.
    uploads_path_pair: Rutas de uploads de origen y destino.
    run_url_search_replace: Ejecuta las pasadas de search-replace.
"""

import json
import logging
import re
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from urllib.parse import urlsplit

from config import validate_ip_or_hostname
from errors import InvalidPackageError, RoleAssignmentError

logger = logging.getLogger(__name__)

DEFAULT_BLOG_ID = 1
UPLOADS_PATH = 'wp-content/uploads'

_SCHEME_RE = re.compile(r'^[a-z][a-z0-9+\-.]*://', re.IGNORECASE)
_LEVEL_RE = re.compile(r'^level_(\d+)$')


@dataclass
class SiteMetadata:
    """Metadatos del sitio exportado, serializados como JSON dentro del paquete."""

    url: str
    name: str = ''
    admin_email: str = ''
    site_language: str = ''
    db_prefix: str = ''
    plugins: dict = field(default_factory=dict)
    blog_plugins: list = field(default_factory=list)
    network_plugins: dict = field(default_factory=dict)
    blog_id: int = DEFAULT_BLOG_ID

    @classmethod
    def from_dict(cls, data: dict) -> 'SiteMetadata':
        # PHP codifica los arreglos vacíos como [] y los asociativos como {}
        plugins = data.get('plugins') or {}
        blog_plugins = data.get('blog_plugins') or []
        network_plugins = data.get('network_plugins') or {}

        if isinstance(blog_plugins, dict):
            blog_plugins = list(blog_plugins.values())
        if isinstance(network_plugins, list):
            network_plugins = {name: 0 for name in network_plugins}

        blog_id = data.get('blog_id', DEFAULT_BLOG_ID)
        try:
            blog_id = int(blog_id)
        except (TypeError, ValueError):
            blog_id = 0

        return cls(
            url=str(data.get('url') or ''),
            name=str(data.get('name') or ''),
            admin_email=str(data.get('admin_email') or ''),
            site_language=str(data.get('site_language') or ''),
            db_prefix=str(data.get('db_prefix') or ''),
            plugins=dict(plugins) if isinstance(plugins, dict) else {},
            blog_plugins=list(blog_plugins),
            network_plugins=dict(network_plugins),
            blog_id=blog_id,
        )

    def validate(self) -> None:
        """
        Verifica las invariantes de los metadatos.

        Raises:
            InvalidPackageError: URL sin host válido o blog_id no positivo.
        """
        domain, _ = split_site_url(self.url)
        if not domain or not validate_ip_or_hostname(domain.split(':')[0]):
            raise InvalidPackageError(f"URL de sitio inválida en los metadatos: {self.url!r}")
        if self.blog_id < 1:
            raise InvalidPackageError(f"blog_id inválido en los metadatos: {self.blog_id!r}")

    def to_dict(self) -> dict:
        return asdict(self)

    def save(self, path: str) -> None:
        with open(path, 'w', encoding='utf-8') as fh:
            json.dump(self.to_dict(), fh)

    @classmethod
    def load(cls, path: str) -> 'SiteMetadata':
        """
        Lee y valida un archivo de metadatos.

        Raises:
            InvalidPackageError: Si el JSON es inválido o no es un objeto.
        """
        try:
            with open(path, encoding='utf-8') as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            raise InvalidPackageError(f"Metadatos del sitio inválidos ({path}): {e}") from e

        if not isinstance(data, dict) or not data.get('url'):
            raise InvalidPackageError(f"Metadatos del sitio inválidos ({path})")

        metadata = cls.from_dict(data)
        metadata.validate()
        return metadata


def compute_new_prefix(base_prefix: str, blog_id: int) -> str:
    """
    Prefijo de tablas de un sitio: el sitio principal usa el prefijo base,
    los demás añaden su ID seguido de "_".

    Args:
        base_prefix: Prefijo base de la instalación (ej. "wp_").
        blog_id: ID del sitio.

    Returns:
        Prefijo del sitio (ej. "wp_" o "wp_3_").
    """
    blog_id = int(blog_id or DEFAULT_BLOG_ID)
    if blog_id <= DEFAULT_BLOG_ID:
        return base_prefix
    return f"{base_prefix}{blog_id}_"


def parse_url_for_search_replace(url: str) -> str:
    """
    Normaliza una URL a "host[:puerto]/ruta" para search-replace.

    Omite esquema, query y fragmento, pasa el host a minúsculas, colapsa
    barras repetidas y quita la barra final (salvo ruta "/").

    Returns:
        Cadena normalizada, o cadena vacía si no se puede interpretar.
    """
    url = (url or '').strip()
    if not url:
        return ''
    if not _SCHEME_RE.match(url):
        url = 'http://' + url.lstrip('/')

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return ''

    host = (parts.hostname or '').lower()
    if not host:
        return ''

    if port:
        if ':' in host:
            host = f"[{host}]"
        host = f"{host}:{port}"

    path = re.sub(r'//+', '/', parts.path)
    if path != '/' and path.endswith('/'):
        path = path.rstrip('/')

    return host + path


def split_site_url(url: str) -> tuple:
    """
    Separa una URL (esquema opcional) en (dominio, ruta).

    La ruta siempre empieza y termina con "/", como la guarda WordPress.
    """
    url = (url or '').strip()
    if not url:
        return '', '/'
    if not _SCHEME_RE.match(url):
        url = 'http://' + url.lstrip('/')
    try:
        parts = urlsplit(url)
    except ValueError:
        return '', '/'

    domain = (parts.hostname or '').lower()
    path = '/' + parts.path.strip('/')
    if path != '/':
        path += '/'
    return domain, path


def build_home_url(new_url: str, old_url: str = '') -> str:
    """
    URL absoluta para home/siteurl: si new_url no trae esquema se usa el de
    old_url, o https.
    """
    new_url = new_url.strip().rstrip('/')
    if _SCHEME_RE.match(new_url):
        return new_url
    scheme = 'https'
    if old_url and _SCHEME_RE.match(old_url):
        scheme = urlsplit(old_url).scheme
    return f"{scheme}://{new_url.lstrip('/')}"


def create_site(store, metadata: SiteMetadata):
    """
    Crea un sitio nuevo en la red para la URL de los metadatos.

    Args:
        store: SiteStore de la instalación de destino.
        metadata: Metadatos del sitio (url ya reemplazada por new_url si aplica).

    Returns:
        ID del sitio creado, o None si la URL no tiene host o ya existe un
        sitio con ese dominio y ruta.
    """
    domain, path = split_site_url(metadata.url)
    if not domain:
        return None

    if store.site_exists(domain, path):
        logger.warning(f":!: Ya existe un sitio en {domain}{path}")
        return None

    blog_id = store.insert_site(domain, path)
    if blog_id:
        logger.info(f":✓: Sitio creado: {domain}{path} (ID {blog_id})")
    return blog_id


def resolve_target_site(store, metadata: SiteMetadata):
    """
    Sitio donde se importará el paquete: en multisitio se crea uno nuevo,
    en una instalación simple se reutiliza el único existente.
    """
    if store.is_multisite():
        return create_site(store, metadata)
    return store.current_blog_id()


@contextmanager
def tenant_context(store, blog_id):
    """
    Activa blog_id en el store y restaura el sitio previo al salir, incluso
    si se produce una excepción.

    Ejemplo:
        with tenant_context(store, 3):
            store.update_option('home', 'https://nuevo.example')
    """
    switched = (
        blog_id is not None
        and store.is_multisite()
        and store.current_blog_id() != int(blog_id)
    )
    if switched:
        store.switch_to_blog(int(blog_id))
    try:
        yield store
    finally:
        if switched:
            store.restore_current_blog()


def with_tenant(store, blog_id, fn):
    """Ejecuta fn(store) dentro de tenant_context y devuelve su resultado."""
    with tenant_context(store, blog_id):
        return fn(store)


def grant_role_without_context_switch(store, blog_id: int, user_id: int, role: str) -> None:
    """
    Asigna un rol a un usuario en un sitio escribiendo directamente sus
    metadatos de capacidades y nivel, sin cambiar el sitio activo.

    Conserva las capacidades existentes del usuario en ese sitio (salvo las
    marcas level_N) y fija primary_blog/source_domain solo la primera vez.

    Args:
        store: SiteStore de la instalación de destino.
        blog_id: Sitio donde se asigna el rol.
        user_id: Usuario.
        role: Nombre del rol.

    Raises:
        RoleAssignmentError: Si el usuario, el sitio o el rol no existen, o si
            no se pudieron guardar sus metadatos.
    """
    if not store.user_exists(user_id):
        raise RoleAssignmentError('user_does_not_exist', f"El usuario {user_id} no existe")

    site = store.get_site(blog_id)
    if not site:
        raise RoleAssignmentError('blog_does_not_exist', f"El sitio {blog_id} no existe")

    capabilities = store.role_capabilities(role)
    if capabilities is None:
        raise RoleAssignmentError('invalid_role', f"Rol inválido: {role}")

    prefix = compute_new_prefix(store.base_prefix(), blog_id)
    caps_key = f"{prefix}capabilities"
    level_key = f"{prefix}user_level"

    existing = store.get_user_meta(user_id, caps_key)
    if not isinstance(existing, dict):
        existing = {}
    caps = {k: v for k, v in existing.items() if not k.startswith('level_')}
    caps[role] = True
    updates = [(caps_key, caps)]

    user_level = 0
    for cap, granted in capabilities.items():
        match = _LEVEL_RE.match(cap)
        if granted and match:
            user_level = max(user_level, int(match.group(1)))
    updates.append((level_key, user_level))

    if not store.get_user_meta(user_id, 'primary_blog'):
        updates.append(('primary_blog', int(blog_id)))
        updates.append(('source_domain', site.get('domain', '')))

    for key, value in updates:
        if not store.update_user_meta(user_id, key, value):
            raise RoleAssignmentError('meta_update_failed', f"No se pudo guardar {key} del usuario {user_id}")


def uploads_path_pair(original_blog_id: int, blog_id: int) -> tuple:
    """
    Rutas de uploads (origen, destino) según los IDs de sitio.

    Los sitios con ID mayor que 1 guardan sus archivos en
    wp-content/uploads/sites/<id>.
    """
    source = UPLOADS_PATH
    target = UPLOADS_PATH
    if original_blog_id and int(original_blog_id) > DEFAULT_BLOG_ID:
        source = f"{UPLOADS_PATH}/sites/{int(original_blog_id)}"
    if blog_id and int(blog_id) > DEFAULT_BLOG_ID:
        target = f"{UPLOADS_PATH}/sites/{int(blog_id)}"
    return source, target


def _search_replace(wp, old: str, new: str, url: str, skip_tables: str):
    return wp.run(
        "search-replace",
        [old, new],
        {'precise': True, 'all-tables': True, 'skip-tables': skip_tables},
        url=url
    )


def run_url_search_replace(wp, base_prefix: str, old_url: str, new_url: str,
                           original_blog_id: int = DEFAULT_BLOG_ID,
                           blog_id: int = DEFAULT_BLOG_ID,
                           verbose: bool = False) -> tuple:
    """
    Ejecuta search-replace de la URL del sitio y de la ruta de uploads.

    La tabla de sitios de la red (<base>blogs) se excluye siempre.

    Args:
        wp: Instancia de WPCLI.
        base_prefix: Prefijo base de la instalación de destino.
        old_url: URL de origen (esquema opcional).
        new_url: URL de destino (esquema opcional).
        original_blog_id: ID del sitio en la red de origen.
        blog_id: ID del sitio de destino.
        verbose: Mostrar detalles.

    Returns:
        Tupla con (success, message).
    """
    old = parse_url_for_search_replace(old_url)
    new = parse_url_for_search_replace(new_url)
    if not old or not new:
        return False, f"URLs inválidas para search-replace: {old_url!r} -> {new_url!r}"

    skip_tables = f"{base_prefix}blogs"

    if verbose:
        logger.info(f"Ejecutando search-replace de la URL: {old} -> {new}")

    result = _search_replace(wp, old, new, new_url, skip_tables)
    if result.status != 0:
        return False, f"No se pudo ejecutar search-replace de la URL: {result.stderr}"

    if verbose:
        logger.info(":✓: Search-replace de la URL completado")

    source, target = uploads_path_pair(original_blog_id, blog_id)
    if source != target:
        if verbose:
            logger.info(f"Ejecutando search-replace de rutas de uploads: {source} -> {target}")

        result = _search_replace(wp, source, target, new_url, skip_tables)
        if result.status != 0:
            return False, f"No se pudo ejecutar search-replace de rutas de uploads: {result.stderr}"

        if verbose:
            logger.info(f":✓: Rutas de uploads actualizadas: {source} -> {target}")

    return True, "Search-replace completado"
