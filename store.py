"""
Acceso al almacenamiento de WordPress (sitios, usuarios, metadatos, entradas
y opciones).

SiteStore define la interfaz que necesitan los motores de migración;
WPCLIStore la implementa invocando WP-CLI. El sitio activo se gestiona con
una pila (switch_to_blog / restore_current_blog) que se traduce en el
argumento global --url de cada invocación.
"""

import json
import logging
from abc import ABC, abstractmethod

from errors import AccountCreationError
from sites import compute_new_prefix

logger = logging.getLogger(__name__)


class SiteStore(ABC):
    """
    Interfaz del almacenamiento de la instalación de destino u origen.

    Los métodos de escritura devuelven False si la escritura no se aplicó.
    """

    # Sitios

    @abstractmethod
    def is_multisite(self) -> bool: ...

    @abstractmethod
    def base_prefix(self) -> str: ...

    @abstractmethod
    def current_blog_id(self) -> int: ...

    @abstractmethod
    def switch_to_blog(self, blog_id: int) -> None: ...

    @abstractmethod
    def restore_current_blog(self) -> None: ...

    @abstractmethod
    def get_site(self, blog_id: int): ...

    @abstractmethod
    def site_exists(self, domain: str, path: str) -> bool: ...

    @abstractmethod
    def insert_site(self, domain: str, path: str): ...

    @abstractmethod
    def site_metadata(self) -> dict: ...

    # Plugins, temas y uploads

    @abstractmethod
    def is_plugin_active(self, slug: str) -> bool: ...

    @abstractmethod
    def activate_plugin(self, plugin_file: str, network: bool = False) -> tuple: ...

    @abstractmethod
    def enable_theme(self, slug: str) -> tuple: ...

    @abstractmethod
    def plugins_dir(self) -> str: ...

    @abstractmethod
    def themes_dir(self) -> str: ...

    @abstractmethod
    def active_theme_dirs(self) -> list: ...

    @abstractmethod
    def upload_basedir(self) -> str: ...

    # Usuarios

    @abstractmethod
    def iter_users(self, blog_id: int = None): ...

    @abstractmethod
    def get_user_meta(self, user_id: int, key: str = None): ...

    @abstractmethod
    def update_user_meta(self, user_id: int, key: str, value) -> bool: ...

    @abstractmethod
    def find_user(self, login: str, email: str): ...

    @abstractmethod
    def insert_user(self, fields: dict) -> int: ...

    @abstractmethod
    def set_user_password_hash(self, user_id: int, password_hash: str) -> bool: ...

    @abstractmethod
    def user_exists(self, user_id: int) -> bool: ...

    @abstractmethod
    def role_capabilities(self, role: str): ...

    # Registros de contenido

    @abstractmethod
    def count_records(self, table: str) -> int: ...

    @abstractmethod
    def fetch_records(self, table: str, columns: list, limit: int, offset: int) -> list: ...

    @abstractmethod
    def update_post_author(self, post_id: int, author_id: int) -> bool: ...

    @abstractmethod
    def get_post_meta(self, post_id: int, key: str): ...

    @abstractmethod
    def update_post_meta(self, post_id: int, key: str, value) -> bool: ...

    # Opciones

    @abstractmethod
    def update_option(self, name: str, value) -> bool: ...

    @abstractmethod
    def rename_option(self, old_name: str, new_name: str) -> bool: ...


def plugin_slug(plugin_file: str) -> str:
    """
    Slug de WP-CLI para un archivo de plugin.

    "akismet/akismet.php" -> "akismet", "hello.php" -> "hello".
    """
    if '/' in plugin_file:
        return plugin_file.split('/', 1)[0]
    if plugin_file.endswith('.php'):
        return plugin_file[:-4]
    return plugin_file


def _applied(result, action: str) -> bool:
    if result.status != 0:
        logger.warning(f":x: Falló {action}: {result.stderr or result.stdout}")
        return False
    return True


def sql_quote(value) -> str:
    """Escapa un valor como literal de cadena de MySQL."""
    text = str(value).replace('\\', '\\\\').replace("'", "\\'").replace('\0', '\\0')
    return f"'{text}'"


_PHP_INSERT_SITE = (
    '$d = json_decode($args[0], true);'
    '$id = wp_insert_site(["domain" => $d["domain"], "path" => $d["path"],'
    ' "network_id" => get_main_network_id()]);'
    'echo wp_json_encode(is_wp_error($id) ? ["error" => $id->get_error_message()] : ["id" => $id]);'
)

_PHP_SITE_METADATA = (
    'require_once ABSPATH . "wp-admin/includes/plugin.php";'
    'global $wpdb;'
    'echo wp_json_encode(['
    ' "url" => home_url(),'
    ' "name" => get_bloginfo("name"),'
    ' "admin_email" => get_bloginfo("admin_email"),'
    ' "site_language" => get_bloginfo("language"),'
    ' "db_prefix" => $wpdb->prefix,'
    ' "plugins" => get_plugins(),'
    ' "blog_plugins" => get_option("active_plugins", []),'
    ' "network_plugins" => is_multisite() ? get_site_option("active_sitewide_plugins", []) : [],'
    ' "blog_id" => get_current_blog_id(),'
    ']);'
)

_PHP_INSERT_USER = (
    '$d = json_decode($args[0], true);'
    '$id = wp_insert_user($d);'
    'echo wp_json_encode(is_wp_error($id)'
    ' ? ["error" => implode(", ", $id->get_error_messages())] : ["id" => $id]);'
)

_PHP_ROLE_CAPS = (
    '$r = get_role(json_decode($args[0], true));'
    'echo wp_json_encode($r ? $r->capabilities : null);'
)

_PHP_FETCH_RECORDS = (
    'global $wpdb;'
    '$d = json_decode($args[0], true);'
    '$t = $wpdb->{$d["table"]};'
    '$cols = implode(", ", array_map(function ($c) {'
    ' return "`" . preg_replace("/[^A-Za-z0-9_]/", "", $c) . "`"; }, $d["columns"]));'
    'echo wp_json_encode($wpdb->get_results($wpdb->prepare('
    ' "SELECT $cols FROM $t ORDER BY ID LIMIT %d OFFSET %d", $d["limit"], $d["offset"]), ARRAY_A));'
)

_PHP_COUNT_RECORDS = (
    'global $wpdb;'
    '$t = $wpdb->{json_decode($args[0], true)};'
    'echo (int) $wpdb->get_var("SELECT COUNT(*) FROM $t");'
)

_PHP_THEME_DIRS = 'echo wp_json_encode([get_template_directory(), get_stylesheet_directory()]);'

_PHP_UPLOAD_BASEDIR = 'echo wp_upload_dir()["basedir"];'


class WPCLIStore(SiteStore):
    """
    Implementación de SiteStore sobre WP-CLI.

    Args:
        wp: Instancia de wpcli.WPCLI.
    """

    def __init__(self, wp):
        self.wp = wp
        self._blog_stack = []
        self._multisite = None
        self._base_prefix = None

    # Sitios

    @property
    def url(self):
        """URL del sitio activo (None para el sitio por defecto)."""
        return self._blog_stack[-1][1] if self._blog_stack else None

    def is_multisite(self) -> bool:
        if self._multisite is None:
            result = self.wp.run("core is-installed", assoc_args={'network': True})
            self._multisite = result.status == 0
        return self._multisite

    def base_prefix(self) -> str:
        if self._base_prefix is None:
            result = self.wp.run("config get", ["table_prefix"])
            self._base_prefix = result.stdout if result.status == 0 and result.stdout else "wp_"
        return self._base_prefix

    def current_blog_id(self) -> int:
        return self._blog_stack[-1][0] if self._blog_stack else 1

    def switch_to_blog(self, blog_id: int) -> None:
        url = None
        if self.is_multisite():
            site = self.get_site(blog_id)
            url = site['url'] if site else None
        self._blog_stack.append((int(blog_id), url))

    def restore_current_blog(self) -> None:
        if self._blog_stack:
            self._blog_stack.pop()

    def _list_sites(self) -> list:
        if not self.is_multisite():
            return []
        return self.wp.run_json(
            "site list",
            assoc_args={'fields': 'blog_id,domain,path,url'},
            default=[]
        )

    def get_site(self, blog_id: int):
        for site in self._list_sites():
            if int(site['blog_id']) == int(blog_id):
                return site
        return None

    def site_exists(self, domain: str, path: str) -> bool:
        return any(
            site['domain'].lower() == domain.lower() and site['path'] == path
            for site in self._list_sites()
        )

    def insert_site(self, domain: str, path: str):
        data = self.wp.eval_json(_PHP_INSERT_SITE, {'domain': domain, 'path': path}, default={})
        if 'id' not in data:
            logger.warning(f":!: No se pudo crear el sitio {domain}{path}: {data.get('error', '')}")
            return None
        return int(data['id'])

    def site_metadata(self) -> dict:
        return self.wp.eval_json(_PHP_SITE_METADATA, url=self.url, default={})

    # Plugins, temas y uploads

    def is_plugin_active(self, slug: str) -> bool:
        return self.wp.run("plugin is-active", [slug], url=self.url).status == 0

    def activate_plugin(self, plugin_file: str, network: bool = False) -> tuple:
        result = self.wp.run("plugin activate", [plugin_slug(plugin_file)], {'network': network}, url=self.url)
        return result.status == 0, result.stderr or result.stdout

    def enable_theme(self, slug: str) -> tuple:
        result = self.wp.run("theme enable", [slug], url=self.url)
        return result.status == 0, result.stderr or result.stdout

    def plugins_dir(self) -> str:
        return self.wp.run("plugin path").stdout

    def themes_dir(self) -> str:
        return self.wp.run("theme path").stdout

    def active_theme_dirs(self) -> list:
        dirs = self.wp.eval_json(_PHP_THEME_DIRS, url=self.url, default=[])
        return list(dict.fromkeys(dirs))

    def upload_basedir(self) -> str:
        return self.wp.eval(_PHP_UPLOAD_BASEDIR, url=self.url).stdout

    # Usuarios

    def iter_users(self, blog_id: int = None):
        fields = ('ID,user_login,user_pass,user_nicename,user_email,user_url,'
                  'user_registered,user_status,display_name,roles')
        assoc = {'fields': fields}
        if blog_id:
            assoc['blog_id'] = int(blog_id)
        users = self.wp.run_json("user list", assoc_args=assoc, default=[])
        for user in users:
            roles = user.get('roles') or ''
            user['roles'] = [r for r in roles.split(',') if r] if isinstance(roles, str) else list(roles)
            yield user

    def get_user_meta(self, user_id: int, key: str = None):
        if key is None:
            rows = self.wp.run_json(
                "user meta list", [user_id], {'unserialize': True}, default=[]
            )
            meta = {}
            for row in rows:
                meta.setdefault(row['meta_key'], []).append(row['meta_value'])
            return meta
        return self.wp.run_json("user meta get", [user_id, key], default=None)

    def update_user_meta(self, user_id: int, key: str, value) -> bool:
        if isinstance(value, (list, dict)):
            result = self.wp.run("user meta update", [user_id, key, json.dumps(value)], {'format': 'json'})
        else:
            if isinstance(value, bool):
                value = '1' if value else ''
            result = self.wp.run("user meta update", [user_id, key, '' if value is None else value])
        return _applied(result, f"user meta update {user_id} {key}")

    def _users_table(self) -> str:
        return f"{self.base_prefix()}users"

    def _query(self, sql: str):
        return self.wp.run("db query", [sql], {'skip-column-names': True}, url=self.url)

    def find_user(self, login: str, email: str):
        sql = (
            f"SELECT ID FROM {self._users_table()} "
            f"WHERE user_login = {sql_quote(login)} "
            f"OR (user_email = {sql_quote(email)} AND user_email != '');"
        )
        result = self._query(sql)
        if result.status != 0:
            raise AccountCreationError(f"No se pudo buscar la cuenta {login}: {result.stderr}")
        if not result.stdout:
            return None
        return int(result.stdout.splitlines()[0].strip())

    def insert_user(self, fields: dict) -> int:
        data = self.wp.eval_json(_PHP_INSERT_USER, fields, url=self.url, default={})
        if 'id' not in data:
            raise AccountCreationError(data.get('error') or "respuesta inválida de wp_insert_user")
        return int(data['id'])

    def set_user_password_hash(self, user_id: int, password_hash: str) -> bool:
        result = self._query(
            f"UPDATE {self._users_table()} SET user_pass = {sql_quote(password_hash)} "
            f"WHERE ID = {int(user_id)};"
        )
        return _applied(result, f"user_pass de {user_id}")

    def user_exists(self, user_id: int) -> bool:
        return self.wp.run("user get", [user_id], {'field': 'ID'}).status == 0

    def role_capabilities(self, role: str):
        return self.wp.eval_json(_PHP_ROLE_CAPS, role, url=self.url, default=None)

    # Registros de contenido

    def _blog_prefix(self) -> str:
        return compute_new_prefix(self.base_prefix(), self.current_blog_id())

    def count_records(self, table: str) -> int:
        result = self.wp.eval(_PHP_COUNT_RECORDS, table, url=self.url)
        return int(result.stdout) if result.status == 0 and result.stdout.isdigit() else 0

    def fetch_records(self, table: str, columns: list, limit: int, offset: int) -> list:
        payload = {'table': table, 'columns': list(columns), 'limit': limit, 'offset': offset}
        return self.wp.eval_json(_PHP_FETCH_RECORDS, payload, url=self.url, default=[])

    def update_post_author(self, post_id: int, author_id: int) -> bool:
        result = self._query(
            f"UPDATE {self._blog_prefix()}posts SET post_author = {int(author_id)} "
            f"WHERE ID = {int(post_id)};"
        )
        return _applied(result, f"post_author de la entrada {post_id}")

    def get_post_meta(self, post_id: int, key: str):
        result = self.wp.run("post meta get", [post_id, key], url=self.url)
        return result.stdout if result.status == 0 else None

    def update_post_meta(self, post_id: int, key: str, value) -> bool:
        result = self.wp.run("post meta update", [post_id, key, value], url=self.url)
        return _applied(result, f"post meta update {post_id} {key}")

    # Opciones

    def update_option(self, name: str, value) -> bool:
        result = self.wp.run("option update", [name, value], url=self.url)
        return _applied(result, f"option update {name}")

    def rename_option(self, old_name: str, new_name: str) -> bool:
        result = self._query(
            f"UPDATE {self._blog_prefix()}options SET option_name = {sql_quote(new_name)} "
            f"WHERE option_name = {sql_quote(old_name)};"
        )
        return _applied(result, f"renombrado de la opción {old_name}")
