"""
Herramienta de Migración de WordPress - Punto de entrada principal.

Exporta un sitio WordPress (tablas, usuarios, metadatos y opcionalmente
plugins, temas y uploads) a un paquete zip y lo importa en otra
instalación, simple o multisitio, adaptando prefijos de tablas, URLs,
usuarios y autoría de las entradas.

Comandos:
    export all [archivo.zip]         Exporta el sitio completo.
    export tables <archivo.sql>      Exporta solo las tablas.
    export users <archivo.csv>       Exporta solo los usuarios.
    import all <archivo.zip>         Importa un paquete completo.
    import tables <archivo.sql>      Importa un volcado de tablas.
    import users <archivo.csv>       Importa usuarios y genera el mapa de IDs.
    posts update_author <mapa.json>  Reasigna la autoría de las entradas.

Uso:
    wpmig export all sitio.zip --blog-id=3 --plugins --themes --uploads
    wpmig import all sitio.zip --new-url=nuevo.example --yes

WP-CLI se localiza con WP_CLI_BIN y la instalación con WP_PATH (o --path).
Todas las operaciones se registran en wp_migration.log para facilitar la
resolución de problemas.
"""

import argparse
import logging
import sys
import traceback

from config import (
    display_configuration_summary,
    get_server_config,
    get_work_dir,
    get_wp_settings,
    get_yes_no,
    print_banner,
    setup_logging,
)
from database import export_tables, import_tables
from errors import MigrationError
from migration import export_all, import_all
from posts import update_authors_from_file
from runner import LocalRunner
from sites import tenant_context
from sqldump import wrap_in_transaction
from store import WPCLIStore
from transfer import fetch_package, push_package
from users import export_users, import_users
from validation import run_pre_import_validation
from wpcli import WPCLI

logger = logging.getLogger(__name__)

DEFAULT_MAP_FILE = 'ids_maps.json'


def _common_options() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument('--path', help="Ruta de la instalación de WordPress (WP_PATH)")
    parent.add_argument('--blog-id', type=int, help="ID del sitio")
    parent.add_argument('--tables', help="Lista de tablas separadas por comas")
    parent.add_argument('--custom-tables', help="Tablas adicionales separadas por comas")
    parent.add_argument('--plugins', action='store_true', help="Incluir la carpeta de plugins")
    parent.add_argument('--themes', action='store_true', help="Incluir el tema activo")
    parent.add_argument('--uploads', action='store_true', help="Incluir la carpeta de uploads")
    parent.add_argument('--verbose', action='store_true', help="Mostrar detalles")
    parent.add_argument('--new-url', default='', help="URL del sitio en el destino")
    parent.add_argument('--old-url', default='', help="URL del sitio en el origen")
    parent.add_argument('--mysql-single-transaction', action='store_true',
                        help="Envolver el volcado SQL en una transacción")
    parent.add_argument('--uid-fields', default='',
                        help="Metadatos de entrada que guardan IDs de usuario")
    parent.add_argument('--login-suffix', default='', help="Sufijo a añadir a los logins")
    parent.add_argument('--login-suffix-trim', default='', help="Sufijo a quitar de los logins")
    parent.add_argument('--map-file', help="Archivo JSON del mapa de IDs")
    parent.add_argument('--old-prefix', default='', help="Prefijo de tablas del volcado (por defecto, el del sitio actual)")
    parent.add_argument('--new-prefix', default='', help="Prefijo de tablas a aplicar")
    parent.add_argument('--original-blog-id', type=int, default=1,
                        help="ID del sitio en la instalación de origen")
    parent.add_argument('--yes', action='store_true', help="No pedir confirmación")
    parent.add_argument('--ssh-host', help="Servidor remoto del paquete")
    parent.add_argument('--remote-path', help="Ruta remota del paquete (SFTP)")
    return parent


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog='wpmig',
        description="Exporta e importa sitios WordPress mediante paquetes zip."
    )
    groups = parser.add_subparsers(dest='group', required=True)

    export = groups.add_parser('export', help="Exportar un sitio").add_subparsers(
        dest='command', required=True)
    export.add_parser('all', parents=[common]).add_argument('file', nargs='?')
    export.add_parser('tables', parents=[common]).add_argument('file')
    export.add_parser('users', parents=[common]).add_argument('file')

    imp = groups.add_parser('import', help="Importar un sitio").add_subparsers(
        dest='command', required=True)
    imp.add_parser('all', parents=[common]).add_argument('file', nargs='?')
    imp.add_parser('tables', parents=[common]).add_argument('file')
    imp.add_parser('users', parents=[common]).add_argument('file')

    posts = groups.add_parser('posts', help="Operaciones sobre entradas").add_subparsers(
        dest='command', required=True)
    posts.add_parser('update_author', parents=[common]).add_argument('file')

    return parser


def build_store(args) -> tuple:
    """Crea el WPCLI y el WPCLIStore de la instalación configurada."""
    settings = get_wp_settings()
    wp = WPCLI(
        LocalRunner(),
        binary=settings['binary'],
        path=args.path or settings['path'],
        allow_root=settings['allow_root']
    )
    return wp, WPCLIStore(wp)


def cmd_export_all(args, wp, store) -> int:
    package = export_all(
        wp, store,
        output_path=args.file,
        blog_id=args.blog_id,
        tables=args.tables,
        custom_tables=args.custom_tables,
        include_plugins=args.plugins,
        include_themes=args.themes,
        include_uploads=args.uploads,
        login_suffix=args.login_suffix,
        login_suffix_trim=args.login_suffix_trim,
        work_dir=get_work_dir(),
        verbose=args.verbose
    )

    if args.remote_path:
        dest_config = get_server_config("Destino", host=args.ssh_host, interactive=not args.yes)
        success, message, _ = push_package(dest_config, package, args.remote_path)
        if not success:
            raise MigrationError(message)
        logger.info(f":✓: {message}")

    return 0


def cmd_export_tables(args, wp, store) -> int:
    with tenant_context(store, args.blog_id):
        success, message = export_tables(
            wp, store, args.file, args.blog_id, args.tables, args.custom_tables, args.verbose
        )
    if not success:
        raise MigrationError(message)
    return 0


def cmd_export_users(args, wp, store) -> int:
    export_users(
        store, args.file,
        blog_id=args.blog_id,
        login_suffix=args.login_suffix,
        login_suffix_trim=args.login_suffix_trim,
        verbose=args.verbose
    )
    return 0


def cmd_import_all(args, wp, store) -> int:
    work_dir = get_work_dir()
    package = args.file

    if args.remote_path:
        source_config = get_server_config("Origen", host=args.ssh_host, interactive=not args.yes)
        success, message, package = fetch_package(source_config, args.remote_path, work_dir)
        if not success:
            raise MigrationError(message)

    if not package:
        raise MigrationError("Falta el archivo de entrada (.zip)")

    if not run_pre_import_validation(wp, package, work_dir):
        print("\n:x: Validación fallida. No se puede proseguir con la importación.")
        return 1

    if not args.yes:
        print_banner()
        display_configuration_summary({
            'package': package,
            'wp_path': wp.path,
            'new_url': args.new_url,
            'transaction': args.mysql_single_transaction,
            'uid_fields': args.uid_fields,
        })
        if not get_yes_no("\n¿Proceder con la importación?", default=True):
            print("\n:x: Importación cancelada por el usuario.")
            return 0

    summary = import_all(
        wp, store, package,
        new_url=args.new_url,
        mysql_single_transaction=args.mysql_single_transaction,
        uid_fields=args.uid_fields,
        work_dir=work_dir,
        verbose=args.verbose
    )

    print("\n" + "=" * 60)
    print(":✓: Importación completada con éxito!")
    print("=" * 60)
    print(f"\nEl sitio debería ser accesible en: {summary.url}")
    print("Recuerde vaciar la caché.")
    return 0


def cmd_import_tables(args, wp, store) -> int:
    if args.mysql_single_transaction:
        wrap_in_transaction(args.file)

    success, message = import_tables(
        wp, store, args.file,
        blog_id=args.blog_id or store.current_blog_id(),
        original_blog_id=args.original_blog_id,
        old_prefix=args.old_prefix,
        new_prefix=args.new_prefix,
        old_url=args.old_url,
        new_url=args.new_url,
        verbose=args.verbose
    )
    if not success:
        raise MigrationError(message)
    return 0


def cmd_import_users(args, wp, store) -> int:
    import_users(
        store, args.file,
        map_file=args.map_file or DEFAULT_MAP_FILE,
        blog_id=args.blog_id or 1,
        verbose=args.verbose
    )
    return 0


def cmd_update_author(args, wp, store) -> int:
    update_authors_from_file(store, args.file, args.blog_id, args.uid_fields, args.verbose)
    return 0


COMMANDS = {
    ('export', 'all'): cmd_export_all,
    ('export', 'tables'): cmd_export_tables,
    ('export', 'users'): cmd_export_users,
    ('import', 'all'): cmd_import_all,
    ('import', 'tables'): cmd_import_tables,
    ('import', 'users'): cmd_import_users,
    ('posts', 'update_author'): cmd_update_author,
}


def main(argv=None):
    """Punto de entrada de la línea de comandos"""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        wp, store = build_store(args)
        code = COMMANDS[(args.group, args.command)](args, wp, store)
    except KeyboardInterrupt:
        print("\n\n:x: Operación cancelada por el usuario (Ctrl+C)")
        sys.exit(1)
    except MigrationError as e:
        logger.error(f":x: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"\n:x: Error inesperado: {str(e)}")
        traceback.print_exc()
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
