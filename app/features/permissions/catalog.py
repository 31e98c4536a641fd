"""
Permission catalog: default codes, default roles and the seed step.

The catalog is loaded, never computed. ``seed_catalog`` is idempotent and
runs once at startup (see app.main) or from scripts/seed_permissions.py.
"""
from collections import defaultdict
from sqlalchemy import select, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.exceptions import UnknownPermissionCode
from app.features.permissions.models import AtomicPermission, Role
from app.utils import get_logger


log = get_logger(__name__)


DEFAULT_PERMISSIONS = [
    # Inventario
    ("inventario_leer", "Ver inventario", "inventario", "Consultar items e inventarios"),
    ("inventario_escribir", "Crear inventario", "inventario", "Registrar items e inventarios"),
    ("inventario_editar", "Editar inventario", "inventario", "Modificar items e inventarios"),
    ("inventario_eliminar", "Eliminar inventario", "inventario", "Eliminar items e inventarios"),

    # Fotocopias
    ("fotocopia_leer", "Ver fotocopias", "fotocopias", "Consultar registros y estadisticas de fotocopias"),
    ("fotocopia_escribir", "Registrar fotocopias", "fotocopias", "Registrar fotocopias"),
    ("fotocopia_editar", "Editar fotocopias", "fotocopias", "Modificar registros de fotocopias"),
    ("fotocopia_eliminar", "Eliminar fotocopias", "fotocopias", "Eliminar registros de fotocopias"),

    # Trabajadores
    ("trabajadores.ver", "Ver trabajadores", "trabajadores", "Consultar fichas de trabajadores"),
    ("trabajadores.crear", "Crear trabajadores", "trabajadores", "Registrar trabajadores y ocupaciones"),
    ("trabajadores.editar", "Editar trabajadores", "trabajadores", "Modificar trabajadores y ocupaciones"),
    ("trabajadores.eliminar", "Eliminar trabajadores", "trabajadores", "Eliminar trabajadores"),

    # Configuracion
    ("configuracion_editar", "Editar configuracion", "configuracion", "Modificar precios y parametros"),
    ("admin_configuracion", "Administrar configuracion", "configuracion", "Administrar la configuracion del sistema"),

    # Auditoria
    ("auditoria_leer", "Ver auditoria", "auditoria", "Consultar el registro de auditoria"),

    # Administracion de accesos
    ("grupos.ver_miembros", "Ver miembros", "grupos", "Consultar los miembros de un grupo"),
    ("grupos.gestionar_miembros", "Gestionar miembros", "grupos", "Agregar miembros y cambiar su estado"),
    ("roles.gestionar", "Gestionar roles", "roles", "Reemplazar los permisos de un rol"),
    ("permisos.gestionar", "Gestionar permisos", "permisos", "Administrar el catalogo y los permisos especiales"),
]


# Seniority order used when listing roles
ROLE_ORDER = [
    "trabajador",
    "operario",
    "asistente",
    "tecnico",
    "especialista",
    "analista",
    "coordinador",
    "supervisor",
    "encargado",
    "jefe_seccion",
    "jefe_departamento",
    "subgerente",
    "gerente",
    "director",
    "administrador",
]


_TRABAJADOR = [
    "inventario_leer",
    "fotocopia_leer", "fotocopia_escribir",
    "trabajadores.ver",
]

_SUPERVISOR = _TRABAJADOR + [
    "inventario_escribir", "inventario_editar",
    "fotocopia_editar",
    "trabajadores.crear", "trabajadores.editar",
    "grupos.ver_miembros",
]

_GERENTE = _SUPERVISOR + [
    "inventario_eliminar",
    "fotocopia_eliminar",
    "trabajadores.eliminar",
    "configuracion_editar",
    "auditoria_leer",
    "grupos.gestionar_miembros",
]

# Codes guarding data shared by every group. Only special permissions grant them.
GLOBAL_ADMIN_CODES = ("permisos.gestionar", "roles.gestionar")

DEFAULT_ROLES = {
    "trabajador": {"description": "Trabajador", "permissions": _TRABAJADOR},
    "operario": {"description": "Operario", "permissions": _TRABAJADOR},
    "asistente": {"description": "Asistente", "permissions": _TRABAJADOR},
    "tecnico": {"description": "Tecnico", "permissions": _TRABAJADOR},
    "especialista": {"description": "Especialista", "permissions": _TRABAJADOR},
    "analista": {"description": "Analista", "permissions": _TRABAJADOR + ["auditoria_leer"]},
    "coordinador": {"description": "Coordinador", "permissions": _SUPERVISOR},
    "supervisor": {"description": "Supervisor", "permissions": _SUPERVISOR},
    "encargado": {"description": "Encargado", "permissions": _SUPERVISOR},
    "jefe_seccion": {"description": "Jefe de seccion", "permissions": _SUPERVISOR},
    "jefe_departamento": {"description": "Jefe de departamento", "permissions": _GERENTE},
    "subgerente": {"description": "Subgerente", "permissions": _GERENTE},
    "gerente": {"description": "Gerente", "permissions": _GERENTE},
    "director": {"description": "Director", "permissions": _GERENTE},
    "administrador": {"description": "Administrador del sistema", "permissions": "ALL"},
}


async def seed_permissions(db: AsyncSession) -> dict[str, AtomicPermission]:
    """
    Create default permission codes that are not in the catalog yet.

    Returns:
        Dictionary mapping permission codes to AtomicPermission objects
    """
    permissions_map = {}
    created = 0

    for codigo, nombre, modulo, descripcion in DEFAULT_PERMISSIONS:
        result = await db.execute(select(AtomicPermission).where(AtomicPermission.codigo == codigo))
        existing = result.scalars().first()

        if existing:
            permissions_map[codigo] = existing
            continue

        permission = AtomicPermission(
            codigo=codigo,
            nombre=nombre,
            modulo=modulo,
            descripcion=descripcion,
        )
        db.add(permission)
        permissions_map[codigo] = permission
        created += 1

    await db.flush()
    log.info(f"Permission catalog seeded: {created} created, {len(permissions_map) - created} existing")
    return permissions_map


async def seed_roles(db: AsyncSession, permissions_map: dict[str, AtomicPermission]) -> None:
    """
    Create default roles with their grants. Existing roles are left alone so
    administrative edits survive restarts.
    """
    for role_name, role_config in DEFAULT_ROLES.items():
        result = await db.execute(select(Role).where(Role.name == role_name))
        if result.scalars().first():
            continue

        if role_config["permissions"] == "ALL":
            granted = list(permissions_map.values())
        else:
            granted = []
            for codigo in role_config["permissions"]:
                if codigo in permissions_map:
                    granted.append(permissions_map[codigo])
                else:
                    log.warning(f"Permission '{codigo}' not found for role '{role_name}'")

        db.add(Role(name=role_name, description=role_config["description"], permissions=granted))
        log.info(f"Created role '{role_name}' with {len(granted)} permissions")

    await db.flush()


async def seed_catalog(db: AsyncSession) -> None:
    """Seed default permissions and roles in one transaction."""
    permissions_map = await seed_permissions(db)
    await seed_roles(db, permissions_map)
    await db.commit()


async def get_permission_by_code(db: AsyncSession, codigo: str) -> AtomicPermission:
    """
    Look up a catalog entry.

    Raises:
        UnknownPermissionCode: the code is not in the catalog
    """
    result = await db.execute(select(AtomicPermission).where(AtomicPermission.codigo == codigo))
    permission = result.scalars().first()
    if permission is None:
        raise UnknownPermissionCode(codigo)
    return permission


async def list_catalog(db: AsyncSession) -> dict[str, list[AtomicPermission]]:
    """Active permission codes grouped by module."""
    result = await db.execute(
        select(AtomicPermission)
        .where(AtomicPermission.activo.is_(True))
        .order_by(AtomicPermission.modulo, AtomicPermission.codigo)
    )
    modules: dict[str, list[AtomicPermission]] = defaultdict(list)
    for permission in result.scalars().all():
        modules[permission.modulo].append(permission)
    return dict(modules)


async def list_available_roles(db: AsyncSession) -> list[Role]:
    """Active roles in seniority order, unknown names last alphabetically."""
    seniority = case(
        {name: position for position, name in enumerate(ROLE_ORDER, start=1)},
        value=Role.name,
        else_=99,
    )
    result = await db.execute(
        select(Role).where(Role.es_activo.is_(True)).order_by(seniority, Role.name)
    )
    return list(result.scalars().all())
