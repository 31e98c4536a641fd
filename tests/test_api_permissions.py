"""
HTTP surface of the permission feature: guards, checks and administration.
"""
from app.features.permissions.catalog import ROLE_ORDER, seed_catalog
from app.features.permissions.dependencies import get_permission_engine
from app.features.permissions.engine import PermissionEngine
from app.features.permissions.exceptions import PermissionDenied
from tests.fakes import UnreachableIdentityStore
from tests.factories import (
    add_membership,
    auth_headers,
    create_global_admin,
    create_group,
    create_permission,
    create_role,
    create_user,
)


async def test_invalid_token_is_rejected(client):
    response = await client.get("/permissions/me", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401


async def test_check_reports_grant_source(client, scenario):
    headers = auth_headers(scenario.worker)

    granted = await client.post(
        "/permissions/check", json={"codigo": "inventario_leer", "group_id": scenario.group.id}, headers=headers
    )
    denied = await client.post(
        "/permissions/check", json={"codigo": "inventario_eliminar", "group_id": scenario.group.id}, headers=headers
    )

    assert granted.json() == {"has_permission": True, "reason": "role"}
    assert denied.json() == {"has_permission": False, "reason": None}


async def test_capabilities_of_member_and_owner(client, scenario):
    params = {"codes": ["inventario_leer", "inventario_eliminar"], "group_id": scenario.group.id}

    worker = await client.get("/permissions/me", params=params, headers=auth_headers(scenario.worker))
    owner = await client.get("/permissions/me", params=params, headers=auth_headers(scenario.owner))

    assert worker.status_code == 200
    assert worker.json()["is_owner"] is False
    assert worker.json()["permisos"] == {"inventario_leer": True, "inventario_eliminar": False}
    assert owner.json()["is_owner"] is True
    assert owner.json()["permisos"] == {"inventario_leer": True, "inventario_eliminar": True}


async def test_dashboard_fails_open_while_code_is_unknown(client, db, scenario):
    headers = auth_headers(scenario.worker)

    response = await client.get("/dashboard/estadisticas", headers=headers)
    assert response.status_code == 200
    assert response.json()["acceso"] == "concedido"

    await create_permission(db, "fotocopia_leer")

    response = await client.get("/dashboard/estadisticas", headers=headers)
    assert response.status_code == 403
    assert response.json() == {"message": PermissionDenied.message}


async def test_unknown_code_denies_without_fail_open(client, scenario):
    response = await client.get(
        "/permissions/audit-logs", params={"group_id": scenario.group.id}, headers=auth_headers(scenario.worker)
    )

    assert response.status_code == 403


async def test_store_outage_is_a_server_error_not_a_denial(client, scenario):
    from app.main import app

    app.dependency_overrides[get_permission_engine] = lambda: PermissionEngine(UnreachableIdentityStore("groups"))

    response = await client.get("/dashboard/estadisticas", headers=auth_headers(scenario.worker))

    assert response.status_code == 500
    assert response.json() == {"message": "Error al verificar permisos"}


async def test_role_permissions_by_name_hide_inactive_codes(client, db, scenario):
    await create_permission(db, "inventario_leer", activo=False)

    response = await client.get("/roles/by-name/trabajador/permissions", headers=auth_headers(scenario.worker))
    missing = await client.get("/roles/by-name/no_existe/permissions", headers=auth_headers(scenario.worker))

    assert response.status_code == 200
    assert response.json() == []
    assert missing.status_code == 404


async def test_available_roles(client, db):
    user = await create_user(db)
    await seed_catalog(db)
    await create_role(db, "retirado", es_activo=False)

    response = await client.get("/roles/available", headers=auth_headers(user))

    assert [role["name"] for role in response.json()] == ROLE_ORDER


async def test_replace_role_permissions(client, db, scenario):
    admin = await create_global_admin(db)
    payload = {"permisos": ["inventario_leer", "inventario_eliminar"]}
    url = f"/roles/{scenario.trabajador.id}/permissions"

    response = await client.put(url, json=payload, headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["permisos_actualizados"] == 2

    listed = await client.get(url, headers=auth_headers(scenario.worker))
    assert sorted(p["codigo"] for p in listed.json()) == ["inventario_eliminar", "inventario_leer"]

    check = await client.post(
        "/permissions/check",
        json={"codigo": "inventario_eliminar", "group_id": scenario.group.id},
        headers=auth_headers(scenario.worker),
    )
    assert check.json()["has_permission"] is True


async def test_group_owner_cannot_administer_shared_data(client, db, scenario):
    await create_permission(db, "permisos.gestionar")
    await create_permission(db, "roles.gestionar")
    outsider = await create_user(db, "x")
    headers = auth_headers(outsider)

    created = await client.post("/groups/", json={"name": "mine"}, headers=headers)
    assert created.status_code == 201

    grant = await client.post(
        f"/permissions/users/{outsider.id}/special", json={"codigo": "inventario_eliminar"}, headers=headers
    )
    roles = await client.put(
        f"/roles/{scenario.trabajador.id}/permissions", json={"permisos": ["inventario_eliminar"]}, headers=headers
    )
    catalog = await client.post(
        "/permissions/catalog", json={"codigo": "reportes_leer", "nombre": "Ver", "modulo": "reportes"}, headers=headers
    )
    check = await client.post(
        "/permissions/check",
        json={"codigo": "inventario_eliminar", "group_id": scenario.group.id},
        headers=headers,
    )

    assert grant.status_code == 403
    assert roles.status_code == 403
    assert catalog.status_code == 403
    assert check.json()["has_permission"] is False


async def test_administrator_role_in_a_group_is_not_global_admin(client, db, scenario):
    administrador = await create_role(db, "administrador", ("permisos.gestionar", "roles.gestionar"))
    manager = await create_user(db, "m")
    own_group = await create_group(db, scenario.owner, "H")
    await add_membership(db, manager, own_group, administrador)
    headers = auth_headers(manager)

    grant = await client.post(
        f"/permissions/users/{manager.id}/special", json={"codigo": "inventario_eliminar"}, headers=headers
    )
    roles = await client.put(
        f"/roles/{scenario.trabajador.id}/permissions", json={"permisos": ["inventario_eliminar"]}, headers=headers
    )

    assert grant.status_code == 403
    assert roles.status_code == 403


async def test_grant_and_revoke_special_permission(client, db, scenario):
    admin = auth_headers(await create_global_admin(db))
    url = f"/permissions/users/{scenario.worker.id}/special"
    check = {"codigo": "inventario_eliminar", "group_id": scenario.group.id}

    granted = await client.post(url, json={"codigo": "inventario_eliminar"}, headers=admin)
    assert granted.status_code == 201
    assert granted.json()["permission"]["codigo"] == "inventario_eliminar"

    response = await client.post("/permissions/check", json=check, headers=auth_headers(scenario.worker))
    assert response.json() == {"has_permission": True, "reason": "special"}

    revoked = await client.delete(f"{url}/inventario_eliminar", headers=admin)
    assert revoked.status_code == 204

    response = await client.post("/permissions/check", json=check, headers=auth_headers(scenario.worker))
    assert response.json()["has_permission"] is False

    listed = await client.get(url, headers=admin)
    assert [row["status"] for row in listed.json()] == ["inactivo"]


async def test_special_permission_errors(client, db, scenario):
    admin = auth_headers(await create_global_admin(db))
    url = f"/permissions/users/{scenario.worker.id}/special"

    unknown_code = await client.post(url, json={"codigo": "no_existe"}, headers=admin)
    never_granted = await client.delete(f"{url}/inventario_eliminar", headers=admin)
    unknown_user = await client.get("/permissions/users/nadie/special", headers=admin)

    assert unknown_code.status_code == 404
    assert never_granted.status_code == 404
    assert unknown_user.status_code == 404


async def test_catalog_administration(client, db, scenario):
    admin = auth_headers(await create_global_admin(db))
    payload = {"codigo": "Reportes_Leer", "nombre": "Ver reportes", "modulo": "reportes"}

    created = await client.post("/permissions/catalog", json=payload, headers=admin)
    duplicate = await client.post("/permissions/catalog", json=payload, headers=admin)
    assert created.status_code == 201
    assert created.json()["codigo"] == "reportes_leer"
    assert duplicate.status_code == 409

    updated = await client.patch("/permissions/catalog/reportes_leer", json={"activo": False}, headers=admin)
    assert updated.json()["activo"] is False

    catalog = await client.get("/permissions/catalog", headers=admin)
    codes = [p["codigo"] for module in catalog.json() for p in module["permisos"]]
    assert "reportes_leer" not in codes
    assert "inventario_leer" in codes

    missing = await client.patch("/permissions/catalog/no_existe", json={"activo": False}, headers=admin)
    assert missing.status_code == 404


async def test_audit_log_is_scoped_to_one_group(client, db, scenario):
    analista = await create_role(db, "analista", ("auditoria_leer",))
    reader = await create_user(db, "r")
    await add_membership(db, reader, scenario.group, analista)
    other_owner = await create_user(db, "b")
    other_group = await create_group(db, other_owner, "B")
    newcomer = await create_user(db, "nuevo")
    payload = {"user_id": newcomer.id, "role_id": scenario.trabajador.id}

    await client.post(f"/groups/{scenario.group.id}/members", json=payload, headers=auth_headers(scenario.owner))
    await client.post(f"/groups/{other_group.id}/members", json=payload, headers=auth_headers(other_owner))

    own = await client.get(
        "/permissions/audit-logs",
        params={"group_id": scenario.group.id, "action": "add_member"},
        headers=auth_headers(reader),
    )
    assert own.status_code == 200
    assert own.json()["total"] == 1
    assert own.json()["items"][0]["group_id"] == scenario.group.id
    assert own.json()["items"][0]["user_id"] == scenario.owner.id

    foreign = await client.get(
        "/permissions/audit-logs", params={"group_id": other_group.id}, headers=auth_headers(reader)
    )
    foreign_by_owner = await client.get(
        "/permissions/audit-logs", params={"group_id": other_group.id}, headers=auth_headers(scenario.owner)
    )
    unscoped = await client.get("/permissions/audit-logs", headers=auth_headers(scenario.owner))

    assert foreign.status_code == 403
    assert foreign_by_owner.status_code == 403
    assert unscoped.status_code == 400
