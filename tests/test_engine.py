"""
Resolution engine tests against an in-memory identity store.
"""
import pytest

from app.core.database.base import RecordStatus
from app.features.permissions.engine import DENIED, GrantSource, PermissionEngine
from app.features.permissions.exceptions import ResolutionFailed
from tests.fakes import FakeIdentityStore, UnreachableIdentityStore


@pytest.fixture
def store():
    # U owns G, V is an active trabajador in G, W a retired one
    store = FakeIdentityStore()
    store.add_group("G", owner_id="U")
    store.grant_role("trabajador", "inventario_leer")
    store.catalog.add("inventario_eliminar")
    store.add_membership("V", "G", "trabajador")
    store.add_membership("W", "G", "trabajador", status=RecordStatus.INACTIVO.value)
    return store


@pytest.fixture
def engine(store):
    return PermissionEngine(store)


async def test_owner_is_granted_everything_without_membership(engine):
    assert await engine.has_permission("U", "inventario_eliminar", "G") is True
    assert await engine.has_permission("U", "inventario_eliminar") is True


async def test_owner_bypass_precedes_catalog_check(engine, store):
    decision = await engine.resolve("U", "no_existe", "G")

    assert decision.granted
    assert decision.source is GrantSource.OWNER
    assert "exists" not in store.queries


async def test_owner_with_inactive_membership_still_bypasses(engine, store):
    store.add_membership("U", "G", "trabajador", status=RecordStatus.INACTIVO.value)

    assert await engine.has_permission("U", "inventario_eliminar", "G") is True


async def test_owner_bypass_is_scoped_to_the_owned_group(engine, store):
    store.add_group("H", owner_id="X")

    assert await engine.has_permission("U", "inventario_eliminar", "H") is False


async def test_active_member_gets_role_grants_only(engine):
    read = await engine.resolve("V", "inventario_leer", "G")
    delete = await engine.resolve("V", "inventario_eliminar", "G")

    assert read.granted and read.source is GrantSource.ROLE and read.group_id == "G"
    assert delete == DENIED


async def test_special_permission_adds_to_role_grants(engine, store):
    store.grant_special("V", "inventario_eliminar")

    decision = await engine.resolve("V", "inventario_eliminar", "G")

    assert decision.granted
    assert decision.source is GrantSource.SPECIAL
    assert await engine.has_permission("V", "inventario_leer", "G") is True


async def test_special_permission_applies_in_any_group(engine, store):
    store.add_group("H", owner_id="X")
    store.grant_special("Z", "inventario_eliminar")

    assert await engine.has_permission("Z", "inventario_eliminar", "G") is True
    assert await engine.has_permission("Z", "inventario_eliminar", "H") is True
    assert await engine.has_permission("Z", "inventario_eliminar") is True


async def test_inactive_membership_grants_nothing(engine):
    assert await engine.has_permission("W", "inventario_leer", "G") is False
    assert await engine.has_permission("W", "inventario_leer") is False


async def test_role_grant_is_scoped_to_the_membership_group(engine, store):
    store.add_group("H", owner_id="X")
    store.grant_role("supervisor", "inventario_eliminar")
    store.add_membership("V", "H", "supervisor")

    assert await engine.has_permission("V", "inventario_eliminar", "G") is False
    assert await engine.has_permission("V", "inventario_eliminar", "H") is True
    assert await engine.has_permission("V", "inventario_eliminar") is True


async def test_unknown_code_denies_unless_call_site_fails_open(engine):
    assert await engine.has_permission("anyone", "no_existe") is False

    decision = await engine.resolve("anyone", "no_existe", fail_open_if_unknown=True)

    assert decision.granted
    assert decision.source is GrantSource.UNKNOWN_CODE


async def test_fail_open_does_not_affect_known_codes(engine):
    assert await engine.has_permission("anyone", "inventario_leer", fail_open_if_unknown=True) is False


async def test_missing_user_or_code_is_denied_without_querying(engine, store):
    assert await engine.has_permission("", "inventario_leer", "G") is False
    assert await engine.has_permission("V", "", "G") is False
    assert store.queries == []


async def test_unknown_user_is_denied(engine):
    assert await engine.has_permission("nadie", "inventario_leer", "G") is False


async def test_duplicate_active_memberships_union_their_roles(engine, store):
    store.grant_role("auditor", "inventario_eliminar")
    store.add_membership("V", "G", "auditor")

    assert await engine.has_permission("V", "inventario_leer", "G") is True
    assert await engine.has_permission("V", "inventario_eliminar", "G") is True


async def test_resolution_is_idempotent(engine):
    first = await engine.resolve("V", "inventario_leer", "G")
    second = await engine.resolve("V", "inventario_leer", "G")

    assert first == second


async def test_role_codes_are_fetched_once_per_role(engine, store):
    store.add_group("H", owner_id="X")
    store.add_membership("V", "H", "trabajador")

    assert await engine.has_permission("V", "inventario_eliminar") is False
    assert store.queries.count("role") == 1


@pytest.mark.parametrize("failing", ["groups", "exists", "role", "special"])
async def test_store_failure_is_not_a_denial(failing):
    store = UnreachableIdentityStore(failing)
    store.add_group("G", owner_id="U")
    store.grant_role("trabajador", "inventario_leer")
    store.catalog.add("inventario_eliminar")
    store.add_membership("V", "G", "trabajador")
    engine = PermissionEngine(store)

    with pytest.raises(ResolutionFailed):
        await engine.has_permission("V", "inventario_eliminar", "G")


async def test_capabilities_resolves_each_code(engine):
    capabilities = await engine.capabilities(
        "V", ["inventario_leer", "inventario_eliminar", "inventario_leer"], "G"
    )

    assert capabilities == {"inventario_leer": True, "inventario_eliminar": False}


async def test_is_owner(engine):
    assert await engine.is_owner("U", "G") is True
    assert await engine.is_owner("U") is True
    assert await engine.is_owner("V", "G") is False


async def test_unknown_code_is_flagged_whether_granted_or_denied(engine):
    denied = await engine.resolve("V", "no_existe", "G")
    granted = await engine.resolve("V", "no_existe", "G", fail_open_if_unknown=True)
    known = await engine.resolve("V", "inventario_eliminar", "G")

    assert not denied.granted and denied.unknown_code
    assert granted.granted and granted.unknown_code
    assert not known.unknown_code


async def test_global_scope_ignores_ownership_and_roles(engine, store):
    store.grant_role("administrador", "permisos.gestionar")
    store.add_membership("V", "G", "administrador")

    assert (await engine.resolve_global("U", "permisos.gestionar")) == DENIED
    assert (await engine.resolve_global("V", "permisos.gestionar")) == DENIED


async def test_global_scope_accepts_special_permission(engine, store):
    store.grant_special("A", "permisos.gestionar")

    decision = await engine.resolve_global("A", "permisos.gestionar")

    assert decision.granted
    assert decision.source is GrantSource.SPECIAL
    assert "groups" not in store.queries


async def test_global_scope_unknown_code(engine):
    assert (await engine.resolve_global("U", "no_existe")).unknown_code
    assert (await engine.resolve_global("", "inventario_leer")) == DENIED
