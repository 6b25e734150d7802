"""
End-to-end isolation tests through the HTTP surface.

Alice is a MEMBER of Alpha, Bob a MEMBER of Beta. Every test asserts that
nothing created under one tenant is observable from the other.
"""

import asyncio

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from pmo.database.session import get_raw_session
from pmo.models.client import Client
from pmo.platform.audit import AuditAction, AuditLog
from pmo.platform.modules import ModuleConfig
from pmo.platform.tenant_context import get_tenant_id
from pmo.repositories.data_client import ScopedDataClient, get_scoped_data_client

from tenant_test_support import auth_headers, scoped_call


@pytest.fixture
def alice_headers(alice, settings):
    return auth_headers(alice, settings)


@pytest.fixture
def bob_headers(bob, settings):
    return auth_headers(bob, settings)


def _audit_rows(action):
    with get_raw_session() as session:
        return [
            (row.tenant_id, row.user_id, row.resource_id, row.outcome)
            for row in session.query(AuditLog).filter(AuditLog.action == action.value)
        ]


@pytest.mark.security
class TestCrossTenantCrud:
    def test_created_record_belongs_to_creator_tenant(self, client, alice_headers, bob_headers, alpha):
        created = client.post("/api/clients", json={"name": "X"}, headers=alice_headers)
        assert created.status_code == 201
        record_id = created.json()["id"]

        with get_raw_session() as session:
            assert session.get(Client, record_id).tenant_id == alpha.id

        listing = client.get("/api/clients", headers=bob_headers)
        assert listing.status_code == 200
        assert record_id not in [c["id"] for c in listing.json()]

    def test_payload_tenant_id_is_ignored(self, client, alice_headers, alpha, beta):
        created = client.post(
            "/api/clients",
            json={"name": "Sneaky", "tenant_id": beta.id},
            headers=alice_headers,
        )
        assert created.status_code == 201
        with get_raw_session() as session:
            assert session.get(Client, created.json()["id"]).tenant_id == alpha.id

    def test_foreign_id_indistinguishable_from_missing(self, client, alice_headers, bob_headers):
        record_id = client.post("/api/clients", json={"name": "Private"}, headers=alice_headers).json()["id"]

        for method, suffix, kwargs in [
            ("GET", "", {}),
            ("PATCH", "", {"json": {"name": "Pwned"}}),
            ("DELETE", "", {}),
        ]:
            foreign = client.request(method, f"/api/clients/{record_id}{suffix}", headers=bob_headers, **kwargs)
            missing = client.request(method, f"/api/clients/no-such-id{suffix}", headers=bob_headers, **kwargs)
            assert foreign.status_code == missing.status_code == 404
            assert foreign.json() == missing.json()

        still_there = client.get(f"/api/clients/{record_id}", headers=alice_headers)
        assert still_there.json()["name"] == "Private"

    def test_project_cannot_reference_foreign_client(self, client, alice_headers, beta):
        beta_client = scoped_call(beta.id, lambda db: db.clients.create({"name": "Beta Corp"}))

        response = client.post(
            "/api/projects",
            json={"name": "Linked", "client_id": beta_client.id},
            headers=alice_headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Client not found"

    def test_bulk_status_counts_only_own_projects(self, client, alice_headers, beta):
        own = client.post("/api/projects", json={"name": "Mine"}, headers=alice_headers).json()["id"]
        foreign = scoped_call(beta.id, lambda db: db.projects.create({"name": "Theirs"})).id

        response = client.post(
            "/api/projects/bulk-status",
            json={"project_ids": [own, foreign], "status": "COMPLETED"},
            headers=alice_headers,
        )

        assert response.json() == {"updated": 1}
        stats = client.get("/api/projects/stats/by-status", headers=alice_headers).json()
        assert stats["COMPLETED"] == 1

    def test_expense_summary_is_tenant_local(self, client, alice_headers, bob_headers):
        client.post(
            "/api/finance/expenses",
            json={"description": "Flight", "category": "travel", "amount": 250},
            headers=alice_headers,
        )
        client.post(
            "/api/finance/expenses",
            json={"description": "Hotel", "category": "travel", "amount": 900},
            headers=bob_headers,
        )

        summary = client.get("/api/finance/expenses/summary", headers=alice_headers).json()

        assert summary["count"] == 1
        assert summary["total"] == pytest.approx(250)

    def test_account_upsert_of_foreign_id_is_not_found(self, client, alice_headers, beta):
        foreign = scoped_call(beta.id, lambda db: db.accounts.create({"name": "Beta Account"}))

        response = client.put(
            f"/api/crm/accounts/{foreign.id}",
            json={"name": "Hijacked"},
            headers=alice_headers,
        )

        assert response.status_code == 404
        assert scoped_call(beta.id, lambda db: db.accounts.get_by_id(foreign.id).name) == "Beta Account"


class TestUpdateValidation:
    """Explicit nulls for required columns are rejected before reaching the database."""

    @pytest.mark.parametrize(
        "path,create_body,update_body",
        [
            ("/api/clients", {"name": "Acme"}, {"name": None}),
            ("/api/clients", {"name": "Acme"}, {"archived": None}),
            ("/api/projects", {"name": "Launch"}, {"name": None}),
            ("/api/projects", {"name": "Launch"}, {"status": None}),
            ("/api/crm/accounts", {"name": "Globex"}, {"type": None}),
            (
                "/api/finance/expenses",
                {"description": "Taxi", "category": "travel", "amount": 30},
                {"amount": None},
            ),
        ],
    )
    def test_null_required_field_is_rejected(self, client, alice_headers, path, create_body, update_body):
        record = client.post(path, json=create_body, headers=alice_headers).json()

        response = client.patch(f"{path}/{record['id']}", json=update_body, headers=alice_headers)

        assert response.status_code == 422
        unchanged = client.get(f"{path}/{record['id']}", headers=alice_headers).json()
        for key, value in create_body.items():
            assert unchanged[key] == value

    def test_null_optional_field_clears_it(self, client, alice_headers):
        record = client.post(
            "/api/clients", json={"name": "Acme", "industry": "Retail"}, headers=alice_headers,
        ).json()

        response = client.patch(f"/api/clients/{record['id']}", json={"industry": None}, headers=alice_headers)

        assert response.status_code == 200
        assert response.json()["industry"] is None
        assert response.json()["name"] == "Acme"


@pytest.mark.security
class TestRoleChecks:
    def test_viewer_can_read_but_not_write(self, client, viewer, settings):
        headers = auth_headers(viewer, settings)
        assert client.get("/api/clients", headers=headers).status_code == 200

        response = client.post("/api/clients", json={"name": "Nope"}, headers=headers)
        assert response.status_code == 403
        assert response.json() == {"detail": "Forbidden", "error_code": "forbidden"}

    def test_member_cannot_purge(self, client, alice_headers):
        assert client.post("/api/clients/purge-archived", headers=alice_headers).status_code == 403

    def test_admin_override_can_purge(self, client, tenant_admin, settings):
        response = client.post("/api/clients/purge-archived", headers=auth_headers(tenant_admin, settings))
        assert response.status_code == 200
        assert response.json() == {"deleted": 0}


class TestMemberManagement:
    def test_member_cannot_list_members(self, client, alice_headers):
        assert client.get("/api/tenants/current/members", headers=alice_headers).status_code == 403

    def test_owner_lists_only_own_tenant_members(self, client, owner, alice, bob, settings):
        response = client.get("/api/tenants/current/members", headers=auth_headers(owner, settings))

        assert response.status_code == 200
        emails = {m["email"] for m in response.json()["members"]}
        assert emails == {"owner@alpha.test", "alice@alpha.test"}

    def test_add_member_and_duplicate(self, client, owner, bob, alpha, settings):
        headers = auth_headers(owner, settings)

        added = client.post("/api/tenants/current/members", json={"email": bob.email, "role": "VIEWER"}, headers=headers)
        duplicate = client.post("/api/tenants/current/members", json={"email": bob.email}, headers=headers)
        unknown = client.post("/api/tenants/current/members", json={"email": "ghost@nowhere.test"}, headers=headers)

        assert added.status_code == 201
        assert added.json()["role"] == "VIEWER"
        assert duplicate.status_code == 409
        assert unknown.status_code == 404
        assert _audit_rows(AuditAction.TENANT_MEMBER_ADDED) == [(alpha.id, owner.id, bob.id, "success")]

    def test_last_owner_cannot_be_demoted_or_removed(self, client, owner, tenant_admin, settings):
        headers = auth_headers(tenant_admin, settings)

        demote = client.patch(f"/api/tenants/current/members/{owner.id}", json={"role": "MEMBER"}, headers=headers)
        remove = client.delete(f"/api/tenants/current/members/{owner.id}", headers=headers)

        assert demote.status_code == 400
        assert remove.status_code == 400

    def test_foreign_member_is_not_found(self, client, owner, bob, settings):
        response = client.delete(f"/api/tenants/current/members/{bob.id}", headers=auth_headers(owner, settings))
        assert response.status_code == 404

    def test_remove_member(self, client, owner, alice, settings):
        response = client.delete(f"/api/tenants/current/members/{alice.id}", headers=auth_headers(owner, settings))
        assert response.status_code == 204
        assert client.get("/api/tenants/current", headers=auth_headers(alice, settings)).status_code == 403


class TestTenantSwitch:
    def test_my_tenants(self, client, alice_headers):
        body = client.get("/api/tenants/my", headers=alice_headers).json()
        assert body["total_count"] == 1
        assert body["tenants"][0]["slug"] == "alpha"
        assert body["tenants"][0]["role"] == "MEMBER"

    def test_switch_to_own_tenant(self, client, alice, alpha, alice_headers):
        response = client.post(f"/api/tenants/switch/{alpha.id}", headers=alice_headers)

        assert response.status_code == 200
        assert response.json() == {"tenant_id": alpha.id, "slug": "alpha", "role": "MEMBER"}
        assert _audit_rows(AuditAction.TENANT_SWITCH) == [(alpha.id, alice.id, alpha.id, "success")]

    @pytest.mark.security
    def test_switch_to_foreign_tenant_denied_and_audited(self, client, alice, beta, alice_headers):
        foreign = client.post(f"/api/tenants/switch/{beta.id}", headers=alice_headers)
        unknown = client.post("/api/tenants/switch/no-such-tenant", headers=alice_headers)

        assert foreign.status_code == unknown.status_code == 403
        assert foreign.json() == unknown.json()
        assert (None, alice.id, beta.id, "denied") in _audit_rows(AuditAction.TENANT_SWITCH)


@pytest.mark.security
class TestModuleGating:
    def test_unmounted_module_is_404(self, make_app, settings, alice_headers):
        app = make_app(settings, ModuleConfig.from_string(None))
        response = TestClient(app).get("/api/finance/expenses", headers=alice_headers)

        assert response.status_code == 404

    def test_tenant_disabled_module_is_403(self, client, tenant_admin, alice_headers, bob_headers, settings):
        switched = client.put(
            "/api/modules/financeTracking",
            json={"enabled": False},
            headers=auth_headers(tenant_admin, settings),
        )
        assert switched.status_code == 200

        response = client.get("/api/finance/expenses", headers=alice_headers)
        assert response.status_code == 403
        assert response.json()["error_code"] == "module_disabled"

        # Other tenants keep the module
        assert client.get("/api/finance/expenses", headers=bob_headers).status_code == 200

    def test_member_cannot_switch_modules(self, client, alice_headers):
        response = client.put("/api/modules/financeTracking", json={"enabled": False}, headers=alice_headers)
        assert response.status_code == 403

    def test_core_module_cannot_be_disabled(self, client, tenant_admin, settings):
        response = client.put("/api/modules/clients", json={"enabled": False}, headers=auth_headers(tenant_admin, settings))
        assert response.status_code == 400

    def test_unknown_module(self, client, tenant_admin, settings):
        response = client.put("/api/modules/teleport", json={"enabled": True}, headers=auth_headers(tenant_admin, settings))
        assert response.status_code == 404

    def test_module_listing(self, client, alpha, alice_headers):
        body = client.get("/api/modules", headers=alice_headers).json()

        assert body["tenant_id"] == alpha.id
        assert "financeTracking" in body["enabled_modules"]
        assert "bugTracking" not in body["enabled_modules"]
        clients_info = next(m for m in body["modules"] if m["id"] == "clients")
        assert clients_info == {"id": "clients", "label": "Clients", "core": True, "enabled": True}

    def test_start_trial_is_audited(self, client, tenant_admin, alpha, settings):
        response = client.post(
            "/api/modules/marketing/trial",
            json={"days": 7},
            headers=auth_headers(tenant_admin, settings),
        )

        assert response.status_code == 200
        assert response.json()["tier"] == "TRIAL"
        assert response.json()["trial_ends_at"] is not None
        assert _audit_rows(AuditAction.MODULE_TRIAL_STARTED) == [(alpha.id, tenant_admin.id, "marketing", "success")]


@pytest.mark.security
class TestConcurrentRequests:
    """Two in-flight requests never observe each other's tenant."""

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_interleaved_requests_keep_their_tenant(self, app, alpha, beta, alice, bob, settings):
        scoped_call(alpha.id, lambda db: db.clients.create({"name": "Alpha Corp"}))
        scoped_call(beta.id, lambda db: db.clients.create({"name": "Beta Corp"}))

        alpha_suspended = asyncio.Event()
        beta_done = asyncio.Event()

        async def slow_probe(db: ScopedDataClient = Depends(get_scoped_data_client)):
            first = get_tenant_id()
            if first == alpha.id:
                alpha_suspended.set()
                await beta_done.wait()
            else:
                await alpha_suspended.wait()
            names = [c.name for c in db.clients.find_many()]
            second = get_tenant_id()
            if first != alpha.id:
                beta_done.set()
            return {"first": first, "second": second, "names": names}

        app.add_api_route("/api/probe", slow_probe, methods=["GET"])

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as http:
            alpha_response, beta_response = await asyncio.wait_for(
                asyncio.gather(
                    http.get("/api/probe", headers=auth_headers(alice, settings)),
                    http.get("/api/probe", headers=auth_headers(bob, settings)),
                ),
                timeout=10,
            )

        assert alpha_response.json() == {"first": alpha.id, "second": alpha.id, "names": ["Alpha Corp"]}
        assert beta_response.json() == {"first": beta.id, "second": beta.id, "names": ["Beta Corp"]}
