"""
Tests for tenant resolution: header selection, spoofing, inactive tenants.
"""

import pytest
from fastapi.testclient import TestClient

from pmo.constants.roles import TenantRole
from pmo.middleware.tenant_resolution import TENANT_HEADER, select_membership

from tenant_test_support import add_member, auth_headers, make_user, scoped_call


@pytest.fixture
def beta_secret(beta):
    return scoped_call(beta.id, lambda db: db.clients.create({"name": "Beta Secret Client"}))


class TestSelectMembership:
    def test_header_match_wins(self, alpha, beta):
        rows = [("m-alpha", alpha), ("m-beta", beta)]
        assert select_membership(rows, "beta") == (("m-beta", beta), False)
        assert select_membership(rows, alpha.id) == (("m-alpha", alpha), False)

    def test_single_membership_is_default(self, alpha):
        assert select_membership([("m", alpha)], None) == (("m", alpha), False)

    def test_unmatched_header_falls_back_and_flags(self, alpha):
        assert select_membership([("m", alpha)], "someone-else") == (("m", alpha), True)

    def test_ambiguous_without_header(self, alpha, beta):
        assert select_membership([("a", alpha), ("b", beta)], None) == (None, False)

    def test_no_memberships(self):
        assert select_membership([], "alpha") == (None, True)


@pytest.mark.security
class TestResolution:
    def test_single_membership_resolved_without_header(self, client, alice, alpha, settings):
        response = client.get("/api/tenants/current", headers=auth_headers(alice, settings))

        assert response.status_code == 200
        assert response.json()["slug"] == "alpha"
        assert response.json()["role"] == "MEMBER"
        assert response.headers[TENANT_HEADER] == alpha.id

    def test_header_by_slug(self, client, alice, alpha, settings):
        response = client.get(
            "/api/tenants/current",
            headers=auth_headers(alice, settings, tenant_header="alpha"),
        )
        assert response.status_code == 200
        assert response.json()["id"] == alpha.id

    def test_user_without_membership_is_forbidden(self, client, settings, db_engine):
        loner = make_user("loner@example.test")
        response = client.get("/api/tenants/current", headers=auth_headers(loner, settings))
        assert response.status_code == 403
        assert response.json() == {"detail": "Forbidden", "error_code": "forbidden"}

    def test_pending_membership_is_unusable(self, client, beta, settings, db_engine):
        invitee = make_user("invitee@beta.test")
        add_member(beta, invitee, TenantRole.MEMBER, accepted=False)

        response = client.get("/api/tenants/current", headers=auth_headers(invitee, settings, beta))

        assert response.status_code == 403

    def test_multiple_memberships_need_header(self, client, alpha, beta, settings):
        multi = make_user("multi@example.test")
        add_member(alpha, multi, TenantRole.MEMBER)
        add_member(beta, multi, TenantRole.VIEWER)

        assert client.get("/api/tenants/current", headers=auth_headers(multi, settings)).status_code == 403

        response = client.get("/api/tenants/current", headers=auth_headers(multi, settings, beta))
        assert response.status_code == 200
        assert response.json()["role"] == "VIEWER"


@pytest.mark.security
class TestHeaderSpoofing:
    """A member of Alpha naming Beta in the header never sees Beta's data."""

    def test_spoofed_id_falls_back_to_own_tenant(self, client, alice, alpha, beta, beta_secret, settings):
        response = client.get("/api/clients", headers=auth_headers(alice, settings, beta))

        assert response.status_code == 200
        assert response.json() == []
        assert response.headers[TENANT_HEADER] == alpha.id

    def test_spoofed_slug_falls_back_to_own_tenant(self, client, alice, beta_secret, settings):
        response = client.get("/api/clients", headers=auth_headers(alice, settings, tenant_header="beta"))
        assert "Beta Secret Client" not in response.text

    def test_spoofed_record_fetch_is_not_found(self, client, alice, beta, beta_secret, settings):
        response = client.get(f"/api/clients/{beta_secret.id}", headers=auth_headers(alice, settings, beta))
        assert response.status_code == 404

    def test_spoofed_header_with_ambiguous_memberships_is_rejected(
        self, client, alpha, gamma, beta, beta_secret, settings,
    ):
        user = make_user("two@example.test")
        add_member(alpha, user, TenantRole.MEMBER)
        add_member(gamma, user, TenantRole.MEMBER)

        response = client.get("/api/clients", headers=auth_headers(user, settings, beta))

        assert response.status_code == 403
        assert "Beta Secret Client" not in response.text

    def test_unknown_and_foreign_tenant_answer_identically(self, client, alpha, beta, settings):
        user = make_user("two@example.test")
        add_member(alpha, user, TenantRole.MEMBER)
        add_member(beta, user, TenantRole.MEMBER, accepted=False)
        other = make_user("three@example.test")
        add_member(alpha, other, TenantRole.MEMBER)
        add_member(beta, other, TenantRole.MEMBER, accepted=False)

        foreign = client.get("/api/tenants/current", headers=auth_headers(user, settings, beta))
        unknown = client.get("/api/tenants/current", headers=auth_headers(other, settings, tenant_header="no-such"))

        assert foreign.status_code == unknown.status_code
        assert foreign.json() == unknown.json()


@pytest.mark.security
class TestInactiveTenant:
    @pytest.fixture
    def gamma_member(self, gamma):
        user = make_user("member@gamma.test")
        add_member(gamma, user, TenantRole.OWNER)
        return user

    def test_suspended_tenant_is_forbidden(self, client, gamma_member, settings):
        response = client.get("/api/clients", headers=auth_headers(gamma_member, settings))

        assert response.status_code == 403
        assert response.json() == {"detail": "Tenant is not active", "error_code": "tenant_inactive"}

    def test_suspended_tenant_data_is_never_returned(self, client, gamma, gamma_member, settings):
        scoped_call(gamma.id, lambda db: db.clients.create({"name": "Gamma Client"}))
        response = client.get("/api/clients", headers=auth_headers(gamma_member, settings))
        assert "Gamma Client" not in response.text

    def test_relaxed_mode_proceeds_without_context(self, make_app, relaxed_settings, module_config, gamma, gamma_member):
        scoped_call(gamma.id, lambda db: db.clients.create({"name": "Gamma Client"}))
        relaxed_client = TestClient(make_app(relaxed_settings, module_config), raise_server_exceptions=False)

        response = relaxed_client.get("/api/clients", headers=auth_headers(gamma_member, relaxed_settings))

        # Scoped data access without a context fails closed
        assert response.status_code == 500
        assert response.json()["error_code"] == "internal_error"
        assert "Gamma Client" not in response.text
        assert TENANT_HEADER not in response.headers

    def test_relaxed_mode_has_no_tenant_for_current(self, make_app, relaxed_settings, module_config, gamma_member):
        relaxed_client = TestClient(make_app(relaxed_settings, module_config))
        response = relaxed_client.get("/api/tenants/current", headers=auth_headers(gamma_member, relaxed_settings))
        assert response.status_code == 403

    def test_agnostic_routes_still_work(self, client, gamma_member, settings):
        response = client.get("/api/tenants/my", headers=auth_headers(gamma_member, settings))
        assert response.status_code == 200
        assert response.json() == {"tenants": [], "total_count": 0}
