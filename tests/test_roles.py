"""Unit tests for role resolution over token claims. Pure functions, no app."""
import json

from alquila.core.roles import ROLE_ADMIN, ROLE_OWNER, ROLE_TENANT, is_in_any_role, resolve_role


# ── resolve_role ─────────────────────────────────────────────────────────────

class TestResolveRole:
    def test_direct_role_claim(self):
        assert resolve_role({"role": "propietario"}) == ROLE_OWNER

    def test_trims_and_lowercases(self):
        assert resolve_role({"role": "  ADMIN "}) == ROLE_ADMIN

    def test_alternative_direct_claims(self):
        assert resolve_role({"user_role": "inquilino"}) == ROLE_TENANT
        assert resolve_role({"app_role": "admin"}) == ROLE_ADMIN

    def test_direct_claim_wins_over_metadata(self):
        claims = {"role": "inquilino", "app_metadata": {"role": "admin"}}
        assert resolve_role(claims) == ROLE_TENANT

    def test_generic_session_role_falls_through_to_metadata(self):
        claims = {"role": "authenticated", "app_metadata": {"role": "propietario"}}
        assert resolve_role(claims) == ROLE_OWNER

    def test_user_metadata_used_when_app_metadata_missing(self):
        assert resolve_role({"user_metadata": {"role": "Admin"}}) == ROLE_ADMIN

    def test_metadata_as_json_string(self):
        claims = {"app_metadata": json.dumps({"role": "propietario"})}
        assert resolve_role(claims) == ROLE_OWNER

    def test_malformed_metadata_is_ignored(self):
        assert resolve_role({"app_metadata": "{not json"}) is None

    def test_metadata_without_role(self):
        assert resolve_role({"app_metadata": {"provider": "email"}}) is None

    def test_blank_role_is_none(self):
        assert resolve_role({"role": "   "}) is None

    def test_no_claims(self):
        assert resolve_role({}) is None


# ── is_in_any_role ───────────────────────────────────────────────────────────

class TestIsInAnyRole:
    def test_matches_one_of_many(self):
        assert is_in_any_role({"role": "admin"}, ROLE_OWNER, ROLE_ADMIN)

    def test_case_insensitive_allowed_roles(self):
        assert is_in_any_role({"role": "propietario"}, " Propietario ")

    def test_no_match(self):
        assert not is_in_any_role({"role": "inquilino"}, ROLE_OWNER, ROLE_ADMIN)

    def test_unresolvable_role_is_never_allowed(self):
        assert not is_in_any_role({"role": "authenticated"}, ROLE_OWNER, ROLE_ADMIN)
