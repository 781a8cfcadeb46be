"""Tests for ProfileActorResolver."""

from uuid import uuid4

from brickworks_kernel.services.actions import run_action
from brickworks_kernel.services.actor_service import ProfileActorResolver

from tests.conftest import TENANT_B


class TestProfileActorResolver:

    def test_resolves_profile(self, session, make_profile):
        identity = make_profile(role="kiln_operator", tenant_id=TENANT_B, full_name="Kiln Op")
        actor = ProfileActorResolver(session, identity).resolve_actor()

        assert actor.actor_id == identity
        assert actor.tenant_id == TENANT_B
        assert actor.role == "kiln_operator"
        assert actor.full_name == "Kiln Op"
        assert not actor.is_platform_admin

    def test_string_identity(self, session, make_profile):
        identity = make_profile()
        assert ProfileActorResolver(session, str(identity)).resolve_actor().actor_id == identity

    def test_no_identity(self, session):
        resolution = ProfileActorResolver(session, None).resolve()
        assert not resolution.is_authenticated
        assert resolution.actor is None

    def test_malformed_identity_is_unauthenticated(self, session, captured_logs):
        resolution = ProfileActorResolver(session, "not-a-uuid").resolve()

        assert not resolution.is_authenticated
        assert resolution.actor is None
        assert any(r["message"] == "identity_id_malformed" for r in captured_logs())

    def test_malformed_identity_fails_action_cleanly(self, session):
        result = run_action(
            session, ProfileActorResolver(session, "garbage"), "mixing.start", lambda actor: actor,
        )
        assert result.code == "UNAUTHENTICATED"

    def test_identity_without_profile(self, session, captured_logs):
        identity = uuid4()
        resolution = ProfileActorResolver(session, identity).resolve()

        assert resolution.is_authenticated
        assert resolution.actor is None
        assert any(r["message"] == "profile_missing" for r in captured_logs())

    def test_resolution_cached(self, session, make_profile):
        resolver = ProfileActorResolver(session, make_profile())
        assert resolver.resolve() is resolver.resolve()
