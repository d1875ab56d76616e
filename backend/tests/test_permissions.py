"""Tests for the permission engine: policy order, grants vs public access, custom tiers."""

from typing import Optional

import pytest

from app.errors import Forbidden
from app.projects.directory import create_project, revoke_permission, set_permissions
from app.projects.levels import Operation, PermissionLevel
from app.projects.models import Project
from app.projects.permissions import (
    AccessPolicy,
    AccessRequest,
    Decision,
    PermissionEngine,
    engine,
    require_access,
)
from app.users.service import register_user


def _project(public: bool = False, level: PermissionLevel = PermissionLevel.READ) -> Project:
    return Project(
        id=1,
        name="demo",
        owner_email="owner@example.com",
        public_access=public,
        public_permission=level,
    )


def _decide(
    project: Project,
    actor: str,
    operation: Operation,
    grant: Optional[PermissionLevel] = None,
) -> Decision:
    return PermissionEngine().decide(AccessRequest(project, actor, operation, grant))


@pytest.mark.parametrize("operation", [Operation.READ, Operation.WRITE])
def test_owner_always_allowed(operation) -> None:
    decision = _decide(_project(), "owner@example.com", operation)
    assert decision.allowed
    assert decision.policy == "owner"


@pytest.mark.parametrize(
    "grant,operation,allowed",
    [
        (PermissionLevel.READ, Operation.READ, True),
        (PermissionLevel.READ, Operation.WRITE, False),
        (PermissionLevel.WRITE, Operation.WRITE, True),
        (PermissionLevel.WRITE, Operation.READ, False),
        (PermissionLevel.READ_WRITE, Operation.READ, True),
        (PermissionLevel.READ_WRITE, Operation.WRITE, True),
    ],
)
def test_grant_decides_by_capability(grant, operation, allowed) -> None:
    decision = _decide(_project(), "bob@example.com", operation, grant)
    assert decision.allowed is allowed
    assert decision.policy == "grant"
    if not allowed:
        assert decision.reason == "insufficient permission"


def test_grant_without_capability_does_not_fall_through_to_public() -> None:
    project = _project(public=True, level=PermissionLevel.READ_WRITE)
    decision = _decide(project, "bob@example.com", Operation.WRITE, PermissionLevel.READ)
    assert not decision.allowed
    assert decision.reason == "insufficient permission"


def test_public_access_applies_without_grant() -> None:
    project = _project(public=True, level=PermissionLevel.READ)
    assert _decide(project, "carol@example.com", Operation.READ).allowed
    denied = _decide(project, "carol@example.com", Operation.WRITE)
    assert not denied.allowed
    assert denied.policy == "public"


def test_no_policy_applies_is_access_denied() -> None:
    decision = _decide(_project(), "stranger@example.com", Operation.READ)
    assert decision == Decision(False, "access denied", None)


def test_insert_policy_before_public() -> None:
    class BlockList(AccessPolicy):
        name = "blocklist"

        def evaluate(self, request):
            if request.actor == "banned@example.com":
                return Decision(False, "blocked", self.name)
            return None

    custom = PermissionEngine()
    custom.insert_policy(BlockList(), before="public")
    assert custom.policy_names == ["owner", "grant", "blocklist", "public"]
    project = _project(public=True)
    assert custom.decide(AccessRequest(project, "banned@example.com", Operation.READ)).reason == "blocked"
    assert custom.decide(AccessRequest(project, "other@example.com", Operation.READ)).allowed


def test_insert_policy_unknown_anchor() -> None:
    with pytest.raises(ValueError):
        PermissionEngine().insert_policy(AccessPolicy(), before="missing")


@pytest.mark.asyncio
async def test_authorize_loads_grant_and_revocation(session_factory, unique_email) -> None:
    """A grant is honored immediately and denied again right after revocation."""
    owner, bob = unique_email("owner"), unique_email("bob")
    async with session_factory() as session:
        await register_user(session, owner, "password123")
        await register_user(session, bob, "password123")
        project = await create_project(session, "perm-demo", owner)

        assert not (await engine.authorize(session, project, bob, Operation.READ)).allowed
        await set_permissions(session, project, owner, bob, PermissionLevel.READ)
        assert (await engine.authorize(session, project, bob, Operation.READ)).allowed
        with pytest.raises(Forbidden, match="insufficient permission"):
            await require_access(session, project, bob, Operation.WRITE)

        await revoke_permission(session, project, owner, bob)
        with pytest.raises(Forbidden, match="access denied"):
            await require_access(session, project, bob, Operation.READ)

        # Public access still covers a revoked user
        await set_permissions(session, project, owner, None, PermissionLevel.READ)
        assert (await engine.authorize(session, project, bob, Operation.READ)).allowed
