"""
Permission engine: decides whether an actor may read or write a project.

Access is an ordered chain of named policies. Each policy either returns a
Decision or abstains (None); the first decision wins. When every policy
abstains the request is denied with "access denied".
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import Forbidden
from app.projects.levels import Operation, PermissionLevel
from app.projects.models import PermissionGrant, Project

log = logging.getLogger(__name__)

ACCESS_DENIED = "access denied"
INSUFFICIENT_PERMISSION = "insufficient permission"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    policy: Optional[str] = None


@dataclass(frozen=True)
class AccessRequest:
    """Everything a policy may look at. grant is loaded fresh for every request."""

    project: Project
    actor: str
    operation: Operation
    grant: Optional[PermissionLevel] = None


class AccessPolicy:
    """One tier of the chain. Subclasses set name and implement evaluate."""

    name = ""

    def evaluate(self, request: AccessRequest) -> Optional[Decision]:
        raise NotImplementedError


class OwnerPolicy(AccessPolicy):
    name = "owner"

    def evaluate(self, request: AccessRequest) -> Optional[Decision]:
        if request.actor == request.project.owner_email:
            return Decision(True, "owner", self.name)
        return None


class GrantPolicy(AccessPolicy):
    # A grant without the capability denies outright; public access is not consulted
    name = "grant"

    def evaluate(self, request: AccessRequest) -> Optional[Decision]:
        if request.grant is None:
            return None
        if request.grant.allows(request.operation):
            return Decision(True, f"granted {request.grant.value}", self.name)
        return Decision(False, INSUFFICIENT_PERMISSION, self.name)


class PublicPolicy(AccessPolicy):
    name = "public"

    def evaluate(self, request: AccessRequest) -> Optional[Decision]:
        project = request.project
        if not project.public_access:
            return None
        level = PermissionLevel(project.public_permission)
        if level.allows(request.operation):
            return Decision(True, f"public {level.value}", self.name)
        return Decision(False, INSUFFICIENT_PERMISSION, self.name)


class PermissionEngine:
    """Runs the policy chain. Tiers can be added without editing the existing ones."""

    def __init__(self, policies: Optional[List[AccessPolicy]] = None) -> None:
        if policies is None:
            policies = [OwnerPolicy(), GrantPolicy(), PublicPolicy()]
        self._policies: List[AccessPolicy] = list(policies)

    @property
    def policy_names(self) -> List[str]:
        return [p.name for p in self._policies]

    def insert_policy(self, policy: AccessPolicy, before: Optional[str] = None) -> None:
        """Insert policy ahead of the named tier, or append when before is None."""
        if before is None:
            self._policies.append(policy)
            return
        names = self.policy_names
        if before not in names:
            raise ValueError(f"Unknown policy: {before!r}")
        self._policies.insert(names.index(before), policy)

    def decide(self, request: AccessRequest) -> Decision:
        """Pure evaluation of an already loaded request."""
        for policy in self._policies:
            decision = policy.evaluate(request)
            if decision is not None:
                return decision
        return Decision(False, ACCESS_DENIED)

    async def authorize(
        self, session: AsyncSession, project: Project, actor: str, operation: Operation
    ) -> Decision:
        """Load the actor's grant and run the chain."""
        grant = await load_grant(session, project.id, actor)
        return self.decide(AccessRequest(project, actor, Operation(operation), grant))

    async def require(
        self, session: AsyncSession, project: Project, actor: str, operation: Operation
    ) -> Decision:
        """Like authorize, but raise Forbidden when the decision denies."""
        decision = await self.authorize(session, project, actor, operation)
        if not decision.allowed:
            log.warning(
                "Denied %s on project=%s owner=%s for user=%s: %s",
                Operation(operation).value,
                project.name,
                project.owner_email,
                actor,
                decision.reason,
            )
            raise Forbidden(decision.reason)
        return decision


async def load_grant(
    session: AsyncSession, project_id: int, email: str
) -> Optional[PermissionLevel]:
    """Return the grant level held by email on the project, or None."""
    result = await session.execute(
        select(PermissionGrant.permission).where(
            PermissionGrant.project_id == project_id,
            PermissionGrant.user_email == email,
        )
    )
    level = result.scalar_one_or_none()
    return PermissionLevel(level) if level is not None else None


engine = PermissionEngine()


async def require_access(
    session: AsyncSession, project: Project, actor: str, operation: Operation
) -> Decision:
    """Authorize against the process-wide engine; raise Forbidden on denial."""
    return await engine.require(session, project, actor, operation)
