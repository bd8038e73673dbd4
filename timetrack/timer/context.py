"""Workspace context resolution.

A user acts either inside a workspace (an organization they belong to) or
in their personal, organization-less context.  Lookups of "the caller's
timer" walk an ordered list of contexts: the resolved workspace first, then
personal.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from ..database.models import Membership, Project
from ..errors import AuthorizationError, NotFoundError


class MembershipResolver:
    """Resolve a user's active workspace from ``memberships``.

    The most recently created active membership wins.  Returns ``None``
    when the user has no workspace (personal context only).
    """

    def resolve(self, db, user_id: str) -> Optional[str]:
        return db.scalars(
            select(Membership.workspace_id)
            .where(Membership.user_id == user_id, Membership.inactive_at.is_(None))
            .order_by(Membership.created_at.desc(), Membership.id.desc())
        ).first()


def require_user(user_id: str | None) -> str:
    if not user_id:
        raise AuthorizationError("Please sign in to use the timer")
    return user_id


def context_probes(workspace_id: str | None) -> list[str | None]:
    """Contexts to search for a user's timer, in priority order."""
    if workspace_id is None:
        return [None]
    return [workspace_id, None]


def resolve_project_context(
    db,
    user_id: str,
    project: Project | None,
    resolver: MembershipResolver,
    project_id: int | None = None,
) -> Optional[str]:
    """Workspace context in which *user_id* may track time on *project*.

    Personal projects require ownership; workspace projects require the
    project to live in the caller's current workspace.
    """
    if project is None:
        raise NotFoundError(
            f"Project {project_id} not found. It may have been deleted; "
            "refresh and select a valid project."
        )

    if project.is_personal:
        if project.owner_id != user_id:
            raise AuthorizationError(
                "You don't have permission to use this project. "
                "Please select one of your own projects."
            )
        return None

    workspace_id = resolver.resolve(db, user_id)
    if workspace_id is None:
        raise AuthorizationError("You are not a member of any workspace")
    if project.workspace_id != workspace_id:
        raise AuthorizationError(
            "Project not found in your current workspace. "
            "Please switch workspaces or select a different project."
        )
    return workspace_id
