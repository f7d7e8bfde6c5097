"""
SQLAlchemy ORM models.

All models imported here to ensure they are registered with Base.metadata.
Import order matters: base models before dependent models.
"""

from teamspace.models.base import Base, TimestampMixin, UUIDMixin
from teamspace.models.user import User
from teamspace.models.personal_space import PersonalSpace, SpaceTheme
from teamspace.models.organization import Organization
from teamspace.models.member import OrgMember, OrgRole
from teamspace.models.workspace import (
    OrganizationContext,
    PersonalContext,
    Workspace,
    WorkspaceContext,
    WorkspaceMember,
)
from teamspace.models.project import Project, ProjectMember, ProjectStatus
from teamspace.models.task import Task, TaskAssignee, TaskPriority, TaskStatus, TaskWatcher
from teamspace.models.comment import Comment, CommentReaction
from teamspace.models.activity import ActivityAction, TaskActivity
from teamspace.models.notification import Notification, NotificationType
from teamspace.models.document import Document, DocumentCategory
from teamspace.models.email_verification import EmailVerification

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "User",
    "PersonalSpace",
    "SpaceTheme",
    "Organization",
    "OrgMember",
    "OrgRole",
    "Workspace",
    "WorkspaceMember",
    "WorkspaceContext",
    "PersonalContext",
    "OrganizationContext",
    "Project",
    "ProjectMember",
    "ProjectStatus",
    "Task",
    "TaskAssignee",
    "TaskWatcher",
    "TaskStatus",
    "TaskPriority",
    "Comment",
    "CommentReaction",
    "TaskActivity",
    "ActivityAction",
    "Notification",
    "NotificationType",
    "Document",
    "DocumentCategory",
    "EmailVerification",
]
