"""create_core_schema

Revision ID: a7c1e2d3f4b5
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from __future__ import annotations

from alembic import op

revision = "a7c1e2d3f4b5"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE TYPE org_role AS ENUM ('owner', 'admin', 'member')")
    op.execute("CREATE TYPE space_theme AS ENUM ('light', 'dark')")
    op.execute(
        "CREATE TYPE project_status AS ENUM "
        "('planning', 'active', 'on_hold', 'completed', 'cancelled')"
    )
    op.execute("CREATE TYPE task_status AS ENUM ('todo', 'in_progress', 'done')")
    op.execute("CREATE TYPE task_priority AS ENUM ('low', 'medium', 'high', 'urgent')")
    op.execute(
        "CREATE TYPE notification_type AS ENUM "
        "('task_assigned', 'task_updated', 'comment_added', 'mentioned', "
        "'org_member_added', 'org_role_updated', 'project_member_added')"
    )
    op.execute("CREATE TYPE document_category AS ENUM ('image', 'document', 'video', 'other')")

    # -- identity ------------------------------------------------------------

    op.execute("""
        CREATE TABLE users (
            id              UUID         PRIMARY KEY DEFAULT gen_random_uuid(),
            email           VARCHAR(320) NOT NULL UNIQUE,
            password_hash   VARCHAR(255),
            display_name    VARCHAR(100) NOT NULL,
            phone           VARCHAR(32),
            avatar_url      VARCHAR(500),
            email_verified  BOOLEAN      NOT NULL DEFAULT false,
            deleted         BOOLEAN      NOT NULL DEFAULT false,
            deleted_at      TIMESTAMPTZ,
            original_email  VARCHAR(320),
            created_at      TIMESTAMPTZ  NOT NULL DEFAULT now(),
            updated_at      TIMESTAMPTZ  NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX ix_users_deleted ON users(deleted)")
    op.execute("CREATE INDEX ix_users_original_email ON users(original_email)")

    op.execute("""
        CREATE TABLE email_verifications (
            id          UUID         PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id     UUID         NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token       VARCHAR(128) NOT NULL UNIQUE,
            expires_at  TIMESTAMPTZ  NOT NULL,
            created_at  TIMESTAMPTZ  NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX ix_email_verifications_user_id ON email_verifications(user_id)")
    op.execute("CREATE INDEX ix_email_verifications_expires_at ON email_verifications(expires_at)")

    # -- contexts ------------------------------------------------------------

    op.execute("""
        CREATE TABLE organizations (
            id           UUID         PRIMARY KEY DEFAULT gen_random_uuid(),
            name         VARCHAR(100) NOT NULL,
            slug         VARCHAR(120) NOT NULL UNIQUE,
            description  TEXT,
            owner_id     UUID         NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
            created_at   TIMESTAMPTZ  NOT NULL DEFAULT now(),
            updated_at   TIMESTAMPTZ  NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX ix_organizations_owner_id ON organizations(owner_id)")

    op.execute("""
        CREATE TABLE org_members (
            id         UUID        PRIMARY KEY DEFAULT gen_random_uuid(),
            org_id     UUID        NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            user_id    UUID        NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            role       org_role    NOT NULL,
            joined_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_org_members_org_user UNIQUE (org_id, user_id)
        )
    """)
    op.execute("CREATE INDEX ix_org_members_user_id ON org_members(user_id)")

    op.execute("""
        CREATE TABLE personal_spaces (
            id            UUID        PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id       UUID        NOT NULL UNIQUE REFERENCES users(id) ON DELETE CASCADE,
            theme         space_theme NOT NULL DEFAULT 'light',
            default_view  VARCHAR(20) NOT NULL DEFAULT 'list',
            created_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at    TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)

    op.execute("""
        CREATE TABLE workspaces (
            id                 UUID         PRIMARY KEY DEFAULT gen_random_uuid(),
            name               VARCHAR(100) NOT NULL,
            description        TEXT,
            color              VARCHAR(7)   NOT NULL DEFAULT '#3B82F6',
            owner_id           UUID         NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            personal_space_id  UUID         REFERENCES personal_spaces(id) ON DELETE CASCADE,
            organization_id    UUID         REFERENCES organizations(id) ON DELETE CASCADE,
            created_at         TIMESTAMPTZ  NOT NULL DEFAULT now(),
            updated_at         TIMESTAMPTZ  NOT NULL DEFAULT now(),
            CONSTRAINT ck_workspaces_single_context
                CHECK ((personal_space_id IS NULL) <> (organization_id IS NULL))
        )
    """)
    op.execute("CREATE INDEX ix_workspaces_owner_id ON workspaces(owner_id)")
    op.execute("CREATE INDEX ix_workspaces_personal_space_id ON workspaces(personal_space_id)")
    op.execute("CREATE INDEX ix_workspaces_organization_id ON workspaces(organization_id)")

    op.execute("""
        CREATE TABLE workspace_members (
            workspace_id  UUID        NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
            user_id       UUID        NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            added_at      TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (workspace_id, user_id)
        )
    """)
    op.execute("CREATE INDEX ix_workspace_members_user_id ON workspace_members(user_id)")

    # -- projects and tasks --------------------------------------------------

    op.execute("""
        CREATE TABLE projects (
            id            UUID           PRIMARY KEY DEFAULT gen_random_uuid(),
            workspace_id  UUID           NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
            name          VARCHAR(200)   NOT NULL,
            description   TEXT,
            status        project_status NOT NULL DEFAULT 'planning',
            start_date    TIMESTAMPTZ,
            end_date      TIMESTAMPTZ,
            tags          JSONB          NOT NULL DEFAULT '[]'::jsonb,
            owner_id      UUID           REFERENCES users(id) ON DELETE SET NULL,
            owner_name    VARCHAR(100),
            is_legacy     BOOLEAN        NOT NULL DEFAULT false,
            created_at    TIMESTAMPTZ    NOT NULL DEFAULT now(),
            updated_at    TIMESTAMPTZ    NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX ix_projects_workspace_id ON projects(workspace_id)")
    op.execute("CREATE INDEX ix_projects_owner_id ON projects(owner_id)")

    op.execute("""
        CREATE TABLE project_members (
            project_id  UUID        NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            user_id     UUID        NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            added_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (project_id, user_id)
        )
    """)
    op.execute("CREATE INDEX ix_project_members_user_id ON project_members(user_id)")

    op.execute("""
        CREATE TABLE tasks (
            id               UUID          PRIMARY KEY DEFAULT gen_random_uuid(),
            project_id       UUID          NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            title            VARCHAR(500)  NOT NULL,
            description      TEXT,
            status           task_status   NOT NULL DEFAULT 'todo',
            priority         task_priority NOT NULL DEFAULT 'medium',
            due_date         TIMESTAMPTZ,
            created_by       UUID          REFERENCES users(id) ON DELETE SET NULL,
            created_by_name  VARCHAR(100),
            created_at       TIMESTAMPTZ   NOT NULL DEFAULT now(),
            updated_at       TIMESTAMPTZ   NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX ix_tasks_project_id ON tasks(project_id)")
    op.execute("CREATE INDEX ix_tasks_created_by ON tasks(created_by)")
    op.execute("CREATE INDEX ix_tasks_due_date ON tasks(due_date) WHERE due_date IS NOT NULL")

    op.execute("""
        CREATE TABLE task_assignees (
            task_id   UUID    NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            user_id   UUID    NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            position  INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (task_id, user_id)
        )
    """)
    op.execute("CREATE INDEX ix_task_assignees_user_id ON task_assignees(user_id)")

    op.execute("""
        CREATE TABLE task_watchers (
            task_id  UUID NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            user_id  UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            PRIMARY KEY (task_id, user_id)
        )
    """)
    op.execute("CREATE INDEX ix_task_watchers_user_id ON task_watchers(user_id)")

    # -- task-scoped records -------------------------------------------------

    op.execute("""
        CREATE TABLE comments (
            id           UUID         PRIMARY KEY DEFAULT gen_random_uuid(),
            task_id      UUID         NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            author_id    UUID         REFERENCES users(id) ON DELETE SET NULL,
            author_name  VARCHAR(100),
            content      TEXT         NOT NULL,
            mentions     JSONB        NOT NULL DEFAULT '[]'::jsonb,
            created_at   TIMESTAMPTZ  NOT NULL DEFAULT now(),
            updated_at   TIMESTAMPTZ  NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX ix_comments_task_id ON comments(task_id)")
    op.execute("CREATE INDEX ix_comments_author_id ON comments(author_id)")

    op.execute("""
        CREATE TABLE comment_reactions (
            comment_id  UUID        NOT NULL REFERENCES comments(id) ON DELETE CASCADE,
            user_id     UUID        NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            emoji       VARCHAR(32) NOT NULL,
            reacted_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (comment_id, user_id)
        )
    """)

    op.execute("""
        CREATE TABLE task_activities (
            id                 UUID         PRIMARY KEY DEFAULT gen_random_uuid(),
            task_id            UUID         NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            performed_by       UUID         REFERENCES users(id) ON DELETE SET NULL,
            performed_by_name  VARCHAR(100),
            action             VARCHAR(40)  NOT NULL,
            field              VARCHAR(40),
            old_value          JSONB,
            new_value          JSONB,
            details            TEXT         NOT NULL,
            metadata           JSONB        NOT NULL DEFAULT '{}'::jsonb,
            created_at         TIMESTAMPTZ  NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX ix_task_activities_task_created ON task_activities(task_id, created_at)")
    op.execute("CREATE INDEX ix_task_activities_performed_by ON task_activities(performed_by)")

    op.execute("""
        CREATE TABLE documents (
            id             UUID              PRIMARY KEY DEFAULT gen_random_uuid(),
            task_id        UUID              NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            filename       VARCHAR(255)      NOT NULL,
            original_name  VARCHAR(255)      NOT NULL,
            mime_type      VARCHAR(150)      NOT NULL,
            size           INTEGER           NOT NULL,
            url            VARCHAR(1000)     NOT NULL,
            public_id      VARCHAR(500)      NOT NULL,
            category       document_category NOT NULL,
            uploaded_by    UUID              REFERENCES users(id) ON DELETE SET NULL,
            description    TEXT,
            uploaded_at    TIMESTAMPTZ       NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX ix_documents_task_id ON documents(task_id)")

    # -- notifications -------------------------------------------------------

    op.execute("""
        CREATE TABLE notifications (
            id                       UUID              PRIMARY KEY DEFAULT gen_random_uuid(),
            recipient_id             UUID              NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            sender_id                UUID              REFERENCES users(id) ON DELETE SET NULL,
            sender_name              VARCHAR(100),
            type                     notification_type NOT NULL,
            title                    VARCHAR(255)      NOT NULL,
            message                  TEXT              NOT NULL,
            related_task_id          UUID              REFERENCES tasks(id) ON DELETE SET NULL,
            related_comment_id       UUID              REFERENCES comments(id) ON DELETE SET NULL,
            related_organization_id  UUID              REFERENCES organizations(id) ON DELETE SET NULL,
            related_project_id       UUID              REFERENCES projects(id) ON DELETE SET NULL,
            read                     BOOLEAN           NOT NULL DEFAULT false,
            created_at               TIMESTAMPTZ       NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX ix_notifications_recipient_created ON notifications(recipient_id, created_at)")
    op.execute("CREATE INDEX ix_notifications_recipient_read ON notifications(recipient_id, read)")
    op.execute("CREATE INDEX ix_notifications_sender_id ON notifications(sender_id)")


def downgrade() -> None:
    for table in (
        "notifications",
        "documents",
        "task_activities",
        "comment_reactions",
        "comments",
        "task_watchers",
        "task_assignees",
        "tasks",
        "project_members",
        "projects",
        "workspace_members",
        "workspaces",
        "personal_spaces",
        "org_members",
        "organizations",
        "email_verifications",
        "users",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table}")
    for enum_type in (
        "document_category",
        "notification_type",
        "task_priority",
        "task_status",
        "project_status",
        "space_theme",
        "org_role",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_type}")
