"""SQL statements used by the Postgres-backed services."""

# =============================================================================
# Schema
# =============================================================================

SQL_CREATE_SCHEMA = """
CREATE EXTENSION IF NOT EXISTS vector;
CREATE EXTENSION IF NOT EXISTS pgcrypto;

CREATE TABLE IF NOT EXISTS projects (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    scale TEXT,
    objective TEXT,
    timeline TEXT,
    additional_info TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_projects_user_created ON projects (user_id, created_at DESC);

CREATE TABLE IF NOT EXISTS stakeholders (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS project_stakeholders (
    project_id UUID NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    stakeholder_id INTEGER NOT NULL REFERENCES stakeholders(id) ON DELETE CASCADE,
    PRIMARY KEY (project_id, stakeholder_id)
);

CREATE TABLE IF NOT EXISTS conversation_history (
    id BIGSERIAL PRIMARY KEY,
    project_id UUID NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    session_id TEXT NOT NULL DEFAULT 'default',
    messages JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (project_id, session_id)
);

CREATE TABLE IF NOT EXISTS documents (
    id BIGSERIAL PRIMARY KEY,
    content TEXT,
    metadata JSONB,
    embedding VECTOR(384)
);

CREATE OR REPLACE FUNCTION match_documents (
    query_embedding VECTOR(384),
    filter JSONB DEFAULT '{}'
) RETURNS TABLE (
    id BIGINT,
    content TEXT,
    metadata JSONB,
    similarity FLOAT
)
LANGUAGE plpgsql
AS $$
#variable_conflict use_column
BEGIN
    RETURN QUERY
    SELECT
        id,
        content,
        metadata,
        1 - (documents.embedding <=> query_embedding) AS similarity
    FROM documents
    WHERE metadata @> filter
    ORDER BY documents.embedding <=> query_embedding;
END;
$$;
"""

# =============================================================================
# Projects
# =============================================================================

SQL_INSERT_PROJECT = """
INSERT INTO projects (user_id, name, description, scale, objective, timeline, additional_info)
VALUES (%(user_id)s, %(name)s, %(description)s, %(scale)s, %(objective)s, %(timeline)s, %(additional_info)s)
RETURNING id, user_id, name, description, scale, objective, timeline, additional_info, created_at, updated_at;
"""

SQL_LIST_PROJECTS = """
SELECT id, user_id, name, description, scale, objective, timeline, additional_info, created_at, updated_at
FROM projects
WHERE user_id = %s
ORDER BY created_at DESC;
"""

SQL_GET_PROJECT = """
SELECT id, user_id, name, description, scale, objective, timeline, additional_info, created_at, updated_at
FROM projects
WHERE id = %s AND user_id = %s;
"""

SQL_UPDATE_PROJECT = """
UPDATE projects
SET name = %(name)s,
    description = %(description)s,
    scale = %(scale)s,
    objective = %(objective)s,
    timeline = %(timeline)s,
    additional_info = %(additional_info)s,
    updated_at = NOW()
WHERE id = %(project_id)s AND user_id = %(user_id)s
RETURNING id, user_id, name, description, scale, objective, timeline, additional_info, created_at, updated_at;
"""

SQL_DELETE_PROJECT = """
DELETE FROM projects WHERE id = %s AND user_id = %s;
"""

# =============================================================================
# Stakeholders
# =============================================================================

SQL_LIST_STAKEHOLDERS = """
SELECT id, name FROM stakeholders ORDER BY name;
"""

SQL_GET_STAKEHOLDER_IDS_BY_NAME = """
SELECT id, name FROM stakeholders WHERE name = ANY(%s);
"""

SQL_GET_PROJECT_STAKEHOLDERS = """
SELECT ps.project_id, s.id, s.name
FROM project_stakeholders ps
JOIN stakeholders s ON s.id = ps.stakeholder_id
WHERE ps.project_id = ANY(%s::uuid[])
ORDER BY s.name;
"""

SQL_INSERT_PROJECT_STAKEHOLDERS = """
INSERT INTO project_stakeholders (project_id, stakeholder_id) VALUES %s
ON CONFLICT DO NOTHING;
"""

SQL_DELETE_PROJECT_STAKEHOLDERS = """
DELETE FROM project_stakeholders WHERE project_id = %s;
"""

SQL_SEED_STAKEHOLDERS = """
INSERT INTO stakeholders (name) VALUES %s
ON CONFLICT (name) DO NOTHING
RETURNING id;
"""

# =============================================================================
# Conversation history
# =============================================================================

SQL_GET_CONVERSATION_MESSAGES = """
SELECT messages FROM conversation_history
WHERE project_id = %s AND session_id = %s;
"""

SQL_UPSERT_CONVERSATION_MESSAGES = """
INSERT INTO conversation_history (project_id, session_id, messages)
VALUES (%s, %s, %s)
ON CONFLICT (project_id, session_id)
DO UPDATE SET messages = EXCLUDED.messages, updated_at = NOW();
"""

SQL_DELETE_CONVERSATION = """
DELETE FROM conversation_history
WHERE project_id = %s AND session_id = %s;
"""
