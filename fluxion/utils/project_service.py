"""
ProjectService - CRUD for change-management projects and their stakeholders.

Every operation is scoped to the owning user: rows belonging to another
user behave exactly like rows that do not exist.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor, execute_values

from fluxion.utils.logging import get_logger
from fluxion.utils.sql import (
    SQL_DELETE_PROJECT,
    SQL_DELETE_PROJECT_STAKEHOLDERS,
    SQL_GET_PROJECT,
    SQL_GET_PROJECT_STAKEHOLDERS,
    SQL_GET_STAKEHOLDER_IDS_BY_NAME,
    SQL_INSERT_PROJECT,
    SQL_INSERT_PROJECT_STAKEHOLDERS,
    SQL_LIST_PROJECTS,
    SQL_LIST_STAKEHOLDERS,
    SQL_SEED_STAKEHOLDERS,
    SQL_UPDATE_PROJECT,
)

logger = get_logger(__name__)


class ProjectValidationError(ValueError):
    """Raised when a project form is missing required fields."""


class ProjectNotFoundError(LookupError):
    """Raised when a project does not exist or is not owned by the caller."""


@dataclass
class Stakeholder:
    id: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass
class Project:
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    scale: Optional[str] = None
    objective: Optional[str] = None
    timeline: Optional[str] = None
    additional_info: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    stakeholders: List[Stakeholder] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any], stakeholders: Optional[List[Stakeholder]] = None) -> 'Project':
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            name=row["name"],
            description=row.get("description"),
            scale=row.get("scale"),
            objective=row.get("objective"),
            timeline=row.get("timeline"),
            additional_info=row.get("additional_info"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            stakeholders=list(stakeholders or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "scale": self.scale,
            "objective": self.objective,
            "timeline": self.timeline,
            "additional_info": self.additional_info,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "stakeholders": [s.to_dict() for s in self.stakeholders],
        }


@dataclass
class ProjectForm:
    """Project fields as submitted by the project form."""

    project_name: str = ""
    project_description: str = ""
    scale: str = ""
    objective: str = ""
    stakeholders: List[str] = field(default_factory=list)
    timeline: str = ""
    additional_info: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> 'ProjectForm':
        payload = payload or {}
        stakeholders = payload.get("stakeholders") or []
        if isinstance(stakeholders, str):
            stakeholders = [stakeholders]
        return cls(
            project_name=str(payload.get("projectName") or ""),
            project_description=str(payload.get("projectDescription") or ""),
            scale=str(payload.get("scale") or ""),
            objective=str(payload.get("objective") or ""),
            stakeholders=[str(name).strip() for name in stakeholders if str(name).strip()],
            timeline=str(payload.get("timeline") or ""),
            additional_info=payload.get("additionalInfo") or None,
        )

    def validate(self) -> None:
        if not self.project_name.strip():
            raise ProjectValidationError("Project name is required")

    def to_params(self) -> Dict[str, Any]:
        return {
            "name": self.project_name.strip(),
            "description": self.project_description,
            "scale": self.scale,
            "objective": self.objective,
            "timeline": self.timeline,
            "additional_info": self.additional_info,
        }


class ProjectService:
    """
    Service for projects, stakeholders and their many-to-many relation.

    Example:
        >>> service = ProjectService(connection_pool=pool)
        >>> project = service.create_project(ProjectForm(project_name="ERP rollout"), user_id)
        >>> service.list_projects(user_id)
    """

    def __init__(self, connection_pool=None, *, pg_config: Optional[Dict[str, Any]] = None):
        self._pool = connection_pool
        self._pg_config = pg_config

    def _get_connection(self) -> psycopg2.extensions.connection:
        """Get a database connection."""
        if self._pool:
            return self._pool.get_connection()
        elif self._pg_config:
            return psycopg2.connect(**self._pg_config)
        else:
            raise ValueError("No connection pool or pg_config provided")

    def _release_connection(self, conn) -> None:
        """Release connection back to pool or close it."""
        if self._pool:
            self._pool.release_connection(conn)
        else:
            conn.close()

    # =========================================================================
    # Projects
    # =========================================================================

    def create_project(self, form: ProjectForm, user_id: str) -> Project:
        form.validate()
        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(SQL_INSERT_PROJECT, {"user_id": user_id, **form.to_params()})
                row = cursor.fetchone()
                stakeholders = self._link_stakeholders(cursor, row["id"], form.stakeholders)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._release_connection(conn)

        project = Project.from_row(row, stakeholders)
        logger.info("Created project %s for user %s", project.id, user_id)
        return project

    def list_projects(self, user_id: str) -> List[Project]:
        """Return the user's projects, newest first."""
        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(SQL_LIST_PROJECTS, (user_id,))
                rows = cursor.fetchall() or []
                by_project = self._stakeholders_for(cursor, [row["id"] for row in rows])
        finally:
            self._release_connection(conn)
        return [Project.from_row(row, by_project.get(str(row["id"]), [])) for row in rows]

    def get_project(self, project_id: str, user_id: str) -> Project:
        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(SQL_GET_PROJECT, (project_id, user_id))
                row = cursor.fetchone()
                if row is None:
                    raise ProjectNotFoundError(f"Project {project_id} not found")
                by_project = self._stakeholders_for(cursor, [row["id"]])
        finally:
            self._release_connection(conn)
        return Project.from_row(row, by_project.get(str(row["id"]), []))

    def update_project(self, project_id: str, form: ProjectForm, user_id: str) -> Project:
        """Update fields and replace the stakeholder set."""
        form.validate()
        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(
                    SQL_UPDATE_PROJECT,
                    {"project_id": project_id, "user_id": user_id, **form.to_params()},
                )
                row = cursor.fetchone()
                if row is None:
                    raise ProjectNotFoundError(f"Project {project_id} not found")
                cursor.execute(SQL_DELETE_PROJECT_STAKEHOLDERS, (project_id,))
                stakeholders = self._link_stakeholders(cursor, row["id"], form.stakeholders)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._release_connection(conn)

        logger.info("Updated project %s", project_id)
        return Project.from_row(row, stakeholders)

    def delete_project(self, project_id: str, user_id: str) -> bool:
        conn = self._get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.execute(SQL_DELETE_PROJECT, (project_id, user_id))
                deleted = cursor.rowcount > 0
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._release_connection(conn)
        if deleted:
            logger.info("Deleted project %s", project_id)
        return deleted

    # =========================================================================
    # Stakeholders
    # =========================================================================

    def list_stakeholders(self) -> List[Stakeholder]:
        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(SQL_LIST_STAKEHOLDERS)
                rows = cursor.fetchall() or []
        finally:
            self._release_connection(conn)
        return [Stakeholder(id=row["id"], name=row["name"]) for row in rows]

    def seed_stakeholders(self, names: Iterable[str]) -> int:
        """Insert stakeholder names that do not exist yet."""
        unique = sorted({name.strip() for name in names if name and name.strip()})
        if not unique:
            return 0
        conn = self._get_connection()
        try:
            with conn.cursor() as cursor:
                inserted = execute_values(cursor, SQL_SEED_STAKEHOLDERS, [(name,) for name in unique], fetch=True)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._release_connection(conn)
        return len(inserted)

    def _link_stakeholders(self, cursor, project_id: Any, names: List[str]) -> List[Stakeholder]:
        if not names:
            return []
        cursor.execute(SQL_GET_STAKEHOLDER_IDS_BY_NAME, (list(names),))
        rows = cursor.fetchall() or []
        found = {row["name"] for row in rows}
        missing = [name for name in names if name not in found]
        if missing:
            logger.warning("Ignoring unknown stakeholders: %s", ", ".join(missing))
        if rows:
            execute_values(
                cursor,
                SQL_INSERT_PROJECT_STAKEHOLDERS,
                [(str(project_id), row["id"]) for row in rows],
            )
        return sorted((Stakeholder(id=row["id"], name=row["name"]) for row in rows), key=lambda s: s.name)

    def _stakeholders_for(self, cursor, project_ids: List[Any]) -> Dict[str, List[Stakeholder]]:
        if not project_ids:
            return {}
        cursor.execute(SQL_GET_PROJECT_STAKEHOLDERS, ([str(pid) for pid in project_ids],))
        grouped: Dict[str, List[Stakeholder]] = {}
        for row in cursor.fetchall() or []:
            grouped.setdefault(str(row["project_id"]), []).append(Stakeholder(id=row["id"], name=row["name"]))
        return grouped
