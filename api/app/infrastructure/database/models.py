"""
Modelos de base de datos destino (ORM).

Incluye las tablas del sistema activo (usuarios, workspaces, entidades,
comentarios) y los ledgers de migración/sincronización desde el CRM legacy.
"""
import uuid
from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    Text,
    JSON,
    Boolean,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from app.infrastructure.database.session import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class UserModel(Base):
    """Cuenta del sistema activo (directorio de identidades)."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    role = Column(String(50), nullable=False, default="employee")
    is_active = Column(Boolean, nullable=False, default=True)
    password_hash = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, active={self.is_active})>"


class WorkspaceModel(Base):
    """
    Contenedor de entidades con esquema de campos propio.
    Los workspaces de sistema (contrapartes, contactos, ...) se identifican por system_type.
    """

    __tablename__ = "workspaces"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    icon = Column(String(16), nullable=True)
    prefix = Column(String(16), nullable=False, unique=True, index=True)
    is_system = Column(Boolean, nullable=False, default=False)
    system_type = Column(String(50), nullable=True, unique=True, index=True)
    sections = Column(JSON, nullable=False, default=list)
    statuses = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Workspace(id={self.id}, prefix={self.prefix}, system_type={self.system_type})>"


class EntityModel(Base):
    """
    Entidad destino. custom_id es la clave natural (<PREFIJO>-<id legacy>)
    y actua como ancla de idempotencia.
    """

    __tablename__ = "entities"

    id = Column(String(36), primary_key=True, default=_uuid)
    custom_id = Column(String(64), nullable=False, unique=True, index=True)
    workspace_id = Column(String(36), ForeignKey("workspaces.id"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    status = Column(String(64), nullable=False)
    priority = Column(String(32), nullable=True)
    assignee_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    data = Column(JSON, nullable=False, default=dict)
    comment_count = Column(Integer, nullable=False, default=0)
    last_activity_at = Column(DateTime(timezone=True), nullable=True)
    first_response_at = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Entity(id={self.id}, custom_id={self.custom_id}, status={self.status})>"


class CommentModel(Base):
    """Comentario de una entidad (una respuesta legacy no vacía)."""

    __tablename__ = "comments"

    id = Column(String(36), primary_key=True, default=_uuid)
    entity_id = Column(String(36), ForeignKey("entities.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class LegacyMigrationLogModel(Base):
    """
    Ledger de migración de tickets.
    Una fila por id legacy intentado; única por legacy_request_id.
    """

    __tablename__ = "legacy_migration_log"

    id = Column(String(36), primary_key=True, default=_uuid)
    legacy_request_id = Column(Integer, nullable=False, unique=True, index=True)
    entity_id = Column(String(36), nullable=True)
    comments_count = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, index=True)  # completed | failed
    error_message = Column(Text, nullable=True)
    migrated_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<LegacyMigrationLog(legacy_id={self.legacy_request_id}, status={self.status})>"


class SystemSyncLogModel(Base):
    """Ledger de sync de datos de referencia, único por (system_type, legacy_id)."""

    __tablename__ = "system_sync_log"
    __table_args__ = (
        UniqueConstraint("system_type", "legacy_id", name="uq_system_sync_log_type_legacy"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    system_type = Column(String(50), nullable=False, index=True)
    legacy_id = Column(Integer, nullable=False)
    entity_id = Column(String(36), nullable=True)
    status = Column(String(16), nullable=False)  # completed | failed
    error_message = Column(Text, nullable=True)
    synced_at = Column(DateTime(timezone=True), server_default=func.now())
