"""SQLAlchemy declarative base and common mixins."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base shared by every routing table."""

    pass


class UUIDMixin:
    """Adds a uuid4 ``id`` primary key."""

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)


class TimestampMixin:
    """Server-side ``created_at``/``updated_at`` columns.

    ``updated_at`` refreshes on every row update via ``onupdate``.
    """

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class TenantMixin:
    """Tenant scoping plus the acting user that created the row.

    Every routing table is partitioned by ``tenant_id``. ``created_by`` holds the
    logged-in user of the tenant context (``app:slack:<id>``, ``app:router``,
    or a human user id forwarded by the gateway).
    """

    tenant_id: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
