"""
SQLAlchemy ORM models for the entity store.

Tables:
  entities    — one row per searchable registry item (provider, module and
                their resources / datasources / functions / submodules)
  import_jobs — bookkeeping for index loader runs
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from registry_search.database import Base


class Entity(Base):
    __tablename__ = "entities"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # 'provider' | 'module' | 'provider/resource' | 'provider/datasource' | ...
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    addr: Mapped[str] = mapped_column(String, nullable=False)
    version: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    # namespace / name / target_system / id / version; shape depends on type
    link_variables: Mapped[Optional[dict]] = mapped_column(JSONB)
    popularity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    warnings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("idx_entities_type", "type"),
        # Trigram indexes back the ILIKE recall filter and similarity()
        Index(
            "idx_entities_addr_trgm",
            "addr",
            postgresql_using="gin",
            postgresql_ops={"addr": "gin_trgm_ops"},
        ),
        Index(
            "idx_entities_description_trgm",
            "description",
            postgresql_using="gin",
            postgresql_ops={"description": "gin_trgm_ops"},
        ),
    )


class ImportJob(Base):
    __tablename__ = "import_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    successful: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    @property
    def in_progress(self) -> bool:
        return self.completed_at is None
