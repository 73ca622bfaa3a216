from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from telemetry_config.db.base import Base

# SQLite only autoincrements INTEGER primary keys.
IdType = BigInteger().with_variant(Integer(), "sqlite")
JsonType = JSON().with_variant(JSONB(), "postgresql")


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (UniqueConstraint("name", name="uq_projects_name"),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(128), nullable=False, default="", server_default="")
    country: Mapped[str] = mapped_column(String(128), nullable=False, default="", server_default="")
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC", server_default="UTC")
    geolocation: Mapped[str] = mapped_column(String(128), nullable=False, default="", server_default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    subsystems: Mapped[list["Subsystem"]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Subsystem.name",
    )


class Subsystem(Base):
    __tablename__ = "subsystems"
    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_subsystems_project_name"),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    project_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    locallocation: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    project: Mapped[Project] = relationship(back_populates="subsystems")
    datapoints: Mapped[list["Datapoint"]] = relationship(
        back_populates="subsystem",
        cascade="all, delete-orphan",
        order_by="Datapoint.name",
    )


class Datapoint(Base):
    __tablename__ = "datapoints"
    __table_args__ = (
        UniqueConstraint("subsystem_id", "name", name="uq_datapoints_subsystem_name"),
        CheckConstraint(
            "datasourcetype IN ('web','ttnv3','mqtt','parameters')",
            name="ck_datapoints_datasourcetype",
        ),
        CheckConstraint(
            "(datasourcetype = 'mqtt' AND pollinterval IS NULL)"
            " OR "
            "(datasourcetype <> 'mqtt' AND pollinterval IS NOT NULL)",
            name="ck_datapoints_pollinterval",
        ),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    subsystem_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("subsystems.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    pollinterval: Mapped[str | None] = mapped_column(String(32), nullable=True)
    time_to_live: Mapped[str] = mapped_column(String(32), nullable=False)
    datasourcetype: Mapped[str] = mapped_column(String(16), nullable=False)
    proc_json: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    datasource_json: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    subsystem: Mapped[Subsystem] = relationship(back_populates="datapoints")
