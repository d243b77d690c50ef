"""
Module: voucher_kernel.models.system_setting
Responsibility: Key/value store for administrator-adjustable settings
    (currently the quorum threshold).
Architecture position: Kernel > Models.

Values are stored as text and parsed by the owning service at read time,
so a changed threshold applies to in-flight vouchers on their next action.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from voucher_kernel.db.base import Base, UUIDString


class SystemSettingModel(Base):
    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    value: Mapped[str] = mapped_column(String(255), nullable=False)
    updated_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
