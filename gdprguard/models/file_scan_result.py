import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from gdprguard.db.base import Base


class FileScanResult(Base):
    """Latest personal-data scan of a single object-store file.

    One row per ``file_path``; re-scans overwrite the row in place.
    ``personal_data_types`` holds a JSON array of detector names.
    """

    __tablename__ = "file_scan_result"
    __table_args__ = (
        Index("ix_file_scan_result_scan_date", "scan_date"),
        Index("ix_file_scan_result_has_personal_data", "has_personal_data"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    file_path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    scan_status: Mapped[str] = mapped_column(String(32), nullable=False, default="completed")
    has_personal_data: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    personal_data_types: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    risk_level: Mapped[str] = mapped_column(String(16), nullable=False, default="low")
    file_type: Mapped[str] = mapped_column(String(64), nullable=False, default="unknown")
    file_size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    content_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    scan_duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scan_errors: Mapped[str | None] = mapped_column(Text, nullable=True)
    scan_version: Mapped[str] = mapped_column(String(32), nullable=False)
    scan_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
