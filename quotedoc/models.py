from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel, create_engine, Session

from . import config


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GenerationStatus(str, Enum):
    READY = "READY"
    FAILED = "FAILED"


class DocumentRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    kind: str
    document_id: str = Field(index=True)
    file_name: str = Field(index=True)
    page_format: str = "a4"
    page_count: int = 0
    status: GenerationStatus = Field(default=GenerationStatus.READY)
    fail_code: Optional[str] = None
    fail_detail: Optional[str] = None
    source_path: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Artifact(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    record_id: int = Field(foreign_key="documentrecord.id")
    type: str
    path: str
    created_at: datetime = Field(default_factory=utc_now)


engine = create_engine(f"sqlite:///{config.DB_PATH}")


def reset_engine() -> None:
    global engine
    engine = create_engine(f"sqlite:///{config.DB_PATH}")


def init_db() -> None:
    config.OUT_DIR.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    return Session(engine, expire_on_commit=False)
