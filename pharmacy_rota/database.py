from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    delete,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker


DATA_DIR = Path(__file__).resolve().parent / "data"
POLICY_DATABASE_URL = f"sqlite:///{(DATA_DIR / 'policy.db').as_posix()}"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class PolicyBase(DeclarativeBase):
    """Metadata for policy and audit tables living in policy.db."""

    pass


class Policy(PolicyBase):
    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    paramsJSON: Mapped[str] = mapped_column(String(8000), nullable=False, default="{}")
    lastEditedBy: Mapped[str] = mapped_column(String(60), nullable=False, default="system")
    lastEditedAt: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("name", name="uq_policies_name"),
    )

    def params_dict(self) -> Dict:
        try:
            value = json.loads(self.paramsJSON or "{}")
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            pass
        return {}


class AuditLog(PolicyBase):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Schedule")
    target_id: Mapped[str | None] = mapped_column(String(60), nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


policy_engine = create_engine(
    POLICY_DATABASE_URL,
    echo=False,
    future=True,
)
PolicySessionLocal = sessionmaker(bind=policy_engine, expire_on_commit=False, future=True)


def init_database() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    PolicyBase.metadata.create_all(policy_engine)


def get_policies(session) -> List[Policy]:
    stmt = select(Policy).order_by(Policy.name.asc())
    return list(session.scalars(stmt))


def upsert_policy(session, name: str, params_dict: Dict, *, edited_by: str = "system") -> Policy:
    if not name or not name.strip():
        raise ValueError("Policy name is required.")
    payload = {key: value for key, value in (params_dict or {}).items() if key != "name"}
    stmt = select(Policy).where(Policy.name == name.strip())
    policy = session.scalars(stmt).first()
    if policy is None:
        policy = Policy(name=name.strip())
        session.add(policy)
    policy.paramsJSON = json.dumps(payload)
    policy.lastEditedBy = edited_by or "system"
    policy.lastEditedAt = _utcnow()
    session.commit()
    session.refresh(policy)
    return policy


def delete_policy(session, policy_id: int) -> None:
    session.execute(delete(Policy).where(Policy.id == policy_id))
    session.commit()


def get_active_policy(session) -> Optional[Policy]:
    stmt = select(Policy).order_by(Policy.lastEditedAt.desc(), Policy.id.desc())
    return session.scalars(stmt).first()


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "Schedule",
    target_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payloadJSON=json.dumps(payload or {}),
    )
    session.add(log)
    session.commit()
    return log


def list_audit_log(session, *, action: Optional[str] = None) -> List[AuditLog]:
    stmt = select(AuditLog).order_by(AuditLog.id.asc())
    if action:
        stmt = stmt.where(AuditLog.action == action)
    return list(session.scalars(stmt))
