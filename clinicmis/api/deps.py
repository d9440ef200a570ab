# clinicmis/api/deps.py
from __future__ import annotations

from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from clinicmis.db.session import SessionLocal
from clinicmis.models.staff import Staff, StaffRole
from clinicmis.models.user import User
from clinicmis.services.staff import resolve_staff_for_user
from clinicmis.utils.jwt import decode_access_token


# =========================================================
# DB
# =========================================================
def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =========================================================
# AUTH HELPERS
# =========================================================
def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def current_user(
        authorization: Optional[str] = Header(None),
        db: Session = Depends(get_db),
) -> User:
    raw_token = _extract_bearer(authorization)
    if not raw_token:
        raise HTTPException(status_code=401, detail="Missing token")

    payload = decode_access_token(raw_token)
    if payload is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User inactive")
    return user


def current_staff(
        user: User = Depends(current_user),
        db: Session = Depends(get_db),
) -> Staff:
    return resolve_staff_for_user(db, user)


def require_roles(*roles: StaffRole):
    """
    Dependency factory: admins always pass, everyone else needs a linked
    staff record with one of `roles`.
    """

    def _checker(
            user: User = Depends(current_user),
            db: Session = Depends(get_db),
    ) -> User:
        if user.is_admin:
            return user
        staff = resolve_staff_for_user(db, user)
        if staff.role == StaffRole.ADMIN or staff.role in roles:
            return user
        raise HTTPException(status_code=403, detail="Not permitted")

    return _checker
