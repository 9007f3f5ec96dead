"""Shared dependencies: DB session, current account, request actor."""
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from clientgate.database import get_db
from clientgate.models.account import Account, AccountRole
from clientgate.services.auth import decode_access_token
from clientgate.services.lifecycle import Actor

security = HTTPBearer(auto_error=False)


def get_current_account(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Account:
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    payload = decode_access_token((credentials.credentials or "").strip())
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    try:
        account_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    account = db.query(Account).filter(Account.id == account_id).first()
    if not account or not account.is_active:
        raise HTTPException(status_code=401, detail="Account not found")
    return account


def require_admin(current_account: Account = Depends(get_current_account)) -> Account:
    if current_account.role != AccountRole.admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return current_account


def request_actor(request: Request, email: str | None = None) -> Actor:
    ip = request.client.host if request.client else None
    ua = (request.headers.get("user-agent") or "").strip() or None
    return Actor(email=email, ip_address=ip, user_agent=ua)
