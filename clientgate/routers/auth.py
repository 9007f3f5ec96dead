"""Login for provisioned accounts."""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from clientgate.database import get_db
from clientgate.dependencies import get_current_account
from clientgate.models.account import Account
from clientgate.schemas.auth import AccountResponse, LoginRequest, Token
from clientgate.services.audit_log import CATEGORY_FAILED_ATTEMPT, create_log
from clientgate.services.auth import authenticate, create_access_token

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token)
def login(request: Request, data: LoginRequest, db: Session = Depends(get_db)):
    account = authenticate(db, data.email, data.password)
    if not account:
        ip = request.client.host if request.client else None
        ua = (request.headers.get("user-agent") or "").strip() or None
        create_log(
            db,
            CATEGORY_FAILED_ATTEMPT,
            "Login failed",
            f"Failed login attempt for email: {data.email}.",
            actor_email=data.email,
            ip_address=ip,
            user_agent=ua,
            meta={"reason": "invalid_email_or_password"},
        )
        db.commit()
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return Token(access_token=create_access_token(account), account=AccountResponse.model_validate(account))


@router.get("/me", response_model=AccountResponse)
def me(current_account: Account = Depends(get_current_account)):
    return current_account
