"""One-time client registration from an approval invite (public)."""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from clientgate.database import get_db
from clientgate.dependencies import request_actor
from clientgate.schemas.auth import AccountResponse, RegisterRequest, Token, TokenPreview
from clientgate.services import lifecycle
from clientgate.services.auth import create_access_token

router = APIRouter(prefix="/register", tags=["registration"])


@router.get("/validate-token/{token}", response_model=TokenPreview)
def validate_token(token: str, request: Request, db: Session = Depends(get_db)):
    claim, consultation = lifecycle.inspect_registration_token(db, token, actor=request_actor(request))
    return TokenPreview(
        email=claim.email,
        full_name=consultation.full_name,
        package_tier=consultation.package_tier,
        expires_at=claim.expires_at,
    )


@router.post("", response_model=Token, status_code=201)
def register(data: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    account = lifecycle.complete_registration(
        db,
        data.token,
        data.password,
        full_name=data.full_name,
        actor=request_actor(request),
    )
    return Token(access_token=create_access_token(account), account=AccountResponse.model_validate(account))
