from datetime import datetime
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from consultations.auth import jwt_handler
from consultations.auth.dependencies import get_current_user, get_db
from consultations.auth.verification import VerificationCodeStore, generate_code
from consultations.core import config
from consultations.models.user import User
from consultations.notifications import Notifier
from consultations.routes.common import get_notifier, translate_errors
from consultations.scheduling.errors import DeliveryFailed

router = APIRouter(tags=['auth'])


@lru_cache
def get_verification_store() -> VerificationCodeStore:
    return VerificationCodeStore(ttl_minutes=config.VERIFICATION_CODE_TTL_MINUTES)


def _normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if not normalized or '@' not in normalized:
        raise ValueError('A valid email address is required.')
    return normalized


class VerificationRequest(BaseModel):
    email: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _normalize_email(value)


class VerificationConfirmRequest(BaseModel):
    email: str
    code: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator('code')
    @classmethod
    def validate_code(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized.isdigit() or len(normalized) != 6:
            raise ValueError('Verification codes are 6 digits.')
        return normalized


class VerificationSentResponse(BaseModel):
    email: str
    expires_at: datetime


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'


@router.get('/me')
def me(current_user: User = Depends(get_current_user)):
    return {'id': current_user.id, 'email': current_user.email, 'role': current_user.role}


@router.post('/verification', response_model=VerificationSentResponse, status_code=status.HTTP_202_ACCEPTED)
def request_verification(
    data: VerificationRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    codes: VerificationCodeStore = Depends(get_verification_store),
):
    with translate_errors(db):
        user = db.query(User).filter(User.email == data.email).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found.')

    code = generate_code()
    entry = codes.put(data.email, code)
    try:
        notifier.notify(
            data.email,
            'Your verification code',
            f'Your verification code is {code}. It expires in {config.VERIFICATION_CODE_TTL_MINUTES} minutes.',
        )
    except DeliveryFailed as exc:
        codes.invalidate(data.email)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail='The verification code could not be sent.',
        ) from exc

    return VerificationSentResponse(email=data.email, expires_at=entry.expires_at)


@router.post('/verification/confirm', response_model=TokenResponse)
def confirm_verification(
    data: VerificationConfirmRequest,
    db: Session = Depends(get_db),
    codes: VerificationCodeStore = Depends(get_verification_store),
):
    if not codes.consume(data.email, data.code):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid or expired verification code.')

    with translate_errors(db):
        user = db.query(User).filter(User.email == data.email).first()
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found.')
        user.is_active = True
        db.commit()
        db.refresh(user)

    return TokenResponse(access_token=jwt_handler.create_access_token(user.id, user.role))
