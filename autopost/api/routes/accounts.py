import logging
import secrets
from datetime import timedelta
from uuid import uuid4

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from autopost.api.deps import rate_limit
from autopost.core.errors import AuthError
from autopost.core.rate_limit import LOGIN, MODERATE
from autopost.db.repositories import AccountRepository
from autopost.db.session import get_db
from autopost.db.types import utcnow
from autopost.models import TikTokAccount
from autopost.schemas.account import AccountOut, AccountUpdate
from autopost.services.tiktok_client import TikTokClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["accounts"])

STATE_COOKIE = "tiktok_oauth_state"


def get_tiktok_client() -> TikTokClient:
    return TikTokClient()


@router.get("/accounts", response_model=list[AccountOut])
def list_accounts(db: Session = Depends(get_db)):
    return db.query(TikTokAccount).order_by(TikTokAccount.created_at.desc()).all()


@router.patch("/accounts/{account_id}", response_model=AccountOut,
              dependencies=[Depends(rate_limit(MODERATE, "accounts"))])
def update_account(account_id: str, body: AccountUpdate, db: Session = Depends(get_db)):
    account = AccountRepository(db).get_by_id(account_id)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    for key, value in body.model_dump(exclude_unset=True).items():
        setattr(account, key, value)
    db.commit()
    return account


@router.get("/oauth/tiktok/authorize", dependencies=[Depends(rate_limit(LOGIN, "oauth"))])
def authorize(client: TikTokClient = Depends(get_tiktok_client)):
    if not client.client_key:
        raise HTTPException(status_code=503, detail="TIKTOK_CLIENT_KEY is not configured")
    state = secrets.token_urlsafe(24)
    response = RedirectResponse(client.authorization_url(state))
    response.set_cookie(STATE_COOKIE, state, max_age=600, httponly=True, samesite="lax")
    return response


@router.get("/oauth/tiktok/callback", response_model=AccountOut,
            dependencies=[Depends(rate_limit(LOGIN, "oauth"))])
def callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    expected_state: str | None = Cookie(default=None, alias=STATE_COOKIE),
    db: Session = Depends(get_db),
    client: TikTokClient = Depends(get_tiktok_client),
):
    if error:
        raise HTTPException(status_code=400, detail=f"TikTok authorization denied: {error}")
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")
    if not state or not expected_state or not secrets.compare_digest(state, expected_state):
        raise HTTPException(status_code=400, detail="OAuth state mismatch")

    try:
        tokens = client.exchange_code(code)
        user = client.get_user_info(tokens.access_token)
    except AuthError as e:
        raise HTTPException(status_code=502, detail=str(e))

    open_id = tokens.open_id or user.get("open_id")
    repo = AccountRepository(db)
    account = repo.get_by_open_id(open_id) if open_id else None
    if account is None:
        account = repo.create(id=str(uuid4()), open_id=open_id, access_token=tokens.access_token,
                              daily_post_count=0, is_active=True)

    account.display_name = user.get("display_name") or account.display_name
    account.access_token = tokens.access_token
    account.refresh_token = tokens.refresh_token or account.refresh_token
    account.token_expires_at = utcnow() + timedelta(seconds=tokens.expires_in)
    account.scope = tokens.scope
    account.is_active = True
    db.commit()

    logger.info(f"TikTok account connected: {account.display_name or account.open_id}")
    return account
