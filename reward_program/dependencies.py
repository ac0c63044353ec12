"""Shared dependencies: DB session, current account, reviewer roles."""
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from reward_program.database import get_db
from reward_program.models.user import Account, ROLE_SALES_PERSON, ROLE_ZONE_MANAGER
from reward_program.services.auth import decode_token_with_error
from reward_program.services.identity import has_role

security = HTTPBearer(auto_error=False)


def get_current_account(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Account:
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    token_str = (credentials.credentials or "").strip()
    payload, _ = decode_token_with_error(token_str)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    try:
        account_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    account = db.query(Account).filter(Account.id == account_id).first()
    if not account:
        raise HTTPException(status_code=401, detail="User not found")
    if account.is_disabled:
        raise HTTPException(status_code=403, detail="The account is disabled. Please contact support.")
    return account


def require_reviewer(current_account: Account = Depends(get_current_account)) -> Account:
    if not (has_role(current_account, ROLE_SALES_PERSON) or has_role(current_account, ROLE_ZONE_MANAGER)):
        raise HTTPException(status_code=403, detail="Reviewer role required")
    return current_account
