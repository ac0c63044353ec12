"""Identity/role store: accounts and the roles they hold."""
from sqlalchemy.orm import Session

from reward_program.errors import account_not_found
from reward_program.models.user import Account, Role


def get_or_create_role(db: Session, name: str) -> Role:
    role = db.query(Role).filter(Role.name == name).first()
    if role is None:
        role = Role(name=name)
        db.add(role)
        db.flush()
    return role


def assign_role(db: Session, account: Account, role_name: str) -> None:
    role = get_or_create_role(db, role_name)
    if role not in account.roles:
        account.roles.append(role)


def list_roles(account: Account) -> list[str]:
    return account.role_names


def has_role(account: Account, role_name: str) -> bool:
    return any(r.name == role_name for r in account.roles)


def get_account(db: Session, account_id: int) -> Account:
    account = db.query(Account).filter(Account.id == account_id).first()
    if account is None:
        raise account_not_found()
    return account


def mobile_in_use(db: Session, mobile_number: str) -> bool:
    return db.query(Account.id).filter(Account.mobile_number == mobile_number).first() is not None
