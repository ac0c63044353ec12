"""Two-tier approval state machine.

    pending_salesman --approve--> pending_zone_manager --approve--> approved
           |                              |
           +------reject------------------+-----> rejected

approved and rejected are absorbing. The first tier is the SalesPerson the
account was assigned to at registration; the second tier is the ZoneManager
that SalesPerson reports to. Each transition, its ApprovalRecord and (on final
shop-owner approval) the shop code are committed together or not at all.
"""
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from reward_program.config import get_settings
from reward_program.errors import (
    ServiceError,
    not_authorized_to_review,
    not_pending_approval,
    operation_failed,
    rejection_reason_required,
    rejection_reason_too_long,
    sales_person_has_no_zone_manager,
    shop_code_exhausted,
)
from reward_program.models.approval_record import ApprovalAction, ApprovalRecord
from reward_program.models.user import (
    Account,
    AccountKind,
    PENDING_STATUSES,
    RegistrationStatus,
    ROLE_SALES_PERSON,
    ROLE_SYSTEM_ADMIN,
    ROLE_ZONE_MANAGER,
)
from reward_program.services.approval_log import create_record, list_for_account
from reward_program.services.identity import get_account, has_role
from reward_program.services.notifications import dispatch, send_welcome_message
from reward_program.services.otp_channel import OtpChannel
from reward_program.services.shop_code import generate_shop_code, shop_code_taken

logger = logging.getLogger("uvicorn.error")

MAX_REJECTION_REASON_LEN = 500


def _authorize(account: Account, actor: Account) -> None:
    """Raise unless actor is the reviewer for the account's current tier."""
    status = account.registration_status
    if status not in PENDING_STATUSES:
        raise not_pending_approval()
    if actor.is_disabled:
        raise not_authorized_to_review()

    if status == RegistrationStatus.pending_salesman:
        if not has_role(actor, ROLE_SALES_PERSON) or account.assigned_reviewer_id != actor.id:
            logger.warning("Account %s may not review account %s at tier 1", actor.id, account.id)
            raise not_authorized_to_review()
        return

    sales_person = account.assigned_reviewer
    if (
        not has_role(actor, ROLE_ZONE_MANAGER)
        or sales_person is None
        or sales_person.zone_manager_id != actor.id
    ):
        logger.warning("Account %s may not review account %s at tier 2", actor.id, account.id)
        raise not_authorized_to_review()


def _advance(db: Session, account_id: int, from_status: RegistrationStatus, to_status: RegistrationStatus) -> None:
    # Conditional on the status we authorized against; a concurrent reviewer that got there first wins
    updated = (
        db.query(Account)
        .filter(Account.id == account_id, Account.registration_status == from_status)
        .update({Account.registration_status: to_status}, synchronize_session=False)
    )
    if updated != 1:
        raise not_pending_approval()


def _assign_shop_code(db: Session, account: Account) -> str:
    profile = account.shop_profile
    if profile is None:
        logger.error("Shop owner %s has no shop profile", account.id)
        raise operation_failed()
    if profile.shop_code:
        return profile.shop_code
    s = get_settings()
    profile.shop_code = generate_shop_code(
        shop_code_taken(db),
        max_attempts=s.shop_code_max_attempts,
        length=s.shop_code_length,
    )
    try:
        db.flush()
    except IntegrityError as e:
        # Another approval took the same code between the lookup and the insert; a retry draws a fresh one
        db.rollback()
        logger.warning("Shop code collided on insert for account %s: %s", account.id, e.orig)
        raise shop_code_exhausted() from e
    return profile.shop_code


def _commit_transition(db: Session, account: Account) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Approval transition failed for account %s", account.id)
        raise operation_failed() from e


def approve(db: Session, account_id: int, actor_id: int, channel: OtpChannel | None = None) -> Account:
    """Advance the account one tier. Final approval of a shop owner assigns its shop code.

    With a channel, a welcome message is dispatched after commit; its outcome is
    never reported back here.
    """
    account = get_account(db, account_id)
    actor = get_account(db, actor_id)
    _authorize(account, actor)

    from_status = account.registration_status
    if from_status == RegistrationStatus.pending_salesman:
        if actor.zone_manager_id is None:
            raise sales_person_has_no_zone_manager()
        to_status = RegistrationStatus.pending_zone_manager
    else:
        to_status = RegistrationStatus.approved

    shop_code = None
    try:
        _advance(db, account.id, from_status, to_status)
        if to_status == RegistrationStatus.approved and account.kind == AccountKind.shop_owner:
            shop_code = _assign_shop_code(db, account)
        create_record(db, account.id, actor.id, ApprovalAction.approved, from_status, to_status)
    except ServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Approval transition failed for account %s", account.id)
        raise operation_failed() from e
    _commit_transition(db, account)

    db.refresh(account)
    logger.info(
        "Account %s approved by %s: %s -> %s%s",
        account.id, actor.id, from_status.value, to_status.value,
        f" (shop code {shop_code})" if shop_code else "",
    )
    if to_status == RegistrationStatus.approved and channel is not None:
        dispatch(send_welcome_message, channel, account.mobile_number, account.name, shop_code)
    return account


def reject(db: Session, account_id: int, actor_id: int, reason: str) -> Account:
    reason = (reason or "").strip()
    if not reason:
        raise rejection_reason_required()
    if len(reason) > MAX_REJECTION_REASON_LEN:
        raise rejection_reason_too_long()

    account = get_account(db, account_id)
    actor = get_account(db, actor_id)
    _authorize(account, actor)

    from_status = account.registration_status
    to_status = RegistrationStatus.rejected
    try:
        _advance(db, account.id, from_status, to_status)
        create_record(
            db, account.id, actor.id, ApprovalAction.rejected, from_status, to_status,
            rejection_reason=reason,
        )
    except ServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Rejection failed for account %s", account.id)
        raise operation_failed() from e
    _commit_transition(db, account)

    db.refresh(account)
    logger.info(
        "Account %s rejected by %s: %s -> %s, reason: %s",
        account.id, actor.id, from_status.value, to_status.value, reason,
    )
    return account


def list_pending(db: Session, actor_id: int) -> list[Account]:
    """Accounts waiting on this actor, oldest first."""
    actor = get_account(db, actor_id)
    is_sales_person = has_role(actor, ROLE_SALES_PERSON)
    is_zone_manager = has_role(actor, ROLE_ZONE_MANAGER)
    if actor.is_disabled or not (is_sales_person or is_zone_manager):
        raise not_authorized_to_review()

    pending: list[Account] = []
    if is_sales_person:
        pending += (
            db.query(Account)
            .filter(
                Account.assigned_reviewer_id == actor.id,
                Account.registration_status == RegistrationStatus.pending_salesman,
            )
            .all()
        )
    if is_zone_manager:
        reviewer = aliased(Account)
        pending += (
            db.query(Account)
            .join(reviewer, Account.assigned_reviewer_id == reviewer.id)
            .filter(
                reviewer.zone_manager_id == actor.id,
                Account.registration_status == RegistrationStatus.pending_zone_manager,
            )
            .all()
        )
    return sorted(pending, key=lambda a: (a.created_at is None, a.created_at, a.id))


def approval_history(db: Session, account_id: int, actor_id: int) -> list[ApprovalRecord]:
    """Transitions for an account. Visible to the account itself, its reviewers and admins."""
    account = get_account(db, account_id)
    actor = get_account(db, actor_id)
    allowed = (
        actor.id == account.id
        or has_role(actor, ROLE_SYSTEM_ADMIN)
        or actor.id == account.assigned_reviewer_id
        or (account.assigned_reviewer is not None and account.assigned_reviewer.zone_manager_id == actor.id)
    )
    if not allowed:
        raise not_authorized_to_review()
    return list_for_account(db, account.id)
