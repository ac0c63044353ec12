"""Short human-speakable shop codes, assigned on final approval of a shop owner."""
import logging
import secrets
import string
from typing import Callable

from sqlalchemy.orm import Session

from reward_program.errors import shop_code_exhausted
from reward_program.models.profiles import ShopProfile

logger = logging.getLogger("uvicorn.error")

SHOP_CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_LENGTH = 6
DEFAULT_MAX_ATTEMPTS = 10


def random_code(length: int = DEFAULT_LENGTH) -> str:
    return "".join(secrets.choice(SHOP_CODE_ALPHABET) for _ in range(length))


def generate_shop_code(
    exists: Callable[[str], bool],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    length: int = DEFAULT_LENGTH,
    draw: Callable[[int], str] | None = None,
) -> str:
    """Draw codes until one is not taken. Bounded: raises Exhausted after max_attempts collisions."""
    draw = draw or random_code
    for _ in range(max_attempts):
        code = draw(length)
        if not exists(code):
            return code
    logger.error("Failed to generate unique shop code after %d attempts", max_attempts)
    raise shop_code_exhausted()


def shop_code_taken(db: Session) -> Callable[[str], bool]:
    def _exists(code: str) -> bool:
        return db.query(ShopProfile.id).filter(ShopProfile.shop_code == code).first() is not None
    return _exists
