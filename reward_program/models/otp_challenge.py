"""Locally staged OTP challenges: the account is created only after the code is verified."""
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime
from sqlalchemy.sql import func

from reward_program.database import Base

PURPOSE_REGISTRATION = "registration"
PURPOSE_LOGIN = "login"


class OtpChallenge(Base):
    __tablename__ = "otp_challenges"

    id = Column(Integer, primary_key=True, index=True)
    # Provider-assigned verification handle (e.g. Twilio Verify SID)
    handle = Column(String(64), unique=True, nullable=False, index=True)
    mobile_number = Column(String(20), nullable=False, index=True)
    purpose = Column(String(20), nullable=False, default=PURPOSE_REGISTRATION)

    # Serialized PendingRegistration (registration flow only)
    payload = Column(Text, nullable=True)

    is_used = Column(Boolean, default=False, nullable=False)
    verification_attempts = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
