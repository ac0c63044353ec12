from reward_program.schemas.auth import (
    Token, AccountResponse, VerifyOtpRequest, ResendOtpRequest, LoginRequest, OtpChallengeSent, RefreshTokenRequest,
)
from reward_program.schemas.registration import (
    NationalAddress, ShopOwnerRegister, SellerRegister, TechnicianRegister,
    RegistrationAccepted, RegistrationCompleted,
)
from reward_program.schemas.approvals import ApproveRequest, RejectRequest, PendingAccountResponse, ApprovalRecordResponse
