from clientgate.schemas.auth import AccountResponse, LoginRequest, RegisterRequest, Token, TokenPreview
from clientgate.schemas.consultation import (
    AdminNotesRequest,
    ApproveRequest,
    ConsultationIntake,
    ConsultationResponse,
    ConsultationSubmitted,
    PaymentConfirmation,
    ReissueInviteRequest,
    ScheduleRequest,
)
