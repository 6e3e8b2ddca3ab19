# orderflow/models/otp.py
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

class OTPRecord(BaseModel):
    contact: str
    purpose: str
    code: str
    expires_at: datetime
    attempts: int = 0
    max_attempts: int = 5

    @property
    def key(self) -> tuple:
        return (self.contact, self.purpose)

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempts, 0)

class OTPChallenge(BaseModel):
    contact: str
    purpose: str
    expires_at: datetime
    sent: bool
    code: Optional[str] = None

class OTPStatus(BaseModel):
    exists: bool
    expires_at: Optional[datetime] = None
    attempts: int = 0
    max_attempts: int = 0
    seconds_remaining: float = 0.0
