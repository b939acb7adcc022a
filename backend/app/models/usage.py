from typing import Literal

from pydantic import BaseModel

UNLIMITED = -1


class UsageLimits(BaseModel):
    training_runs: int
    ai_messages: int


# Free plan counts are lifetime, pro training runs reset monthly.
FREE_LIMITS = UsageLimits(training_runs=1, ai_messages=50)
PRO_LIMITS = UsageLimits(training_runs=4, ai_messages=UNLIMITED)
LINKED_LIMITS = UsageLimits(training_runs=UNLIMITED, ai_messages=UNLIMITED)

FREE_PLAN_CREDIT_LIMIT = 50


class Organization(BaseModel):
    id: str
    plan: Literal["free", "pro"] = "free"
    is_wg_linked: bool = False
    credits_balance: int = 0
    frozen_credits: int = 0


class QuotaDecision(BaseModel):
    allowed: bool
    reason: str | None = None
    current: int = 0
    limit: int = UNLIMITED
