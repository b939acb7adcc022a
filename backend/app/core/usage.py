"""
Quota and credit gate for AI responses.

Free organizations get a lifetime allowance of messages; pro and
partner-linked organizations are unlimited but need a positive credit
balance. Usage is tracked per calendar month in `usage_tracking`.
"""

from datetime import datetime, timezone

from loguru import logger

from app.core.errors import OrganizationNotFoundError
from app.db import postgres
from app.models.usage import (
    FREE_LIMITS,
    FREE_PLAN_CREDIT_LIMIT,
    LINKED_LIMITS,
    PRO_LIMITS,
    UNLIMITED,
    Organization,
    QuotaDecision,
    UsageLimits,
)


def get_usage_limits(plan: str, is_wg_linked: bool) -> UsageLimits:
    if is_wg_linked:
        return LINKED_LIMITS
    return PRO_LIMITS if plan == "pro" else FREE_LIMITS


def current_period(now: datetime | None = None) -> tuple[datetime, datetime]:
    """[start, end) of the calendar month containing `now` (UTC)."""
    now = now or datetime.now(timezone.utc)
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


async def get_organization(org_id: str) -> Organization:
    row = await postgres.fetch_one(
        """SELECT id::text, plan, is_wg_linked, credits_balance,
                  COALESCE(frozen_credits, 0) AS frozen_credits
           FROM organizations WHERE id = $1""",
        org_id,
    )
    if not row:
        raise OrganizationNotFoundError()
    return Organization(**dict(row))


async def get_current_usage(org_id: str) -> dict:
    """Fetch this month's usage row, creating it on first use."""
    period_start, period_end = current_period()
    row = await postgres.fetch_one(
        """SELECT id, training_runs_used, ai_messages_used
           FROM usage_tracking
           WHERE org_id = $1 AND period_start = $2""",
        org_id,
        period_start,
    )
    if row:
        return dict(row)

    row = await postgres.fetch_one(
        """INSERT INTO usage_tracking
               (org_id, training_runs_used, ai_messages_used, period_start, period_end)
           VALUES ($1, 0, 0, $2, $3)
           RETURNING id, training_runs_used, ai_messages_used""",
        org_id,
        period_start,
        period_end,
    )
    logger.info("[usage] opened usage period {} for org {}", period_start.date(), org_id)
    return dict(row)


async def check_message_quota(org_id: str) -> QuotaDecision:
    org = await get_organization(org_id)
    limits = get_usage_limits(org.plan, org.is_wg_linked)

    # Credits above the free-plan cap stay frozen until the org upgrades
    if org.plan == "free":
        usable_credits = min(org.credits_balance, FREE_PLAN_CREDIT_LIMIT)
    else:
        usable_credits = org.credits_balance

    if limits.ai_messages == UNLIMITED:
        if usable_credits <= 0:
            if org.plan == "free" and org.frozen_credits > 0:
                reason = (
                    f"Free plan credit limit reached ({FREE_PLAN_CREDIT_LIMIT} max). "
                    f"Upgrade to unlock {org.frozen_credits} frozen credits."
                )
            else:
                reason = "No credits remaining. Please purchase more credits."
            return QuotaDecision(allowed=False, reason=reason, current=0, limit=usable_credits)
        return QuotaDecision(allowed=True, current=0, limit=UNLIMITED)

    total_used = await postgres.fetch_val(
        "SELECT COALESCE(SUM(ai_messages_used), 0) FROM usage_tracking WHERE org_id = $1",
        org_id,
    )
    total_used = int(total_used or 0)

    if total_used >= limits.ai_messages:
        return QuotaDecision(
            allowed=False,
            reason="Free trial message limit reached. Upgrade to Pro for unlimited messages.",
            current=total_used,
            limit=limits.ai_messages,
        )

    return QuotaDecision(allowed=True, current=total_used, limit=limits.ai_messages)


async def record_message_usage(org_id: str) -> None:
    usage = await get_current_usage(org_id)
    await postgres.execute(
        "UPDATE usage_tracking SET ai_messages_used = ai_messages_used + 1 WHERE id = $1",
        usage["id"],
    )
    logger.debug("[usage] recorded AI message for org {}", org_id)
