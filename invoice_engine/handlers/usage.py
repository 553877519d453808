"""Plan usage limits."""

from __future__ import annotations

from ..context import HandlerContext
from ..dispatcher import command_handler
from ..documents import KINDS
from ..errors import CommandRejectedError
from ..params import NoParams
from ..result import Result

USER_PROFILES = "user_profiles"
UNLIMITED_TIERS = frozenset({"premium", "grandfathered"})


async def usage_report(ctx: HandlerContext) -> dict:
    profile = await ctx.store.singleton(USER_PROFILES) or {}
    tier = (profile.get("subscription_tier") or "free").lower()
    used = 0
    for kind in KINDS:
        used += await ctx.store.count(ctx.store.query(kind.table))
    unlimited = tier in UNLIMITED_TIERS
    limit = None if unlimited else ctx.config.free_plan_limit
    return {
        "subscription_tier": tier,
        "unlimited": unlimited,
        "limit": limit,
        "used": used,
        "remaining": None if unlimited else max(limit - used, 0),
        "can_create": unlimited or used < limit,
    }


async def ensure_within_plan(ctx: HandlerContext) -> None:
    """Refuse a new document once the free plan is used up."""
    report = await usage_report(ctx)
    if not report["can_create"]:
        ctx.log.info("usage_limit_reached", used=report["used"], limit=report["limit"])
        raise CommandRejectedError(
            f"You've used all {report['limit']} documents included in the free plan. "
            "Upgrade to keep creating invoices and estimates.",
            reason="Usage limit reached",
        )


@command_handler(NoParams)
async def check_usage_limits(ctx: HandlerContext, params: NoParams) -> Result:
    report = await usage_report(ctx)
    if report["unlimited"]:
        message = (
            f"You're on the {report['subscription_tier']} plan with unlimited documents. "
            f"{report['used']} created so far."
        )
    elif report["can_create"]:
        message = (
            f"You've used {report['used']} of {report['limit']} free documents; "
            f"{report['remaining']} left."
        )
    else:
        message = (
            f"You've used all {report['limit']} free documents. "
            "Upgrade to create more invoices and estimates."
        )
    return Result.ok(message, report)
