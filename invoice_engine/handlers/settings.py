"""Business profile and defaults."""

from __future__ import annotations

from ..context import HandlerContext
from ..dispatcher import command_handler
from ..errors import InvalidArgumentError
from ..params import (
    NoParams,
    SetCurrencyParams,
    SetRegionParams,
    UpdateBusinessSettingsParams,
)
from ..references import ReferenceFormat
from ..result import Result
from .common import (
    BUSINESS_SETTINGS,
    CURRENCY_OPTIONS,
    CURRENCY_SYMBOLS,
    business_settings,
    public,
    validate_color,
    validate_design,
)

SETUP_CHECKLIST = (
    (
        "business_info",
        "Business Information",
        (
            ("business_name", "Business Name"),
            ("business_address", "Business Address"),
            ("business_email", "Business Email"),
            ("business_phone", "Business Phone"),
            ("business_website", "Business Website"),
        ),
    ),
    (
        "financial_settings",
        "Financial Settings",
        (
            ("currency_code", "Currency"),
            ("default_tax_rate", "Tax Rate"),
            ("tax_name", "Tax Name (VAT/Sales Tax)"),
            ("auto_apply_tax", "Auto Apply Tax"),
            ("region", "Business Region"),
        ),
    ),
)

SETTING_LABELS = {
    "business_name": "business name",
    "business_address": "address",
    "business_email": "e-mail",
    "business_phone": "phone",
    "business_website": "website",
    "currency_code": "currency",
    "default_tax_rate": "default tax rate",
    "tax_name": "tax name",
    "tax_number": "tax number",
    "auto_apply_tax": "auto apply tax",
    "region": "region",
    "invoice_reference_format": "reference format",
    "default_invoice_design": "default design",
    "default_accent_color": "default color",
}


def _completed(settings: dict, key: str) -> bool:
    # A False auto_apply_tax is still a decision.
    if key == "auto_apply_tax":
        return settings.get(key) is not None
    return bool(settings.get(key))


def validate_reference_format(template: str) -> str:
    if not template[:1].isalpha() or not template[-1:].isdigit():
        raise InvalidArgumentError(
            f"Reference format '{template}' must start with letters and end with digits, "
            "e.g. INV-001 or INV-YYYY-MM-0001."
        )
    return template


@command_handler(NoParams)
async def get_business_settings(ctx: HandlerContext, params: NoParams) -> Result:
    settings = await business_settings(ctx)
    if not settings:
        return Result.ok(
            "You haven't set up your business profile yet.", {"business_settings": None}
        )
    lines = [
        f"{label.capitalize()}: {settings[key]}"
        for key, label in SETTING_LABELS.items()
        if settings.get(key) not in (None, "")
    ]
    return Result.ok(
        "Your business settings:\n" + "\n".join(lines),
        {"business_settings": public(settings)},
    )


@command_handler(UpdateBusinessSettingsParams)
async def update_business_settings(
    ctx: HandlerContext, params: UpdateBusinessSettingsParams
) -> Result:
    changes = params.model_dump(exclude_none=True)
    if not changes:
        raise InvalidArgumentError("Say which business settings to change.")
    if "currency_code" in changes:
        changes["currency_code"] = changes["currency_code"].upper()
    if "invoice_reference_format" in changes:
        validate_reference_format(changes["invoice_reference_format"])
    if "default_invoice_design" in changes:
        changes["default_invoice_design"] = validate_design(changes["default_invoice_design"])
    if "default_accent_color" in changes:
        changes["default_accent_color"] = validate_color(changes["default_accent_color"])

    settings = await ctx.store.save_singleton(BUSINESS_SETTINGS, changes)
    ctx.log.info("business_settings_updated", fields=sorted(changes))
    message = "Updated " + ", ".join(SETTING_LABELS[key] for key in changes) + "."
    if "invoice_reference_format" in changes:
        example = ReferenceFormat.parse(changes["invoice_reference_format"]).render(
            1, ctx.lifecycle.today()
        )
        message += f" New references will look like {example}."
    return Result.ok(message, {"business_settings": public(settings)})


@command_handler(NoParams)
async def get_setup_progress(ctx: HandlerContext, params: NoParams) -> Result:
    settings = await business_settings(ctx)
    checklist = {}
    incomplete = []
    completed_count = total = 0
    sections = []
    for key, name, items in SETUP_CHECKLIST:
        entries = [
            {"key": item, "label": label, "completed": _completed(settings, item)}
            for item, label in items
        ]
        done = sum(1 for entry in entries if entry["completed"])
        checklist[key] = {"name": name, "items": entries}
        completed_count += done
        total += len(entries)
        incomplete.extend(entry for entry in entries if not entry["completed"])
        sections.append(
            f"{name} ({done}/{len(entries)})\n"
            + "\n".join(f"[{'x' if e['completed'] else ' '}] {e['label']}" for e in entries)
        )

    percentage = round(completed_count * 100 / total)
    message = (
        f"Overall progress: {percentage}% complete ({completed_count}/{total})\n\n"
        + "\n\n".join(sections)
    )
    if incomplete:
        message += "\n\nNext steps: " + ", ".join(e["label"] for e in incomplete[:3])
        if len(incomplete) > 3:
            message += f" and {len(incomplete) - 3} more"
        message += "."
    else:
        message += "\n\nYour business profile is fully set up."

    return Result.ok(
        message,
        {
            "checklist": checklist,
            "overall_percentage": percentage,
            "completed_items": completed_count,
            "total_items": total,
            "incomplete_items": incomplete,
        },
    )


@command_handler(SetCurrencyParams)
async def set_currency(ctx: HandlerContext, params: SetCurrencyParams) -> Result:
    code = params.currency_code.upper()
    settings = await ctx.store.save_singleton(BUSINESS_SETTINGS, {"currency_code": code})
    message = f"Currency set to {code}."
    if code not in CURRENCY_SYMBOLS:
        message += " Amounts will be shown with a $ sign because this currency has no known symbol."
    return Result.ok(message, {"business_settings": public(settings)})


@command_handler(SetRegionParams)
async def set_region(ctx: HandlerContext, params: SetRegionParams) -> Result:
    settings = await ctx.store.save_singleton(BUSINESS_SETTINGS, {"region": params.region})
    return Result.ok(f"Region set to {params.region}.", {"business_settings": public(settings)})


@command_handler(NoParams)
async def get_currency_options(ctx: HandlerContext, params: NoParams) -> Result:
    settings = await business_settings(ctx)
    current = settings.get("currency_code")
    lines = [
        f"{c['currency_code']} - {c['currency_name']} ({c['symbol']})"
        + (" (current)" if c["currency_code"] == current else "")
        for c in CURRENCY_OPTIONS
    ]
    return Result.ok(
        "Supported currencies:\n" + "\n".join(lines),
        {"currencies": CURRENCY_OPTIONS, "current": current},
    )
