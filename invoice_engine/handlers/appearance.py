"""Design and colour palettes offered for documents."""

from __future__ import annotations

from ..context import HandlerContext
from ..dispatcher import command_handler
from ..documents import COLORS, DEFAULT_ACCENT_COLOR, DEFAULT_DESIGN, DESIGNS
from ..params import NoParams
from ..result import Result
from .common import business_settings


@command_handler(NoParams)
async def get_design_options(ctx: HandlerContext, params: NoParams) -> Result:
    settings = await business_settings(ctx)
    current = settings.get("default_invoice_design") or DEFAULT_DESIGN
    designs = [
        {"key": key, "description": description, "is_default": key == current}
        for key, description in DESIGNS.items()
    ]
    return Result.ok(
        "Available designs:\n"
        + "\n".join(
            f"{d['key']}: {d['description']}{' (default)' if d['is_default'] else ''}"
            for d in designs
        ),
        {"designs": designs, "default": current},
    )


@command_handler(NoParams)
async def get_color_options(ctx: HandlerContext, params: NoParams) -> Result:
    settings = await business_settings(ctx)
    current = settings.get("default_accent_color") or DEFAULT_ACCENT_COLOR
    colors = [
        {"name": name, "hex": value, "is_default": value == current}
        for name, value in COLORS.items()
    ]
    return Result.ok(
        "Available colors: "
        + ", ".join(f"{c['name']} ({c['hex']})" for c in colors)
        + ". Any #RRGGBB value works too.",
        {"colors": colors, "default": current},
    )
