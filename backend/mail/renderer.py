"""Rendering helpers for transactional email and invoice documents."""
from __future__ import annotations

import html
import re
from pathlib import Path
from typing import Any, Dict, Tuple

_TEMPLATE_PATH = Path(__file__).resolve().parent / "templates"
_PLACEHOLDER_PATTERN = re.compile(r"{{\s*(\w+)\s*}}")

_CURRENCY_SYMBOLS = {"INR": "₹"}


def _load_template(template: str) -> str:
    path = _TEMPLATE_PATH / template
    return path.read_text(encoding="utf-8")


def _render_template(template: str, context: Dict[str, Any], *, escape: bool = False) -> str:
    source = _load_template(template)

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        value = context.get(key, "")
        text = "" if value is None else str(value)
        return html.escape(text) if escape else text

    return _PLACEHOLDER_PATTERN.sub(_replace, source)


def _render_subject_body(base_template: str, context: Dict[str, Any]) -> Tuple[str, str, str]:
    subject = _render_template(f"{base_template}_subject.txt.j2", context)
    text_body = _render_template(f"{base_template}_body.txt.j2", context)
    html_body = _render_template(f"{base_template}_body.html.j2", context, escape=True)
    return subject.strip(), text_body.strip(), html_body.strip()


def format_amount(amount_minor: int, currency: str = "INR") -> str:
    """Format an amount in minor units, e.g. ``299900`` -> ``"₹2,999.00"``."""

    if not amount_minor:
        return "FREE"
    code = (currency or "").upper()
    symbol = _CURRENCY_SYMBOLS.get(code)
    value = f"{amount_minor / 100:,.2f}"
    return f"{symbol}{value}" if symbol else f"{code} {value}"


def render_subscription_invoice(context: Dict[str, Any]) -> Tuple[str, str, str]:
    """Return ``(subject, text_body, html_body)`` for a subscription invoice mail."""

    return _render_subject_body("subscription_invoice", context)


def render_invoice_document(context: Dict[str, Any]) -> str:
    return _render_template("invoice.html.j2", context, escape=True).strip()


__all__ = [
    "format_amount",
    "render_invoice_document",
    "render_subscription_invoice",
]
