# Overview: Store-wide settings (identity, stock bands, installment terms).

from __future__ import annotations

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import StoreSettings
from ..validation import ModelValidationPolicy, validate_payload
from .transaction import transaction_scope

SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={
        "store_name",
        "address",
        "phone",
        "email",
        "instagram",
        "whatsapp",
        "show_low_stock",
        "low_stock_threshold",
        "medium_stock_threshold",
        "max_installments",
        "installment_due_days",
    },
)

# Hard ceiling on installment plans regardless of what an admin saves
INSTALLMENTS_CEILING = 24


def _defaults() -> dict:
    cfg = current_app.config
    return {
        "store_name": cfg["STORE_NAME"],
        "show_low_stock": True,
        "low_stock_threshold": cfg["LOW_STOCK_THRESHOLD"],
        "medium_stock_threshold": cfg["MEDIUM_STOCK_THRESHOLD"],
        "max_installments": cfg["MAX_INSTALLMENTS"],
        "installment_due_days": cfg["INSTALLMENT_DUE_DAYS"],
    }


def current_settings(session=None) -> StoreSettings:
    """
    The saved settings row, or an unsaved instance holding the config defaults.

    Never writes; safe to call inside another operation's transaction.
    """
    session = session or db.session
    row = session.query(StoreSettings).order_by(StoreSettings.id.asc()).first()
    if row is not None:
        return row
    return StoreSettings(**_defaults())


def _enforce_rules(values: dict) -> None:
    if values["low_stock_threshold"] < 0:
        raise ValidationError("low_stock_threshold must be >= 0")
    if values["medium_stock_threshold"] < values["low_stock_threshold"]:
        raise ValidationError("medium_stock_threshold must be >= low_stock_threshold")
    if not 1 <= values["max_installments"] <= INSTALLMENTS_CEILING:
        raise ValidationError(f"max_installments must be between 1 and {INSTALLMENTS_CEILING}")
    if values["installment_due_days"] < 1:
        raise ValidationError("installment_due_days must be >= 1")


def update_settings(payload: dict, user_id: int) -> StoreSettings:
    """
    Partial update; fields not sent keep their current value.

    The first update persists the row (defaults merged with the payload).
    """
    patch = validate_payload(model=StoreSettings, payload=payload, policy=SETTINGS_POLICY, partial=True)

    with transaction_scope() as session:
        row = session.query(StoreSettings).order_by(StoreSettings.id.asc()).first()
        if row is None:
            row = StoreSettings(**_defaults())
            session.add(row)

        for k, v in patch.items():
            setattr(row, k, v)
        _enforce_rules({
            "low_stock_threshold": row.low_stock_threshold,
            "medium_stock_threshold": row.medium_stock_threshold,
            "max_installments": row.max_installments,
            "installment_due_days": row.installment_due_days,
        })
        row.updated_by_id = user_id

    current_app.logger.info("Store settings updated by user=%s fields=%s", user_id, sorted(patch))
    return row
