from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from enrollment_api.domain.enums import InscriptionType
from enrollment_api.domain.models import Championship

MONEY_QUANT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_money(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise ValueError("Invalid monetary amount") from exc
    return amount.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def commission_percentage(championship: Championship, default: Decimal) -> Decimal:
    # Unset and zero both fall back to the platform default
    value = championship.platform_commission_percentage
    if not value:
        return Decimal(default)
    return Decimal(str(value))


def split_percentage(commission: Decimal) -> Decimal:
    """Share of a commission-inclusive total that belongs to the platform.

    For a 10% commission the competitor pays 110 and the platform keeps 10/110,
    i.e. 9.09%.
    """
    rate = Decimal(commission) / HUNDRED
    return (rate / (1 + rate) * HUNDRED).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def build_split(championship: Championship, default_commission: Decimal) -> list[dict[str, Any]] | None:
    if not (championship.split_enabled and championship.asaas_wallet_id):
        return None
    platform_share = split_percentage(commission_percentage(championship, default_commission))
    return [
        {
            "walletId": championship.asaas_wallet_id,
            "percentualValue": float(HUNDRED - platform_share),
        }
    ]


def compute_amount(
    *,
    unit_price: Decimal,
    category_count: int,
    stage_count: int,
    inscription_type: InscriptionType,
    championship: Championship,
    default_commission: Decimal,
) -> Decimal:
    """Price of an enrollment before any caller-supplied override."""
    amount = Decimal(unit_price) * category_count
    if inscription_type == InscriptionType.STAGE and stage_count > 0:
        amount *= stage_count
    if not championship.commission_absorbed_by_championship:
        amount += amount * commission_percentage(championship, default_commission) / HUNDRED
    return to_money(amount)
