from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from models import DEFAULT_INCOME_TAX_RATE, DEFAULT_VAT_RATE, TransactionType

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class TaxSettings:
    vat_registered: bool = False
    vat_rate: Optional[Decimal] = None
    income_tax_rate: Optional[Decimal] = None

    @classmethod
    def from_company_settings(cls, settings) -> "TaxSettings":
        if settings is None:
            return cls()
        return cls(
            vat_registered=bool(settings.vat_registered),
            vat_rate=settings.vat_rate,
            income_tax_rate=settings.income_tax_rate,
        )


@dataclass(frozen=True)
class TaxBreakdown:
    amount: Decimal
    vat_amount: Decimal
    vat_rate: Decimal
    amount_without_vat: Decimal
    income_tax_amount: Optional[Decimal] = None
    income_tax_rate: Optional[Decimal] = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "amount": float(self.amount),
            "vat_amount": float(self.vat_amount),
            "vat_rate": float(self.vat_rate),
            "amount_without_vat": float(self.amount_without_vat),
        }
        if self.income_tax_amount is not None:
            data["income_tax_amount"] = float(self.income_tax_amount)
            data["income_tax_rate"] = float(self.income_tax_rate)
        return data


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_tax(
    amount: Decimal,
    transaction_type: TransactionType,
    settings: Optional[TaxSettings] = None,
) -> TaxBreakdown:
    """Split a VAT-inclusive amount into its VAT and income-tax components.

    The VAT part is extracted from the gross price (``amount * r / (100 + r)``),
    never added on top. Income tax applies to income only and is computed on the
    net-of-VAT amount. Every monetary output is rounded on its own at the end.
    """
    settings = settings or TaxSettings()
    amount = Decimal(amount)
    income_tax_rate = (
        DEFAULT_INCOME_TAX_RATE
        if settings.income_tax_rate is None
        else Decimal(settings.income_tax_rate)
    )

    if settings.vat_registered:
        vat_rate = (
            DEFAULT_VAT_RATE if settings.vat_rate is None else Decimal(settings.vat_rate)
        )
        vat_amount = amount * vat_rate / (HUNDRED + vat_rate)
    else:
        vat_rate = Decimal("0")
        vat_amount = Decimal("0")
    amount_without_vat = amount - vat_amount

    income_tax_amount = None
    reported_income_tax_rate = None
    if transaction_type == TransactionType.income:
        income_tax_amount = round_money(amount_without_vat * income_tax_rate / HUNDRED)
        reported_income_tax_rate = income_tax_rate

    return TaxBreakdown(
        amount=amount,
        vat_amount=round_money(vat_amount),
        vat_rate=vat_rate,
        amount_without_vat=round_money(amount_without_vat),
        income_tax_amount=income_tax_amount,
        income_tax_rate=reported_income_tax_rate,
    )
