from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import TransactionType
from results import ErrorKind, Outcome
from schemas import TaxRequest
from services import CompanySettingsService, TaxService
from tax import TaxSettings, calculate_tax


def test_extracts_vat_from_inclusive_amount() -> None:
    result = calculate_tax(
        Decimal("110"),
        TransactionType.income,
        TaxSettings(vat_registered=True, vat_rate=Decimal("10"), income_tax_rate=Decimal("10")),
    )
    assert result.vat_rate == Decimal("10")
    assert result.vat_amount == Decimal("10.00")
    assert result.amount_without_vat == Decimal("100.00")
    assert result.income_tax_amount == Decimal("10.00")
    assert result.income_tax_rate == Decimal("10")


def test_unregistered_company_pays_no_vat() -> None:
    result = calculate_tax(
        Decimal("110"), TransactionType.income, TaxSettings(vat_registered=False)
    )
    assert result.vat_rate == Decimal("0")
    assert result.vat_amount == Decimal("0.00")
    assert result.amount_without_vat == Decimal("110.00")
    assert result.income_tax_amount == Decimal("11.00")


def test_expense_has_no_income_tax() -> None:
    result = calculate_tax(
        Decimal("220"), TransactionType.expense, TaxSettings(vat_registered=True)
    )
    assert result.vat_amount == Decimal("20.00")
    assert result.income_tax_amount is None
    assert "income_tax_amount" not in result.to_dict()


def test_missing_settings_use_defaults() -> None:
    result = calculate_tax(Decimal("50"), TransactionType.income)
    assert result.vat_amount == Decimal("0.00")
    assert result.income_tax_rate == Decimal("10")
    assert result.income_tax_amount == Decimal("5.00")


def test_outputs_round_independently() -> None:
    result = calculate_tax(
        Decimal("100"), TransactionType.income, TaxSettings(vat_registered=True)
    )
    # 100 * 10 / 110 = 9.0909..., net 90.9090..., income tax 9.0909...
    assert result.vat_amount == Decimal("9.09")
    assert result.amount_without_vat == Decimal("90.91")
    assert result.income_tax_amount == Decimal("9.09")
    assert result.to_dict() == {
        "amount": 100.0,
        "vat_amount": 9.09,
        "vat_rate": 10.0,
        "amount_without_vat": 90.91,
        "income_tax_amount": 9.09,
        "income_tax_rate": 10.0,
    }


def test_service_falls_back_to_defaults_when_settings_unreadable(monkeypatch) -> None:
    def broken_find(self):
        return Outcome.failure(ErrorKind.store, "Internal server error")

    monkeypatch.setattr(CompanySettingsService, "find", broken_find)
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        outcome = TaxService(session, user_id=1).calculate(
            TaxRequest(amount=Decimal("110"), type=TransactionType.income)
        )

    assert outcome.ok
    assert outcome.value.vat_amount == Decimal("0.00")
    assert outcome.value.income_tax_amount == Decimal("11.00")
