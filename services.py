from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from auth import hash_password, verify_password
from csv_utils import export_monthly_trend, export_transactions
from models import (
    Category,
    CategoryType,
    CompanySettings,
    Transaction,
    TransactionType,
    User,
)
from periods import Period
from reporting import Report, build_report, filter_by_period
from results import ErrorKind, LedgerError, Outcome, invalid
from schemas import (
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    CompanySettingsIn,
    LoginIn,
    SignupIn,
    TaxRequest,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)
from tax import TaxBreakdown, TaxSettings, calculate_tax

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: list[tuple[str, CategoryType, str]] = [
    ("Salary", CategoryType.expense, "#10B981"),
    ("Rent", CategoryType.expense, "#EF4444"),
    ("Utilities", CategoryType.expense, "#F59E0B"),
    ("Office Supplies", CategoryType.expense, "#8B5CF6"),
    ("Marketing", CategoryType.expense, "#06B6D4"),
    ("Sales Revenue", CategoryType.income, "#10B981"),
    ("Service Income", CategoryType.income, "#3B82F6"),
    ("Interest Income", CategoryType.income, "#14B8A6"),
]


def parse_input(model: type[BaseModel], data: object) -> Outcome:
    """Validate a raw JSON payload into ``model``; failures become validation errors."""
    if not isinstance(data, dict):
        return Outcome.failure(ErrorKind.validation, "Request body must be a JSON object")
    try:
        return Outcome.success(model.model_validate(data))
    except ValidationError as exc:
        return invalid(exc)


def _store_error(session: Session, exc: SQLAlchemyError, event: str) -> LedgerError:
    session.rollback()
    logger.exception(f"store_error: during={event}")
    return LedgerError(ErrorKind.store, "Internal server error", detail=str(exc))


def _commit(session: Session, event: str) -> Optional[LedgerError]:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        return _store_error(session, exc, event)
    return None


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _find_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.strip().lower())
        return self.session.scalar(stmt)

    def get(self, user_id: int) -> Outcome[User]:
        try:
            user = self.session.get(User, user_id)
        except SQLAlchemyError as exc:
            return Outcome.from_error(_store_error(self.session, exc, "user_get"))
        if not user:
            return Outcome.failure(ErrorKind.not_found, "User not found")
        return Outcome.success(user)

    def signup(self, data: SignupIn) -> Outcome[User]:
        try:
            if self._find_by_email(data.email):
                return Outcome.failure(
                    ErrorKind.validation, "Email is already registered"
                )
            user = User(
                name=data.name,
                email=data.email.lower(),
                user_type=data.user_type,
                organization_name=data.organization_name,
                organization_id=data.organization_id,
                password_hash=hash_password(data.password),
            )
            self.session.add(user)
            self.session.flush()
            for name, category_type, color in DEFAULT_CATEGORIES:
                self.session.add(
                    Category(user_id=user.id, name=name, type=category_type, color=color)
                )
        except SQLAlchemyError as exc:
            return Outcome.from_error(_store_error(self.session, exc, "signup"))
        error = _commit(self.session, "signup")
        if error:
            return Outcome.from_error(error)
        self.session.refresh(user)
        logger.info(f"user_created: id={user.id} user_type={user.user_type.value}")
        return Outcome.success(user)

    def login(self, data: LoginIn) -> Outcome[User]:
        try:
            user = self._find_by_email(data.email)
        except SQLAlchemyError as exc:
            return Outcome.from_error(_store_error(self.session, exc, "login"))
        if not user or not verify_password(data.password, user.password_hash):
            logger.info("login_rejected: reason=bad_credentials")
            return Outcome.failure(ErrorKind.authentication, "Invalid email or password")
        logger.info(f"login: user_id={user.id}")
        return Outcome.success(user)


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self, category_type: Optional[CategoryType] = None) -> Outcome[list[Category]]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name, Category.id)
        )
        if category_type in (CategoryType.income, CategoryType.expense):
            stmt = stmt.where(Category.type.in_([category_type, CategoryType.both]))
        elif category_type == CategoryType.both:
            stmt = stmt.where(Category.type == CategoryType.both)
        try:
            return Outcome.success(list(self.session.scalars(stmt).all()))
        except SQLAlchemyError as exc:
            return Outcome.from_error(_store_error(self.session, exc, "category_list"))

    def get(self, category_id: int) -> Outcome[Category]:
        try:
            category = self.session.get(Category, category_id)
        except SQLAlchemyError as exc:
            return Outcome.from_error(_store_error(self.session, exc, "category_get"))
        if not category or category.user_id != self.user_id:
            return Outcome.failure(ErrorKind.not_found, "Category not found")
        return Outcome.success(category)

    def _name_taken(
        self, name: str, category_type: CategoryType, exclude_id: Optional[int] = None
    ) -> bool:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            Category.type == category_type,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        return self.session.scalar(stmt) is not None

    def create(self, data: CategoryIn) -> Outcome[Category]:
        try:
            if self._name_taken(data.name, data.type):
                return Outcome.failure(
                    ErrorKind.validation, "Category with this name already exists"
                )
            category = Category(
                user_id=self.user_id,
                name=data.name,
                type=data.type,
                color=data.color,
            )
            self.session.add(category)
        except SQLAlchemyError as exc:
            return Outcome.from_error(_store_error(self.session, exc, "category_create"))
        error = _commit(self.session, "category_create")
        if error:
            return Outcome.from_error(error)
        self.session.refresh(category)
        logger.info(f"category_created: id={category.id} user_id={self.user_id}")
        return Outcome.success(category)

    def update(self, category_id: int, data: CategoryUpdate) -> Outcome[Category]:
        found = self.get(category_id)
        if not found.ok:
            return found
        category = found.value
        try:
            if data.name is not None:
                if self._name_taken(data.name, category.type, exclude_id=category.id):
                    return Outcome.failure(
                        ErrorKind.validation, "Category with this name already exists"
                    )
                category.name = data.name
        except SQLAlchemyError as exc:
            return Outcome.from_error(_store_error(self.session, exc, "category_update"))
        if data.color is not None:
            category.color = data.color
        error = _commit(self.session, "category_update")
        if error:
            return Outcome.from_error(error)
        self.session.refresh(category)
        return Outcome.success(category)

    def delete(self, category_id: int) -> Outcome[CategoryOut]:
        found = self.get(category_id)
        if not found.ok:
            return Outcome.from_error(found.error)
        category = found.value
        snapshot = CategoryOut.model_validate(category)
        try:
            # Transactions survive their category; only the reference is cleared.
            self.session.execute(
                update(Transaction)
                .where(Transaction.category_id == category.id)
                .values(category_id=None)
                .execution_options(synchronize_session="fetch")
            )
            self.session.delete(category)
        except SQLAlchemyError as exc:
            return Outcome.from_error(_store_error(self.session, exc, "category_delete"))
        error = _commit(self.session, "category_delete")
        if error:
            return Outcome.from_error(error)
        logger.info(f"category_deleted: id={category_id} user_id={self.user_id}")
        return Outcome.success(snapshot)


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _check_category(
        self, category_id: Optional[int], txn_type: TransactionType
    ) -> Optional[LedgerError]:
        if category_id is None:
            return None
        found = CategoryService(self.session, self.user_id).get(category_id)
        if not found.ok:
            if found.error.kind == ErrorKind.not_found:
                return LedgerError(ErrorKind.validation, "Category not found")
            return found.error
        if not found.value.type.accepts(txn_type):
            return LedgerError(ErrorKind.validation, "Category type mismatch")
        return None

    def get(self, transaction_id: int) -> Outcome[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        try:
            txn = self.session.scalar(stmt)
        except SQLAlchemyError as exc:
            return Outcome.from_error(_store_error(self.session, exc, "transaction_get"))
        if not txn:
            return Outcome.failure(ErrorKind.not_found, "Transaction not found")
        return Outcome.success(txn)

    def list_all(self) -> Outcome[list[Transaction]]:
        """All of the user's transactions, newest date first, same-date rows in insertion order."""
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.asc())
        )
        try:
            return Outcome.success(list(self.session.scalars(stmt).all()))
        except SQLAlchemyError as exc:
            return Outcome.from_error(_store_error(self.session, exc, "transaction_list"))

    def create(self, data: TransactionIn) -> Outcome[Transaction]:
        if data.user_id != self.user_id:
            return Outcome.failure(
                ErrorKind.forbidden, "Cannot create transactions for another user"
            )
        error = self._check_category(data.category_id, data.type)
        if error:
            return Outcome.from_error(error)
        txn = Transaction(
            user_id=self.user_id,
            amount=data.amount,
            type=data.type,
            date=data.date,
            account=data.account,
            document_no=data.document_no,
            description=data.description,
            category_id=data.category_id,
        )
        self.session.add(txn)
        error = _commit(self.session, "transaction_create")
        if error:
            return Outcome.from_error(error)
        txn_id = txn.id
        # Reload so amount/timestamps come back as stored, not as submitted.
        self.session.expire(txn)
        logger.info(
            f"transaction_created: id={txn_id} user_id={self.user_id} type={data.type.value}"
        )
        return self.get(txn_id)

    def update(self, transaction_id: int, data: TransactionUpdate) -> Outcome[Transaction]:
        found = self.get(transaction_id)
        if not found.ok:
            return found
        error = self._check_category(data.category_id, data.type)
        if error:
            return Outcome.from_error(error)
        txn = found.value
        txn.type = data.type
        txn.amount = data.amount
        txn.date = data.date
        txn.account = data.account
        txn.document_no = data.document_no
        txn.description = data.description
        txn.category_id = data.category_id
        error = _commit(self.session, "transaction_update")
        if error:
            return Outcome.from_error(error)
        self.session.expire(txn)
        logger.info(f"transaction_updated: id={transaction_id} user_id={self.user_id}")
        return self.get(transaction_id)

    def delete(self, transaction_id: int) -> Outcome[TransactionOut]:
        found = self.get(transaction_id)
        if not found.ok:
            return Outcome.from_error(found.error)
        txn = found.value
        snapshot = TransactionOut.model_validate(txn)
        self.session.delete(txn)
        error = _commit(self.session, "transaction_delete")
        if error:
            return Outcome.from_error(error)
        logger.info(f"transaction_deleted: id={transaction_id} user_id={self.user_id}")
        return Outcome.success(snapshot)


class CompanySettingsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def find(self) -> Outcome[Optional[CompanySettings]]:
        stmt = select(CompanySettings).where(CompanySettings.user_id == self.user_id)
        try:
            return Outcome.success(self.session.scalar(stmt))
        except SQLAlchemyError as exc:
            return Outcome.from_error(_store_error(self.session, exc, "settings_get"))

    def get(self) -> Outcome[CompanySettings]:
        found = self.find()
        if found.ok and found.value is None:
            return Outcome.failure(ErrorKind.not_found, "Company settings not found")
        return found

    def save(self, data: CompanySettingsIn) -> Outcome[CompanySettings]:
        found = self.find()
        if not found.ok:
            return found
        settings = found.value
        if settings is None:
            settings = CompanySettings(user_id=self.user_id)
            self.session.add(settings)
        values = data.model_dump(exclude={"ebarimt_api_key"})
        for key, value in values.items():
            setattr(settings, key, value)
        # The API key is write-only; omitting it keeps the stored one.
        if data.ebarimt_api_key is not None:
            settings.ebarimt_api_key = data.ebarimt_api_key
        error = _commit(self.session, "settings_save")
        if error:
            return Outcome.from_error(error)
        self.session.refresh(settings)
        logger.info(f"company_settings_saved: user_id={self.user_id}")
        return Outcome.success(settings)


class TaxService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def calculate(self, data: TaxRequest) -> Outcome[TaxBreakdown]:
        found = CompanySettingsService(self.session, self.user_id).find()
        company = found.value if found.ok else None
        if not found.ok:
            # Settings are optional input; fall back to the unregistered defaults.
            logger.warning(f"tax_settings_unavailable: user_id={self.user_id}")
        result = calculate_tax(
            data.amount, data.type, TaxSettings.from_company_settings(company)
        )
        logger.info(
            f"tax_calculated: user_id={self.user_id} type={data.type.value} "
            f"vat_rate={result.vat_rate}"
        )
        return Outcome.success(result)


class ReportService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.txn_service = TransactionService(session, user_id)

    def summary(self, period: Period) -> Outcome[Report]:
        listed = self.txn_service.list_all()
        if not listed.ok:
            return Outcome.from_error(listed.error)
        return Outcome.success(build_report(listed.value, period.start, period.end))

    def trend_csv(self, period: Period) -> Outcome[str]:
        summary = self.summary(period)
        if not summary.ok:
            return Outcome.from_error(summary.error)
        return Outcome.success(export_monthly_trend(summary.value.monthly_trend))

    def transactions_csv(self, period: Optional[Period] = None) -> Outcome[str]:
        listed = self.txn_service.list_all()
        if not listed.ok:
            return Outcome.from_error(listed.error)
        transactions = listed.value
        if period is not None:
            transactions = filter_by_period(transactions, period)
        return Outcome.success(export_transactions(transactions))
