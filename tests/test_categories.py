from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import CategoryType, TransactionType, User, UserType
from results import ErrorKind
from schemas import CategoryIn, CategoryUpdate, SignupIn, TransactionIn
from services import CategoryService, TransactionService, UserService


def _engine():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


def _user(session: Session, email: str = "owner@example.com") -> User:
    user = User(email=email, user_type=UserType.organization, password_hash="unused")
    session.add(user)
    session.commit()
    return user


def test_signup_inserts_default_categories() -> None:
    with Session(_engine()) as session:
        user = UserService(session).signup(
            SignupIn(email="new@example.com", user_type="individual", password="pw")
        ).value
        categories = CategoryService(session, user.id)

        income = categories.list_all(CategoryType.income).value
        assert [c.name for c in income] == [
            "Interest Income",
            "Sales Revenue",
            "Service Income",
        ]
        expense = categories.list_all(CategoryType.expense).value
        assert len(expense) == 5
        assert len(categories.list_all().value) == 8


def test_type_filter_includes_shared_categories() -> None:
    with Session(_engine()) as session:
        user = _user(session)
        service = CategoryService(session, user.id)
        service.create(CategoryIn(name="Sales", type=CategoryType.income))
        service.create(CategoryIn(name="Rent", type=CategoryType.expense))
        service.create(CategoryIn(name="Adjustments", type=CategoryType.both))

        income_names = [c.name for c in service.list_all(CategoryType.income).value]
        assert income_names == ["Adjustments", "Sales"]
        both_names = [c.name for c in service.list_all(CategoryType.both).value]
        assert both_names == ["Adjustments"]


def test_listing_is_scoped_to_owner() -> None:
    with Session(_engine()) as session:
        owner = _user(session)
        other = _user(session, email="other@example.com")
        CategoryService(session, other.id).create(
            CategoryIn(name="Secret", type=CategoryType.expense)
        )
        assert CategoryService(session, owner.id).list_all().value == []


def test_duplicate_name_is_rejected_case_insensitive() -> None:
    with Session(_engine()) as session:
        user = _user(session)
        service = CategoryService(session, user.id)
        service.create(CategoryIn(name="Marketing", type=CategoryType.expense))

        outcome = service.create(CategoryIn(name="marketing", type=CategoryType.expense))
        assert outcome.error.kind == ErrorKind.validation

        # Same name under the other type is a different bucket.
        assert service.create(
            CategoryIn(name="Marketing", type=CategoryType.income)
        ).ok


def test_update_changes_name_and_color() -> None:
    with Session(_engine()) as session:
        user = _user(session)
        service = CategoryService(session, user.id)
        category = service.create(
            CategoryIn(name="Utilities", type=CategoryType.expense)
        ).value
        assert category.color == "#3B82F6"

        updated = service.update(
            category.id, CategoryUpdate(name="Power & Water", color="#F59E0B")
        )
        assert updated.ok
        assert updated.value.name == "Power & Water"
        assert updated.value.color == "#F59E0B"

        missing = service.update(9999, CategoryUpdate(color="#000000"))
        assert missing.error.kind == ErrorKind.not_found


def test_deleting_category_keeps_transactions_without_category() -> None:
    with Session(_engine()) as session:
        user = _user(session)
        categories = CategoryService(session, user.id)
        rent = categories.create(CategoryIn(name="Rent", type=CategoryType.expense)).value
        transactions = TransactionService(session, user.id)
        txn_id = transactions.create(
            TransactionIn(
                user_id=user.id,
                amount=Decimal("900"),
                type=TransactionType.expense,
                date=date(2024, 5, 1),
                category_id=rent.id,
            )
        ).value.id

        deleted = categories.delete(rent.id)
        assert deleted.ok
        assert deleted.value.name == "Rent"

        listed = transactions.list_all().value
        assert [txn.id for txn in listed] == [txn_id]
        assert listed[0].category_id is None
        assert listed[0].category is None

        assert categories.delete(rent.id).error.kind == ErrorKind.not_found
