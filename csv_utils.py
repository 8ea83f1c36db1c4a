import csv
import re
from decimal import ROUND_HALF_UP, Decimal
from io import StringIO
from typing import Iterable, Sequence

from reporting import MonthTotal

CENT = Decimal("0.01")


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def format_amount(value: Decimal) -> str:
    return f"{Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP):.2f}"


def export_monthly_trend(rows: Sequence[MonthTotal]) -> str:
    output = StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(["Month", "Income", "Expenses", "Profit/Loss"])
    for row in rows:
        writer.writerow(
            [
                row.label,
                format_amount(row.income),
                format_amount(row.expenses),
                format_amount(row.profit),
            ]
        )
    return output.getvalue()


def export_transactions(transactions: Iterable) -> str:
    output = StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(
        ["Date", "Type", "Amount", "Category", "Account", "Document No", "Description"]
    )
    for txn in transactions:
        writer.writerow(
            [
                txn.date.isoformat(),
                txn.type.value,
                format_amount(txn.amount),
                sanitize_csv_value(txn.category.name if txn.category else ""),
                sanitize_csv_value(txn.account or ""),
                sanitize_csv_value(txn.document_no or ""),
                sanitize_csv_value(txn.description or ""),
            ]
        )
    return output.getvalue()
