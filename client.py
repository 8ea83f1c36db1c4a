from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Optional, Union
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from ledger_cache import LedgerCache
from models import TransactionType
from reporting import Report, build_report
from schemas import CategoryOut, TransactionIn, TransactionOut, TransactionUpdate

logger = logging.getLogger(__name__)

# (method, url, headers, body, timeout) -> (status, body)
Transport = Callable[[str, str, dict[str, str], Optional[bytes], float], tuple[int, bytes]]


class ApiError(Exception):
    def __init__(self, status: Optional[int], message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


def urllib_transport(
    method: str, url: str, headers: dict[str, str], body: Optional[bytes], timeout: float
) -> tuple[int, bytes]:
    req = Request(url, data=body, headers=headers, method=method)
    try:
        with urlopen(req, timeout=timeout) as resp:
            return resp.status, resp.read()
    except HTTPError as exc:
        return exc.code, exc.read()
    except (URLError, TimeoutError) as exc:
        raise ApiError(None, f"Failed to reach ledger API at {url}") from exc


class LedgerClient:
    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        *,
        token: Optional[str] = None,
        transport: Optional[Transport] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.transport = transport or urllib_transport
        self.timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, object]] = None,
        payload: Optional[dict[str, object]] = None,
        expect_json: bool = True,
    ):
        url = f"{self.base_url}{path}"
        query = {k: v for k, v in (params or {}).items() if v is not None}
        if query:
            url = f"{url}?{urlencode(query)}"
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        body = json.dumps(payload).encode("utf-8") if payload is not None else None

        status, raw = self.transport(method, url, headers, body, self.timeout)
        text = raw.decode("utf-8", errors="replace") if raw else ""
        if status >= 400:
            message = text[:200] or f"HTTP {status}"
            try:
                message = json.loads(text).get("message", message)
            except (ValueError, AttributeError):
                pass
            logger.warning(f"api_error: method={method} path={path} status={status}")
            raise ApiError(status, message)
        if not expect_json:
            return text
        return json.loads(text) if text else None

    def signup(self, **fields: object) -> dict:
        data = self._request("POST", "/api/signup", payload=dict(fields))
        self.token = data.get("access_token")
        return data["user"]

    def login(self, email: str, password: str) -> dict:
        data = self._request(
            "POST", "/api/login", payload={"email": email, "password": password}
        )
        self.token = data.get("access_token")
        return data["user"]

    def list_transactions(self, user_id: int) -> list[TransactionOut]:
        rows = self._request("GET", "/api/transactions", params={"user_id": user_id})
        return [TransactionOut.model_validate(row) for row in rows]

    def create_transaction(self, data: TransactionIn) -> TransactionOut:
        row = self._request(
            "POST", "/api/transactions", payload=data.model_dump(mode="json")
        )
        return TransactionOut.model_validate(row)

    def update_transaction(
        self, transaction_id: int, data: TransactionUpdate
    ) -> TransactionOut:
        row = self._request(
            "PUT",
            f"/api/transactions/{transaction_id}",
            payload=data.model_dump(mode="json"),
        )
        return TransactionOut.model_validate(row)

    def delete_transaction(self, transaction_id: int) -> TransactionOut:
        data = self._request("DELETE", f"/api/transactions/{transaction_id}")
        return TransactionOut.model_validate(data["transaction"])

    def list_categories(self, category_type: Optional[str] = None) -> list[CategoryOut]:
        rows = self._request("GET", "/api/categories", params={"type": category_type})
        return [CategoryOut.model_validate(row) for row in rows]

    def calculate_tax(self, amount: Decimal, transaction_type: TransactionType) -> dict:
        return self._request(
            "POST",
            "/api/tax/calculate",
            payload={"amount": str(amount), "type": transaction_type.value},
        )

    def report_csv(self, start: date, end: date) -> str:
        return self._request(
            "GET",
            "/api/reports/export.csv",
            params={"start": start.isoformat(), "end": end.isoformat()},
            expect_json=False,
        )


@dataclass
class LedgerWorkspace:
    """One signed-in session: an API client plus the cache it keeps current."""

    client: LedgerClient
    user_id: int
    cache: Optional[LedgerCache] = None

    def __post_init__(self) -> None:
        if self.cache is None:
            self.cache = LedgerCache()

    def fetch_transactions(self) -> list[TransactionOut]:
        transactions = self.client.list_transactions(self.user_id)
        self.cache.replace_all(transactions)
        return transactions

    def add_transaction(self, data: Union[TransactionIn, dict]) -> TransactionOut:
        if isinstance(data, dict):
            data = TransactionIn.model_validate({**data, "user_id": self.user_id})
        created = self.client.create_transaction(data)
        self.cache.append(created)
        return created

    def update_transaction(
        self, transaction_id: int, data: Union[TransactionUpdate, dict]
    ) -> TransactionOut:
        if isinstance(data, dict):
            data = TransactionUpdate.model_validate(data)
        updated = self.client.update_transaction(transaction_id, data)
        self.cache.replace(updated)
        return updated

    def delete_transaction(self, transaction_id: int) -> TransactionOut:
        deleted = self.client.delete_transaction(transaction_id)
        self.cache.remove(transaction_id)
        return deleted

    def categories(self, category_type: Optional[str] = None) -> list[CategoryOut]:
        return self.client.list_categories(category_type)

    def report(self, start: date, end: date) -> Report:
        return build_report(self.cache, start, end)

    def search(
        self, term: str = "", transaction_type: Optional[TransactionType] = None
    ) -> list[TransactionOut]:
        needle = term.strip().lower()
        matches = []
        for txn in self.cache:
            if transaction_type is not None and txn.type != transaction_type:
                continue
            if needle:
                haystack = [
                    txn.description,
                    txn.account,
                    txn.document_no,
                    txn.category.name if txn.category else None,
                ]
                if not any(needle in value.lower() for value in haystack if value):
                    continue
            matches.append(txn)
        return matches
