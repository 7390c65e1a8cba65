"""
Billit bank transaction client implementation.
"""

import logging
import re
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .cache import DEFAULT_TTL_SECONDS, InFlightRegistry, TransactionCache

if TYPE_CHECKING:
    from ..suppliers.learning import SupplierLearner
    from ..suppliers.resolver import SupplierResolver

logger = logging.getLogger(__name__)

CREDIT = "Credit"
DEBIT = "Debit"

# fromisoformat on 3.10 only takes 3 or 6 fraction digits and +HH:MM offsets
_FRACTION_RE = re.compile(r"\.(\d+)")
_COMPACT_OFFSET_RE = re.compile(r"([+-]\d{2})(\d{2})$")


class BankError(Exception):
    """Base exception for bank client errors."""

    pass


class UpstreamFetchError(BankError):
    """A request to the upstream transaction API failed."""

    pass


class BankAPIError(UpstreamFetchError):
    """API returned an error response."""

    def __init__(self, status_code: int, message: str, response_body: str | None = None):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"Billit API error {status_code}: {message}")


class BankConnectionError(UpstreamFetchError):
    """Failed to connect to the API (connection refused, timeout)."""

    pass


def parse_timestamp(value: str | None) -> datetime | None:
    """
    Parse an upstream ISO timestamp into a naive datetime.

    Value dates are local banking dates, so any timezone designator is
    dropped rather than converted.
    """
    if not value:
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    text = _COMPACT_OFFSET_RE.sub(r"\1:\2", text)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed.replace(tzinfo=None) if parsed.tzinfo else parsed


def parse_date(value: str) -> date | None:
    """
    Parse a user-supplied date.

    Accepted formats: YYYY-MM-DD, DD/MM/YYYY, DD-MM-YYYY.

    Returns:
        date, or None if the string matches no format
    """
    value = value.strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def _first_text(row: dict, *fields: str) -> str:
    """First non-empty string value among the given fields."""
    for name in fields:
        value = row.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


@dataclass(frozen=True)
class BankTransaction:
    """One bank ledger movement, as converted from an upstream row."""

    id: str
    iban: str
    amount: float
    type: str
    date: str
    description: str
    currency: str = "EUR"
    bank_account_id: int = 0

    @property
    def is_credit(self) -> bool:
        return self.type == CREDIT

    @property
    def is_debit(self) -> bool:
        return self.type == DEBIT

    @property
    def value_date(self) -> datetime | None:
        return parse_timestamp(self.date)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "iban": self.iban,
            "amount": self.amount,
            "type": self.type,
            "date": self.date,
            "description": self.description,
            "currency": self.currency,
            "bank_account_id": self.bank_account_id,
        }

    @classmethod
    def from_api(cls, row: dict) -> "BankTransaction":
        """
        Convert a raw ``financialTransactions`` row.

        Every field is validated or defaulted here so that nothing untyped
        travels further into the system. The description is the counterparty
        name followed by the first non-empty note/description/communication.
        """
        try:
            amount = float(row.get("TotalAmount") or 0)
        except (TypeError, ValueError):
            logger.debug("Unparseable TotalAmount %r, using 0", row.get("TotalAmount"))
            amount = 0.0

        try:
            bank_account_id = int(row.get("BankAccountID") or 0)
        except (TypeError, ValueError):
            bank_account_id = 0

        counterparty = _first_text(row, "NameCounterParty", "CounterPartyName")
        note = _first_text(row, "Note", "Description", "Communication")
        description = " - ".join(part for part in (counterparty, note) if part)

        return cls(
            id=_first_text(row, "BankAccountTransactionID", "ID"),
            iban=re.sub(r"\s+", "", str(row.get("IBAN") or "")),
            amount=amount,
            type=CREDIT if row.get("TransactionType") == CREDIT else DEBIT,
            date=_first_text(row, "ValueDate", "Date") or datetime.now(timezone.utc).isoformat(),
            description=description,
            currency=_first_text(row, "Currency") or "EUR",
            bank_account_id=bank_account_id,
        )


@dataclass
class TransactionStats:
    """Credit/debit totals for a set of transactions."""

    total: float = 0.0
    credits: float = 0.0
    debits: float = 0.0
    credit_count: int = 0
    debit_count: int = 0
    balance: float = 0.0

    @classmethod
    def from_transactions(cls, transactions: list[BankTransaction]) -> "TransactionStats":
        stats = cls()
        for tx in transactions:
            if tx.is_credit:
                stats.credits += tx.amount
                stats.credit_count += 1
            else:
                stats.debits += abs(tx.amount)
                stats.debit_count += 1
        stats.total = stats.credits + stats.debits
        stats.balance = stats.credits - stats.debits
        return stats

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "credits": self.credits,
            "debits": self.debits,
            "credit_count": self.credit_count,
            "debit_count": self.debit_count,
            "balance": self.balance,
        }


def _extract_items(data: Any) -> list[dict]:
    """Rows may come as {"Items": [...]}, {"items": [...]} or a bare list."""
    if isinstance(data, dict):
        items = data.get("Items")
        if items is None:
            items = data.get("items")
    else:
        items = data

    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


class BankClient:
    """
    Client for the Billit financial transactions API.

    Features:
    - Offset pagination around the 120-row page cap
    - TTL cache for unbounded queries (never caches an empty result)
    - Single-flight: concurrent cache misses share one upstream fetch
    - Client-side re-filtering of date windows
    - Supplier learning hook on every converted transaction
    - Automatic retry with backoff
    """

    DEFAULT_TIMEOUT = 30
    MAX_PAGE_SIZE = 120
    TRANSACTIONS_ENDPOINT = "/v1/financialTransactions"
    ALL_TRANSACTIONS_KEY = "all"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        party_id: str | None = None,
        learner: "SupplierLearner | None" = None,
        resolver: "SupplierResolver | None" = None,
        cache: TransactionCache | None = None,
        page_size: int = MAX_PAGE_SIZE,
        page_delay: float = 0.1,
        cache_ttl: float = DEFAULT_TTL_SECONDS,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        """
        Initialize bank client.

        Args:
            base_url: Billit API URL (e.g., "https://my.billit.eu/api")
            api_key: Billit API key
            party_id: Optional party ID header
            learner: Supplier learner fed with every transaction description
            resolver: Supplier resolver for search_by_description
                (defaults to the learner's resolver)
            cache: Transaction cache (a new one with cache_ttl if omitted)
            page_size: Rows per page request (capped by the API)
            page_delay: Pause between page requests in seconds
            cache_ttl: TTL for the default cache in seconds
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts
            backoff_factor: Backoff factor for retries
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.page_size = max(1, min(page_size, self.MAX_PAGE_SIZE))
        self.page_delay = page_delay
        self.learner = learner
        self.resolver = resolver or (learner.resolver if learner else None)
        self.cache = cache if cache is not None else TransactionCache(ttl_seconds=cache_ttl)
        self._inflight = InFlightRegistry()
        # Completeness of the most recent fetch on this instance. Concurrent
        # callers overwrite each other; use fetch_with_status from threads.
        self.last_fetch_complete = True

        # Configure session with retry
        self.session = requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )
        if party_id:
            self.session.headers["partyID"] = party_id

        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict | None = None,
    ) -> requests.Response:
        """Make an API request with error handling."""
        url = f"{self.base_url}{endpoint}"

        logger.debug(f"API Request: {method} {url} {params or ''}")

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                timeout=self.timeout,
            )
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error to {url}: {e}")
            raise BankConnectionError(f"Failed to connect to Billit at {self.base_url}: {e}") from e
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout for {url}: {e}")
            raise BankConnectionError(f"Request to Billit timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error for {url}: {e}")
            raise UpstreamFetchError(f"Request failed: {e}") from e

        logger.debug(f"Response status: {response.status_code}")

        if not response.ok:
            error_body = response.text
            message = response.reason
            try:
                error_json = response.json()
                if isinstance(error_json, dict):
                    message = error_json.get("Message") or error_json.get("message") or message
            except ValueError:
                pass

            logger.error(f"API Error {response.status_code}: {message}")
            logger.debug(f"Full response body: {error_body}")

            raise BankAPIError(
                status_code=response.status_code,
                message=str(message),
                response_body=error_body,
            )

        return response

    def test_connection(self) -> bool:
        """Test connection to the Billit API."""
        try:
            self._request("GET", self.TRANSACTIONS_ENDPOINT, params={"$top": 1})
            return True
        except BankError:
            return False

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    @staticmethod
    def build_date_filter(
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> str:
        """
        Build the OData date filter.

        The upstream filter is date-only; fetch_by_period re-filters the rows.
        """
        clauses = []
        if start is not None:
            clauses.append(f"ValueDate ge DateTime'{_as_date(start):%Y-%m-%d}'")
        if end is not None:
            clauses.append(f"ValueDate le DateTime'{_as_date(end):%Y-%m-%d}'")
        return " and ".join(clauses)

    def _fetch_page(self, skip: int, filter_expr: str) -> list[dict]:
        """Fetch one page of raw rows, ordered by value date descending."""
        params: dict[str, Any] = {
            "$top": self.page_size,
            "$skip": skip,
            "$orderby": "ValueDate desc",
        }
        if filter_expr:
            params["$filter"] = filter_expr

        response = self._request("GET", self.TRANSACTIONS_ENDPOINT, params=params)
        try:
            data = response.json()
        except ValueError as e:
            raise BankAPIError(response.status_code, f"Invalid JSON in response: {e}") from e
        return _extract_items(data)

    def _learn(self, tx: BankTransaction) -> None:
        if self.learner is None or not tx.description:
            return
        try:
            self.learner.learn(tx.description)
        except Exception:
            logger.exception(f"Supplier learning failed for transaction {tx.id}")

    def _paginate(
        self,
        filter_expr: str,
        limit: int | None = None,
    ) -> tuple[list[BankTransaction], bool]:
        """
        Fetch every page until the upstream runs dry or the limit is reached.

        An error on any page stops the loop; rows fetched so far are kept.

        Returns:
            (transactions, complete) where complete is False if a page failed
        """
        transactions: list[BankTransaction] = []
        skip = 0
        page = 1
        complete = True

        while limit is None or len(transactions) < limit:
            try:
                rows = self._fetch_page(skip, filter_expr)
            except BankError as e:
                logger.error(
                    "Transaction fetch aborted at page %d, returning %d partial row(s): %s",
                    page,
                    len(transactions),
                    e,
                )
                complete = False
                break

            if not rows:
                break

            for row in rows:
                tx = BankTransaction.from_api(row)
                transactions.append(tx)
                self._learn(tx)

            logger.debug("Page %d: %d transaction(s)", page, len(rows))

            if len(rows) < self.page_size:
                break
            if limit is not None and len(transactions) >= limit:
                break

            skip += self.page_size
            page += 1
            if self.page_delay > 0:
                time.sleep(self.page_delay)

        if limit is not None:
            transactions = transactions[:limit]

        self.last_fetch_complete = complete
        logger.info("%d transaction(s) fetched over %d page(s)", len(transactions), page)
        return transactions, complete

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _cache_key(self, limit: int | None) -> str:
        if limit is None:
            return self.ALL_TRANSACTIONS_KEY
        return f"{self.ALL_TRANSACTIONS_KEY}:limit={limit}"

    def _fetch_unbounded(
        self, key: str, limit: int | None
    ) -> tuple[tuple[BankTransaction, ...], bool]:
        # A previous leader may have filled the cache since our miss
        if key in self.cache:
            cached = self.cache.get(key)
            if cached is not None:
                return cached, True

        transactions, complete = self._paginate("", limit)
        if complete:
            self.cache.set(key, transactions)
        else:
            logger.warning("Not caching truncated transaction list (%d rows)", len(transactions))
        return tuple(transactions), complete

    def fetch_with_status(
        self,
        limit: int | None = None,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> tuple[list[BankTransaction], bool]:
        """
        Same as fetch_all, but also return whether the fetch completed.

        Safe to call from several threads: the completeness flag belongs to
        this call, unlike last_fetch_complete.

        Returns:
            (transactions, complete) where complete is False if a page failed
        """
        if start is None and end is None:
            key = self._cache_key(limit)
            cached = self.cache.get(key)
            if cached is not None:
                logger.info("%d transaction(s) served from cache", len(cached))
                result, complete = list(cached), True
            else:
                shared, complete = self._inflight.run(
                    key, lambda: self._fetch_unbounded(key, limit)
                )
                result = list(shared)
        else:
            result, complete = self._paginate(self.build_date_filter(start, end), limit)

        self.last_fetch_complete = complete
        return result, complete

    def fetch_all(
        self,
        limit: int | None = None,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> list[BankTransaction]:
        """
        Fetch transactions, newest first.

        Without date bounds the result is served from (and stored in) the
        cache. With any bound the cache is bypassed.

        Upstream failures are logged, not raised: the result may be partial.
        last_fetch_complete reports it for single-threaded callers; threads
        should use fetch_with_status instead.

        Args:
            limit: Optional max results (None = all)
            start: Optional first value date (inclusive)
            end: Optional last value date (inclusive)

        Returns:
            List of BankTransaction
        """
        transactions, _ = self.fetch_with_status(limit, start, end)
        return transactions

    def fetch_by_period(
        self,
        start: date | datetime,
        end: date | datetime,
    ) -> list[BankTransaction]:
        """
        Fetch transactions whose value date falls in [start day, end day].

        Both days are inclusive: from 00:00:00.000 on the start day to
        23:59:59.999 on the end day. Rows with an unparseable date are dropped.
        """
        lower = datetime.combine(_as_date(start), datetime.min.time())
        upper = datetime.combine(_as_date(end), datetime.max.time()).replace(microsecond=999000)

        result = []
        for tx in self.fetch_all(start=start, end=end):
            value_date = tx.value_date
            if value_date is not None and lower <= value_date <= upper:
                result.append(tx)
        return result

    def _select(
        self,
        start: date | datetime | None,
        end: date | datetime | None,
    ) -> list[BankTransaction]:
        if start is not None and end is not None:
            return self.fetch_by_period(start, end)
        if start is not None or end is not None:
            return self.fetch_all(start=start, end=end)
        return self.fetch_all()

    def get_credits(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> list[BankTransaction]:
        """Incoming transactions only."""
        return [tx for tx in self._select(start, end) if tx.type == CREDIT]

    def get_debits(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> list[BankTransaction]:
        """Outgoing transactions only."""
        return [tx for tx in self._select(start, end) if tx.type == DEBIT]

    def search_by_description(
        self,
        term: str,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> list[BankTransaction]:
        """
        Find transactions for a supplier, using its aliases and patterns.

        Raises:
            BankError: If the client was built without a resolver
        """
        if self.resolver is None:
            raise BankError("search_by_description requires a SupplierResolver")
        return [tx for tx in self._select(start, end) if self.resolver.matches(tx.description, term)]

    def get_stats(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> TransactionStats:
        """Credit/debit totals for a period (or for all cached transactions)."""
        return TransactionStats.from_transactions(self._select(start, end))

    @staticmethod
    def month_bounds(today: date | None = None) -> tuple[date, date]:
        """First and last day of the month containing ``today``."""
        today = today or date.today()
        first = today.replace(day=1)
        next_month = (first + timedelta(days=32)).replace(day=1)
        return first, next_month - timedelta(days=1)

    def get_monthly_transactions(self, today: date | None = None) -> list[BankTransaction]:
        """Transactions of the current month."""
        return self.fetch_by_period(*self.month_bounds(today))

    def get_monthly_stats(self, today: date | None = None) -> TransactionStats:
        """Stats of the current month."""
        return self.get_stats(*self.month_bounds(today))

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        """Flush cached transactions (forces the next fetch upstream)."""
        self.cache.clear()

    def cache_stats(self) -> dict:
        return self.cache.stats().to_dict()
