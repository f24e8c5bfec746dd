"""
TCMB reference rates.

The central bank publishes one XML document per business day at
``{base}/{YYYYMM}/{DDMMYYYY}.xml``. Exchange rates and gold quotes are both
read from its ``Currency`` nodes; gold is whichever codes are listed in
GOLD_CODES. Fetched days are persisted so that later failures and
historical queries can be answered from the database.
"""

import json
import time
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytz

from resmihaber.core.config import Settings
from resmihaber.core.exceptions import DataUnavailable, IngestionError, ParseError
from resmihaber.database.repository import IngestionStore
from resmihaber.models import FinancialObservation, ObservationType
from resmihaber.scrapers.base import XML_ACCEPT, FetchConfig, HttpFetcher
from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)

QUOTE_FIELDS = {
    "forex_buying": "ForexBuying",
    "forex_selling": "ForexSelling",
    "banknote_buying": "BanknoteBuying",
    "banknote_selling": "BanknoteSelling",
    "cross_rate_usd": "CrossRateUSD",
    "cross_rate_other": "CrossRateOther",
}


@dataclass
class ExchangeRate:
    """One Currency node of the daily TCMB document."""
    code: str
    name: str
    date: date
    unit: int = 1
    forex_buying: Optional[float] = None
    forex_selling: Optional[float] = None
    banknote_buying: Optional[float] = None
    banknote_selling: Optional[float] = None
    cross_rate_usd: Optional[float] = None
    cross_rate_other: Optional[float] = None

    @property
    def value(self) -> Optional[float]:
        """Headline value stored on the observation row."""
        for candidate in (self.forex_buying, self.forex_selling, self.banknote_buying, self.banknote_selling):
            if candidate is not None:
                return candidate
        return None

    def quote(self) -> Dict[str, Any]:
        return {key: getattr(self, key) for key in QUOTE_FIELDS}

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data

    @classmethod
    def from_observation(cls, row: FinancialObservation) -> "ExchangeRate":
        details = json.loads(row.details) if row.details else {}
        rate = cls(code=row.code, name=row.name or row.code, date=row.date, unit=details.get("unit", 1))
        for key in QUOTE_FIELDS:
            setattr(rate, key, details.get(key))
        if rate.value is None:
            rate.forex_buying = row.value
        return rate


@dataclass
class GoldPrice:
    code: str
    name: str
    price: float
    date: date
    currency: str = "TRY"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "price": self.price,
            "currency": self.currency,
            "date": self.date.isoformat(),
        }

    @classmethod
    def from_rate(cls, rate: ExchangeRate) -> "GoldPrice":
        return cls(code=rate.code, name=rate.name, price=rate.value, date=rate.date)


def parse_decimal(text: Optional[str]) -> Optional[float]:
    """TCMB numbers; empty elements are None and decimal commas are accepted."""
    if text is None:
        return None
    text = text.strip().replace(",", ".")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def parse_rates_xml(raw: bytes, day: date) -> List[ExchangeRate]:
    """
    Parse a TCMB ``Tarih_Date`` document.

    Raises:
        ParseError: malformed XML or no usable Currency nodes
    """
    try:
        root = ET.fromstring(raw)
    except ET.ParseError as e:
        raise ParseError(f"Malformed TCMB XML: {e}")

    rates = []
    for node in root.iter("Currency"):
        code = (node.get("Kod") or node.get("CurrencyCode") or "").strip().upper()
        if not code:
            continue
        name = (node.findtext("Isim") or node.findtext("CurrencyName") or code).strip()
        unit = parse_decimal(node.findtext("Unit"))
        rate = ExchangeRate(code=code, name=name, date=day, unit=int(unit) if unit else 1)
        for key, tag in QUOTE_FIELDS.items():
            setattr(rate, key, parse_decimal(node.findtext(tag)))
        if rate.value is None and rate.cross_rate_usd is None:
            continue
        rates.append(rate)

    if not rates:
        raise ParseError("TCMB XML contains no Currency rates")
    return rates


class FinancialDataFetcher:
    """
    Daily TCMB exchange rates and gold prices with a short in-process cache.

    Within FINANCIAL_CACHE_SECONDS of a successful fetch a date is answered
    from the database instead of the network. When the network fails the
    persisted rows for the date are returned; with none stored the call
    raises DataUnavailable. Values are never synthesized.
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: HttpFetcher,
        store: IngestionStore,
        clock: Callable[[], float] = time.monotonic,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.fetcher = fetcher
        self.store = store
        self.clock = clock
        self.tz = pytz.timezone(settings.FINANCIAL_TIMEZONE)
        self.now = now or (lambda: datetime.now(self.tz))
        self.gold_codes = set(settings.gold_codes_list)
        self.config = FetchConfig.from_settings(settings, timeout=settings.FINANCIAL_TIMEOUT, accept=XML_ACCEPT)
        # date -> (monotonic fetch time, parsed rates)
        self._cache: Dict[date, Tuple[float, List[ExchangeRate]]] = {}

    def today(self) -> date:
        """Current calendar date in Istanbul."""
        current = self.now()
        if current.tzinfo is not None:
            current = current.astimezone(self.tz)
        return current.date()

    def rates_url(self, day: date) -> str:
        return f"{self.settings.TCMB_BASE_URL.rstrip('/')}/{day:%Y%m}/{day:%d%m%Y}.xml"

    def _is_fresh(self, day: date) -> bool:
        entry = self._cache.get(day)
        return entry is not None and self.clock() - entry[0] < self.settings.FINANCIAL_CACHE_SECONDS

    def _obs_type(self, code: str) -> str:
        return ObservationType.GOLD_PRICE if code in self.gold_codes else ObservationType.EXCHANGE_RATE

    def _persisted(self, obs_type: str, day: date) -> List[ExchangeRate]:
        return [ExchangeRate.from_observation(row) for row in self.store.observations_for_date(obs_type, day)]

    def _save(self, rates: List[ExchangeRate], day: date) -> None:
        for rate in rates:
            if rate.value is None:
                continue
            details = rate.quote()
            details["unit"] = rate.unit
            self.store.upsert_observation(
                self._obs_type(rate.code),
                rate.code,
                day,
                value=rate.value,
                unit="TRY",
                name=rate.name,
                details=details,
            )

    async def _fetch_day(self, day: date) -> List[ExchangeRate]:
        url = self.rates_url(day)
        logger.info("Fetching exchange rates from TCMB", url=url)
        result = await self.fetcher.fetch_with_retry(url, self.config)
        if not result.success:
            raise result.error_kind_exception()

        rates = parse_rates_xml(result.content, day)
        self._save(rates, day)
        self._cache[day] = (self.clock(), rates)
        logger.info("Exchange rates fetched and saved", date=day.isoformat(), currencies=len(rates))
        return rates

    async def _observations(self, obs_type: str, day: Optional[date]) -> List[ExchangeRate]:
        day = day or self.today()
        wanted = (lambda rate: self._obs_type(rate.code) == obs_type)

        if self._is_fresh(day):
            persisted = self._persisted(obs_type, day)
            if persisted:
                logger.debug("Financial data served from cache", type=obs_type, date=day.isoformat())
                return persisted
            rates = [rate for rate in self._cache[day][1] if wanted(rate)]
            if rates:
                return rates
            raise DataUnavailable(f"No {obs_type} data available for {day.isoformat()}", details={'date': day.isoformat()})

        try:
            rates = [rate for rate in await self._fetch_day(day) if wanted(rate)]
        except IngestionError as e:
            logger.error("TCMB fetch failed", type=obs_type, date=day.isoformat(), error=e.message)
            persisted = self._persisted(obs_type, day)
            if persisted:
                logger.warning("Returning stored financial data due to fetch error", type=obs_type, date=day.isoformat())
                return persisted
            raise DataUnavailable(
                f"No {obs_type} data available for {day.isoformat()}",
                details={'date': day.isoformat(), 'error': e.message},
            )

        if not rates:
            persisted = self._persisted(obs_type, day)
            if persisted:
                return persisted
            raise DataUnavailable(f"No {obs_type} data available for {day.isoformat()}", details={'date': day.isoformat()})
        return rates

    async def get_exchange_rates(self, day: Optional[date] = None) -> List[ExchangeRate]:
        """Exchange rates for a date (default: today in Istanbul)."""
        return await self._observations(ObservationType.EXCHANGE_RATE, day)

    async def get_gold_prices(self, day: Optional[date] = None) -> List[GoldPrice]:
        """Gold quotes from the same daily document."""
        rates = await self._observations(ObservationType.GOLD_PRICE, day)
        return [GoldPrice.from_rate(rate) for rate in rates if rate.value is not None]

    def get_historical_rates(self, code: str, days: int = 30) -> List[ExchangeRate]:
        """Stored observations for one code over the last ``days`` days, oldest first."""
        code = code.strip().upper()
        end = self.today()
        start = end - timedelta(days=days)
        rows = self.store.observation_range(self._obs_type(code), code, start, end)
        return [ExchangeRate.from_observation(row) for row in rows]

    async def get_latest_snapshot(self) -> Dict[str, Any]:
        """Today's rates and gold prices; either part is empty when unavailable."""
        try:
            rates = [rate.as_dict() for rate in await self.get_exchange_rates()]
        except DataUnavailable as e:
            logger.warning("Exchange rates unavailable for snapshot", error=e.message)
            rates = []
        try:
            gold = [price.as_dict() for price in await self.get_gold_prices()]
        except DataUnavailable as e:
            logger.warning("Gold prices unavailable for snapshot", error=e.message)
            gold = []
        return {
            "exchange_rates": rates,
            "gold_prices": gold,
            "timestamp": self.now().isoformat(),
        }

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Financial cache cleared")
