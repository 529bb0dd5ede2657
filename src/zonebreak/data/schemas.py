"""Price bar schema shared by providers, stores and the analysis engine."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, ClassVar, Iterable, Mapping, Sequence

import pandas as pd
from pydantic import BaseModel, Field, field_validator

PRICE_BAR_COLUMNS: tuple[str, ...] = (
    "date",
    "open",
    "high",
    "low",
    "close",
    "volume",
)


class PriceBar(BaseModel):
    """Canonical daily bar. Immutable once fetched."""

    date: dt.date = Field(..., description="Trading session date.")
    open: float = Field(..., ge=0)
    high: float = Field(..., ge=0)
    low: float = Field(..., ge=0)
    close: float = Field(..., ge=0)
    volume: int = Field(0, ge=0)

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "str_strip_whitespace": True,
    }

    @field_validator("date", mode="before")
    @classmethod
    def _strip_time_component(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, pd.Timestamp):
            return value.date()
        if isinstance(value, str) and len(value) > 10 and value[10] in {"T", " "}:
            return value[:10]
        return value

    @field_validator("volume", mode="before")
    @classmethod
    def _coerce_volume(cls, value: Any) -> Any:
        if value is None:
            return 0
        if hasattr(value, "item"):
            value = value.item()
        if isinstance(value, float):
            return int(round(value))
        return value

    def to_row(self) -> dict[str, float | int | date]:
        """Return the bar as a dictionary matching :data:`PRICE_BAR_COLUMNS`."""

        return {
            "date": self.date,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }

    def to_payload(self) -> dict[str, float | int | str]:
        """Wire representation with an ISO formatted date."""

        row = self.to_row()
        row["date"] = self.date.isoformat()
        return row


def parse_price_payload(payload: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None) -> list[PriceBar]:
    """Validate a ``{"prices": [...]}`` payload (or a bare list) into bars.

    The result keeps the payload order; use :func:`normalize_price_bars` to
    obtain the ascending series the engine expects.
    """

    if payload is None:
        return []
    if isinstance(payload, Mapping):
        items = payload.get("prices") or []
    else:
        items = payload
    return [PriceBar.model_validate(item) for item in items]


def normalize_price_bars(bars: Iterable[PriceBar]) -> list[PriceBar]:
    """Return bars ordered oldest first regardless of the input order."""

    ordered = list(bars)
    if len(ordered) < 2:
        return ordered
    if ordered[0].date > ordered[-1].date:
        ordered.reverse()
    if any(prev.date > curr.date for prev, curr in zip(ordered, ordered[1:])):
        ordered.sort(key=lambda bar: bar.date)
    return ordered


@dataclass(slots=True)
class PriceBarFrame:
    """Helper to construct validated :class:`pandas.DataFrame` objects for bar data."""

    columns: ClassVar[tuple[str, ...]] = PRICE_BAR_COLUMNS

    @classmethod
    def from_bars(cls, bars: Iterable[PriceBar]) -> pd.DataFrame:
        """Convert an iterable of bars to an ascending DataFrame."""

        df = pd.DataFrame([bar.to_row() for bar in bars], columns=cls.columns)
        if df.empty:
            return df
        df.sort_values("date", inplace=True)
        df.reset_index(drop=True, inplace=True)
        return df

    @classmethod
    def to_bars(cls, df: pd.DataFrame) -> list[PriceBar]:
        """Convert a DataFrame with the bar schema back into bars."""

        validated = cls.ensure_schema(df)
        return [PriceBar.model_validate(row) for row in validated.to_dict(orient="records")]

    @classmethod
    def ensure_schema(cls, df: pd.DataFrame) -> pd.DataFrame:
        """Ensure the DataFrame contains the expected columns in correct order."""

        missing = set(cls.columns) - set(df.columns)
        if missing:
            raise ValueError(
                f"DataFrame missing required columns: {sorted(missing)}")
        return df.loc[:, cls.columns].copy()
