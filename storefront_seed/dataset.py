"""In-memory container for one generated run."""

from dataclasses import dataclass, replace

import numpy as np
import pandas as pd

from storefront_seed.plan import Plan

# Insert order respects foreign keys (parents first)
LOAD_ORDER: list[str] = [
    "category",
    "customer",
    "product",
    "order_header",
    "order_line",
]


@dataclass(frozen=True)
class Dataset:
    """The five generated tables plus the plan that sized them."""

    plan: Plan
    category: pd.DataFrame
    customer: pd.DataFrame
    product: pd.DataFrame
    order_header: pd.DataFrame
    order_line: pd.DataFrame

    def tables(self) -> dict[str, pd.DataFrame]:
        return {name: getattr(self, name) for name in LOAD_ORDER}

    def row_counts(self) -> dict[str, int]:
        return {name: len(df) for name, df in self.tables().items()}

    def with_order_header(self, order_header: pd.DataFrame) -> "Dataset":
        return replace(self, order_header=order_header)


def to_cents(amounts: pd.Series) -> np.ndarray:
    return np.rint(amounts.to_numpy(dtype=np.float64) * 100).astype(np.int64)


def compute_order_totals(order_line: pd.DataFrame) -> pd.Series:
    """Sum of quantity * unit_price per order_id, computed in cents."""
    line_cents = to_cents(order_line["unit_price"]) * order_line["quantity"].to_numpy()
    cents = pd.Series(line_cents, index=order_line["order_id"].to_numpy()).groupby(level=0).sum()
    return cents / 100
