"""Storefront Data Generation Script

Builds a randomized e-commerce dataset (categories, customers, products,
order headers, order lines) with long-tail skew, controlled nulls and
intentionally unreferenced rows, then writes one CSV per table.
Uses NumPy for all numeric/categorical generation, Faker for phone numbers.

Usage: storefront-generate  (or python -m storefront_seed.generate_data)
"""

import os
import shutil
import sys
from pathlib import Path

import numpy as np
import pandas as pd
from faker import Faker
from tqdm import tqdm

from storefront_seed.config import get_output_dir, get_seed, get_size_bounds
from storefront_seed.dataset import LOAD_ORDER, Dataset, compute_order_totals
from storefront_seed.plan import BoundsError, Plan, SizeBounds, plan_sizes
from storefront_seed.validate_data import check_dataset, print_check_results

# ============================================================
# Constants
# ============================================================

CHUNK_SIZE = 100_000
TOTAL_STAGES = 7

PHONE_PRESENT_PCT = 0.70
DESCRIPTION_PRESENT_PCT = 0.80
PHONE_FORMAT = "(11) 9########"

SIGNUP_WINDOW_DAYS = 730
ORDER_WINDOW_DAYS = 500

# Prices in cents: 9.99 .. 1999.98
PRICE_MIN_CENTS = 999
PRICE_MAX_CENTS = 199_998
STOCK_MAX = 500

# (cumulative upper threshold, value); draws past the last threshold
# fall into the uniform tail
LINE_COUNT_BUCKETS: list[tuple[float, int]] = [
    (0.45, 1),
    (0.75, 2),
    (0.88, 3),
    (0.95, 4),
    (0.99, 5),
]
LINE_COUNT_TAIL = (6, 10)

QUANTITY_BUCKETS: list[tuple[float, int]] = [
    (0.80, 1),
    (0.95, 2),
    (0.99, 3),
]
QUANTITY_TAIL = (4, 5)

# ============================================================
# Helper Functions
# ============================================================


def stage(index: int, message: str) -> None:
    """Print a stage-boundary notice."""
    print(f"\n[{index}/{TOTAL_STAGES}] {message}")


def power_law_ids(rng: np.random.Generator, domain_size: int, size: int) -> np.ndarray:
    """Draw ids in [1, domain_size] skewed toward 1.

    The product of two uniforms piles up near zero, so low ids come out far
    more often than high ones. Every draw is accepted as-is.
    """
    if domain_size < 1:
        raise ValueError(f"domain_size must be >= 1, got {domain_size}")
    u = rng.random(size) * rng.random(size)
    return np.floor(u * domain_size).astype(np.int64) + 1


def sample_buckets(
    rng: np.random.Generator,
    size: int,
    buckets: list[tuple[float, int]],
    tail: tuple[int, int],
) -> np.ndarray:
    """Cumulative bucket test against one uniform draw per sample.

    A draw below buckets[i][0] (and not below an earlier threshold) yields
    buckets[i][1]; anything above the last threshold gets a uniform integer
    from the inclusive tail range.
    """
    thresholds = np.array([t for t, _ in buckets], dtype=np.float64)
    values = np.array([v for _, v in buckets], dtype=np.int64)

    u = rng.random(size)
    idx = np.searchsorted(thresholds, u, side="right")
    in_table = idx < len(values)

    out = np.empty(size, dtype=np.int64)
    out[in_table] = values[idx[in_table]]
    n_tail = int((~in_table).sum())
    out[~in_table] = rng.integers(tail[0], tail[1] + 1, size=n_tail)
    return out


def sample_line_counts(rng: np.random.Generator, n_orders: int) -> np.ndarray:
    return sample_buckets(rng, n_orders, LINE_COUNT_BUCKETS, LINE_COUNT_TAIL)


def sample_quantities(rng: np.random.Generator, n_lines: int) -> np.ndarray:
    return sample_buckets(rng, n_lines, QUANTITY_BUCKETS, QUANTITY_TAIL)


def with_nulls(rng: np.random.Generator, values: list, present_pct: float) -> np.ndarray:
    """Keep each value with probability present_pct, else None (independent per row)."""
    out = np.array(values, dtype=object)
    out[rng.random(len(out)) >= present_pct] = None
    return out


def random_past_timestamps(
    rng: np.random.Generator, now: pd.Timestamp, n: int, max_days: int
) -> pd.DatetimeIndex:
    """now minus a uniform offset of up to max_days, at second resolution."""
    offsets = pd.to_timedelta(rng.random(n) * max_days, unit="D")
    return (now - offsets).floor("s")


def write_csv(df: pd.DataFrame, filepath: Path, mode: str = "w", header: bool = True) -> None:
    """Write DataFrame to CSV with LF line endings."""
    with open(filepath, mode, encoding="utf-8", newline="") as f:
        df.to_csv(f, index=False, header=header, lineterminator="\n")


# ============================================================
# Generator: categories
# ============================================================


def generate_categories(plan: Plan) -> pd.DataFrame:
    """Ordinary categories 1..C plus the empty category at C+1."""
    ids = np.arange(1, plan.categories + 1)
    df = pd.DataFrame({
        "id": ids,
        "name": [f"Category {i}" for i in ids],
        "description": [f"Detailed description of Category {i}" for i in ids],
    })
    empty = pd.DataFrame({
        "id": [plan.empty_category_id],
        "name": ["Empty Category"],
        "description": ["This category has no products associated with it."],
    })
    return pd.concat([df, empty], ignore_index=True)


# ============================================================
# Generator: customers
# ============================================================


def generate_customers(plan: Plan, rng: np.random.Generator, now: pd.Timestamp) -> pd.DataFrame:
    """Customers 1..N with ~30% null phones and signups over the last two years."""
    n = plan.customers
    ids = np.arange(1, n + 1)

    fake = Faker()
    fake.seed_instance(int(rng.integers(0, 2**32)))

    has_phone = rng.random(n) < PHONE_PRESENT_PCT
    phones = np.full(n, None, dtype=object)
    phones[has_phone] = [
        fake.numerify(PHONE_FORMAT)
        for _ in tqdm(range(int(has_phone.sum())), desc="  Phones", leave=False)
    ]

    return pd.DataFrame({
        "id": ids,
        "name": [f"Customer {i}" for i in ids],
        "email": [f"customer.{i}@example.com" for i in ids],
        "phone": phones,
        "signup_date": random_past_timestamps(rng, now, n, SIGNUP_WINDOW_DAYS),
        "is_deleted": np.zeros(n, dtype=bool),
    })


# ============================================================
# Generator: products
# ============================================================


def generate_products(plan: Plan, rng: np.random.Generator, now: pd.Timestamp) -> pd.DataFrame:
    """Products 1..P, categorised only into the non-empty categories."""
    n = plan.products
    ids = np.arange(1, n + 1)

    descriptions = with_nulls(
        rng,
        [f"Long detailed description of Product {i}" for i in ids],
        DESCRIPTION_PRESENT_PCT,
    )
    price_cents = rng.integers(PRICE_MIN_CENTS, PRICE_MAX_CENTS + 1, size=n)
    stock = rng.integers(0, STOCK_MAX + 1, size=n)
    # Upper bound is C, never the empty category C+1
    category_ids = rng.integers(1, plan.categories + 1, size=n)

    return pd.DataFrame({
        "id": ids,
        "name": [f"Product {i}" for i in ids],
        "description": descriptions,
        "price": price_cents / 100,
        "stock_quantity": stock,
        "category_id": category_ids,
        "last_modified_date": now.floor("s"),
    })


# ============================================================
# Generator: order headers
# ============================================================


def generate_order_headers(plan: Plan, rng: np.random.Generator, now: pd.Timestamp) -> pd.DataFrame:
    """Order headers with skewed customer choice; totals start at zero."""
    n = plan.orders
    # Domain stops at N-1: the last customer never orders
    customer_ids = power_law_ids(rng, plan.orderless_customer_id - 1, n)
    order_dates = random_past_timestamps(rng, now, n, ORDER_WINDOW_DAYS).floor("D")

    return pd.DataFrame({
        "id": np.arange(1, n + 1),
        "customer_id": customer_ids,
        "order_date": order_dates,
        "total_amount": np.zeros(n, dtype=np.float64),
    })


# ============================================================
# Generator: order lines
# ============================================================


def generate_order_lines(
    plan: Plan,
    rng: np.random.Generator,
    order_header: pd.DataFrame,
    product: pd.DataFrame,
) -> pd.DataFrame:
    """Lines for every header: bucketed line count, bucketed quantity, skewed product.

    Line ids run 1..L across all orders in generation order. The same product
    may appear on several lines of one order.
    """
    order_ids = order_header["id"].to_numpy()
    counts = sample_line_counts(rng, len(order_ids))
    line_order_ids = np.repeat(order_ids, counts)
    n_lines = len(line_order_ids)

    quantities = sample_quantities(rng, n_lines)
    product_ids = power_law_ids(rng, plan.sellable_products, n_lines)

    # Snapshot of the price at generation time (ids are dense from 1)
    unit_prices = product["price"].to_numpy()[product_ids - 1]

    return pd.DataFrame({
        "id": np.arange(1, n_lines + 1, dtype=np.int64),
        "order_id": line_order_ids,
        "product_id": product_ids,
        "quantity": quantities,
        "unit_price": unit_prices,
    })


# ============================================================
# Pass 2: reconcile order totals
# ============================================================


def reconcile_totals(dataset: Dataset) -> Dataset:
    """Write every header's total from its lines; headers without lines keep 0."""
    totals = compute_order_totals(dataset.order_line)
    headers = dataset.order_header.copy()
    mapped = headers["id"].map(totals)
    headers["total_amount"] = mapped.fillna(headers["total_amount"]).round(2)
    return dataset.with_order_header(headers)


# ============================================================
# Pipeline
# ============================================================


def generate_dataset(
    plan: Plan, rng: np.random.Generator, now: pd.Timestamp | None = None
) -> Dataset:
    """Stages 2-6, leaves first. Order totals are still zero on return."""
    if now is None:
        now = pd.Timestamp.now(tz="UTC")

    stage(2, f"Generating categories ({plan.categories:,} + 1 empty)...")
    category = generate_categories(plan)

    stage(3, f"Generating customers ({plan.customers:,} rows)...")
    customer = generate_customers(plan, rng, now)

    stage(4, f"Generating products ({plan.products:,} rows)...")
    product = generate_products(plan, rng, now)

    stage(5, f"Generating order headers ({plan.orders:,} rows)...")
    order_header = generate_order_headers(plan, rng, now)

    stage(6, "Generating order lines (bucketed counts and quantities)...")
    order_line = generate_order_lines(plan, rng, order_header, product)
    print(f"  Done: {len(order_line):,} lines")

    return Dataset(
        plan=plan,
        category=category,
        customer=customer,
        product=product,
        order_header=order_header,
        order_line=order_line,
    )


def plan_run(bounds: SizeBounds, rng: np.random.Generator) -> Plan:
    """Stage 1: resolve sizes and announce them."""
    stage(1, "Planning dataset sizes...")
    plan = plan_sizes(bounds, rng)
    for line in plan.describe():
        print(f"  {line}")
    return plan


def write_dataset_csv(dataset: Dataset, target_dir: Path) -> dict[str, Path]:
    """Write every table into a staging directory, then swap it in for target_dir.

    The previous target_dir is set aside and only removed once the new one is
    in place, so a failure at any point leaves the old export whole.
    """
    staging = target_dir.with_name(f"{target_dir.name}.staging")
    previous = target_dir.with_name(f"{target_dir.name}.previous")
    for leftover in (staging, previous):
        if leftover.exists():
            shutil.rmtree(leftover)
    staging.mkdir(parents=True)

    try:
        for name, df in dataset.tables().items():
            filepath = staging / f"{name}.csv"
            total = len(df)
            for start in tqdm(range(0, max(total, 1), CHUNK_SIZE), desc=f"  {name}", leave=False):
                chunk = df.iloc[start:start + CHUNK_SIZE]
                write_csv(chunk, filepath, mode="a" if start > 0 else "w", header=(start == 0))
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    had_target = target_dir.exists()
    if had_target:
        os.replace(target_dir, previous)
    try:
        os.replace(staging, target_dir)
    except BaseException:
        if had_target:
            os.replace(previous, target_dir)
        shutil.rmtree(staging, ignore_errors=True)
        raise
    if had_target:
        shutil.rmtree(previous)

    return {name: target_dir / f"{name}.csv" for name in LOAD_ORDER}


# ============================================================
# Summary
# ============================================================


def print_summary(plan: Plan, row_counts: dict[str, int]) -> None:
    """Rows per table next to what the plan reserved, plus basket size."""
    notes = {
        "category": f"id {plan.empty_category_id} empty",
        "customer": f"id {plan.orderless_customer_id} never orders",
        "product": f"ids {plan.sellable_products + 1}-{plan.products} unsold",
        "order_header": "totals reconciled",
    }
    orders = row_counts.get("order_header", 0)
    if orders:
        notes["order_line"] = f"{row_counts.get('order_line', 0) / orders:.2f} lines/order"

    print("\n" + "=" * 62)
    print("DATASET SUMMARY")
    print("-" * 62)
    for table, count in row_counts.items():
        print(f"  {table:<14} {count:>11,}   {notes.get(table, '')}")
    print("-" * 62)
    print(f"  {'all tables':<14} {sum(row_counts.values()):>11,}")
    print("=" * 62)


# ============================================================
# Main
# ============================================================


def main() -> None:
    """Run full generation: plan, generate, reconcile, export CSVs."""
    try:
        bounds = get_size_bounds()
        seed = get_seed()
    except BoundsError as e:
        print(f"Invalid generator configuration: {e}")
        sys.exit(1)

    output_dir = get_output_dir()
    print("=" * 50)
    print("Storefront Data Generation")
    print(f"Seed: {seed if seed is not None else 'random'}")
    print(f"Output: {output_dir}")
    print("=" * 50)

    rng = np.random.default_rng(seed)
    plan = plan_run(bounds, rng)
    dataset = generate_dataset(plan, rng)

    stage(7, "Reconciling order totals...")
    dataset = reconcile_totals(dataset)

    print("\nWriting CSVs...")
    write_dataset_csv(dataset, output_dir)

    print_summary(plan, dataset.row_counts())
    print_check_results(check_dataset(dataset))
    print("\nData generation complete.")


if __name__ == "__main__":
    main()
