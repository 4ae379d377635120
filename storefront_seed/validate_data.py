"""Data validation: checks the generated dataset's invariants and prints a PASS/FAIL summary.

Runs as SQL against PostgreSQL (storefront-validate) or in memory against a
freshly generated Dataset (used by storefront-generate and the tests).
"""

import sys

import psycopg2
from psycopg2 import sql

from storefront_seed.config import get_connection, get_schema_name, get_size_bounds
from storefront_seed.dataset import Dataset, compute_order_totals
from storefront_seed.plan import BoundsError, SizeBounds

CheckResult = tuple[str, float, float, float, bool]

# Allowed drift for the sampled shares, in percentage points
QUANTITY_ONE_PCT = (77.0, 83.0)
PHONE_NULL_PCT = (25.0, 35.0)
DESCRIPTION_NULL_PCT = (15.0, 25.0)

# ── SQL checks ──────────────────────────────────────────────
# Each tuple: (display_name, sql_returning_one_numeric, min, max)
# %(dead)s is the smallest configured dead-stock size.
QUALITY_CHECKS: list[tuple[str, str, float, float]] = [
    (
        "Order-less customer is the last id",
        """SELECT COUNT(*) FROM customer c
           WHERE c.id = (SELECT MAX(id) FROM customer)
             AND NOT EXISTS (SELECT 1 FROM order_header oh
                             WHERE oh.customer_id = c.id)""",
        1, 1,
    ),
    (
        "Categories without products",
        """SELECT COUNT(*) FROM category cat
           WHERE NOT EXISTS (SELECT 1 FROM product p
                             WHERE p.category_id = cat.id)""",
        1, 1,
    ),
    (
        "Empty category is the last id",
        """SELECT COUNT(*) FROM category cat
           WHERE cat.id = (SELECT MAX(id) FROM category)
             AND NOT EXISTS (SELECT 1 FROM product p
                             WHERE p.category_id = cat.id)""",
        1, 1,
    ),
    (
        "Dead-stock products sold",
        """SELECT COUNT(*) FROM order_line
           WHERE product_id > (SELECT MAX(id) FROM product) - %(dead)s - 1""",
        0, 0,
    ),
    (
        "Orders without lines",
        """SELECT COUNT(*) FROM order_header oh
           WHERE NOT EXISTS (SELECT 1 FROM order_line ol
                             WHERE ol.order_id = oh.id)""",
        0, 0,
    ),
    (
        "Order totals not reconciled",
        """WITH t AS (
               SELECT order_id, SUM(quantity * unit_price) AS total
               FROM order_line
               GROUP BY order_id)
           SELECT COUNT(*) FROM order_header oh
           LEFT JOIN t ON t.order_id = oh.id
           WHERE oh.total_amount <> COALESCE(t.total, 0)""",
        0, 0,
    ),
    (
        "Quantity = 1 share (%)",
        """SELECT ROUND(100.0
                * COUNT(*) FILTER (WHERE quantity = 1)
                / NULLIF(COUNT(*), 0), 2)
           FROM order_line""",
        *QUANTITY_ONE_PCT,
    ),
    (
        "Null phone (%)",
        """SELECT ROUND(100.0
                * COUNT(*) FILTER (WHERE phone IS NULL)
                / NULLIF(COUNT(*), 0), 2)
           FROM customer""",
        *PHONE_NULL_PCT,
    ),
    (
        "Null description (%)",
        """SELECT ROUND(100.0
                * COUNT(*) FILTER (WHERE description IS NULL)
                / NULLIF(COUNT(*), 0), 2)
           FROM product""",
        *DESCRIPTION_NULL_PCT,
    ),
]


def _result(name: str, value: float, lo: float, hi: float) -> CheckResult:
    return (name, float(value), lo, hi, lo <= value <= hi)


def _pct(mask) -> float:
    return round(100.0 * float(mask.mean()), 2) if len(mask) else 0.0


# ── In-memory checks ────────────────────────────────────────

def check_dataset(dataset: Dataset) -> list[CheckResult]:
    """Evaluate the dataset invariants on the in-memory frames."""
    plan = dataset.plan
    customers = dataset.customer
    categories = dataset.category
    products = dataset.product
    headers = dataset.order_header
    lines = dataset.order_line

    ordering = customers["id"].isin(headers["customer_id"])
    stocked = categories["id"].isin(products["category_id"])

    totals = headers["id"].map(compute_order_totals(lines)).fillna(0.0)
    mismatched = ((headers["total_amount"] - totals).abs() > 0.005).sum()

    bad_customers = (
        (headers["customer_id"] < 1)
        | (headers["customer_id"] > plan.orderless_customer_id - 1)
    ).sum()
    bad_products = (
        (lines["product_id"] < 1) | (lines["product_id"] > plan.sellable_products)
    ).sum()

    return [
        _result(
            "Order-less customer is the last id",
            int(not ordering.iloc[-1] and customers["id"].iloc[-1] == plan.orderless_customer_id),
            1, 1,
        ),
        _result("Categories without products", (~stocked).sum(), 1, 1),
        _result(
            "Empty category is the last id",
            int(not stocked.iloc[-1] and categories["id"].iloc[-1] == plan.empty_category_id),
            1, 1,
        ),
        _result("Customer ids outside orderable range", bad_customers, 0, 0),
        _result("Product ids outside sellable range", bad_products, 0, 0),
        _result("Orders without lines", (~headers["id"].isin(lines["order_id"])).sum(), 0, 0),
        _result("Order totals not reconciled", mismatched, 0, 0),
        _result("Quantity = 1 share (%)", _pct(lines["quantity"] == 1), *QUANTITY_ONE_PCT),
        _result("Null phone (%)", _pct(customers["phone"].isna()), *PHONE_NULL_PCT),
        _result("Null description (%)", _pct(products["description"].isna()), *DESCRIPTION_NULL_PCT),
    ]


# ── SQL helpers ─────────────────────────────────────────────

def check_row_counts(
    conn: psycopg2.extensions.connection, bounds: SizeBounds
) -> list[tuple[str, int, int, int]]:
    """Return (table, actual, min, max) using the configured size bounds."""
    expected = {
        "category": (bounds.categories[0] + 1, bounds.categories[1] + 1),
        "customer": bounds.customers,
        "product": bounds.products,
        "order_header": bounds.orders,
        # At least one and at most ten lines per order
        "order_line": (bounds.orders[0], bounds.orders[1] * 10),
    }
    results: list[tuple[str, int, int, int]] = []
    with conn.cursor() as cur:
        for table, (lo, hi) in expected.items():
            cur.execute(sql.SQL("SELECT COUNT(*) FROM {}").format(sql.Identifier(table)))
            actual: int = cur.fetchone()[0]
            results.append((table, actual, lo, hi))
    return results


def check_quality(conn: psycopg2.extensions.connection, dead_products: int) -> list[CheckResult]:
    """Return (name, actual, min_target, max_target, passed) per check."""
    results: list[CheckResult] = []
    with conn.cursor() as cur:
        for name, query, lo, hi in QUALITY_CHECKS:
            cur.execute(query, {"dead": dead_products})
            raw = cur.fetchone()[0]
            value = float(raw) if raw is not None else 0.0
            results.append(_result(name, value, lo, hi))
    return results


def print_check_results(results: list[CheckResult]) -> int:
    """Print the check table; returns the number of passed checks."""
    print("=" * 70)
    print("  DATA QUALITY CHECKS")
    print("=" * 70)
    print(f"  {'Check':<40} {'Actual':>8} {'Target':>12} {'':>6}")
    print("-" * 70)

    pass_count = 0
    for name, value, lo, hi, passed in results:
        status = "PASS" if passed else "FAIL"
        target_str = f"{lo:g}" if lo == hi else f"{lo:g}-{hi:g}"
        print(f"  {name:<40} {value:>8g} {target_str:>12}  [{status}]")
        pass_count += int(passed)

    print("-" * 70)
    total = len(results)
    if pass_count == total:
        print(f"  RESULT: ALL {total} CHECKS PASSED")
    else:
        print(f"  RESULT: {total - pass_count} of {total} CHECK(S) FAILED")
    print("=" * 70)
    return pass_count


# ── Main ─────────────────────────────────────────────────────

def main() -> None:
    try:
        bounds = get_size_bounds()
    except BoundsError as e:
        print(f"Invalid generator configuration: {e}")
        sys.exit(1)

    print("Connecting to PostgreSQL...")
    try:
        conn = get_connection()
    except psycopg2.OperationalError as e:
        print(f"\nConnection failed: {e}")
        print("Make sure PostgreSQL is running and .env is configured.")
        sys.exit(1)
    print("Connected.\n")

    try:
        with conn.cursor() as cur:
            cur.execute(sql.SQL("SET search_path TO {}").format(sql.Identifier(get_schema_name())))

        # ── 1. Row counts ────────────────────────────────────
        print("=" * 70)
        print("  ROW COUNTS")
        print("=" * 70)
        print(f"  {'Table':<22} {'Actual':>12} {'Allowed':>25}")
        print("-" * 70)
        for table, actual, lo, hi in check_row_counts(conn, bounds):
            flag = "" if lo <= actual <= hi else "  *"
            print(f"  {table:<22} {actual:>12,} {f'{lo:,}-{hi:,}':>25}{flag}")
        print("  (* = outside configured bounds)\n")

        # ── 2. Invariants and shares ─────────────────────────
        results = check_quality(conn, bounds.dead_products[0])
        passed = print_check_results(results)
    finally:
        conn.close()

    if passed != len(results):
        sys.exit(1)


if __name__ == "__main__":
    main()
