"""Generate a dataset and load it into PostgreSQL in a single transaction.

Schema rebuild, COPY FROM STDIN for all five tables, and the order-total
reconciliation UPDATE commit together or not at all.
"""

import io
import sys
import threading
import time
from pathlib import Path

import numpy as np
import pandas as pd
import psycopg2
from psycopg2 import sql
from tqdm import tqdm

from storefront_seed.config import get_connection, get_schema_name, get_seed, get_size_bounds
from storefront_seed.dataset import Dataset
from storefront_seed.generate_data import CHUNK_SIZE, generate_dataset, plan_run, print_summary, stage
from storefront_seed.plan import BoundsError

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"

RECONCILE_SQL = """
    UPDATE order_header AS oh
    SET total_amount = t.total
    FROM (
        SELECT order_id, SUM(quantity * unit_price) AS total
        FROM order_line
        GROUP BY order_id
    ) AS t
    WHERE oh.id = t.order_id;
"""


class LoadAborted(Exception):
    """Raised at a stage boundary when the caller asked the load to stop."""


def execute_schema(cur: psycopg2.extensions.cursor, schema: str) -> None:
    """Drop and recreate the target schema, then run schema.sql inside it."""
    ident = sql.Identifier(schema)
    cur.execute(sql.SQL("DROP SCHEMA IF EXISTS {} CASCADE;").format(ident))
    cur.execute(sql.SQL("CREATE SCHEMA {};").format(ident))
    cur.execute(sql.SQL("SET LOCAL search_path TO {};").format(ident))
    cur.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    print(f"  Schema {schema} created (tables + trigger).")


def load_table(cur: psycopg2.extensions.cursor, table_name: str, df: pd.DataFrame) -> int:
    """COPY one frame into its table in CSV chunks. Returns the row count in the table."""
    copy_sql = sql.SQL("COPY {} ({}) FROM STDIN WITH (FORMAT CSV)").format(
        sql.Identifier(table_name),
        sql.SQL(", ").join(sql.Identifier(c) for c in df.columns),
    )

    start = time.perf_counter()
    for offset in tqdm(range(0, len(df), CHUNK_SIZE), desc=f"  {table_name}", leave=False):
        buffer = io.StringIO()
        df.iloc[offset:offset + CHUNK_SIZE].to_csv(
            buffer, index=False, header=False, lineterminator="\n"
        )
        buffer.seek(0)
        cur.copy_expert(copy_sql, buffer)
    elapsed = time.perf_counter() - start

    cur.execute(sql.SQL("SELECT COUNT(*) FROM {};").format(sql.Identifier(table_name)))
    count = cur.fetchone()[0]
    print(f"  {table_name}: {count:,} rows loaded ({elapsed:.1f}s)")
    return count


def reconcile_order_totals(cur: psycopg2.extensions.cursor) -> int:
    """Second pass: set every header's total from its lines. Returns headers updated."""
    cur.execute(RECONCILE_SQL)
    return cur.rowcount


def load_dataset(
    conn: psycopg2.extensions.connection,
    dataset: Dataset,
    schema: str,
    abort: threading.Event | None = None,
) -> dict[str, int]:
    """Rebuild the schema, load every table and reconcile totals atomically.

    Headers are expected with total_amount still zero. Any failure,
    including KeyboardInterrupt or a set abort event, rolls the whole
    transaction back so the pre-run schema is left untouched.
    """

    def checkpoint() -> None:
        if abort is not None and abort.is_set():
            raise LoadAborted("load aborted; rolling back")

    row_counts: dict[str, int] = {}
    try:
        with conn.cursor() as cur:
            checkpoint()
            print("\nRebuilding schema...")
            execute_schema(cur, schema)

            print("\nLoading tables...")
            for table, df in dataset.tables().items():
                checkpoint()
                row_counts[table] = load_table(cur, table, df)

            checkpoint()
            stage(7, "Reconciling order totals...")
            updated = reconcile_order_totals(cur)
            print(f"  {updated:,} order headers updated")

            checkpoint()
        conn.commit()
    except BaseException:
        conn.rollback()
        print("\nLoad failed; transaction rolled back.")
        raise
    return row_counts


def main() -> None:
    """Main entry point: plan, generate, then load + reconcile in one transaction."""
    try:
        bounds = get_size_bounds()
        seed = get_seed()
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
    print("Connected.")

    schema = get_schema_name()
    try:
        total_start = time.perf_counter()
        rng = np.random.default_rng(seed)
        plan = plan_run(bounds, rng)
        dataset = generate_dataset(plan, rng)
        row_counts = load_dataset(conn, dataset, schema)
        total_elapsed = time.perf_counter() - total_start
        print(f"\nAll tables loaded and reconciled in {total_elapsed:.1f}s.")
        print_summary(plan, row_counts)
    finally:
        conn.close()
    print("\nDone. Connection closed.")


if __name__ == "__main__":
    main()
