"""Table generators, reconciliation and the CSV export."""

import numpy as np
import pandas as pd
import pytest

import storefront_seed.generate_data as generate_data
from storefront_seed.dataset import LOAD_ORDER, Dataset, compute_order_totals
from storefront_seed.generate_data import (
    generate_categories,
    generate_dataset,
    generate_order_lines,
    reconcile_totals,
    write_dataset_csv,
)
from storefront_seed.plan import Plan
from tests.conftest import NOW


# ═══════════════════════════════════════════════════════════════════════════════
# 1. CATEGORIES
# ═══════════════════════════════════════════════════════════════════════════════

class TestCategories:
    def test_ten_plus_empty(self):
        plan = Plan(categories=10, customers=2, products=2, orders=1, dead_products=0)
        df = generate_categories(plan)
        assert df["id"].tolist() == list(range(1, 12))
        assert df["name"].iloc[9] == "Category 10"
        assert df["name"].iloc[10] == "Empty Category"
        assert df["name"].is_unique

    def test_empty_category_never_referenced(self, dataset):
        assert dataset.category["id"].max() == 11
        assert not dataset.product["category_id"].isin([11]).any()
        assert dataset.product["category_id"].between(1, 10).all()

    def test_every_other_category_in_use(self, dataset):
        used = set(dataset.product["category_id"])
        assert used == set(range(1, 11))


# ═══════════════════════════════════════════════════════════════════════════════
# 2. CUSTOMERS
# ═══════════════════════════════════════════════════════════════════════════════

class TestCustomers:
    def test_dense_ids_and_unique_emails(self, dataset):
        customers = dataset.customer
        assert customers["id"].tolist() == list(range(1, 51))
        assert customers["email"].is_unique
        assert customers["email"].iloc[0] == "customer.1@example.com"
        assert customers["name"].iloc[49] == "Customer 50"

    def test_phone_format_or_null(self, dataset):
        phones = dataset.customer["phone"].dropna()
        assert len(phones) > 0
        assert phones.str.fullmatch(r"\(11\) 9\d{8}").all()

    def test_signup_window(self, dataset):
        signup = dataset.customer["signup_date"]
        assert (signup <= NOW).all()
        assert (signup >= NOW - pd.Timedelta(days=730)).all()

    def test_not_deleted(self, dataset):
        assert not dataset.customer["is_deleted"].any()

    def test_last_customer_never_orders(self, dataset):
        assert 50 not in set(dataset.order_header["customer_id"])
        assert dataset.order_header["customer_id"].between(1, 49).all()


# ═══════════════════════════════════════════════════════════════════════════════
# 3. PRODUCTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestProducts:
    def test_price_two_decimals_in_range(self, dataset):
        prices = dataset.product["price"]
        assert (prices > 0).all()
        assert prices.between(9.99, 1999.98).all()
        cents = prices * 100
        np.testing.assert_allclose(cents, cents.round(), atol=1e-6)

    def test_stock_non_negative(self, dataset):
        assert dataset.product["stock_quantity"].between(0, 500).all()

    def test_last_modified_is_creation_time(self, dataset):
        assert (dataset.product["last_modified_date"] == NOW).all()

    def test_dead_stock_never_sold(self, dataset, small_plan):
        sold = set(dataset.order_line["product_id"])
        dead = set(range(small_plan.products - small_plan.dead_products + 1, small_plan.products + 1))
        assert len(dead) == 100
        assert sold.isdisjoint(dead)
        assert max(sold) <= small_plan.sellable_products


# ═══════════════════════════════════════════════════════════════════════════════
# 4. ORDER HEADERS
# ═══════════════════════════════════════════════════════════════════════════════

class TestOrderHeaders:
    def test_totals_start_at_zero(self, raw_dataset):
        assert (raw_dataset.order_header["total_amount"] == 0).all()

    def test_order_dates_are_whole_days(self, dataset):
        dates = dataset.order_header["order_date"]
        assert (dates == dates.dt.floor("D")).all()
        assert (dates <= NOW).all()
        assert (dates >= NOW - pd.Timedelta(days=501)).all()

    def test_low_customer_ids_dominate(self, dataset):
        counts = dataset.order_header["customer_id"].value_counts()
        top_buyer = counts.get(1, 0)
        tail_buyers = counts[counts.index >= 40].sum()
        assert top_buyer > tail_buyers


# ═══════════════════════════════════════════════════════════════════════════════
# 5. ORDER LINES
# ═══════════════════════════════════════════════════════════════════════════════

class TestOrderLines:
    def test_dense_increasing_ids(self, dataset):
        ids = dataset.order_line["id"].to_numpy()
        np.testing.assert_array_equal(ids, np.arange(1, len(ids) + 1))

    def test_emitted_order_by_order(self, dataset):
        assert dataset.order_line["order_id"].is_monotonic_increasing

    def test_every_order_has_one_to_ten_lines(self, dataset):
        per_order = dataset.order_line.groupby("order_id").size()
        assert len(per_order) == len(dataset.order_header)
        assert per_order.between(1, 10).all()

    def test_quantities_positive(self, dataset):
        assert dataset.order_line["quantity"].between(1, 5).all()

    def test_unit_price_is_snapshot_of_product_price(self, dataset):
        prices = dataset.product.set_index("id")["price"]
        lines = dataset.order_line
        expected = prices.loc[lines["product_id"]].to_numpy()
        np.testing.assert_array_equal(lines["unit_price"].to_numpy(), expected)

    def test_later_price_change_does_not_touch_lines(self, small_plan):
        rng = np.random.default_rng(11)
        ds = generate_dataset(small_plan, rng, now=NOW)
        before = ds.order_line["unit_price"].copy()
        ds.product["price"] = ds.product["price"] * 2
        pd.testing.assert_series_equal(ds.order_line["unit_price"], before)

    def test_quantity_distribution_over_ten_thousand_lines(self):
        plan = Plan(categories=5, customers=100, products=1_000, orders=8_000, dead_products=100)
        rng = np.random.default_rng(12)
        headers = pd.DataFrame({"id": np.arange(1, plan.orders + 1)})
        products = pd.DataFrame({"id": np.arange(1, 1_001), "price": np.full(1_000, 10.0)})
        lines = generate_order_lines(plan, rng, headers, products)
        assert len(lines) >= 10_000
        assert (lines["quantity"] == 1).mean() == pytest.approx(0.80, abs=0.03)


# ═══════════════════════════════════════════════════════════════════════════════
# 6. RECONCILIATION
# ═══════════════════════════════════════════════════════════════════════════════

def _tiny_dataset() -> Dataset:
    plan = Plan(categories=1, customers=2, products=2, orders=2, dead_products=0)
    return Dataset(
        plan=plan,
        category=pd.DataFrame({"id": [1, 2]}),
        customer=pd.DataFrame({"id": [1, 2]}),
        product=pd.DataFrame({"id": [1, 2], "price": [10.00, 5.00]}),
        order_header=pd.DataFrame({
            "id": [1, 2],
            "customer_id": [1, 1],
            "total_amount": [0.0, 0.0],
        }),
        order_line=pd.DataFrame({
            "id": [1, 2, 3],
            "order_id": [1, 1, 2],
            "product_id": [1, 2, 1],
            "quantity": [3, 1, 1],
            "unit_price": [10.00, 5.00, 10.00],
        }),
    )


class TestReconciliation:
    def test_two_line_order_totals_35(self):
        reconciled = reconcile_totals(_tiny_dataset())
        totals = reconciled.order_header.set_index("id")["total_amount"]
        assert totals[1] == pytest.approx(35.00)
        assert totals[2] == pytest.approx(10.00)

    def test_input_dataset_untouched(self):
        tiny = _tiny_dataset()
        reconcile_totals(tiny)
        assert (tiny.order_header["total_amount"] == 0).all()

    def test_cents_are_exact(self):
        lines = pd.DataFrame({
            "order_id": [1, 1, 1],
            "quantity": [1, 1, 1],
            "unit_price": [0.10, 0.20, 0.30],
        })
        assert compute_order_totals(lines)[1] == 0.60

    def test_generated_totals_match_lines(self, dataset):
        expected = dataset.order_line.assign(
            value=dataset.order_line["quantity"] * dataset.order_line["unit_price"]
        ).groupby("order_id")["value"].sum()
        actual = dataset.order_header.set_index("id")["total_amount"]
        np.testing.assert_allclose(actual.loc[expected.index], expected, atol=0.005)
        assert (actual > 0).all()

    def test_only_totals_change(self, raw_dataset, dataset):
        pd.testing.assert_frame_equal(
            raw_dataset.order_header.drop(columns="total_amount"),
            dataset.order_header.drop(columns="total_amount"),
        )
        assert dataset.order_line is raw_dataset.order_line


# ═══════════════════════════════════════════════════════════════════════════════
# 7. CSV EXPORT
# ═══════════════════════════════════════════════════════════════════════════════

class TestCsvExport:
    def test_writes_every_table(self, dataset, tmp_path):
        target = tmp_path / "data"
        written = write_dataset_csv(dataset, target)
        assert list(written) == LOAD_ORDER
        for name, path in written.items():
            df = pd.read_csv(path)
            assert len(df) == len(getattr(dataset, name))
        assert not (tmp_path / "data.staging").exists()

    def test_nulls_written_as_empty(self, dataset, tmp_path):
        write_dataset_csv(dataset, tmp_path / "data")
        customers = pd.read_csv(tmp_path / "data" / "customer.csv")
        assert customers["phone"].isna().sum() == dataset.customer["phone"].isna().sum()

    def test_failure_leaves_target_untouched(self, dataset, tmp_path, monkeypatch):
        target = tmp_path / "data"
        target.mkdir()
        (target / "customer.csv").write_text("previous run\n", encoding="utf-8")

        real_write_csv = generate_data.write_csv

        def failing_write_csv(df, filepath, mode="w", header=True):
            if filepath.name == "order_line.csv":
                raise OSError("disk full")
            real_write_csv(df, filepath, mode=mode, header=header)

        monkeypatch.setattr(generate_data, "write_csv", failing_write_csv)
        with pytest.raises(OSError):
            write_dataset_csv(dataset, target)

        assert (target / "customer.csv").read_text(encoding="utf-8") == "previous run\n"
        assert sorted(p.name for p in target.iterdir()) == ["customer.csv"]
        assert not (tmp_path / "data.staging").exists()

    def test_rerun_replaces_whole_export(self, dataset, tmp_path):
        target = tmp_path / "data"
        target.mkdir()
        (target / "customer.csv").write_text("previous run\n", encoding="utf-8")
        (target / "stale_table.csv").write_text("old\n", encoding="utf-8")

        write_dataset_csv(dataset, target)

        assert sorted(p.name for p in target.iterdir()) == sorted(f"{n}.csv" for n in LOAD_ORDER)
        assert (target / "customer.csv").read_text(encoding="utf-8") != "previous run\n"
        assert not (tmp_path / "data.previous").exists()
        assert not (tmp_path / "data.staging").exists()

    def test_failed_swap_restores_previous_export(self, dataset, tmp_path, monkeypatch):
        target = tmp_path / "data"
        target.mkdir()
        (target / "customer.csv").write_text("previous run\n", encoding="utf-8")

        real_replace = generate_data.os.replace

        def replace_refusing_staging(src, dst):
            if str(src).endswith(".staging"):
                raise OSError("rename failed")
            real_replace(src, dst)

        monkeypatch.setattr(generate_data.os, "replace", replace_refusing_staging)
        with pytest.raises(OSError):
            write_dataset_csv(dataset, target)

        assert sorted(p.name for p in target.iterdir()) == ["customer.csv"]
        assert (target / "customer.csv").read_text(encoding="utf-8") == "previous run\n"
        assert not (tmp_path / "data.previous").exists()
        assert not (tmp_path / "data.staging").exists()


class TestSummary:
    def test_reports_reserved_ids_and_basket_size(self, dataset, small_plan, capsys):
        generate_data.print_summary(small_plan, dataset.row_counts())
        out = capsys.readouterr().out

        assert "id 11 empty" in out
        assert "id 50 never orders" in out
        assert "ids 200-300 unsold" in out
        per_order = len(dataset.order_line) / len(dataset.order_header)
        assert f"{per_order:.2f} lines/order" in out


# ═══════════════════════════════════════════════════════════════════════════════
# 8. COMMAND
# ═══════════════════════════════════════════════════════════════════════════════

class TestGenerateCommand:
    def test_main_writes_csvs(self, tmp_path, monkeypatch, capsys):
        env = {
            "GEN_CATEGORIES_MIN": "3", "GEN_CATEGORIES_MAX": "3",
            "GEN_CUSTOMERS_MIN": "20", "GEN_CUSTOMERS_MAX": "25",
            "GEN_PRODUCTS_MIN": "150", "GEN_PRODUCTS_MAX": "160",
            "GEN_ORDERS_MIN": "200", "GEN_ORDERS_MAX": "220",
            "GEN_DEAD_PRODUCTS_MIN": "100", "GEN_DEAD_PRODUCTS_MAX": "100",
            "GEN_SEED": "3",
            "GEN_OUTPUT_DIR": str(tmp_path / "out"),
        }
        for key, value in env.items():
            monkeypatch.setenv(key, value)

        generate_data.main()

        categories = pd.read_csv(tmp_path / "out" / "category.csv")
        assert categories["id"].tolist() == [1, 2, 3, 4]
        out = capsys.readouterr().out
        for i in range(1, 8):
            assert f"[{i}/7]" in out
        assert "Data generation complete." in out

    def test_bad_bounds_exit_before_generation(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("GEN_PRODUCTS_MIN", "50")
        monkeypatch.setenv("GEN_PRODUCTS_MAX", "50")
        monkeypatch.setenv("GEN_DEAD_PRODUCTS_MIN", "100")
        monkeypatch.setenv("GEN_DEAD_PRODUCTS_MAX", "100")
        monkeypatch.setenv("GEN_OUTPUT_DIR", str(tmp_path / "out"))

        with pytest.raises(SystemExit) as exc:
            generate_data.main()

        assert exc.value.code == 1
        assert "Invalid generator configuration" in capsys.readouterr().out
        assert not (tmp_path / "out").exists()
