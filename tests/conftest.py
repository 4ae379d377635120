"""Shared fixtures: a small, fixed-size plan and the dataset generated from it."""

import numpy as np
import pandas as pd
import pytest

from storefront_seed.generate_data import generate_dataset, reconcile_totals
from storefront_seed.plan import Plan

NOW = pd.Timestamp("2025-06-01 12:00:00", tz="UTC")


@pytest.fixture(scope="module")
def small_plan():
    # 300 products with a 100-row dead tail: sellable ids are 1..199
    return Plan(categories=10, customers=50, products=300, orders=2_000, dead_products=100)


@pytest.fixture(scope="module")
def raw_dataset(small_plan):
    """Stages 2-6 only: totals still zero."""
    return generate_dataset(small_plan, np.random.default_rng(7), now=NOW)


@pytest.fixture(scope="module")
def dataset(raw_dataset):
    return reconcile_totals(raw_dataset)
