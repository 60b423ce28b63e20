# tests/utils/test_k8s_utils.py

from decimal import Decimal

import pytest

from kubecostguard.utils.k8s_utils import (
    parse_cpu_request,
    parse_memory_request,
    parse_quantity,
    parse_storage_request,
)


@pytest.mark.parametrize(
    "cpu, expected",
    [("250m", 250), ("1", 1000), ("1.5", 1500), ("0.1", 100), ("2000000n", 2), ("500u", 0), (None, 0), ("", 0)],
)
def test_parse_cpu_request(cpu, expected):
    assert parse_cpu_request(cpu) == expected


@pytest.mark.parametrize(
    "memory, expected",
    [
        ("128Mi", 128 * 1024**2),
        ("1Gi", 1024**3),
        ("1.5Gi", int(1.5 * 1024**3)),
        ("64Ki", 64 * 1024),
        ("1G", 10**9),
        ("500M", 500 * 10**6),
        ("12345", 12345),
        (None, 0),
    ],
)
def test_parse_memory_request(memory, expected):
    assert parse_memory_request(memory) == expected


def test_parse_storage_request():
    assert parse_storage_request("100Gi") == 100 * 1024**3
    assert parse_storage_request(None) == 0


def test_binary_suffix_wins_over_decimal():
    # "Mi" must not be read as "M" followed by garbage
    assert parse_quantity("1Mi") == Decimal(1024**2)
    assert parse_quantity("1M") == Decimal(10**6)


def test_unparseable_quantity_is_zero():
    assert parse_quantity("lots") == 0
    assert parse_memory_request("12XB") == 0


def test_numeric_quantities_pass_through():
    assert parse_quantity(2) == Decimal(2)
    assert parse_quantity(Decimal("0.5")) == Decimal("0.5")
