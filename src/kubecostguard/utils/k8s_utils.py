from decimal import Decimal, InvalidOperation
from typing import Optional

# Binary suffixes must be checked before their one-letter decimal counterparts
_BINARY_SUFFIXES = {
    "Ki": Decimal(1024),
    "Mi": Decimal(1024) ** 2,
    "Gi": Decimal(1024) ** 3,
    "Ti": Decimal(1024) ** 4,
    "Pi": Decimal(1024) ** 5,
    "Ei": Decimal(1024) ** 6,
}
_DECIMAL_SUFFIXES = {
    "n": Decimal("0.000000001"),
    "u": Decimal("0.000001"),
    "m": Decimal("0.001"),
    "k": Decimal(1000),
    "M": Decimal(1000) ** 2,
    "G": Decimal(1000) ** 3,
    "T": Decimal(1000) ** 4,
    "P": Decimal(1000) ** 5,
    "E": Decimal(1000) ** 6,
}


def parse_quantity(quantity) -> Decimal:
    """
    Parse a Kubernetes quantity ("250m", "1.5Gi", "2") to a Decimal.
    Unparseable values are treated as zero.
    """
    if quantity is None:
        return Decimal(0)
    if isinstance(quantity, (int, float, Decimal)):
        return Decimal(quantity)

    quantity = str(quantity).strip()
    number, multiplier = quantity, Decimal(1)
    if quantity[-2:] in _BINARY_SUFFIXES:
        number, multiplier = quantity[:-2], _BINARY_SUFFIXES[quantity[-2:]]
    elif quantity[-1:] in _DECIMAL_SUFFIXES:
        number, multiplier = quantity[:-1], _DECIMAL_SUFFIXES[quantity[-1:]]

    try:
        return Decimal(number) * multiplier
    except InvalidOperation:
        return Decimal(0)


def parse_cpu_request(cpu: Optional[str]) -> int:
    """Converts K8s CPU string to millicores (int)."""
    if not cpu:
        return 0
    return int(parse_quantity(cpu) * 1000)


def parse_memory_request(memory: Optional[str]) -> int:
    """Converts K8s memory string to bytes (int)."""
    if not memory:
        return 0
    return int(parse_quantity(memory))


def parse_storage_request(storage: Optional[str]) -> int:
    """Converts K8s storage string (e.g., ephemeral-storage) to bytes (int)."""
    if not storage:
        return 0
    return int(parse_quantity(storage))
