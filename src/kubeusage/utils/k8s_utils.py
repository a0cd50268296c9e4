import math
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

# Binary suffixes first so 'Mi' is not read as 'M' followed by garbage.
_BINARY_SUFFIXES = {"Ki": 1024, "Mi": 1024**2, "Gi": 1024**3, "Ti": 1024**4, "Pi": 1024**5, "Ei": 1024**6}
_DECIMAL_SUFFIXES = {
    "n": Decimal("0.000000001"),
    "u": Decimal("0.000001"),
    "m": Decimal("0.001"),
    "k": Decimal(1000),
    "M": Decimal(1000**2),
    "G": Decimal(1000**3),
    "T": Decimal(1000**4),
    "P": Decimal(1000**5),
    "E": Decimal(1000**6),
}

INSTANCE_TYPE_LABELS = ("node.kubernetes.io/instance-type", "beta.kubernetes.io/instance-type")
REGION_LABELS = ("topology.kubernetes.io/region", "failure-domain.beta.kubernetes.io/region")
PREEMPTIBLE_LABELS = ("cloud.google.com/gke-preemptible", "cloud.google.com/gke-spot")


def parse_quantity(quantity) -> Decimal:
    """
    Parse kubernetes quantity to Decimal.
    Adapted from kubernetes-python utils.

    Raises:
        ValueError: If the quantity is not a number with an optional known suffix.
    """
    if quantity is None:
        return Decimal(0)
    if isinstance(quantity, (int, float, Decimal)):
        return Decimal(quantity)

    quantity = str(quantity).strip()
    number, multiplier = quantity, Decimal(1)
    if quantity[-2:] in _BINARY_SUFFIXES:
        number, multiplier = quantity[:-2], Decimal(_BINARY_SUFFIXES[quantity[-2:]])
    elif quantity[-1:] in _DECIMAL_SUFFIXES:
        number, multiplier = quantity[:-1], _DECIMAL_SUFFIXES[quantity[-1:]]

    try:
        return Decimal(number) * multiplier
    except InvalidOperation as e:
        raise ValueError(f"Invalid Kubernetes quantity: '{quantity}'") from e


def cpu_cores(quantity) -> int:
    """Whole CPU cores, rounded up like resource.Quantity.Value()."""
    return int(math.ceil(parse_quantity(quantity)))


def memory_bytes(quantity) -> int:
    """Memory in bytes, rounded up."""
    return int(math.ceil(parse_quantity(quantity)))


def read_label(labels: Optional[Dict[str, str]], keys) -> str:
    """Returns the value of the first key present in labels, or ''."""
    labels = labels or {}
    for key in keys:
        if key in labels:
            return labels[key]
    return ""


def parse_bool(value: str) -> bool:
    """Parses a boolean label value (1, t, true, 0, f, false and their capitalized forms)."""
    text = value.strip()
    if text in ("1", "t", "T", "TRUE", "true", "True"):
        return True
    if text in ("0", "f", "F", "FALSE", "false", "False"):
        return False
    raise ValueError(f"invalid boolean value: '{value}'")


def is_preemptible(labels: Optional[Dict[str, str]]) -> bool:
    """
    True if any of the GKE preemptible or spot labels is set to true.

    Raises:
        ValueError: If one of the labels holds a non-boolean value.
    """
    labels = labels or {}
    for key in PREEMPTIBLE_LABELS:
        if key not in labels:
            continue
        try:
            if parse_bool(labels[key]):
                return True
        except ValueError as e:
            raise ValueError(f"invalid value for label {key}: {labels[key]}") from e
    return False
