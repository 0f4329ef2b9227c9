"""Data-class catalog: named sensitive-data categories and their patterns."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

import yaml

from .errors import ValidationError
from .models import RiskScore
from .validators import get_validator, validate_aadhar, validate_luhn

logger = logging.getLogger(__name__)

ADDRESS = "Address"
COORDINATES = "Coordinates"
CREDIT_CARD = "Credit Card Number"
EMAIL = "Email"
IP_ADDRESS = "IP Address"
PHONE_NUMBER = "Phone Number"
SSN = "Social Security Number"
AADHAR_NUMBER = "Aadhar Number"


@dataclass(frozen=True)
class DataClass:
    """A sensitive-data category.

    ``compiled`` is built once from ``pattern`` so matching never recompiles.
    """

    name: str
    pattern: Optional[str] = None
    severity: RiskScore = RiskScore.LOW
    string_only: bool = False
    validator: Optional[Callable[[str], bool]] = None
    description: str = ""
    compiled: Optional[re.Pattern] = field(default=None, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("Data class name cannot be empty")
        if self.severity is RiskScore.NONE:
            raise ValidationError(f"Data class '{self.name}' needs a severity above NONE")
        if self.pattern:
            try:
                compiled = re.compile(self.pattern)
            except re.error as e:
                raise ValidationError(f"Invalid pattern for data class '{self.name}': {e}") from e
            object.__setattr__(self, "compiled", compiled)


# (name, pattern, severity, string_only, validator, description)
BUILTIN_DATA_CLASSES = [
    (
        ADDRESS,
        r"(?i)\b\d{1,6}\s+(?:[a-z0-9.]+\s+){1,5}"
        r"(?:street|st|avenue|ave|road|rd|boulevard|blvd|lane|ln|drive|dr|court|ct|way|place|pl)\b",
        RiskScore.MEDIUM,
        True,
        None,
        "Street address",
    ),
    (
        COORDINATES,
        r"^[-+]?(?:[1-8]?\d(?:\.\d+)?|90(?:\.0+)?),\s*"
        r"[-+]?(?:180(?:\.0+)?|(?:1[0-7]\d|[1-9]?\d)(?:\.\d+)?)$",
        RiskScore.LOW,
        True,
        None,
        "Latitude/longitude pair",
    ),
    (
        CREDIT_CARD,
        r"\b(?:4\d{12}(?:\d{3})?|5[1-5]\d{14}|3[47]\d{13}"
        r"|6(?:011|5\d{2})\d{12}|3(?:0[0-5]|[68]\d)\d{11})\b",
        RiskScore.HIGH,
        False,
        validate_luhn,
        "Payment card number",
    ),
    (
        EMAIL,
        r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
        RiskScore.MEDIUM,
        True,
        None,
        "Email address",
    ),
    (
        IP_ADDRESS,
        r"\b(?:(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)\.){3}(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)\b",
        RiskScore.LOW,
        True,
        None,
        "IPv4 address",
    ),
    (
        PHONE_NUMBER,
        r"(?:\+?1[-.\s]?)?\(?\b\d{3}\)?[-.\s]\d{3}[-.\s]\d{4}\b",
        RiskScore.MEDIUM,
        True,
        None,
        "North American phone number",
    ),
    (
        SSN,
        r"\b(?!000|666|9\d\d)\d{3}-(?!00)\d{2}-(?!0000)\d{4}\b",
        RiskScore.HIGH,
        False,
        None,
        "US Social Security Number",
    ),
    (
        AADHAR_NUMBER,
        r"\b[2-9]\d{3}\s?\d{4}\s?\d{4}\b",
        RiskScore.HIGH,
        True,
        validate_aadhar,
        "Indian Aadhaar number",
    ),
]


class DataClassCatalog:
    """Ordered, immutable collection of data classes.

    Order defines matcher precedence; lookups by name are O(1).
    """

    def __init__(self, data_classes: Iterable[DataClass]):
        classes = tuple(data_classes)
        by_name: dict[str, DataClass] = {}
        for data_class in classes:
            if data_class.name in by_name:
                raise ValidationError(f"Duplicate data class: {data_class.name}")
            by_name[data_class.name] = data_class
        self._classes = classes
        self._by_name = by_name

    def __iter__(self) -> Iterator[DataClass]:
        return iter(self._classes)

    def __len__(self) -> int:
        return len(self._classes)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get(self, name: str) -> Optional[DataClass]:
        return self._by_name.get(name)

    @property
    def names(self) -> list[str]:
        return [c.name for c in self._classes]

    def severity_of(self, name: str, default: RiskScore = RiskScore.LOW) -> RiskScore:
        data_class = self._by_name.get(name)
        return data_class.severity if data_class else default


def builtin_data_classes(disabled: Optional[Iterable[str]] = None) -> list[DataClass]:
    """Build the built-in data classes, minus any disabled by name."""
    skip = set(disabled or [])
    return [
        DataClass(
            name=name,
            pattern=pattern,
            severity=severity,
            string_only=string_only,
            validator=validator,
            description=description,
        )
        for name, pattern, severity, string_only, validator, description in BUILTIN_DATA_CLASSES
        if name not in skip
    ]


def parse_data_class(entry: dict) -> DataClass:
    """Create a data class from one entry of a definition file.

    Raises:
        ValidationError: If the entry is malformed.
    """
    if not isinstance(entry, dict):
        raise ValidationError(f"Data class entry must be a mapping, got {type(entry).__name__}")

    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"Data class entry is missing a name: {entry!r}")

    try:
        severity = RiskScore.from_str(entry.get("severity", "low"))
    except ValueError as e:
        raise ValidationError(f"Data class '{name}': {e}") from e

    validator = None
    validator_name = entry.get("validator")
    if validator_name:
        validator = get_validator(str(validator_name))
        if validator is None:
            raise ValidationError(f"Data class '{name}': unknown validator '{validator_name}'")

    pattern = entry.get("regex", entry.get("pattern"))
    if pattern is not None and not isinstance(pattern, str):
        raise ValidationError(f"Data class '{name}': pattern must be a string")

    return DataClass(
        name=name.strip(),
        pattern=pattern or None,
        severity=severity,
        string_only=bool(entry.get("stringOnly", entry.get("string_only", False))),
        validator=validator,
        description=entry.get("description", ""),
    )


def load_user_data_classes(path: Path) -> list[DataClass]:
    """Load user-defined data classes from a YAML definition file.

    The file holds a top-level ``dataClasses`` list::

        dataClasses:
          - name: Employee ID
            regex: "EMP-\\d{6}"
            severity: medium
            stringOnly: true

    Raises:
        ValidationError: If the file cannot be parsed or an entry is malformed.
    """
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ValidationError(f"Cannot read data class file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValidationError(f"Data class file {path} must contain a mapping")

    entries = data.get("dataClasses", data.get("data_classes", [])) or []
    if not isinstance(entries, list):
        raise ValidationError(f"'dataClasses' in {path} must be a list")

    return [parse_data_class(entry) for entry in entries]


def load_data_classes(
    data_classes_file: Optional[str] = None,
    disabled: Optional[Iterable[str]] = None,
) -> DataClassCatalog:
    """Build the effective catalog: built-in classes followed by user-defined ones.

    A user-defined class with a built-in's name replaces it in place.
    """
    classes = builtin_data_classes(disabled)

    if data_classes_file:
        user_classes = load_user_data_classes(Path(data_classes_file))
        positions = {c.name: i for i, c in enumerate(classes)}
        for user_class in user_classes:
            if user_class.name in positions:
                classes[positions[user_class.name]] = user_class
            else:
                positions[user_class.name] = len(classes)
                classes.append(user_class)
        logger.debug(f"Loaded {len(user_classes)} user-defined data classes from {data_classes_file}")

    return DataClassCatalog(classes)
