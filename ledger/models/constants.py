"""Domain constants and enumerations for validation.

Categories form a closed set; everything else is a plain limit shared by the
validator, the store and the query engine.
"""

from enum import Enum
from typing import Tuple


class Category(str, Enum):
    FOOD = "Food"
    TRANSPORT = "Transport"
    ENTERTAINMENT = "Entertainment"
    SHOPPING = "Shopping"
    BILLS = "Bills"
    HEALTHCARE = "Healthcare"
    EDUCATION = "Education"
    OTHER = "Other"


class SortOrder(str, Enum):
    DATE_DESC = "date_desc"
    DATE_ASC = "date_asc"


CATEGORIES: Tuple[str, ...] = tuple(c.value for c in Category)
CATEGORY_CHOICES_MESSAGE = f"Category must be one of: {', '.join(CATEGORIES)}"

MAX_AMOUNT = 100_000_000  # major units
MAX_DESCRIPTION_LENGTH = 500
MAX_IDEMPOTENCY_KEY_LENGTH = 100
MONTHLY_STATS_LIMIT = 12
MINOR_UNITS_PER_MAJOR = 100
