"""String helpers shared by the normalizers and loaders."""

import re
from datetime import datetime
from typing import Iterator, Optional

from dateutil import parser as date_parser

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_USERNAME_UNSAFE = re.compile(r"[^a-z0-9._-]+")


def slugify(value: str) -> str:
    """
    Derive a URL slug from a display string.

    Lowercases, turns every run of non-alphanumeric characters into a single
    hyphen and trims hyphens from both ends. Same input, same slug.
    """
    return _NON_ALNUM.sub("-", (value or "").lower()).strip("-")


def sanitize_username(value: str) -> str:
    return _USERNAME_UNSAFE.sub("", (value or "").lower()).strip("._-")


def username_candidates(
    email: str,
    first_name: str = "",
    last_name: str = "",
    external_id: str = "",
    max_suffix: int = 100
) -> Iterator[str]:
    """
    Yield usernames to try, most preferred first.

    Email local part, then first.last, then customer_<id>, then the email
    local part with a numbered suffix.
    """
    seen = set()
    base = sanitize_username(email.split("@", 1)[0]) if email else ""

    fallbacks = [base]
    if first_name or last_name:
        fallbacks.append(sanitize_username(f"{first_name}.{last_name}"))
    if external_id:
        fallbacks.append(f"customer_{sanitize_username(external_id)}")

    for candidate in fallbacks:
        if candidate and candidate not in seen:
            seen.add(candidate)
            yield candidate

    stem = base or "customer"
    for n in range(1, max_suffix + 1):
        candidate = f"{stem}{n}"
        if candidate not in seen:
            seen.add(candidate)
            yield candidate


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a Magento timestamp, returning None for blanks and zero dates."""
    if not value or value.startswith("0000-00-00"):
        return None
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError):
        return None


def split_street(lines) -> tuple:
    """Return (address_1, address_2); extra lines are folded into the second."""
    lines = [line for line in (lines or []) if line]
    if not lines:
        return "", ""
    return lines[0], ", ".join(lines[1:])
