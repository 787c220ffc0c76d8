"""EIN (US Employer Identification Number) validation."""

import re

# Two digits, optional hyphen, seven digits: "12-3456789" or "123456789"
EIN_PATTERN = re.compile(r"[0-9]{2}-?[0-9]{7}")


def is_valid_ein(value) -> bool:
    return isinstance(value, str) and EIN_PATTERN.fullmatch(value) is not None
