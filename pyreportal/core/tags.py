"""
Tag identifier contract.

Hardware readers deliver colon-separated hex octets ("04:A7:B3:C2:D1:E0:F5").
Development tooling and older mock data use short free-form codes
("DEV_TAG_001"). Both are accepted unless strict mode is switched on, in which
case only the hardware format passes. Tags are compared by exact string match
and are never rewritten after the scan.
"""
import re

HARDWARE_TAG_PATTERN = re.compile(r"^[0-9A-Fa-f]{2}(?::[0-9A-Fa-f]{2})+$")
FREEFORM_TAG_PATTERN = re.compile(r"^[\x21-\x7e]{1,64}$")

DEFAULT_MOCK_TAGS = [
    "04:D6:94:82:97:6A:80",
    "04:A7:B3:C2:D1:E0:F5",
    "04:12:34:56:78:9A:BC",
    "04:FE:DC:BA:98:76:54",
    "04:11:22:33:44:55:66",
]


def is_hardware_format(tag_id: str) -> bool:
    return bool(tag_id) and HARDWARE_TAG_PATTERN.match(tag_id) is not None


def is_valid_tag(tag_id, strict: bool = False) -> bool:
    if not isinstance(tag_id, str) or not tag_id:
        return False
    if strict:
        return is_hardware_format(tag_id)
    return FREEFORM_TAG_PATTERN.match(tag_id) is not None


def validate_tag(tag_id, strict: bool = False) -> str:
    """Returns the tag unchanged or raises ValueError."""
    if not is_valid_tag(tag_id, strict=strict):
        expected = "colon-separated hex octets" if strict else "1-64 printable characters without spaces"
        raise ValueError(f"Invalid tag id {tag_id!r}: expected {expected}")
    return tag_id
