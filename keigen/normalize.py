import re

_SEPARATORS = re.compile(r"[\W_]+")


def canonical_name(value: str | None) -> str:
    """Canonical key for job/ability/buff names.

    Case, whitespace and punctuation are dropped so "Dark Knight",
    "DarkKnight" and "dark-knight" all resolve to "darkknight".
    """
    if not value:
        return ""
    return _SEPARATORS.sub("", value.strip().lower())


def same_name(a: str | None, b: str | None) -> bool:
    return bool(a) and canonical_name(a) == canonical_name(b)
