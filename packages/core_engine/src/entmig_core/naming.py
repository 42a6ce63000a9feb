from typing import List

COMMON_INITIALISMS = {
    "ACL", "API", "ASCII", "CPU", "CSS", "DNS", "EOF", "GUID", "HTML", "HTTP",
    "HTTPS", "ID", "IP", "JSON", "LHS", "QPS", "RAM", "RHS", "RPC", "SLA",
    "SMTP", "SQL", "SSH", "TCP", "TLS", "TTL", "UDP", "UI", "UID", "UUID",
    "URI", "URL", "UTF8", "VM", "XML",
}

_IRREGULAR_PLURALS = {
    "person": "people",
    "man": "men",
    "woman": "women",
    "child": "children",
    "tooth": "teeth",
    "foot": "feet",
    "mouse": "mice",
    "goose": "geese",
}

_PLURAL_SUFFIXES = ("ies", "ses", "xes", "zes", "ches", "shes")
_VOWELS = "aeiou"


def to_snake(name: str) -> str:
    out: List[str] = []
    for idx, char in enumerate(name):
        if char.isupper():
            prev_lower = idx > 0 and name[idx - 1].islower()
            next_lower = idx + 1 < len(name) and name[idx + 1].islower()
            if idx > 0 and (prev_lower or next_lower):
                out.append("_")
            out.append(char.lower())
            continue
        out.append(char)
    return "".join(out)


def normalize_identifier(name: str) -> str:
    """Canonicalize a raw identifier to snake_case.

    An empty result means "no override".
    """
    cleaned = name.strip().replace("-", "_").replace(" ", "_").strip("_")
    if not cleaned:
        return ""
    snake = to_snake(cleaned)
    while "__" in snake:
        snake = snake.replace("__", "_")
    return snake


def pluralize(name: str) -> str:
    if not name:
        return name
    word = to_snake(name)

    if word in _IRREGULAR_PLURALS:
        return _IRREGULAR_PLURALS[word]

    if word.endswith(_PLURAL_SUFFIXES):
        return word

    if word.endswith("y") and len(word) > 1 and word[-2] not in _VOWELS:
        return word[:-1] + "ies"

    if word.endswith("fe"):
        return word[:-2] + "ves"
    if word.endswith("f") and len(word) > 1 and word[-2] != "f":
        return word[:-1] + "ves"

    if word.endswith(("ch", "sh", "x", "z")):
        return word + "es"

    if word.endswith("s"):
        if word.endswith(("ss", "us", "is")):
            return word + "es"
        return word

    if word.endswith("o") and len(word) > 1 and word[-2] not in _VOWELS:
        return word + "es"

    return word + "s"


def table_name(entity_name: str) -> str:
    return pluralize(entity_name)


def export_name(name: str) -> str:
    """PascalCase name with common initialisms upper-cased (``user_id`` -> ``UserID``)."""
    parts = [part for part in to_snake(name).replace("-", "_").split("_") if part]
    out: List[str] = []
    for part in parts:
        upper = part.upper()
        if upper in COMMON_INITIALISMS:
            out.append(upper)
        else:
            out.append(part[:1].upper() + part[1:].lower())
    return "".join(out)


def default_join_table_name(left: str, right: str) -> str:
    return "_".join(sorted([pluralize(left), pluralize(right)]))


def foreign_key_column(entity_name: str) -> str:
    return f"{to_snake(entity_name)}_id"


def fk_constraint_name(table: str, column: str) -> str:
    return f"fk_{table}_{column}"


def unique_constraint_name(table: str, column: str) -> str:
    """Name PostgreSQL gives an inline column UNIQUE constraint."""
    return f"{table}_{column}_key"
