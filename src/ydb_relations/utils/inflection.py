"""
Утилиты для вычисления имён классов по именам отношений
"""

import re

_IRREGULAR = {
    "people": "person",
    "men": "man",
    "women": "woman",
    "children": "child",
    "feet": "foot",
    "teeth": "tooth",
    "mice": "mouse",
}

_UNCOUNTABLE = {"data", "info", "information", "equipment", "news", "series", "species"}

_SINGULAR_RULES = [
    (re.compile(r"(?i)(quiz)zes$"), r"\1"),
    (re.compile(r"(?i)(matr|vert|ind)ices$"), r"\1ex"),
    (re.compile(r"(?i)(alias|status|bus)es$"), r"\1"),
    (re.compile(r"(?i)(x|ch|ss|sh)es$"), r"\1"),
    (re.compile(r"(?i)([^aeiouy])ies$"), r"\1y"),
    (re.compile(r"(?i)(ss|us)$"), r"\1"),
    (re.compile(r"(?i)s$"), ""),
]


def singularize(word: str) -> str:
    """
    Приведение существительного к единственному числу

    Args:
        word: Слово во множественном числе

    Returns:
        Слово в единственном числе
    """
    lower = word.lower()
    if lower in _UNCOUNTABLE:
        return word
    if lower in _IRREGULAR:
        singular = _IRREGULAR[lower]
        return singular.capitalize() if word[:1].isupper() else singular

    for pattern, replacement in _SINGULAR_RULES:
        if pattern.search(word):
            return pattern.sub(replacement, word)
    return word


def camelize(name: str) -> str:
    """snake_case -> CamelCase"""
    return "".join(part[:1].upper() + part[1:] for part in name.split("_") if part)


def classify(name: str, singular: bool = False) -> str:
    """
    Имя класса по имени отношения: "cars" -> "Car", "boss" -> "Boss"

    Args:
        name: Имя отношения
        singular: Привести последнее слово к единственному числу
    """
    if singular:
        head, _, tail = name.rpartition("_")
        name = f"{head}_{singularize(tail)}" if head else singularize(tail)
    return camelize(name)
