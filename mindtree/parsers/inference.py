"""
Category and domain inference for note text.

Categories describe what kind of note something is (project, idea, ...),
domains map it onto the Ipê Mind Tree spheres. Both are keyword heuristics
over English and Portuguese vocabulary.
"""

import re
from typing import Dict, List, Optional, Tuple


# Ordered: the first matching category is the primary one.
CATEGORY_RULES: List[Tuple[str, List[str], List[str]]] = [
    (
        "project",
        [r"\b(projeto|project|criar|create|desenvolver|develop|implementar|implement|construir|build|plano|plan)\b"],
        ["**Project**", "# Project"],
    ),
    (
        "idea",
        [
            r"\b(ideia|idea|conceito|concept|pensamento|thought|proposta|proposal)\b",
            r"\b(what if|e se|podemos|could we|imagine)\b",
        ],
        ["**Idea**", "# Idea"],
    ),
    (
        "note",
        [r"\b(nota|note|observação|observation|lembrete|reminder|anotação)\b"],
        ["**Note**", "# Note"],
    ),
    (
        "concept",
        [r"\b(conceito|concept|definição|definition|teoria|theory|framework|estrutura)\b"],
        ["**Concept**", "# Concept"],
    ),
    (
        "person",
        [r"\b(pessoa|person|perfil|profile|biografia|biography)\b"],
        ["**Person**", "# Person"],
    ),
    (
        "sphere",
        [r"\b(sphere|esfera|domínio|domain|área|area)\b"],
        ["Sphere", "Esfera"],
    ),
    (
        "finance",
        [r"\b(finance|finanças|economia|econômico|investimento|investment)\b"],
        ["Finance", "Finanças"],
    ),
]

CATEGORY_VOCABULARY = frozenset(
    [rule[0] for rule in CATEGORY_RULES] + ["reference", "resource"]
)

DOMAIN_KEYWORDS: Dict[str, List[str]] = {
    "governance": ["govern", "policy", "regulation", "law", "legal", "rules", "compliance"],
    "health": ["health", "medical", "medicine", "wellness", "therapy", "healthcare", "patient"],
    "education": ["education", "learning", "teaching", "school", "university", "student", "knowledge"],
    "finance": ["finance", "money", "economic", "investment", "currency", "banking", "financial"],
    "technology": ["technology", "tech", "digital", "software", "hardware", "engineering", "innovation"],
    "community": ["community", "social", "society", "network", "people", "collective", "collaboration"],
    "resources": ["resource", "material", "supply", "sustainability", "environment", "ecological"],
    "projects": ["project", "initiative", "plan", "development", "implementation", "execution"],
    "ethics": ["ethics", "moral", "values", "principles", "responsibility", "integrity"],
}

SPECIAL_DOMAINS: List[Tuple[str, List[str]]] = [
    ("acoustical_governance", ["acoustical", "sound"]),
    ("dracologos", ["dracologos", "draco"]),
    ("techno_optimism", ["optimism", "techno-optimism"]),
]

# Fallback category per canvas element type when nothing could be inferred.
TYPE_FALLBACK_CATEGORIES = {
    "text": "note",
    "file": "resource",
    "link": "reference",
    "iframe": "reference",
    "group": "project",
}

_COMPILED_RULES = [
    (category, [re.compile(p, re.IGNORECASE) for p in patterns], markers)
    for category, patterns, markers in CATEGORY_RULES
]


def infer_categories_from_text(text: str) -> List[str]:
    """
    Infer note categories from free text.

    Each category is checked independently, so a text can carry several.
    The result keeps the fixed rule order and its first entry is treated
    as the primary category.

    Args:
        text: Raw note or canvas element text

    Returns:
        Ordered list of category names, possibly empty
    """
    if not text:
        return []

    lower_text = text.lower()
    categories = []
    for category, patterns, markers in _COMPILED_RULES:
        if any(p.search(lower_text) for p in patterns) or any(m in text for m in markers):
            categories.append(category)
    return categories


def infer_domains_from_content(content: str, title: str = "") -> List[str]:
    """
    Infer Ipê Mind Tree domains by keyword substring match over title and content.
    """
    combined = f"{title} {content}".lower()

    domains = [
        domain for domain, keywords in DOMAIN_KEYWORDS.items()
        if any(keyword in combined for keyword in keywords)
    ]
    for domain, keywords in SPECIAL_DOMAINS:
        if any(keyword in combined for keyword in keywords):
            domains.append(domain)
    return domains


def fallback_category(node_type: str) -> str:
    return TYPE_FALLBACK_CATEGORIES.get(node_type, "concept")


def primary_category(tags: List[str], metadata: Optional[dict] = None) -> str:
    """
    Pick the display group of a node.

    Uses the stored inferred category, then the first tag that is a known
    category, then the first tag, then 'uncategorized'.
    """
    if metadata and metadata.get("inferred_category"):
        return metadata["inferred_category"]
    for tag in tags:
        if tag in CATEGORY_VOCABULARY:
            return tag
    if tags:
        return tags[0]
    return "uncategorized"
