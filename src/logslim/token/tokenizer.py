"""Weighted tokenization for log similarity.

tokenize() emits technical tokens (HTTP verbs, status codes, UUIDs, file
names, call shapes, SQL keywords) twice, then the remaining non-stop-word
tokens, then 2- and 3-grams over those remaining tokens. The duplication and
the n-grams are what calculate_token_weights() later turns into weights.
"""
from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterator, List, Sequence

STOP_WORDS = frozenset("""
a about above according accordingly across after again all along also although
amid amidst among amongst an and any anyway are around as aside astride at away
back barring be because been before behind being below beneath beside besides
between beyond both bottom but by can circa concerning consequently considering
could despite did do does down due during each either else even except
excluding failing false few finally following for forth from front further
furthermore given gone had has have he hence her here him his how however i in
including inside instead into is it its just left like likewise may me
meanwhile might minus more moreover most must my near nearby neither next no
nonetheless nor not notwithstanding now null of off ok okay on only onto
opposite or other otherwise our out outside over owing own past pending per
plus pro qua rather regarding respecting right round same save saving shall
she short should side similarly since so some still subsequent subsequently
such than thanks that the their them then thence there therefore these they
this those though through throughout thru thus till to too top toward towards
true under underneath undefined unless unlike until unto up upon us versus very
via vice vis was we were what when where whether which while who why will with
within without worth would yes yet you your
""".split())

_TECHNICAL_PATTERNS = [
    re.compile(r"^(?:get|post|put|delete|patch|head|options|connect|trace)$", re.I),
    re.compile(r"^\d{3}$"),
    re.compile(r"^(?:error|exception|failed|failure|timeout|abort|cancel|reject)$", re.I),
    re.compile(r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$", re.I),
    re.compile(r"\.(?:js|ts|jsx|tsx|py|java|c|cpp|h|php|rb|go|rs|html|css|json|xml|yaml|yml|md|txt|log)$", re.I),
    re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*\([^)]*\)$"),
    re.compile(r"^/[a-zA-Z0-9/_-]*$"),
    re.compile(r"^(?:select|insert|update|delete|create|drop|alter|table|index|where|join|from|into)$", re.I),
]

_STATUS_CODE = re.compile(r"^\d{3}$")
_RAW_SPLIT = re.compile(r"[^a-zA-Z0-9._/\-()]+")
_LOWER_SPLIT = re.compile(r"[^a-z0-9._/-]+")
_BASIC_SPLIT = re.compile(r"[^a-z0-9]+")


def is_technical_token(token: str) -> bool:
    return any(p.search(token) for p in _TECHNICAL_PATTERNS)


def ngrams(tokens: Sequence[str], min_n: int = 2, max_n: int = 3) -> Iterator[str]:
    for n in range(min_n, max_n + 1):
        for i in range(len(tokens) - n + 1):
            yield " ".join(tokens[i:i + n])


def tokenize_basic(text: str) -> List[str]:
    """Lower-case split on non-alphanumerics."""
    return [t for t in _BASIC_SPLIT.split(text.lower()) if t]


def tokenize(text: str) -> List[str]:
    """Enhanced tokenization with technical-token boosting and n-grams."""
    technical: List[str] = []
    technical_set = set()
    for token in _RAW_SPLIT.split(text):
        if token and is_technical_token(token):
            lower = token.lower()
            technical.append(lower)
            technical_set.add(lower)

    regular = [
        t for t in _LOWER_SPLIT.split(text.lower())
        if len(t) > 1 and t not in STOP_WORDS and t not in technical_set
    ]
    return technical + technical + regular + list(ngrams(regular))


def calculate_token_weights(tokens: Sequence[str]) -> Dict[str, float]:
    """Per-token weight: technical x3, status code x2 more, n-gram x1.5,
    times a position decay from 1.0 down to 0.5. Repeats accumulate."""
    weights: Dict[str, float] = {}
    n = len(tokens)
    for i, token in enumerate(tokens):
        weight = 1.0
        if is_technical_token(token):
            weight *= 3.0
        if _STATUS_CODE.match(token):
            weight *= 2.0
        if " " in token:
            weight *= 1.5
        weight *= max(0.5, 1.0 - (i / n) * 0.5)
        weights[token] = weights.get(token, 0.0) + weight
    return weights


@dataclass
class TokenStats:
    total: int
    unique: int
    technical: int
    ngrams: int
    top: List[tuple]


def token_stats(tokens: Sequence[str], top_k: int = 5) -> TokenStats:
    counts = Counter(tokens)
    return TokenStats(
        total=len(tokens),
        unique=len(counts),
        technical=sum(1 for t in tokens if is_technical_token(t)),
        ngrams=sum(1 for t in tokens if " " in t),
        top=counts.most_common(top_k),
    )
