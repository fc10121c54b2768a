"""
Keyword extraction shared by assignment, search and stock-video lookups.
"""

import re
from typing import Iterable, List

# Portuguese, Spanish and English function words
STOP_WORDS = frozenset({
    # es
    "el", "la", "los", "las", "un", "una", "unos", "unas", "de", "del", "al",
    "en", "con", "por", "para", "que", "es", "son", "fue", "ser", "como",
    "más", "mas", "pero", "sus", "su", "se", "lo", "le", "les", "este", "esta",
    "estos", "estas", "ese", "esa", "muy", "sin", "sobre", "entre", "cuando",
    "donde", "también", "hay", "porque", "desde", "hasta", "todo", "todos",
    # pt
    "os", "as", "um", "uma", "uns", "umas", "do", "da", "dos", "das", "no",
    "na", "nos", "nas", "em", "com", "por", "pelo", "pela", "ao", "aos", "não",
    "nao", "mais", "muito", "seu", "sua", "seus", "suas", "isso", "isto",
    "esse", "essa", "ele", "ela", "eles", "elas", "também", "tem", "são",
    "foi", "ser", "está", "entre", "quando", "onde", "porque",
    # en
    "the", "and", "for", "are", "but", "not", "you", "all", "any", "can",
    "had", "her", "was", "one", "our", "out", "has", "his", "how", "its",
    "may", "new", "now", "old", "see", "two", "who", "did", "get", "let",
    "put", "say", "she", "too", "use", "this", "that", "with", "from", "have",
    "they", "will", "your", "what", "when", "where", "which", "their", "there",
    "been", "were", "into", "than", "then", "them", "these", "those", "about",
    "image", "photo", "picture", "stock", "free", "download", "hd", "wallpaper",
})

_NON_WORD = re.compile(r"[^\w\sáéíóúàâêôãõçñü]", re.UNICODE)


def extract_keywords(text: str, max_keywords: int = 10, min_length: int = 3) -> List[str]:
    """
    Extract simple keywords from free text.

    Lower-cases, strips punctuation (accented Latin letters are kept), keeps
    words of at least ``min_length`` characters that are not stop words,
    deduplicates preserving order and caps the result at ``max_keywords``.
    """
    if not text:
        return []

    cleaned = _NON_WORD.sub(" ", text.lower()).replace("_", " ")
    keywords: List[str] = []
    for word in cleaned.split():
        if len(word) < min_length or word in STOP_WORDS or word.isdigit():
            continue
        if word not in keywords:
            keywords.append(word)
        if len(keywords) >= max_keywords:
            break
    return keywords


def keywords_overlap(a: Iterable[str], b: Iterable[str]) -> int:
    """
    Count keywords of ``a`` that match some keyword of ``b``.

    Two keywords match when either contains the other ("dog" / "dogs").
    """
    b_list = list(b)
    count = 0
    for word in a:
        for other in b_list:
            if word in other or other in word:
                count += 1
                break
    return count


def exact_overlap(a: Iterable[str], b: Iterable[str]) -> int:
    return len(set(a) & set(b))
