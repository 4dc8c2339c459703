"""Query normalization: noise removal, topic anchoring and fallback queries."""

import logging
import re
from typing import FrozenSet, List

logger = logging.getLogger(__name__)


# Negative prompts and AI-style modifiers that language models append to image
# queries; none of them help a stock-photo search.
NOISE_PHRASES = [
    # negative prompts
    'no people',
    'no person',
    'no faces',
    'no humans',
    'without people',
    'without humans',
    'nobody',
    # people, crowd and portrait words
    'people',
    'person',
    'persons',
    'humans',
    'faces',
    'crowd',
    'crowds',
    'portrait',
    'portraits',
    'selfie',
    # style modifiers
    'atmospheric',
    'architectural detail',
    'photorealistic',
    'ultra high resolution',
    'high resolution',
    'high quality',
    'professional photo',
    'stock photo',
    'editorial',
    'cinematic',
    'dramatic lighting',
    'moody',
    'vibrant colors',
    'texture',
    'macro',
    'close up',
    'detailed',
]

# Longest first so "no people" is removed before "people"
_NOISE_PATTERNS = [
    re.compile(r'(?<!\w)' + re.escape(phrase) + r'(?!\w)')
    for phrase in sorted(NOISE_PHRASES, key=len, reverse=True)
]

_LIST_PUNCTUATION = re.compile(r'[,;|]+')
_WHITESPACE = re.compile(r'\s+')
_TOKEN = re.compile(r'[^\W_]+')
_TOPIC_SPLIT = re.compile(r'[\s:,\-]+')

MIN_QUERY_CHARS = 2
MIN_SIGNIFICANT_TOKEN_LENGTH = 4
MAX_FALLBACKS = 3

TOPIC_SKIP_WORDS = {
    'the', 'a', 'an', 'guide', 'to', 'of', 'comprehensive', 'ultimate',
    'complete', 'exploring', 'travel', 'luxury', 'best', 'top',
}

# Words too generic to keep a fallback query on topic
GENERIC_TOKENS = {
    'with', 'from', 'that', 'this', 'these', 'those', 'into', 'over', 'under',
    'near', 'their', 'there', 'about', 'after', 'before', 'while', 'during',
    'image', 'images', 'photo', 'photos', 'photograph', 'picture', 'pictures',
    'view', 'views', 'scene', 'scenes', 'shot', 'shots', 'background',
    'style', 'landscape', 'beautiful', 'stunning', 'amazing', 'best', 'guide',
    'travel', 'luxury', 'ultimate', 'complete', 'comprehensive', 'exploring',
    'modern', 'classic', 'typical', 'famous', 'various', 'example',
}

# Tuned heuristic: queries naming a specific place are better served by
# Wikimedia than by stock photography.
LANDMARK_KEYWORDS = [
    'hotel', 'resort', 'lodge', 'museum', 'monument', 'memorial', 'statue',
    'park', 'tower', 'cathedral', 'church', 'basilica', 'chapel', 'abbey',
    'mosque', 'temple', 'shrine', 'palace', 'castle', 'fortress', 'fort',
    'bridge', 'square', 'plaza', 'landmark', 'ruins', 'opera', 'theatre',
    'theater', 'stadium', 'library', 'lighthouse', 'pyramid', 'colosseum',
]
_LANDMARK_PATTERN = re.compile(
    r'\b(?:' + '|'.join(re.escape(k) for k in LANDMARK_KEYWORDS) + r')s?\b'
)

# Tuned heuristic: image-heavy book topics
VISUAL_KEYWORDS = [
    'travel', 'trip', 'vacation', 'destination', 'tour', 'paris', 'rome', 'tokyo',
    'cooking', 'recipe', 'food', 'cuisine', 'baking',
    'photography', 'photo', 'camera',
    'art', 'painting', 'drawing', 'design',
    'architecture', 'building', 'interior',
    'nature', 'wildlife', 'garden', 'landscape',
    'fashion', 'style', 'clothing',
    'diy', 'craft', 'woodworking',
]

VISUAL_IMAGES_PER_CHAPTER = 4
INFORMATIONAL_IMAGES_PER_CHAPTER = 2


def _strip_noise_once(text: str) -> str:
    cleaned = _LIST_PUNCTUATION.sub(' ', text.lower())
    for pattern in _NOISE_PATTERNS:
        cleaned = pattern.sub(' ', cleaned)
    return _WHITESPACE.sub(' ', cleaned).strip()


def clean_query(raw: str) -> str:
    """Case-fold a query and strip noise phrases by whole-word match.

    Removal is repeated until nothing changes, so removing one phrase can
    never leave another noise phrase behind.
    """
    if not raw:
        return ""

    cleaned = _strip_noise_once(raw)
    while True:
        again = _strip_noise_once(cleaned)
        if again == cleaned:
            break
        cleaned = again

    logger.debug('Cleaned query "%s" -> "%s"', raw, cleaned)
    return cleaned


def is_query_usable(cleaned: str) -> bool:
    """Return False when a cleaned query is too short to search for."""
    return bool(cleaned) and len(cleaned.strip()) >= MIN_QUERY_CHARS


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens."""
    return _TOKEN.findall(text.lower())


def significant_tokens(query: str) -> FrozenSet[str]:
    """Tokens that carry the subject of a query (>= 4 chars, not generic)."""
    return frozenset(
        token for token in tokenize(query)
        if len(token) >= MIN_SIGNIFICANT_TOKEN_LENGTH and token not in GENERIC_TOKENS
    )


def first_significant_token(query: str) -> str | None:
    for token in tokenize(query):
        if len(token) >= MIN_SIGNIFICANT_TOKEN_LENGTH and token not in GENERIC_TOKENS:
            return token
    return None


def extract_topic_anchor(topic: str | None) -> str | None:
    """Return the first meaningful word of a book topic, capitalized."""
    if not topic:
        return None

    for word in _TOPIC_SPLIT.split(topic):
        if len(word) <= 2:
            continue
        if word.lower() in TOPIC_SKIP_WORDS:
            continue
        return word[0].upper() + word[1:].lower()

    return None


def anchor_query_to_topic(cleaned: str, topic: str | None) -> str:
    """Prefix the query with the topic anchor unless it already mentions it."""
    anchor = extract_topic_anchor(topic)
    if not anchor:
        return cleaned

    # Plain substring containment: "romantic" already counts as mentioning "Rome"
    if anchor.lower() in cleaned.lower():
        return cleaned

    anchored = f"{anchor} {cleaned}".strip()
    logger.debug('Anchored query with "%s": "%s"', anchor, anchored)
    return anchored


def generate_fallback_queries(query: str) -> List[str]:
    """Shorter versions of a query: leading 3 words, then 2, then 1.

    Every fallback keeps at least one significant token of the original
    query (when it has any) so broadening never drifts off subject.
    """
    words = [w for w in query.split() if len(w) > 2]
    candidates: List[str] = []

    if len(words) > 3:
        candidates.append(' '.join(words[:3]))
    if len(words) > 2:
        candidates.append(' '.join(words[:2]))
    if len(words) > 1 and len(words[0]) > 3:
        candidates.append(words[0])

    locked = significant_tokens(query)
    original = ' '.join(query.lower().split())
    fallbacks: List[str] = []
    for candidate in candidates:
        normalized = candidate.lower()
        if normalized == original or normalized in (f.lower() for f in fallbacks):
            continue
        if locked and not (significant_tokens(candidate) & locked):
            continue
        fallbacks.append(candidate)

    logger.debug('Generated %d fallbacks for "%s": %s', len(fallbacks), query, fallbacks)
    return fallbacks[:MAX_FALLBACKS]


def is_landmark_query(query: str) -> bool:
    """Heuristic: does the query name a hotel, museum, monument or similar place?"""
    return bool(_LANDMARK_PATTERN.search(query.lower()))


def is_visual_topic(topic: str) -> bool:
    """Heuristic: is this an image-heavy topic (travel, cooking, art ...)?"""
    lowered = (topic or "").lower()
    return any(keyword in lowered for keyword in VISUAL_KEYWORDS)


def images_per_chapter(topic: str) -> int:
    """Number of images a chapter of this topic should carry."""
    if is_visual_topic(topic):
        return VISUAL_IMAGES_PER_CHAPTER
    return INFORMATIONAL_IMAGES_PER_CHAPTER
