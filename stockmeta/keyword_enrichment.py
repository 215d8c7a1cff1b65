"""
StockMeta - Keyword Enrichment
Adds related terms, scientific names, technical terms and long-tail
buyer-intent phrases to a keyword list.
"""

import logging

from stockmeta.keyword_normalizer import normalize_keywords
from stockmeta.policy import KEYWORD_CEILING

logger = logging.getLogger(__name__)


MAX_LONG_TAIL = 20
MAX_LONG_TAIL_INSERT = 15
MAX_PHRASE_LENGTH = 40
TOP_WINDOW = 10


# ─── Related Terms ────────────────────────────────────────────────────────────

RELATED_TERMS = {
    # Animals
    'dog': ['puppy', 'canine', 'pet', 'companion'],
    'cat': ['kitten', 'feline', 'pet', 'companion'],
    'bird': ['avian', 'feathered', 'flying'],
    'horse': ['equine', 'stallion', 'mare'],
    # Colors
    'red': ['crimson', 'scarlet', 'ruby'],
    'blue': ['azure', 'navy', 'cobalt'],
    'green': ['emerald', 'lime', 'forest'],
    'white': ['ivory', 'snow', 'pure'],
    'black': ['ebony', 'charcoal', 'dark'],
    # Nature and tropical
    'tree': ['forest', 'woodland', 'nature'],
    'palm': ['palm tree', 'coconut palm', 'tropical tree', 'palm frond'],
    'tropical': ['exotic', 'island', 'paradise', 'caribbean', 'hawaiian'],
    'beach': ['shore', 'coast', 'seaside', 'oceanfront', 'seashore'],
    'flower': ['bloom', 'blossom', 'petal'],
    'mountain': ['peak', 'summit', 'hill'],
    'ocean': ['sea', 'water', 'marine', 'aquatic'],
    'nature': ['outdoor', 'natural', 'wildlife', 'environment'],
    'landscape': ['scenery', 'vista', 'view', 'panorama'],
    # Travel
    'vacation': ['holiday', 'getaway', 'trip', 'travel', 'journey'],
    'resort': ['hotel', 'spa', 'retreat', 'lodge', 'accommodation'],
    'travel': ['tourism', 'journey', 'adventure', 'exploration', 'trip'],
    'island': ['tropical', 'paradise', 'ocean', 'coastal'],
    'paradise': ['heaven', 'utopia', 'bliss', 'tropical', 'exotic'],
    # Wellness
    'wellness': ['health', 'wellbeing', 'self-care', 'mindfulness'],
    'spa': ['wellness', 'relaxation', 'retreat', 'therapy'],
    'relaxation': ['calm', 'peace', 'tranquility', 'serenity', 'zen'],
    'luxury': ['premium', 'exclusive', 'high-end', 'deluxe', 'upscale'],
    # Technology
    'computer': ['pc', 'laptop', 'device'],
    'phone': ['mobile', 'smartphone', 'device'],
    'internet': ['web', 'online', 'digital'],
    # People
    'woman': ['female', 'lady', 'person'],
    'man': ['male', 'gentleman', 'person'],
    'child': ['kid', 'youngster', 'youth'],
    # Food
    'apple': ['fruit', 'fresh', 'healthy'],
    'bread': ['baked', 'food', 'fresh'],
    'coffee': ['beverage', 'drink', 'hot'],
    # Business
    'office': ['workspace', 'business', 'corporate'],
    'meeting': ['conference', 'discussion', 'business'],
    'team': ['group', 'collaboration', 'work'],
    # Background and design
    'background': ['backdrop', 'wallpaper', 'texture', 'pattern'],
    'isolated': ['cutout', 'transparent', 'removed', 'extracted'],
    'silhouette': ['outline', 'shadow', 'shape', 'profile'],
}

LOCATION_KEYWORDS = ('portland', 'oregon', 'usa', 'new york', 'california', 'texas', 'florida')
LOCATION_TERMS = ('north america', 'united states', 'usa')

CATEGORY_TERMS = {
    'animal': ['wildlife', 'nature', 'mammal'],
    'person': ['human', 'people', 'individual'],
    'building': ['architecture', 'structure', 'construction'],
    'vehicle': ['transportation', 'automobile', 'car'],
    'food': ['cuisine', 'meal', 'dining'],
    'nature': ['outdoor', 'landscape', 'scenic'],
    'technology': ['digital', 'modern', 'innovation'],
}

ADOBE_BUYER_INTENT_TERMS = ('commercial use', 'royalty free', 'stock photo', 'business', 'marketing')


# ─── Scientific Names ─────────────────────────────────────────────────────────

SCIENTIFIC_NAMES = {
    'dog': ['canis lupus familiaris', 'canine'],
    'cat': ['felis catus', 'feline'],
    'horse': ['equus caballus', 'equine'],
    'bird': ['aves', 'avian'],
    'apple': ['malus domestica'],
    'rose': ['rosa'],
    'oak': ['quercus'],
    # Grasses
    'grass': ['poaceae', 'gramineae'],
    'prairie dropseed': ['sporobolus heterolepis'],
    'karl foerster': ['calamagrostis acutiflora'],
    'calamagrostis': ['calamagrostis acutiflora'],
    'sporobolus': ['sporobolus heterolepis'],
    # Plants
    'sunflower': ['helianthus annuus'],
    'tulip': ['tulipa'],
    'daisy': ['bellis perennis'],
    'lavender': ['lavandula'],
    'rosemary': ['rosmarinus officinalis'],
    'basil': ['ocimum basilicum'],
    'tomato': ['solanum lycopersicum'],
    'potato': ['solanum tuberosum'],
    'corn': ['zea mays'],
    'wheat': ['triticum'],
    'rice': ['oryza sativa'],
    # Trees
    'pine': ['pinus'],
    'maple': ['acer'],
    'birch': ['betula'],
    'willow': ['salix'],
    'elm': ['ulmus'],
    'cedar': ['cedrus'],
    # Animals
    'cow': ['bos taurus', 'bovine'],
    'sheep': ['ovis aries', 'ovine'],
    'pig': ['sus scrofa domesticus', 'porcine'],
    'chicken': ['gallus gallus domesticus'],
    'duck': ['anatidae'],
    'goose': ['anser'],
    'rabbit': ['oryctolagus cuniculus'],
    'squirrel': ['sciuridae'],
    'deer': ['cervidae'],
    'bear': ['ursidae'],
    'wolf': ['canis lupus'],
    'fox': ['vulpes'],
    'lion': ['panthera leo'],
    'tiger': ['panthera tigris'],
    'elephant': ['elephantidae'],
    # Dog breeds
    'jack russel terrier': ['canis lupus familiaris'],
    'golden retriever': ['canis lupus familiaris'],
    'labrador': ['canis lupus familiaris'],
    'german shepherd': ['canis lupus familiaris'],
    'bulldog': ['canis lupus familiaris'],
    'poodle': ['canis lupus familiaris'],
    'beagle': ['canis lupus familiaris'],
    'husky': ['canis lupus familiaris'],
    # Cat breeds
    'persian': ['felis catus'],
    'siamese': ['felis catus'],
    'maine coon': ['felis catus'],
    'british shorthair': ['felis catus'],
}


TECHNICAL_TERMS = (
    'high resolution', 'high-resolution', 'highres',
    'perfectly cutout', 'perfectly cut out', 'cutout', 'cut out',
    'isolated png', 'isolated', 'transparent png', 'transparent background',
    'png', 'vector', 'svg', 'eps',
    '4k', 'hd', 'ultra hd', '8k', '60fps', '30fps',
    'frontal', 'side view', 'top view', 'set of', 'collection of',
)


# ─── Long-Tail Phrases ────────────────────────────────────────────────────────

LONG_TAIL_MODIFIERS = {
    'background': ['wallpaper', 'texture', 'pattern', 'backdrop'],
    'concept': ['idea', 'theme', 'mood', 'aesthetic', 'vibe'],
    'destination': ['location', 'place', 'spot', 'venue'],
    'design': ['style', 'decor', 'aesthetic', 'theme'],
    'lifestyle': ['living', 'life', 'experience', 'culture'],
    'vacation': ['holiday', 'getaway', 'trip', 'escape'],
    'tropical': ['island', 'paradise', 'exotic', 'caribbean'],
    'beach': ['coastal', 'seaside', 'oceanfront', 'shoreline'],
    'nature': ['outdoor', 'natural', 'wildlife', 'environment'],
    'wellness': ['health', 'wellbeing', 'self-care', 'mindfulness'],
    'luxury': ['premium', 'exclusive', 'high-end', 'deluxe'],
    'spa': ['wellness', 'relaxation', 'retreat', 'therapy'],
}

COMMON_SUFFIXES = ('background', 'concept', 'design', 'wallpaper', 'isolated', 'silhouette', 'vector')

ADOBE_LONG_TAIL = (
    'commercial use', 'royalty free', 'stock photo', 'business use',
    'marketing material', 'advertising design', 'print ready', 'web ready',
)


class _KeywordList:
    """Ordered list that ignores case-insensitive repeats and stops at a ceiling."""

    def __init__(self, keywords, ceiling=None):
        self.items = list(keywords)
        self.seen = {k.lower() for k in self.items}
        self.ceiling = ceiling

    def add(self, term):
        if term.lower() in self.seen:
            return
        if self.ceiling is not None and len(self.items) >= self.ceiling:
            return
        self.items.append(term)
        self.seen.add(term.lower())


def enrich_keywords(keywords, title, platform):
    """Add related terms, location hierarchy, category terms and Adobe buyer-intent terms."""
    enriched = _KeywordList(keywords, ceiling=KEYWORD_CEILING)

    for keyword in keywords:
        for term in RELATED_TERMS.get(keyword.lower(), ()):
            enriched.add(term)

    if any(loc in k.lower() for k in keywords for loc in LOCATION_KEYWORDS):
        for term in LOCATION_TERMS:
            enriched.add(term)

    for keyword in keywords:
        lower = keyword.lower()
        for category, terms in CATEGORY_TERMS.items():
            if category in lower or lower in category:
                for term in terms:
                    enriched.add(term)

    if platform == 'adobe':
        for term in ADOBE_BUYER_INTENT_TERMS:
            enriched.add(term)

    return enriched.items


def add_scientific_names(keywords):
    """Add Latin names for recognised plants and animals.

    Exact matches add every name part plus the full name; partial matches
    (``"prairie dropseed grass"``) add only the parts.
    """
    enriched = _KeywordList(keywords)

    def add_parts(name):
        for part in name.split():
            if len(part) > 2:
                enriched.add(part)

    for keyword in keywords:
        lower = keyword.lower().strip()
        for name in SCIENTIFIC_NAMES.get(lower, ()):
            add_parts(name)
            if len(name) < 50:
                enriched.add(name)
        for key, names in SCIENTIFIC_NAMES.items():
            if key in lower or lower in key:
                for name in names:
                    add_parts(name)

    return enriched.items


def extract_technical_keywords(keywords, title):
    """Copy technical attributes mentioned in the title into the keywords."""
    enriched = _KeywordList(keywords)
    title_lower = (title or '').lower()

    for term in TECHNICAL_TERMS:
        if term not in title_lower or term in enriched.seen:
            continue
        words = term.split()
        for word in words:
            if len(word) > 1:
                enriched.add(word)
        if len(words) > 1 and len(term) < 30:
            enriched.add(term)

    return enriched.items


def generate_long_tail_keywords(keywords, title, platform):
    """Build multi-word buyer-intent phrases from the existing keywords."""
    existing = {k.lower() for k in keywords}
    long_tail = []

    def add(phrase):
        if phrase.lower() not in existing and len(phrase) < MAX_PHRASE_LENGTH:
            long_tail.append(phrase)
            existing.add(phrase.lower())

    for keyword in keywords:
        lower = keyword.lower()
        for category, terms in LONG_TAIL_MODIFIERS.items():
            if category in lower or lower in category:
                for term in terms:
                    add(f'{keyword} {term}')
                    add(f'{term} {keyword}')
        if 3 <= len(keyword) <= 20:
            for suffix in COMMON_SUFFIXES:
                add(f'{keyword} {suffix}')

    top = keywords[:15]
    for i in range(min(10, len(top) - 1)):
        for j in range(i + 1, min(i + 3, len(top))):
            first, second = top[i], top[j]
            if len(first) < 3 or len(second) < 3:
                continue
            for combo in (f'{first} {second}', f'{second} {first}'):
                if len(combo.split(' ')) <= 3:
                    add(combo)

    if platform == 'adobe':
        for phrase in ADOBE_LONG_TAIL:
            add(phrase)

    return long_tail[:MAX_LONG_TAIL]


def splice_long_tail(keywords, long_tail, target_count):
    """Insert new long-tail phrases after the first 10 keywords.

    Phrases already present (case-insensitively) or 40+ characters long
    are skipped, and no more than ``min(15, free slots)`` are used.
    """
    existing = {k.lower() for k in keywords}
    free_slots = max(0, target_count - len(keywords))
    fresh = [
        phrase for phrase in long_tail
        if phrase.lower() not in existing and len(phrase) < MAX_PHRASE_LENGTH
    ][:min(MAX_LONG_TAIL_INSERT, free_slots)]
    if not fresh:
        return list(keywords)

    top, rest = keywords[:TOP_WINDOW], keywords[TOP_WINDOW:]
    insert_at = min(MAX_LONG_TAIL_INSERT, len(rest))
    spliced = top + fresh[:insert_at] + rest + fresh[insert_at:]
    return spliced[:target_count]


def run_enrichment(keywords, title, platform, target_count, seeds=(), extra_blocklist=()):
    """
    Apply every enrichment layer in order and re-normalize the result.

    Args:
        keywords: Normalized keywords from the model output.
        title: Final title (technical terms are read from it).
        platform: 'general', 'adobe' or 'shutterstock'.
        target_count: Keyword target for this request.
        seeds: Seeds passed through to the final normalization.
        extra_blocklist: User negative keywords.

    Returns:
        The enriched keyword list, deduplicated and capped at target_count.
    """
    if not keywords:
        return []
    before = len(keywords)
    enriched = enrich_keywords(keywords, title, platform)
    enriched = add_scientific_names(enriched)
    enriched = extract_technical_keywords(enriched, title)
    long_tail = generate_long_tail_keywords(enriched, title, platform)
    enriched = splice_long_tail(enriched, long_tail, target_count)
    result = normalize_keywords(enriched, target_count, seeds, extra_blocklist)
    logger.debug("Enrichment: %d -> %d keywords (target %d)", before, len(result), target_count)
    return result
