"""
StockMeta - Policy Tables
Word lists, brand lists and patterns that drive title cleaning,
keyword filtering and the platform compliance rules.
"""

import re


# ─── Vocabulary ───────────────────────────────────────────────────────────────

# AI model names that must never leak into titles or keywords.
BANNED_PROVIDER_WORDS = frozenset({'gemini', 'mistral'})

# Provider names that betray a title written from the filename, not the image.
PROVIDER_NAME_PATTERN = re.compile(r'\b(gemini|mistral|google|openai)\b', re.IGNORECASE)

STOPWORDS = frozenset({
    'a', 'an', 'and', 'are', 'as', 'at', 'be', 'by', 'for', 'from', 'in', 'into',
    'is', 'it', 'of', 'on', 'or', 'out', 'the', 'to', 'with',
})

# Junk tokens that must NOT become subject hints when read from a filename.
FILENAME_JUNK_TOKENS = frozenset({
    'generated', 'generate', 'image', 'img', 'photo', 'photograph', 'picture', 'wallpaper',
    'final', 'copy', 'export', 'new', 'untitled', 'file', 'files', 'download',
    'high', 'quality', 'professional', 'commercial', 'stock', 'royalty', 'royalty-free', 'rf',
    'gemini', 'mistral', 'gpt', 'ai', 'stable', 'midjourney', 'version', 'v1', 'v2', 'v3',
    'jpeg', 'jpg', 'png', 'webp', 'svg', 'eps', 'mp4', 'mov', 'm4v', 'webm',
})

MIN_KEYWORD_LENGTH = 3
KEYWORD_CEILING = 60
MAX_FILENAME_HINTS = 12
FALLBACK_TITLE = 'commercial stock asset'

# Connector words a hard-trimmed title must not end on.
TITLE_CONNECTOR_WORDS = (
    'by', 'with', 'and', 'or', 'of', 'to', 'for', 'from', 'in', 'on', 'at', 'into', 'as',
)

# Words that should NEVER appear at the end of a description.
DANGLING_TAIL_WORDS = frozenset({
    'the', 'a', 'an', 'and', 'or', 'but', 'nor', 'for', 'yet', 'so',
    'in', 'on', 'at', 'to', 'of', 'by', 'as', 'is', 'it', 'its',
    'with', 'from', 'into', 'that', 'this', 'than', 'then',
    'are', 'was', 'were', 'be', 'been', 'being',
    'has', 'have', 'had', 'do', 'does', 'did',
    'will', 'would', 'shall', 'should', 'may', 'might', 'can', 'could',
    'not', 'no', 'if', 'when', 'where', 'while', 'which', 'who',
    'their', 'our', 'your', 'his', 'her',
})


# ─── Brand / IP Detection ─────────────────────────────────────────────────────

BRAND_NAMES = frozenset({
    'apple', 'google', 'microsoft', 'amazon', 'facebook', 'meta', 'twitter', 'x', 'instagram',
    'youtube', 'netflix', 'disney', 'nike', 'adidas', 'coca-cola', 'pepsi', 'starbucks',
    'mcdonalds', 'burger king', 'toyota', 'honda', 'ford', 'tesla', 'bmw', 'mercedes',
    'samsung', 'sony', 'nintendo', 'playstation', 'xbox', 'iphone', 'ipad', 'android',
    'windows', 'macos', 'linux', 'adobe', 'photoshop', 'illustrator',
})

STYLE_REFERENCE_PATTERNS = (
    re.compile(r'in the style of', re.IGNORECASE),
    re.compile(r'inspired by', re.IGNORECASE),
    re.compile(r'influenced by', re.IGNORECASE),
    re.compile(r'similar to', re.IGNORECASE),
    re.compile(r'like\s+(?:the\s+)?(?:movie|film|comic|book|game|franchise)', re.IGNORECASE),
    re.compile(r'drawing on', re.IGNORECASE),
    re.compile(r'in the tradition of', re.IGNORECASE),
)

# Generic terms that shouldn't dominate the first 10 Adobe keywords.
GENERIC_KEYWORDS = frozenset({
    'design', 'graphic', 'element', 'item', 'object', 'thing', 'image', 'photo', 'picture',
    'illustration', 'vector', 'icon', 'symbol', 'pattern', 'background', 'texture',
})

# Rules in this set are reported as warnings; the rest of the Adobe rules block.
# Move a name out of this set to make that rule blocking.
ADVISORY_ONLY_CHECKS = frozenset({
    'title_length',
    'comma_density',
    'name_like_title',
    'combined_phrase',
    'generic_density',
    'mixed_language',
})

ADOBE_RECOMMENDED_TITLE_LENGTH = 70
HARD_TITLE_LIMIT = 200
DESCRIPTION_LIMIT = 150


# ─── Background Phrases ───────────────────────────────────────────────────────

_COLORS = 'green|blue|red|yellow|orange|purple|pink|brown|black|gray|grey|colored|coloured'
_BG_COLORS = 'green|blue|red|yellow|orange|purple|pink|brown|black|gray|grey'

BACKGROUND_COLOR_PATTERNS = (
    re.compile(rf'\b({_COLORS})\s+background\b', re.IGNORECASE),
    re.compile(rf'\bon\s+({_COLORS})\s+background\b', re.IGNORECASE),
    re.compile(rf'\bwith\s+({_COLORS})\s+background\b', re.IGNORECASE),
    re.compile(rf'\b({_BG_COLORS})\s+bg\b', re.IGNORECASE),
)
COLORED_BACKGROUND = re.compile(rf'\b({_COLORS})\s+background\b', re.IGNORECASE)

TRANSPARENT_PHRASE = 'isolated on transparent background'
WHITE_PHRASE = 'isolated on white background'


# ─── Quality Scoring ──────────────────────────────────────────────────────────

GENERIC_TITLE_WORDS = frozenset({
    'design', 'graphic', 'image', 'photo', 'picture', 'element', 'item', 'object', 'thing',
})

LOW_VALUE_KEYWORDS = frozenset({
    'professional', 'high quality', 'stock', 'commercial', 'royalty free', 'royalty-free',
    'image', 'photo', 'photograph', 'picture', 'generated', 'gemini', 'mistral',
})

FILLER_KEYWORDS = ('design', 'graphic', 'element', 'item', 'object', 'thing')


# ─── Fixed-Count Backfill ─────────────────────────────────────────────────────

# Broad but truthful descriptors used, in order, when a fixed keyword count
# cannot be reached from the model output, the title and the enrichment layer.
BACKFILL_KEYWORDS = (
    'concept', 'creative', 'modern', 'detail', 'closeup', 'colorful', 'bright',
    'decorative', 'simple', 'minimal', 'elegant', 'beautiful', 'natural', 'vibrant',
    'clean', 'fresh', 'contemporary', 'artistic', 'graphic', 'design', 'element',
    'style', 'trendy', 'decoration', 'shape', 'color', 'light', 'marketing',
    'presentation', 'visual', 'stylish', 'aesthetic', 'texture', 'pattern', 'abstract',
    'composition', 'symbol', 'object', 'advertising', 'social media', 'website',
    'cover', 'high resolution', 'template', 'banner', 'poster', 'card', 'print',
    'web', 'digital', 'creativity', 'idea', 'inspiration', 'lifestyle', 'season',
)


# ─── Assets ───────────────────────────────────────────────────────────────────

IMAGE_EXTENSIONS = frozenset({'png', 'jpg', 'jpeg', 'webp'})
VIDEO_EXTENSIONS = frozenset({'mp4', 'mov', 'm4v', 'webm'})
VECTOR_EXTENSIONS = frozenset({'eps', 'ai', 'svg'})
VISUAL_EXTENSIONS = IMAGE_EXTENSIONS | VIDEO_EXTENSIONS | VECTOR_EXTENSIONS

PLATFORM_LABELS = {
    'adobe': 'Adobe Stock',
    'general': 'General',
    'shutterstock': 'Shutterstock',
}


def infer_asset_type(extension):
    """Map a file extension to the asset type used when asset type is 'auto'."""
    ext = (extension or '').lower().lstrip('.')
    if ext in VIDEO_EXTENSIONS:
        return 'video'
    if ext in VECTOR_EXTENSIONS:
        return 'vector'
    if ext in IMAGE_EXTENSIONS:
        return 'photo'
    return 'illustration'
