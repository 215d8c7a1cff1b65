"""
StockMeta - AI Provider Module
Supports Gemini (native generateContent), Groq, Mistral and OpenRouter
(OpenAI-compatible chat completion API with vision) for metadata generation.
"""

import json
import logging
import re

import requests

from stockmeta.config import REQUEST_TIMEOUT
from stockmeta.errors import ConfigError, ProviderError, ResponseParseError
from stockmeta.key_pool import mask_key
from stockmeta.models import RawModelOutput
from stockmeta.policy import FALLBACK_TITLE
from stockmeta.text_sanitizer import filename_hints, truncate_to_limit

logger = logging.getLogger(__name__)


# ─── Prompt Vocabulary ────────────────────────────────────────────────────────

BANNED_TITLE = [
    'professional', 'high quality', 'stock', 'commercial', 'royalty free', 'royalty-free',
    'image', 'photo', 'photograph', 'picture', 'wallpaper',
]

BANNED_KEYWORDS = BANNED_TITLE + [
    'vector file', 'jpeg', 'jpg', 'png', 'webp', 'svg', 'eps', 'ai', 'file', 'download',
    'copy', 'generated', 'gemini', 'mistral', 'watermark', 'logo',
    'artist', 'style of', 'inspired by', 'influenced by', 'in the tradition of', 'drawing on',
]

PLATFORM_TIPS = {
    'adobe': (
        "Commercial-safe. No brands, no celebrities, no private names, no artist names, "
        "no creative work names.\n"
        "Titles can be up to 200 characters. Use short, factual phrases (NOT formal sentences, "
        "NOT keyword lists).\n"
        "Include specific details: animal species names, location names (city/state/country), "
        "equipment names, specific actions.\n"
        "Structure: [Subject] [action/description] [location/context]. Be precise and descriptive.\n"
        "Use caring, engaged language when describing people. Never use demeaning or derogatory language."
    ),
    'shutterstock': 'Rich synonyms but no repetition or stuffing.',
    'general': 'Platform-agnostic, balanced metadata suitable for most stock sites.',
}

ASSET_TIPS = {
    'photo': 'Photo terms allowed; do not invent camera models or releases.',
    'illustration': 'Illustration terms; avoid camera/video jargon.',
    'vector': 'Vector words (flat, outline, gradient, geometric, scalable). No camera/video terms.',
    '3d': '3D/CGI wording (isometric, render, material) allowed.',
    'icon': 'Icon set wording (pack, symbols, ui).',
    'video': 'Subject + action + setting; only TRUE tech tags if provided (e.g., 4k, 60fps, timelapse).',
}


# ─── Provider Configurations ──────────────────────────────────────────────────

PROVIDERS = {
    "Gemini": {
        "base_url": "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
        "style": "gemini",
        "models": [
            "gemini-2.5-flash",
            "gemini-2.5-flash-lite",
            "gemini-2.5-pro",
        ]
    },
    "Groq": {
        "base_url": "https://api.groq.com/openai/v1/chat/completions",
        "style": "openai",
        "models": [
            "meta-llama/llama-4-scout-17b-16e-instruct",
            "meta-llama/llama-4-maverick-17b-128e-instruct",
        ]
    },
    "Mistral": {
        "base_url": "https://api.mistral.ai/v1/chat/completions",
        "style": "openai",
        "models": [
            "mistral-small-latest",
            "pixtral-12b-latest",
        ]
    },
    "OpenRouter": {
        "base_url": "https://openrouter.ai/api/v1/chat/completions",
        "style": "openai",
        "models": [
            "google/gemini-2.5-flash-lite",
            "openai/gpt-4.1-nano",
        ]
    }
}

JSON_SYSTEM_PROMPT = (
    'Respond with PURE JSON only: {"title": string, "description": string, "keywords": string[]}'
)

_DATA_URL = re.compile(r'^data:([^;]+);base64,(.+)$', re.DOTALL)


def get_provider_names():
    """Return list of provider names."""
    return list(PROVIDERS.keys())


def get_models_for_provider(provider_name):
    """Return list of models for a given provider."""
    return PROVIDERS.get(provider_name, {}).get("models", [])


# ─── Prompt Building ──────────────────────────────────────────────────────────

def min_title_chars(title_len):
    """Lower bound asked of the model so short limits don't force awkward clauses."""
    limit = min(title_len, 200)
    if limit <= 80:
        return max(25, int(limit * 0.6))
    return max(25, limit - 10)


def requested_keyword_count(keyword_mode, keyword_count):
    if keyword_mode == 'auto':
        return max(15, min(keyword_count, 35))
    return max(5, min(keyword_count, 49))


def _build_image_rules(is_video):
    frame_note = (
        "\n2. NOTE: This image is a frame extracted from a video - it represents the video content."
        if is_video else ""
    )
    hint_rule = (
        "5. DO NOT use filename hints - analyze ONLY the frame image you see"
        if is_video else
        "5. Use filename hints only as secondary clues if the image is unclear"
    )
    return f"""
CRITICAL: An image is provided. You MUST:
1. Analyze the image carefully and describe what you actually see{frame_note}
2. Pay special attention to the BACKGROUND:
   - If the background is transparent it has NO COLOR - describe it as "transparent background" or "isolated" ONLY.
   - If the background is white, include "white background" or "isolated on white".
   - If the background has a specific color (and is NOT transparent), mention that color.
3. Generate the title based ONLY on visible content: subjects, objects, colors, textures, setting and background.
4. Generate keywords describing ONLY what you observe.
{hint_rule}
"""


def _build_adobe_rules(title_len):
    return f"""
For Adobe Stock: Titles should be COMPLETE and natural. Aim to stay within {title_len} characters (max 200).
Write a natural, descriptive title (a short phrase or sentence), not a keyword list.
IMPORTANT: Use no more than 3 commas (",") and at most 1 semicolon (";") in the title.
NEVER include: artist names, real people names, fictional characters, creative work names, style references like "in the style of...".
CRITICAL for Adobe Stock: Keyword order is the MOST IMPORTANT factor for search visibility.
1. Include all important CONTENT words from the title in the top 10 keywords.
2. Separate descriptive elements: "white fluffy pup" -> ["white", "fluffy", "pup"].
3. Include multiple specificity levels: general ("animal", "mammal") AND specific ("arctic fox", "vulpes lagopus").
4. For locations: include country with city/state (e.g., "portland", "oregon", "usa").
5. Include conceptual elements, setting and viewpoint when they are visible.
FORBIDDEN in keywords: ANY words, numbers, IDs, hashes or codes from the filename."""


def _build_rules(request, has_image):
    title_limit = min(request.title_len, 200)
    min_chars = min_title_chars(request.title_len)
    is_video = request.effective_asset_type == 'video'

    if request.keyword_mode == 'auto':
        count_rule = ("- Choose the BEST number of keywords for this asset (typically 20-35). "
                      "Return a smaller list if that improves precision.")
    else:
        count = requested_keyword_count(request.keyword_mode, request.keyword_count)
        count_rule = (f"- Return EXACTLY {count} keywords. If you have fewer than {count} strong keywords, "
                      "add synonyms, higher/lower specificity terms or related concepts clearly supported "
                      "by the image.")

    image_rules = _build_image_rules(is_video) if has_image else ""
    adobe_rules = _build_adobe_rules(request.title_len) if request.platform == 'adobe' else ""
    general_rules = "" if request.platform == 'adobe' else (
        "Titles should be concise and natural while still meeting the minimum length.\n"
    )

    return f"""
Return PURE JSON only: {{"title": string, "description": string, "keywords": string[]}}.
{image_rules}
Title: MUST be COMPLETE and between {min_chars} and {title_limit} characters (hard requirement).
- NEVER exceed {title_limit} characters (counting spaces).
- NEVER return a title shorter than {min_chars} characters.
- The title must end cleanly with a letter or number, never with dangling connector words like: by, with, and, or, of, to, for, from, in, on, at, into, as.
CRITICAL:
- NEVER copy or paraphrase the filename, or include file types or generic words such as "copy", "final", "jpeg", "jpg", "png", "webp".
- NEVER include brand or product names, AI/model names (gemini, mistral, gpt, midjourney, stable diffusion) or person names.
{general_rules}
Write a natural, descriptive title, not a keyword list. Subject-first; DO NOT use filler words:
[{', '.join(BANNED_TITLE)}].
{adobe_rules}
Description: <=150 chars, 1 sentence, subject + style/setting/use-case; no brand/celebrity/release claims.
Keywords:
- NEVER include stopwords as keywords (e.g., "and", "with", "the", "of", "on", "at", "to", "for").
- NEVER add unrelated filler keywords just to reach a count.
{count_rule}
- NEVER include ANY words, numbers, IDs, hashes or codes from the filename.
- Order keywords by importance. All keywords: lowercase, unique, no quotes, no duplicates.
NEVER include banned keywords: [{', '.join(BANNED_KEYWORDS)}].
""".strip()


def _build_attribute_lines(request):
    lines = []
    if request.transparent_background:
        lines.append('MANDATORY OVERRIDE: This file has a TRANSPARENT background. Prefer titles like '
                     '"[Subject] isolated" and use "transparent background" primarily in keywords. '
                     'DO NOT mention ANY background color.')
    elif request.white_background:
        lines.append('MANDATORY OVERRIDE: This file has a WHITE background. You MUST use '
                     '"isolated on white background" or "on white background" in the title.')
    if request.is_vector:
        lines.append('CRITICAL: This is a VECTOR file. Include "vector" in the title if appropriate.')
    if request.is_illustration:
        lines.append('CRITICAL: This is an ILLUSTRATION. Include "illustration" in the title if appropriate.')
    return lines


def build_user_prompt(request, has_image):
    """
    Build the instruction text sent alongside the (optional) image.

    Args:
        request: GenerationRequest bound to one file.
        has_image: Whether an image part accompanies the prompt. Filename
            hints are only offered when there is none.

    Returns:
        str: The full prompt.
    """
    asset_type = request.effective_asset_type
    sections = []

    if has_image:
        sections.append(
            "CRITICAL RESTRICTION - READ THIS FIRST\n"
            "An image has been provided. Base title, description and keywords ONLY on what you see "
            "in the image. NEVER use ANY part of the filename (words, numbers, IDs, hashes or codes)."
        )

    sections.append(_build_rules(request, has_image))
    sections.append(f"Platform: {request.platform} ({PLATFORM_TIPS[request.platform]}).")
    sections.append(f"Asset: {asset_type} ({ASSET_TIPS.get(asset_type, '')}); ext: {request.file_extension}.")

    if not has_image:
        sections.append("If no image is provided, you may use the filename as a weak hint but still write "
                        "a natural, descriptive title. DO NOT include filename words, numbers, IDs or codes "
                        "directly in the title or keywords.")

    attributes = _build_attribute_lines(request)
    if attributes:
        sections.append("USER-SPECIFIED FILE ATTRIBUTES (OVERRIDE ALL AI DETECTION):\n" + "\n".join(attributes))

    sections.append(f'Apply prefix="{request.prefix}" and suffix="{request.suffix}" to the title if provided.')
    sections.append(f"Avoid title words: [{', '.join(request.negative_title)}].")
    sections.append(f"Exclude keywords: [{', '.join(request.negative_keywords)}].")

    if not has_image:
        hints = filename_hints(request.filename)
        sections.append(f"Filename hints: {', '.join(hints) or 'none'}.")

    if asset_type == 'video':
        style = ', '.join(request.video_hints.get('style', []))
        tech = ', '.join(request.video_hints.get('tech', []))
        sections.append(f"Video hints (optional): style=[{style}], tech=[{tech}]")

    sections.append('Return ONLY one JSON object like:\n{"title":"…","description":"…","keywords":["…","…","…"]}.')
    return "\n".join(sections)


# ─── Response Parsing ─────────────────────────────────────────────────────────

def _try_repair_truncated_json(text):
    """Attempt to repair a truncated JSON response from AI.

    When max_tokens cuts off the response mid-JSON, this tries to
    close any open strings, brackets and braces to make it parseable.
    """
    text = text.strip()
    if not text:
        return text

    try:
        json.loads(text)
        return text
    except json.JSONDecodeError:
        pass

    repaired = text

    # Count unescaped quotes to see if a string is open
    in_string = False
    i = 0
    while i < len(repaired):
        c = repaired[i]
        if c == '\\' and in_string:
            i += 2
            continue
        if c == '"':
            in_string = not in_string
        i += 1

    if in_string:
        # Drop the half-written keyword or word, then close the string
        last_quote = repaired.rfind('"')
        fragment = repaired[last_quote + 1:]
        last_space = fragment.rfind(' ')
        if last_space > 0:
            repaired = repaired[:last_quote + 1 + last_space]
        repaired += '"'

    repaired = repaired.rstrip().rstrip(',')
    repaired += ']' * max(0, repaired.count('[') - repaired.count(']'))
    repaired += '}' * max(0, repaired.count('{') - repaired.count('}'))

    try:
        json.loads(repaired)
        return repaired
    except json.JSONDecodeError:
        pass

    # Keep everything up to the last complete key/value pair
    match = re.search(r'(.*"\s*:\s*(?:"[^"]*"|\d+|\[[^\]]*\])\s*),?\s*"?[^}]*$', text, re.DOTALL)
    if match:
        repaired = match.group(1) + '}'
        try:
            json.loads(repaired)
            return repaired
        except json.JSONDecodeError:
            pass

    return text


def parse_model_response(response_text):
    """
    Parse the JSON triple out of a model's reply, handling markdown fences
    and truncated output.

    Raises:
        ResponseParseError: when no JSON object can be recovered.
    """
    text = (response_text or '').strip()

    fence = re.search(r'```(?:json)?\s*\n?(.*?)\n?\s*```', text, re.DOTALL)
    if fence:
        text = fence.group(1).strip()

    obj = re.search(r'\{.*\}', text, re.DOTALL)
    if obj:
        text = obj.group(0)
    else:
        start = text.find('{')
        if start >= 0:
            text = text[start:]

    text = _try_repair_truncated_json(text)

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        raise ResponseParseError(f"Failed to parse AI response as JSON: {response_text[:300]}")
    if not isinstance(data, dict):
        raise ResponseParseError(f"AI response is not a JSON object: {response_text[:300]}")

    return RawModelOutput(
        title=data.get('title'),
        description=data.get('description'),
        keywords=data.get('keywords'),
    )


def fallback_output(request):
    """Generic text-only output built from filename hints."""
    base = ' '.join(filename_hints(request.filename)[:8]) or FALLBACK_TITLE
    title = ' '.join(p for p in (request.prefix, base, request.suffix) if p)
    return RawModelOutput(
        title=truncate_to_limit(title, request.title_len),
        description=truncate_to_limit(f"Commercial {request.effective_asset_type} of {base}.", 150, 0, 150),
        keywords=[base, request.effective_asset_type, 'design', 'graphic', 'template'],
    )


def _error_message(response):
    """Pull ``error.message`` out of a provider error body, else the raw text."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    error = body.get('error') if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get('message'):
        return error['message']
    if isinstance(error, str):
        return error
    return response.text[:500]


# ─── HTTP Caller ──────────────────────────────────────────────────────────────

class HttpVisionCaller:
    """
    Vision model caller over plain HTTP.

    ``generate`` is blocking; the pipeline runs it in a worker thread.
    Retrying is left to the caller of ``generate``.
    """

    def __init__(self, provider, model=None, timeout=REQUEST_TIMEOUT, session=None):
        if provider not in PROVIDERS:
            raise ConfigError(f"Unknown provider: {provider}")
        self.provider = provider
        self.config = PROVIDERS[provider]
        self.model = model or self.config["models"][0]
        self.timeout = timeout
        self.session = session or requests

    def _gemini_payload(self, prompt, image_data):
        parts = []
        if image_data:
            match = _DATA_URL.match(image_data)
            if not match:
                raise ProviderError('Invalid image data format - must be data:image/{type};base64,{data}', 400)
            parts.append({"inline_data": {"mime_type": match.group(1), "data": match.group(2)}})
        parts.append({"text": prompt})
        return {"contents": [{"role": "user", "parts": parts}]}

    def _openai_payload(self, prompt, image_data):
        content = []
        if image_data:
            content.append({"type": "image_url", "image_url": {"url": image_data}})
        content.append({"type": "text", "text": prompt})
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": JSON_SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ],
            "max_tokens": 4096,
            "temperature": 0.7,
        }

    def _post(self, url, headers, payload):
        try:
            return self.session.post(url, headers=headers, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise ProviderError(f"Request timed out ({self.timeout}s). The server may be overloaded.")
        except requests.exceptions.ConnectionError as e:
            raise ProviderError(f"Connection error: {e}")

    def generate(self, request, image_data, credential):
        """
        Call the provider once and return its parsed output.

        Args:
            request: GenerationRequest bound to one file.
            image_data: data URL of the preview, or None.
            credential: API key for this call.

        Returns:
            RawModelOutput

        Raises:
            ProviderError: on transport failures and non-2xx responses.
            ResponseParseError: when the reply holds no usable JSON.
        """
        prompt = build_user_prompt(request, has_image=bool(image_data))
        headers = {"Content-Type": "application/json"}

        if self.config["style"] == "gemini":
            url = self.config["base_url"].format(model=self.model)
            headers["x-goog-api-key"] = credential
            payload = self._gemini_payload(prompt, image_data)
        else:
            url = self.config["base_url"]
            headers["Authorization"] = f"Bearer {credential}"
            if self.provider == "OpenRouter":
                headers["X-Title"] = "StockMeta"
            payload = self._openai_payload(prompt, image_data)

        logger.debug("Provider: %s, model: %s, key: %s, image: %s",
                     self.provider, self.model, mask_key(credential), bool(image_data))

        response = self._post(url, headers, payload)
        if not 200 <= response.status_code < 300:
            message = _error_message(response)
            logger.debug("Response status %d: %s", response.status_code, message[:300])
            raise ProviderError(f"{self.provider} API error ({response.status_code}): {message}",
                                response.status_code)

        resp_json = response.json()
        try:
            if self.config["style"] == "gemini":
                text = "".join(p.get("text", "") for p in resp_json["candidates"][0]["content"]["parts"])
            else:
                text = resp_json["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise ResponseParseError(f"Unexpected API response structure: {json.dumps(resp_json)[:500]}")

        if not text or not text.strip():
            return RawModelOutput()
        return parse_model_response(text)
