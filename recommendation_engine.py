"""
PlantScan - Gemini Recommendation Engine

Asks the Gemini `generateContent` endpoint for treatment advice on a
classified disease, and powers the agronomist chat.

Recommendations degrade silently: with no key, a failed request, or an
unusable response, the static FALLBACK_RECOMMENDATION is returned. The
fallback text is the healthy-plant message for every label, matching how the
web app has always behaved.
"""

import logging
from typing import NamedTuple, Optional, Tuple

import httpx

from config import Settings
from errors import ChatRequestError, GeminiNotConfiguredError, RecommendationFetchError

logger = logging.getLogger("plantscan-recommendations")

FALLBACK_RECOMMENDATION = "Plant appears healthy. Continue regular monitoring and maintenance."
NO_RESPONSE_TEXT = "No response"

CHAT_MAX_OUTPUT_TOKENS = 500
VOICE_MAX_OUTPUT_TOKENS = 150
CHAT_TEMPERATURE = 0.3

RECOMMENDATION_PROMPT = """You are an expert agricultural pathologist. Provide detailed treatment recommendations for "{disease_name}" in plants. Include:

1. **Immediate Actions** (what to do right now)
2. **Treatment Options** (fungicides, organic treatments)
3. **Prevention** (how to prevent future occurrences)
4. **Monitoring** (what to watch for)

Format with markdown headers and bullet points. Keep it practical and actionable for farmers. Maximum 300 words."""


class ChatTurn(NamedTuple):
    role: str  # "user" | "assistant"
    content: str


# ----------------- Request Building -----------------
def build_recommendation_prompt(disease_name):
    return RECOMMENDATION_PROMPT.format(disease_name=disease_name)


def build_generate_payload(prompt):
    return {"contents": [{"parts": [{"text": prompt}]}]}


def build_chat_payload(conversation, max_output_tokens=CHAT_MAX_OUTPUT_TOKENS):
    """Gemini calls the assistant side 'model'."""
    return {
        "contents": [
            {
                "role": "model" if turn.role == "assistant" else "user",
                "parts": [{"text": turn.content}],
            }
            for turn in conversation
        ],
        "generationConfig": {
            "maxOutputTokens": max_output_tokens,
            "temperature": CHAT_TEMPERATURE,
        },
    }


def generate_content_url(settings: Settings):
    return f"{settings.gemini_api_base.rstrip('/')}/models/{settings.gemini_model}:generateContent"


def extract_response_text(data) -> Optional[str]:
    """Return the first non-empty candidates[*].content.parts[*].text, if any."""
    if not isinstance(data, dict):
        return None
    candidates = data.get("candidates")
    if not isinstance(candidates, list):
        return None
    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        content = candidate.get("content")
        if not isinstance(content, dict):
            continue
        parts = content.get("parts")
        if not isinstance(parts, list):
            continue
        for part in parts:
            text = part.get("text") if isinstance(part, dict) else None
            if isinstance(text, str) and text.strip():
                return text
    return None


async def _post_generate(client: httpx.AsyncClient, settings: Settings, payload):
    response = await client.post(
        generate_content_url(settings),
        params={"key": settings.gemini_api_key},
        json=payload,
    )
    logger.info(f"Gemini response status: {response.status_code}")
    response.raise_for_status()
    return response.json()


# ----------------- Recommendations -----------------
async def request_recommendations(disease_name, settings: Settings, client: httpx.AsyncClient):
    """One Gemini call. Raises RecommendationFetchError on any failure."""
    payload = build_generate_payload(build_recommendation_prompt(disease_name))
    try:
        data = await _post_generate(client, settings, payload)
    except httpx.HTTPStatusError as e:
        raise RecommendationFetchError(
            f"Gemini API error {e.response.status_code}: {e.response.text[:200]}"
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        raise RecommendationFetchError(f"Gemini request failed: {e}") from e

    text = extract_response_text(data)
    if text is None:
        raise RecommendationFetchError("Gemini response contained no text.")
    return text


async def fetch_recommendations(disease_name, settings: Settings, client: httpx.AsyncClient) -> str:
    """Treatment advice for `disease_name`, or FALLBACK_RECOMMENDATION. Never raises."""
    if not settings.gemini_configured:
        logger.warning("Gemini API key not configured or invalid, using fallback recommendations")
        return FALLBACK_RECOMMENDATION

    logger.info(f"Requesting recommendations for: {disease_name}")
    try:
        return await request_recommendations(disease_name, settings, client)
    except RecommendationFetchError as e:
        logger.error(f"Recommendation fetch failed, using fallback: {e}")
        return FALLBACK_RECOMMENDATION


# ----------------- Agronomist Chat -----------------
async def ask_agronomist(
    conversation: Tuple[ChatTurn, ...],
    message: str,
    settings: Settings,
    client: httpx.AsyncClient,
    max_output_tokens: int = CHAT_MAX_OUTPUT_TOKENS,
) -> Tuple[str, Tuple[ChatTurn, ...]]:
    """
    Send the conversation plus `message` to Gemini.

    Returns (reply, updated_conversation). The input conversation is left
    untouched; callers keep the returned value for the next turn.
    """
    if not settings.gemini_configured:
        raise GeminiNotConfiguredError("Gemini API key not configured")

    asked = tuple(conversation) + (ChatTurn("user", message),)
    try:
        data = await _post_generate(client, settings, build_chat_payload(asked, max_output_tokens))
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Chat request failed: {e}")
        raise ChatRequestError("Failed to get response from Gemini") from e

    reply = extract_response_text(data) or NO_RESPONSE_TEXT
    return reply, asked + (ChatTurn("assistant", reply),)
