"""
ReplyMate: Generate draft review replies with Gemini (GEMINI_MODEL).
Language and tone come from the request, else the review / business defaults; a matching
tone template adds its instructions and example. Nothing is posted to Google here.
"""
import logging
from typing import Optional

from ..errors import NotFoundError
from ..openai_client import chat_once

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "English"
DEFAULT_TONE = "Professional"

TONE_INSTRUCTIONS = {
    "Professional": "Use professional, respectful and formal language. Respond on behalf of the business in a serious and trustworthy manner.",
    "Friendly": "Use warm, friendly and approachable language. Build a close connection with the customer while remaining respectful.",
    "Short": "Give a brief, concise and direct response. Use maximum 2-3 sentences. Avoid unnecessary details.",
    "Detailed": "Give a detailed, explanatory and comprehensive response. Address every point in the review and provide additional information if needed.",
}

SYSTEM_PROMPT = """You write replies to Google reviews on behalf of the business owner.

Rules:
- Address the reviewer by name (if there is no name, just say hello)
- Address specific points mentioned in the review
- Thank them for the feedback
- If negative, apologise and offer to help resolve the issue
- If positive, express gratitude and encourage future visits
- Never promise discounts, gifts or refunds
- Be authentic and personalised, don't use generic templates
- Write only the response, no additional explanations
"""


def build_review_text(author_name: Optional[str], rating: Optional[int], text: Optional[str]) -> str:
    body = (text or "").strip()
    if not body:
        body = f"The customer left no comment but rated the business {rating}/5 stars. Write a fitting thank-you reply."
    lines = []
    if rating:
        lines.append(f"Rating: {rating}/5")
    if author_name:
        lines.append(f"Reviewer: {author_name}")
    lines.append(body)
    return "\n".join(lines)


def build_prompt(
    review: str,
    language: str,
    tone: str,
    custom_instructions: Optional[str] = None,
    template_instructions: Optional[str] = None,
    example_response: Optional[str] = None,
) -> str:
    tone_instruction = TONE_INSTRUCTIONS.get(tone) or tone
    prompt = f"""Write a reply draft for a Google business review.

Brand tone: "{tone_instruction}"
Reply language: {language}

Customer review:
\"\"\"{review}\"\"\""""
    if custom_instructions:
        prompt += f"\n\nCustom instructions:\n{custom_instructions}"
    if template_instructions:
        prompt += f"\n\nTemplate instructions:\n{template_instructions}"
    if example_response:
        prompt += f"\n\nExample response format:\n{example_response}"
    return prompt


def generate_reply_draft(
    store,
    review_id: str,
    tone: Optional[str] = None,
    language: Optional[str] = None,
) -> dict:
    """
    Draft a reply for a stored review owned by the session user.
    Returns {"reply", "business": {id, name, language, tone}}.
    """
    review = store.get_review(review_id)
    if not review:
        raise NotFoundError("Review not found")
    business = store.get_business(review.business_id)
    if not business:
        raise NotFoundError("Business not found")

    final_language = language or review.language or business.default_language or DEFAULT_LANGUAGE
    final_tone = tone or business.default_tone or DEFAULT_TONE
    template = store.find_template(business.id, final_tone, final_language)

    prompt = build_prompt(
        build_review_text(review.author_name, review.rating, review.text),
        language=final_language,
        tone=final_tone,
        custom_instructions=business.custom_instructions,
        template_instructions=template.instructions if template else None,
        example_response=template.example_response if template else None,
    )
    reply = chat_once(system=SYSTEM_PROMPT, user=prompt, temperature=0.6, max_tokens=400)
    logger.info("Generated reply draft for review %s (%s, %s)", review.id, final_tone, final_language)
    return {
        "reply": reply,
        "business": {
            "id": business.id,
            "name": business.name,
            "language": final_language,
            "tone": final_tone,
        },
    }
