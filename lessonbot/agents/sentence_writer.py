"""
SentenceWriterAgent: Writes one Thai practice sentence per difficulty tier.

Uses Claude Haiku for fast, cheap generation. The agent only talks to the
model; parsing and validation live in parse_sentence_response so the cache
can retry on bad output.
"""

import json
import re
from typing import Any, Dict, List, Optional, Sequence

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage

from lessonbot.config import config, DIFFICULTY_LEVELS
from lessonbot.models import ContentUnit, WordBreakdown


class SentenceValidationError(ValueError):
    """Raised when the model output is not a usable sentence payload."""
    pass


# Romanization for common words, used when the model leaves pinyin empty.
PRONUNCIATION_FALLBACKS: Dict[str, str] = {
    "ฉัน": "chan",
    "ชอบ": "chop",
    "กิน": "gin",
    "ข้าว": "khao",
    "ผัด": "phat",
    "วันนี้": "wan ni",
    "กับ": "kap",
    "ปลา": "pla",
    "น้ำ": "nam",
    "ดี": "di",
    "มาก": "mak",
    "สวัสดี": "sawat di",
    "ครับ": "khrap",
    "ค่ะ": "kha",
}

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_RE.sub("", cleaned).strip()
    return cleaned


def _parse_breakdown(raw: Any) -> List[WordBreakdown]:
    words: List[WordBreakdown] = []
    if not isinstance(raw, list):
        return words

    for item in raw:
        if isinstance(item, dict):
            token = str(item.get("word") or "").strip()
            if not token:
                continue
            meaning = str(item.get("meaning") or "").strip()
            pronunciation = str(item.get("pinyin") or "").strip()
            if not pronunciation:
                pronunciation = PRONUNCIATION_FALLBACKS.get(token, token)
            words.append(WordBreakdown(token=token, meaning=meaning, pronunciation=pronunciation))
        elif isinstance(item, str) and item.strip():
            token = item.strip()
            words.append(WordBreakdown(
                token=token,
                meaning="",
                pronunciation=PRONUNCIATION_FALLBACKS.get(token, token),
            ))
    return words


def parse_sentence_response(response_text: str) -> ContentUnit:
    """
    Parse raw model output into a ContentUnit.

    Tolerates markdown code fences around the JSON. Raises
    SentenceValidationError for empty text, unparsable JSON or leftover
    formatting in the sentence.
    """
    if not response_text or not response_text.strip():
        raise SentenceValidationError("Empty response")

    cleaned = _strip_code_fences(response_text)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise SentenceValidationError(f"Response is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise SentenceValidationError("Response JSON is not an object")

    thai_text = data.get("thai_text")
    if not isinstance(thai_text, str) or not thai_text.strip():
        raise SentenceValidationError("Missing thai_text")
    if "```" in thai_text:
        raise SentenceValidationError("thai_text contains formatting artifacts")

    translation = data.get("english_translation") or ""

    return ContentUnit(
        text=thai_text.strip(),
        translation=str(translation).strip(),
        breakdown=tuple(_parse_breakdown(data.get("word_breakdown"))),
    )


class SentenceWriterAgent:
    """
    Generates daily sentences with Claude.

    generate() returns the raw model text; callers validate it with
    parse_sentence_response.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        llm: Optional[Any] = None,
    ):
        self.model_name = model_name or config.MODEL_NAME
        self.llm = llm or ChatAnthropic(
            model=self.model_name,
            temperature=config.TEMPERATURE if temperature is None else temperature,
            max_tokens=config.MAX_TOKENS,
            anthropic_api_key=config.ANTHROPIC_API_KEY,
            timeout=config.GENERATION_TIMEOUT_SECONDS,
        )

    async def generate(self, tier: int, exclusions: Sequence[str] = ()) -> str:
        prompt = self._build_prompt(tier, exclusions)
        response = await self.llm.ainvoke([HumanMessage(content=prompt)])
        content = response.content
        if isinstance(content, list):
            # Content blocks from newer Anthropic responses
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block)
                for block in content
            )
        return content

    def _build_prompt(self, tier: int, exclusions: Sequence[str]) -> str:
        level = DIFFICULTY_LEVELS.get(tier, DIFFICULTY_LEVELS[1])

        exclusion_block = ""
        if exclusions:
            listed = "\n".join(f"- {text}" for text in exclusions)
            exclusion_block = f"""

Do NOT reuse any of these recent sentences (or trivial variations of them):
{listed}
"""

        return f"""Generate a Thai sentence for language learning at {level['name']} level ({level['description']}).
The sentence should be:
- In Thai script
- Include English translation
- Be appropriate for the difficulty level

For word_breakdown, provide an array of objects with:
- word: the individual Thai word (break down into separate words, not phrases)
- meaning: English meaning
- pinyin: Thai romanization/pronunciation (e.g. "chan", "chop", "gin")

Break down into individual words. For example:
- "ดื่มกาแฟ" (drinking coffee) is "ดื่ม" (drink) + "กาแฟ" (coffee)
- "ไปโรงเรียน" (go to school) is "ไป" (go) + "โรงเรียน" (school)
{exclusion_block}
Respond with JSON only, with fields: thai_text, english_translation, word_breakdown"""
