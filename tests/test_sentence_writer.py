"""
Tests for the sentence writer agent and response parsing.
"""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from lessonbot.agents.sentence_writer import (
    SentenceWriterAgent,
    SentenceValidationError,
    parse_sentence_response,
)


class TestParseSentenceResponse:

    def test_plain_json(self):
        raw = json.dumps({
            "thai_text": "ฉันชอบกินข้าว",
            "english_translation": "I like to eat rice",
            "word_breakdown": [
                {"word": "ฉัน", "meaning": "I", "pinyin": "chan"},
                {"word": "ชอบ", "meaning": "like", "pinyin": "chop"},
            ],
        }, ensure_ascii=False)

        unit = parse_sentence_response(raw)

        assert unit.text == "ฉันชอบกินข้าว"
        assert unit.translation == "I like to eat rice"
        assert [w.token for w in unit.breakdown] == ["ฉัน", "ชอบ"]
        assert unit.breakdown[1].pronunciation == "chop"

    def test_markdown_fences_are_stripped(self):
        raw = '```json\n{"thai_text": "สวัสดี", "english_translation": "Hello"}\n```'

        unit = parse_sentence_response(raw)

        assert unit.text == "สวัสดี"
        assert unit.breakdown == ()

    def test_missing_pronunciation_uses_fallback_map(self):
        raw = json.dumps({
            "thai_text": "น้ำดี",
            "english_translation": "Good water",
            "word_breakdown": [
                {"word": "น้ำ", "meaning": "water", "pinyin": ""},
                {"word": "โต๊ะ", "meaning": "table"},
            ],
        }, ensure_ascii=False)

        unit = parse_sentence_response(raw)

        assert unit.breakdown[0].pronunciation == "nam"
        # Unknown words fall back to the word itself
        assert unit.breakdown[1].pronunciation == "โต๊ะ"

    def test_string_breakdown_items_are_accepted(self):
        raw = json.dumps({
            "thai_text": "ขอบคุณครับ",
            "english_translation": "Thank you",
            "word_breakdown": ["ขอบคุณ", "ครับ"],
        }, ensure_ascii=False)

        unit = parse_sentence_response(raw)

        assert [w.token for w in unit.breakdown] == ["ขอบคุณ", "ครับ"]
        assert unit.breakdown[1].pronunciation == "khrap"

    @pytest.mark.parametrize("raw", [
        "",
        "   ",
        "Here is your sentence: สวัสดี",
        "[1, 2, 3]",
        '{"english_translation": "Hello"}',
        '{"thai_text": "   "}',
        '{"thai_text": "```สวัสดี```"}',
    ])
    def test_invalid_responses_raise(self, raw):
        with pytest.raises(SentenceValidationError):
            parse_sentence_response(raw)


class TestSentenceWriterAgent:

    @pytest.mark.asyncio
    async def test_generate_returns_raw_model_text(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=MagicMock(content='{"thai_text": "ดี"}'))
        agent = SentenceWriterAgent(llm=llm)

        raw = await agent.generate(2, ["สวัสดี"])

        assert raw == '{"thai_text": "ดี"}'
        prompt = llm.ainvoke.call_args[0][0][0].content
        assert "Elementary" in prompt
        assert "- สวัสดี" in prompt

    @pytest.mark.asyncio
    async def test_content_blocks_are_joined(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=MagicMock(content=[
            {"type": "text", "text": '{"thai_text": '},
            {"type": "text", "text": '"ดี"}'},
        ]))
        agent = SentenceWriterAgent(llm=llm)

        assert await agent.generate(1) == '{"thai_text": "ดี"}'

    def test_prompt_without_exclusions_has_no_exclusion_block(self):
        agent = SentenceWriterAgent(llm=MagicMock())

        prompt = agent._build_prompt(5, [])

        assert "Expert" in prompt
        assert "Do NOT reuse" not in prompt
