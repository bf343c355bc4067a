"""
Message templates for lessons and payment notices, plus the built-in
fallback sentences used when the generator is unavailable for a first lesson.
"""

from typing import Dict, Optional

from lessonbot.config import config, DIFFICULTY_LEVELS
from lessonbot.models import ContentUnit, WordBreakdown


def _unit(text: str, translation: str, *words: str) -> ContentUnit:
    return ContentUnit(
        text=text,
        translation=translation,
        breakdown=tuple(WordBreakdown(token=w, meaning="", pronunciation="") for w in words),
    )


FALLBACK_SENTENCES: Dict[int, ContentUnit] = {
    1: _unit("สวัสดี", "Hello", "สวัสดี"),
    2: _unit("ฉันชื่อจอห์น", "My name is John", "ฉัน", "ชื่อ", "จอห์น"),
    3: _unit("วันนี้อากาศดีมาก", "The weather is very nice today", "วันนี้", "อากาศ", "ดี", "มาก"),
    4: _unit(
        "ฉันชอบอ่านหนังสือในห้องสมุด",
        "I like reading books in the library",
        "ฉัน", "ชอบ", "อ่าน", "หนังสือ", "ใน", "ห้องสมุด",
    ),
    5: _unit(
        "ประเทศไทยเป็นประเทศที่มีวัฒนธรรมที่สวยงามและมีประวัติศาสตร์ที่ยาวนาน",
        "Thailand is a country with beautiful culture and long history",
        "ประเทศไทย", "เป็น", "ประเทศ", "ที่", "มี", "วัฒนธรรม", "ที่",
        "สวยงาม", "และ", "มี", "ประวัติศาสตร์", "ที่", "ยาวนาน",
    ),
}


def fallback_sentence(tier: int) -> ContentUnit:
    return FALLBACK_SENTENCES.get(tier, FALLBACK_SENTENCES[1])


def send_time_label() -> str:
    """Daily send time in the configured zone, e.g. "09:00 (Asia/Bangkok)"."""
    return f"{config.DAILY_SEND_HOUR:02d}:{config.DAILY_SEND_MINUTE:02d} ({config.TIMEZONE})"


def render_breakdown(unit: ContentUnit) -> str:
    if not unit.breakdown:
        return ""
    lines = []
    for word in unit.breakdown:
        parts = [word.token]
        if word.meaning:
            parts.append(word.meaning)
        if word.pronunciation:
            parts.append(word.pronunciation)
        lines.append(" - ".join(parts))
    return "\n\n📚 Word Breakdown:\n" + "\n".join(lines)


def render_daily_lesson(unit: ContentUnit) -> str:
    return (
        "🇹🇭 Daily Thai Lesson\n\n"
        f"📝 Thai Sentence:\n{unit.text}\n\n"
        f"🔤 English:\n{unit.translation}"
        f"{render_breakdown(unit)}\n\n"
        "Practice writing the Thai sentence!"
    )


def render_first_lesson(unit: ContentUnit) -> str:
    return (
        "🇹🇭 Your First Thai Lesson\n\n"
        f"📝 Thai Sentence:\n{unit.text}\n\n"
        f"🔤 English:\n{unit.translation}"
        f"{render_breakdown(unit)}\n\n"
        "Practice writing the Thai sentence!"
    )


def render_welcome(unit: ContentUnit, days: Optional[int] = None) -> str:
    """Payment confirmation followed by the first lesson, sent as one message."""
    days = days or config.SUBSCRIPTION_DAYS
    return (
        "🎉 Payment Successful!\n\n"
        "✅ You are now subscribed to daily Thai lessons!\n"
        f"📅 Your subscription is active for {days} days\n"
        f"🎯 Daily lessons will be sent at {send_time_label()}\n\n"
        "Here's your first lesson:\n\n"
        f"{render_first_lesson(unit)}"
    )


def render_payment_request(reference: str, link: str, amount: float) -> str:
    return (
        "💳 Subscribe to Daily Thai Lessons\n\n"
        f"💰 Price: {amount:g} TON for {config.SUBSCRIPTION_DAYS} days\n\n"
        "1. Tap the payment link below to open your TON wallet\n"
        "2. Keep the comment exactly as filled in\n"
        "3. Come back and tap \"I've paid\"\n\n"
        f"🔗 {link}\n\n"
        f"📝 Payment reference: {reference}"
    )


def level_label(tier: int) -> str:
    level = DIFFICULTY_LEVELS.get(tier)
    if level is None:
        return f"Level {tier}"
    return f"{level['name']} ({level['description']})"
