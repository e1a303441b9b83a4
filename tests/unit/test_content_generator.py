"""Unit tests for LLM content generation."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import pytest

from miyomi.content import ContentConfig, ContentGenerator, ContentStyle, Mood, select_mood, select_style
from miyomi.core.config import settings
from miyomi.core.exceptions import DownstreamFailureError
from miyomi.engines.picking import MarketPicker
from miyomi.models.market import Position


LLM_REPLY = """TITLE: The Subway Bet Everyone Is Sleeping On: A Contrarian Take
NARRATIVE: Everyone assumes the MTA will run late forever.
The crowd has priced that in at 88 cents.
THESIS:
• Herd mentality pushed YES too far
• Ridership data points the other way
- Thin liquidity exaggerates the move
CTA: Fade the crowd on Polymarket →
IMAGE_PROMPT_1: Neon subway platform at midnight
IMAGE_PROMPT_2: Split screen of a crowded and an empty train
VIDEO_BRIEF: 15 second walk through an empty station
"""


def _response(text: str) -> SimpleNamespace:
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


def _client(reply=None, error=None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.messages.create = AsyncMock(side_effect=error)
    else:
        client.messages.create = AsyncMock(return_value=_response(reply))
    return client


@pytest.fixture
def pick(make_opportunity, now):
    opportunity = make_opportunity(
        score=80,
        position=Position.NO,
        title="Will the NYC subway run on time in June?",
        yes_price=88,
        category="culture",
    )
    return MarketPicker(id_factory=lambda ts: "pick-1").create_pick(opportunity, now)


@pytest.fixture(autouse=True)
def no_api_key(monkeypatch):
    monkeypatch.setattr(settings, "anthropic_api_key", None)


@pytest.mark.unit
@pytest.mark.parametrize(
    "title, category, style",
    [
        ("Will Bitcoin hit $100k?", None, ContentStyle.VIRAL),
        ("Who wins the election?", None, ContentStyle.SOBER),
        ("Senate control", "Politics", ContentStyle.SOBER),
        ("Will the Fed cut rates?", None, ContentStyle.EXPLAINER),
        ("Inflation above 3%?", "economics", ContentStyle.EXPLAINER),
        ("Will Taylor Swift tour?", "culture", ContentStyle.VIRAL),
    ],
)
def test_select_style(title, category, style) -> None:
    assert select_style(title, category) == style


@pytest.mark.unit
@pytest.mark.asyncio
async def test_generate_parses_reply(pick) -> None:
    client = _client(LLM_REPLY)
    generator = ContentGenerator(ContentConfig(model_name="claude-test"), client=client)
    
    content = await generator.generate(pick)
    
    assert content.title.startswith("The Subway Bet")
    assert content.narrative == (
        "Everyone assumes the MTA will run late forever. The crowd has priced that in at 88 cents."
    )
    assert content.thesis == [
        "Herd mentality pushed YES too far",
        "Ridership data points the other way",
        "Thin liquidity exaggerates the move",
    ]
    assert content.cta == "Fade the crowd on Polymarket →"
    assert len(content.image_prompts) == 2
    assert content.video_brief.startswith("15 second")
    assert content.generated_by == "claude-test"
    assert content.style == ContentStyle.VIRAL
    
    call = client.messages.create.await_args.kwargs
    assert call["model"] == "claude-test"
    assert "Will the NYC subway run on time in June?" in call["messages"][0]["content"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_post_fits_cast_limit(pick) -> None:
    generator = ContentGenerator(client=_client(LLM_REPLY))
    
    content = await generator.generate(pick)
    
    assert len(content.post) <= 320
    assert content.post.startswith("The Subway Bet Everyone Is Sleeping On\n\n")
    assert content.post.endswith("Taking NO vs 88% consensus")


@pytest.mark.unit
def test_build_post_shrinks_long_hooks(pick) -> None:
    generator = ContentGenerator()
    
    post = generator.build_post("x" * 400, "narrative", pick)
    
    assert post == "Taking NO vs 88% consensus"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_sections_get_defaults(pick) -> None:
    generator = ContentGenerator(client=_client("Sorry, here are some thoughts."))
    
    content = await generator.generate(pick)
    
    assert content.title == "Market Analysis"
    assert content.thesis == pick.thesis
    assert content.cta == "Trade this market →"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_no_client_uses_fallback(pick) -> None:
    generator = ContentGenerator()
    
    content = await generator.generate(pick)
    
    assert not generator.enabled
    assert content.generated_by == "fallback"
    assert pick.market.title in content.post
    assert len(content.post) <= 320


@pytest.mark.unit
@pytest.mark.asyncio
async def test_llm_error_falls_back(pick) -> None:
    generator = ContentGenerator(client=_client(error=anthropic.AnthropicError("overloaded")))
    
    content = await generator.generate(pick)
    
    assert content.generated_by == "fallback"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_llm_error_raises_when_fallback_disabled(pick) -> None:
    generator = ContentGenerator(
        ContentConfig(fallback_on_error=False),
        client=_client(error=anthropic.AnthropicError("overloaded")),
    )
    
    with pytest.raises(DownstreamFailureError) as exc_info:
        await generator.generate(pick)
    
    assert exc_info.value.stage == "content"


PICK_RECORD = {
    "id": "pick-1",
    "market_title": "Will the NYC subway run on time in June?",
    "position": "NO",
    "entry_price": 12,
}


def _performance(status: str, pnl_percent: float, current_price: int = 12) -> dict:
    return {"current_price": current_price, "pnl": 0, "pnl_percent": pnl_percent, "status": status}


def _scored(*statuses: str) -> list:
    return [{"id": f"p-{i}", "performance": {"status": status}} for i, status in enumerate(statuses)]


@pytest.mark.unit
@pytest.mark.parametrize(
    "statuses, mood",
    [
        ((), Mood.STEADY),
        (("winning", "winning", "winning", "winning"), Mood.CONFIDENT),
        (("winning", "winning", "winning", "losing"), Mood.CONFIDENT),
        (("winning", "losing"), Mood.STEADY),
        (("losing", "flat", "losing", "winning"), Mood.CHAOTIC),
    ],
)
def test_select_mood(statuses, mood) -> None:
    assert select_mood(_scored(*statuses)) == mood


@pytest.mark.unit
def test_select_mood_ignores_unscored_picks() -> None:
    recent = _scored("winning") + [{"id": "unscored"}]
    
    assert select_mood(recent) == Mood.CONFIDENT


@pytest.mark.unit
@pytest.mark.parametrize(
    "status, pnl_percent, mood, win_rate, expected",
    [
        (
            "winning", 25.0, Mood.CONFIDENT, 0.8,
            "Update on yesterday's NO call: UP 25.0% just as I predicted 💅 told y'all to trust the vibes"
            "\n\nSeason stats: 80% win rate (literally unstoppable)",
        ),
        (
            "winning", 25.0, Mood.STEADY, 0.5,
            "Update on yesterday's NO call: UP 25.0% we're literally printing money rn!!!"
            "\n\nSeason stats: 50% win rate",
        ),
        (
            "losing", -41.67, Mood.CHAOTIC, 0.2,
            "Update on yesterday's NO call: down 41.7% but mercury is still in retrograde so we hold 💎👐"
            "\n\nSeason stats: 20% win rate (in my flop era but comeback loading)",
        ),
        (
            "losing", -10.0, Mood.STEADY, 0.5,
            "Update on yesterday's NO call: down 10.0% temporary setback, the market will realize I'm right soon"
            "\n\nSeason stats: 50% win rate",
        ),
        (
            "flat", 0.0, Mood.STEADY, 0.5,
            "Yesterday's NO call holding steady. Market taking its time to accept reality"
            "\n\nSeason stats: 50% win rate",
        ),
    ],
)
def test_fallback_performance_update(status, pnl_percent, mood, win_rate, expected) -> None:
    update = ContentGenerator().fallback_performance_update(
        PICK_RECORD, _performance(status, pnl_percent), win_rate, mood
    )
    
    assert update.text == expected
    assert update.status == status
    assert update.generated_by == "fallback"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_performance_update_from_llm() -> None:
    client = _client("Told you the subway was a fade. NO up 25% 💅")
    generator = ContentGenerator(ContentConfig(model_name="claude-test"), client=client)
    
    update = await generator.generate_performance_update(
        PICK_RECORD, _performance("winning", 25.0, 15), 1.0, _scored("winning")
    )
    
    assert update.text == "Told you the subway was a fade. NO up 25% 💅"
    assert update.mood == Mood.CONFIDENT
    assert update.generated_by == "claude-test"
    
    call = client.messages.create.await_args.kwargs
    assert "Mood: CONFIDENT" in call["system"]
    assert "Current Price: 15¢" in call["messages"][0]["content"]
    assert "Season Win Rate: 100%" in call["messages"][0]["content"]


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["", "x" * 321])
async def test_unusable_performance_reply_falls_back(reply) -> None:
    generator = ContentGenerator(client=_client(reply))
    
    update = await generator.generate_performance_update(PICK_RECORD, _performance("flat", 0.0), 0.5)
    
    assert update.generated_by == "fallback"
    assert update.text.startswith("Yesterday's NO call holding steady")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_performance_update_without_client_uses_fallback() -> None:
    generator = ContentGenerator()
    
    update = await generator.generate_performance_update(
        PICK_RECORD, _performance("losing", -50.0), 0.0, _scored("losing", "losing")
    )
    
    assert update.mood == Mood.CHAOTIC
    assert "mercury is still in retrograde" in update.text


@pytest.mark.unit
@pytest.mark.asyncio
async def test_performance_update_llm_error() -> None:
    failing = ContentGenerator(client=_client(error=anthropic.AnthropicError("overloaded")))
    strict = ContentGenerator(
        ContentConfig(fallback_on_error=False),
        client=_client(error=anthropic.AnthropicError("overloaded")),
    )
    
    update = await failing.generate_performance_update(PICK_RECORD, _performance("flat", 0.0), 0.5)
    assert update.generated_by == "fallback"
    
    with pytest.raises(DownstreamFailureError) as exc_info:
        await strict.generate_performance_update(PICK_RECORD, _performance("flat", 0.0), 0.5)
    assert exc_info.value.stage == "content"
