"""
Content Generator - LLM-written social posts for daily picks

Asks Claude for a structured write-up of a pick (title, narrative, three
thesis bullets, call to action, image prompts and a video brief) and derives
a Farcaster post of at most 320 characters from it. When no API key is
configured, or the call fails, deterministic fallback content built from the
pick itself is returned instead.

The same generator writes the follow-up post on how the current pick is
doing, in a mood set by recent results.
"""

import re
from typing import Any, Dict, List, Optional, Sequence
from dataclasses import dataclass
from enum import Enum

import anthropic
from pydantic import Field

from miyomi.core.config import settings
from miyomi.core.exceptions import DownstreamFailureError
from miyomi.core.logging import LoggerMixin
from miyomi.models.base import BaseModel
from miyomi.models.market import Pick
from miyomi.storage.pick_ledger import PerformanceStatus


class ContentStyle(str, Enum):
    """Voice used for a post."""
    VIRAL = "viral"
    SOBER = "sober"
    EXPLAINER = "explainer"


@dataclass
class ContentConfig:
    """Configuration for content generation."""
    model_name: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 1000
    temperature: float = 0.8
    max_post_length: int = 320
    narrative_excerpt: int = 100
    fallback_on_error: bool = True


class ContentOutput(BaseModel):
    """Generated content for one pick."""
    title: str
    narrative: str
    thesis: List[str]
    cta: str
    image_prompts: List[str] = Field(default_factory=list)
    video_brief: str = ""
    post: str = Field(..., max_length=320)
    style: ContentStyle
    generated_by: str = Field(..., description="Model name or 'fallback'")


class Mood(str, Enum):
    """Voice of a performance update, set by how recent picks went."""
    CONFIDENT = "confident"
    CHAOTIC = "chaotic"
    STEADY = "steady"


class PerformanceUpdate(BaseModel):
    """Follow-up post on the current pick."""
    text: str = Field(..., max_length=320)
    mood: Mood
    status: PerformanceStatus
    generated_by: str = Field(..., description="Model name or 'fallback'")


BASE_PROMPT = """You are MIYOMI, a prediction-market content creator and data-driven trader. You analyze markets and create engaging content that moves opinions.

Your personality: 20-something NYC prediction market trader, a mix of sophisticated analysis and chaotic party-girl energy.

OUTPUT FORMAT (return exactly this structure):
TITLE: [compelling headline]
NARRATIVE: [one paragraph explaining the market situation]
THESIS:
• [bullet point 1]
• [bullet point 2]
• [bullet point 3]
CTA: [call to action with market reference]
IMAGE_PROMPT_1: [image generation prompt]
IMAGE_PROMPT_2: [alternative image prompt]
VIDEO_BRIEF: [short video concept]"""

STYLE_INSTRUCTIONS = {
    ContentStyle.VIRAL: (
        "Style: VIRAL - Make it shareable, controversial and FOMO-inducing. Use crypto slang, "
        "NYC references and confident predictions. Audience: crypto traders, degens, market watchers."
    ),
    ContentStyle.SOBER: (
        "Style: SOBER STORY - Thoughtful analysis with narrative structure. Use political insight, "
        "historical context and a measured tone. Audience: political junkies, news readers, policy watchers."
    ),
    ContentStyle.EXPLAINER: (
        "Style: EXPLAINER - Educational but entertaining. Break down complex economics simply with "
        "analogies. Audience: general investors, econ students, curious normies."
    ),
}

PERFORMANCE_PROMPT = """You are MIYOMI, a 20-something NYC prediction market trader with chaotic party-girl energy.

Write ONE Farcaster post updating your followers on yesterday's call. Keep it under 280 characters, mention the position and the move in percent, and end with the season win rate. Reply with the post text only."""

MOOD_INSTRUCTIONS = {
    Mood.CONFIDENT: "Mood: CONFIDENT - your recent calls keep hitting. Be smug and playful about it.",
    Mood.CHAOTIC: "Mood: CHAOTIC - your recent calls have been rough. Own it with chaotic humor and diamond hands.",
    Mood.STEADY: "Mood: STEADY - recent results are mixed. Stay cool and sure of the thesis.",
}

_SECTION = re.compile(r"^(TITLE|NARRATIVE|THESIS|CTA|IMAGE_PROMPT_\d+|VIDEO_BRIEF):\s*(.*)$")
_BULLET = re.compile(r"^[•\-\*]\s*")


def select_style(title: str, category: Optional[str] = None) -> ContentStyle:
    """Pick a voice from the market's topic."""
    title = title.lower()
    category = (category or "").lower()
    
    if "bitcoin" in title or "crypto" in title:
        return ContentStyle.VIRAL
    if "politics" in category or "election" in title:
        return ContentStyle.SOBER
    if "economics" in category or re.search(r"\b(fed|inflation)\b", title):
        return ContentStyle.EXPLAINER
    return ContentStyle.VIRAL


def select_mood(recent: Sequence[Dict[str, Any]]) -> Mood:
    """Mood from the win rate of recent scored picks."""
    scored = [r for r in recent if r.get("performance")]
    if not scored:
        return Mood.STEADY
    wins = sum(1 for r in scored if r["performance"]["status"] == PerformanceStatus.WINNING.value)
    rate = wins / len(scored)
    if rate > 0.7:
        return Mood.CONFIDENT
    if rate < 0.3:
        return Mood.CHAOTIC
    return Mood.STEADY


def build_performance_prompt(record: Dict[str, Any], performance: Dict[str, Any], win_rate: float) -> str:
    return f"""PICK UPDATE:
Market: {record["market_title"]}
Your Position: {record["position"]}
Entry Price: {record["entry_price"]}¢
Current Price: {performance["current_price"]}¢
PnL: {performance["pnl_percent"]:+.1f}%
Status: {performance["status"]}
Season Win Rate: {win_rate * 100:.0f}%"""


def build_user_prompt(pick: Pick) -> str:
    market = pick.market
    opp = pick.opportunity
    reasoning = "\n".join(pick.thesis)
    
    return f"""MARKET ANALYSIS:
Title: {market.title}
Source: {market.source}
Current Price: {market.yes_price}¢ YES / {market.no_price}¢ NO
Your Position: {pick.position}
Target Price: {pick.target_price}¢
Confidence: {pick.confidence * 100:.1f}%
Time to Close: {opp.time_to_close:.1f} hours
24h Change: {opp.delta_24h:.1f}¢

REASONING:
{reasoning}

Create content that explains why the market is wrong and why your contrarian position will win. Make it engaging, data-driven, and actionable."""


class ContentGenerator(LoggerMixin):
    """Generates social content for picks with Anthropic's Claude."""
    
    def __init__(
        self,
        config: Optional[ContentConfig] = None,
        client: Optional[anthropic.AsyncAnthropic] = None,
        api_key: Optional[str] = None,
    ):
        self.config = config or ContentConfig(model_name=settings.anthropic_model)
        api_key = api_key or settings.anthropic_api_key
        if client is None and api_key:
            client = anthropic.AsyncAnthropic(api_key=api_key)
        self.client = client
    
    @property
    def enabled(self) -> bool:
        return self.client is not None
    
    async def generate(self, pick: Pick) -> ContentOutput:
        """
        Generate content for a pick.
        
        Raises ``DownstreamFailureError`` only when the LLM call fails and
        ``fallback_on_error`` is off.
        """
        style = select_style(pick.market.title, pick.market.category)
        
        if not self.enabled:
            self.logger.info("LLM not configured, using fallback content", pick_id=pick.id)
            return self.fallback_content(pick, style)
        
        try:
            response = await self.client.messages.create(
                model=self.config.model_name,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=f"{BASE_PROMPT}\n\n{STYLE_INSTRUCTIONS[style]}",
                messages=[{"role": "user", "content": build_user_prompt(pick)}]
            )
        except anthropic.AnthropicError as e:
            self.logger.error("Content generation failed", pick_id=pick.id, error=str(e))
            if not self.config.fallback_on_error:
                raise DownstreamFailureError("content", str(e)) from e
            return self.fallback_content(pick, style)
        
        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )
        content = self.parse_content(text, pick, style)
        
        self.logger.info(
            "Content generated",
            pick_id=pick.id,
            style=style.value,
            post_length=len(content.post)
        )
        return content
    
    def parse_content(self, text: str, pick: Pick, style: ContentStyle) -> ContentOutput:
        """Parse the labelled sections of an LLM reply; missing parts get defaults."""
        sections = {"TITLE": "", "NARRATIVE": "", "CTA": "", "VIDEO_BRIEF": ""}
        thesis: List[str] = []
        image_prompts: List[str] = []
        current = None
        
        for line in text.splitlines():
            line = line.strip()
            if not line:
                continue
            match = _SECTION.match(line)
            if match:
                label, value = match.groups()
                current = label
                if label.startswith("IMAGE_PROMPT"):
                    if value:
                        image_prompts.append(value.strip())
                elif label != "THESIS":
                    sections[label] = value.strip()
                continue
            if current == "THESIS" and _BULLET.match(line):
                thesis.append(_BULLET.sub("", line).strip())
            elif current == "NARRATIVE":
                sections["NARRATIVE"] = f"{sections['NARRATIVE']} {line}".strip()
        
        title = sections["TITLE"] or "Market Analysis"
        narrative = sections["NARRATIVE"] or "Analysis pending..."
        
        return ContentOutput(
            title=title,
            narrative=narrative,
            thesis=thesis or list(pick.thesis),
            cta=sections["CTA"] or "Trade this market →",
            image_prompts=image_prompts,
            video_brief=sections["VIDEO_BRIEF"] or "Market analysis video concept",
            post=self.build_post(title, sections["NARRATIVE"], pick),
            style=style,
            generated_by=self.config.model_name,
        )
    
    def build_post(self, title: str, narrative: str, pick: Pick) -> str:
        """Compose the Farcaster post, shrinking it until it fits."""
        limit = self.config.max_post_length
        hook = title.split(":")[0].strip() if title else "Market Analysis"
        excerpt = narrative
        if len(excerpt) > self.config.narrative_excerpt:
            excerpt = excerpt[:self.config.narrative_excerpt].rstrip() + "..."
        call = f"Taking {pick.position} vs {pick.market.yes_price}% consensus"
        
        candidates = [
            "\n\n".join(part for part in (hook, excerpt, call) if part),
            f"{hook}\n\n{call}",
            call,
        ]
        for post in candidates:
            if len(post) <= limit:
                return post
        return call[:limit]
    
    def fallback_content(self, pick: Pick, style: Optional[ContentStyle] = None) -> ContentOutput:
        """Deterministic content built from the pick alone."""
        market = pick.market
        style = style or select_style(market.title, market.category)
        post = f"Contrarian pick: {market.title}\n\nTaking {pick.position} vs consensus\n\nMarket is wrong on this one"
        if len(post) > self.config.max_post_length:
            post = self.build_post("Contrarian pick", "", pick)
        
        return ContentOutput(
            title=f"{market.title} - Contrarian Analysis",
            narrative=f"Market consensus is wrong about {market.title}. Taking {pick.position} position.",
            thesis=list(pick.thesis),
            cta="Trade this market →",
            image_prompts=["Prediction market chart showing a contrarian opportunity"],
            video_brief="Market analysis visualization",
            post=post,
            style=style,
            generated_by="fallback",
        )
    
    async def generate_performance_update(
        self,
        record: Dict[str, Any],
        performance: Dict[str, Any],
        win_rate: float,
        recent: Sequence[Dict[str, Any]] = ()
    ) -> PerformanceUpdate:
        """
        Write the follow-up post for a re-priced pick.
        
        Falls back to a deterministic post when the LLM is not configured or
        its reply is empty or too long. LLM errors raise
        ``DownstreamFailureError`` only when ``fallback_on_error`` is off.
        """
        mood = select_mood(recent)
        
        if not self.enabled:
            return self.fallback_performance_update(record, performance, win_rate, mood)
        
        try:
            response = await self.client.messages.create(
                model=self.config.model_name,
                max_tokens=300,
                temperature=self.config.temperature,
                system=f"{PERFORMANCE_PROMPT}\n\n{MOOD_INSTRUCTIONS[mood]}",
                messages=[{"role": "user", "content": build_performance_prompt(record, performance, win_rate)}]
            )
        except anthropic.AnthropicError as e:
            self.logger.error("Performance update generation failed", pick_id=record["id"], error=str(e))
            if not self.config.fallback_on_error:
                raise DownstreamFailureError("content", str(e)) from e
            return self.fallback_performance_update(record, performance, win_rate, mood)
        
        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        ).strip()
        if not text or len(text) > self.config.max_post_length:
            self.logger.warning("Unusable performance update reply", pick_id=record["id"], length=len(text))
            return self.fallback_performance_update(record, performance, win_rate, mood)
        
        return PerformanceUpdate(
            text=text,
            mood=mood,
            status=performance["status"],
            generated_by=self.config.model_name,
        )
    
    def fallback_performance_update(
        self,
        record: Dict[str, Any],
        performance: Dict[str, Any],
        win_rate: float,
        mood: Mood = Mood.STEADY
    ) -> PerformanceUpdate:
        position = record["position"]
        pnl_percent = performance["pnl_percent"]
        status = performance["status"]
        
        if status == PerformanceStatus.WINNING.value:
            text = f"Update on yesterday's {position} call: UP {pnl_percent:.1f}% "
            if mood == Mood.CONFIDENT:
                text += "just as I predicted 💅 told y'all to trust the vibes"
            else:
                text += "we're literally printing money rn!!!"
        elif status == PerformanceStatus.LOSING.value:
            text = f"Update on yesterday's {position} call: down {abs(pnl_percent):.1f}% "
            if mood == Mood.CHAOTIC:
                text += "but mercury is still in retrograde so we hold 💎👐"
            else:
                text += "temporary setback, the market will realize I'm right soon"
        else:
            text = f"Yesterday's {position} call holding steady. Market taking its time to accept reality"
        
        text += f"\n\nSeason stats: {win_rate * 100:.0f}% win rate"
        if win_rate > 0.6:
            text += " (literally unstoppable)"
        elif win_rate < 0.4:
            text += " (in my flop era but comeback loading)"
        
        return PerformanceUpdate(text=text, mood=mood, status=status, generated_by="fallback")
