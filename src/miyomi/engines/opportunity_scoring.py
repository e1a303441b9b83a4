"""
Opportunity Scoring Engine - Contrarian scoring of prediction markets

Scores each market on how likely the crowd consensus is wrong (inefficiency)
and how much people will care (cultural relevance), then classifies it into a
recommended stance. The heuristics are tunable weighted-sum terms held in
``ScoringWeights``; they are not statistically derived.

``score`` is a pure function of the market and ``now``. The only term that
depends on the wall clock beyond time-to-close is ``narrative_boost`` (a
weekday-afternoon bump for politics and economics), and it feeds ``score``
only, never the stance or the reasoning.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple
from datetime import datetime, timezone
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo

from miyomi.core.logging import LoggerMixin
from miyomi.models.market import MarketRecord, Opportunity, Position, PriceMovement


def _default_lexicons() -> Dict[str, Tuple[float, Tuple[str, ...]]]:
    return {
        "pop_culture": (30.0, ("taylor", "swift", "kardashian", "tiktok", "viral", "celebrity", "influencer")),
        "tech_crypto": (25.0, (
            "bitcoin", "btc", "ethereum", "eth", "crypto", "ai", "openai", "elon", "musk", "twitter", "meta",
        )),
        "politics": (20.0, ("trump", "biden", "election", "congress", "supreme court")),
        "nyc": (25.0, ("new york", "nyc", "manhattan", "brooklyn", "subway")),
    }


@dataclass
class ScoringWeights:
    """Every threshold and weight used by the scorer."""
    # Probability clamp
    min_probability: float = 0.02
    max_probability: float = 0.98
    
    # Inefficiency terms
    extreme_high: float = 0.8
    extreme_low: float = 0.2
    extreme_points: float = 30.0
    herd_volume: float = 100_000.0
    herd_points: float = 25.0
    stable_low: float = 0.4
    stable_high: float = 0.6
    baseline_days: float = 30.0
    surge_ratio: float = 3.0
    surge_points: float = 20.0
    liquidity_scale: float = 100_000.0
    low_liquidity_ratio: float = 0.1
    low_liquidity_points: float = 15.0
    near_expiry_days: float = 7.0
    near_expiry_points: float = 10.0
    max_inefficiency: float = 100.0
    
    # Volume anomaly flag
    anomaly_surge_ratio: float = 5.0
    anomaly_volume: float = 50_000.0
    
    # Cultural relevance
    lexicons: Dict[str, Tuple[float, Tuple[str, ...]]] = field(default_factory=_default_lexicons)
    max_cultural: float = 100.0
    
    # Classification
    skip_inefficiency_below: float = 40.0
    skip_cultural_below: float = 30.0
    fade_yes_above: float = 0.75
    fade_no_below: float = 0.25
    hype_cultural_above: float = 60.0
    
    # Composite score
    inefficiency_weight: float = 1.0
    cultural_weight: float = 0.5
    narrative_weight: float = 10.0
    narrative_timezone: str = "America/New_York"
    
    # Reasoning and ranking
    overreaction_cents: float = 5.0
    min_hours_to_close: float = 1.0
    max_hours_to_close: float = 365 * 24.0


@dataclass
class _Signals:
    probability: float
    inefficiency: float
    cultural: float
    volume_anomaly: bool
    low_liquidity: bool
    near_expiry: bool


def _compile_keyword(keyword: str) -> re.Pattern:
    return re.compile(r"\b" + re.escape(keyword) + r"\b")


class OpportunityScorer(LoggerMixin):
    """
    Contrarian opportunity scorer.
    
    Classification is evaluated in priority order, first match wins:
    
    1. SKIP when inefficiency and cultural relevance are both low
    2. NO when YES consensus is high
    3. YES when NO consensus is high
    4. fade the majority side on a volume anomaly
    5. fade the majority side on hype-level cultural relevance
    6. fade the majority side
    """
    
    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()
        self._lexicons = [
            (points, [_compile_keyword(k) for k in keywords])
            for points, keywords in self.weights.lexicons.values()
        ]
    
    def score(self, market: MarketRecord, now: Optional[datetime] = None) -> Opportunity:
        """Score one market."""
        now = now or datetime.now(timezone.utc)
        w = self.weights
        
        time_to_close = market.hours_to_close(now)
        signals = self._signals(market, time_to_close)
        position, reasoning = self._classify(market, signals)
        narrative_boost = self.narrative_boost(market, now)
        
        score = (
            w.inefficiency_weight * signals.inefficiency
            + w.cultural_weight * signals.cultural
            + w.narrative_weight * narrative_boost
        )
        
        return Opportunity(
            market=market,
            score=round(score, 4),
            reasoning=reasoning,
            delta_24h=self.delta_24h(market),
            time_to_close=time_to_close,
            recommended_position=position,
            inefficiency_score=signals.inefficiency,
            cultural_relevance=signals.cultural,
            volume_anomaly=signals.volume_anomaly,
            price_movement=self.price_movement(market, signals.probability),
            contrarian_angle=self.contrarian_angle(market, signals),
            liquidity_rank=self.liquidity_rank(market),
            narrative_boost=narrative_boost,
        )
    
    def score_many(self, markets: Sequence[MarketRecord], now: Optional[datetime] = None) -> List[Opportunity]:
        now = now or datetime.now(timezone.utc)
        return [self.score(market, now) for market in markets]
    
    def rank(self, markets: Sequence[MarketRecord], now: Optional[datetime] = None) -> List[Opportunity]:
        """Score, drop SKIP and out-of-window markets, best first."""
        w = self.weights
        opportunities = [
            opp for opp in self.score_many(markets, now)
            if opp.is_actionable and w.min_hours_to_close <= opp.time_to_close <= w.max_hours_to_close
        ]
        opportunities.sort(key=lambda opp: opp.score, reverse=True)
        
        self.logger.info("Ranked opportunities", markets=len(markets), opportunities=len(opportunities))
        for opp in opportunities[:3]:
            self.logger.debug(
                "Top opportunity",
                title=opp.market.title[:60],
                score=opp.score,
                position=opp.recommended_position
            )
        return opportunities
    
    # Signals
    
    def clamp_probability(self, market: MarketRecord) -> float:
        return max(self.weights.min_probability, min(self.weights.max_probability, market.probability))
    
    def _signals(self, market: MarketRecord, time_to_close: float) -> _Signals:
        w = self.weights
        p = self.clamp_probability(market)
        stable = w.stable_low < p < w.stable_high
        surge = self._surge_ratio(market)
        
        inefficiency = 0.0
        if p > w.extreme_high or p < w.extreme_low:
            inefficiency += w.extreme_points
        if market.volume_24h > w.herd_volume and stable:
            inefficiency += w.herd_points
        if surge is not None and surge > w.surge_ratio:
            inefficiency += w.surge_points
        
        liquidity = market.liquidity if market.liquidity is not None else market.liquidity_score * w.liquidity_scale
        low_liquidity = liquidity < market.volume_24h * w.low_liquidity_ratio
        if low_liquidity:
            inefficiency += w.low_liquidity_points
        
        days_to_close = time_to_close / 24.0
        near_expiry = 0 <= days_to_close < w.near_expiry_days and (p > w.fade_yes_above or p < w.fade_no_below)
        if near_expiry:
            inefficiency += w.near_expiry_points
        
        volume_anomaly = (surge is not None and surge > w.anomaly_surge_ratio) or (
            market.volume_24h > w.anomaly_volume and stable
        )
        
        return _Signals(
            probability=p,
            inefficiency=min(inefficiency, w.max_inefficiency),
            cultural=self.cultural_relevance(market),
            volume_anomaly=volume_anomaly,
            low_liquidity=low_liquidity,
            near_expiry=near_expiry,
        )
    
    def _surge_ratio(self, market: MarketRecord) -> Optional[float]:
        """24h volume against the implied daily baseline; None without history."""
        if market.volume_total <= 0:
            return None
        baseline = market.volume_total / self.weights.baseline_days
        return market.volume_24h / baseline
    
    def cultural_relevance(self, market: MarketRecord) -> float:
        """Flat bonus per topical lexicon with at least one keyword in the title."""
        title = market.title.lower()
        total = sum(
            points for points, patterns in self._lexicons
            if any(pattern.search(title) for pattern in patterns)
        )
        return min(total, self.weights.max_cultural)
    
    def narrative_boost(self, market: MarketRecord, now: datetime) -> float:
        """Engagement timing bonus in [0, 1]; depends on the wall clock."""
        local = now.astimezone(ZoneInfo(self.weights.narrative_timezone))
        business_hours = local.weekday() < 5 and 12 <= local.hour <= 18
        
        title = market.title.lower()
        category = (market.category or "").lower()
        
        boost = 0.5
        if "bitcoin" in title or "crypto" in title:
            boost += 0.4
        elif "politics" in category or "election" in title:
            boost += 0.3 if business_hours else 0.1
        elif "economics" in category or re.search(r"\bfed\b", title):
            boost += 0.3 if business_hours else 0.1
        elif re.search(r"\b(ai|tech)\b", title):
            boost += 0.2
        return min(1.0, boost)
    
    @staticmethod
    def delta_24h(market: MarketRecord) -> float:
        """Provider-reported 24h move in cents; 0.0 when the provider gives none."""
        return float(market.price_change_24h) if market.price_change_24h is not None else 0.0
    
    @staticmethod
    def liquidity_rank(market: MarketRecord) -> float:
        volume = market.volume_24h
        if volume > 100_000:
            return 1.0
        if volume > 50_000:
            return 0.8
        if volume > 10_000:
            return 0.6
        if volume > 1_000:
            return 0.4
        return 0.2
    
    def price_movement(self, market: MarketRecord, probability: float) -> PriceMovement:
        if 0.45 < probability < 0.55:
            return PriceMovement.VOLATILE
        if market.volume_24h > self.weights.herd_volume and (probability > 0.7 or probability < 0.3):
            return PriceMovement.TRENDING
        return PriceMovement.STABLE
    
    def contrarian_angle(self, market: MarketRecord, signals: _Signals) -> str:
        title = market.title.lower()
        if signals.probability > self.weights.extreme_high:
            return "Everyone's too confident, and markets hate certainty"
        if signals.probability < self.weights.extreme_low:
            return "Classic oversold setup: fear creates opportunity"
        if signals.volume_anomaly:
            return "Volume screams manipulation: fade the pump"
        if "announce" in title or "release" in title:
            return "Announcement markets leak early, so insiders are already positioned"
        if re.search(r"\b(reach|hit)\b", title):
            return "Round-number targets are psychological traps"
        return "Consensus formed too quickly to trust"
    
    # Classification
    
    def _classify(self, market: MarketRecord, signals: _Signals) -> Tuple[Position, List[str]]:
        w = self.weights
        p = signals.probability
        fade_majority = Position.NO if p > 0.5 else Position.YES
        
        if signals.inefficiency < w.skip_inefficiency_below and signals.cultural < w.skip_cultural_below:
            return Position.SKIP, ["Market not interesting enough: no inefficiency and no cultural angle"]
        
        if p > w.fade_yes_above:
            position = Position.NO
            reasoning = [
                "Market overconfident in YES outcome",
                "Herd mentality: everyone is piling into YES",
            ]
        elif p < w.fade_no_below:
            position = Position.YES
            reasoning = [
                "Market overconfident in NO outcome",
                "Fear has pushed the YES price too low",
            ]
        elif signals.volume_anomaly:
            position = fade_majority
            reasoning = [
                "Volume spike without a matching price move suggests manipulation",
                "Smart money is on the other side of the crowd",
            ]
        elif signals.cultural > w.hype_cultural_above:
            position = fade_majority
            reasoning = [
                "Pop culture markets overhype the likely outcome",
                "Hype-driven consensus tends to get humbled",
            ]
        else:
            position = fade_majority
            reasoning = [self.contrarian_angle(market, signals)]
        
        reasoning.extend(self._supporting_reasons(market, signals))
        return position, reasoning
    
    def _supporting_reasons(self, market: MarketRecord, signals: _Signals) -> List[str]:
        reasons = []
        delta = self.delta_24h(market)
        if abs(delta) > self.weights.overreaction_cents:
            direction = "surge" if delta > 0 else "drop"
            reasons.append(f"Price {direction} of {abs(delta):.1f}¢ in 24h indicates overreaction")
        
        if signals.near_expiry:
            reasons.append("Extreme consensus this close to resolution is where crowds get caught out")
        
        if signals.low_liquidity:
            reasons.append("Thin liquidity relative to volume makes this market easy to push around, which adds risk")
        
        title = market.title
        if re.search(r"\bFed\b", title) or re.search(r"\brates?\b", title.lower()):
            reasons.append("Rate markets price the headline, not the dot plot")
        if "Taylor Swift" in title:
            reasons.append("Tour and album rumors run ahead of any official announcement")
        if re.search(r"\b(bitcoin|crypto)\b", title.lower()):
            reasons.append("Crypto markets move on vibes, not fundamentals")
        return reasons
