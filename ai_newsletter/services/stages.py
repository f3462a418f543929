from __future__ import annotations

import json
from datetime import date as date_cls
from typing import Protocol

from ai_newsletter.models.errors import SchemaViolation
from ai_newsletter.models.schemas import (
    CURATED_ITEMS,
    DISCOVERY_MAX_ITEMS,
    DISCOVERY_MIN_ITEMS,
    DiscoveredBatch,
)


class JSONModel(Protocol):
    def chat_json(self, system: str, user: str, web_search: bool = False) -> dict: ...


DISCOVERY_SYSTEM = f"""You are an expert AI news discovery agent. Use web search to find the most relevant and recent AI news articles.
You MUST use the web_search tool; do not rely on training data. Perform at least 3-5 different searches.

Focus areas: LLMs and foundation models, research breakthroughs, product launches, policy and regulation,
startups and funding, open source projects, ethics and safety, AI agents and automation.

Quality criteria:
- Prefer articles from the last 24 hours (48 at most)
- Favor credible sources (major tech sites, research institutions, official company blogs)
- Diverse topics and sources, no duplicate stories
- Minimum {DISCOVERY_MIN_ITEMS} articles, maximum {DISCOVERY_MAX_ITEMS}
- Every article must have a full working URL

Return ONLY valid JSON matching this schema:
{{
  "articles": [
    {{"title": "clear headline", "url": "https://...", "source": "site name", "snippet": "1-2 sentences"}}
  ]
}}
"""

CURATION_SYSTEM = f"""You are an expert newsletter curator for a daily AI newsletter.
You receive articles found by the discovery agent. Read them, rank them by impact, and select
exactly {CURATED_ITEMS} stories.

Ensure diversity across: LLMs and foundation models, products and tools, research, industry and funding,
policy and regulation, ethics and safety, open source, agents and automation.
Do not select multiple articles about the same story.

For each story write a clear headline (rewrite for clarity if needed) and a 2-3 sentence summary
explaining what happened, why it matters, and who it affects. Keep the original URL.

Return ONLY valid JSON matching this schema:
{{
  "curatedArticles": [
    {{"headline": "...", "summary": "...", "url": "https://..."}}
  ]
}}
The array must contain exactly {CURATED_ITEMS} entries.
"""


def _discovery_prompt(today: date_cls) -> str:
    d = today.isoformat()
    return f"""Find the latest AI news from the past 24 hours.

Suggested searches:
- "AI news today {d}"
- "latest AI developments"
- "breaking AI announcements"
- "new AI models released"
- "AI research papers this week"
- "AI startup funding news"
"""


def _curation_prompt(batch: DiscoveredBatch) -> str:
    articles = [it.model_dump() for it in batch]
    return f"""Here are the articles to curate ({len(articles)} total):

{json.dumps({"articles": articles}, indent=2, ensure_ascii=False)}
"""


class NewsDiscoverer:
    """Self-directed search stage; returns the raw ``{"articles": [...]}`` payload."""

    name = "discovery"

    def __init__(self, llm: JSONModel) -> None:
        self.llm = llm

    def discover(self, today: date_cls | None = None) -> dict:
        try:
            return self.llm.chat_json(
                DISCOVERY_SYSTEM,
                _discovery_prompt(today or date_cls.today()),
                web_search=True,
            )
        except ValueError as e:
            raise SchemaViolation(self.name, str(e)) from e


class NewsCurator:
    name = "curation"

    def __init__(self, llm: JSONModel) -> None:
        self.llm = llm

    def curate(self, batch: DiscoveredBatch) -> dict:
        try:
            return self.llm.chat_json(CURATION_SYSTEM, _curation_prompt(batch), web_search=True)
        except ValueError as e:
            raise SchemaViolation(self.name, str(e)) from e
