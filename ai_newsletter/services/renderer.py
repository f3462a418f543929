from __future__ import annotations

from datetime import datetime
from html import escape
from typing import Sequence

from ai_newsletter.models.schemas import CuratedItem, Document

# Plunk swaps this for the contact's unsubscribe link when a campaign is sent.
UNSUBSCRIBE_PLACEHOLDER = "{{unsubscribe}}"

DEFAULT_TITLE = "AI News Daily"

# ---------------------------
# Helpers
# ---------------------------

def newsletter_date(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"{now:%A}, {now:%B} {now.day}, {now.year}"


def newsletter_subject(title: str, date: str) -> str:
    return f"🤖 {title} - {date}"


def _attr(value: str) -> str:
    return escape(str(value), quote=True)


_STYLE = """
    body {
      font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Oxygen, Ubuntu, Cantarell, sans-serif;
      line-height: 1.6;
      color: #333;
      max-width: 600px;
      margin: 0 auto;
      padding: 20px;
      background-color: #f5f5f5;
    }
    .container { background-color: #ffffff; border-radius: 8px; padding: 30px; }
    .header { border-bottom: 3px solid #3b82f6; padding-bottom: 20px; margin-bottom: 30px; }
    h1 { color: #1f2937; margin: 0 0 10px 0; font-size: 28px; }
    .date { color: #6b7280; font-size: 14px; margin: 0; }
    .article { margin-bottom: 30px; padding-bottom: 30px; border-bottom: 1px solid #e5e7eb; }
    .article:last-child { border-bottom: none; margin-bottom: 0; padding-bottom: 0; }
    .article-number {
      display: inline-block;
      background-color: #3b82f6;
      color: white;
      width: 24px;
      height: 24px;
      border-radius: 50%;
      text-align: center;
      line-height: 24px;
      font-size: 14px;
      font-weight: bold;
    }
    .article-headline { color: #1f2937; font-size: 20px; font-weight: 600; margin: 10px 0; line-height: 1.4; }
    .article-headline a { color: #1f2937; text-decoration: none; }
    .article-summary { color: #4b5563; margin: 10px 0; font-size: 15px; }
    .read-more { color: #3b82f6; text-decoration: none; font-weight: 500; font-size: 14px; }
    .footer {
      margin-top: 40px;
      padding-top: 20px;
      border-top: 1px solid #e5e7eb;
      text-align: center;
      color: #6b7280;
      font-size: 13px;
    }
"""

# ---------------------------
# Newsletter
# ---------------------------

def _render_item(index: int, item: CuratedItem) -> str:
    url = _attr(item.url)
    return "\n".join([
        '    <div class="article">',
        f'      <div><span class="article-number">{index}</span></div>',
        '      <h2 class="article-headline">',
        f'        <a href="{url}" target="_blank">{escape(item.headline)}</a>',
        "      </h2>",
        f'      <p class="article-summary">{escape(item.summary)}</p>',
        f'      <a href="{url}" class="read-more" target="_blank">Read more →</a>',
        "    </div>",
    ])


def _render_footer(broadcast: bool) -> str:
    lines = [
        '    <div class="footer">',
        "      <p>This newsletter was curated by AI agents.</p>",
    ]
    if broadcast:
        lines.append(
            f'      <p>Don\'t want these emails? <a href="{UNSUBSCRIBE_PLACEHOLDER}">Unsubscribe</a></p>'
        )
    lines.append("    </div>")
    return "\n".join(lines)


def render_newsletter(
    items: Sequence[CuratedItem],
    date: str,
    *,
    broadcast: bool = False,
    title: str = DEFAULT_TITLE,
) -> Document:
    """
    Render curated items into a complete HTML email.

    Items are numbered and emitted in the order given. The output depends only
    on the arguments, so identical input renders byte-identical HTML. Broadcast
    documents carry exactly one unsubscribe placeholder in the footer.
    """
    blocks = [_render_item(i, it) for i, it in enumerate(items, start=1)]

    html = "\n".join([
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '  <meta charset="UTF-8">',
        '  <meta name="viewport" content="width=device-width, initial-scale=1.0">',
        f"  <title>{escape(title)}</title>",
        f"  <style>{_STYLE}  </style>",
        "</head>",
        "<body>",
        '  <div class="container">',
        '    <div class="header">',
        f"      <h1>🤖 {escape(title)}</h1>",
        f'      <p class="date">{escape(date)}</p>',
        "    </div>",
        *blocks,
        _render_footer(broadcast),
        "  </div>",
        "</body>",
        "</html>",
        "",
    ])

    return Document(
        title=title,
        subject=newsletter_subject(title, date),
        date=date,
        html=html,
        item_count=len(items),
    )


# ---------------------------
# Welcome email
# ---------------------------

def render_welcome(title: str = DEFAULT_TITLE, confirm_url: str | None = None) -> Document:
    confirm = ""
    if confirm_url:
        confirm = (
            f'  <p><a href="{_attr(confirm_url)}">Confirm your subscription</a> '
            "to start receiving the newsletter.</p>\n"
        )

    html = (
        "<!DOCTYPE html>\n"
        "<html>\n"
        '<head><meta charset="UTF-8"></head>\n'
        "<body>\n"
        f"  <h1>Welcome to {escape(title)}! 🎉</h1>\n"
        "  <p>Thanks for subscribing!</p>\n"
        f"{confirm}"
        "  <h2>What to expect:</h2>\n"
        "  <ul>\n"
        "    <li>📰 Top 10 AI news stories every day</li>\n"
        "    <li>🤖 Curated by autonomous AI agents</li>\n"
        "    <li>⚡ Real-time web search for the latest news</li>\n"
        "    <li>✨ Clear summaries that explain why it matters</li>\n"
        "  </ul>\n"
        "  <p>Your newsletter will arrive at 8:00 AM UTC daily.</p>\n"
        "</body>\n"
        "</html>\n"
    )
    return Document(title=title, subject=f"🤖 Welcome to {title}!", date="", html=html)
