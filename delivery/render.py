"""
Digest Renderers
把摘要产物渲染为邮件 HTML 和标题
"""

from __future__ import annotations

from html import escape
from typing import List, Optional, Sequence

from core import Artifact
from utils.clock import DEFAULT_TIMEZONE, resolve_tz


_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
<body style="margin:0;padding:0;background:#f7f7f7;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;">
<div style="max-width:600px;margin:0 auto;padding:24px;">
  <div style="background:#fff;border-radius:8px;padding:32px;border:1px solid #e5e5e5;">
    <p style="font-size:26px;font-weight:700;color:#1e293b;margin:0;font-family:Georgia,serif;">Signal</p>
    <hr style="border:none;border-top:1.5px solid #1e293b;margin:14px 0 16px;">
    <p style="font-size:14px;color:#64748b;margin:0 0 24px;">{heading}</p>
{body}
  </div>
</div>
</body>
</html>"""


def _e(value: object) -> str:
    return escape(str(value or ""), quote=True)


def format_digest_date(artifact: Artifact, timezone: str = DEFAULT_TIMEZONE) -> str:
    local = artifact.generated_at.astimezone(resolve_tz(timezone))
    return f"{local.strftime('%A, %B')} {local.day}"


def build_subject(artifact: Artifact, weekly_bullets: Optional[Sequence[str]] = None, timezone: str = DEFAULT_TIMEZONE) -> str:
    date_text = format_digest_date(artifact, timezone)
    if weekly_bullets:
        return f"Weekly Review + Signal: {date_text}"
    return f"Signal: {date_text}"


def _weekly_section(bullets: Sequence[str]) -> str:
    items = "".join(f"<li>{_e(bullet)}</li>" for bullet in bullets)
    return (
        '    <div style="margin-bottom:28px;padding:20px;background:#f0f7ff;border-left:4px solid #2563eb;">\n'
        '      <h2 style="font-size:16px;color:#1e40af;margin:0 0 12px;">This Week</h2>\n'
        f'      <ul style="margin:0;padding:0 0 0 20px;font-size:14px;line-height:1.8;">{items}</ul>\n'
        "    </div>"
    )


def _insights_section(artifact: Artifact) -> str:
    blocks: List[str] = []
    for insight in artifact.top_insights:
        link = f' <a href="{_e(insight.url)}" style="color:#2563eb;">Read</a>' if insight.url else ""
        blocks.append(
            '      <div style="margin-bottom:20px;padding-bottom:20px;border-bottom:1px solid #eee;">\n'
            f'        <h3 style="font-size:15px;margin:0 0 6px;">{_e(insight.headline)}</h3>\n'
            f'        <p style="font-size:14px;color:#444;line-height:1.6;margin:0 0 6px;">{_e(insight.explanation)}</p>\n'
            f'        <p style="font-size:13px;color:#666;margin:0 0 4px;"><em>{_e(insight.connection)}</em></p>\n'
            f'        <p style="font-size:12px;color:#888;margin:0;">Source: {_e(insight.source)}{link}</p>\n'
            "      </div>"
        )
    return '    <div style="margin-bottom:28px;">\n      <h2 style="font-size:16px;">TOP INSIGHTS</h2>\n' + "\n".join(blocks) + "\n    </div>"


def _signals_section(artifact: Artifact) -> str:
    blocks = [
        '      <div style="margin-bottom:12px;padding:12px;background:#fef9ee;border-radius:6px;">\n'
        f'        <p style="font-size:14px;margin:0 0 4px;"><strong>{_e(signal.competitor)}</strong>: {_e(signal.signal)}</p>\n'
        f'        <p style="font-size:13px;color:#666;margin:0;"><em>Implication: {_e(signal.implication)}</em></p>\n'
        "      </div>"
        for signal in artifact.signals
    ]
    return '    <div style="margin-bottom:28px;">\n      <h2 style="font-size:16px;">COMPETITIVE SIGNALS</h2>\n' + "\n".join(blocks) + "\n    </div>"


def _reading_section(artifact: Artifact) -> str:
    items = "".join(
        f'<li style="margin-bottom:10px;"><a href="{_e(item.url)}" style="color:#2563eb;font-size:14px;">{_e(item.title)}</a>'
        f'<br><span style="font-size:13px;color:#666;">{_e(item.reason)}</span></li>'
        for item in artifact.worth_reading[:5]
    )
    return (
        '    <div style="margin-bottom:28px;">\n      <h2 style="font-size:16px;">WORTH READING</h2>\n'
        f'      <ul style="margin:0;padding:0 0 0 20px;list-style:none;">{items}</ul>\n    </div>'
    )


def build_digest_html(
    artifact: Artifact,
    weekly_bullets: Optional[Sequence[str]] = None,
    timezone: str = DEFAULT_TIMEZONE,
) -> str:
    """
    渲染摘要邮件

    nothing_notable 且没有周汇总时使用简短版本
    """
    date_text = format_digest_date(artifact, timezone)

    if artifact.nothing_notable and not weekly_bullets:
        body = (
            '    <p style="color:#666;font-size:15px;line-height:1.6;margin:0;">'
            f"Scanned {artifact.article_count} articles from {artifact.source_count} sources. Nothing notable today.</p>"
        )
        return _PAGE.format(heading=_e(date_text), body=body)

    sections: List[str] = []
    if weekly_bullets:
        sections.append(_weekly_section(weekly_bullets))
    if artifact.top_insights:
        sections.append(_insights_section(artifact))
    if artifact.signals:
        sections.append(_signals_section(artifact))
    if artifact.worth_reading:
        sections.append(_reading_section(artifact))
    sections.append(
        '    <p style="font-size:13px;color:#999;margin:24px 0 0;padding-top:16px;border-top:1px solid #eee;text-align:center;">'
        "That's it. Nothing else happened worth your time today.</p>"
    )

    heading = f"Weekly Review: {date_text}" if weekly_bullets else date_text
    return _PAGE.format(heading=_e(heading), body="\n".join(sections))
