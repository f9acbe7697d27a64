"""
HTML for smart components.

These are the live elements spliced back into the rendered markdown at each
placeholder marker.
"""

import html
import logging
from typing import Callable, Dict

from enhancemd.features.components import ComponentDescriptor, ComponentKind

logger = logging.getLogger(__name__)

ALERT_ICONS = {
    'info': 'ℹ️',
    'warning': '⚠️',
    'error': '❌',
    'success': '✅',
    'tip': '💡',
}

STAT_ICONS = {
    'users': '👥',
    'fire': '🔥',
    'trophy': '🏆',
    'sparkles': '✨',
    'globe': '🌍',
    'location': '📍',
    'calendar': '📅',
}

PIE_COLORS = ['#6366f1', '#ec4899', '#14b8a6', '#f59e0b', '#8b5cf6', '#ef4444', '#22c55e']


def _e(value) -> str:
    return html.escape(str(value), quote=True)


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def render_chart(payload: Dict) -> str:
    labels, values = payload['labels'], payload['values']
    chart_type = payload['type']
    if chart_type in ('pie', 'donut'):
        total = sum(values) or 1
        rows = []
        for i, (label, value) in enumerate(zip(labels, values)):
            share = round(value / total * 100, 1)
            color = PIE_COLORS[i % len(PIE_COLORS)]
            rows.append(
                f'<li><span class="swatch" style="background:{color}"></span>'
                f'{_e(label)}: {_format_number(value)} ({share:g}%)</li>'
            )
        return (f'<div class="smart-chart smart-chart-{chart_type}">'
                f'<ul class="chart-legend">{"".join(rows)}</ul></div>')

    peak = max(values) if values and max(values) > 0 else 1
    bars = []
    for label, value in zip(labels, values):
        width = max(0.0, min(100.0, value / peak * 100))
        bars.append(
            f'<div class="chart-row"><span class="chart-label">{_e(label)}</span>'
            f'<div class="chart-bar" style="width:{width:.1f}%"></div>'
            f'<span class="chart-value">{_format_number(value)}</span></div>'
        )
    return f'<div class="smart-chart smart-chart-{chart_type}">{"".join(bars)}</div>'


def render_timeline(payload: Dict) -> str:
    entries = []
    for item in payload['items']:
        date = f'<div class="timeline-date">{_e(item["date"])}</div>' if item['date'] else ''
        entries.append(f'<li class="timeline-item">{date}<div class="timeline-text">{_e(item["text"])}</div></li>')
    return f'<div class="smart-timeline"><h3>Timeline</h3><ol>{"".join(entries)}</ol></div>'


def render_progress(payload: Dict) -> str:
    value = payload['value']
    label = payload.get('label')
    label_html = f'<div class="progress-label">{_e(label)}</div>' if label else ''
    label_attr = f' data-label="{_e(label)}"' if label else ''
    return (f'<div class="smart-progress" data-value="{value}"{label_attr}>{label_html}'
            f'<div class="progress-track"><div class="progress-fill" style="width:{value}%">'
            f'<span>{value}%</span></div></div></div>')


def render_tasks(payload: Dict) -> str:
    items = []
    for item in payload['items']:
        state = 'done' if item['completed'] else 'open'
        mark = '☑' if item['completed'] else '☐'
        items.append(f'<li class="task task-{state}">{mark} {_e(item["text"])}</li>')
    summary = f'{payload["completed"]}/{payload["total"]} ({payload["percent"]}%)'
    return (f'<div class="smart-tasks"><div class="tasks-header"><h3>Tasks</h3>'
            f'<span class="tasks-summary">{summary}</span></div>'
            f'{render_progress({"value": payload["percent"], "label": None})}'
            f'<ul>{"".join(items)}</ul></div>')


def render_alert(payload: Dict) -> str:
    alert_type = payload['type'] if payload['type'] in ALERT_ICONS else 'info'
    return (f'<div class="smart-alert smart-alert-{alert_type}" role="note">'
            f'<span class="alert-icon">{ALERT_ICONS[alert_type]}</span>'
            f'<div class="alert-body">{_e(payload["content"])}</div></div>')


def render_stats(payload: Dict) -> str:
    cards = []
    for card in payload['cards']:
        change = card['change']
        trend = 'up' if change.startswith('+') else ('down' if change.startswith('-') else 'flat')
        change_html = f'<p class="stat-change stat-{trend}">{_e(change)}</p>' if change else ''
        icon_html = ''
        if card['icon']:
            icon_html = f'<div class="stat-icon">{STAT_ICONS.get(card["icon"], STAT_ICONS["sparkles"])}</div>'
        cards.append(
            f'<div class="stat-card"><p class="stat-title">{_e(card["title"])}</p>'
            f'<p class="stat-value">{_e(card["value"])}</p>{change_html}{icon_html}</div>'
        )
    return f'<div class="smart-stats">{"".join(cards)}</div>'


RENDERERS: Dict[ComponentKind, Callable[[Dict], str]] = {
    ComponentKind.CHART: render_chart,
    ComponentKind.TIMELINE: render_timeline,
    ComponentKind.PROGRESS: render_progress,
    ComponentKind.TASKS: render_tasks,
    ComponentKind.ALERT: render_alert,
    ComponentKind.STATS: render_stats,
}


def render_component(descriptor: ComponentDescriptor) -> str:
    """Return the HTML for one smart component."""
    return RENDERERS[descriptor.kind](descriptor.payload)
