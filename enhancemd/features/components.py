"""
Smart component scanner.

Recognizes the custom syntaxes embedded in markdown and parses their payloads:

    ```chart        bar|line|pie|donut, then "label: value" lines
    ```timeline     "YYYY[-MM[-DD]]: text" lines
    [progress:N:label]
    ```tasks        "[ ]" / "[x]" prefixed lines
    :::info ... :::  (info|warning|error|success|tip)
    ```stats        "title|value|change|icon" lines

Each kind scans the whole text on its own; matches of different kinds may
overlap and are reported as found.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from enhancemd.core.errors import Diagnostic, DiagnosticKind, UnknownComponentKeyword, record

logger = logging.getLogger(__name__)


class ComponentKind(Enum):
    CHART = "chart"
    TIMELINE = "timeline"
    PROGRESS = "progress"
    TASKS = "tasks"
    ALERT = "alert"
    STATS = "stats"


CHART_TYPES = ('bar', 'line', 'pie', 'donut')
ALERT_TYPES = ('info', 'warning', 'error', 'success', 'tip')

CHART_RE = re.compile(r'```chart\r?\n(.*?)```', re.DOTALL)
TIMELINE_RE = re.compile(r'```timeline\r?\n(.*?)```', re.DOTALL)
PROGRESS_RE = re.compile(r'\[progress:(\d+)(?::(.+?))?\]')
TASKS_RE = re.compile(r'```tasks?\r?\n(.*?)```', re.DOTALL)
ALERT_RE = re.compile(r':::(' + '|'.join(ALERT_TYPES) + r')\r?\n(.*?):::', re.DOTALL)
ALERT_OPENER_RE = re.compile(r'^:::([A-Za-z]+)[ \t]*$', re.MULTILINE)
STATS_RE = re.compile(r'```stats?\r?\n(.*?)```', re.DOTALL)

TIMELINE_ITEM_RE = re.compile(r'^(\d{4}(?:-\d{2})?(?:-\d{2})?)\s*:\s*(.+)$')
TASK_PREFIX_RE = re.compile(r'^\[[xX\s]\]\s*')


@dataclass(frozen=True)
class ComponentDescriptor:
    kind: ComponentKind
    span: Tuple[int, int]
    raw_text: str
    payload: Dict[str, Any]

    @property
    def start(self) -> int:
        return self.span[0]

    @property
    def end(self) -> int:
        return self.span[1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'span': list(self.span),
            'payload': self.payload,
        }


def _lines(body: str) -> List[str]:
    return [line.strip() for line in body.strip().splitlines() if line.strip()]


def _number(text: str) -> Optional[float]:
    match = re.match(r'^[+-]?(\d+(\.\d*)?|\.\d+)', text)
    return float(match.group(0)) if match else None


def round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def chart_type(first_line: str) -> str:
    """Chart type keyword of a chart block. Raises UnknownComponentKeyword."""
    keyword = first_line.strip().lower()
    if keyword not in CHART_TYPES:
        raise UnknownComponentKeyword(keyword)
    return keyword


def scan_charts(text: str, diagnostics: Optional[List[Diagnostic]] = None) -> List[ComponentDescriptor]:
    found = []
    for match in CHART_RE.finditer(text):
        lines = match.group(1).strip().split('\n')
        try:
            kind = chart_type(lines[0])
        except UnknownComponentKeyword as e:
            record(diagnostics, DiagnosticKind.UNKNOWN_COMPONENT_KEYWORD,
                   f"Unknown chart type '{e}', block left as text", str(e))
            continue
        labels, values = [], []
        for line in lines[1:]:
            parts = [p.strip() for p in line.split(':')]
            if len(parts) < 2 or not parts[0] or not parts[1]:
                continue
            value = _number(parts[1])
            if value is None:
                logger.debug(f"Components: Skipping chart row without a number: {line!r}")
                continue
            labels.append(parts[0])
            values.append(value)
        found.append(ComponentDescriptor(
            ComponentKind.CHART, match.span(), match.group(0),
            {'type': kind, 'labels': labels, 'values': values},
        ))
    return found


def scan_timelines(text: str, diagnostics: Optional[List[Diagnostic]] = None) -> List[ComponentDescriptor]:
    found = []
    for match in TIMELINE_RE.finditer(text):
        items = []
        for line in _lines(match.group(1)):
            item = TIMELINE_ITEM_RE.match(line)
            if item:
                items.append({'date': item.group(1), 'text': item.group(2)})
            else:
                items.append({'date': '', 'text': line})
        found.append(ComponentDescriptor(
            ComponentKind.TIMELINE, match.span(), match.group(0), {'items': items},
        ))
    return found


def scan_progress(text: str, diagnostics: Optional[List[Diagnostic]] = None) -> List[ComponentDescriptor]:
    found = []
    for match in PROGRESS_RE.finditer(text):
        value = max(0, min(100, int(match.group(1))))
        found.append(ComponentDescriptor(
            ComponentKind.PROGRESS, match.span(), match.group(0),
            {'value': value, 'label': match.group(2)},
        ))
    return found


def scan_tasks(text: str, diagnostics: Optional[List[Diagnostic]] = None) -> List[ComponentDescriptor]:
    found = []
    for match in TASKS_RE.finditer(text):
        items = []
        for line in _lines(match.group(1)):
            completed = line.startswith('[x]') or line.startswith('[X]')
            items.append({'text': TASK_PREFIX_RE.sub('', line), 'completed': completed})
        done = sum(1 for item in items if item['completed'])
        total = len(items)
        percent = round_half_up(done / total * 100) if total else 0
        found.append(ComponentDescriptor(
            ComponentKind.TASKS, match.span(), match.group(0),
            {'items': items, 'completed': done, 'total': total, 'percent': percent},
        ))
    return found


def scan_alerts(text: str, diagnostics: Optional[List[Diagnostic]] = None) -> List[ComponentDescriptor]:
    found = []
    for match in ALERT_RE.finditer(text):
        found.append(ComponentDescriptor(
            ComponentKind.ALERT, match.span(), match.group(0),
            {'type': match.group(1), 'content': match.group(2).strip()},
        ))
    for opener in ALERT_OPENER_RE.finditer(text):
        keyword = opener.group(1)
        if keyword not in ALERT_TYPES:
            record(diagnostics, DiagnosticKind.UNKNOWN_COMPONENT_KEYWORD,
                   f"Unknown alert type '{keyword}', block left as text", keyword)
    return found


def scan_stats(text: str, diagnostics: Optional[List[Diagnostic]] = None) -> List[ComponentDescriptor]:
    found = []
    for match in STATS_RE.finditer(text):
        cards = []
        for line in _lines(match.group(1)):
            parts = [p.strip() for p in line.split('|')]
            parts += [''] * (4 - len(parts))
            cards.append({'title': parts[0], 'value': parts[1], 'change': parts[2], 'icon': parts[3]})
        found.append(ComponentDescriptor(
            ComponentKind.STATS, match.span(), match.group(0), {'cards': cards},
        ))
    return found


SCANNERS: List[Callable[[str, Optional[List[Diagnostic]]], List[ComponentDescriptor]]] = [
    scan_charts,
    scan_timelines,
    scan_progress,
    scan_tasks,
    scan_alerts,
    scan_stats,
]


def scan(text: str, diagnostics: Optional[List[Diagnostic]] = None) -> List[ComponentDescriptor]:
    """
    Find every smart component in text, ordered by span start.
    """
    descriptors: List[ComponentDescriptor] = []
    for scanner in SCANNERS:
        descriptors.extend(scanner(text, diagnostics))
    descriptors.sort(key=lambda d: (d.start, -d.end))
    logger.debug(f"Components: Found {len(descriptors)} smart components")
    return descriptors
