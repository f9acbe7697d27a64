import unittest
import sys
from pathlib import Path

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from enhancemd.core.errors import DiagnosticKind
from enhancemd.features.components import ComponentKind, round_half_up, scan

SAMPLE = """# Status

[progress:42:Done]

```chart
bar
Q1: 10
Q2: 20.5
notes
```

```timeline
2024-01: Kickoff
2024-03-15 : Beta
Someday maybe
```

```tasks
[x] Write docs
[ ] Ship it
[X] Review
```

:::warning
  Mind the gap
:::

```stats
Revenue|$10k|+5%|trophy
Users|520
```
"""


class TestComponentScanner(unittest.TestCase):

    def test_progress_descriptor(self):
        descriptors = scan("[progress:42:Done]")
        self.assertEqual(len(descriptors), 1)
        progress = descriptors[0]
        self.assertEqual(progress.kind, ComponentKind.PROGRESS)
        self.assertEqual(progress.payload, {'value': 42, 'label': 'Done'})
        self.assertEqual(progress.span, (0, 18))
        self.assertEqual(progress.raw_text, "[progress:42:Done]")

    def test_progress_without_label_and_clamping(self):
        plain, over = scan("[progress:7] [progress:150]")
        self.assertIsNone(plain.payload['label'])
        self.assertEqual(over.payload['value'], 100)

    def test_unknown_chart_keyword_is_dropped(self):
        diagnostics = []
        text = "```chart\nradar\na: 1\n```"
        self.assertEqual(scan(text, diagnostics), [])
        self.assertEqual(diagnostics[0].kind, DiagnosticKind.UNKNOWN_COMPONENT_KEYWORD)

    def test_unknown_alert_keyword_is_reported(self):
        diagnostics = []
        self.assertEqual(scan(":::danger\nRun\n:::", diagnostics), [])
        self.assertEqual([d.subject for d in diagnostics], ['danger'])

    def test_alert_keyword_is_case_sensitive(self):
        diagnostics = []
        self.assertEqual(scan(":::Info\nCapitalized\n:::", diagnostics), [])
        self.assertEqual([d.kind for d in diagnostics], [DiagnosticKind.UNKNOWN_COMPONENT_KEYWORD])
        self.assertEqual(diagnostics[0].subject, 'Info')

    def test_sample_payloads(self):
        by_kind = {d.kind: d for d in scan(SAMPLE)}
        self.assertEqual(set(by_kind), set(ComponentKind))

        chart = by_kind[ComponentKind.CHART].payload
        self.assertEqual(chart, {'type': 'bar', 'labels': ['Q1', 'Q2'], 'values': [10.0, 20.5]})

        timeline = by_kind[ComponentKind.TIMELINE].payload['items']
        self.assertEqual(timeline, [
            {'date': '2024-01', 'text': 'Kickoff'},
            {'date': '2024-03-15', 'text': 'Beta'},
            {'date': '', 'text': 'Someday maybe'},
        ])

        tasks = by_kind[ComponentKind.TASKS].payload
        self.assertEqual([t['completed'] for t in tasks['items']], [True, False, True])
        self.assertEqual(tasks['items'][1]['text'], 'Ship it')
        self.assertEqual((tasks['completed'], tasks['total'], tasks['percent']), (2, 3, 67))

        alert = by_kind[ComponentKind.ALERT].payload
        self.assertEqual(alert, {'type': 'warning', 'content': 'Mind the gap'})

        cards = by_kind[ComponentKind.STATS].payload['cards']
        self.assertEqual(cards[0], {'title': 'Revenue', 'value': '$10k', 'change': '+5%', 'icon': 'trophy'})
        self.assertEqual(cards[1], {'title': 'Users', 'value': '520', 'change': '', 'icon': ''})

    def test_empty_task_list(self):
        tasks = scan("```tasks\n```")[0].payload
        self.assertEqual((tasks['total'], tasks['percent']), (0, 0))

    def test_ordered_by_span_start(self):
        starts = [d.start for d in scan(SAMPLE)]
        self.assertEqual(starts, sorted(starts))

    def test_spans_point_at_raw_text(self):
        for descriptor in scan(SAMPLE):
            self.assertEqual(SAMPLE[descriptor.start:descriptor.end], descriptor.raw_text)

    def test_scanning_is_deterministic(self):
        self.assertEqual(scan(SAMPLE), scan(SAMPLE))

    def test_round_half_up(self):
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(66.66), 67)
        self.assertEqual(round_half_up(50.0), 50)


if __name__ == '__main__':
    unittest.main()
