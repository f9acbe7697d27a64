import unittest
import sys
from pathlib import Path

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from enhancemd.core.renderer import isolate_block_markers, render_document, splice_components
from enhancemd.features.components import scan
from enhancemd.features.placeholders import rewrite
from enhancemd.features.widgets import render_component


def prepare(text):
    result = rewrite(text, scan(text))
    return result.text, result.markers


class TestRenderer(unittest.TestCase):

    def test_block_component_replaces_marker_paragraph(self):
        text, markers = prepare("Intro\n:::info\nRead <this> first\n:::\nOutro")
        html, _ = render_document(text, markers)
        self.assertIn('smart-alert-info', html)
        self.assertIn('Read &lt;this&gt; first', html)
        self.assertNotIn('SMART_COMPONENT_', html)
        self.assertNotIn('<p><div', html)

    def test_inline_progress_stays_in_paragraph(self):
        text, markers = prepare("Status: [progress:30:Build] today")
        html, _ = render_document(text, markers)
        self.assertIn('data-value="30"', html)
        self.assertIn('data-label="Build"', html)
        self.assertIn('Status:', html)

    def test_all_widgets_render(self):
        source = ("```chart\npie\nA: 1\nB: 3\n```\n\n```timeline\n2024: Start\n```\n\n"
                  "```tasks\n[x] one\n```\n\n```stats\nUsers|5|-2%|users\n```\n")
        text, markers = prepare(source)
        self.assertEqual(len(markers), 4)
        html, _ = render_document(text, markers)
        for css in ('smart-chart-pie', 'smart-timeline', 'smart-tasks', 'smart-stats', 'stat-down'):
            self.assertIn(css, html)
        self.assertIn('A: 1 (25%)', html)

    def test_isolate_block_markers(self):
        text, markers = prepare("a :::tip\nx\n::: b [progress:1]")
        isolated = isolate_block_markers(text, markers)
        block, inline = list(markers)
        self.assertIn(f"\n\n{block}\n\n", isolated)
        self.assertNotIn(f"\n\n{inline}", isolated)

    def test_toc_marker_removed(self):
        html, toc = render_document("[TOC]\n# Title\n\nBody", {})
        self.assertNotIn('[TOC]', html)
        self.assertIn('Title', toc)

    def test_unknown_marker_is_left_alone(self):
        html = "<p><!--SMART_COMPONENT_ffff_9--></p>"
        self.assertEqual(splice_components(html, {'<!--SMART_COMPONENT_0000_0-->': None}), html)

    def test_widget_escapes_text(self):
        descriptor = scan("[progress:5:<b>bold</b>]")[0]
        self.assertIn('&lt;b&gt;bold&lt;/b&gt;', render_component(descriptor))


if __name__ == '__main__':
    unittest.main()
