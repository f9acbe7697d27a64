import html
import logging
import re
from typing import List

from enhancemd.core.pipeline import RenderResult
from enhancemd.features.registry import Feature, FeatureState, FeatureType

logger = logging.getLogger(__name__)

# Constants
MAX_EXPORT_SIZE = 50 * 1024 * 1024  # 50 MB

EXPORT_STYLES = """
body { font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; max-width: 860px; margin: 2rem auto; line-height: 1.6; color: #1f2937; }
img { max-width: 100%; height: auto; }
table { border-collapse: collapse; width: 100%; }
th, td { border: 1px solid #e5e7eb; padding: 8px; }
.smart-alert { padding: 1rem; border-radius: 8px; margin: 1rem 0; display: flex; gap: .75rem; }
.smart-alert-info { background: #eff6ff; } .smart-alert-warning { background: #fefce8; }
.smart-alert-error { background: #fef2f2; } .smart-alert-success { background: #f0fdf4; }
.smart-alert-tip { background: #faf5ff; }
.progress-track { background: #e5e7eb; border-radius: 999px; height: 1.5rem; overflow: hidden; }
.progress-fill { background: linear-gradient(90deg, #3b82f6, #8b5cf6); height: 100%; color: #fff; text-align: right; padding-right: .5rem; }
.chart-row { display: flex; align-items: center; gap: .5rem; margin: .25rem 0; }
.chart-bar { background: #6366f1; height: 1rem; border-radius: 4px; }
.smart-stats { display: grid; grid-template-columns: repeat(auto-fit, minmax(180px, 1fr)); gap: 1rem; }
.stat-card { padding: 1rem; border: 1px solid #f3f4f6; border-radius: 12px; }
.stat-up { color: #16a34a; } .stat-down { color: #dc2626; }
.task-done { text-decoration: line-through; color: #6b7280; }
"""


def document_title(markdown_text: str) -> str:
    match = re.search(r'^#\s+(.+)$', markdown_text, re.MULTILINE)
    return match.group(1).strip() if match else 'Untitled Document'


def restore_markdown(result: RenderResult) -> str:
    """Resolved markdown with each placeholder turned back into its source syntax."""
    text = result.markdown
    for marker, descriptor in result.components.items():
        text = text.replace(marker, descriptor.raw_text)
    return text


def export_markdown(result: RenderResult) -> bytes:
    return _check_size(restore_markdown(result).encode('utf-8'))


def export_html(result: RenderResult) -> bytes:
    """Standalone HTML document with embedded images and inline styles."""
    title = html.escape(document_title(result.markdown))
    page = (
        '<!DOCTYPE html>\n<html><head><meta charset="utf-8">'
        f'<title>{title}</title><style>{EXPORT_STYLES}</style></head>'
        f'<body><article class="markdown-content">{result.html}</article></body></html>'
    )
    return _check_size(page.encode('utf-8'))


def _check_size(data: bytes) -> bytes:
    if len(data) > MAX_EXPORT_SIZE:
        raise ValueError(f"Content too large ({len(data)/1024/1024:.2f} MB). Max {MAX_EXPORT_SIZE/1024/1024} MB.")
    logger.info(f"Export: Generated {len(data)} bytes")
    return data


def get_features() -> List[Feature]:
    """Export handlers offered to the "save as file" collaborator."""
    return [
        Feature("md_export", export_markdown, FeatureState.STANDARD, FeatureType.EXPORT_HANDLER,
                meta={'extension': 'md', 'mime_type': 'text/markdown'}),
        Feature("html_export", export_html, FeatureState.STANDARD, FeatureType.EXPORT_HANDLER,
                meta={'extension': 'html', 'mime_type': 'text/html'}),
    ]
