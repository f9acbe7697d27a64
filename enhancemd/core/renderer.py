from typing import Dict, Tuple
import logging
import re

import markdown
import pymdownx.emoji
import pymdownx.superfences
from bs4 import BeautifulSoup, Comment

from enhancemd.features.components import ComponentDescriptor, ComponentKind
from enhancemd.features.placeholders import MARKER_PREFIX
from enhancemd.features.widgets import render_component

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = [
    'fenced_code',
    'tables',
    'sane_lists',
    'toc',
    'attr_list',
    'def_list',
    'abbr',
    'footnotes',
    'md_in_html',
    'admonition',
    'pymdownx.betterem',
    'pymdownx.caret',
    'pymdownx.mark',
    'pymdownx.tilde',
    'pymdownx.details',
    'pymdownx.highlight',
    'pymdownx.inlinehilite',
    'pymdownx.keys',
    'pymdownx.smartsymbols',
    'pymdownx.superfences',
    'pymdownx.tasklist',
    'pymdownx.magiclink',
    'pymdownx.emoji',
]

MARKDOWN_EXTENSION_CONFIGS = {
    "pymdownx.superfences": {
        "custom_fences": [
            {
                'name': 'mermaid',
                'class': 'mermaid',
                'format': pymdownx.superfences.fence_div_format
            }
        ]
    },
    "pymdownx.emoji": {
        "emoji_index": pymdownx.emoji.gemoji,
        "emoji_generator": pymdownx.emoji.to_alt,
    }
}


def isolate_block_markers(md_text: str, markers: Dict[str, ComponentDescriptor]) -> str:
    """
    Put block component markers on their own paragraph so markdown keeps them
    as raw HTML instead of folding them into surrounding text.
    """
    for marker, descriptor in markers.items():
        if descriptor.kind == ComponentKind.PROGRESS:
            continue
        md_text = md_text.replace(marker, f"\n\n{marker}\n\n")
    return md_text


def render_markdown(md_text: str) -> Tuple[str, str]:
    md_instance = markdown.Markdown(
        extensions=MARKDOWN_EXTENSIONS,
        extension_configs=MARKDOWN_EXTENSION_CONFIGS,
    )
    logger.debug(f"Render markdown: {len(md_text)} chars input")
    html_output = md_instance.convert(md_text)
    return html_output, md_instance.toc


def splice_components(html_output: str, markers: Dict[str, ComponentDescriptor]) -> str:
    """
    Replace every placeholder comment in rendered HTML with its component.
    A paragraph holding nothing but the marker is replaced as a whole.
    """
    if not markers:
        return html_output

    soup = BeautifulSoup(html_output, 'html.parser')
    spliced = 0
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment) and s.strip().startswith(MARKER_PREFIX)):
        marker = f"<!--{comment}-->"
        descriptor = markers.get(marker)
        if descriptor is None:
            logger.warning(f"Renderer: Unknown placeholder {marker}")
            continue

        widget = BeautifulSoup(render_component(descriptor), 'html.parser')
        parent = comment.parent
        siblings = [c for c in parent.contents if not (isinstance(c, str) and not c.strip())] if parent else []
        if parent is not None and parent.name == 'p' and len(siblings) == 1:
            parent.replace_with(widget)
        else:
            comment.replace_with(widget)
        spliced += 1

    logger.debug(f"Renderer: Spliced {spliced}/{len(markers)} components")
    return str(soup)


def render_document(md_text: str, markers: Dict[str, ComponentDescriptor]) -> Tuple[str, str]:
    """
    Render resolved markdown to HTML and splice the smart components back in.
    Returns (html, toc).
    """
    md_text = re.sub(r'^\[TOC\]$', '', md_text, flags=re.MULTILINE | re.IGNORECASE)
    md_text = isolate_block_markers(md_text, markers)
    html_output, toc = render_markdown(md_text)
    return splice_components(html_output, markers), toc
