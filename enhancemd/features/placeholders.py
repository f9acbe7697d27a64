import logging
import secrets
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from enhancemd.core.errors import Diagnostic, DiagnosticKind, record
from enhancemd.features.components import ComponentDescriptor

logger = logging.getLogger(__name__)

MARKER_PREFIX = "SMART_COMPONENT_"


@dataclass
class RewriteResult:
    text: str
    markers: Dict[str, ComponentDescriptor] = field(default_factory=OrderedDict)


def _new_nonce(text: str) -> str:
    """A random token guaranteed not to appear in the author's text."""
    while True:
        nonce = secrets.token_hex(4)
        if nonce not in text:
            return nonce


def make_marker(nonce: str, index: int) -> str:
    return f"<!--{MARKER_PREFIX}{nonce}_{index}-->"


def resolve_overlaps(descriptors: List[ComponentDescriptor],
                     diagnostics: Optional[List[Diagnostic]] = None) -> List[ComponentDescriptor]:
    """
    Keep the leftmost-longest descriptor wherever spans collide.
    """
    ordered = sorted(descriptors, key=lambda d: (d.start, -d.end))
    accepted: List[ComponentDescriptor] = []
    for descriptor in ordered:
        if accepted and descriptor.start < accepted[-1].end:
            kept = accepted[-1]
            record(diagnostics, DiagnosticKind.OVERLAPPING_COMPONENT,
                   f"{descriptor.kind.value} at {descriptor.start} overlaps "
                   f"{kept.kind.value} at {kept.start}, left as text",
                   descriptor.kind.value)
            continue
        accepted.append(descriptor)
    return accepted


def rewrite(text: str, descriptors: List[ComponentDescriptor],
            diagnostics: Optional[List[Diagnostic]] = None) -> RewriteResult:
    """
    Replace each descriptor's span with a unique placeholder marker.

    Splicing is done by span offsets in a single pass, so identical raw text
    appearing several times is rewritten exactly where it was found.
    """
    accepted = resolve_overlaps(descriptors, diagnostics)
    if not accepted:
        return RewriteResult(text, OrderedDict())

    nonce = _new_nonce(text)
    markers: Dict[str, ComponentDescriptor] = OrderedDict()
    parts: List[str] = []
    cursor = 0
    for index, descriptor in enumerate(accepted):
        marker = make_marker(nonce, index)
        parts.append(text[cursor:descriptor.start])
        parts.append(marker)
        markers[marker] = descriptor
        cursor = descriptor.end
    parts.append(text[cursor:])

    logger.debug(f"Placeholders: Rewrote {len(markers)} components")
    return RewriteResult(''.join(parts), markers)
