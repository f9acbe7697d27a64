"""
Error taxonomy and non-fatal diagnostics for the EnhanceMD pipeline.

Every condition raised here is local and recoverable. Engines catch their own
errors, record a Diagnostic and keep going, so the pipeline always produces
some output for the editing session.
"""

import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class EnhanceMDError(Exception):
    """Base exception for all EnhanceMD errors."""


class UploadRejected(EnhanceMDError):
    """Raised when an uploaded asset is oversize, not an image or undecodable."""

    def __init__(self, filename: str, reason: str):
        super().__init__(reason)
        self.filename = filename
        self.reason = reason


class EncodeFailed(UploadRejected):
    """Raised when re-encoding an image fails."""


class ListParseFailed(EnhanceMDError):
    """Raised when a list variable does not hold a JSON array of records."""


class ExpressionEvalFailed(EnhanceMDError):
    """Raised when a computed expression cannot be evaluated."""


class EvalError(ExpressionEvalFailed):
    """Raised by the expression evaluator for parse and evaluation errors."""


class UnknownComponentKeyword(EnhanceMDError):
    """Raised for an unrecognized chart or alert type keyword."""


class DiagnosticKind(Enum):
    UPLOAD_REJECTED = "UploadRejected"
    ENCODE_FAILED = "EncodeFailed"
    LIST_PARSE_FAILED = "ListParseFailed"
    EXPRESSION_EVAL_FAILED = "ExpressionEvalFailed"
    UNKNOWN_COMPONENT_KEYWORD = "UnknownComponentKeyword"
    UNDECLARED_CONDITIONAL = "UndeclaredConditional"
    OVERLAPPING_COMPONENT = "OverlappingComponent"
    NESTING_TOO_DEEP = "NestingTooDeep"


@dataclass(frozen=True)
class Diagnostic:
    """A recoverable problem found while processing one document version."""
    kind: DiagnosticKind
    message: str
    subject: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        data = asdict(self)
        data['kind'] = self.kind.value
        return data


def record(diagnostics: Optional[List[Diagnostic]], kind: DiagnosticKind,
           message: str, subject: Optional[str] = None) -> Diagnostic:
    """
    Log a diagnostic and append it to the collector if one was supplied.
    """
    diagnostic = Diagnostic(kind, message, subject)
    logger.warning(f"{kind.value}: {message}" + (f" ({subject})" if subject else ""))
    if diagnostics is not None:
        diagnostics.append(diagnostic)
    return diagnostic
