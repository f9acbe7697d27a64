import logging
from typing import List, Optional, Tuple

from enhancemd.core import config
from enhancemd.core.errors import Diagnostic
from enhancemd.core.pipeline import PipelineCoordinator, RenderResult
from enhancemd.core.store import KeyValueStore, MemoryStore
from enhancemd.features.images import BatchReport, ImageAsset, ImageIndex, ingest_batch
from enhancemd.features.templates import TemplateCatalog
from enhancemd.features.variables import Variable, VariableSet

logger = logging.getLogger(__name__)


class EditingSession:
    """
    State of one editing session: the active variable set, the image index,
    the template catalog and the pipeline that renders the document.
    Mutated only between pipeline runs.
    """

    def __init__(self, store: Optional[KeyValueStore] = None, debounce_seconds: float = config.DEBOUNCE_MS / 1000,
                 min_batch_seconds: float = config.MIN_BATCH_SECONDS):
        self.store = store or MemoryStore()
        self.templates = TemplateCatalog(self.store)
        self.variables = VariableSet()
        self.images = ImageIndex()
        self.min_batch_seconds = min_batch_seconds
        self.pipeline = PipelineCoordinator(self.variables, self.images, debounce_seconds=debounce_seconds)

    def render(self, content: str, render_html: bool = True) -> RenderResult:
        return self.pipeline.run(content, render_html=render_html)

    def load_template(self, template_id: str,
                      diagnostics: Optional[List[Diagnostic]] = None) -> Optional[Tuple[str, List[Variable]]]:
        """Replace the active variables with the template's and return its expanded body."""
        loaded = self.templates.load(template_id, diagnostics)
        if loaded is None:
            logger.warning(f"Session: Template not found: {template_id}")
            return None
        content, variables = loaded
        self.variables.replace_all(variables)
        logger.info(f"Session: Loaded template {template_id} with {len(variables)} variables")
        return content, variables

    async def add_images(self, assets: List[ImageAsset],
                         diagnostics: Optional[List[Diagnostic]] = None) -> BatchReport:
        """
        Ingest a batch of uploads, then re-resolve the newest document text
        against the updated image index.
        """
        report = await ingest_batch(assets, self.images, self.min_batch_seconds, diagnostics)
        if report.added:
            self.pipeline.rerun_latest()
        return report

    def reset_images(self) -> None:
        self.images.reset()
