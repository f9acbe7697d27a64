"""
Pipeline coordinator.

Runs template expansion, component extraction, image resolution and
rendering for one version of the document, in that order:

    text + variables -> expanded text -> text with markers + component map
        -> text with embedded images -> HTML

Each run carries a generation id. Results older than the newest one already
published are discarded, which keeps late asynchronous work (image batches,
debounced runs) from overwriting a newer document.
"""

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from enhancemd.core.errors import Diagnostic
from enhancemd.core.renderer import render_document
from enhancemd.features.components import ComponentDescriptor, scan
from enhancemd.features.images import ImageIndex, ImageMatchStatus, resolve_references
from enhancemd.features.placeholders import rewrite
from enhancemd.features.registry import Feature, FeatureManager, FeatureState, Pipeline
from enhancemd.features.variables import VariableSet, expand

logger = logging.getLogger(__name__)


@dataclass
class RenderState:
    """Working state handed from step to step within one run."""
    generation: int
    text: str
    variables: VariableSet
    images: ImageIndex
    render_html: bool = True
    components: Dict[str, ComponentDescriptor] = field(default_factory=dict)
    image_status: ImageMatchStatus = field(default_factory=ImageMatchStatus)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    html: str = ''
    toc: str = ''


@dataclass
class RenderResult:
    generation: int
    markdown: str
    components: Dict[str, ComponentDescriptor]
    image_status: ImageMatchStatus
    diagnostics: List[Diagnostic]
    html: str = ''
    toc: str = ''

    def to_dict(self) -> Dict:
        return {
            'generation': self.generation,
            'markdown': self.markdown,
            'html': self.html,
            'toc': self.toc,
            'components': {marker: d.to_dict() for marker, d in self.components.items()},
            'images': self.image_status.to_dict(),
            'diagnostics': [d.to_dict() for d in self.diagnostics],
        }


# --- Standard steps ---------------------------------------------------------

def expand_variables(state: RenderState) -> RenderState:
    state.text = expand(state.text, state.variables, state.diagnostics)
    return state


def extract_components(state: RenderState) -> RenderState:
    descriptors = scan(state.text, state.diagnostics)
    result = rewrite(state.text, descriptors, state.diagnostics)
    state.text = result.text
    state.components = result.markers
    return state


def resolve_images(state: RenderState) -> RenderState:
    state.text, state.image_status = resolve_references(state.text, state.images)
    return state


def render_html(state: RenderState) -> RenderState:
    if state.render_html:
        state.html, state.toc = render_document(state.text, state.components)
    return state


def register_standard_features(features: FeatureManager) -> FeatureManager:
    """Register the processing steps in their required order."""
    features.register(Feature("STD_VARIABLES", expand_variables, FeatureState.STANDARD))
    features.register(Feature("STD_COMPONENTS", extract_components, FeatureState.STANDARD))
    features.register(Feature("STD_IMAGES", resolve_images, FeatureState.STANDARD))
    features.register(Feature("STD_RENDER", render_html, FeatureState.STANDARD))
    return features


class Debouncer:
    """
    Delays a call until input has been quiet for `delay` seconds.
    A newer schedule() supersedes the pending one: only the latest call fires.
    """

    def __init__(self, delay: float, callback: Callable[..., None]):
        self.delay = delay
        self.callback = callback
        self._ticket = itertools.count(1)
        self._latest = 0
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    def schedule(self, *args, **kwargs) -> threading.Timer:
        with self._lock:
            ticket = next(self._ticket)
            self._latest = ticket
            timer = threading.Timer(self.delay, self._fire, args=(ticket, args, kwargs))
            timer.daemon = True
            self._timer = timer
        timer.start()
        return timer

    def _fire(self, ticket: int, args, kwargs) -> None:
        with self._lock:
            if ticket != self._latest:
                logger.debug(f"Debouncer: Call {ticket} superseded by {self._latest}")
                return
        self.callback(*args, **kwargs)

    def flush(self) -> None:
        """Wait for the pending call, if any, to run."""
        timer = self._timer
        if timer is not None:
            timer.join()


class PipelineCoordinator:
    """
    Sequences the engines for every content change and owns the component
    map of the most recently published run.
    """

    def __init__(self, variables: VariableSet, images: ImageIndex,
                 features: Optional[FeatureManager] = None, debounce_seconds: float = 0.3,
                 on_result: Optional[Callable[[RenderResult], None]] = None):
        self.variables = variables
        self.images = images
        self.features = features or register_standard_features(FeatureManager())
        self.on_result = on_result
        self._generation = itertools.count(1)
        self._latest_started = 0
        self._latest_published = 0
        self._lock = threading.Lock()
        self.last_text: Optional[str] = None
        self.latest: Optional[RenderResult] = None
        self.debouncer = Debouncer(debounce_seconds, self.run)

    @property
    def current_generation(self) -> int:
        return self._latest_started

    def next_generation(self) -> int:
        with self._lock:
            self._latest_started = next(self._generation)
            return self._latest_started

    def build_pipeline(self, enable_experimental: bool = False) -> Pipeline:
        return self.features.build_pipeline(enable_experimental=enable_experimental, name="DocumentPipeline")

    def process(self, text: str, generation: Optional[int] = None, render_html: bool = True) -> RenderResult:
        """
        Run every step over one version of the text. Never raises: a failing
        step is logged by the pipeline and its input passes through.
        """
        generation = generation if generation is not None else self.next_generation()
        state = RenderState(generation, text, self.variables, self.images, render_html=render_html)
        pipeline = self.build_pipeline()
        logger.debug(f"Coordinator: Run {generation} with {len(pipeline)} steps over {len(text)} chars")
        state = pipeline.run(state)
        return RenderResult(
            generation=state.generation,
            markdown=state.text,
            components=state.components,
            image_status=state.image_status,
            diagnostics=state.diagnostics,
            html=state.html,
            toc=state.toc,
        )

    def publish(self, result: RenderResult) -> bool:
        """Accept a result unless a newer generation was already published."""
        with self._lock:
            if result.generation < self._latest_published:
                logger.info(f"Coordinator: Discarding stale result {result.generation} "
                            f"(latest {self._latest_published})")
                return False
            self._latest_published = result.generation
            self.latest = result
        if self.on_result is not None:
            self.on_result(result)
        return True

    def run(self, text: str, render_html: bool = True) -> RenderResult:
        """Process and publish the given text as the newest document version."""
        self.last_text = text
        result = self.process(text, render_html=render_html)
        self.publish(result)
        return result

    def schedule(self, text: str) -> None:
        """Debounced run for live editing."""
        self.last_text = text
        self.debouncer.schedule(text)

    def rerun_latest(self) -> Optional[RenderResult]:
        """
        Re-run the newest text after the image index changed. The rerun takes a
        fresh generation, so it supersedes any run that used the old index.
        """
        if self.last_text is None:
            return None
        return self.run(self.last_text)
