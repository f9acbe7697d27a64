from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class FeatureState(Enum):
    STANDARD = auto()
    EXPERIMENTAL = auto()


class FeatureType(Enum):
    ALGORITHM = auto()  # Document processing step
    EXPORT_HANDLER = auto()


class Feature:
    def __init__(self, name: str, handler: Callable[[Any], Any], state: FeatureState,
                 feature_type: FeatureType = FeatureType.ALGORITHM, meta: Dict = None):
        self.name = name
        self.handler = handler
        self.state = state
        self.type = feature_type
        self.meta = meta or {}

    def __repr__(self):
        return f"Feature({self.name!r}, {self.type.name}, {self.state.name})"


class Pipeline:
    """
    A sequence of processing steps executed in order.
    A failing step is logged and skipped; the run continues with the content
    produced so far, so a document is never lost to one broken step.
    """
    def __init__(self, name: str):
        self.name = name
        self._steps: List[Callable[[Any], Any]] = []

    def add_step(self, handler: Callable[[Any], Any]):
        self._steps.append(handler)

    def run(self, content: Any) -> Any:
        """Execute the pipeline on the content."""
        for step in self._steps:
            try:
                content = step(content)
            except Exception as e:
                logger.error(f"Pipeline {self.name} step {getattr(step, '__name__', 'unknown')} failed: {e}",
                             exc_info=True)
        return content

    def __iter__(self):
        return iter(self._steps)

    def __len__(self):
        return len(self._steps)


class FeatureManager:
    """
    Holds the registered processing steps and export handlers.
    """
    def __init__(self):
        self._features: List[Feature] = []

    def register(self, feature: Feature):
        existing_idx = next((i for i, f in enumerate(self._features) if f.name == feature.name), -1)
        if existing_idx >= 0:
            self._features[existing_idx] = feature
            logger.warning(f"FeatureManager: Overwrote existing feature '{feature.name}'")
        else:
            self._features.append(feature)
            logger.debug(f"FeatureManager: Registered feature {feature.name}")

    def is_feature_installed(self, feature: Feature) -> bool:
        installed = feature.meta.get('installed', True)
        if not installed:
            logger.debug(f"FeatureManager: BLOCKED access to uninstalled feature '{feature.name}'")
        return installed

    def get_export_feature(self, format_ext: str) -> Optional[Feature]:
        """
        Retrieve the registered export feature for a specific format extension.
        """
        for feature in self._features:
            if feature.type != FeatureType.EXPORT_HANDLER:
                continue
            if feature.meta.get('extension') == format_ext or feature.name in (format_ext, f"{format_ext}_export"):
                if self.is_feature_installed(feature):
                    logger.info(f"FeatureManager: Found handler for {format_ext} ({feature.name})")
                    return feature
                logger.warning(f"FeatureManager: Found handler for {format_ext} ({feature.name}) but it is NOT INSTALLED.")
                return None

        logger.warning(f"FeatureManager: No handler found for {format_ext}. Available: {[f.name for f in self._features]}")
        return None

    def get_export_handler(self, format_ext: str) -> Optional[Callable]:
        feature = self.get_export_feature(format_ext)
        return feature.handler if feature else None

    def export_formats(self) -> List[str]:
        return [f.meta.get('extension', f.name) for f in self.get_features_by_type(FeatureType.EXPORT_HANDLER)
                if self.is_feature_installed(f)]

    def build_pipeline(self, enable_experimental: bool = False, name: str = "StandardPipeline") -> Pipeline:
        """
        Build the processing pipeline from ALGORITHM features in registration order.
        """
        pipeline = Pipeline(name)
        for f in self._features:
            if f.type != FeatureType.ALGORITHM:
                continue
            if not self.is_feature_installed(f):
                continue
            if f.state == FeatureState.STANDARD:
                pipeline.add_step(f.handler)
            elif enable_experimental and f.state == FeatureState.EXPERIMENTAL:
                pipeline.add_step(f.handler)
        return pipeline

    def get_features_by_type(self, feature_type: FeatureType) -> List[Feature]:
        return [f for f in self._features if f.type == feature_type]
