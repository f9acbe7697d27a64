import unittest
import sys
from pathlib import Path

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from enhancemd.core.pipeline import register_standard_features
from enhancemd.features import exporters
from enhancemd.features.registry import FeatureManager, Feature, FeatureState, FeatureType, Pipeline


class TestFeatures(unittest.TestCase):
    def setUp(self):
        self.manager = FeatureManager()

    def test_pipeline_execution(self):
        """Test that a pipeline executes steps in order."""
        pipeline = Pipeline("TestPipeline")

        def step1(content): return content + " Step1"
        def step2(content): return content + " Step2"

        pipeline.add_step(step1)
        pipeline.add_step(step2)

        result = pipeline.run("Start")
        self.assertEqual(result, "Start Step1 Step2")

    def test_pipeline_skips_failing_step(self):
        pipeline = Pipeline("TestPipeline")

        def broken(content): raise ValueError("bad step")

        pipeline.add_step(lambda c: c + "1")
        pipeline.add_step(broken)
        pipeline.add_step(lambda c: c + "2")
        self.assertEqual(pipeline.run("x"), "x12")

    def test_build_pipeline(self):
        """Test building a pipeline from registered features."""
        f1 = Feature("F1", lambda x: "1", FeatureState.STANDARD, FeatureType.ALGORITHM)
        f2 = Feature("F2", lambda x: "2", FeatureState.EXPERIMENTAL, FeatureType.ALGORITHM)
        f3 = Feature("EXP", lambda x: b"", FeatureState.STANDARD, FeatureType.EXPORT_HANDLER)

        self.manager.register(f1)
        self.manager.register(f2)
        self.manager.register(f3)

        # Standard only
        p_std = self.manager.build_pipeline(enable_experimental=False)
        self.assertEqual(len(p_std), 1)  # Only F1

        # With experimental
        p_exp = self.manager.build_pipeline(enable_experimental=True)
        self.assertEqual(len(p_exp), 2)  # F1 + F2

    def test_register_overwrites_by_name(self):
        self.manager.register(Feature("F", lambda x: "old", FeatureState.STANDARD))
        self.manager.register(Feature("F", lambda x: "new", FeatureState.STANDARD))
        self.assertEqual(self.manager.build_pipeline().run(None), "new")

    def test_standard_steps_in_order(self):
        register_standard_features(self.manager)
        names = [f.name for f in self.manager.get_features_by_type(FeatureType.ALGORITHM)]
        self.assertEqual(names, ["STD_VARIABLES", "STD_COMPONENTS", "STD_IMAGES", "STD_RENDER"])

    def test_export_handler_lookup(self):
        for feature in exporters.get_features():
            self.manager.register(feature)
        self.assertIs(self.manager.get_export_handler('md'), exporters.export_markdown)
        self.assertIs(self.manager.get_export_handler('html'), exporters.export_html)
        self.assertIsNone(self.manager.get_export_handler('pdf'))
        self.assertEqual(self.manager.export_formats(), ['md', 'html'])
        self.assertEqual(self.manager.get_export_feature('html').meta['mime_type'], 'text/html')

    def test_uninstalled_feature_is_blocked(self):
        feature = Feature("docx_export", lambda r: b"", FeatureState.STANDARD, FeatureType.EXPORT_HANDLER,
                          meta={'extension': 'docx', 'installed': False})
        self.manager.register(feature)
        self.assertIsNone(self.manager.get_export_handler('docx'))
        self.assertEqual(self.manager.export_formats(), [])


if __name__ == '__main__':
    unittest.main()
