import unittest

from leafcloud.ai.selector import select_best
from leafcloud.ai.types import LOW_CONFIDENCE_THRESHOLD, UNDEFINED_LABEL, Prediction


def _preds(scores: dict[str, float]) -> dict[str, Prediction]:
    return {label: Prediction(label=label, confidence=score) for label, score in scores.items()}


class SelectBestTests(unittest.TestCase):
    def test_picks_highest_confidence(self) -> None:
        best = select_best(_preds({"healthy": 0.42, "blighted": 0.81}))
        self.assertEqual(best.label, "blighted")
        self.assertAlmostEqual(best.confidence, 0.81)

    def test_below_threshold_reports_undefined_with_best_score(self) -> None:
        best = select_best(_preds({"healthy": 0.55, "blighted": 0.3}))
        self.assertEqual(best.label, UNDEFINED_LABEL)
        self.assertAlmostEqual(best.confidence, 0.55)

    def test_empty_map_reports_undefined_zero(self) -> None:
        best = select_best({})
        self.assertEqual(best, Prediction(label=UNDEFINED_LABEL, confidence=0.0))

    def test_ties_keep_first_label_seen(self) -> None:
        best = select_best(_preds({"rust": 0.9, "mildew": 0.9, "healthy": 0.1}))
        self.assertEqual(best.label, "rust")

    def test_threshold_is_inclusive(self) -> None:
        best = select_best(_preds({"healthy": LOW_CONFIDENCE_THRESHOLD}))
        self.assertEqual(best.label, "healthy")

    def test_accepts_detail_records_and_floats(self) -> None:
        self.assertEqual(select_best({"a": {"confidence": 0.7}, "b": {"confidence": 0.2}}).label, "a")
        self.assertEqual(select_best({"a": 0.1, "b": 0.95}).label, "b")

    def test_does_not_mutate_input(self) -> None:
        predictions = {"a": {"confidence": 0.7}, "b": {"confidence": 0.65}}
        snapshot = {k: dict(v) for k, v in predictions.items()}
        select_best(predictions)
        self.assertEqual(predictions, snapshot)

    def test_all_zero_confidence_is_undefined(self) -> None:
        best = select_best(_preds({"a": 0.0, "b": 0.0}))
        self.assertEqual(best.label, UNDEFINED_LABEL)
        self.assertEqual(best.confidence, 0.0)


class PredictionTests(unittest.TestCase):
    def test_rejects_out_of_range_confidence(self) -> None:
        with self.assertRaises(ValueError):
            Prediction(label="x", confidence=1.2)


if __name__ == "__main__":
    unittest.main()
