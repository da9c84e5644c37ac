"""Unit tests for token estimators."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import Mock, patch
from services.tokens import CharRatioTokenEstimator, TiktokenEstimator


class TestCharRatioTokenEstimator:
    """Test suite for the 4-characters-per-token approximation."""

    def test_estimate_rounds_up(self):
        estimator = CharRatioTokenEstimator()
        assert estimator.estimate("") == 0
        assert estimator.estimate("abc") == 1
        assert estimator.estimate("abcd") == 1
        assert estimator.estimate("abcde") == 2

    def test_custom_ratio(self):
        estimator = CharRatioTokenEstimator(ratio=2)
        assert estimator.estimate("abcde") == 3

    def test_invalid_ratio(self):
        with pytest.raises(ValueError):
            CharRatioTokenEstimator(ratio=0)

    def test_truncate_keeps_text_that_fits(self):
        estimator = CharRatioTokenEstimator()
        assert estimator.truncate("short text", 10) == "short text"

    def test_truncate_appends_marker_within_budget(self):
        estimator = CharRatioTokenEstimator()
        text = "y" * 400

        truncated = estimator.truncate(text, 20)

        assert truncated.endswith("...")
        assert truncated.startswith("y" * 10)
        assert estimator.estimate(truncated) <= 20
        assert len(truncated) == 80

    def test_truncate_with_no_budget(self):
        estimator = CharRatioTokenEstimator()
        assert estimator.truncate("anything", 0) == ""
        assert estimator.truncate("anything", -5) == ""


class TestTiktokenEstimator:
    """Test suite for the tiktoken-backed estimator."""

    @patch('services.tokens.tiktoken.get_encoding')
    def test_counts_encoded_tokens(self, mock_get_encoding):
        mock_encoder = Mock()
        mock_encoder.encode.side_effect = lambda text: text.split()
        mock_get_encoding.return_value = mock_encoder

        estimator = TiktokenEstimator()

        assert estimator.estimate("one two three") == 3
        mock_get_encoding.assert_called_once_with("o200k_base")

    @patch('services.tokens.tiktoken.get_encoding')
    def test_truncate_uses_encoded_count(self, mock_get_encoding):
        mock_encoder = Mock()
        # one token per character keeps the arithmetic obvious
        mock_encoder.encode.side_effect = lambda text: list(text)
        mock_get_encoding.return_value = mock_encoder

        estimator = TiktokenEstimator("cl100k_base")
        truncated = estimator.truncate("z" * 100, 20)

        assert truncated.endswith("...")
        assert estimator.estimate(truncated) <= 20
