"""Tests for generation settings, prompt snapshots and slugs."""

import json

import pytest

from imagegen.database import GenerationSettings, ValidationError, build_prompt_snapshot
from imagegen.utils.slugs import slugify


class TestSlugify:
    """Test slug normalization."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Demo Project", "demo-project"),
            ("  Demo   Project!! ", "demo-project"),
            ("demo-project", "demo-project"),
            ("App Icon (v2)", "app-icon-v2"),
            ("---", ""),
            ("", ""),
            (None, ""),
        ],
    )
    def test_normalizes(self, value, expected):
        assert slugify(value) == expected


class TestGenerationSettings:
    """Test validation and defaults of GenerationSettings."""

    def test_defaults(self):
        settings = GenerationSettings.from_input(None)
        assert settings.model == "both"
        assert settings.count == 1
        assert settings.output_format == "png"
        assert settings.image_size == "1K"
        assert settings.aspect_ratio is None
        assert settings.adjustment == ""

    def test_blank_strings_fall_back_to_defaults(self):
        settings = GenerationSettings.from_input(
            {"model": " ", "output_format": "", "image_size": "", "aspect_ratio": "", "count": ""}
        )
        assert settings.model == "both"
        assert settings.output_format == "png"
        assert settings.image_size == "1K"
        assert settings.aspect_ratio is None
        assert settings.count == 1

    def test_normalizes_case_and_jpeg(self):
        settings = GenerationSettings.from_input(
            {"model": "OpenAI", "output_format": "JPEG", "image_size": "2k", "aspect_ratio": "16:9"}
        )
        assert settings.model == "openai"
        assert settings.output_format == "jpg"
        assert settings.image_size == "2K"
        assert settings.aspect_ratio == "16:9"

    @pytest.mark.parametrize(
        "data",
        [
            {"model": "midjourney"},
            {"count": 0},
            {"count": "many"},
            {"output_format": "gif"},
            {"image_size": "8K"},
            {"aspect_ratio": "7:3"},
        ],
    )
    def test_rejects_invalid_values(self, data):
        with pytest.raises(ValidationError):
            GenerationSettings.from_input(data)

    def test_unknown_keys_are_ignored(self):
        settings = GenerationSettings.from_input({"count": 3, "seed": 42})
        assert settings.count == 3

    def test_payload_is_stable_json(self):
        settings = GenerationSettings.from_input({"count": 2, "adjustment": " warmer "})
        payload = settings.to_payload()
        assert json.loads(payload)["adjustment"] == "warmer"
        assert GenerationSettings.from_payload(payload) == settings

    def test_corrupt_payload_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            GenerationSettings.from_payload('{"model": "nope"}')


class TestPromptSnapshot:
    """Test prompt and adjustment merging."""

    def test_prompt_only(self):
        assert build_prompt_snapshot("  a red fox  ") == "a red fox"

    def test_with_adjustment(self):
        assert build_prompt_snapshot("a red fox", " make it blue ") == (
            "a red fox\n\nAdjustments:\nmake it blue"
        )

    def test_blank_adjustment_is_ignored(self):
        assert build_prompt_snapshot("a red fox", "   ") == "a red fox"
