"""Tests for generated content normalization, validation and fallbacks."""

import pytest

from app.errors import ContentValidationError
from app.orchestrator.fallback_content import fallback_for
from app.services.content_validator import is_valid_content, normalize_content, validate_content
from app.services.templates import DEFAULT_PHASE_PROFILES, INTRODUCTORY_PROFILE


class TestNormalizeContent:
    def test_strips_code_fence(self, valid_html):
        assert normalize_content(f"```html\n{valid_html}\n```") == valid_html

    def test_strips_document_shell(self):
        raw = (
            "<!DOCTYPE html><html><head><title>x</title></head>"
            '<body><div class="llm-container"><p class="llm-text">Hi</p></div></body></html>'
        )
        assert normalize_content(raw) == '<div class="llm-container"><p class="llm-text">Hi</p></div>'

    def test_wraps_missing_container(self):
        result = normalize_content('<p class="llm-text">Hello</p>')
        assert result.startswith('<div class="llm-container">')

    def test_adds_interaction_id_to_buttons(self):
        result = normalize_content('<div class="llm-container"><button class="llm-button">Go</button></div>')
        assert 'data-interaction-id="continue-learning"' in result

    def test_keeps_existing_interaction_id(self):
        html = '<div class="llm-container"><button data-interaction-id="next">Go</button></div>'
        assert normalize_content(html).count("data-interaction-id") == 1

    def test_empty(self):
        assert normalize_content("   ") == ""
        assert normalize_content(None) == ""


class TestValidateContent:
    def test_valid(self, valid_html):
        assert validate_content(valid_html, "intermediate") == valid_html

    def test_empty_rejected(self):
        with pytest.raises(ContentValidationError):
            validate_content("")

    def test_short_rejected(self):
        with pytest.raises(ContentValidationError, match="too short"):
            validate_content("0123456789")

    def test_missing_container_rejected(self):
        with pytest.raises(ContentValidationError, match="llm-container"):
            validate_content('<p class="llm-text">' + "x" * 300 + "</p>")

    def test_missing_markers_rejected(self):
        with pytest.raises(ContentValidationError, match="markers"):
            validate_content('<div class="llm-container">' + "x" * 300 + "</div>")

    def test_code_rejected_for_beginners(self, valid_html):
        with_code = valid_html.replace("</div>", "<pre><code>print(1)</code></pre></div>", 1)
        with pytest.raises(ContentValidationError, match="beginner"):
            validate_content(with_code, "beginner")
        assert validate_content(with_code, "advanced") == with_code

    def test_is_valid_content(self, valid_html):
        assert is_valid_content(valid_html, "intermediate") is True
        assert is_valid_content("short") is False


class TestFallbackContent:
    @pytest.mark.parametrize("phase_id", [*DEFAULT_PHASE_PROFILES, "unknown"])
    @pytest.mark.parametrize(
        "kind", ["introduction", "content", "submit", "quiz", "completion", "phase_complete", "other"],
    )
    def test_every_fallback_is_valid(self, phase_id, kind):
        profile = DEFAULT_PHASE_PROFILES.get(phase_id, INTRODUCTORY_PROFILE)
        content = fallback_for(phase_id, kind, profile)
        assert validate_content(content, profile.difficulty) == content

    def test_deterministic(self):
        profile = DEFAULT_PHASE_PROFILES["3"]
        assert fallback_for("3", "introduction", profile) == fallback_for("3", "introduction", profile)

    def test_phase_id_escaped(self):
        content = fallback_for("<script>", "introduction", INTRODUCTORY_PROFILE)
        assert "<script>" not in content

    def test_unknown_kind_uses_introduction(self):
        profile = DEFAULT_PHASE_PROFILES["2"]
        assert fallback_for("2", "mystery", profile) == fallback_for("2", "introduction", profile)
