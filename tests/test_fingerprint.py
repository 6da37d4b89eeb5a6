"""Tests for context fingerprinting."""

from datetime import datetime, timezone

from app.orchestrator.schemas import GenerationContext, KeyConcept, UserLevel
from app.services.fingerprint import FINGERPRINT_LENGTH, make_fingerprint, normalize_context


def _context(**overrides) -> GenerationContext:
    values = {
        "objective": "Understand prompts",
        "key_concepts": [KeyConcept(title="Prompt", description="Instruction to a model")],
        "user_input": "What is a prompt?",
        "recent_interaction_ids": ["a", "b", "c"],
    }
    values.update(overrides)
    return GenerationContext(**values)


class TestFingerprintStability:
    def test_deterministic(self):
        assert make_fingerprint("1", "content", _context()) == make_fingerprint("1", "content", _context())

    def test_length_and_hex(self):
        fp = make_fingerprint("1", "content", _context())
        assert len(fp) == FINGERPRINT_LENGTH
        int(fp, 16)

    def test_volatile_fields_ignored(self):
        plain = make_fingerprint("1", "content", _context())
        noisy = make_fingerprint(
            "1", "content",
            _context(session_id="s-123", requested_at=datetime(2026, 1, 1, tzinfo=timezone.utc)),
        )
        assert plain == noisy

    def test_volatile_keys_in_extra_ignored(self):
        a = make_fingerprint("1", "content", _context(extra={"topic": "x", "timestamp": 1}))
        b = make_fingerprint("1", "content", _context(extra={"topic": "x", "timestamp": 2}))
        assert a == b

    def test_nested_volatile_keys_ignored(self):
        a = make_fingerprint("1", "quiz", _context(extra={"answer": {"value": "B", "sessionId": "x"}}))
        b = make_fingerprint("1", "quiz", _context(extra={"answer": {"value": "B", "sessionId": "y"}}))
        assert a == b

    def test_whitespace_collapsed(self):
        a = make_fingerprint("1", "content", _context(objective="Understand   prompts "))
        b = make_fingerprint("1", "content", _context(objective="Understand prompts"))
        assert a == b

    def test_key_concept_order_irrelevant(self):
        concepts = [KeyConcept(title="A"), KeyConcept(title="B")]
        a = make_fingerprint("1", "content", _context(key_concepts=concepts))
        b = make_fingerprint("1", "content", _context(key_concepts=list(reversed(concepts))))
        assert a == b

    def test_only_recent_window_counts(self):
        a = make_fingerprint("1", "content", _context(recent_interaction_ids=["old", "x", "y", "z"]))
        b = make_fingerprint("1", "content", _context(recent_interaction_ids=["other", "x", "y", "z"]))
        assert a == b


class TestFingerprintSensitivity:
    def test_phase_changes_key(self):
        assert make_fingerprint("1", "content", _context()) != make_fingerprint("2", "content", _context())

    def test_kind_changes_key(self):
        assert make_fingerprint("1", "content", _context()) != make_fingerprint("1", "quiz", _context())

    def test_user_input_changes_key(self):
        a = make_fingerprint("1", "submit", _context(user_input="answer one"))
        b = make_fingerprint("1", "submit", _context(user_input="answer two"))
        assert a != b

    def test_user_level_changes_key(self):
        a = make_fingerprint("1", "content", _context(user_level=UserLevel.BEGINNER))
        b = make_fingerprint("1", "content", _context(user_level=UserLevel.ADVANCED))
        assert a != b

    def test_recent_interaction_order_matters(self):
        a = make_fingerprint("1", "content", _context(recent_interaction_ids=["x", "y"]))
        b = make_fingerprint("1", "content", _context(recent_interaction_ids=["y", "x"]))
        assert a != b


class TestNormalizeContext:
    def test_kind_lowercased(self):
        normalized = normalize_context("3", " Introduction ", _context())
        assert normalized["interaction_kind"] == "introduction"
        assert normalized["phase_id"] == "3"

    def test_zero_window_drops_history(self):
        normalized = normalize_context("3", "content", _context(), window=0)
        assert normalized["recent"] == []
