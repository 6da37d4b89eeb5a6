"""Deterministic fallback content served when generation fails or is rejected.

Fallbacks are never cached. Every variant passes validate_content() for its
phase's difficulty, so the learner always gets usable markup.
"""

from html import escape

from app.services.templates import PhaseProfile

_DIFFICULTY_LINES = {
    "beginner": "We'll start with the core ideas in plain language, one step at a time.",
    "intermediate": "You'll build on what you know with guided, hands-on practice.",
    "advanced": "You'll work through real-world trade-offs and production concerns.",
}


def fallback_for(phase_id: str, interaction_kind: str, profile: PhaseProfile) -> str:
    """Return the fixed fallback markup for a phase and interaction kind."""
    builder = _BUILDERS.get(interaction_kind.strip().lower(), _introduction)
    return builder(escape(str(phase_id)), profile).strip()


def _introduction(phase: str, profile: PhaseProfile) -> str:
    return f"""
<div class="llm-container">
  <h2 class="llm-title">Welcome to Phase {phase}: {escape(profile.title_short)}</h2>
  <p class="llm-text">Let's explore the key concepts of this phase through hands-on practice.</p>
  <p class="llm-text">{_DIFFICULTY_LINES[profile.difficulty]}</p>
  <div class="llm-task">
    <button class="llm-button" data-interaction-id="phase-{phase}-start">Begin Exploration</button>
  </div>
</div>
"""


def _content(phase: str, profile: PhaseProfile) -> str:
    terms = "".join(f"<li>{escape(term)}</li>" for term in profile.key_terms)
    return f"""
<div class="llm-container">
  <h2 class="llm-title">{escape(profile.title_short)}</h2>
  <p class="llm-text">This phase focuses on {escape(profile.focus)}. {_DIFFICULTY_LINES[profile.difficulty]}</p>
  <h3 class="llm-subtitle">Key concepts</h3>
  <ul class="llm-text">{terms}</ul>
  <div class="llm-highlight">
    <p class="llm-text">Detailed material for this phase is being prepared. Review the key concepts above and check back shortly.</p>
  </div>
  <div class="llm-task">
    <button class="llm-button" data-interaction-id="phase-{phase}-back">Back to Syllabus</button>
  </div>
</div>
"""


def _submit(phase: str, profile: PhaseProfile) -> str:
    return f"""
<div class="llm-container">
  <div class="llm-highlight">
    <p class="llm-text"><strong>Thank you for your submission!</strong></p>
    <p class="llm-text">Your input has been noted. Let's continue exploring this topic.</p>
  </div>
  <div class="llm-task">
    <h3 class="llm-subtitle">Next Steps</h3>
    <button class="llm-button" data-interaction-id="phase-{phase}-continue">Continue Learning</button>
  </div>
</div>
"""


def _quiz(phase: str, profile: PhaseProfile) -> str:
    return f"""
<div class="llm-container">
  <h3 class="llm-subtitle">Answer received</h3>
  <p class="llm-text">Thanks for answering! Detailed feedback isn't available right now.</p>
  <p class="llm-text">Take a moment to revisit the key concepts of {escape(profile.title_short)} before moving on.</p>
  <div class="llm-task">
    <button class="llm-button" data-interaction-id="phase-{phase}-quiz-continue">Continue</button>
  </div>
</div>
"""


def _completion(phase: str, profile: PhaseProfile) -> str:
    return f"""
<div class="llm-container">
  <h2 class="llm-title">Phase {phase} complete!</h2>
  <p class="llm-text">Great work finishing {escape(profile.title_short)}. Everything you explored here prepares you for the next phase.</p>
  <div class="llm-task">
    <button class="llm-button" data-interaction-id="phase-{phase}-next">Go to the next phase</button>
  </div>
</div>
"""


_BUILDERS = {
    "introduction": _introduction,
    "content": _content,
    "submit": _submit,
    "quiz": _quiz,
    "completion": _completion,
    "phase_complete": _completion,
}
