"""Short human-readable summary of an applied practice session.

Keeps the tone encouraging: the headline reflects how much of the script
the learner now recites unaided, the detail lists what changed.
"""

from __future__ import annotations

from rehearsal.services.visibility import VisibilityResult


def summarize_session(result: VisibilityResult) -> str:
    """One line: headline, visibility, new gaps and new anchors."""
    if result.total_words == 0:
        return "Nothing to rehearse yet – the script is empty."

    new_anchor_words = len(result.newly_anchored)
    parts = [
        f"{result.visibility_percent:.0f}% visible",
        f"{len(result.hidden)}/{result.total_words} words hidden",
        f"{len(result.newly_hidden)} new",
    ]
    if result.revealed:
        parts.append(f"{len(result.revealed)} brought back")
    if new_anchor_words:
        parts.append(f"{new_anchor_words} pinned as anchor")
    return f"{_pick_headline(result)} ({', '.join(parts)})"


def _pick_headline(result: VisibilityResult) -> str:
    hidden_ratio = len(result.hidden) / result.total_words
    if result.newly_anchored:
        return "Some words keep slipping – they stay on screen as cues."
    if result.forced_visible:
        return "A few phrases are back in full view for another pass."
    if hidden_ratio >= 0.8:
        return "You're reciting almost everything from memory!"
    if hidden_ratio >= 0.5:
        return "More than half the script is coming from memory."
    if result.newly_hidden:
        return "Nice work – a new gap opens for next time."
    return "Keep going – steady repetitions build the next gap."
