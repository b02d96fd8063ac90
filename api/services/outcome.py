from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Tuple


class Outcome(str, Enum):
    BOOKED = "Booked"
    INTERESTED = "Interested"
    NOT_INTERESTED = "Not Interested"
    NO_ANSWER = "No Answer"
    VOICEMAIL = "Voicemail"
    NEEDS_REVIEW = "Needs Review"


NO_ANSWER_REASONS = frozenset({
    "customer-did-not-answer",
    "no-answer",
    "busy",
    "failed",
})

DECLINE_PHRASES = (
    "not interested",
    "no thank",
    "no, thank",
    "not for me",
    "don't call",
    "dont call",
    "do not call",
    "stop calling",
    "remove me",
    "not looking",
    "i'm busy",
    "im busy",
    "i am busy",
    "too busy",
    "call back later",
    "not now",
    "bad time",
    "wrong time",
    "can't talk",
    "cant talk",
    "cannot talk",
    "hang up",
    "hanging up",
    "goodbye",
    "no no no",
)

BOOKING_KEYWORDS = ("book", "appointment", "schedule", "scheduled", "booking", "confirmed")

TIME_CONFIRMATIONS = (
    "pm", "o'clock", "oclock",
    "tomorrow", "today",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "next week", "this week",
    "morning", "afternoon", "evening",
) + tuple(f"at {hour}" for hour in range(1, 13))

POSITIVE_CONFIRMATIONS = ("yes", "sure", "okay", "ok", "perfect", "great", "sounds good", "that works")

SUMMARY_BOOKED_WORDS = ("booked", "confirmed", "scheduled")

INTEREST_PHRASES = (
    "interested",
    "tell me more",
    "how much",
    "what's the price",
    "pricing",
    "sounds interesting",
    "want to know more",
    "send me info",
    "send information",
    "email me",
    "call me back",
)

LONG_CALL_SECONDS = 120
SHORT_CALL_SECONDS = 30


@dataclass(frozen=True)
class CallSignals:
    """Lower-cased classifier inputs, built once per call."""

    ended_reason: str
    summary: str
    combined: str
    duration: int

    @classmethod
    def build(cls, ended_reason: str, transcript: str, summary: str, duration: int) -> "CallSignals":
        summary_lower = (summary or "").lower()
        return cls(
            ended_reason=(ended_reason or "").lower(),
            summary=summary_lower,
            combined=f"{(transcript or '').lower()} {summary_lower}",
            duration=int(duration or 0),
        )

    def mentions(self, phrases) -> bool:
        return any(phrase in self.combined for phrase in phrases)


@dataclass(frozen=True)
class Classification:
    outcome: Outcome
    rule: str


def _no_answer(s: CallSignals) -> bool:
    return s.ended_reason in NO_ANSWER_REASONS


def _voicemail(s: CallSignals) -> bool:
    return s.ended_reason == "voicemail" or "voicemail" in s.combined


def _declined(s: CallSignals) -> bool:
    return s.mentions(DECLINE_PHRASES)


def _booked(s: CallSignals) -> bool:
    if not s.mentions(BOOKING_KEYWORDS):
        return False
    if s.mentions(TIME_CONFIRMATIONS):
        return True
    if any(word in s.summary for word in SUMMARY_BOOKED_WORDS):
        return True
    return "appointment" in s.summary and s.mentions(POSITIVE_CONFIRMATIONS)


def _interested(s: CallSignals) -> bool:
    return s.mentions(INTEREST_PHRASES) and "not interested" not in s.combined


# Hard signals, then soft text signals; first match wins.
RULES: Tuple[Tuple[str, Callable[[CallSignals], bool], Outcome], ...] = (
    ("no_answer_reason", _no_answer, Outcome.NO_ANSWER),
    ("voicemail", _voicemail, Outcome.VOICEMAIL),
    ("decline_phrase", _declined, Outcome.NOT_INTERESTED),
    ("booking_confirmed", _booked, Outcome.BOOKED),
    ("interest_phrase", _interested, Outcome.INTERESTED),
)


def duration_fallback(duration: int) -> Outcome:
    if duration > LONG_CALL_SECONDS:
        return Outcome.INTERESTED
    if duration > SHORT_CALL_SECONDS:
        return Outcome.NEEDS_REVIEW
    return Outcome.NOT_INTERESTED


def explain(ended_reason: str, transcript: str, summary: str, duration: int) -> Classification:
    """Classify a finished call and report which rule decided it."""
    signals = CallSignals.build(ended_reason, transcript, summary, duration)
    for name, matches, outcome in RULES:
        if matches(signals):
            return Classification(outcome=outcome, rule=name)
    return Classification(outcome=duration_fallback(signals.duration), rule="duration_fallback")


def classify(ended_reason: str, transcript: str, summary: str, duration: int) -> Outcome:
    """
    Map a finished call to exactly one Outcome.

    Pure and deterministic. Priority order:
    1. provider no-answer/busy/failure codes
    2. voicemail (end reason or text)
    3. explicit decline phrases (before booking, so a decline is never overridden)
    4. booking keyword plus a second confirming signal
    5. interest phrases
    6. duration fallback
    """
    return explain(ended_reason, transcript, summary, duration).outcome
