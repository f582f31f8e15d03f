"""
Validation of match results before they are saved or locked.
"""
import math
from typing import Dict

from .errors import ResultValidationError
from .models import Decision, Side

INCOMPLETE_INPUT = 'INCOMPLETE_INPUT'
SHOTS_BELOW_SCORE = 'SHOTS_BELOW_SCORE'
TIE_NOT_ALLOWED = 'TIE_NOT_ALLOWED'
INVALID_DECISION = 'INVALID_DECISION'


class ParsedResult:
    """A validated result, ready to be upserted."""

    def __init__(self, home_score: int, away_score: int, home_shots: int, away_shots: int,
                 decision: Decision):
        self.home_score = home_score
        self.away_score = away_score
        self.home_shots = home_shots
        self.away_shots = away_shots
        self.decision = decision

    @property
    def winner_side(self) -> Side:
        return Side.HOME if self.home_score > self.away_score else Side.AWAY

    def as_row(self) -> Dict:
        return {
            'home_score': self.home_score,
            'away_score': self.away_score,
            'home_shots': self.home_shots,
            'away_shots': self.away_shots,
            'decision': self.decision.value,
        }

    def __eq__(self, other):
        return isinstance(other, ParsedResult) and self.as_row() == other.as_row()

    def __repr__(self):
        return (f"ParsedResult({self.home_score}-{self.away_score}, "
                f"shots={self.home_shots}-{self.away_shots}, decision={self.decision.value})")


def _parse_count(value):
    """Parse a goal/shot count. Returns None when the value is not a usable count."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 0 or not number.is_integer():
        return None
    return int(number)


def parse_decision(value) -> Decision:
    """Decision code from user input; empty input means regulation."""
    if isinstance(value, Decision):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        return Decision.REGULATION
    try:
        return Decision(str(value).strip().upper())
    except ValueError:
        raise ResultValidationError(f"Unknown decision {value!r}; use R, OT or SO.",
                                    INVALID_DECISION) from None


def validate_result(home_score, away_score, home_shots, away_shots, decision='R') -> ParsedResult:
    """
    Validate a result as typed into the score form.

    Checks run in order and the first failure is raised as
    ResultValidationError with one of the codes:
    - INCOMPLETE_INPUT: a field is empty, not a whole number, or negative
    - SHOTS_BELOW_SCORE: a side has fewer shots on goal than goals
    - TIE_NOT_ALLOWED: both scores are equal
    - INVALID_DECISION: decision is not R, OT or SO
    """
    values = [_parse_count(v) for v in (home_score, away_score, home_shots, away_shots)]
    if any(v is None for v in values):
        raise ResultValidationError("Fill in both scores and both shot counts with whole numbers.",
                                    INCOMPLETE_INPUT)
    h_score, a_score, h_shots, a_shots = values

    if h_shots < h_score or a_shots < a_score:
        raise ResultValidationError("Shots on goal cannot be lower than goals scored.",
                                    SHOTS_BELOW_SCORE)

    if h_score == a_score:
        raise ResultValidationError("Ties are not allowed; record the OT or SO winner.",
                                    TIE_NOT_ALLOWED)

    return ParsedResult(h_score, a_score, h_shots, a_shots, parse_decision(decision))
