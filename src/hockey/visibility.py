"""
Which matches are playable, skipped (byes) or still waiting on earlier rounds.
"""
from enum import Enum
from typing import List, Optional

from .bracket import BracketGraph
from .models import BracketType, Match, Side, Stage


class MatchState(Enum):
    PLAYED = 'played'            # locked result
    PLAYABLE = 'playable'        # both sides known, no locked result
    PENDING = 'pending'          # one side known, the other still to come
    SKIPPED = 'skipped'          # bye: the empty side can never be filled
    PLACEHOLDER = 'placeholder'  # structural slot, nobody assigned yet


def _can_produce_participant(graph: BracketGraph, match_id, memo: dict) -> bool:
    """Whether a match can still send somebody forward (iterative, memoised)."""
    visiting = set()
    stack = [(match_id, False)]
    while stack:
        node, expanded = stack.pop()
        if node in memo:
            continue
        match = graph.matches.get(node)
        if match is None:
            memo[node] = False
            continue
        if match.participant_ids:
            memo[node] = True
            continue
        feeders = graph.feeders(node)
        if expanded:
            memo[node] = any(memo.get(f.id, False) for f in feeders)
            continue
        if node in visiting:
            continue
        visiting.add(node)
        stack.append((node, True))
        for feeder in feeders:
            if feeder.id not in memo:
                stack.append((feeder.id, False))
    return memo.get(match_id, False)


def _classify(match: Match, graph: Optional[BracketGraph], memo: dict) -> MatchState:
    if match.is_locked:
        return MatchState.PLAYED
    home, away = match.home_participant_id, match.away_participant_id
    if home is not None and away is not None:
        return MatchState.PLAYABLE
    if home is None and away is None:
        return MatchState.PLACEHOLDER
    if graph is None:
        return MatchState.SKIPPED

    empty_side = Side.AWAY if home is not None else Side.HOME
    for feeder in graph.feeders(match.id, empty_side):
        if _can_produce_participant(graph, feeder.id, memo):
            return MatchState.PENDING
    return MatchState.SKIPPED


def classify_match(match: Match, matches: Optional[List[Match]] = None) -> MatchState:
    """
    Classify a match for display.

    Without ``matches`` a one-sided match is taken to be a bye. With the
    surrounding matches, a one-sided match whose empty side can still be
    filled from an earlier round is PENDING instead.
    """
    graph = BracketGraph(matches) if matches is not None else None
    return _classify(match, graph, {})


def classify_matches(matches: List[Match]) -> dict:
    """Match id -> MatchState for a whole snapshot, sharing one graph."""
    graph = BracketGraph(matches)
    memo = {}
    return {m.id: _classify(m, graph, memo) for m in matches}


def unfillable_slots(matches: List[Match]) -> set:
    """Ids of empty, unplayed slots that no feeder can ever fill."""
    graph = BracketGraph(matches)
    memo = {}
    return {m.id for m in matches
            if _classify(m, graph, memo) is MatchState.PLACEHOLDER
            and m.result is None
            and not _can_produce_participant(graph, m.id, memo)}


def is_skipped(match: Match, matches: Optional[List[Match]] = None) -> bool:
    return classify_match(match, matches) is MatchState.SKIPPED


def _always_show_default(match: Match) -> bool:
    return match.stage is Stage.GROUP or match.bracket_type is BracketType.WINNERS


def _displayable(match: Match, state: MatchState, always_show: Optional[bool]) -> bool:
    if always_show is None:
        always_show = _always_show_default(match)
    if match.result is not None:
        return True
    if state is MatchState.PLAYABLE:
        return True
    return always_show and state is not MatchState.SKIPPED


def is_displayable(match: Match, matches: Optional[List[Match]] = None,
                   always_show: Optional[bool] = None) -> bool:
    """
    Whether a match belongs in match lists.

    Matches with a result or both sides set are always shown. Winners-bracket
    and group matches are also shown as structural slots unless they are
    byes; losers-bracket slots only appear once both sides are known.
    """
    return _displayable(match, classify_match(match, matches), always_show)


def displayable_matches(matches: List[Match], always_show: Optional[bool] = None) -> List[Match]:
    states = classify_matches(matches)
    return [m for m in matches if _displayable(m, states[m.id], always_show)]


def auto_advancing_participant(match: Match, matches: Optional[List[Match]] = None):
    """The participant who advances without playing, or None if the match is not a bye."""
    if classify_match(match, matches) is not MatchState.SKIPPED:
        return None
    return match.home_participant_id if match.home_participant_id is not None else match.away_participant_id
