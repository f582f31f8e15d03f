"""
Playoff bracket shaping.

Matches are created by the remote generation procedures; this module only
rebuilds the round-by-round shape from whatever rows exist, filling future
slots with TBD placeholders, and walks the ``next_match_id`` pointers.
"""
from typing import Dict, List, Optional

from .models import BracketType, Match, Side, Stage

PLACEHOLDER_LABEL = 'TBD'


def get_round_name(round_number: int, total_rounds: int) -> str:
    """Get the display name of a 1-based round in a bracket of ``total_rounds``."""
    rounds_from_end = total_rounds - round_number
    if rounds_from_end <= 0:
        return "Final"
    elif rounds_from_end == 1:
        return "Semi-finals"
    elif rounds_from_end == 2:
        return "Quarter-finals"
    elif rounds_from_end == 3 and round_number > 1:
        return "Round of 16"
    else:
        return f"Round {round_number}"


def calculate_total_rounds(first_round_slots: int) -> int:
    """
    Number of rounds until a single slot (the final) remains.

    ``first_round_slots`` counts opening-round matches, not participants, so
    the result is ceil(log2(n)) + 1.
    """
    if first_round_slots <= 0:
        return 0
    # ceil(log2(n)) without float rounding, plus the final itself
    return (first_round_slots - 1).bit_length() + 1


def expected_slot_count(first_round_slots: int, round_number: int) -> int:
    """Slots expected in a 1-based round: ceil(n / 2^(r-1))."""
    divisor = 2 ** (round_number - 1)
    return -(-first_round_slots // divisor)


def _side_label(match: Optional[Match], side: Side, names: Dict) -> str:
    if match is None:
        return PLACEHOLDER_LABEL
    participant_id = match.participant_on(side)
    if participant_id is None:
        return PLACEHOLDER_LABEL
    stored = match.home_participant_name if side is Side.HOME else match.away_participant_name
    return names.get(participant_id) or stored or str(participant_id)


def _is_empty_slot(match: Optional[Match]) -> bool:
    return match is None or (not match.participant_ids and match.result is None)


def _place_in_slots(round_matches: List[Match]) -> Dict[int, Match]:
    """Key matches by bracket slot; rows without a slot take the next free one in creation order."""
    placed = {}
    unslotted = []
    ordered = sorted(round_matches, key=lambda m: (m.bracket_slot is None, m.bracket_slot or 0,
                                                   str(m.created_at or ''), str(m.id)))
    for match in ordered:
        if match.bracket_slot is not None and match.bracket_slot not in placed:
            placed[match.bracket_slot] = match
        else:
            unslotted.append(match)
    next_slot = 1
    for match in unslotted:
        while next_slot in placed:
            next_slot += 1
        placed[next_slot] = match
    return placed


def build_bracket_rounds(matches: List[Match], bracket_type=None, hide_empty: bool = False,
                         names: Optional[Dict] = None) -> List[Dict]:
    """
    Rebuild the round/slot structure of one bracket.

    Args:
        matches: Playoff matches; filtered to ``bracket_type`` when given
        bracket_type: BracketType (or its string value) to keep
        hide_empty: Drop TBD-vs-TBD slots and rounds left without slots
            (used for the losers/placement bracket)
        names: Optional participant id -> display name mapping

    Returns list of round dicts, ordered by round:
    - 'round': round number
    - 'name': display name ("Final", "Semi-finals", ...)
    - 'slots': list of slot dicts ordered by slot with 'slot', 'match'
      (Match or None), 'home_label', 'away_label', 'is_placeholder'
    """
    names = names or {}
    if bracket_type is not None:
        wanted = bracket_type if isinstance(bracket_type, BracketType) else BracketType(str(bracket_type).upper())
        matches = [m for m in matches if m.bracket_type is wanted]
    matches = [m for m in matches if m.stage is Stage.PLAYOFF]
    if not matches:
        return []

    by_round = {}
    for match in matches:
        by_round.setdefault(match.round, []).append(match)

    first_round = min(by_round)
    first_round_slots = len(by_round[first_round])
    total_rounds = max(calculate_total_rounds(first_round_slots), max(by_round) - first_round + 1)

    rounds = []
    for index in range(1, total_rounds + 1):
        round_number = first_round + index - 1
        placed = _place_in_slots(by_round.get(round_number, []))
        slot_count = max([expected_slot_count(first_round_slots, index)] + list(placed))

        slots = []
        for slot in range(1, slot_count + 1):
            match = placed.get(slot)
            if hide_empty and _is_empty_slot(match):
                continue
            slots.append({
                'slot': slot,
                'match': match,
                'home_label': _side_label(match, Side.HOME, names),
                'away_label': _side_label(match, Side.AWAY, names),
                'is_placeholder': match is None,
            })

        if hide_empty and not slots:
            continue
        rounds.append({
            'round': round_number,
            'name': get_round_name(index, total_rounds),
            'slots': slots,
        })

    return rounds


class BracketGraph:
    """
    Winner-advancement graph over ``next_match_id`` pointers.

    Built once per snapshot of matches; descendant chains are cached for the
    lifetime of the instance.
    """

    def __init__(self, matches: List[Match]):
        self.matches = {m.id: m for m in matches}
        self._feeders = {}
        for match in matches:
            if match.next_match_id is not None:
                self._feeders.setdefault(match.next_match_id, []).append(match)
        self._descendants = {}

    def feeders(self, match_id, side: Optional[Side] = None) -> List[Match]:
        """Matches whose winner advances into ``match_id`` (optionally onto ``side``)."""
        feeders = self._feeders.get(match_id, [])
        if side is None:
            return list(feeders)
        return [f for f in feeders if f.next_match_side is None or f.next_match_side is side]

    def descendants(self, match_id) -> List:
        """Ids of every match downstream of ``match_id``, nearest first."""
        if match_id in self._descendants:
            return list(self._descendants[match_id])

        chain = []
        seen = {match_id}
        current = self.matches.get(match_id)
        next_id = current.next_match_id if current else None
        while next_id is not None and next_id in self.matches and next_id not in seen:
            chain.append(next_id)
            seen.add(next_id)
            next_id = self.matches[next_id].next_match_id

        self._descendants[match_id] = tuple(chain)
        return chain

    def has_locked_descendant(self, match_id) -> bool:
        """True when a downstream match already has a locked result."""
        return any(self.matches[d].is_locked for d in self.descendants(match_id))


def validate_bracket_graph(matches: List[Match]) -> List[str]:
    """
    Check that ``next_match_id`` pointers form one binary tree per bracket.

    Returns:
        List of violation descriptions (empty list = valid)
    """
    violations = []
    playoff = [m for m in matches if m.stage is Stage.PLAYOFF]
    by_id = {m.id: m for m in playoff}

    for match in playoff:
        if match.next_match_id is None:
            continue
        target = by_id.get(match.next_match_id)
        if target is None:
            violations.append(f"Match {match.id} points to missing match {match.next_match_id}")
            continue
        if target.bracket_type is not match.bracket_type:
            violations.append(f"Match {match.id} advances across brackets into {target.id}")
        if target.round <= match.round:
            violations.append(f"Match {match.id} (round {match.round}) advances into "
                              f"{target.id} (round {target.round})")

    reported = set()
    for match in playoff:
        path = [match.id]
        next_id = match.next_match_id
        while next_id is not None and next_id in by_id:
            if next_id in path:
                cycle = frozenset(path[path.index(next_id):])
                if cycle not in reported:
                    reported.add(cycle)
                    violations.append(f"Cycle through matches {sorted(cycle, key=str)}")
                break
            path.append(next_id)
            next_id = by_id[next_id].next_match_id

    graph = BracketGraph(playoff)
    for match in playoff:
        feeders = graph.feeders(match.id)
        if len(feeders) > 2:
            violations.append(f"Match {match.id} has {len(feeders)} feeder matches")
        for side in Side:
            on_side = [f for f in feeders if f.next_match_side is side]
            if len(on_side) > 1:
                violations.append(f"Match {match.id} has {len(on_side)} feeders on the {side.value} side")

    for bracket_type in BracketType:
        bracket = [m for m in playoff if m.bracket_type is bracket_type]
        if not bracket:
            continue
        roots = [m for m in bracket if m.next_match_id is None]
        if len(roots) != 1:
            violations.append(f"{bracket_type.value} bracket has {len(roots)} root matches")

    return violations
