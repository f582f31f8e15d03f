"""
Final placements once the playoff bracket is complete.

Placements are never stored: they are recomputed from locked playoff
results each time the tournament is loaded.
"""
from typing import Dict, List, Optional

from .models import BracketType, Match, Medal, Side, Stage
from .visibility import MatchState, classify_matches, displayable_matches, unfillable_slots

MEDALS = {1: Medal.GOLD, 2: Medal.SILVER, 3: Medal.BRONZE}

LOSERS_BRACKET_WEIGHT = 10000
ROUND_WEIGHT = 100


def _unresolved() -> Dict:
    return {'complete': False, 'ranks': {}, 'medals': {}}


def _playoff(matches: List[Match]) -> List[Match]:
    return [m for m in matches if m.stage is Stage.PLAYOFF]


def is_bracket_complete(matches: List[Match]) -> bool:
    """
    Every displayable playoff match (winners and losers) has a locked result.

    Empty slots that nothing can feed any more are left out, so a dead slot
    does not hold the bracket open forever.
    """
    playoff = _playoff(matches)
    if not any(m.is_locked for m in playoff if m.bracket_type is BracketType.WINNERS):
        return False
    dead = unfillable_slots(playoff)
    return all(m.is_locked for m in displayable_matches(playoff) if m.id not in dead)


def playoff_stats(matches: List[Match]) -> Dict:
    """Goals for/against per participant over locked playoff matches."""
    stats = {}
    for match in _playoff(matches):
        if not match.is_locked or not match.result.is_complete:
            continue
        result = match.result
        for side in Side:
            participant_id = match.participant_on(side)
            if participant_id is None:
                continue
            row = stats.setdefault(participant_id, {'games_played': 0, 'wins': 0, 'losses': 0,
                                                    'goals_for': 0, 'goals_against': 0})
            if side is Side.HOME:
                row['goals_for'] += result.home_score
                row['goals_against'] += result.away_score
            else:
                row['goals_for'] += result.away_score
                row['goals_against'] += result.home_score
            row['games_played'] += 1
            if result.winner_side is side:
                row['wins'] += 1
            else:
                row['losses'] += 1
    for row in stats.values():
        row['goal_diff'] = row['goals_for'] - row['goals_against']
    return stats


def _slot_order(match: Match):
    return (match.bracket_slot if match.bracket_slot is not None else float('inf'), str(match.id))


def _find_final(playoff: List[Match]) -> Optional[Match]:
    winners = [m for m in playoff if m.bracket_type is BracketType.WINNERS]
    if not winners:
        return None
    last_round = max(m.round for m in winners)
    return min((m for m in winners if m.round == last_round), key=_slot_order)


def _find_bronze_match(playoff: List[Match]) -> Optional[Match]:
    locked = [m for m in playoff if m.bracket_type is BracketType.LOSERS and m.is_locked]
    if not locked:
        return None
    last_round = max(m.round for m in locked)
    in_round = [m for m in locked if m.round == last_round]
    for match in in_round:
        if match.bracket_slot == 1:
            return match
    return min(in_round, key=_slot_order)


def elimination_score(participant_id, matches: List[Match]) -> int:
    """
    How deep a participant got before being knocked out.

    Scored by the deepest match played, won or lost: any losers/placement
    bracket match outranks every winners-bracket round, and within a bracket
    later rounds score higher.
    """
    best = 0
    for match in matches:
        if participant_id not in match.participant_ids:
            continue
        in_losers = match.bracket_type is BracketType.LOSERS
        best = max(best, (LOSERS_BRACKET_WEIGHT if in_losers else 0) + match.round * ROUND_WEIGHT)
    return best


def _assign(ranks: Dict, participant_id, rank: int):
    if participant_id is not None and participant_id not in ranks:
        ranks[participant_id] = rank


def resolve_placements(matches: List[Match]) -> Dict:
    """
    Derive the final ranking of every playoff participant.

    Returns dict with:
    - 'complete': False when the bracket is not finished (ranks stay empty)
    - 'ranks': participant id -> 1-based rank
    - 'medals': participant id -> Medal for ranks 1-3
    """
    playoff = _playoff(matches)
    if not is_bracket_complete(playoff):
        return _unresolved()

    final = _find_final(playoff)
    if final is None or final.winner_id is None:
        return _unresolved()

    ranks = {}
    _assign(ranks, final.winner_id, 1)
    _assign(ranks, final.loser_id, 2)

    bronze = _find_bronze_match(playoff)
    if bronze is not None and bronze.winner_id is not None:
        _assign(ranks, bronze.winner_id, 3)
        _assign(ranks, bronze.loser_id, 4)

    stats = playoff_stats(playoff)
    everyone = []
    for match in playoff:
        for participant_id in match.participant_ids:
            if participant_id not in ranks and participant_id not in everyone:
                everyone.append(participant_id)

    def sort_key(participant_id):
        row = stats.get(participant_id, {'goal_diff': 0, 'goals_for': 0, 'goals_against': 0})
        return (
            -elimination_score(participant_id, playoff),
            -row['goal_diff'],
            -row['goals_for'],
            row['goals_against'],
            str(participant_id),
        )

    next_rank = max(ranks.values()) + 1
    for participant_id in sorted(everyone, key=sort_key):
        ranks[participant_id] = next_rank
        next_rank += 1

    medals = {pid: MEDALS[rank] for pid, rank in ranks.items() if rank in MEDALS}
    return {'complete': True, 'ranks': ranks, 'medals': medals}


def is_placement_revealed(participant_id, matches: List[Match], states: Optional[Dict] = None) -> bool:
    """
    A placement is shown only once the participant's latest bracket slot is real.

    Hidden while that slot still has a TBD side and no locked result, e.g. a
    participant advanced by a bye who has not played the next round yet.
    """
    playoff = _playoff(matches)
    states = states if states is not None else classify_matches(playoff)
    own = [m for m in playoff if participant_id in m.participant_ids]
    if not own:
        return False
    latest = max(own, key=lambda m: (m.bracket_type is BracketType.LOSERS, m.round))
    return states[latest.id] in (MatchState.PLAYED, MatchState.PLAYABLE)


def reveal_placements(placements: Dict, matches: List[Match]) -> Dict:
    """Copy of ``placements`` without entries whose reveal is still premature."""
    playoff = _playoff(matches)
    states = classify_matches(playoff)
    ranks = {pid: rank for pid, rank in placements.get('ranks', {}).items()
             if is_placement_revealed(pid, playoff, states)}
    medals = {pid: medal for pid, medal in placements.get('medals', {}).items() if pid in ranks}
    return {'complete': placements.get('complete', False), 'ranks': ranks, 'medals': medals}


def final_standings(placements: Dict, participants: List, matches: List[Match]) -> List[Dict]:
    """Rows for the final standings table, ordered by rank."""
    names = {p.id: p.display_name for p in participants}
    teams = {p.id: p.team_id for p in participants}
    stats = playoff_stats(matches)
    rows = []
    for participant_id, rank in sorted(placements.get('ranks', {}).items(), key=lambda item: item[1]):
        medal = placements.get('medals', {}).get(participant_id)
        row = {
            'rank': rank,
            'participant_id': participant_id,
            'display_name': names.get(participant_id, str(participant_id)),
            'team_id': teams.get(participant_id),
            'medal': medal.value if medal else None,
        }
        row.update(stats.get(participant_id, {'games_played': 0, 'wins': 0, 'losses': 0,
                                              'goals_for': 0, 'goals_against': 0, 'goal_diff': 0}))
        rows.append(row)
    return rows
