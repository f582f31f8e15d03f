"""
Group stage standings.

Points come from the external ranking view; goal and shot differentials are
re-derived here from locked group matches and used as tie-breaks.
"""
from typing import Dict, List

from .models import Decision, GroupStanding, Match, Side, Stage


def _empty_stats(group_id, participant_id) -> Dict:
    return {
        'group_id': group_id,
        'participant_id': participant_id,
        'games_played': 0,
        'wins': 0,
        'losses': 0,
        'ot_losses': 0,
        'goals_for': 0,
        'goals_against': 0,
        'shots_for': 0,
        'shots_against': 0,
    }


def aggregate_group_stats(matches: List[Match], group_of: Dict = None) -> Dict:
    """
    Accumulate per-participant stats over locked group matches.

    Args:
        matches: Matches of any stage; only locked GROUP matches count
        group_of: Optional participant id -> group id, used when a match
            row carries no group id

    Returns: {(group_id, participant_id): stats dict}
    """
    group_of = group_of or {}
    stats = {}
    for match in matches:
        if match.stage is not Stage.GROUP or not match.is_locked or not match.result.is_complete:
            continue
        result = match.result
        winner_side = result.winner_side
        for side in Side:
            participant_id = match.participant_on(side)
            if participant_id is None:
                continue
            group_id = match.group_id if match.group_id is not None else group_of.get(participant_id)
            key = (group_id, participant_id)
            if key not in stats:
                stats[key] = _empty_stats(group_id, participant_id)
            row = stats[key]

            if side is Side.HOME:
                goals_for, goals_against = result.home_score, result.away_score
                shots_for, shots_against = result.home_shots, result.away_shots
            else:
                goals_for, goals_against = result.away_score, result.home_score
                shots_for, shots_against = result.away_shots, result.home_shots

            row['games_played'] += 1
            row['goals_for'] += goals_for
            row['goals_against'] += goals_against
            row['shots_for'] += shots_for
            row['shots_against'] += shots_against
            if winner_side is side:
                row['wins'] += 1
            elif winner_side is not None:
                row['losses'] += 1
                if result.decision is not Decision.REGULATION:
                    row['ot_losses'] += 1
    return stats


def standings_sort_key(entry: Dict):
    """points desc, goal diff desc, shots diff desc, stored rank, then id."""
    stored_rank = entry.get('stored_rank')
    return (
        -entry['points'],
        -entry['goal_diff'],
        -entry['shots_diff'],
        stored_rank if stored_rank is not None else float('inf'),
        str(entry['participant_id']),
    )


def _as_standings(rows) -> List[GroupStanding]:
    return [r if isinstance(r, GroupStanding) else GroupStanding.from_row(r) for r in rows or []]


def compute_group_standings(standing_rows, matches: List[Match]) -> Dict[str, List[Dict]]:
    """
    Calculate ranked standings for each group.

    Args:
        standing_rows: GroupStanding objects (or rows) with externally awarded points
        matches: Group matches with joined results

    Returns: {group_id: [{'participant_id', 'points', 'games_played', 'wins',
              'losses', 'ot_losses', 'goals_for', 'goals_against', 'goal_diff',
              'shots_for', 'shots_against', 'shots_diff', 'rank', ...}, ...]}
    """
    rows = _as_standings(standing_rows)
    group_of = {row.participant_id: row.group_id for row in rows}
    stats = aggregate_group_stats(matches, group_of)

    entries = {}
    for row in rows:
        entry = dict(stats.get((row.group_id, row.participant_id))
                     or _empty_stats(row.group_id, row.participant_id))
        entry.update({
            'points': row.points,
            'stored_rank': row.rank_in_group,
            'group_code': row.group_code,
            'display_name': row.display_name,
            'team_id': row.team_id,
        })
        entries[(row.group_id, row.participant_id)] = entry

    # Participants seen in matches but missing from the ranking view start at zero points
    for key, participant_stats in stats.items():
        if key not in entries:
            entry = dict(participant_stats)
            entry.update({'points': 0, 'stored_rank': None, 'group_code': None,
                          'display_name': None, 'team_id': None})
            entries[key] = entry

    standings = {}
    for entry in entries.values():
        entry['goal_diff'] = entry['goals_for'] - entry['goals_against']
        entry['shots_diff'] = entry['shots_for'] - entry['shots_against']
        standings.setdefault(entry['group_id'], []).append(entry)

    for group_id, group_entries in standings.items():
        group_entries.sort(key=standings_sort_key)
        for index, entry in enumerate(group_entries):
            entry['rank'] = index + 1

    return standings


def all_group_matches_locked(matches: List[Match]) -> bool:
    group_matches = [m for m in matches if m.stage is Stage.GROUP]
    return bool(group_matches) and all(m.is_locked for m in group_matches)


def compute_overall_ranking(standing_rows, matches: List[Match]) -> Dict:
    """
    Rank every participant across all groups (1..N).

    Only available once every group match is locked; returns an empty dict
    before that.
    """
    if not all_group_matches_locked(matches):
        return {}
    standings = compute_group_standings(standing_rows, matches)
    everyone = [entry for group_entries in standings.values() for entry in group_entries]
    everyone.sort(key=standings_sort_key)
    return {entry['participant_id']: index + 1 for index, entry in enumerate(everyone)}
