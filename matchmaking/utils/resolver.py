from typing import Tuple

from matchmaking.data_models.match import Match, MatchResolution, PlayerSubmission


class MatchResolver:
    """Decides the winner of a match from its two submissions"""

    @staticmethod
    def ranking_key(submission: PlayerSubmission) -> Tuple[int, int, int]:
        """
        Sort key where a larger tuple is the better submission.

        Higher score first, then higher level, then earlier submission.
        """
        return (submission.score, submission.level, -submission.submitted_at)

    @staticmethod
    def resolve_submissions(first: PlayerSubmission, second: PlayerSubmission) -> MatchResolution:
        """
        Compare two submissions and return the outcome

        An exact tie on score, level and submission time goes to the
        lexicographically smaller name, so argument order never matters.

        Args:
            first: Submission from the match creator
            second: The other submission

        Returns:
            MatchResolution with exactly one winner
        """
        first_key = MatchResolver.ranking_key(first)
        second_key = MatchResolver.ranking_key(second)
        if second_key > first_key or (second_key == first_key and second.name < first.name):
            winner, loser = second, first
        else:
            winner, loser = first, second

        return MatchResolution(
            winner=winner.name,
            loser=loser.name,
            winner_score=winner.score,
            loser_score=loser.score,
            is_tie=first.score == second.score,
            total_score=first.score + second.score,
        )

    @staticmethod
    def resolve(match: Match) -> MatchResolution:
        """Resolve a match that has both players"""
        if match.player2 is None:
            raise ValueError(f"Match {match.id} has no second player to resolve against")
        return MatchResolver.resolve_submissions(match.player1, match.player2)
