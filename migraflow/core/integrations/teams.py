"""
Team directory used by team_notification nodes.
"""

from abc import ABC, abstractmethod
from typing import Dict, List


class TeamDirectory(ABC):
    @abstractmethod
    async def get_member_emails(self, team_id: str) -> List[str]:
        """Email addresses of all members of a team (empty when unknown)."""


class StaticTeamDirectory(TeamDirectory):
    """Directory backed by a fixed mapping, e.g. loaded from configuration."""

    def __init__(self, teams: Dict[str, List[str]]):
        self._teams = {team_id: list(emails) for team_id, emails in teams.items()}

    async def get_member_emails(self, team_id: str) -> List[str]:
        return list(self._teams.get(team_id, []))
