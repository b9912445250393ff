"""
External collaborators the executors talk to.
"""

from .database import ConnectionInfo, DatabaseConnectionService, MigrationService, SqlAlchemyConnectionService
from .email import EmailResult, EmailTransport, SmtpEmailTransport
from .shell import ShellResult, ShellRunner, SubprocessShellRunner
from .teams import StaticTeamDirectory, TeamDirectory

__all__ = [
    "ConnectionInfo",
    "DatabaseConnectionService",
    "MigrationService",
    "SqlAlchemyConnectionService",
    "EmailResult",
    "EmailTransport",
    "SmtpEmailTransport",
    "ShellResult",
    "ShellRunner",
    "SubprocessShellRunner",
    "StaticTeamDirectory",
    "TeamDirectory",
]
