"""leavedesk — leave-request lifecycle and balance-accounting engine."""

__version__ = "1.0.0"
