"""
opsboard - pipeline observability derivation layer

Turns raw operational telemetry from an infrastructure / CI-CD dashboard
into stable, de-duplicated deployment state.

Main components:
- pipeline_statuses: canonical status categories for backend status strings
- pipeline: stage-record resolution, progress and the stage board
- deploy: deployment metrics extracted from shell-command transcripts
- config: settings loaded from the environment
"""

__version__ = "1.0.0"
