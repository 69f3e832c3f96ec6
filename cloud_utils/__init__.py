# cloud_utils/__init__.py
"""
Remote repository utilities package.
Contains the git command runner, the staging directory lifecycle and the
synchronizer that publishes a backup run to the remote.
"""

from cloud_utils.git_provider import GitRunner, GitResult
from cloud_utils.staging import StagingTree, StagingState
from cloud_utils.remote_sync import RemoteSynchronizer, SyncOutcome

__all__ = [
    'GitRunner',
    'GitResult',
    'StagingTree',
    'StagingState',
    'RemoteSynchronizer',
    'SyncOutcome',
]
