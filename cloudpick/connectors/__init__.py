"""Connector implementations for cloudpick."""

from .base import FlatNode, RemoteFile, StorageConnector, StorageSession, TreeNode
from .google_drive import GoogleDriveConnector
from .local import LocalFolderConnector
from .s3 import S3Connector

__all__ = [
    "FlatNode",
    "GoogleDriveConnector",
    "LocalFolderConnector",
    "RemoteFile",
    "S3Connector",
    "StorageConnector",
    "StorageSession",
    "TreeNode",
]
