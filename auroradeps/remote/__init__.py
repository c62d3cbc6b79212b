"""Network collaborators: developer portal and Conan v2 remote."""

from auroradeps.remote.http import HttpClient
from auroradeps.remote.provider import RemoteMetadataProvider

__all__ = ["HttpClient", "RemoteMetadataProvider"]
