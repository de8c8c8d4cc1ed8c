"""
Job kind definitions for world building and playlist generation.
"""
from enum import Enum


class JobKind(str, Enum):
    """Supported job kinds."""

    BUILD = "build"
    GENERATE = "generate"
    REGENERATE = "regenerate"

    def label(self) -> str:
        """Human-friendly label."""
        labels = {
            JobKind.BUILD: "Build World",
            JobKind.GENERATE: "Generate Playlists",
            JobKind.REGENERATE: "Regenerate Playlist",
        }
        return labels.get(self, self.value)
