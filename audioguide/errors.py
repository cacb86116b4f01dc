"""Error taxonomy for the AudioGuide orchestration core.

Catalog errors are absorbed by the pipeline and downgraded to advisories.
Credential, session and stream errors are turned into conversation log entries
and never escape ``InitializationPipeline.run`` or ``StreamingSessionManager.send``.
"""

from __future__ import annotations


class AudioGuideError(Exception):
    """Base class for orchestration failures."""


class ConfigurationMissing(AudioGuideError):
    """Assistant credential is absent or a placeholder."""


class CatalogError(AudioGuideError):
    """Catalog gateway failed (transport, HTTP status, GraphQL or payload shape)."""


class CatalogDegraded(AudioGuideError):
    """Catalog is unavailable; the assistant runs with an empty snapshot."""

    def __init__(self, advisory: str) -> None:
        super().__init__(advisory)
        self.advisory = advisory


class SessionCreationFailed(AudioGuideError):
    """Assistant service refused to open a chat session."""


class StreamFailed(AudioGuideError):
    """A streamed response broke off mid-exchange."""


class SendRejected(AudioGuideError):
    """A send was attempted without an open session."""
