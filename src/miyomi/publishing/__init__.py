"""Publishing targets for Miyomi content."""

from miyomi.publishing.farcaster import FarcasterPublisher, PublishResult

__all__ = ["FarcasterPublisher", "PublishResult"]
