"""Discovery domain exports."""

from .models import DiscoverySettings, LocatedProfile, Post
from .posts import InMemoryPostStore, PostgresPostRepository, PostRepository
from .profiles import ProfileStore
from .service import LocationUnavailable, ProximityResult, ProximityService

__all__ = [
	"DiscoverySettings",
	"InMemoryPostStore",
	"LocatedProfile",
	"LocationUnavailable",
	"Post",
	"PostRepository",
	"PostgresPostRepository",
	"ProfileStore",
	"ProximityResult",
	"ProximityService",
]
