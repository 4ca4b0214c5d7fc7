"""Post sources consumed by the feed."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List, Optional, Protocol

import ulid

from socially.domain.geo import Coordinate

from .models import Post


class PostRepository(Protocol):
	async def recent_posts(self, limit: int) -> List[Post]:
		"""Newest first."""
		...

	async def create_post(
		self,
		owner_id: str,
		content: str,
		*,
		location: Optional[Coordinate] = None,
		location_name: Optional[str] = None,
		image_url: Optional[str] = None,
	) -> Post:
		...


class InMemoryPostStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._posts: List[Post] = []

	async def create_post(
		self,
		owner_id: str,
		content: str,
		*,
		location: Optional[Coordinate] = None,
		location_name: Optional[str] = None,
		image_url: Optional[str] = None,
	) -> Post:
		post = Post(
			post_id=str(ulid.new()),
			owner_id=owner_id,
			content=content,
			created_at=datetime.now(timezone.utc),
			location=location,
			location_name=location_name,
			image_url=image_url,
		)
		async with self._lock:
			self._posts.append(post)
		return post

	async def recent_posts(self, limit: int) -> List[Post]:
		async with self._lock:
			newest_first = list(reversed(self._posts))
		return newest_first[: max(0, limit)]


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS posts (
	post_id TEXT PRIMARY KEY,
	owner_id TEXT NOT NULL,
	content TEXT NOT NULL,
	image_url TEXT,
	latitude DOUBLE PRECISION,
	longitude DOUBLE PRECISION,
	location_name TEXT,
	created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS posts_created_idx ON posts (created_at DESC);
"""


class PostgresPostRepository:
	def __init__(self, pool) -> None:
		self._pool = pool

	async def ensure_schema(self) -> None:
		async with self._pool.acquire() as conn:
			await conn.execute(SCHEMA_SQL)

	@staticmethod
	def _row_to_post(row) -> Post:
		return Post(
			post_id=str(row["post_id"]),
			owner_id=str(row["owner_id"]),
			content=str(row["content"]),
			created_at=row["created_at"],
			location=Coordinate.maybe(row["latitude"], row["longitude"]),
			location_name=row["location_name"],
			image_url=row["image_url"],
		)

	async def create_post(
		self,
		owner_id: str,
		content: str,
		*,
		location: Optional[Coordinate] = None,
		location_name: Optional[str] = None,
		image_url: Optional[str] = None,
	) -> Post:
		async with self._pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO posts (post_id, owner_id, content, image_url, latitude, longitude, location_name)
				VALUES ($1, $2, $3, $4, $5, $6, $7)
				RETURNING post_id, owner_id, content, image_url, latitude, longitude, location_name, created_at
				""",
				str(ulid.new()),
				owner_id,
				content,
				image_url,
				location.latitude if location else None,
				location.longitude if location else None,
				location_name,
			)
		return self._row_to_post(row)

	async def recent_posts(self, limit: int) -> List[Post]:
		async with self._pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT post_id, owner_id, content, image_url, latitude, longitude, location_name, created_at
				FROM posts
				ORDER BY created_at DESC
				LIMIT $1
				""",
				max(0, limit),
			)
		return [self._row_to_post(row) for row in rows]
