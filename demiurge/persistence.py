"""
PersistenceStrategy interface for pluggable world storage.

The core treats storage as a handful of atomic single-document operations:

- load_world / create_world / commit_world: the world snapshot. commit_world
  is optimistic: it succeeds only if the stored snapshot is still at
  `expected_turn`, otherwise it raises ConflictError.
- append_event / get_event / get_recent_events: per-turn event records keyed
  by (world_id, turn_number). Appending to an existing key replaces it, which
  is how a pending narrative is filled in later.
- record_decision / get_decision: player decisions keyed by (world_id,
  turn_number).

Indexing, querying and migration are storage concerns and stay out of here.

Three included implementations:
1. InMemoryPersistence - dicts, data lost on exit (tests, prototyping)
2. JsonPersistence - human-readable files, one directory per world
3. PostgresPersistence - asyncpg + JSONB for shared, durable storage

Every backend hands out independent copies: mutating a loaded world never
touches the stored one until it is committed.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import Config
from .errors import ConflictError, NotFoundError
from .schemas import DecisionRecord, EventRecord, WorldState

try:  # Optional dependency (only needed for PostgresPersistence)
    import asyncpg
except ImportError:  # pragma: no cover - asyncpg may not be installed for json/memory usage
    asyncpg = None


class PersistenceStrategy(ABC):
    """Abstract base class for world persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections, create directories or tables."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections and handles."""

    @abstractmethod
    async def create_world(self, world: WorldState) -> None:
        """Store a freshly created world.

        Raises:
            ConflictError: If a world with the same id already exists
        """

    @abstractmethod
    async def load_world(self, world_id: str) -> WorldState:
        """Return an independent copy of the stored world.

        Raises:
            NotFoundError: If no world has this id
        """

    @abstractmethod
    async def commit_world(self, world_id: str, world: WorldState, *, expected_turn: int) -> None:
        """Replace the stored world if it is still at `expected_turn`.

        Raises:
            NotFoundError: If no world has this id
            ConflictError: If the stored world's turn differs from expected_turn
        """

    @abstractmethod
    async def append_event(self, world_id: str, turn_number: int, event: EventRecord) -> None:
        """Store the event record for (world_id, turn_number), replacing any previous one."""

    @abstractmethod
    async def get_event(self, world_id: str, turn_number: int) -> Optional[EventRecord]:
        """Return the event for (world_id, turn_number), or None."""

    @abstractmethod
    async def get_recent_events(self, world_id: str, limit: int = 3) -> List[EventRecord]:
        """Return up to `limit` events, most recent turn first."""

    @abstractmethod
    async def record_decision(self, world_id: str, turn_number: int, decision: DecisionRecord) -> None:
        """Store the decision taken at (world_id, turn_number)."""

    @abstractmethod
    async def get_decision(self, world_id: str, turn_number: int) -> Optional[DecisionRecord]:
        """Return the decision for (world_id, turn_number), or None."""


class InMemoryPersistence(PersistenceStrategy):
    """In-memory persistence using Python dicts (no database, no files).

    Storage structure:
    - worlds: Dict[world_id, WorldState]
    - events: Dict[(world_id, turn), EventRecord]
    - decisions: Dict[(world_id, turn), DecisionRecord]

    Snapshots are deep-copied on the way in and out so callers can never
    mutate stored state by accident.
    """

    def __init__(self):
        self.worlds: Dict[str, WorldState] = {}
        self.events: Dict[Tuple[str, int], EventRecord] = {}
        self.decisions: Dict[Tuple[str, int], DecisionRecord] = {}

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        # Data is kept so callers can inspect it after a run
        pass

    async def create_world(self, world: WorldState) -> None:
        if world.id in self.worlds:
            raise ConflictError(world_id=world.id, reason="world already exists")
        self.worlds[world.id] = world.model_copy(deep=True)

    async def load_world(self, world_id: str) -> WorldState:
        stored = self.worlds.get(world_id)
        if stored is None:
            raise NotFoundError(kind="World", identifier=world_id)
        return stored.model_copy(deep=True)

    async def commit_world(self, world_id: str, world: WorldState, *, expected_turn: int) -> None:
        stored = self.worlds.get(world_id)
        if stored is None:
            raise NotFoundError(kind="World", identifier=world_id)
        if stored.turn != expected_turn:
            raise ConflictError(world_id=world_id, expected_turn=expected_turn, actual_turn=stored.turn)
        self.worlds[world_id] = world.model_copy(deep=True)

    async def append_event(self, world_id: str, turn_number: int, event: EventRecord) -> None:
        self.events[(world_id, turn_number)] = event.model_copy(deep=True)

    async def get_event(self, world_id: str, turn_number: int) -> Optional[EventRecord]:
        event = self.events.get((world_id, turn_number))
        return event.model_copy(deep=True) if event else None

    async def get_recent_events(self, world_id: str, limit: int = 3) -> List[EventRecord]:
        turns = sorted((turn for wid, turn in self.events if wid == world_id), reverse=True)
        return [self.events[(world_id, turn)].model_copy(deep=True) for turn in turns[:limit]]

    async def record_decision(self, world_id: str, turn_number: int, decision: DecisionRecord) -> None:
        self.decisions[(world_id, turn_number)] = decision.model_copy(deep=True)

    async def get_decision(self, world_id: str, turn_number: int) -> Optional[DecisionRecord]:
        decision = self.decisions.get((world_id, turn_number))
        return decision.model_copy(deep=True) if decision else None


class PostgresPersistence(PersistenceStrategy):
    """PostgreSQL-backed persistence.

    Database schema (created by initialize() when missing):
    - worlds: (id PK, turn, state JSONB)
    - world_events: (world_id, turn_number) PK, record JSONB
    - player_decisions: (world_id, turn_number) PK, record JSONB

    commit_world issues `UPDATE ... WHERE id = $1 AND turn = $2`; zero updated
    rows means either the world is gone or another writer got there first.
    """

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS worlds (
            id TEXT PRIMARY KEY,
            turn INTEGER NOT NULL,
            state JSONB NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS world_events (
            world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
            turn_number INTEGER NOT NULL,
            record JSONB NOT NULL,
            PRIMARY KEY (world_id, turn_number)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS player_decisions (
            world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
            turn_number INTEGER NOT NULL,
            record JSONB NOT NULL,
            PRIMARY KEY (world_id, turn_number)
        )
        """,
    )

    def __init__(self, database_url: Optional[str] = None):
        if asyncpg is None:  # pragma: no cover - handled during runtime when dependency missing
            raise ImportError(
                "asyncpg is required for PostgresPersistence. Install with `pip install demiurge[postgres]`."
            )

        self.database_url = database_url or Config.DATABASE_URL
        self.pool: Optional[asyncpg.Pool] = None

    async def initialize(self) -> None:
        if self.pool is None:
            self.pool = await asyncpg.create_pool(self.database_url)
            async with self.pool.acquire() as conn:
                for statement in self.SCHEMA:
                    await conn.execute(statement)

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def create_world(self, world: WorldState) -> None:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            INSERT INTO worlds (id, turn, state)
            VALUES ($1, $2, $3::jsonb)
            ON CONFLICT (id) DO NOTHING
        """
        async with self.pool.acquire() as conn:
            status = await conn.execute(query, world.id, world.turn, world.model_dump_json())
        if status.endswith(" 0"):
            raise ConflictError(world_id=world.id, reason="world already exists")

    async def load_world(self, world_id: str) -> WorldState:
        assert self.pool is not None, "Persistence not initialized"

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT state FROM worlds WHERE id = $1", world_id)
        if not row:
            raise NotFoundError(kind="World", identifier=world_id)
        return WorldState.model_validate_json(row["state"])

    async def commit_world(self, world_id: str, world: WorldState, *, expected_turn: int) -> None:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            UPDATE worlds
            SET state = $3::jsonb, turn = $4, updated_at = now()
            WHERE id = $1 AND turn = $2
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                status = await conn.execute(query, world_id, expected_turn, world.model_dump_json(), world.turn)
                if status.endswith(" 0"):
                    actual = await conn.fetchval("SELECT turn FROM worlds WHERE id = $1", world_id)
                    if actual is None:
                        raise NotFoundError(kind="World", identifier=world_id)
                    raise ConflictError(world_id=world_id, expected_turn=expected_turn, actual_turn=actual)

    async def append_event(self, world_id: str, turn_number: int, event: EventRecord) -> None:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            INSERT INTO world_events (world_id, turn_number, record)
            VALUES ($1, $2, $3::jsonb)
            ON CONFLICT (world_id, turn_number) DO UPDATE SET record = $3::jsonb
        """
        async with self.pool.acquire() as conn:
            await conn.execute(query, world_id, turn_number, event.model_dump_json())

    async def get_event(self, world_id: str, turn_number: int) -> Optional[EventRecord]:
        assert self.pool is not None, "Persistence not initialized"

        query = "SELECT record FROM world_events WHERE world_id = $1 AND turn_number = $2"
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, world_id, turn_number)
        return EventRecord.model_validate_json(row["record"]) if row else None

    async def get_recent_events(self, world_id: str, limit: int = 3) -> List[EventRecord]:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            SELECT record
            FROM world_events
            WHERE world_id = $1
            ORDER BY turn_number DESC
            LIMIT $2
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, world_id, limit)
        return [EventRecord.model_validate_json(row["record"]) for row in rows]

    async def record_decision(self, world_id: str, turn_number: int, decision: DecisionRecord) -> None:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            INSERT INTO player_decisions (world_id, turn_number, record)
            VALUES ($1, $2, $3::jsonb)
            ON CONFLICT (world_id, turn_number) DO UPDATE SET record = $3::jsonb
        """
        async with self.pool.acquire() as conn:
            await conn.execute(query, world_id, turn_number, decision.model_dump_json())

    async def get_decision(self, world_id: str, turn_number: int) -> Optional[DecisionRecord]:
        assert self.pool is not None, "Persistence not initialized"

        query = "SELECT record FROM player_decisions WHERE world_id = $1 AND turn_number = $2"
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, world_id, turn_number)
        return DecisionRecord.model_validate_json(row["record"]) if row else None


class JsonPersistence(PersistenceStrategy):
    """File-based persistence using JSON for human-readable storage.

    Directory structure:
    ```
    {base_path}/
      {world_id}/
        world.json                # Current WorldState
        events/
          00003.json              # EventRecord for turn 3
        decisions/
          00003.json              # DecisionRecord for turn 3
    ```

    All file I/O runs in a thread (asyncio.to_thread). A per-world asyncio
    lock makes the read-compare-write of commit_world atomic within one
    process; there is no cross-process locking.
    """

    def __init__(self, base_path: Path | str = "worlds"):
        self.base_path = Path(base_path)
        self._locks: Dict[str, asyncio.Lock] = {}

    async def initialize(self) -> None:
        await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        return None

    async def create_world(self, world: WorldState) -> None:
        path = self._world_path(world.id)
        async with self._lock(world.id):
            if path.exists():
                raise ConflictError(world_id=world.id, reason="world already exists")
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            await self._write(path, world.model_dump(mode="json"))

    async def load_world(self, world_id: str) -> WorldState:
        path = self._world_path(world_id)
        if not path.exists():
            raise NotFoundError(kind="World", identifier=world_id)
        payload = await asyncio.to_thread(json.loads, path.read_text("utf-8"))
        return WorldState.model_validate(payload)

    async def commit_world(self, world_id: str, world: WorldState, *, expected_turn: int) -> None:
        async with self._lock(world_id):
            stored = await self.load_world(world_id)
            if stored.turn != expected_turn:
                raise ConflictError(world_id=world_id, expected_turn=expected_turn, actual_turn=stored.turn)
            await self._write(self._world_path(world_id), world.model_dump(mode="json"))

    async def append_event(self, world_id: str, turn_number: int, event: EventRecord) -> None:
        path = self._world_dir(world_id) / "events" / f"{turn_number:05d}.json"
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        await self._write(path, event.model_dump(mode="json"))

    async def get_event(self, world_id: str, turn_number: int) -> Optional[EventRecord]:
        path = self._world_dir(world_id) / "events" / f"{turn_number:05d}.json"
        if not path.exists():
            return None
        payload = await asyncio.to_thread(json.loads, path.read_text("utf-8"))
        return EventRecord.model_validate(payload)

    async def get_recent_events(self, world_id: str, limit: int = 3) -> List[EventRecord]:
        directory = self._world_dir(world_id) / "events"
        if not directory.exists():
            return []
        files = sorted(directory.glob("*.json"), reverse=True)[:limit]

        def _read() -> List[str]:
            return [path.read_text("utf-8") for path in files]

        raw = await asyncio.to_thread(_read)
        return [EventRecord.model_validate_json(text) for text in raw]

    async def record_decision(self, world_id: str, turn_number: int, decision: DecisionRecord) -> None:
        path = self._world_dir(world_id) / "decisions" / f"{turn_number:05d}.json"
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        await self._write(path, decision.model_dump(mode="json"))

    async def get_decision(self, world_id: str, turn_number: int) -> Optional[DecisionRecord]:
        path = self._world_dir(world_id) / "decisions" / f"{turn_number:05d}.json"
        if not path.exists():
            return None
        payload = await asyncio.to_thread(json.loads, path.read_text("utf-8"))
        return DecisionRecord.model_validate(payload)

    def _lock(self, world_id: str) -> asyncio.Lock:
        lock = self._locks.get(world_id)
        if lock is None:
            lock = self._locks[world_id] = asyncio.Lock()
        return lock

    def _world_dir(self, world_id: str) -> Path:
        return self.base_path / world_id

    def _world_path(self, world_id: str) -> Path:
        return self._world_dir(world_id) / "world.json"

    @staticmethod
    async def _write(path: Path, payload) -> None:
        await asyncio.to_thread(path.write_text, json.dumps(payload, indent=2), "utf-8")
