"""
In-memory table of remote player entities, standing in for the
simulation's entity store. The registry holds handles into it; the
renderer (not part of this package) reads positions out of it.
"""

from client.interpolation import Facing


class RemoteEntity:
    """One remote player as the simulation sees it."""

    __slots__ = ('handle', 'callsign', 'x', 'y', 'facing')

    def __init__(self, handle: int, callsign: str, x: float = 0.0,
                 y: float = 0.0, facing: str = Facing.IDLE_SOUTH):
        self.handle = handle
        self.callsign = callsign
        self.x = x
        self.y = y
        self.facing = facing

    def to_dict(self) -> dict:
        return {
            'callsign': self.callsign,
            'x': self.x, 'y': self.y,
            'facing': self.facing,
        }


class RemoteWorld:
    """
    Spawns and despawns remote entities. Handles are never reused, so a
    stale handle can always be detected with is_alive().
    """

    def __init__(self):
        self.entities = {}   # handle -> RemoteEntity
        self.next_handle = 1

    def spawn(self, callsign: str, x: float, y: float,
              facing: str = Facing.IDLE_SOUTH) -> int:
        handle = self.next_handle
        self.next_handle += 1
        self.entities[handle] = RemoteEntity(handle, callsign, x, y, facing)
        return handle

    def despawn(self, handle: int):
        self.entities.pop(handle, None)

    def is_alive(self, handle: int) -> bool:
        return handle in self.entities

    def get(self, handle: int) -> RemoteEntity:
        return self.entities.get(handle)

    def place(self, handle: int, x: float, y: float, facing: str = None):
        """Move an entity. Unknown handles are ignored."""
        e = self.entities.get(handle)
        if e is None:
            return
        e.x = x
        e.y = y
        if facing is not None:
            e.facing = facing

    @property
    def count(self) -> int:
        return len(self.entities)
