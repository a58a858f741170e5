import threading
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Generic, Protocol, TypeVar

from hospital_scheduler.models import Activity, Shift, StaffMember, StaffRequest

K = TypeVar("K")
V = TypeVar("V")


class InMemoryKeyValueDatabase(Generic[K, V]):
    """
    Simple in-memory key/value database.
    """

    def __init__(self) -> None:
        self._store: MutableMapping[K, V] = {}

    def put(self, key: K, value: V) -> None:
        self._store[key] = value

    def get(self, key: K) -> V | None:
        return self._store.get(key)

    def delete(self, key: K) -> None:
        self._store.pop(key, None)

    def all(self) -> list[V]:
        return list(self._store.values())

    def clear(self) -> None:
        self._store.clear()

    def __iter__(self) -> Iterator[V]:
        return iter(self._store.values())

    def __len__(self) -> int:
        return len(self._store)


class Repository(Protocol):
    """
    Persistence collaborator used by the rules engines. Any document store
    that can hand back and accept these entities satisfies it.
    """

    def get_staff(self) -> list[StaffMember]: ...
    def get_staff_member(self, staff_id: str) -> StaffMember | None: ...
    def save_staff(self, staff: StaffMember) -> None: ...

    def get_shifts(self) -> list[Shift]: ...
    def get_shift(self, shift_id: str) -> Shift | None: ...
    def save_shift(self, shift: Shift) -> None: ...
    def delete_shift(self, shift_id: str) -> None: ...

    def get_requests(self) -> list[StaffRequest]: ...
    def get_request(self, request_id: str) -> StaffRequest | None: ...
    def save_request(self, request: StaffRequest) -> None: ...

    def get_activity(self) -> list[Activity]: ...
    def add_activity(self, activity: Activity) -> None: ...

    def transaction(self): ...


Entity = StaffMember | Shift | StaffRequest | Activity


class InMemoryRepository:
    """
    Repository over one InMemoryKeyValueDatabase, keyed "<kind>:<id>".
    Each test builds its own instance so nothing is shared between them.
    """

    def __init__(
        self, db: InMemoryKeyValueDatabase[str, Entity] | None = None
    ) -> None:
        self.db: InMemoryKeyValueDatabase[str, Entity] = (
            db if db is not None else InMemoryKeyValueDatabase()
        )
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        # read-validate-write sequences run under this lock
        with self._lock:
            yield

    def _typed(self, key: str, kind: type) -> Entity | None:
        value = self.db.get(key)
        if isinstance(value, kind):
            return value.model_copy(deep=True)
        return None

    def _all(self, kind: type) -> list:
        return [v.model_copy(deep=True) for v in self.db.all() if isinstance(v, kind)]

    def get_staff(self) -> list[StaffMember]:
        return self._all(StaffMember)

    def get_staff_member(self, staff_id: str) -> StaffMember | None:
        return self._typed(f"staff:{staff_id}", StaffMember)

    def save_staff(self, staff: StaffMember) -> None:
        self.db.put(f"staff:{staff.id}", staff.model_copy(deep=True))

    def get_shifts(self) -> list[Shift]:
        return self._all(Shift)

    def get_shift(self, shift_id: str) -> Shift | None:
        return self._typed(f"shift:{shift_id}", Shift)

    def save_shift(self, shift: Shift) -> None:
        self.db.put(f"shift:{shift.id}", shift.model_copy(deep=True))

    def delete_shift(self, shift_id: str) -> None:
        self.db.delete(f"shift:{shift_id}")

    def get_requests(self) -> list[StaffRequest]:
        return self._all(StaffRequest)

    def get_request(self, request_id: str) -> StaffRequest | None:
        return self._typed(f"request:{request_id}", StaffRequest)

    def save_request(self, request: StaffRequest) -> None:
        self.db.put(f"request:{request.id}", request.model_copy(deep=True))

    def get_activity(self) -> list[Activity]:
        return self._all(Activity)

    def add_activity(self, activity: Activity) -> None:
        self.db.put(f"activity:{activity.id}", activity.model_copy(deep=True))
