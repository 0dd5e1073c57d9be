import os
import uuid
from datetime import datetime, timedelta, timezone

# Must be set before the app (and settings) are imported
os.environ.setdefault("RATE_LIMIT_MAX", "100000")
os.environ.setdefault("APP_ENV", "test")

import pytest
from fastapi.testclient import TestClient
from firebase_admin import auth as firebase_auth
from google.cloud.firestore_v1.query import Query

from database import get_auth, get_db, to_iso
from main import app
from osrm_client import get_osrm_client


# In-memory Firestore

class FakeSnapshot:
    def __init__(self, ref, data):
        self.reference = ref
        self.id = ref.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeDocumentRef:
    def __init__(self, collection, doc_id):
        self._collection = collection
        self.id = doc_id

    def get(self):
        data = self._collection.docs.get(self.id)
        return FakeSnapshot(self, _copy(data) if data is not None else None)

    def set(self, data):
        self._collection.docs[self.id] = _copy(data)

    def update(self, data):
        if self.id not in self._collection.docs:
            raise KeyError(f"No document to update: {self.id}")
        self._collection.docs[self.id].update(_copy(data))

    def delete(self):
        self._collection.docs.pop(self.id, None)


def _copy(data):
    if isinstance(data, dict):
        return {k: _copy(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_copy(v) for v in data]
    return data


def _matches(value, op, expected):
    if op == "==":
        return value == expected
    if op == "!=":
        return value != expected
    if value is None:
        return False
    if op == ">=":
        return value >= expected
    if op == "<=":
        return value <= expected
    if op == ">":
        return value > expected
    if op == "<":
        return value < expected
    if op == "array_contains":
        return expected in (value or [])
    if op == "array_contains_any":
        return any(v in (value or []) for v in expected)
    if op == "in":
        return value in expected
    raise NotImplementedError(op)


class FakeQuery:
    def __init__(self, collection, filters=None, orders=None, limit_to=None, after=None):
        self._collection = collection
        self._filters = filters or []
        self._orders = orders or []
        self._limit = limit_to
        self._after = after

    def _clone(self, **changes):
        state = dict(filters=list(self._filters), orders=list(self._orders), limit_to=self._limit, after=self._after)
        state.update(changes)
        return FakeQuery(self._collection, **state)

    def where(self, field_path=None, op_string=None, value=None, filter=None):
        if filter is not None:
            field_path, op_string, value = filter.field_path, filter.op_string, filter.value
        return self._clone(filters=self._filters + [(field_path, op_string, value)])

    def order_by(self, field_path, direction=Query.ASCENDING):
        return self._clone(orders=self._orders + [(field_path, direction)])

    def limit(self, count):
        return self._clone(limit_to=count)

    def start_after(self, snapshot):
        return self._clone(after=snapshot.id)

    def stream(self):
        items = [(doc_id, data) for doc_id, data in self._collection.docs.items()]
        for field, op, expected in self._filters:
            items = [(i, d) for i, d in items if _matches(d.get(field), op, expected)]
        for field, direction in reversed(self._orders):
            items.sort(
                key=lambda item: (item[1].get(field) is None, item[1].get(field)),
                reverse=direction == Query.DESCENDING,
            )
        if self._after is not None:
            ids = [i for i, _ in items]
            if self._after in ids:
                items = items[ids.index(self._after) + 1:]
        if self._limit is not None:
            items = items[: self._limit]
        for doc_id, _ in items:
            yield FakeDocumentRef(self._collection, doc_id).get()

    def get(self):
        return list(self.stream())


class FakeCollection(FakeQuery):
    def __init__(self, name):
        self.id = name
        self.docs = {}
        super().__init__(self)

    def document(self, doc_id=None):
        return FakeDocumentRef(self, doc_id or uuid.uuid4().hex[:20])

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return datetime.now(timezone.utc), ref


class FakeFirestore:
    def __init__(self):
        self._collections = {}

    def collection(self, name):
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    def collections(self):
        return list(self._collections.values())


# Fake Firebase Auth

class FakeUserRecord:
    def __init__(self, uid, email, display_name=None):
        self.uid = uid
        self.email = email
        self.display_name = display_name
        self.custom_claims = {}


class FakeAuth:
    """Stands in for ``firebase_admin.auth`` and raises its real exception types."""

    def __init__(self):
        self.users = {}
        self.tokens = {}
        self.revoked = set()
        self.custom_tokens = []

    def issue_token(self, uid, email=None, **claims):
        token = f"token-{uid}"
        self.tokens[token] = {"uid": uid, "email": email, "email_verified": True, **claims}
        return token

    def verify_id_token(self, token, check_revoked=False):
        if token == "expired-token":
            raise firebase_auth.ExpiredIdTokenError("Token expired", None)
        if token == "broken-token":
            raise RuntimeError("key fetch failed")
        if token not in self.tokens:
            raise firebase_auth.InvalidIdTokenError("Invalid token")
        claims = self.tokens[token]
        if check_revoked and claims["uid"] in self.revoked:
            raise firebase_auth.RevokedIdTokenError("Token revoked")
        return dict(claims)

    def create_user(self, email=None, password=None, display_name=None):
        if any(u.email == email for u in self.users.values()):
            raise firebase_auth.EmailAlreadyExistsError("Email exists", None, None)
        uid = uuid.uuid4().hex[:28]
        self.users[uid] = FakeUserRecord(uid, email, display_name)
        return self.users[uid]

    def _record(self, uid):
        if uid not in self.users:
            self.users[uid] = FakeUserRecord(uid, None)
        return self.users[uid]

    def set_custom_user_claims(self, uid, claims):
        self._record(uid).custom_claims = dict(claims)

    def update_user(self, uid, **kwargs):
        record = self._record(uid)
        if "email" in kwargs and any(u.email == kwargs["email"] for u in self.users.values() if u.uid != uid):
            raise firebase_auth.EmailAlreadyExistsError("Email exists", None, None)
        if "email" in kwargs:
            record.email = kwargs["email"]
        if "display_name" in kwargs:
            record.display_name = kwargs["display_name"]
        return record

    def delete_user(self, uid):
        if uid not in self.users:
            raise firebase_auth.UserNotFoundError("No user record found")
        del self.users[uid]

    def revoke_refresh_tokens(self, uid):
        self.revoked.add(uid)

    def create_custom_token(self, uid):
        self.custom_tokens.append(uid)
        return f"custom-{uid}".encode("utf-8")


# Routing stub

class StubOSRM:
    def __init__(self):
        self.calls = []

    def route(self, coordinates, profile=None, steps=True):
        self.calls.append({"coordinates": coordinates, "profile": profile, "steps": steps})
        return {
            "distance": 420.5,
            "duration": 300.2,
            "geometry": {"type": "LineString", "coordinates": [[lng, lat] for lat, lng in coordinates]},
            "legs": [
                {"distance": 420.5, "duration": 300.2, "summary": "Campus Road", "steps": []}
                for _ in coordinates[1:]
            ],
        }

    def table(self, sources, destinations, profile=None):
        self.calls.append({"sources": sources, "destinations": destinations, "profile": profile})
        return {
            "durations": [[60.0 * (i + j + 1) for j in range(len(destinations))] for i in range(len(sources))],
            "distances": [[80.0 * (i + j + 1) for j in range(len(destinations))] for i in range(len(sources))],
        }


# Fixtures

@pytest.fixture
def fake_db():
    return FakeFirestore()


@pytest.fixture
def fake_auth():
    return FakeAuth()


@pytest.fixture
def fake_osrm():
    return StubOSRM()


@pytest.fixture
def client(fake_db, fake_auth, fake_osrm):
    app.dependency_overrides[get_db] = lambda: fake_db
    app.dependency_overrides[get_auth] = lambda: fake_auth
    app.dependency_overrides[get_osrm_client] = lambda: fake_osrm
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(fake_db, fake_auth):
    """Store a profile and return ``(uid, headers)`` for it."""
    def _make(role="student", name=None, email=None, interests=None, uid=None):
        uid = uid or f"{role}-{uuid.uuid4().hex[:8]}"
        email = email or f"{uid}@thapar.edu"
        now = to_iso(datetime.now(timezone.utc))
        fake_db.collection("users").document(uid).set({
            "name": name or role.title(),
            "email": email,
            "role": role,
            "interests": interests or [],
            "photoURL": None,
            "createdAt": now,
            "updatedAt": now,
        })
        fake_auth.users[uid] = FakeUserRecord(uid, email, name)
        token = fake_auth.issue_token(uid, email=email, role=role)
        return uid, {"Authorization": f"Bearer {token}"}
    return _make


@pytest.fixture
def student(make_user):
    return make_user("student", name="Stu Dent", interests=["music", "coding"])


@pytest.fixture
def organizer(make_user):
    return make_user("organizer", name="Org Anizer")


@pytest.fixture
def admin(make_user):
    return make_user("admin", name="Ad Min")


def future(days=1, hours=0):
    return datetime.now(timezone.utc) + timedelta(days=days, hours=hours)


@pytest.fixture
def add_location(fake_db):
    def _add(name="Library", type="class", lat=30.3545, lng=76.3628, **extra):
        now = to_iso(datetime.now(timezone.utc))
        _, ref = fake_db.collection("locations").add({
            "name": name,
            "description": extra.pop("description", ""),
            "type": type,
            "coordinates": {"lat": lat, "lng": lng},
            "buildingId": extra.pop("buildingId", None),
            "floor": extra.pop("floor", None),
            "tags": extra.pop("tags", []),
            "meta": {},
            "createdAt": now,
            "updatedAt": now,
            **extra,
        })
        return ref.id
    return _add


@pytest.fixture
def add_event(fake_db):
    def _add(location_id, created_by, title="Tech Talk", start=None, end=None, capacity=50,
             status="published", tags=None, category="seminar", attendees=None):
        start = start or future(days=2)
        end = end or start + timedelta(hours=2)
        now = to_iso(datetime.now(timezone.utc))
        _, ref = fake_db.collection("events").add({
            "title": title,
            "description": f"{title} description",
            "category": category,
            "locationId": location_id,
            "dateTime": to_iso(start),
            "endDateTime": to_iso(end),
            "capacity": capacity,
            "organizer": "Org Anizer",
            "createdBy": created_by,
            "attendees": attendees or [],
            "tags": tags or [],
            "status": status,
            "createdAt": now,
            "updatedAt": now,
        })
        return ref.id
    return _add
