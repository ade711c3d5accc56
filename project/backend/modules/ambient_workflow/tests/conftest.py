"""
Pytest configuration and fixtures for ambient workflow tests.
"""

import json
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest

from shared.api_client import WorkflowApiClient
from shared.event_publisher import EventPublisher
from shared.models.storyboard import ContinuityGroup, Scene, Shot

from modules.ambient_workflow.controller import WorkflowController
from modules.ambient_workflow.store import StepDataStore

BASE_URL = "http://testserver/api/ambient-visual"
BASE_PATH = "/api/ambient-visual"
PROJECT_ID = "proj-1"

Reply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class FakeWorkflowServer:
    """
    In-memory stand-in for the remote workflow API.

    Routes are keyed by (method, path relative to the API base). Unrouted
    requests answer 200 ``{"success": true}``. Every request is recorded.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Reply] = {}
        self.requests: List[httpx.Request] = []

    def on(self, method: str, path: str, reply: Reply) -> None:
        self.routes[(method.upper(), path)] = reply

    def reply(self, method: str, path: str, status_code: int = 200, json_body: Any = None) -> None:
        self.on(method, path, httpx.Response(status_code, json=json_body if json_body is not None else {}))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith(BASE_PATH):
            path = path[len(BASE_PATH):]
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(200, json={"success": True})
        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            # Fresh copy so a route can answer more than once
            return httpx.Response(route.status_code, headers=route.headers, content=route.content)
        return route(request)

    @property
    def calls(self) -> List[str]:
        """Requests as "METHOD /relative/path" strings, in order."""
        calls = []
        for request in self.requests:
            path = request.url.path
            if path.startswith(BASE_PATH):
                path = path[len(BASE_PATH):]
            calls.append(f"{request.method} {path}")
        return calls

    def body(self, index: int) -> Any:
        """Decoded JSON body of the n-th recorded request."""
        content = self.requests[index].content
        return json.loads(content) if content else None


@pytest.fixture
def server():
    """Fake remote workflow API."""
    return FakeWorkflowServer()


@pytest.fixture
def api_client(server):
    """API client wired to the fake server."""
    return WorkflowApiClient(BASE_URL, transport=httpx.MockTransport(server.handler))


@pytest.fixture
def publisher():
    """Event publisher without Redis."""
    return EventPublisher()


@pytest.fixture
def events(publisher):
    """Every (event_type, data) the publisher delivers, in order."""
    recorded: List[Tuple[str, Dict[str, Any]]] = []
    publisher.subscribe(lambda event_type, data: recorded.append((event_type, data)))
    return recorded


@pytest.fixture
def store():
    """Store for a saved project with deterministic IDs."""
    counter = {"n": 0}

    def id_factory(prefix: str) -> str:
        counter["n"] += 1
        return f"{prefix}-{counter['n']}"

    return StepDataStore(project_id=PROJECT_ID, id_factory=id_factory)


@pytest.fixture
def controller(store, api_client, publisher):
    """Controller over the fake server with a short auto-save delay."""
    return WorkflowController(
        store,
        api_client,
        publisher,
        settings_debounce_seconds=0.01,
    )


def _populate(store: StepDataStore, shots_per_scene: int = 2, scenes: int = 1) -> None:
    scene_list = []
    shot_map = {}
    for s in range(scenes):
        scene = Scene(
            id=f"sc{s + 1}",
            video_id=store.project_id or "",
            scene_number=s + 1,
            title=f"Scene {s + 1}",
        )
        scene_list.append(scene)
        shot_map[scene.id] = [
            Shot(id=f"{scene.id}-sh{i + 1}", scene_id=scene.id, shot_number=i + 1)
            for i in range(shots_per_scene)
        ]
    store.apply_generated_scenes(scene_list, shot_map)


@pytest.fixture
def storyboard(store):
    """Store with one scene (sc1) holding two shots (sc1-sh1, sc1-sh2)."""
    _populate(store)
    return store


@pytest.fixture
def two_scene_storyboard(store):
    """Store with scenes sc1 and sc2, two shots each."""
    _populate(store, scenes=2)
    return store


@pytest.fixture
def approved_continuity(storyboard):
    """Storyboard with one approved group on sc1 and continuity locked."""
    shot_ids = [shot.id for shot in storyboard.flow_design.shots["sc1"]]
    storyboard.flow_design.continuity_groups["sc1"] = [
        ContinuityGroup(id="g1", scene_id="sc1", shot_ids=shot_ids, status="approved")
    ]
    storyboard.flow_design.continuity_locked = True
    storyboard.notify_changed("continuity")
    return storyboard


@pytest.fixture
def ready_atmosphere(store):
    """Store whose phase 1 has a description matching the current settings."""
    store.set_mood_description("Soft golden light over a quiet lake.")
    return store
