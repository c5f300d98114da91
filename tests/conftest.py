"""Pytest fixtures for statescope tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

import pytest

from statescope.config import DiscoveryConfig
from statescope.explorer.engine import DiscoveryEngine
from statescope.explorer.events import EventBus
from statescope.explorer.models import (
    ActionDescriptor,
    ActionKind,
    ActionPayload,
    Observation,
    ViewportContext,
)
from statescope.explorer.protocols import ActionOutcome


def link(ref: str, label: str | None = None) -> ActionDescriptor:
    return ActionDescriptor(target_ref=ref, kind=ActionKind.LINK, label=label)


def button(ref: str, label: str | None = None) -> ActionDescriptor:
    return ActionDescriptor(target_ref=ref, kind=ActionKind.BUTTON, label=label)


def text_input(ref: str, label: str | None = None) -> ActionDescriptor:
    return ActionDescriptor(target_ref=ref, kind=ActionKind.INPUT, label=label)


@dataclass
class MockPage:
    """A page of the mock target.

    ``links`` maps a target ref to the destination page. A destination may
    carry a visual variant as ``"page~variant"``. Actions without a link
    leave the page unchanged.
    """

    name: str
    title: str = ""
    actions: list[ActionDescriptor] = field(default_factory=list)
    links: dict[str, str] = field(default_factory=dict)
    storage: dict[str, str] = field(default_factory=dict)


@dataclass
class MockContext:
    """Live context handle: which page is currently shown."""

    page: str
    variant: str = ""
    index: int = 0


class MockTarget:
    """In-memory target implementing every collaborator interface.

    Pages are addressed by name; observations are derived from the page
    and its visual variant so equal pages always fingerprint equally.
    """

    def __init__(self, pages: dict[str, MockPage], start: str) -> None:
        self.pages = pages
        self.start = start
        self.executed: list[tuple[str, str]] = []
        self.execution_contexts: list[tuple[str, str, str]] = []
        self.payloads: list[ActionPayload | None] = []
        self.restores: list[str] = []
        self.enumerations: list[tuple[str, bool]] = []
        self.captures = 0
        self.created: list[MockContext] = []
        self.disposed: list[MockContext] = []
        self.quiescence_calls = 0

        self.failing_refs: set[str] = set()
        self.rejected_refs: set[str] = set()
        self.slow_refs: set[str] = set()
        self.slow_delay = 0.5
        self.fail_capture = False
        self.fail_enumerate: set[str] = set()
        self.broken_restore: set[str] = set()
        self.slow_quiescence = False

    def new_context(self) -> MockContext:
        return MockContext(page=self.start)

    def observe(self, page_name: str, variant: str = "") -> Observation:
        page = self.pages[page_name]
        visual = f"visual:{page_name}" + (f"~{variant}" if variant else "")
        return Observation(
            visual_fingerprint=visual,
            structural_fingerprint=f"struct:{page_name}",
            viewport=ViewportContext(width=1280, height=720),
            persisted_context=dict(page.storage),
            action_space_size=len(page.actions),
            location=f"https://app.test/{page_name}",
            title=page.title or page_name.title(),
            actions=list(page.actions),
            metadata={"page": page_name, "variant": variant},
        )

    # ActionSpaceProvider
    async def enumerate(self, live_context: MockContext, *, include_hidden: bool = False):
        self.enumerations.append((live_context.page, include_hidden))
        if live_context.page in self.fail_enumerate:
            raise RuntimeError(f"cannot enumerate {live_context.page}")
        return list(self.pages[live_context.page].actions)

    # ActionExecutor
    async def execute(
        self,
        live_context: MockContext,
        action: ActionDescriptor,
        payload: ActionPayload | None = None,
    ) -> ActionOutcome:
        self.executed.append((live_context.page, action.target_ref))
        self.execution_contexts.append((action.target_ref, live_context.page, live_context.variant))
        self.payloads.append(payload)
        if action.target_ref in self.slow_refs:
            await asyncio.sleep(self.slow_delay)
        if action.target_ref in self.failing_refs:
            raise RuntimeError(f"element {action.target_ref} detached")
        if action.target_ref in self.rejected_refs:
            return ActionOutcome(success=False, error="click intercepted")

        destination = self.pages[live_context.page].links.get(action.target_ref)
        if destination is not None:
            name, _, variant = destination.partition("~")
            live_context.page = name
            live_context.variant = variant
        return ActionOutcome(success=True, duration_ms=1.0)

    # ObservationCapturer
    async def capture(self, live_context: MockContext, *, include_screenshot: bool = True):
        self.captures += 1
        if self.fail_capture:
            raise RuntimeError("target unreachable")
        return self.observe(live_context.page, live_context.variant)

    # ContextRestorer
    async def restore(self, live_context: MockContext, target: Observation) -> None:
        page = target.metadata["page"]
        self.restores.append(page)
        if page in self.broken_restore:
            live_context.page = self.start
            live_context.variant = ""
            return
        live_context.page = page
        live_context.variant = target.metadata.get("variant", "")

    # QuiescenceWaiter
    async def wait(self, live_context: MockContext, timeout: float) -> None:
        self.quiescence_calls += 1
        if self.slow_quiescence:
            await asyncio.sleep(timeout * 10)

    # VisualDiff
    def similarity(self, fingerprint_a: str, fingerprint_b: str) -> float:
        if "bad" in fingerprint_a or "bad" in fingerprint_b:
            raise ValueError("image dimensions differ")
        base_a = fingerprint_a.split("~")[0]
        base_b = fingerprint_b.split("~")[0]
        return 0.98 if base_a == base_b else 0.1

    # ContextFactory
    async def create(self, index: int) -> MockContext:
        context = MockContext(page=self.start, index=index)
        self.created.append(context)
        return context

    async def dispose(self, live_context: MockContext) -> None:
        self.disposed.append(live_context)


def build_target(spec: dict[str, dict[str, Any]], start: str) -> MockTarget:
    """Build a MockTarget from ``{name: {"links": {...}, "actions": [...], ...}}``.

    Every link ref gets a link action unless ``actions`` already lists it.
    """
    pages: dict[str, MockPage] = {}
    for name, options in spec.items():
        links = dict(options.get("links", {}))
        actions = list(options.get("actions", []))
        listed = {a.target_ref for a in actions}
        actions = [link(ref) for ref in links if ref not in listed] + actions
        pages[name] = MockPage(
            name=name,
            title=options.get("title", ""),
            actions=actions,
            links=links,
            storage=dict(options.get("storage", {})),
        )
    return MockTarget(pages, start)


def fast_config(**overrides: Any) -> DiscoveryConfig:
    settings: dict[str, Any] = {
        "simulate_user_behavior": False,
        "timeout_per_interaction": 1.0,
        "quiescence_timeout": 0.05,
        "restore_timeout": 1.0,
        "observation_timeout": 1.0,
        "random_seed": 7,
    }
    settings.update(overrides)
    return DiscoveryConfig(**settings)


@pytest.fixture
def home_target() -> MockTarget:
    """Home (2 links, 1 button, 1 input), Page1 (link home), Page2 (link home, 2 inputs, submit)."""
    return build_target(
        {
            "home": {
                "title": "Home",
                "links": {"#page1": "page1", "#page2": "page2"},
                "actions": [
                    link("#page1", "Page 1"),
                    link("#page2", "Page 2"),
                    button("#refresh", "Refresh"),
                    text_input("#search", "Search"),
                ],
            },
            "page1": {"title": "Page 1", "links": {"#home-from-1": "home"}},
            "page2": {
                "title": "Page 2",
                "links": {"#home-from-2": "home"},
                "actions": [
                    text_input("#name", "Name"),
                    text_input("#email", "Email"),
                    button("#submit", "Submit"),
                ],
            },
        },
        start="home",
    )


@pytest.fixture
def chain_target() -> Callable[[int], MockTarget]:
    """Factory for a linear chain s0 -> s1 -> ... -> s(k-1)."""

    def factory(k: int) -> MockTarget:
        spec: dict[str, dict[str, Any]] = {}
        for i in range(k):
            links = {f"#next-{i}": f"s{i + 1}"} if i < k - 1 else {}
            spec[f"s{i}"] = {"title": f"Step {i}", "links": links}
        return build_target(spec, start="s0")

    return factory


@pytest.fixture
def cycle_target() -> MockTarget:
    """Two states linked both ways: A <-> B."""
    return build_target(
        {
            "a": {"title": "A", "links": {"#to-b": "b"}},
            "b": {"title": "B", "links": {"#to-a": "a"}},
        },
        start="a",
    )


@pytest.fixture
def make_engine() -> Callable[..., DiscoveryEngine]:
    """Factory wiring a MockTarget into a DiscoveryEngine with fast settings."""

    def factory(
        target: MockTarget,
        event_bus: EventBus | None = None,
        with_factory: bool = True,
        **overrides: Any,
    ) -> DiscoveryEngine:
        return DiscoveryEngine(
            fast_config(**overrides),
            action_provider=target,
            executor=target,
            capturer=target,
            restorer=target,
            quiescence=target,
            visual_diff=target,
            context_factory=target if with_factory else None,
            event_bus=event_bus,
        )

    return factory


@pytest.fixture
def single_page_target() -> MockTarget:
    """One page without any actions."""
    return build_target({"lonely": {"title": "Lonely"}}, start="lonely")


@pytest.fixture
def bad_visual_target() -> MockTarget:
    """Home links to a page whose visual fingerprint breaks the visual diff."""
    return build_target(
        {
            "home": {"title": "Home", "links": {"#go-bad": "bad-page"}},
            "bad-page": {"title": "Broken", "links": {"#back": "home"}},
        },
        start="home",
    )


@pytest.fixture
def dirtying_target() -> MockTarget:
    """Home with an action that leaves a near-identical visual residue."""
    return build_target(
        {
            "home": {"title": "Home", "links": {"#noisy": "home~dirty", "#page1": "page1"}},
            "page1": {"title": "Page 1"},
        },
        start="home",
    )


@pytest.fixture
def noisy_tab_target() -> MockTarget:
    """Home and a tabbed page that renders with or without visual noise.

    ``tabbed`` and ``tabbed~noise`` share every action, location and title;
    only their visual fingerprints differ.
    """
    links = {"#tab": "tabbed", "#tab-noisy": "tabbed~noise"}
    return build_target(
        {
            "home": {"title": "Home", "links": links},
            "tabbed": {"title": "Tabbed", "links": links},
        },
        start="home",
    )


@pytest.fixture
def error_page_target() -> MockTarget:
    """Home links to an error page."""
    return build_target(
        {
            "home": {"title": "Home", "links": {"#broken": "error"}},
            "error": {"title": "Oops", "links": {"#back": "home"}},
        },
        start="home",
    )


@pytest.fixture
def make_observation() -> Callable[..., Observation]:
    """Factory for standalone observations used by comparator and store tests."""

    def factory(name: str = "home", **overrides: Any) -> Observation:
        values: dict[str, Any] = {
            "visual_fingerprint": f"visual:{name}",
            "structural_fingerprint": f"struct:{name}",
            "location": f"https://app.test/{name}",
            "title": name.title(),
            "actions": [link(f"#{name}-link")],
            "action_space_size": 1,
        }
        values.update(overrides)
        return Observation(**values)

    return factory
