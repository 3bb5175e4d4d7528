"""Tests for PlaceholderSync, the placeholder registry and connectors."""
from datetime import timedelta

import pytest

from canvasgen.canvas.connectors import connection_points, create_connectors
from canvasgen.canvas.placeholders import PlaceholderSync, display_prompt
from canvasgen.canvas.surface import InMemoryDocumentSurface
from canvasgen.models.canvas import ConnectorDescriptor, NodeGeometry, NodeKind, NodeRole, Point

from conftest import add_image


class FlakySurface(InMemoryDocumentSurface):
    """Surface whose removals fail for chosen node ids."""

    def __init__(self, failing: set[str], **kwargs):
        super().__init__(**kwargs)
        self.failing = failing

    def remove_nodes(self, node_ids):
        if self.failing.intersection(node_ids):
            raise RuntimeError("node is locked")
        super().remove_nodes(node_ids)


class ConnectorRejectingSurface(InMemoryDocumentSurface):
    """Surface that refuses connectors leaving chosen source nodes."""

    def __init__(self, rejected_sources: set[str], **kwargs):
        super().__init__(**kwargs)
        self.rejected_sources = rejected_sources

    def insert_node(self, descriptor, anchor):
        if isinstance(descriptor, ConnectorDescriptor) and descriptor.source.bound_node_id in self.rejected_sources:
            raise RuntimeError("connector rejected")
        return super().insert_node(descriptor, anchor)


class TestPlaceholderCreate:
    """Placement and sizing of new placeholders."""

    def test_defaults_on_empty_surface(self, placeholders, surface):
        node_id = placeholders.create("t1", "a cat")
        geometry = surface.get_geometry(node_id)

        assert geometry.top_left == Point(x=300, y=200)
        assert (geometry.width, geometry.height) == (200, 200)
        assert placeholders.lookup(node_id) == "t1"

    def test_right_of_last_selected_image(self, placeholders, surface):
        first = add_image(surface, 0, 0)
        second = add_image(surface, 50, 400, width=120, height=90)
        surface.select([first, second])

        node_id = placeholders.create("t1", "a cat")
        geometry = surface.get_geometry(node_id)

        assert geometry.top_left == Point(x=50 + 120 + 150, y=400)
        assert (geometry.width, geometry.height) == (120, 90)

    def test_right_of_last_image_when_nothing_selected(self, placeholders, surface):
        add_image(surface, 0, 0)
        add_image(surface, 10, 20, width=100)

        geometry = surface.get_geometry(placeholders.create("t1", "a cat"))

        assert geometry.top_left == Point(x=260, y=20)
        assert (geometry.width, geometry.height) == (200, 200)

    def test_explicit_hints_win(self, placeholders, surface):
        add_image(surface, 0, 0)

        node_id = placeholders.create("t1", "a cat", anchor_hint=Point(x=5, y=6), size=(64, 32))
        geometry = surface.get_geometry(node_id)

        assert geometry.top_left == Point(x=5, y=6)
        assert (geometry.width, geometry.height) == (64, 32)

    def test_long_prompt_truncated_for_display(self, placeholders, surface):
        prompt = "x" * 60
        node = surface.get_node(placeholders.create("t1", prompt))

        assert node.metadata["prompt"] == "x" * 47 + "..."
        assert display_prompt("short") == "short"


class TestPlaceholderProgress:
    """Progress updates, with and without in-place mutation."""

    def test_recreate_keeps_one_node_at_same_anchor(self, placeholders, surface):
        first = placeholders.create("t1", "a cat", anchor_hint=Point(x=10, y=10))

        second = placeholders.update_progress("t1", 0.4, "connect")

        assert second != first
        assert surface.get_node(first) is None
        assert surface.get_geometry(second).top_left == Point(x=10, y=10)
        assert surface.get_node(second).metadata["progress"] == 0.4
        assert placeholders.all_nodes_for("t1") == [second]

    def test_in_place_update_keeps_identity(self):
        surface = InMemoryDocumentSurface(supports_in_place_update=True)
        placeholders = PlaceholderSync(surface)
        node_id = placeholders.create("t1", "a cat")

        assert placeholders.update_progress("t1", 0.6, "dispatch") == node_id
        assert surface.get_node(node_id).metadata["stage"] == "dispatch"
        assert len(surface) == 1

    def test_stale_nodes_deduplicated_on_next_update(self):
        surface = FlakySurface(failing=set())
        placeholders = PlaceholderSync(surface)
        first = placeholders.create("t1", "a cat")
        surface.failing.add(first)

        second = placeholders.update_progress("t1", 0.2)
        assert placeholders.all_nodes_for("t1") == [first, second]

        surface.failing.clear()
        third = placeholders.update_progress("t1", 0.4)

        assert placeholders.all_nodes_for("t1") == [third]
        assert len(surface) == 1

    def test_unknown_task_returns_none(self, placeholders):
        assert placeholders.update_progress("missing", 0.5) is None


class TestPlaceholderReplace:
    """Swapping placeholders for the final artifact or a refusal."""

    def test_replace_removes_all_placeholders(self):
        surface = FlakySurface(failing=set())
        placeholders = PlaceholderSync(surface)
        first = placeholders.create("t1", "a cat", anchor_hint=Point(x=0, y=0))
        surface.failing.add(first)
        second = placeholders.update_progress("t1", 0.2)
        surface.failing.add(second)
        latest = placeholders.update_progress("t1", 0.4)
        surface.failing.clear()
        assert len(placeholders.all_nodes_for("t1")) == 3
        latest_geometry = surface.get_geometry(latest)

        new_id = placeholders.replace("t1", "https://cdn.example.com/out.png")

        node = surface.get_node(new_id)
        assert node.role == NodeRole.ARTIFACT
        assert node.url == "https://cdn.example.com/out.png"
        assert node.geometry == latest_geometry
        assert [n.id for n in surface.nodes()] == [new_id]
        assert placeholders.all_nodes_for("t1") == []

    def test_replace_unknown_task_returns_none(self, placeholders):
        assert placeholders.replace("missing", "uri") is None

    def test_replace_tolerates_removal_failure(self):
        surface = FlakySurface(failing=set())
        placeholders = PlaceholderSync(surface)
        node_id = placeholders.create("t1", "a cat")
        surface.failing.add(node_id)

        new_id = placeholders.replace("t1", "uri")

        assert new_id is not None
        assert placeholders.lookup(node_id) is None

    def test_lookup_prunes_records_of_deleted_nodes(self, placeholders, surface):
        node_id = placeholders.create("t1", "a cat")
        surface.remove_nodes([node_id])

        assert placeholders.lookup(node_id) is None
        assert node_id not in placeholders.registry
        assert placeholders.replace("t1", "uri") is None

    def test_render_refusal(self, placeholders, surface):
        placeholders.create("t1", "a forbidden thing")

        node_id = placeholders.render_refusal("t1", "Request refused")

        node = surface.get_node(node_id)
        assert node.role == NodeRole.REFUSAL
        assert node.metadata["message"] == "Request refused"
        assert node.metadata["prompt"] == "a forbidden thing"
        assert len(surface) == 1


class TestPlaceholderCleanup:
    """Age-based cleanup."""

    def test_cleanup_expired(self, placeholders, surface):
        old = placeholders.create("t-old", "old")
        fresh = placeholders.create("t-new", "new")
        record = placeholders.registry.get(old)
        record.registered_at = record.registered_at - timedelta(minutes=10)

        removed = placeholders.cleanup_expired()

        assert removed == 1
        assert surface.get_node(old) is None
        assert placeholders.lookup(fresh) == "t-new"

    def test_cleanup_with_custom_age(self, placeholders):
        placeholders.create("t1", "a")

        assert placeholders.cleanup_expired(max_age_seconds=-1) == 1
        assert len(placeholders.registry) == 0


class TestConnectors:
    """Connector geometry and insertion."""

    @staticmethod
    def box(x, y, size=100):
        return NodeGeometry.from_anchor(Point(x=x, y=y), size, size)

    @pytest.mark.parametrize("target,expected", [
        ((400, 0), ((1.0, 0.5), (0.0, 0.5))),
        ((-400, 0), ((0.0, 0.5), (1.0, 0.5))),
        ((0, 400), ((0.5, 1.0), (0.5, 0.0))),
        ((0, -400), ((0.5, 0.0), (0.5, 1.0))),
    ])
    def test_connection_points_follow_dominant_direction(self, target, expected):
        assert connection_points(self.box(0, 0), self.box(*target)) == expected

    def test_create_connectors_binds_both_ends(self, surface):
        source = add_image(surface, 0, 0)
        target = add_image(surface, 400, 0)

        created = create_connectors(surface, [source], target)

        assert len(created) == 1
        connector = surface.get_node(created[0])
        assert connector.kind == NodeKind.CONNECTOR
        assert connector.connector.source.bound_node_id == source
        assert connector.connector.target.bound_node_id == target
        assert connector.connector.target.marker == "arrow"
        assert connector.connector.shape == "curve"

    def test_missing_source_skipped(self, surface):
        source = add_image(surface, 0, 0)
        target = add_image(surface, 400, 0)

        created = create_connectors(surface, ["gone", source], target)

        assert len(created) == 1

    def test_failed_edge_does_not_stop_the_others(self):
        surface = ConnectorRejectingSurface(rejected_sources=set())
        first = add_image(surface, 0, 0)
        second = add_image(surface, 0, 300)
        third = add_image(surface, 0, 600)
        target = add_image(surface, 400, 300)
        surface.rejected_sources.add(second)

        created = create_connectors(surface, [first, second, third], target)

        assert len(created) == 2
        sources = [surface.get_node(node_id).connector.source.bound_node_id for node_id in created]
        assert sources == [first, third]
