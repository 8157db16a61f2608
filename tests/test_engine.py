"""
Runtime engine tests.
"""

import gc

import pytest

from elements import Element, reactive

from hotswap.exceptions import AlreadyDefinedError, ComponentNotFoundError
from hotswap.runtime import (
    DefineOutcome,
    HotSwapEventType,
    bootstrap,
    get_environment,
)
from hotswap.runtime.patcher import ClassPatcher
from hotswap.types import PropertySnapshot, ValueKind


def make_v1():
    class Card(Element):
        title = reactive("card")
        styles = ("v1",)

        def render(self):
            return f"v1:{self.title}"

        def describe(self):
            return "card"

    return Card


def make_v2():
    class Card(Element):
        title = reactive("card")
        styles = ("v2",)

        def render(self):
            return f"v2:{self.title}"

        def describe(self):
            return "card:" + super().render()

    return Card


@pytest.fixture
def defined(env):
    """Environment with 'x-card' registered from version 1."""
    bootstrap(env)
    env.define("x-card", make_v1(), "/project/card.py")
    return env


def new(env, name="x-card"):
    return env.platform_registry.get(name)()


class TestPlatformRegistry:
    """Test the bind-once reference registry."""

    def test_rebind_raises(self, platform):
        platform.define("x-a", int)
        with pytest.raises(AlreadyDefinedError) as exc:
            platform.define("x-a", str)
        assert exc.value.existing is int
        assert platform.bind_count == 1

    def test_lookup(self, platform):
        platform.define("x-a", int)
        assert "x-a" in platform
        assert platform["x-a"] is int
        assert platform.get("x-b") is None
        with pytest.raises(ComponentNotFoundError):
            platform["x-b"]


class TestBootstrap:
    """Test environment initialization."""

    def test_idempotent(self, env):
        assert bootstrap(env) is env
        define = env.define
        bootstrap(env)
        bootstrap(env)
        assert env.initializations == 1
        assert env.define is define

    def test_process_default(self):
        env = bootstrap()
        assert env is get_environment()
        assert env.initialized


class TestFirstRegistration:
    """Test the unregistered to registered transition."""

    def test_proxy_bound_once(self, defined):
        record = defined.get_record("x-card")

        assert record.version == 0
        assert record.last_outcome == DefineOutcome.REGISTERED
        assert defined.platform_registry.get("x-card") is record.proxy
        assert issubclass(record.proxy, record.delegate)
        assert record.proxy.__name__ == "Card"
        assert defined.platform_registry.bind_count == 1

    def test_instances_tracked(self, defined):
        a, b = new(defined), new(defined)
        record = defined.get_record("x-card")

        assert set(record.instances) == {a, b}
        assert a.rendered is None

    def test_teardown_runs_component_hook_and_untracks(self, defined):
        a = new(defined)
        a.disconnected_callback()

        assert not a.connected
        assert defined.get_record("x-card").instance_count == 0

    def test_collected_instances_are_dropped(self, defined):
        a = new(defined)
        del a
        gc.collect()
        assert defined.get_record("x-card").instance_count == 0

    def test_name_owned_elsewhere(self, env):
        env.platform_registry.define("x-taken", int)
        bootstrap(env)
        with pytest.raises(AlreadyDefinedError):
            env.define("x-taken", make_v1())
        assert env.get_record("x-taken") is None

    def test_argument_checks(self, env):
        bootstrap(env)
        with pytest.raises(TypeError):
            env.define("", make_v1())
        with pytest.raises(TypeError):
            env.define("x-a", object())


class TestPatch:
    """Test patchable updates."""

    def test_members_patched_and_instances_rerendered(self, defined, events):
        a, b = new(defined), new(defined)
        defined.define("x-card", make_v2(), "/project/card.py")
        record = defined.get_record("x-card")

        assert record.version == 1
        assert record.last_outcome == DefineOutcome.PATCHED
        assert a.rendered == "v2:card"
        assert b.rendered == "v2:card"
        assert a.update_requests == 1
        assert defined.platform_registry.bind_count == 1
        assert [e.type for e in events] == [HotSwapEventType.PATCHED]

    def test_zero_argument_super_keeps_working(self, defined):
        a = new(defined)
        defined.define("x-card", make_v2())
        assert a.describe() == "card:"

    def test_statics_caches_and_markers(self, defined):
        v2 = make_v2()
        defined.define("x-card", v2)
        proxy = defined.get_record("x-card").proxy

        assert proxy.styles == ("v2",)
        assert proxy.reactive_properties is v2.reactive_properties
        assert "_finalized" not in proxy.__dict__

    def test_accessors_are_not_copied(self, defined):
        proxy = defined.get_record("x-card").proxy
        original = proxy.title
        defined.define("x-card", make_v2())
        assert proxy.title is original

    def test_styles_mounted(self, defined):
        a = new(defined)
        defined.define("x-card", make_v2())
        assert a.render_root.adopted_style_sheets == ["v2"]

    def test_new_instances_use_patched_code(self, defined):
        defined.define("x-card", make_v2())
        c = new(defined)
        c.request_update()
        assert c.rendered == "v2:card"
        assert c in defined.get_record("x-card").instances

    def test_failing_instance_does_not_stop_others(self, defined, events):
        a, b = new(defined), new(defined)

        def broken():
            raise RuntimeError("boom")

        a.request_update = broken
        defined.define("x-card", make_v2())

        assert b.rendered == "v2:card"
        assert HotSwapEventType.INSTANCE_ERROR in [e.type for e in events]

    def test_teardown_between_updates(self, defined):
        a, b = new(defined), new(defined)
        defined.define("x-card", make_v2())
        b.disconnected_callback()
        defined.define("x-card", make_v2())

        assert a.update_requests == 2
        assert b.update_requests == 1
        assert set(defined.get_record("x-card").instances) == {a}

    def test_patched_teardown_keeps_tracking(self, defined):
        class Card(Element):
            title = reactive("card")
            styles = ("v1",)

            def disconnected_callback(self):
                super().disconnected_callback()
                self.torn_down = True

        a = new(defined)
        defined.define("x-card", Card)
        a.disconnected_callback()

        assert a.torn_down
        assert not a.connected
        assert defined.get_record("x-card").instance_count == 0


class TestEscalation:
    """Test updates that require a full reload."""

    def test_escalation_sets_flags(self, defined, events):
        a = new(defined)

        class Card(Element):
            title = reactive("card")
            observed_attributes = ("title",)

            def render(self):
                return "v3"

        defined.define("x-card", Card)
        record = defined.get_record("x-card")

        assert defined.needs_reload
        assert defined.reload_reason == (
            "[hotswap] Full reload required for <x-card>:\n"
            "  - Observed attributes changed (added: title)"
        )
        assert record.last_outcome == DefineOutcome.ESCALATED
        assert record.version == 1
        assert record.delegate is Card
        assert a.update_requests == 0
        assert record.proxy.observed_attributes == ()
        assert events[-1].type == HotSwapEventType.ESCALATED

    def test_reasons_accumulate_across_names(self, defined):
        class Other(Element):
            pass

        defined.define("x-other", Other)

        class Card(Element):
            title = reactive("card")
            extra = reactive(1)

        class Other2(Element):
            observed_attributes = ("a",)

        defined.define("x-card", Card)
        defined.define("x-other", Other2)

        assert "<x-card>" in defined.reload_reason
        assert "<x-other>" in defined.reload_reason

    def test_next_update_compares_with_latest_attempt(self, defined):
        class Card(Element):
            title = reactive("card")
            observed_attributes = ("title",)

        defined.define("x-card", Card)
        defined.needs_reload = False

        class Card2(Element):
            title = reactive("card")
            observed_attributes = ("title",)

        defined.define("x-card", Card2)
        assert not defined.needs_reload
        assert defined.get_record("x-card").last_outcome == DefineOutcome.PATCHED


class TestFinalize:
    """Test re-applying captured values after a patch."""

    def snapshots(self, value):
        return [PropertySnapshot(
            name="title", kind=ValueKind.of(value), value=value, has_value=True, owner="Card",
        )]

    def test_values_written_through_accessors(self, defined, events):
        a = new(defined)
        a.__dict__["title"] = "drifted"
        defined.define("x-card", make_v2())

        assert defined.finalize_patch("x-card", self.snapshots("card")) == 1
        assert a.title == "card"
        assert a.rendered == "v2:card"
        assert events[-1].type == HotSwapEventType.FINALIZED

    def test_no_op_without_record(self, defined):
        assert defined.finalize_patch("x-missing", self.snapshots("x")) == 0

    def test_no_op_after_registration_or_escalation(self, defined):
        a = new(defined)
        assert defined.finalize_patch("x-card", self.snapshots("new")) == 0

        class Card(Element):
            title = reactive("card")
            observed_attributes = ("title",)

        defined.define("x-card", Card)
        assert defined.finalize_patch("x-card", self.snapshots("new")) == 0
        assert a.title == "card"

    def test_mutable_values_copied_per_instance(self, defined):
        a, b = new(defined), new(defined)
        defined.define("x-card", make_v2())
        snapshots = self.snapshots(["x"])

        assert defined.finalize_patch("x-card", snapshots) == 2
        a.title.append("y")

        assert b.title == ["x"]
        assert snapshots[0].value == ["x"]

    def test_absent_values_and_other_owners_skipped(self, defined):
        a = new(defined)
        a.title = "mine"
        defined.define("x-card", make_v2())
        snapshots = [
            PropertySnapshot(name="title", owner="Card"),
            PropertySnapshot(name="title", value="x", has_value=True, owner="Other"),
        ]
        assert defined.finalize_patch("x-card", snapshots) == 0
        assert a.title == "mine"


class TestAcceptance:
    """Test the acceptance hook body."""

    class Hot:
        def __init__(self):
            self.reasons = []

        def invalidate(self, reason):
            self.reasons.append(reason)

    def test_absorbed_update(self, defined, events):
        hot = self.Hot()
        assert defined.acceptor("/project/card.py", hot)() is True
        assert hot.reasons == []
        assert events[-1].type == HotSwapEventType.ACCEPTED

    def test_escalation_requests_full_reload(self, defined, events):
        hot = self.Hot()
        defined.needs_reload = True
        defined.reload_reason = "[hotswap] Full reload required for <x-card>:\n  - x"

        assert defined.acceptor("/project/card.py", hot)(None) is False
        assert hot.reasons == ["[hotswap] Full reload required for <x-card>:\n  - x"]
        assert not defined.needs_reload
        assert defined.reload_reason == ""
        assert events[-1].type == HotSwapEventType.FULL_RELOAD_REQUESTED


class TestStats:
    """Test statistics."""

    def test_stats(self, defined):
        a = new(defined)
        stats = defined.get_stats()

        assert stats["components"] == 1
        assert stats["instances"] == 1
        assert stats["initialized"]
        assert stats["records"]["x-card"]["version"] == 0

    def test_event_handler_errors_are_contained(self, env):
        def broken(event):
            raise RuntimeError("handler")

        env.on_event(broken)
        bootstrap(env)
        env.define("x-card", make_v1())
        assert env.get_record("x-card") is not None


def make_cell(label, hashable=True):
    class Cell(Element):
        def __init__(self):
            super().__init__()
            self.value = 1

        def __eq__(self, other):
            return isinstance(other, Element) and getattr(other, "value", None) == self.value

        if hashable:
            def __hash__(self):
                return hash(self.value)

        def render(self):
            return label

    return Cell


class TestInstanceTracking:
    """Test that instances are tracked by identity."""

    def test_equal_instances_tracked_separately(self, env):
        bootstrap(env)
        env.define("x-cell", make_cell("v1"))
        a, b = new(env, "x-cell"), new(env, "x-cell")
        record = env.get_record("x-cell")

        assert a == b
        assert record.instance_count == 2

        env.define("x-cell", make_cell("v2"))
        assert (a.rendered, b.rendered) == ("v2", "v2")

        a.disconnected_callback()
        assert record.instance_count == 1
        assert b in record.instances
        assert a not in record.instances

    def test_unhashable_instances(self, env):
        bootstrap(env)
        env.define("x-cell", make_cell("v1", hashable=False))
        a, b = new(env, "x-cell"), new(env, "x-cell")
        record = env.get_record("x-cell")

        assert record.instance_count == 2
        env.define("x-cell", make_cell("v2", hashable=False))
        assert [i.rendered for i in record.instances] == ["v2", "v2"]

        del a, b
        gc.collect()
        assert record.instance_count == 0


class Locked(type):
    """Metaclass exposing read-only class attributes."""

    @property
    def badge(cls):
        return "locked"

    @property
    def finalized(cls):
        return True


class TestClassPatcher:
    """Test per-key failure handling when patching."""

    def test_uncopyable_key_does_not_stop_the_rest(self):
        class Base(Element, metaclass=Locked):
            pass

        class Tile(Base):
            badge = "v2"
            styles = ("v2",)

            def render(self):
                return "v2"

        proxy = Locked("Tile", (Base,), {"finalized": True})
        report = ClassPatcher().patch(proxy, Tile)

        assert "badge" in report.failed
        assert "finalized" in report.failed
        assert proxy.badge == "locked"
        assert proxy.styles == ("v2",)
        assert proxy.__dict__["render"] is Tile.__dict__["render"]
        assert "render" in report.members
