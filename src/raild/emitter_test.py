import unittest
from unittest.mock import Mock, call

from hamcrest import assert_that, is_, empty, contains_exactly, calling, raises, has_length

from raild.context import ContextManager, ContextClass, INTERNAL_CONTEXT
from raild.emitter import EventEmitter


class EventEmitterTest(unittest.TestCase):

    def setUp(self):
        self.contexts = ContextManager()
        self.contexts.allocate(INTERNAL_CONTEXT, ContextClass.INTERNAL)
        self.contexts.allocate(1, ContextClass.API_CLIENT)
        self.contexts.allocate(2, ContextClass.API_CLIENT)
        self.sut = EventEmitter(self.contexts)

    def register_as(self, ctx, event, fn, persistent=False, once=False):
        with self.contexts.running_as(ctx):
            if once:
                self.sut.once(event, fn, persistent)
            else:
                self.sut.on(event, fn, persistent)

    def test_emit_without_handlers(self):
        self.sut.emit("Nothing", 1, 2)

    def test_handlers_called_in_registration_order(self):
        order = Mock()
        self.sut.on("Ready", order.first)
        self.sut.on("Ready", order.second)
        self.sut.on("Other", order.other)
        self.sut.emit("Ready", 1, True)
        assert_that(order.mock_calls, is_([call.first(1, True), call.second(1, True)]))

    def test_handler_runs_as_owning_context(self):
        seen = []
        self.register_as(1, "Ready", lambda: seen.append(self.contexts.current))
        self.register_as(2, "Ready", lambda: seen.append(self.contexts.current))
        self.sut.emit("Ready")
        assert_that(seen, is_([1, 2]))
        assert_that(self.contexts.current, is_(INTERNAL_CONTEXT))
        assert_that(self.contexts.depth, is_(0))

    def test_failing_handler_does_not_stop_others(self):
        after = Mock()
        self.sut.on("Ready", Mock(side_effect=RuntimeError("broken script")))
        self.sut.on("Ready", after)
        with self.assertLogs('raild.emitter', level='ERROR'):
            self.sut.emit("Ready")
        after.assert_called_once_with()
        assert_that(self.contexts.depth, is_(0))

    def test_once_handler_removed_after_firing(self):
        first = Mock()
        once = Mock()
        last = Mock()
        self.sut.on("Ready", first)
        self.sut.once("Ready", once)
        self.sut.on("Ready", last)
        self.sut.emit("Ready")
        self.sut.emit("Ready")
        assert_that(first.call_count, is_(2))
        assert_that(once.call_count, is_(1))
        assert_that(last.call_count, is_(2))

    def test_adjacent_once_handlers_each_fire_once(self):
        a = Mock()
        b = Mock()
        self.sut.once("Ready", a)
        self.sut.once("Ready", b)
        self.sut.emit("Ready")
        self.sut.emit("Ready")
        a.assert_called_once_with()
        b.assert_called_once_with()
        assert_that(self.sut.handlers("Ready"), is_(empty()))

    def test_nested_emit_restores_contexts(self):
        seen = []

        def outer():
            seen.append(self.contexts.current)
            self.sut.emit("Inner")
            seen.append(self.contexts.current)

        self.register_as(1, "Outer", outer)
        self.register_as(2, "Inner", lambda: seen.append(self.contexts.current))
        self.sut.emit("Outer")
        assert_that(seen, is_([1, 2, 1]))
        assert_that(self.contexts.current, is_(INTERNAL_CONTEXT))

    def test_off_by_callback(self):
        fn = Mock()
        other = Mock()
        self.register_as(1, "Ready", fn)
        self.register_as(2, "Ready", other)
        self.sut.off("Ready", fn)
        self.sut.emit("Ready")
        fn.assert_not_called()
        other.assert_called_once_with()

    def test_off_without_callback_removes_current_context_handlers(self):
        mine = Mock()
        theirs = Mock()
        self.register_as(1, "Ready", mine)
        self.register_as(2, "Ready", theirs)
        with self.contexts.running_as(1):
            self.sut.off("Ready")
        self.sut.emit("Ready")
        mine.assert_not_called()
        theirs.assert_called_once_with()

    def test_off_unknown_event(self):
        self.sut.off("Unknown")

    def test_handler_removed_during_emit_still_runs_in_that_pass(self):
        second = Mock()

        def first():
            self.sut.off("Ready", second)

        self.sut.on("Ready", first)
        self.sut.on("Ready", second)
        self.sut.emit("Ready")
        second.assert_called_once_with()
        self.sut.emit("Ready")
        second.assert_called_once_with()

    def test_non_callable_handler_rejected(self):
        assert_that(calling(self.sut.on).with_args("Ready", 42), raises(TypeError))

    def test_teardown_drops_and_promotes(self):
        dropped = Mock()
        kept = Mock()
        other = Mock()
        self.register_as(1, "Ready", dropped)
        self.register_as(1, "Ready", kept, persistent=True)
        self.register_as(2, "Ready", other)
        self.contexts.deallocate(1)

        handlers = self.sut.handlers("Ready")
        assert_that([h.fn for h in handlers], contains_exactly(kept, other))
        assert_that(handlers[0].ctx, is_(INTERNAL_CONTEXT))

        seen = []
        kept.side_effect = lambda: seen.append(self.contexts.current)
        self.sut.emit("Ready")
        dropped.assert_not_called()
        assert_that(seen, is_([INTERNAL_CONTEXT]))

    def test_close_releases_teardown_hook(self):
        fn = Mock()
        self.register_as(1, "Ready", fn)
        self.sut.close()
        self.contexts.deallocate(1)
        assert_that(self.sut.events(), is_(empty()))

    def test_teardown_hook_held_only_while_handlers_exist(self):
        fn = Mock()
        assert_that(self.contexts.teardown_hooks(), is_(empty()))
        self.register_as(1, "Ready", fn)
        self.register_as(1, "Power", fn)
        assert_that(self.contexts.teardown_hooks(), has_length(1))
        self.contexts.deallocate(1)
        assert_that(self.contexts.teardown_hooks(), is_(empty()))

    def test_persistent_handler_keeps_teardown_hook(self):
        self.register_as(1, "Ready", Mock(), persistent=True)
        self.contexts.deallocate(1)
        assert_that(self.contexts.teardown_hooks(), has_length(1))
        self.sut.off("Ready")
        assert_that(self.contexts.teardown_hooks(), is_(empty()))

    def test_once_handler_releases_teardown_hook(self):
        self.sut.once("Ready", Mock())
        self.sut.emit("Ready")
        assert_that(self.contexts.teardown_hooks(), is_(empty()))

    def test_once_handler_emitting_its_own_event_runs_once(self):
        fn = Mock(side_effect=lambda: self.sut.emit("Ready"))
        self.sut.once("Ready", fn)
        self.sut.emit("Ready")
        fn.assert_called_once_with()
        assert_that(self.sut.handlers("Ready"), is_(empty()))

    def test_once_handler_consumed_by_nested_emit_not_rerun(self):
        later = Mock()
        nested = []

        def first():
            if not nested:
                nested.append(True)
                self.sut.emit("Ready")
        self.sut.on("Ready", first)
        self.sut.once("Ready", later)
        self.sut.emit("Ready")
        later.assert_called_once_with()

    def test_events_lists_names_with_handlers(self):
        self.sut.on("A", Mock())
        self.sut.on("B", Mock())
        self.sut.off("B")
        assert_that(self.sut.events(), is_(("A",)))


if __name__ == '__main__':  # pragma no cover
    unittest.main()
