import asyncio
import threading

import pytest

from blogstate.backend import BackendError
from blogstate.models import Post
from blogstate.optimistic import LikeController, ToggleInProgressError


def _run(coro):
    return asyncio.run(coro)


class TestLikeController:
    def test_track_seeds_from_post_and_ledger(self, controller, ledger):
        ledger.set_liked(3, True)
        view = controller.track(Post(id=3, thumbs=9))
        assert view.liked is True and view.thumbs == 9 and view.pending is False

    def test_toggle_untracked_post(self, controller):
        with pytest.raises(KeyError):
            _run(controller.toggle(1))

    def test_like_then_unlike_round_trip(self, controller, data_store, ledger):
        post = data_store.add_post(42, thumbs=5)
        controller.track(post)

        view = _run(controller.toggle(42))
        assert (view.liked, view.thumbs, view.pending) == (True, 6, False)
        assert ledger.is_liked(42) is True

        view = _run(controller.toggle(42))
        assert (view.liked, view.thumbs, view.pending) == (False, 5, False)
        assert ledger.is_liked(42) is False
        assert data_store.posts[42].thumbs == 5

    def test_failed_like_rolls_back(self, controller, data_store, ledger):
        post = data_store.add_post(7, thumbs=2)
        controller.track(post)
        data_store.like_error = BackendError("network down")

        view = _run(controller.toggle(7))
        assert view.liked is False
        assert view.thumbs == 2
        assert view.pending is False
        assert view.error == "network down"
        assert ledger.is_liked(7) is False
        assert ledger.all() == []

    def test_failed_unlike_rolls_back(self, controller, data_store, ledger):
        post = data_store.add_post(8, thumbs=4)
        ledger.set_liked(8, True)
        controller.track(post)
        data_store.like_error = BackendError("boom")

        view = _run(controller.toggle(8))
        assert view.liked is True
        assert view.thumbs == 4
        assert ledger.is_liked(8) is True

    def test_error_cleared_on_next_success(self, controller, data_store):
        controller.track(data_store.add_post(1, thumbs=0))
        data_store.like_error = BackendError("once")
        _run(controller.toggle(1))
        data_store.like_error = None
        view = _run(controller.toggle(1))
        assert view.error is None and view.liked is True and view.thumbs == 1

    def test_visible_state_flips_before_store_answers(self, controller, data_store, ledger):
        controller.track(data_store.add_post(5, thumbs=1))
        data_store.like_gate = threading.Event()

        async def scenario():
            task = asyncio.create_task(controller.toggle(5))
            while not data_store.like_started.is_set():
                await asyncio.sleep(0.01)
            view = controller.view(5)
            during = (view.liked, view.pending, view.thumbs, ledger.is_liked(5))
            with pytest.raises(ToggleInProgressError):
                await controller.toggle(5)
            data_store.like_gate.set()
            return during, await task

        during, settled = _run(scenario())
        assert during == (True, True, 1, False)
        assert (settled.liked, settled.pending, settled.thumbs) == (True, False, 2)
        assert data_store.calls["mutate_like"] == 1

    def test_timeout_is_treated_as_failure(self, data_store, ledger):
        controller = LikeController(data_store, ledger, timeout=0.05)
        controller.track(data_store.add_post(9, thumbs=3))
        data_store.like_gate = threading.Event()

        async def scenario():
            try:
                return await controller.toggle(9)
            finally:
                data_store.like_gate.set()

        view = _run(scenario())
        assert view.liked is False and view.pending is False and view.thumbs == 3
        assert view.error == "TimeoutError"
        assert ledger.is_liked(9) is False

    def test_success_patches_cached_post(self, controller, data_store, cache):
        post = data_store.add_post(11, thumbs=0)
        cache.set_posts([post])
        controller.track(post)
        _run(controller.toggle(11))
        assert cache.get_posts()[0].thumbs == 1

    def test_track_refreshes_idle_view(self, controller, data_store):
        controller.track(Post(id=2, thumbs=1))
        view = controller.track(Post(id=2, thumbs=10))
        assert view.thumbs == 10

    def test_retain_drops_views_of_deleted_posts(self, controller, data_store):
        data_store.add_post(1)
        data_store.add_post(2)
        controller.track(Post(id=1))
        controller.track(Post(id=2))
        controller.retain([2])
        assert controller.view(1) is None
        assert controller.view(2) is not None

    def test_retain_keeps_pending_views(self, controller, data_store):
        data_store.add_post(5)
        controller.track(Post(id=5)).pending = True
        controller.retain([])
        assert controller.is_pending(5)
