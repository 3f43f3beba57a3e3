from __future__ import annotations

import asyncio
import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from fakes import VIEWER_URL, FakeDetector, make_service

from pdf_takeover_mcp_server.tabs.state import TabPhase
from pdf_takeover_mcp_server.utils.urls import build_viewer_url

PDF_URL = "https://example.com/paper.pdf"
SOURCE_URL = "https://example.com/list"
GIVE_UP_TITLE = "Dark PDF Reader: Automatic takeover failed; the current page was kept."


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class TestDetection(unittest.IsolatedAsyncioTestCase):
    async def test_duplicate_events_check_and_open_once(self) -> None:
        gate = asyncio.Event()
        detector = FakeDetector([PDF_URL], gate=gate)
        h = make_service(detector=detector)
        h.tabs.add(1, PDF_URL)
        controller = h.service.controller

        first = asyncio.ensure_future(controller.on_navigation_committed(1, PDF_URL))
        await _settle()
        await controller.on_tab_updated(1, url=PDF_URL, status="loading")
        await controller.on_navigation_committed(1, PDF_URL)
        gate.set()
        await first
        await controller.wait_idle()

        self.assertEqual(detector.calls, [PDF_URL])
        self.assertEqual(h.tabs.created, [build_viewer_url(VIEWER_URL, PDF_URL, PDF_URL)])
        self.assertIsNone(h.service.tab_state.pending_for(1))
        self.assertEqual(h.service.tab_state.phase(1), TabPhase.OPENED)

    async def test_non_pdf_is_not_queued(self) -> None:
        h = make_service(detector=FakeDetector())
        await h.service.controller.on_navigation_committed(1, "https://arxiv.org/pdf/1234")
        await h.service.controller.wait_idle()

        self.assertEqual(h.tabs.created, [])
        self.assertIsNone(h.service.tab_state.pending_for(1))
        self.assertEqual(h.service.tab_state.phase(1), TabPhase.IDLE)

    async def test_blocked_host_is_never_probed(self) -> None:
        detector = FakeDetector([PDF_URL])
        h = make_service(detector=detector, record={"blacklist": ["example.com"]})

        await h.service.controller.on_navigation_committed(1, PDF_URL)
        await h.service.controller.wait_idle()

        self.assertEqual(detector.calls, [])
        self.assertEqual(h.tabs.created, [])

    async def test_ignored_events(self) -> None:
        detector = FakeDetector([PDF_URL])
        h = make_service(detector=detector)
        controller = h.service.controller

        await controller.on_navigation_committed(-1, PDF_URL)
        await controller.on_navigation_committed(1, PDF_URL, frame_id=3)
        await controller.on_tab_updated(1, url="ftp://example.com/paper.pdf")
        await controller.on_headers_received(
            1, PDF_URL, status_code=200, response_headers=[], frame_type="sub_frame"
        )
        await controller.wait_idle()

        self.assertEqual(detector.calls, [])
        self.assertEqual(h.tabs.created, [])

    async def test_tab_closed_while_probing(self) -> None:
        gate = asyncio.Event()
        h = make_service(detector=FakeDetector([PDF_URL], gate=gate))
        controller = h.service.controller

        task = asyncio.ensure_future(controller.on_navigation_committed(1, PDF_URL))
        await _settle()
        h.service.on_tab_removed(1)
        gate.set()
        await task
        await controller.wait_idle()

        self.assertEqual(h.tabs.created, [])
        self.assertNotIn(1, h.service.tab_state)


class TestHeaders(unittest.IsolatedAsyncioTestCase):
    async def test_content_type_enqueues_without_probe(self) -> None:
        detector = FakeDetector()
        h = make_service(detector=detector)
        url = "https://example.com/download?id=1"

        await h.service.controller.on_headers_received(
            1,
            url,
            status_code=200,
            response_headers=[{"name": "Content-Type", "value": "application/pdf"}],
        )
        await h.service.controller.wait_idle()

        self.assertEqual(detector.calls, [])
        self.assertEqual(h.tabs.created, [build_viewer_url(VIEWER_URL, url, url)])

    async def test_error_status_shows_hint_and_skips(self) -> None:
        h = make_service(detector=FakeDetector([PDF_URL]))

        await h.service.controller.on_headers_received(1, PDF_URL, status_code=404, response_headers=[])
        await h.service.controller.wait_idle()

        self.assertEqual(h.tabs.created, [])
        self.assertEqual(len(h.badge.shown), 1)
        self.assertIn("404", h.badge.shown[0][1])

    async def test_html_response_is_ignored(self) -> None:
        h = make_service(detector=FakeDetector())

        await h.service.controller.on_headers_received(
            1,
            "https://example.com/article",
            status_code=200,
            response_headers=[{"name": "content-type", "value": "text/html"}],
        )

        self.assertIsNone(h.service.tab_state.pending_for(1))


class TestRedirectQueue(unittest.IsolatedAsyncioTestCase):
    async def test_three_failures_give_up_with_one_hint(self) -> None:
        h = make_service(detector=FakeDetector([PDF_URL]))
        h.tabs.fail_creates = 10
        controller = h.service.controller

        await controller.on_navigation_committed(1, PDF_URL)
        await controller.wait_idle()
        self.assertEqual(h.service.tab_state.pending_for(1).attempts, 1)

        for _ in range(3):
            await controller.on_tab_updated(1, status="complete", tab_url=PDF_URL)
            await controller.wait_idle()

        self.assertEqual(len(h.tabs.created), 3)
        self.assertEqual(h.badge.shown, [(1, GIVE_UP_TITLE)])
        self.assertIsNone(h.service.tab_state.pending_for(1))
        self.assertEqual(h.service.tab_state.phase(1), TabPhase.ABANDONED)

    async def test_second_attempt_succeeds_without_hint(self) -> None:
        h = make_service(detector=FakeDetector([PDF_URL]))
        h.tabs.add(1, PDF_URL)
        h.tabs.fail_creates = 1
        controller = h.service.controller

        await controller.on_navigation_committed(1, PDF_URL)
        await controller.wait_idle()
        self.assertIsNotNone(h.service.tab_state.pending_for(1))

        await controller.on_tab_updated(1, status="complete", tab_url=PDF_URL)
        await controller.wait_idle()

        self.assertEqual(len(h.tabs.created), 2)
        self.assertIsNone(h.service.tab_state.pending_for(1))
        self.assertEqual(h.badge.shown, [])
        self.assertEqual(h.tabs.went_back, [1])

    async def test_unconfirmed_viewer_counts_as_failure(self) -> None:
        h = make_service(detector=FakeDetector([PDF_URL]))
        h.tabs.created_url_override = "about:blank"

        await h.service.controller.on_navigation_committed(1, PDF_URL)
        await h.service.controller.wait_idle()

        pending = h.service.tab_state.pending_for(1)
        self.assertIsNotNone(pending)
        self.assertEqual(pending.attempts, 1)

    async def test_recent_redirect_suppresses_until_ttl(self) -> None:
        detector = FakeDetector([PDF_URL])
        h = make_service(detector=detector, redirect_ttl_seconds=8.0)
        h.tabs.add(1, PDF_URL)
        controller = h.service.controller

        await controller.on_navigation_committed(1, PDF_URL)
        await controller.wait_idle()
        await controller.on_navigation_committed(1, PDF_URL)
        await controller.on_headers_received(1, PDF_URL, status_code=200, response_headers=[])
        await controller.wait_idle()

        self.assertEqual(detector.calls, [PDF_URL])
        self.assertEqual(len(h.tabs.created), 1)

        h.clock.current += 9.0
        await controller.on_navigation_committed(1, PDF_URL)
        await controller.wait_idle()

        self.assertEqual(len(detector.calls), 2)
        self.assertEqual(len(h.tabs.created), 2)


class TestTabLifecycle(unittest.IsolatedAsyncioTestCase):
    async def test_tab_close_clears_state_and_timers(self) -> None:
        h = make_service(detector=FakeDetector([PDF_URL]))
        controller = h.service.controller
        await controller.on_navigation_committed(1, SOURCE_URL)
        await controller.on_headers_received(1, PDF_URL, status_code=500, response_headers=[])
        self.assertEqual(len(h.clock.live_timers()), 1)

        h.service.on_tab_removed(1)

        self.assertNotIn(1, h.service.tab_state)
        self.assertEqual(h.clock.live_timers(), [])

    async def test_tab_closed_while_badge_is_shown(self) -> None:
        h = make_service(detector=FakeDetector([PDF_URL]))
        h.badge.gate = asyncio.Event()
        controller = h.service.controller

        task = asyncio.ensure_future(
            controller.on_headers_received(1, PDF_URL, status_code=500, response_headers=[])
        )
        await _settle()
        self.assertEqual(len(h.badge.shown), 1)
        h.service.on_tab_removed(1)
        h.badge.gate.set()
        await task

        self.assertNotIn(1, h.service.tab_state)
        self.assertEqual(h.clock.live_timers(), [])
        self.assertEqual(h.badge.cleared, [1])

    async def test_tab_closed_while_loading_settings(self) -> None:
        h = make_service(detector=FakeDetector([PDF_URL]))
        controller = h.service.controller
        original_get = h.service.store.get

        async def get_then_close():
            settings = await original_get()
            h.service.on_tab_removed(1)
            return settings

        h.service.store.get = get_then_close
        await controller.on_headers_received(1, PDF_URL, status_code=500, response_headers=[])

        self.assertNotIn(1, h.service.tab_state)
        self.assertEqual(h.badge.shown, [])

    async def test_badge_hint_clears_itself(self) -> None:
        h = make_service(detector=FakeDetector(), hint_duration_seconds=5.0)
        await h.service.controller.on_headers_received(1, PDF_URL, status_code=403, response_headers=[])

        h.clock.advance(4.9)
        await _settle()
        self.assertEqual(h.badge.cleared, [])

        h.clock.advance(0.2)
        await _settle()
        self.assertEqual(h.badge.cleared, [1])

    async def test_restore_falls_back_to_source_page(self) -> None:
        h = make_service(detector=FakeDetector([PDF_URL]))
        h.tabs.add(1, PDF_URL)
        h.tabs.go_back_fails = True
        controller = h.service.controller

        await controller.on_navigation_committed(1, SOURCE_URL)
        await controller.on_navigation_committed(1, PDF_URL)
        await controller.wait_idle()

        self.assertEqual(h.tabs.created, [build_viewer_url(VIEWER_URL, PDF_URL, SOURCE_URL)])
        self.assertEqual(h.tabs.updated, [(1, SOURCE_URL)])
        self.assertEqual(h.tabs.removed, [])

    async def test_restore_closes_tab_opened_by_another(self) -> None:
        h = make_service(detector=FakeDetector([PDF_URL]))
        h.tabs.add(1, PDF_URL, opener_tab_id=7)
        h.tabs.go_back_fails = True

        await h.service.controller.on_navigation_committed(1, PDF_URL)
        await h.service.controller.wait_idle()

        self.assertEqual(h.tabs.updated, [])
        self.assertEqual(h.tabs.removed, [1])

    async def test_restore_leaves_tab_that_moved_on(self) -> None:
        h = make_service(detector=FakeDetector([PDF_URL]))
        h.tabs.add(1, "https://example.com/elsewhere", opener_tab_id=7)

        await h.service.controller.on_navigation_committed(1, PDF_URL)
        await h.service.controller.wait_idle()

        self.assertEqual(len(h.tabs.created), 1)
        self.assertEqual(h.tabs.went_back, [])
        self.assertEqual(h.tabs.removed, [])


if __name__ == "__main__":
    unittest.main()
