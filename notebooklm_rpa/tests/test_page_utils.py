import unittest
from unittest import mock

from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from fakes import FakeClock, FakeElement, FakePage, make_container

from notebooklm_rpa.utils import page_utils
from notebooklm_rpa.utils.browser_errors import (
    PageUnresponsiveError,
    PollGuardExceededError,
    RecoverableBrowserError,
)
from notebooklm_rpa.utils.page_utils import (
    compute_max_polls,
    count_response_elements,
    extract_latest_candidate,
    extract_latest_text,
    snapshot_all_responses,
    snapshot_latest_response,
    wait_for_latest_answer,
    wait_for_latest_answer_with_sources,
)
from notebooklm_rpa.utils.text_utils import KnownResponses


class PageTestCase(unittest.TestCase):
    clock_kwargs = {}

    def setUp(self):
        self.clock = FakeClock(**self.clock_kwargs)
        patcher = mock.patch.object(page_utils, "time", self.clock)
        patcher.start()
        self.addCleanup(patcher.stop)


class TestExtractLatestText(PageTestCase):
    def test_first_new_container_wins(self):
        page = FakePage(self.clock)
        page.containers.extend([make_container("Old"), make_container("New one"), make_container("Newer")])
        self.assertEqual(extract_latest_text(page, KnownResponses(["Old"])), "New one")

    def test_early_exit_when_no_new_container_possible(self):
        page = FakePage(self.clock)
        first, second = make_container("A"), make_container("B")
        page.containers.extend([first, second])
        page.js_result = "should not be used"

        result = extract_latest_text(page, KnownResponses(["X", "Y"]))

        self.assertIsNone(result)
        text_elements = [c.children[".message-text-content"][0] for c in (first, second)]
        self.assertEqual([el.reads for el in text_elements], [0, 0])
        self.assertEqual(page.evaluations, 0)

    def test_no_new_text_does_not_fall_through(self):
        page = FakePage(self.clock, js_result="Stale text")
        page.containers.extend([make_container("A"), make_container("A")])
        page.elements["[data-author='assistant']"] = [FakeElement("Fallback text")]

        self.assertIsNone(extract_latest_text(page, KnownResponses(["A"])))
        self.assertEqual(page.evaluations, 0)

    def test_candidate_records_its_strategy(self):
        page = FakePage(self.clock)
        page.containers.extend([make_container("Old"), make_container("New one")])
        candidate = extract_latest_candidate(page, KnownResponses(["Old"]))
        self.assertEqual(candidate.source, ".to-user-container[1]")
        self.assertTrue(candidate.from_container)

        page = FakePage(self.clock, js_result="Last visible message")
        candidate = extract_latest_candidate(page, KnownResponses())
        self.assertEqual(candidate.source, "js-fallback")
        self.assertFalse(candidate.from_container)

    def test_texts_seen_outside_containers_do_not_trigger_early_exit(self):
        page = FakePage(self.clock)
        page.containers.append(make_container("First answer"))
        known = KnownResponses()
        known.add_text("Echoed question", from_container=False)

        self.assertEqual(extract_latest_text(page, known), "First answer")

    def test_fallback_prefers_enclosing_message(self):
        page = FakePage(self.clock)
        message = FakeElement("Full message text with every paragraph")
        page.elements["[data-message-author='assistant']"] = [
            FakeElement("fragment", closest=message),
        ]
        self.assertEqual(extract_latest_text(page, KnownResponses()), "Full message text with every paragraph")

    def test_fallback_uses_leaf_when_no_ancestor(self):
        page = FakePage(self.clock)
        page.elements["[data-testid*='response']"] = [FakeElement("  Leaf text  ")]
        self.assertEqual(extract_latest_text(page, KnownResponses()), "Leaf text")

    def test_fallback_skips_known_text(self):
        page = FakePage(self.clock)
        page.elements["[data-author='assistant']"] = [FakeElement("Old"), FakeElement("Fresh")]
        self.assertEqual(extract_latest_text(page, KnownResponses(["Old"])), "Fresh")

    def test_fallback_used_when_primary_query_fails(self):
        page = FakePage(self.clock)
        page.query_errors[".to-user-container"] = Exception("Unexpected token")
        page.elements["[data-author='assistant']"] = [FakeElement("Fallback answer")]
        self.assertEqual(extract_latest_text(page, KnownResponses()), "Fallback answer")

    def test_js_fallback_is_last_resort(self):
        page = FakePage(self.clock, js_result="  Last visible message  ")
        self.assertEqual(extract_latest_text(page, KnownResponses()), "Last visible message")
        self.assertEqual(page.evaluations, 1)

    def test_js_fallback_errors_are_ignored(self):
        page = FakePage(self.clock, js_result=Exception("Cannot read properties of null"))
        self.assertIsNone(extract_latest_text(page, KnownResponses()))

    def test_transient_container_error_is_skipped(self):
        page = FakePage(self.clock)
        page.containers.extend([
            make_container("broken", error=Exception("Element is not attached to the DOM")),
            make_container("Readable answer"),
        ])
        self.assertEqual(extract_latest_text(page, KnownResponses()), "Readable answer")

    def test_recoverable_container_error_aborts(self):
        page = FakePage(self.clock)
        page.containers.append(
            make_container("x", error=Exception("Target page, context or browser has been closed"))
        )
        with self.assertRaises(RecoverableBrowserError) as ctx:
            extract_latest_text(page, KnownResponses())
        self.assertTrue(str(ctx.exception).startswith(
            "Browser page unavailable while reading response container:"
        ))

    def test_recoverable_fallback_query_error_aborts(self):
        page = FakePage(self.clock)
        page.query_errors["[data-message-author='bot']"] = Exception("Browser has been closed")
        with self.assertRaises(RecoverableBrowserError) as ctx:
            extract_latest_text(page, KnownResponses())
        self.assertIn("[data-message-author='bot']", str(ctx.exception))


class TestSnapshots(PageTestCase):
    def test_snapshot_all_responses(self):
        page = FakePage(self.clock)
        page.containers.extend([
            make_container(" First answer "),
            make_container("   "),
            make_container("bad", error=Exception("detached")),
            make_container("Second answer"),
        ])
        self.assertEqual(snapshot_all_responses(page), ["First answer", "Second answer"])

    def test_snapshot_all_responses_survives_query_failure(self):
        page = FakePage(self.clock)
        page.query_errors[".to-user-container"] = Exception("boom")
        self.assertEqual(snapshot_all_responses(page), [])

    def test_snapshot_latest_response(self):
        page = FakePage(self.clock)
        page.containers.extend([make_container("First"), make_container("Second")])
        self.assertEqual(snapshot_latest_response(page), "First")

    def test_count_response_elements_uses_first_matching_selector(self):
        page = FakePage(self.clock)
        page.elements[".to-user-container .message-text-content"] = [
            FakeElement("a"), FakeElement("b", visible=False), FakeElement("c"),
        ]
        page.elements["[data-author='assistant']"] = [FakeElement("d")]
        self.assertEqual(count_response_elements(page), 2)

    def test_count_response_elements_falls_through_hidden_matches(self):
        page = FakePage(self.clock)
        page.elements["[data-message-author='bot']"] = [FakeElement("a", visible=False)]
        page.elements["[data-author='assistant']"] = [FakeElement("d")]
        self.assertEqual(count_response_elements(page), 1)


class TestWaitForLatestAnswer(PageTestCase):
    def test_stable_answer_returned_after_three_polls(self):
        page = FakePage(self.clock)
        page.containers.append(make_container("Paris is the capital of France."))

        answer = wait_for_latest_answer(page, timeout_ms=10000, poll_interval_ms=1000)

        self.assertEqual(answer, "Paris is the capital of France.")
        self.assertEqual(page.waits, 2)

    def test_streaming_text_returns_final_version(self):
        text_element = FakeElement("Par")
        page = FakePage(self.clock)
        page.containers.append(FakeElement(children={".message-text-content": [text_element]}))
        frames = ["Par", "Paris is", "Paris is the capital."]

        def stream(p):
            if p.waits < len(frames):
                text_element.text = frames[p.waits]

        page.on_wait = stream

        answer = wait_for_latest_answer(page, timeout_ms=30000, poll_interval_ms=1000)

        self.assertEqual(answer, "Paris is the capital.")
        # 3 changing polls + 2 more identical ones
        self.assertEqual(page.waits, 4)

    def test_change_resets_stability(self):
        text_element = FakeElement("A")
        page = FakePage(self.clock)
        page.containers.append(FakeElement(children={".message-text-content": [text_element]}))
        sequence = {1: "A", 2: "AB", 3: "AB", 4: "ABC"}

        def stream(p):
            text_element.text = sequence.get(p.waits, text_element.text)

        page.on_wait = stream

        answer = wait_for_latest_answer(page, timeout_ms=30000, poll_interval_ms=1000)

        self.assertEqual(answer, "ABC")
        self.assertEqual(page.waits, 6)

    def test_question_echo_is_ignored(self):
        question = "What is the capital of France?"
        page = FakePage(self.clock)
        page.containers.append(make_container(question))

        def answer_arrives(p):
            if p.waits == 3 and len(p.containers) == 1:
                p.containers.append(make_container("Paris."))

        page.on_wait = answer_arrives

        answer = wait_for_latest_answer(page, question=question, timeout_ms=20000, poll_interval_ms=1000)

        self.assertEqual(answer, "Paris.")

    def test_question_echo_matches_case_and_whitespace_insensitively(self):
        page = FakePage(self.clock)
        page.containers.append(make_container("what is  the capital\nof France?"))

        answer = wait_for_latest_answer(
            page, question="What is the capital of France?", timeout_ms=5000, poll_interval_ms=1000
        )

        self.assertIsNone(answer)

    def test_echo_outside_containers_does_not_hide_first_answer(self):
        question = "What is the capital of France?"
        page = FakePage(self.clock, js_result=question)

        def answer_arrives(p):
            if p.waits == 2:
                p.containers.append(make_container("Paris is the capital of France."))

        page.on_wait = answer_arrives

        answer = wait_for_latest_answer(page, question=question, timeout_ms=20000, poll_interval_ms=1000)

        self.assertEqual(answer, "Paris is the capital of France.")

    def test_known_texts_never_returned(self):
        page = FakePage(self.clock)
        page.containers.append(make_container("Old answer"))

        answer = wait_for_latest_answer(page, timeout_ms=5000, poll_interval_ms=1000, ignore_texts=["Old answer"])

        self.assertIsNone(answer)

    def test_known_text_from_js_fallback_not_returned(self):
        page = FakePage(self.clock, js_result="Old answer")

        answer = wait_for_latest_answer(page, timeout_ms=5000, poll_interval_ms=1000, ignore_texts=["Old answer"])

        self.assertIsNone(answer)
        self.assertGreater(page.evaluations, 0)

    def test_timeout_without_any_container_returns_none(self):
        page = FakePage(self.clock)

        answer = wait_for_latest_answer(page, timeout_ms=2000, poll_interval_ms=1000)

        self.assertIsNone(answer)
        self.assertEqual(page.waits, 2)

    def test_thinking_indicator_defers_extraction(self):
        thinking = FakeElement("Thinking...")
        page = FakePage(self.clock)
        page.elements["div.thinking-message"] = [thinking]
        container = make_container("Answer")
        page.containers.append(container)

        def stop_thinking(p):
            if p.waits == 3:
                thinking.visible = False

        page.on_wait = stop_thinking

        answer = wait_for_latest_answer(page, timeout_ms=20000, poll_interval_ms=1000)

        self.assertEqual(answer, "Answer")
        self.assertEqual(page.waits, 5)

    def test_thinking_forever_times_out(self):
        page = FakePage(self.clock)
        page.elements["div.thinking-message"] = [FakeElement("Thinking...")]
        page.containers.append(make_container("Answer"))

        self.assertIsNone(wait_for_latest_answer(page, timeout_ms=3000, poll_interval_ms=1000))

    def test_poll_interval_has_a_floor(self):
        page = FakePage(self.clock)

        wait_for_latest_answer(page, timeout_ms=1000, poll_interval_ms=10)

        self.assertEqual(set(page.wait_args), {100})

    def test_periodic_health_check(self):
        text_element = FakeElement("0")
        page = FakePage(self.clock)
        page.containers.append(FakeElement(children={".message-text-content": [text_element]}))

        def keep_streaming(p):
            text_element.text = str(p.waits)

        page.on_wait = keep_streaming

        self.assertIsNone(wait_for_latest_answer(page, timeout_ms=25000, poll_interval_ms=1000))
        self.assertEqual(page.probes, 2)

    def test_failed_health_check_raises(self):
        text_element = FakeElement("0")
        page = FakePage(self.clock)
        page.containers.append(FakeElement(children={".message-text-content": [text_element]}))
        page.probe_error = PlaywrightTimeoutError("Timeout 2000ms exceeded.")

        def keep_streaming(p):
            text_element.text = str(p.waits)

        page.on_wait = keep_streaming

        with self.assertRaises(PageUnresponsiveError) as ctx:
            wait_for_latest_answer(page, timeout_ms=60000, poll_interval_ms=1000)
        self.assertIn("health check timed out after 2000ms", str(ctx.exception))
        self.assertEqual(page.waits, 9)

    def test_recoverable_error_during_wait_aborts(self):
        page = FakePage(self.clock)
        page.wait_error = Exception("Target page, context or browser has been closed")

        with self.assertRaises(RecoverableBrowserError) as ctx:
            wait_for_latest_answer(page, timeout_ms=5000, poll_interval_ms=1000)
        self.assertIn("during poll wait", str(ctx.exception))

    def test_with_sources(self):
        page = FakePage(self.clock)
        page.containers.append(make_container(
            "Paris is the capital of France.",
            sources={"links": [{"href": "https://en.wikipedia.org/wiki/Paris", "text": "Paris"}]},
        ))

        result = wait_for_latest_answer_with_sources(page, timeout_ms=10000, poll_interval_ms=1000)

        self.assertEqual(result.answer, "Paris is the capital of France.")
        self.assertEqual([s.url for s in result.sources], ["https://en.wikipedia.org/wiki/Paris"])

    def test_with_sources_on_timeout(self):
        page = FakePage(self.clock)

        result = wait_for_latest_answer_with_sources(page, timeout_ms=2000, poll_interval_ms=1000)

        self.assertIsNone(result.answer)
        self.assertEqual(result.sources, [])


class TestEarlyWaits(PageTestCase):
    """Waits that return immediately while real time moves on via sleep."""

    def test_fast_polls_force_a_liveness_probe(self):
        page = FakePage(self.clock, wait_advances=False)

        self.assertIsNone(wait_for_latest_answer(page, timeout_ms=5000, poll_interval_ms=1000))
        self.assertEqual(page.waits, 5)
        self.assertEqual(page.probes, 1)
        self.assertEqual(self.clock.sleeps, [1.0] * 5)


class TestPollGuard(PageTestCase):
    """The clock never moves: waits and sleeps both return instantly."""

    clock_kwargs = {"advance_on_sleep": False}

    def test_compute_max_polls(self):
        self.assertEqual(compute_max_polls(1000, 1000), 120)
        self.assertEqual(compute_max_polls(600000, 25000), 120)
        self.assertEqual(compute_max_polls(120000, 1000), 600)

    def test_guard_fires_before_deadline(self):
        page = FakePage(self.clock, wait_advances=False)

        with self.assertRaises(PollGuardExceededError) as ctx:
            wait_for_latest_answer(page, timeout_ms=600000, poll_interval_ms=25000)

        self.assertIn("Polling guard triggered after 120 polls", str(ctx.exception))
        self.assertEqual(page.waits, 120)


if __name__ == "__main__":
    unittest.main()
