from __future__ import annotations

import datetime as dt
import io
import json
import tempfile
import unittest
from contextlib import redirect_stderr
from pathlib import Path

from core.pipeline import ResultEnvelope
from meetings.config import PipelineSettings
from meetings.errors import FatalPipelineError
from meetings.model import ExtractedFields, SourceSpec
from meetings.pipeline import (
    BuildOutcome,
    BuildProcessor,
    BuildProducer,
    BuildRequest,
    BuildRequestConsumer,
    OptimizeProcessor,
    OptimizeProducer,
    OptimizeRequest,
    OptimizeRequestConsumer,
    build_schedule,
    compact_payload,
    full_payload,
    optimize_artifact,
    summarize,
    summary_payload,
    write_artifacts,
)
from tests.fixtures import FakeLoader, capture_stdout, ics_calendar, ics_event, make_raw_meeting

NOW = dt.datetime(2025, 8, 3, 9, 0)


def _settings(*sources: SourceSpec, **kwargs) -> PipelineSettings:
    return PipelineSettings(sources=list(sources), **kwargs)


class TempDirTestCase(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.dir = Path(self._td.name)

    def tearDown(self):
        self._td.cleanup()

    def write(self, name: str, text: str) -> str:
        p = self.dir / name
        p.write_text(text, encoding="utf-8")
        return str(p)


class BuildScheduleTests(TempDirTestCase):
    def test_single_zoom_event_end_to_end(self):
        start = (NOW + dt.timedelta(days=10)).strftime("%Y%m%dT%H%M%S")
        path = self.write("rd.ics", ics_calendar(
            ics_event("once", "Day of Practice", start, location="https://zoom.us/j/88812345678"),
        ))
        spec = SourceSpec(name="recovery-dharma", location=path)
        result = build_schedule([spec], _settings(spec), NOW)
        (occ,) = result.occurrences
        self.assertTrue(occ.is_virtual)
        self.assertEqual(occ.conference_id, "88812345678")
        self.assertEqual(occ.start, NOW + dt.timedelta(days=10))
        self.assertEqual(result.reports[0].status, "success")
        self.assertEqual(result.window_end, NOW + dt.timedelta(days=30))

    def test_corrupt_source_does_not_block_others(self):
        good = self.write("rd.ics", ics_calendar(
            ics_event("tue", "Sangha", "20250701T190000", rrule="FREQ=WEEKLY;BYDAY=TU"),
        ))
        bad = self.write("aa.json", '[{"id": "x", ')
        specs = [SourceSpec(name="aa-meetings", location=bad), SourceSpec(name="recovery-dharma", location=good)]
        with self.assertLogs("meetings.pipeline", level="ERROR"):
            result = build_schedule(specs, _settings(*specs), NOW)
        statuses = {r.name: r.status for r in result.reports}
        self.assertEqual(statuses, {"aa-meetings": "error", "recovery-dharma": "success"})
        self.assertIn("corrupt JSON", result.reports[0].error)
        self.assertEqual(len(result.occurrences), 4)

    def test_deeply_nested_json_does_not_block_others(self):
        good = self.write("aa.json", '[{"id": "a", "start": "20250805T190000"}]')
        deep = self.write("deep.json", "[" * 200000 + "]" * 200000)
        specs = [SourceSpec(name="deep", location=deep), SourceSpec(name="aa-meetings", location=good)]
        with self.assertLogs("meetings.pipeline", level="ERROR"):
            result = build_schedule(specs, _settings(*specs), NOW)
        statuses = {r.name: r.status for r in result.reports}
        self.assertEqual(statuses, {"deep": "error", "aa-meetings": "success"})
        self.assertIn("corrupt JSON", result.reports[0].error)
        self.assertEqual(len(result.occurrences), 1)

    def test_truncated_ics_is_an_error_not_no_data(self):
        good = self.write("aa.json", '[{"id": "a", "start": "20250805T190000"}]')
        cut = self.write(
            "rd.ics",
            "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nBEGIN:VEVENT\r\nUID:a\r\nSUMMARY:Tue\r\nDTSTART:2025080",
        )
        specs = [SourceSpec(name="aa-meetings", location=good), SourceSpec(name="recovery-dharma", location=cut)]
        with self.assertLogs("meetings.pipeline", level="ERROR"):
            result = build_schedule(specs, _settings(*specs), NOW)
        rd = result.reports[1]
        self.assertEqual(rd.status, "error")
        self.assertIn("unterminated VEVENT", rd.error)
        self.assertEqual(result.reports[0].status, "success")

    def test_unexpected_loader_failure_is_isolated(self):
        meeting = make_raw_meeting("aa-meetings_a")

        def loader(spec):
            if spec.name == "flaky":
                raise RuntimeError("parser blew up")
            return [meeting]

        specs = [SourceSpec(name="flaky", location="f.json"), SourceSpec(name="aa-meetings", location="a.json")]
        with self.assertLogs("meetings.pipeline", level="ERROR"):
            result = build_schedule(specs, _settings(*specs), NOW, loader=loader)
        self.assertEqual(result.reports[0].status, "error")
        self.assertIn("RuntimeError: parser blew up", result.reports[0].error)
        self.assertEqual(result.reports[1].status, "success")

    def test_empty_source_is_no_data(self):
        empty = self.write("empty.json", "[]")
        spec = SourceSpec(name="na-meetings", location=empty)
        result = build_schedule([spec], _settings(spec), NOW)
        self.assertEqual(result.occurrences, [])
        self.assertEqual(result.reports[0].status, "no_data")

    def test_all_sources_failing_is_fatal(self):
        specs = [SourceSpec(name="a", location="a.json"), SourceSpec(name="b", location="b.json")]
        loader = FakeLoader(failures={"a": "gone", "b": "gone"})
        with self.assertLogs("meetings.pipeline", level="ERROR"):
            with self.assertRaises(FatalPipelineError):
                build_schedule(specs, _settings(*specs), NOW, loader=loader)
        self.assertEqual(loader.loaded, ["a", "b"])

    def test_no_sources_is_fatal(self):
        with self.assertRaises(FatalPipelineError):
            build_schedule([], _settings(), NOW)

    def test_union_is_sorted_and_windowed(self):
        specs = [SourceSpec(name="a", location="a.json"), SourceSpec(name="b", location="b.json")]
        loader = FakeLoader(meetings={
            "a": [make_raw_meeting(id="a_late", start=NOW + dt.timedelta(days=3))],
            "b": [
                make_raw_meeting(id="b_early", start=NOW + dt.timedelta(days=1)),
                make_raw_meeting(id="b_far", start=NOW + dt.timedelta(days=45)),
            ],
        })
        result = build_schedule(specs, _settings(*specs), NOW, loader=loader)
        self.assertEqual([o.id.rsplit("_", 1)[0] for o in result.occurrences], ["b_early", "a_late"])
        self.assertEqual([r.occurrences for r in result.reports], [1, 2])

    def test_per_source_cap(self):
        weekly = make_raw_meeting(start=dt.datetime(2025, 7, 1, 19, 0), byday=["MO", "TU", "WE", "TH", "FR"])
        specs = [SourceSpec(name="a", location="a.json", max_occurrences=2)]
        result = build_schedule(specs, _settings(*specs), NOW, loader=FakeLoader(meetings={"a": [weekly]}))
        self.assertEqual(len(result.occurrences), 2)

    def test_repeated_runs_are_identical(self):
        path = self.write("rd.ics", ics_calendar(
            ics_event("tue", "Sangha", "20250701T190000", rrule="FREQ=WEEKLY;BYDAY=TU,SA"),
        ))
        spec = SourceSpec(name="recovery-dharma", location=path)
        first = full_payload(build_schedule([spec], _settings(spec), NOW).occurrences)
        second = full_payload(build_schedule([spec], _settings(spec), NOW).occurrences)
        self.assertEqual(first, second)


class SerializationTests(TempDirTestCase):
    def _result(self):
        spec = SourceSpec(name="a", location="a.json")
        virtual = ExtractedFields(is_virtual=True, video_link="https://zoom.us/j/88812345678")
        loader = FakeLoader(meetings={"a": [
            make_raw_meeting(id="a_v", start=NOW + dt.timedelta(days=1), fields=virtual),
            make_raw_meeting(id="a_p", title="P" * 70, start=NOW + dt.timedelta(days=2)),
        ]})
        return build_schedule([spec], _settings(spec), NOW, loader=loader)

    def test_summarize(self):
        self.assertEqual(summarize(self._result().occurrences), {"total": 2, "virtual": 1, "inPerson": 1})

    def test_full_and_compact_payloads(self):
        occs = self._result().occurrences
        full = json.loads(full_payload(occs))
        self.assertEqual(full[0]["videoLink"], "https://zoom.us/j/88812345678")
        self.assertEqual(full[1]["title"], "P" * 70)
        self.assertIn("\n  ", full_payload(occs))
        text = compact_payload(occs)
        self.assertNotIn("\n", text)
        self.assertNotIn(", ", text)
        self.assertEqual(len(json.loads(text)[1]["text"]), 50)

    def test_summary_payload(self):
        doc = json.loads(summary_payload(self._result(), NOW))
        self.assertEqual(doc["generatedAt"], "2025-08-03T09:00:00")
        self.assertEqual(doc["totalMeetings"], 2)
        self.assertEqual(doc["sourcesProcessed"], 1)
        self.assertEqual(doc["statistics"]["virtual"], 1)
        self.assertEqual(doc["sources"], [{"name": "a", "status": "success", "meetings": 2, "occurrences": 2}])

    def test_write_artifacts(self):
        full = self.dir / "site" / "full.json"
        compact = self.dir / "site" / "compact.json"
        summary = self.dir / "summary.json"
        sizes = write_artifacts(self._result(), PipelineSettings(), full, compact, summary)
        self.assertEqual(set(sizes), {full, compact, summary})
        self.assertEqual(len(json.loads(full.read_text(encoding="utf-8"))), 2)
        self.assertEqual(sizes[compact], compact.stat().st_size)
        self.assertEqual(sorted(p.name for p in (self.dir / "site").iterdir()), ["compact.json", "full.json"])

    def test_unwritable_output_leaves_nothing_behind(self):
        blocker = self.dir / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        full = self.dir / "full.json"
        compact = blocker / "compact.json"
        with self.assertRaises(FatalPipelineError):
            write_artifacts(self._result(), PipelineSettings(), full, compact)
        self.assertEqual(sorted(p.name for p in self.dir.iterdir()), ["blocker"])

    def test_no_outputs_is_fatal(self):
        with self.assertRaises(FatalPipelineError):
            write_artifacts(self._result(), PipelineSettings(), None, None)

    def test_optimize_artifact(self):
        records = json.loads(full_payload(self._result().occurrences))
        records.append({"id": "broken"})
        with self.assertLogs("meetings.pipeline", level="WARNING"):
            kept = optimize_artifact(records, NOW + dt.timedelta(days=1, hours=1), window_days=7)
        self.assertEqual([o.id.rsplit("_", 1)[0] for o in kept], ["a_p"])


class BuildProcessorTests(TempDirTestCase):
    def _request(self, **kwargs) -> BuildRequest:
        spec = SourceSpec(name="aa-meetings", location="aa.json")
        settings = _settings(spec, full_path=self.dir / "full.json", compact_path=self.dir / "compact.json")
        return BuildRequest(settings=settings, reference_now=NOW, **kwargs)

    def test_success_writes_artifacts(self):
        loader = FakeLoader(meetings={"aa-meetings": [
            make_raw_meeting(id="aa_1", title="Big Book", start=NOW + dt.timedelta(days=1)),
            make_raw_meeting(id="aa_2", title="Step Study", start=NOW + dt.timedelta(days=2)),
        ]})
        env = BuildProcessor(loader=loader).process(BuildRequestConsumer(self._request()).consume())
        self.assertTrue(env.ok())
        self.assertTrue((self.dir / "full.json").exists())
        self.assertTrue((self.dir / "compact.json").exists())
        with capture_stdout() as buf:
            BuildProducer().produce(env)
        out = buf.getvalue()
        self.assertIn("- aa-meetings: success (2 meetings, 2 occurrences)", out)
        self.assertIn("- Total meetings: 2", out)
        self.assertIn("- In-person meetings: 2", out)
        self.assertIn("full.json", out)
        self.assertIn("Next 2 meetings:", out)
        self.assertIn("1. Big Book", out)

    def test_request_paths_override_settings(self):
        loader = FakeLoader(meetings={"aa-meetings": [make_raw_meeting(start=NOW + dt.timedelta(days=1))]})
        request = self._request(full_path=self.dir / "other.json", summary_path=self.dir / "summary.json")
        env = BuildProcessor(loader=loader).process(request)
        self.assertEqual(
            sorted(p.name for p in env.payload.written),
            ["compact.json", "other.json", "summary.json"],
        )

    def test_failure_envelope(self):
        loader = FakeLoader(failures={"aa-meetings": "file not found"})
        with self.assertLogs("meetings.pipeline", level="ERROR"):
            env = BuildProcessor(loader=loader).process(self._request())
        self.assertFalse(env.ok())
        self.assertEqual(env.exit_code(), 1)
        self.assertIn("All 1 sources failed", env.diagnostics["message"])
        self.assertFalse((self.dir / "full.json").exists())

    def test_producer_reports_errors_on_stderr(self):
        err = io.StringIO()
        with capture_stdout() as out, redirect_stderr(err):
            BuildProducer().produce(ResultEnvelope(status="error", diagnostics={"message": "Something went wrong"}))
        self.assertEqual(out.getvalue(), "")
        self.assertIn("Something went wrong", err.getvalue())

    def test_producer_lists_failed_sources(self):
        result = build_schedule(
            [SourceSpec(name="ok", location="x"), SourceSpec(name="bad", location="y")],
            _settings(),
            NOW,
            loader=FakeLoader(meetings={"ok": []}, failures={"bad": "corrupt JSON"}),
        )
        with capture_stdout() as buf:
            BuildProducer().produce(ResultEnvelope(status="success", payload=BuildOutcome(result=result)))
        self.assertIn("- ok: no_data", buf.getvalue())
        self.assertIn("- bad: error (bad: corrupt JSON)", buf.getvalue())


class OptimizeProcessorTests(TempDirTestCase):
    def test_optimize_round(self):
        spec = SourceSpec(name="a", location="a.json")
        loader = FakeLoader(meetings={"a": [
            make_raw_meeting(id="a_1", start=NOW + dt.timedelta(days=1), description_text="d" * 300),
            make_raw_meeting(id="a_2", start=NOW + dt.timedelta(days=20)),
        ]})
        full = self.dir / "full.json"
        full.write_text(full_payload(build_schedule([spec], _settings(spec), NOW, loader=loader).occurrences))
        out = self.dir / "compact.json"
        request = OptimizeRequest(in_path=full, out_path=out, settings=PipelineSettings(window_days=7), reference_now=NOW)
        env = OptimizeProcessor().process(OptimizeRequestConsumer(request).consume())
        self.assertTrue(env.ok())
        self.assertEqual((env.payload.total, env.payload.kept), (2, 1))
        self.assertEqual(len(json.loads(out.read_text())), 1)
        with capture_stdout() as buf:
            OptimizeProducer().produce(env)
        self.assertIn("Optimized to 1 meetings", buf.getvalue())
        self.assertIn("Size reduction:", buf.getvalue())

    def test_missing_or_invalid_input(self):
        out = self.dir / "compact.json"
        bad = Path(self.write("bad.json", '{"not": "a list"}'))
        for in_path in (self.dir / "missing.json", bad):
            with self.subTest(in_path=in_path.name):
                request = OptimizeRequest(in_path=in_path, out_path=out, settings=PipelineSettings(), reference_now=NOW)
                env = OptimizeProcessor().process(request)
                self.assertFalse(env.ok())
        self.assertFalse(out.exists())


if __name__ == "__main__":
    unittest.main()
