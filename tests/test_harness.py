"""
End-to-end tests for the harness.

Runs the full test matrix on a tiny size tier with fake sort
implementations, so each run finishes in a few seconds.
"""

import io
import logging
import os

import pytest

from sortharness.config import HarnessConfig, SizeTier
from sortharness.harness import TEST_MATRIX, Harness, HarnessState, IllegalTransition

TINY = SizeTier(300, 'tiny', 'tiny')


def _config(tmp_path, reference, candidates, **kwargs):
    return HarnessConfig(
        reference_command=reference,
        reference_name='Reference',
        candidates=candidates,
        tiers=[TINY],
        data_dir=str(tmp_path / 'data'),
        scratch_dir=str(tmp_path / 'scratch'),
        timeout_base=30.0,
        **kwargs,
    )


def _outcomes(harness, name):
    return [o for case in harness.aggregator.cases for o in case.outcomes if o.descriptor.name == name]


class TestStateMachine:
    def test_illegal_transition(self, tmp_path, fake_sort):
        harness = Harness(_config(tmp_path, fake_sort(), []))
        with pytest.raises(IllegalTransition):
            harness.transition(HarnessState.REPORTING)

    def test_loop(self, tmp_path, fake_sort):
        harness = Harness(_config(tmp_path, fake_sort(), []))
        for state in (HarnessState.GENERATING_DATA, HarnessState.EXECUTING,
                      HarnessState.VERIFYING, HarnessState.GENERATING_DATA,
                      HarnessState.EXECUTING, HarnessState.VERIFYING,
                      HarnessState.REPORTING, HarnessState.DONE):
            harness.transition(state)
        with pytest.raises(IllegalTransition):
            harness.transition(HarnessState.GENERATING_DATA)


class TestHarnessRun:
    def test_all_pass(self, tmp_path, fake_sort):
        config = _config(
            tmp_path, fake_sort(), [('Good', fake_sort())],
            capture_workers=2,
            json_dir=str(tmp_path / 'reports'),
            markdown_path=str(tmp_path / 'reports' / 'report.md'),
        )
        out = io.StringIO()
        harness = Harness(config, out=out)

        assert harness.run() == 0
        assert harness.state is HarnessState.DONE
        # one outcome per matrix entry plus sorted/unsorted detection
        assert harness.aggregator.summary.passed == len(TEST_MATRIX) + 2
        assert harness.aggregator.summary.failed == 0
        assert list((tmp_path / 'scratch').iterdir()) == []
        assert harness.scratch_dir is None
        assert (tmp_path / 'data' / 'test_mixed_tiny.txt').exists()
        assert list((tmp_path / 'reports').glob('*.json'))
        assert (tmp_path / 'reports' / 'report.md').exists()
        text = out.getvalue()
        assert "OK   Good: CORRECT (all lines present)" in text
        assert "ALL TESTS PASSED!" in text

    def test_broken_candidate_fails_run(self, tmp_path, fake_sort):
        config = _config(
            tmp_path, fake_sort(),
            [('Good', fake_sort()), ('Broken', fake_sort('reversed')), ('Empty', fake_sort('empty'))],
            check_sorted=False,
        )
        harness = Harness(config, out=io.StringIO())

        assert harness.run() == 1
        assert all(o.equivalent for o in _outcomes(harness, 'Good'))
        broken = _outcomes(harness, 'Broken')
        assert len(broken) == len(TEST_MATRIX)
        assert not all(o.equivalent for o in broken)
        empty = _outcomes(harness, 'Empty')
        assert all(not o.equivalent and o.reason == "empty output" for o in empty)

    def test_missing_candidate_is_skipped(self, tmp_path, fake_sort, caplog):
        config = _config(
            tmp_path, fake_sort(), [('Good', fake_sort()), ('Gone', '/nonexistent/bin/sort')],
            check_sorted=False,
        )
        harness = Harness(config, out=io.StringIO())
        with caplog.at_level(logging.WARNING):
            assert harness.run() == 0
        assert 'Gone' in caplog.text
        assert _outcomes(harness, 'Gone') == []

    def test_failing_candidate_recorded(self, tmp_path, fake_sort):
        config = _config(tmp_path, fake_sort(), [('Fail', fake_sort('fail'))])
        harness = Harness(config, out=io.StringIO())
        assert harness.run() == 1
        outcomes = _outcomes(harness, 'Fail')
        assert len(outcomes) == len(TEST_MATRIX) + 2
        assert outcomes[0].reason == "capture run exited with status 3"

    def test_failing_reference(self, tmp_path, fake_sort):
        config = _config(tmp_path, fake_sort('fail'), [('Good', fake_sort())])
        harness = Harness(config, out=io.StringIO())
        assert harness.run() == 1
        assert harness.aggregator.summary.passed == 0
        assert _outcomes(harness, 'Good') == []
        assert len(_outcomes(harness, 'Reference')) == len(TEST_MATRIX) + 1

    def test_keep_scratch(self, tmp_path, fake_sort):
        config = _config(tmp_path, fake_sort(), [('Good', fake_sort())], keep_scratch=True)
        harness = Harness(config, out=io.StringIO())
        assert harness.run() == 0
        run_dir = harness.scratch_dir
        assert os.path.dirname(run_dir) == str(tmp_path / 'scratch')
        assert os.path.exists(os.path.join(run_dir, 'test_sorted_tiny.txt'))
        # capture files are removed after each test case
        assert not [name for name in os.listdir(run_dir) if name.endswith('.out')]

    def test_existing_scratch_contents_survive(self, tmp_path, fake_sort):
        scratch = tmp_path / 'scratch'
        scratch.mkdir()
        (scratch / 'notes.txt').write_text("keep me\n")
        config = _config(tmp_path, fake_sort(), [('Good', fake_sort())], check_sorted=False)
        assert Harness(config, out=io.StringIO()).run() == 0
        assert (scratch / 'notes.txt').read_text() == "keep me\n"
        assert [p.name for p in scratch.iterdir()] == ['notes.txt']

    def test_charset_and_external_suites(self, tmp_path, fake_sort, caplog):
        config = _config(
            tmp_path, fake_sort(), [('Good', fake_sort())],
            check_sorted=False, charset_tests=True, external_test=True, external_lines=500,
        )
        harness = Harness(config, out=io.StringIO())
        with caplog.at_level(logging.WARNING):
            assert harness.run() == 0
        names = [case.test_case.name for case in harness.aggregator.cases]
        assert "Leading blanks with -b" in names
        assert "Russian with -b" in names
        assert "External sort unique" in names
        assert 'external sort trigger' in caplog.text
        assert harness.aggregator.summary.passed == len(TEST_MATRIX) + 5
