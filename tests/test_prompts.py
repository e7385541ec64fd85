"""Tests for confirmation prompts."""

import io

import pytest

from post_sync.prompts import AutoConfirmer, InteractiveConfirmer


class TestInteractiveConfirmer:
    @pytest.mark.parametrize(
        "answer, expected",
        [
            ("y\n", True),
            ("YES\n", True),
            ("  yes  \n", True),
            ("n\n", False),
            ("\n", False),
            ("", False),
            ("maybe\n", False),
        ],
    )
    def test_answers(self, answer, expected):
        stream = io.StringIO()
        confirmer = InteractiveConfirmer(input_fn=lambda: answer, stream=stream)

        assert confirmer.ask("Delete everything?") is expected
        assert stream.getvalue() == "Delete everything? [y/N] "

    def test_eof_means_no(self):
        def closed():
            raise EOFError

        confirmer = InteractiveConfirmer(input_fn=closed, stream=io.StringIO())
        assert confirmer.ask("Proceed?") is False


def test_auto_confirmer_always_yes():
    assert AutoConfirmer().ask("anything") is True
