"""
Tests for the map marker descriptor and SVG badge.
"""

import sys
import xml.etree.ElementTree as ET
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from trainstatus.marker import generate_badge, marker_for
from trainstatus.status import Status, StatusSnapshot


class TestMarker:
    """Tests for marker_for."""

    def test_every_status_has_a_distinct_color(self):
        colors = {marker_for(StatusSnapshot(status))['color'] for status in Status}
        assert len(colors) == len(Status)

    def test_error_is_distinguishable_from_clear(self):
        error = marker_for(StatusSnapshot(Status.ERROR))
        clear = marker_for(StatusSnapshot(Status.CLEAR))
        assert error['color'] != clear['color']
        assert error['headline'] != clear['headline']

    def test_headlines_answer_the_question(self):
        assert marker_for(StatusSnapshot(Status.BLOCKED))['headline'] == 'YES'
        assert marker_for(StatusSnapshot(Status.CLEAR))['headline'] == 'NO'

    def test_only_checking_pulses(self):
        assert marker_for(StatusSnapshot(Status.CHECKING))['pulse'] is True
        assert marker_for(StatusSnapshot(Status.BLOCKED))['pulse'] is False


class TestBadge:
    """Tests for generate_badge."""

    def test_badge_is_valid_svg(self):
        svg = generate_badge(Status.BLOCKED)
        root = ET.fromstring(svg)
        assert root.tag.endswith('svg')
        assert 'train blocking' in svg
        assert '9th &amp; Naito' in svg

    def test_accepts_string_status(self):
        assert generate_badge('clear') == generate_badge(Status.CLEAR)

    def test_unknown_for_bad_input(self):
        assert generate_badge('purple') == generate_badge(Status.UNKNOWN)
        assert generate_badge(None) == generate_badge(Status.UNKNOWN)

    def test_error_badge_escapes_apostrophe(self):
        svg = generate_badge(Status.ERROR)
        ET.fromstring(svg)
        assert "can&#39;t tell" in svg
