"""
Visual descriptors for the intersection marker and status badge.

The map page colors its marker from ``marker_for``; ``generate_badge``
renders a shields.io-style flat badge for embedding elsewhere. Error has
its own color so "couldn't tell" never looks like "clear".
"""

from trainstatus.status import Status, StatusSnapshot

_COLORS = {
    Status.UNKNOWN: '#9f9f9f',
    Status.CHECKING: '#007ec6',
    Status.CLEAR: '#4c1',
    Status.BLOCKED: '#e05d44',
    Status.ERROR: '#fe7d37',
}

_LABELS = {
    Status.UNKNOWN: 'unknown',
    Status.CHECKING: 'checking',
    Status.CLEAR: 'clear',
    Status.BLOCKED: 'train blocking',
    Status.ERROR: "can't tell",
}

# Answer to "is a train blocking?"
_HEADLINES = {
    Status.UNKNOWN: '?',
    Status.CHECKING: 'Checking...',
    Status.CLEAR: 'NO',
    Status.BLOCKED: 'YES',
    Status.ERROR: 'Error',
}

_ICONS = {
    Status.UNKNOWN: '❔',
    Status.CHECKING: '⏳',
    Status.CLEAR: '✅',
    Status.BLOCKED: '🚂',
    Status.ERROR: '⚠️',
}

# Approximate character width for Verdana 11px (shields.io uses this)
_CHAR_WIDTH = 6.8
_PADDING = 10
_LABEL_TEXT = '9th & Naito'


def marker_for(snapshot: StatusSnapshot) -> dict:
    """Marker color, icon and text for the map view."""
    status = snapshot.status
    return {
        'color': _COLORS[status],
        'icon': _ICONS[status],
        'label': _LABELS[status],
        'headline': _HEADLINES[status],
        'pulse': status == Status.CHECKING,
    }


def generate_badge(status):
    """
    Generate an SVG badge for the given status.

    Args:
        status: A Status, its string value, or None for unknown.

    Returns:
        str: SVG markup string.
    """
    if not isinstance(status, Status):
        try:
            status = Status(status)
        except ValueError:
            status = Status.UNKNOWN

    color = _COLORS[status]
    value_text = _LABELS[status]

    label_width = int(len(_LABEL_TEXT) * _CHAR_WIDTH + _PADDING * 2)
    value_width = int(len(value_text) * _CHAR_WIDTH + _PADDING * 2)
    total_width = label_width + value_width

    label_x = label_width / 2
    value_x = label_width + value_width / 2
    label_text = _LABEL_TEXT.replace('&', '&amp;')
    value_text = value_text.replace("'", '&#39;')

    return f'''<svg xmlns="http://www.w3.org/2000/svg" width="{total_width}" height="20" role="img" aria-label="{label_text}: {value_text}">
  <title>{label_text}: {value_text}</title>
  <clipPath id="r">
    <rect width="{total_width}" height="20" rx="3" fill="#fff"/>
  </clipPath>
  <g clip-path="url(#r)">
    <rect width="{label_width}" height="20" fill="#555"/>
    <rect x="{label_width}" width="{value_width}" height="20" fill="{color}"/>
  </g>
  <g fill="#fff" text-anchor="middle" font-family="Verdana,Geneva,DejaVu Sans,sans-serif" font-size="110">
    <text x="{label_x * 10}" y="140" transform="scale(.1)">{label_text}</text>
    <text x="{value_x * 10}" y="140" transform="scale(.1)">{value_text}</text>
  </g>
</svg>'''
