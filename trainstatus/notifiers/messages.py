"""
Shared status messages for notifications.
"""

STATUS_MESSAGES = {
    'clear': '🟢 All clear: no train at 9th & Naito',
    'blocked': '🚂 Train blocking 9th & Naito, find another way',
}
