"""Shared constants"""

# Trailing tag on everything this service writes. Humans read it as attribution,
# the loop guard reads it as "this content came from us".
SYNC_FOOTER = "Synced by SyncBridge"

# Tickets and comments we create on Linear get client-generated ids ending in this,
# so the create webhook Linear echoes back can be recognised.
LINEAR_UUID_SUFFIX = "decade"

# Description given to labels we create on GitHub
LABEL_DESCRIPTION = "Created by SyncBridge"
DEFAULT_LABEL_COLOR = "888888"

# Linear priority -> GitHub label. Priority 0 ("No priority") has no label.
PRIORITY_LABELS = {
    1: {"name": "Urgent", "color": "ea7b4b"},
    2: {"name": "High priority", "color": "f2c94c"},
    3: {"name": "Medium priority", "color": "5e6ad2"},
    4: {"name": "Low priority", "color": "95a2b3"},
}

# Linear estimate -> "<n> points" GitHub label
ESTIMATE_LABEL_COLOR = "666666"
ESTIMATE_LABEL_SUFFIX = " points"

# Marker in a milestone description that routes it to a Linear project instead of a cycle
PROJECT_MARKER = "(Project)"

# Fallback cycle length when a GitHub milestone has no due date
DEFAULT_CYCLE_DAYS = 14


def priority_for_label(name: str | None) -> int | None:
    """Reverse lookup of PRIORITY_LABELS (case-insensitive)."""
    if not name:
        return None
    lowered = name.strip().lower()
    for value, label in PRIORITY_LABELS.items():
        if label["name"].lower() == lowered:
            return value
    return None


def estimate_label(estimate: int) -> str:
    return f"{estimate}{ESTIMATE_LABEL_SUFFIX}"


def estimate_for_label(name: str | None) -> int | None:
    """Parse "<n> points" back into n."""
    if not name or not name.lower().endswith(ESTIMATE_LABEL_SUFFIX):
        return None
    number = name[: -len(ESTIMATE_LABEL_SUFFIX)].strip()
    return int(number) if number.isdigit() else None
