from scribedesk.filters.state import FilterState, FilterType, SortDirection, SortField, apply_filters
from scribedesk.filters.store import PreferenceStore, SqlPreferenceStore, load_filter_state, save_filter_state

__all__ = [
    "FilterState",
    "FilterType",
    "SortDirection",
    "SortField",
    "apply_filters",
    "PreferenceStore",
    "SqlPreferenceStore",
    "load_filter_state",
    "save_filter_state",
]
