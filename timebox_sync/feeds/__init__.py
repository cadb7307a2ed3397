"""External iCalendar feeds: fetching, parsing, recurrence expansion and caching."""
