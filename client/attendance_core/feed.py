"""
RecordFeed — the most recent attendance record set.

Manual refreshes, notification refreshes and polls can all be in flight at
once. Each fetch takes a sequence number before it starts; a result is only
committed if no later-issued fetch has committed already, so a slow old fetch
cannot overwrite newer data.
"""

import itertools
import threading
import time


def new_records(previous, current):
    """Records in `current` whose key was not in `previous` (order kept)."""
    seen = {record.key for record in previous}
    return [record for record in current if record.key not in seen]


class RecordFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._committed_seq = 0
        self.records = []
        self.total_count = 0
        self.last_updated = None

    def next_sequence(self):
        with self._lock:
            return next(self._counter)

    @property
    def committed_sequence(self):
        return self._committed_seq

    def commit(self, seq, page):
        """
        Apply `page` if `seq` is newer than everything committed so far.
        Returns the list of new records, or None when the result was stale.
        """
        with self._lock:
            if seq <= self._committed_seq:
                return None
            added = new_records(self.records, page.records) if self.records else []
            self._committed_seq = seq
            self.records = list(page.records)
            self.total_count = page.total_count
            self.last_updated = time.time()
            return added
