"""
The report aggregate: who has reported whom.

This lives in process memory only. It is created empty when the service
starts and is lost on restart; a target needs `threshold` distinct reporters
within one process lifetime to be banned automatically.
"""


class ReportAggregate:
    """
    Distinct reporters per reported target. A target is a user, optionally
    within a group; see `key_for`.

    Callers must serialise access per key. The moderation service does this by
    holding the store's `moderation_key` lock for the target.
    """

    threshold: int

    def __init__(self, threshold: int = 3):
        if threshold < 1:
            raise ValueError("Report threshold must be at least 1")

        self.threshold = threshold
        self._reporters: dict[str, list[str]] = {}

    def __len__(self) -> int:
        return len(self._reporters)

    @staticmethod
    def key_for(target_user_id: str, group_id: object | None = None) -> str:
        if group_id is None:
            return target_user_id

        return f"{target_user_id}:{group_id}"

    def reporters(self, key: str) -> list[str]:
        return list(self._reporters.get(key, []))

    def count(self, key: str) -> int:
        return len(self._reporters.get(key, []))

    def has_reported(self, key: str, reporter_id: str) -> bool:
        return reporter_id in self._reporters.get(key, [])

    def record(self, key: str, reporter_id: str) -> int:
        """
        Add a reporter against `key`, returning the number of distinct
        reporters now recorded.
        """
        reporters = self._reporters.setdefault(key, [])

        if reporter_id not in reporters:
            reporters.append(reporter_id)

        return len(reporters)

    def clear(self, key: str):
        self._reporters.pop(key, None)

    def reset(self):
        self._reporters.clear()
