from trustci.model import NotifyPolicy
from trustci.notify import HISTORY_FILE, previous_outcome, record_outcome, should_notify


class TestShouldNotify:

    def test_default_policy(self):
        """Silence on success, always on failure."""
        policy = NotifyPolicy()
        assert not should_notify(policy, succeeded=True)
        assert should_notify(policy, succeeded=False)

    def test_change(self):
        policy = NotifyPolicy(on_success="change", on_failure="change")
        assert should_notify(policy, True, previous_succeeded=False)
        assert not should_notify(policy, True, previous_succeeded=True)
        assert should_notify(policy, False, previous_succeeded=True)
        assert should_notify(policy, True)


class TestOutcomeHistory:

    def test_unknown_until_recorded(self, tmp_path):
        path = tmp_path / "cache" / HISTORY_FILE
        assert previous_outcome(path, "master") is None
        record_outcome(path, "master", True)
        record_outcome(path, "v1.2.3", False)
        assert previous_outcome(path, "master") is True
        assert previous_outcome(path, "v1.2.3") is False
        assert previous_outcome(path, "feature/foo") is None

    def test_corrupt_history_is_ignored(self, tmp_path):
        path = tmp_path / HISTORY_FILE
        path.write_text("{not json")
        assert previous_outcome(path, "master") is None
        record_outcome(path, "master", False)
        assert previous_outcome(path, "master") is False
