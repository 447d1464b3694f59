"""
Tests for the draft expiry sweep job

Tests cover:
- One sweep pass expires elapsed drafts and records its result
- Database errors are reported, not raised
- Scheduler status before start
"""

from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


class TestSweep:
    def test_sweep_expires_elapsed_drafts(self, db, session_factory, new_draft, drafts):
        from tripbook.services.draft_expiry import get_scheduler_status, sweep_expired_drafts

        # fixture clock sits in the past, so wall-clock now is beyond every expiry
        draft = new_draft()

        result = sweep_expired_drafts(session_factory)

        assert result["expired"] == 1
        assert result["error"] is None
        db.expire_all()
        assert drafts.get_draft_status(draft.id).status == "expired"
        assert get_scheduler_status()["last_run_result"] == result

    def test_sweep_reports_database_errors(self):
        from tripbook.services.draft_expiry import sweep_expired_drafts

        session = MagicMock()
        session.execute.side_effect = OperationalError("UPDATE", {}, Exception("database is locked"))
        session.query.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))

        result = sweep_expired_drafts(lambda: session)

        assert result["expired"] == 0
        assert "database is locked" in result["error"]
        session.rollback.assert_called_once()
        session.close.assert_called_once()


class TestSchedulerStatus:
    def test_not_running_by_default(self):
        from tripbook.services.draft_expiry import get_scheduler_status

        status = get_scheduler_status()

        assert status["running"] is False
        assert status["next_run"] is None
